"""
Synthetic radar data generator.

Used as the last resort when no live source answers. Two modes:

* regional systems: a handful of large weather systems scattered across
  the continental US (5-band classification);
* per-station patterns: a storm cell, front or scattered showers around
  each radar site (coarse 3-cutoff classification).
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence
import logging
import math
import random

from radar_app.models.radar import (
    CONUS_BOUNDS,
    ClassificationPolicy,
    PointSource,
    RadarPoint,
)
from radar_app.services.stations import RadarStation, get_radar_stations

logger = logging.getLogger(__name__)

# Regional points at or below this are treated as clear air and not emitted
MIN_REGIONAL_DBZ = 10.0


@dataclass(frozen=True)
class WeatherSystem:
    center_lat: float
    center_lon: float
    intensity: float  # dBZ at the centre
    size: float  # degrees


class SyntheticGenerator:
    """Plausible radar point sets; ``generate()`` never fails and is never empty"""

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        stations: Optional[Sequence[RadarStation]] = None,
    ):
        self._rng = rng or random.Random()
        self.stations = list(stations) if stations is not None else get_radar_stations()

    def generate(self) -> List[RadarPoint]:
        points = self.generate_regional()
        if not points:
            logger.info("Regional synthetic systems produced no points, using station patterns")
            points = self.generate_for_stations()
        logger.info(f"Generated {len(points)} synthetic radar points")
        return points

    # ------------------------------------------------------------------
    # Regional systems
    # ------------------------------------------------------------------

    def generate_weather_systems(self) -> List[WeatherSystem]:
        """3-6 systems, kept away from the edges of the continental box."""
        rng = self._rng
        return [
            WeatherSystem(
                center_lat=25.0 + rng.random() * 20.0,
                center_lon=-120.0 + rng.random() * 50.0,
                intensity=20 + rng.random() * 30,
                size=3 + rng.random() * 8,
            )
            for _ in range(rng.randint(3, 6))
        ]

    def generate_regional(self) -> List[RadarPoint]:
        points: List[RadarPoint] = []
        for system in self.generate_weather_systems():
            points.extend(self._system_points(system))
        return points

    def _system_points(self, system: WeatherSystem) -> List[RadarPoint]:
        rng = self._rng
        num_points = int(system.size * 50)
        points: List[RadarPoint] = []

        for i in range(num_points):
            pattern_type = rng.random()
            if pattern_type < 0.3:
                pattern = "ring"
                angle = (math.pi * 2 * i) / num_points
                radius = rng.random() * system.size * 2.0
                lat = system.center_lat + radius * math.cos(angle)
                lon = system.center_lon + radius * math.sin(angle)
            elif pattern_type < 0.6:
                pattern = "scatter"
                lat = system.center_lat + (rng.random() - 0.5) * system.size * 4.0
                lon = system.center_lon + (rng.random() - 0.5) * system.size * 4.0
            else:
                pattern = "front"
                direction = rng.random() * math.pi * 2
                distance = rng.random() * system.size * 3.0
                lat = system.center_lat + distance * math.cos(direction)
                lon = system.center_lon + distance * math.sin(direction)

            lat += (rng.random() - 0.5) * 5.0
            lon += (rng.random() - 0.5) * 5.0

            distance_from_center = math.hypot(lat - system.center_lat, lon - system.center_lon)
            base = system.intensity * (1 - distance_from_center / system.size)
            reflectivity = max(5.0, base + (rng.random() - 0.5) * 10)

            if reflectivity <= MIN_REGIONAL_DBZ or not CONUS_BOUNDS.contains(lat, lon):
                continue

            points.append(RadarPoint(
                latitude=round(lat, 3),
                longitude=round(lon, 3),
                reflectivity=round(reflectivity, 1),
                source=PointSource.SYNTHETIC,
                origin_field=f"regional:{pattern}",
                policy=ClassificationPolicy.STANDARD,
            ))
        return points

    # ------------------------------------------------------------------
    # Per-station patterns
    # ------------------------------------------------------------------

    def generate_for_stations(self) -> List[RadarPoint]:
        points: List[RadarPoint] = []
        for station in self.stations:
            system_type = self._rng.random()
            if system_type < 0.3:
                points.extend(self.thunderstorm_cell(station))
            elif system_type < 0.6:
                points.extend(self.weather_front(station))
            else:
                points.extend(self.scattered_showers(station))
        return CONUS_BOUNDS.filter(points)

    def thunderstorm_cell(self, station: RadarStation) -> List[RadarPoint]:
        """Small, intense: 5-12 points within 1.5 degrees, 30-50 dBZ"""
        rng = self._rng
        num_points = rng.randint(5, 12)
        intensity = 30 + rng.random() * 20
        points = []
        for i in range(num_points):
            angle = (math.pi * 2 * i) / num_points
            radius = rng.random() * 1.5
            reflectivity = intensity + (rng.random() - 0.5) * 10
            points.append(self._station_point(
                station,
                station.lat + radius * math.cos(angle),
                station.lon + radius * math.sin(angle),
                _clamp(reflectivity, 20, 50),
                "cell",
            ))
        return points

    def weather_front(self, station: RadarStation) -> List[RadarPoint]:
        """Linear: 10-24 points along a 2-5 degree line, 25-40 dBZ"""
        rng = self._rng
        num_points = rng.randint(10, 24)
        direction = rng.random() * math.pi * 2
        length = 2 + rng.random() * 3
        points = []
        for i in range(num_points):
            distance = (i / num_points) * length
            reflectivity = 25 + rng.random() * 15
            points.append(self._station_point(
                station,
                station.lat + distance * math.cos(direction),
                station.lon + distance * math.sin(direction),
                _clamp(reflectivity, 20, 40),
                "front",
            ))
        return points

    def scattered_showers(self, station: RadarStation) -> List[RadarPoint]:
        """Diffuse: 8-19 points within +/-2 degrees, 15-35 dBZ"""
        rng = self._rng
        num_points = rng.randint(8, 19)
        points = []
        for _ in range(num_points):
            reflectivity = 15 + rng.random() * 20
            points.append(self._station_point(
                station,
                station.lat + (rng.random() - 0.5) * 4.0,
                station.lon + (rng.random() - 0.5) * 4.0,
                _clamp(reflectivity, 10, 35),
                "showers",
            ))
        return points

    @staticmethod
    def _station_point(station: RadarStation, lat: float, lon: float, reflectivity: float, pattern: str) -> RadarPoint:
        return RadarPoint(
            latitude=lat,
            longitude=lon,
            reflectivity=reflectivity,
            source=PointSource.SYNTHETIC,
            origin_field=f"{station.id}:{pattern}",
            policy=ClassificationPolicy.COARSE,
        )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
