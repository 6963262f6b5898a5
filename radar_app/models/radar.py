"""Radar point and snapshot value types shared by every pipeline stage"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List, Optional, Tuple


class Precipitation(str, Enum):
    """Precipitation intensity category, ordered from weakest to strongest"""
    NONE = "none"
    LIGHT = "light"
    MODERATE = "moderate"
    HEAVY = "heavy"
    EXTREME = "extreme"

    @property
    def rank(self) -> int:
        return _PRECIPITATION_ORDER.index(self)


_PRECIPITATION_ORDER = list(Precipitation)


class PointSource(str, Enum):
    """Where a radar point came from (debugging only, never branch on it)"""
    DECODED_GRID = "decoded-grid"
    DERIVED_STATION = "derived-station"
    SYNTHETIC = "synthetic"


class ClassificationPolicy(str, Enum):
    """Named reflectivity threshold tables.

    STANDARD is the 5-band table used for decoded grids and regional
    synthetic systems. COARSE is the 20/35/45 dBZ table used for
    station-derived estimates and per-station synthetic patterns.
    """
    STANDARD = "standard"
    COARSE = "coarse"


@dataclass(frozen=True)
class Bounds:
    """Inclusive lat/lon box"""
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, lat: float, lon: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lon <= lon <= self.max_lon

    def filter(self, points: Iterable["RadarPoint"]) -> List["RadarPoint"]:
        return [p for p in points if self.contains(p.latitude, p.longitude)]

    def to_dict(self) -> dict:
        return {
            "minLat": self.min_lat,
            "maxLat": self.max_lat,
            "minLon": self.min_lon,
            "maxLon": self.max_lon,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "Bounds":
        return cls(
            min_lat=float(payload["minLat"]),
            max_lat=float(payload["maxLat"]),
            min_lon=float(payload["minLon"]),
            max_lon=float(payload["maxLon"]),
        )


# Continental US; anything outside is dropped before leaving the pipeline
CONUS_BOUNDS = Bounds(min_lat=24.0, max_lat=49.0, min_lon=-125.0, max_lon=-66.0)


@dataclass(frozen=True)
class RadarPoint:
    """
    One normalized reflectivity sample.

    ``precipitation`` and ``color`` are not constructor arguments: they are
    derived from ``reflectivity`` under ``policy`` when the point is built,
    so a point can never carry a class that disagrees with its own value.
    """
    latitude: float
    longitude: float
    reflectivity: float
    source: PointSource
    origin_field: Optional[str] = None
    policy: ClassificationPolicy = ClassificationPolicy.STANDARD
    precipitation: Precipitation = field(init=False)
    color: str = field(init=False)

    def __post_init__(self):
        # Imported here to keep the models package free of service imports at load time
        from radar_app.services.classifier import classify

        result = classify(self.reflectivity, self.policy)
        object.__setattr__(self, "precipitation", result.precipitation)
        object.__setattr__(self, "color", result.color)


@dataclass(frozen=True)
class Snapshot:
    """One immutable timestamped batch produced by a single pipeline run"""
    timestamp: datetime
    points: Tuple[RadarPoint, ...]
    source_label: str
    bounds: Bounds = CONUS_BOUNDS

    @property
    def total_points(self) -> int:
        return len(self.points)

    @classmethod
    def create(
        cls,
        points: Iterable[RadarPoint],
        source_label: str,
        timestamp: Optional[datetime] = None,
        bounds: Bounds = CONUS_BOUNDS,
    ) -> "Snapshot":
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)
        return cls(
            timestamp=timestamp,
            points=tuple(points),
            source_label=source_label,
            bounds=bounds,
        )
