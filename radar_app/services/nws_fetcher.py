"""NWS forecast-derived per-station estimate (tertiary source)"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import nullcontext
from typing import Any, Callable, ContextManager, Dict, List, Optional, Sequence
import logging
import math
import random

import requests

from radar_app.models.radar import ClassificationPolicy, PointSource, RadarPoint
from radar_app.services.base_fetcher import BaseSourceFetcher
from radar_app.services.stations import RadarStation, get_radar_stations
from radar_app.services.upstream import SourceError, StationLookupError, describe_failure

logger = logging.getLogger(__name__)

GEOJSON_ACCEPT = "application/geo+json"

# Station-derived reflectivity never exceeds this
MAX_DERIVED_DBZ = 50.0


class NWSStationFetcher(BaseSourceFetcher):
    """
    Estimate reflectivity around radar sites from NWS precipitation probability.

    For each station: /points/{lat},{lon} -> properties.forecast ->
    properties.periods. Every near-term period with a non-zero probability
    produces a small ring of points around the station. Stations are looked
    up concurrently; one failing station is logged and skipped.

    requests sessions are not thread-safe, so each station lookup opens its
    own session from ``session_factory``. A ``session`` passed in is shared
    by every worker instead and must tolerate concurrent use.
    """

    name = "nws_api"
    label = "NWS_API"

    def __init__(
        self,
        api_url: str,
        stations: Optional[Sequence[RadarStation]] = None,
        station_limit: int = 5,
        forecast_periods: int = 3,
        max_workers: int = 4,
        timeout: float = 10,
        rng: Optional[random.Random] = None,
        session: Optional[requests.Session] = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
        user_agent: str = "RadarApp/1.0",
    ):
        super().__init__(session=session, user_agent=user_agent)
        self.session_factory = session_factory
        self.api_url = api_url.rstrip("/")
        if stations is None:
            stations = get_radar_stations()
        self.stations = list(stations)[:max(0, station_limit)]
        self.forecast_periods = forecast_periods
        self.max_workers = max(1, max_workers)
        self.timeout = timeout
        self._rng = rng or random.Random()

    def fetch_points(self) -> List[RadarPoint]:
        if not self.stations:
            return []

        logger.info(f"Querying NWS forecasts for {len(self.stations)} stations")
        results: Dict[str, List[RadarPoint]] = {}
        failures: List[Exception] = []

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(self.stations))) as executor:
            futures = {
                executor.submit(self.get_station_points, station): station
                for station in self.stations
            }
            for future in as_completed(futures):
                station = futures[future]
                try:
                    results[station.id] = future.result()
                except Exception as e:  # noqa: BLE001 - one station must not abort the others
                    logger.warning(f"  Failed to get data for station {station.id}: {e}")
                    failures.append(e)

        # Keep station order regardless of completion order
        points: List[RadarPoint] = []
        for station in self.stations:
            points.extend(results.get(station.id, []))

        logger.info(
            f"  NWS: {len(points)} points from {len(results)} stations "
            f"({len(failures)} failed)"
        )
        return points

    def get_station_points(self, station: RadarStation) -> List[RadarPoint]:
        """
        Look up one station's forecast and derive points from it.

        Raises:
            StationLookupError: any network or payload problem for this station
        """
        points_url = f"{self.api_url}/points/{station.lat},{station.lon}"
        try:
            with self._station_session() as session:
                point_payload = self._get_json(
                    points_url, timeout=self.timeout, accept=GEOJSON_ACCEPT, session=session
                )
                forecast_url = point_payload["properties"]["forecast"]
                forecast = self._get_json(
                    forecast_url, timeout=self.timeout, accept=GEOJSON_ACCEPT, session=session
                )
        except SourceError as e:
            raise StationLookupError(station.id, describe_failure(e)) from e
        except (KeyError, TypeError) as e:
            raise StationLookupError(station.id, f"points response has no forecast URL ({e!r})") from e

        return self.extract_precipitation_points(forecast, station)

    def _station_session(self) -> ContextManager[requests.Session]:
        if self._session is not None:
            return nullcontext(self._session)
        return self.session_factory()

    def extract_precipitation_points(self, forecast: Any, station: RadarStation) -> List[RadarPoint]:
        """Turn near-term precipitation probabilities into a ring of points."""
        properties = forecast.get("properties") if isinstance(forecast, dict) else None
        periods = (properties or {}).get("periods") or []

        points: List[RadarPoint] = []
        for period in periods[:self.forecast_periods]:
            probability = _probability_of_precipitation(period)
            if probability is None or probability <= 0:
                continue

            num_points = self._rng.randint(5, 14)
            for i in range(num_points):
                angle = (math.pi * 2 * i) / num_points
                radius = self._rng.random() * 2.0
                reflectivity = min(probability + self._rng.random() * 20, MAX_DERIVED_DBZ)
                points.append(RadarPoint(
                    latitude=station.lat + radius * math.cos(angle),
                    longitude=station.lon + radius * math.sin(angle),
                    reflectivity=reflectivity,
                    source=PointSource.DERIVED_STATION,
                    origin_field=station.id,
                    policy=ClassificationPolicy.COARSE,
                ))
        return points


def _probability_of_precipitation(period: Any) -> Optional[float]:
    if not isinstance(period, dict):
        return None
    pop = period.get("probabilityOfPrecipitation")
    value = pop.get("value") if isinstance(pop, dict) else None
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
