"""Acquisition pipeline: ordered source fallback ending in synthetic data"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Tuple
import logging

import requests

from radar_app.models.radar import RadarPoint
from radar_app.services.base_fetcher import BaseSourceFetcher
from radar_app.services.decoder import FormatDecoder
from radar_app.services.mrms_fetcher import MRMSDirectoryFetcher
from radar_app.services.nws_fetcher import NWSStationFetcher
from radar_app.services.synthetic import SyntheticGenerator
from radar_app.services.upstream import describe_failure
from radar_app.services.viewer_fetcher import MRMSViewerFetcher

if TYPE_CHECKING:
    from radar_app.config import Settings

logger = logging.getLogger(__name__)

SYNTHETIC_LABEL = "SYNTHETIC"


class AcquisitionState(str, Enum):
    TRY_PRIMARY = "try_primary"
    TRY_SECONDARY = "try_secondary"
    TRY_TERTIARY = "try_tertiary"
    SYNTHETIC = "synthetic"
    DONE = "done"


_NEXT_STATE = {
    AcquisitionState.TRY_PRIMARY: AcquisitionState.TRY_SECONDARY,
    AcquisitionState.TRY_SECONDARY: AcquisitionState.TRY_TERTIARY,
    AcquisitionState.TRY_TERTIARY: AcquisitionState.SYNTHETIC,
}


@dataclass(frozen=True)
class SourceAttempt:
    """Outcome of one strategy within a single acquisition run"""
    source: str
    point_count: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.point_count > 0


@dataclass(frozen=True)
class AcquisitionResult:
    points: List[RadarPoint]
    source_label: str
    attempts: Tuple[SourceAttempt, ...] = field(default_factory=tuple)

    @property
    def used_fallback(self) -> bool:
        return self.source_label == SYNTHETIC_LABEL


class AcquisitionPipeline:
    """
    Try primary, secondary and tertiary sources in order, then synthesize.

    A strategy that raises or returns nothing moves the run to the next
    state; the first non-empty result ends it. There are no retries within
    a state and no strategies run in parallel. ``acquire_latest()`` never
    raises and never returns an empty list.
    """

    def __init__(
        self,
        primary: BaseSourceFetcher,
        secondary: BaseSourceFetcher,
        tertiary: BaseSourceFetcher,
        synthetic: Optional[SyntheticGenerator] = None,
    ):
        self._strategies = {
            AcquisitionState.TRY_PRIMARY: primary,
            AcquisitionState.TRY_SECONDARY: secondary,
            AcquisitionState.TRY_TERTIARY: tertiary,
        }
        self.synthetic = synthetic or SyntheticGenerator()

    @property
    def strategies(self) -> Tuple[BaseSourceFetcher, ...]:
        """Live strategies in fallback order"""
        return tuple(self._strategies.values())

    def acquire(self) -> AcquisitionResult:
        """Run the state machine once and report which source produced the points."""
        state = AcquisitionState.TRY_PRIMARY
        attempts: List[SourceAttempt] = []
        points: List[RadarPoint] = []
        label = SYNTHETIC_LABEL

        while state is not AcquisitionState.DONE:
            if state is AcquisitionState.SYNTHETIC:
                logger.warning("All radar sources failed or were empty, generating synthetic data")
                points = self.synthetic.generate()
                attempts.append(SourceAttempt(source=SYNTHETIC_LABEL, point_count=len(points)))
                label = SYNTHETIC_LABEL
                state = AcquisitionState.DONE
                continue

            strategy = self._strategies[state]
            outcome = self._run_strategy(strategy)
            attempts.append(outcome.attempt)
            if outcome.points:
                points = outcome.points
                label = strategy.label
                state = AcquisitionState.DONE
            else:
                state = _NEXT_STATE[state]

        logger.info("Radar acquisition complete: %d points from %s", len(points), label)
        return AcquisitionResult(points=points, source_label=label, attempts=tuple(attempts))

    def acquire_latest(self) -> List[RadarPoint]:
        return self.acquire().points

    def _run_strategy(self, strategy: BaseSourceFetcher) -> "_StrategyOutcome":
        logger.info("Trying radar source %s", strategy.name)
        try:
            points = strategy.fetch()
        except Exception as exc:  # noqa: BLE001 - any strategy failure advances the chain
            reason = describe_failure(exc)
            logger.warning("Radar source %s failed: %s", strategy.name, reason)
            return _StrategyOutcome([], SourceAttempt(source=strategy.label, error=reason))

        if not points:
            logger.info("Radar source %s returned no points", strategy.name)
        return _StrategyOutcome(points, SourceAttempt(source=strategy.label, point_count=len(points)))


@dataclass(frozen=True)
class _StrategyOutcome:
    points: List[RadarPoint]
    attempt: SourceAttempt


def build_pipeline(settings: "Settings", session: Optional[requests.Session] = None) -> AcquisitionPipeline:
    """
    Wire the three live strategies and the synthetic fallback from settings.

    The directory and viewer strategies share one session. The station
    strategy runs its lookups on worker threads and opens a session per
    lookup unless ``session`` is given.
    """
    shared_session = session if session is not None else requests.Session()
    decoder = FormatDecoder(max_points_per_field=settings.max_points_per_field)

    primary = MRMSDirectoryFetcher(
        base_url=settings.mrms_base_url,
        product=settings.mrms_product,
        decoder=decoder,
        listing_timeout=settings.mrms_listing_timeout,
        download_timeout=settings.mrms_download_timeout,
        session=shared_session,
        user_agent=settings.browser_user_agent,
    )
    secondary = MRMSViewerFetcher(
        viewer_url=settings.viewer_url,
        decoder=decoder,
        timeout=settings.viewer_timeout,
        session=shared_session,
        user_agent=settings.user_agent,
    )
    tertiary = NWSStationFetcher(
        api_url=settings.nws_api_url,
        station_limit=settings.nws_station_limit,
        forecast_periods=settings.nws_forecast_periods,
        max_workers=settings.nws_max_workers,
        timeout=settings.nws_timeout,
        session=session,
        user_agent=settings.user_agent,
    )
    return AcquisitionPipeline(primary, secondary, tertiary, SyntheticGenerator())
