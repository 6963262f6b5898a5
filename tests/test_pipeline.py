from __future__ import annotations

import random
from typing import List, Optional

import pytest
import requests

from radar_app.models.radar import CONUS_BOUNDS, PointSource, RadarPoint
from radar_app.services.base_fetcher import BaseSourceFetcher
from radar_app.services.pipeline import (
    SYNTHETIC_LABEL,
    AcquisitionPipeline,
    build_pipeline,
)
from radar_app.services.synthetic import SyntheticGenerator
from radar_app.services.upstream import DecodeError, NetworkError


def _point(dbz: float = 30.0) -> RadarPoint:
    return RadarPoint(latitude=35.0, longitude=-97.0, reflectivity=dbz, source=PointSource.DECODED_GRID)


class _FakeFetcher(BaseSourceFetcher):
    def __init__(
        self,
        name: str,
        points: Optional[List[RadarPoint]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        super().__init__(session=requests.Session())
        self.name = name
        self.label = name.upper()
        self._points = points or []
        self._error = error
        self.calls = 0

    def fetch_points(self) -> List[RadarPoint]:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return list(self._points)


class _CountingSynthetic(SyntheticGenerator):
    def __init__(self) -> None:
        super().__init__(rng=random.Random(0))
        self.calls = 0

    def generate(self) -> List[RadarPoint]:
        self.calls += 1
        return super().generate()


def test_non_empty_primary_short_circuits() -> None:
    primary = _FakeFetcher("primary", points=[_point(), _point(45)])
    secondary = _FakeFetcher("secondary", points=[_point()])
    tertiary = _FakeFetcher("tertiary", points=[_point()])
    synthetic = _CountingSynthetic()

    result = AcquisitionPipeline(primary, secondary, tertiary, synthetic).acquire()

    assert len(result.points) == 2
    assert result.source_label == "PRIMARY"
    assert (primary.calls, secondary.calls, tertiary.calls, synthetic.calls) == (1, 0, 0, 0)
    assert not result.used_fallback


def test_failure_and_empty_results_advance_to_next_source() -> None:
    primary = _FakeFetcher("primary", error=NetworkError("GET failed", url="http://x"))
    secondary = _FakeFetcher("secondary", points=[])
    tertiary = _FakeFetcher("tertiary", points=[_point(25)])
    synthetic = _CountingSynthetic()

    result = AcquisitionPipeline(primary, secondary, tertiary, synthetic).acquire()

    assert result.source_label == "TERTIARY"
    assert [p.reflectivity for p in result.points] == [25]
    assert [a.source for a in result.attempts] == ["PRIMARY", "SECONDARY", "TERTIARY"]
    assert result.attempts[0].error == "NetworkError: GET failed"
    assert result.attempts[1].error is None and result.attempts[1].point_count == 0
    assert result.attempts[2].succeeded
    assert synthetic.calls == 0


def test_total_fallback_when_every_strategy_raises() -> None:
    synthetic = _CountingSynthetic()
    pipeline = AcquisitionPipeline(
        _FakeFetcher("primary", error=NetworkError("down")),
        _FakeFetcher("secondary", error=DecodeError("parse", "bad json")),
        _FakeFetcher("tertiary", error=RuntimeError("unexpected")),
        synthetic,
    )

    result = pipeline.acquire()

    assert result.points
    assert result.source_label == SYNTHETIC_LABEL
    assert result.used_fallback
    assert synthetic.calls == 1
    assert [a.source for a in result.attempts] == ["PRIMARY", "SECONDARY", "TERTIARY", SYNTHETIC_LABEL]
    assert all(p.source is PointSource.SYNTHETIC for p in result.points)


def test_acquire_latest_never_raises_and_is_never_empty() -> None:
    pipeline = AcquisitionPipeline(
        _FakeFetcher("primary", error=KeyError("x")),
        _FakeFetcher("secondary"),
        _FakeFetcher("tertiary"),
        SyntheticGenerator(rng=random.Random(1)),
    )

    assert pipeline.acquire_latest()


class _OfflineSession(requests.Session):
    def __init__(self) -> None:
        super().__init__()
        self.urls: List[str] = []

    def request(self, method, url, *args, **kwargs):  # noqa: ANN001 - mirrors requests.Session
        self.urls.append(url)
        raise requests.ConnectionError(f"offline: {url}")


@pytest.mark.parametrize("seed", [0, 5, 13])
def test_all_network_calls_failing_yields_synthetic_points(settings, seed: int) -> None:
    session = _OfflineSession()
    pipeline = build_pipeline(settings, session=session)
    pipeline.synthetic = SyntheticGenerator(rng=random.Random(seed))

    result = pipeline.acquire()

    assert result.source_label == SYNTHETIC_LABEL
    assert len(result.points) >= 15
    # at most six regional systems of fewer than 550 candidates each
    assert len(result.points) <= 6 * 550
    assert all(CONUS_BOUNDS.contains(p.latitude, p.longitude) for p in result.points)
    # listing, viewer products, then one /points lookup per station
    assert session.urls[0] == f"{settings.mrms_base_url}/2D/{settings.mrms_product}/"
    assert len(session.urls) == 2 + settings.nws_station_limit


def test_build_pipeline_wires_settings(settings) -> None:
    pipeline = build_pipeline(settings, session=requests.Session())
    primary, secondary, tertiary = pipeline.strategies

    assert primary.label == "MRMS_NCEP"
    assert primary.listing_timeout == settings.mrms_listing_timeout
    assert primary.decoder.max_points_per_field == settings.max_points_per_field
    assert secondary.label == "MRMS_VIEWER"
    assert tertiary.label == "NWS_API"
    assert len(tertiary.stations) == settings.nws_station_limit


def test_build_pipeline_keeps_station_lookups_off_the_shared_session(settings) -> None:
    primary, secondary, tertiary = build_pipeline(settings).strategies

    assert primary.session is secondary.session
    assert tertiary._session is None
