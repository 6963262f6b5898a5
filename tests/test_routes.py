from __future__ import annotations

from datetime import timedelta
from typing import List

import pytest
from fastapi.testclient import TestClient

from radar_app.main import create_app
from radar_app.models.radar import PointSource, RadarPoint, Snapshot
from radar_app.services.pipeline import AcquisitionResult, SourceAttempt


class _FakePipeline:
    def __init__(self, points: List[RadarPoint], label: str = "MRMS_NCEP") -> None:
        self.points = points
        self.label = label

    def acquire(self) -> AcquisitionResult:
        return AcquisitionResult(
            points=list(self.points),
            source_label=self.label,
            attempts=(
                SourceAttempt(source="MRMS_NCEP", error="timeout (read timed out)"),
                SourceAttempt(source=self.label, point_count=len(self.points)),
            ),
        )


def _points() -> List[RadarPoint]:
    return [
        RadarPoint(latitude=35.0, longitude=-97.0, reflectivity=15.0, source=PointSource.DERIVED_STATION),
        RadarPoint(latitude=40.0, longitude=-90.0, reflectivity=42.0, source=PointSource.DERIVED_STATION),
    ]


@pytest.fixture
def client(settings, store):
    app = create_app(settings, store=store, pipeline=_FakePipeline(_points(), label="NWS_API"), start_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client


def test_routes_are_mounted_under_api_prefix(settings) -> None:
    app = create_app(settings, start_scheduler=False)
    paths = {route.path for route in app.routes}

    assert "/api/radar/latest" in paths
    assert "/api/radar/status" in paths
    assert "/api/radar/bounds" in paths
    assert "/api/radar/refresh" in paths
    assert "/health" in paths
    assert "/" in paths
    assert settings.docs_url in paths


def test_endpoints_return_503_before_database_ready(settings) -> None:
    app = create_app(settings, start_scheduler=False)
    client = TestClient(app)  # lifespan not started

    assert client.get("/api/radar/latest").status_code == 503
    assert client.get("/api/radar/status").status_code == 503
    assert client.get("/api/radar/bounds", params={"minLat": 1, "maxLat": 2, "minLon": 3, "maxLon": 4}).status_code == 503
    assert client.get("/health").json()["database"] == "not initialized"


def test_latest_is_404_when_no_snapshot(client: TestClient) -> None:
    response = client.get("/api/radar/latest")

    assert response.status_code == 404
    assert response.json()["detail"] == "No radar data available"


def test_latest_returns_geojson_feature_collection(client: TestClient, store, clock) -> None:
    store.store_snapshot(Snapshot.create(_points(), source_label="NWS_API", timestamp=clock.now))

    body = client.get("/api/radar/latest").json()

    assert body["type"] == "FeatureCollection"
    assert body["metadata"] == {"timestamp": "2026-01-24T12:00:00Z", "totalPoints": 2}
    features = sorted(body["features"], key=lambda f: f["properties"]["reflectivity"])
    assert features[0] == {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [-97.0, 35.0]},
        "properties": {"reflectivity": 15.0, "precipitation": "light", "color": "#00ff00"},
    }
    assert features[1]["properties"] == {"reflectivity": 42.0, "precipitation": "extreme", "color": "#ff0000"}


def test_status_reports_stats_and_source(client: TestClient, store, clock) -> None:
    empty = client.get("/api/radar/status").json()
    assert empty["dataAvailable"] is False
    assert empty["lastUpdate"] is None

    store.store_snapshot(Snapshot.create(_points(), source_label="SYNTHETIC", timestamp=clock.now))
    body = client.get("/api/radar/status").json()

    assert body["status"] == "running"
    assert body["database"] == "connected"
    assert body["dataAvailable"] is True
    assert body["lastUpdate"] == "2026-01-24T12:00:00Z"
    assert body["source"] == "SYNTHETIC"
    assert body["stats"]["totalPoints"] == 2
    assert body["stats"]["totalTimestamps"] == 1


def test_bounds_requires_all_four_parameters(client: TestClient) -> None:
    response = client.get("/api/radar/bounds", params={"minLat": 24, "maxLat": 49, "minLon": -125})

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing required bounds parameters"


def test_bounds_filters_points_and_timestamp(client: TestClient, store, clock) -> None:
    store.store_snapshot(Snapshot.create(_points(), source_label="NWS_API", timestamp=clock.now))
    later = clock.now + timedelta(minutes=5)
    store.store_snapshot(Snapshot.create(_points()[:1], source_label="NWS_API", timestamp=later))
    box = {"minLat": 30, "maxLat": 36, "minLon": -100, "maxLon": -95}

    all_times = client.get("/api/radar/bounds", params=box).json()
    first = client.get("/api/radar/bounds", params={**box, "timestamp": "2026-01-24T12:00:00Z"}).json()

    assert all_times["type"] == "FeatureCollection"
    assert len(all_times["features"]) == 2
    assert "metadata" not in all_times
    assert len(first["features"]) == 1


def test_bounds_rejects_bad_timestamp(client: TestClient) -> None:
    params = {"minLat": 30, "maxLat": 36, "minLon": -100, "maxLon": -95, "timestamp": "yesterday"}

    assert client.get("/api/radar/bounds", params=params).status_code == 400


def test_refresh_runs_one_cycle(client: TestClient) -> None:
    response = client.post("/api/radar/refresh")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "updated"
    assert body["source"] == "NWS_API"
    assert body["totalPoints"] == 2
    assert body["attempts"][0] == {"source": "MRMS_NCEP", "pointCount": 0, "error": "timeout (read timed out)"}

    latest = client.get("/api/radar/latest").json()
    assert latest["metadata"]["totalPoints"] == 2


def test_refresh_conflicts_with_running_cycle(client: TestClient) -> None:
    radar_scheduler = client.app.state.radar_scheduler
    radar_scheduler._cycle_lock.acquire()
    try:
        response = client.post("/api/radar/refresh")
    finally:
        radar_scheduler._cycle_lock.release()

    assert response.status_code == 409


def test_root_and_health(client: TestClient) -> None:
    root = client.get("/").json()
    assert root["status"] == "operational"
    assert root["docs"] == "/api-docs"

    assert client.get("/health").json() == {"status": "healthy", "database": "connected"}
