from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from radar_app.models.radar import CONUS_BOUNDS, PointSource, RadarPoint, Snapshot
from radar_app.services.snapshot_store import SnapshotStore, StoreNotReadyError


def _snapshot(timestamp: datetime, coords, label: str = "MRMS_NCEP") -> Snapshot:
    points = [
        RadarPoint(latitude=lat, longitude=lon, reflectivity=dbz, source=PointSource.DECODED_GRID)
        for lat, lon, dbz in coords
    ]
    return Snapshot.create(points, source_label=label, timestamp=timestamp)


T0 = datetime(2026, 1, 24, 12, 0, tzinfo=timezone.utc)


def test_empty_store_has_no_latest(store: SnapshotStore) -> None:
    assert store.get_latest() is None
    assert store.get_latest_metadata() is None
    stats = store.get_stats()
    assert (stats.total_points, stats.total_timestamps, stats.latest_timestamp) == (0, 0, None)


def test_latest_returns_only_newest_snapshot(store: SnapshotStore) -> None:
    store.store_snapshot(_snapshot(T0, [(35.0, -97.0, 15.0), (36.0, -98.0, 45.0)]))
    store.store_snapshot(_snapshot(T0 + timedelta(minutes=5), [(40.0, -90.0, 25.0)], label="SYNTHETIC"))

    latest = store.get_latest()

    assert latest is not None
    assert latest.timestamp == T0 + timedelta(minutes=5)
    assert latest.timestamp.tzinfo is not None
    assert [(p.lat, p.lon, p.reflectivity, p.precipitation, p.color) for p in latest.points] == [
        (40.0, -90.0, 25.0, "moderate", "#ffff00")
    ]


def test_metadata_records_source_and_bounds(store: SnapshotStore) -> None:
    store.store_snapshot(_snapshot(T0, [(35.0, -97.0, 15.0)], label="NWS_API"))

    metadata = store.get_latest_metadata()

    assert metadata is not None
    assert metadata.source == "NWS_API"
    assert metadata.total_points == 1
    assert metadata.bounds == CONUS_BOUNDS
    assert metadata.timestamp == T0


def test_empty_snapshot_still_records_metadata(store: SnapshotStore) -> None:
    store.store_snapshot(_snapshot(T0, []))

    assert store.get_latest() is None
    assert store.get_latest_metadata().total_points == 0


def test_points_in_bounds_is_inclusive_and_filters_by_timestamp(store: SnapshotStore) -> None:
    store.store_snapshot(_snapshot(T0, [(30.0, -100.0, 20.0), (45.0, -80.0, 20.0)]))
    store.store_snapshot(_snapshot(T0 + timedelta(minutes=5), [(30.0, -100.0, 35.0)]))

    everything = store.get_points_in_bounds(30.0, 35.0, -100.0, -95.0)
    first_only = store.get_points_in_bounds(30.0, 35.0, -100.0, -95.0, timestamp=T0)

    assert [p.reflectivity for p in everything] == [35.0, 20.0]
    assert [p.reflectivity for p in first_only] == [20.0]


def test_stats_count_points_and_snapshots(store: SnapshotStore) -> None:
    store.store_snapshot(_snapshot(T0, [(35.0, -97.0, 15.0), (36.0, -98.0, 45.0)]))
    store.store_snapshot(_snapshot(T0 + timedelta(minutes=5), [(40.0, -90.0, 25.0)]))

    stats = store.get_stats()

    assert stats.total_points == 3
    assert stats.total_timestamps == 2
    assert stats.latest_timestamp == T0 + timedelta(minutes=5)
    assert stats.to_dict()["latestTimestamp"] == "2026-01-24T12:05:00+00:00"


def test_cleanup_removes_rows_older_than_retention(store: SnapshotStore, clock) -> None:
    store.store_snapshot(_snapshot(T0, [(35.0, -97.0, 15.0), (36.0, -98.0, 45.0)]))
    clock.advance(hours=30)
    store.store_snapshot(_snapshot(T0 + timedelta(hours=30), [(40.0, -90.0, 25.0)]))

    deleted = store.cleanup_old_data(24)

    assert deleted == {"points": 2, "snapshots": 1}
    assert store.get_stats().total_points == 1
    assert store.get_latest().timestamp == T0 + timedelta(hours=30)


def test_store_requires_schema(tmp_path: Path) -> None:
    fresh = SnapshotStore(f"sqlite:///{tmp_path / 'nested' / 'radar.db'}")
    try:
        assert not fresh.ready
        with pytest.raises(StoreNotReadyError):
            fresh.get_latest()
        fresh.init_schema()
        assert fresh.ready
        assert (tmp_path / "nested" / "radar.db").exists()
    finally:
        fresh.close()


def test_naive_timestamps_are_treated_as_utc(store: SnapshotStore) -> None:
    store.store_snapshot(_snapshot(datetime(2026, 1, 24, 6, 0), [(35.0, -97.0, 15.0)]))

    assert store.get_latest().timestamp == datetime(2026, 1, 24, 6, 0, tzinfo=timezone.utc)
