from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from radar_app.config import Settings
from radar_app.services.snapshot_store import SnapshotStore


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> _Clock:
    return _Clock(datetime(2026, 1, 24, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        sqlite_path=str(tmp_path / "radar.db"),
        scheduler_enabled=False,
        nws_max_workers=2,
    )


@pytest.fixture
def store(tmp_path: Path, clock: _Clock):
    snapshot_store = SnapshotStore(f"sqlite:///{tmp_path / 'radar.db'}", clock=clock)
    snapshot_store.init_schema()
    yield snapshot_store
    snapshot_store.close()
