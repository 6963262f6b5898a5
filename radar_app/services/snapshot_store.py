"""
Persistent snapshot storage.

Two tables: ``radar_data`` (one row per point, tagged with the snapshot
timestamp) and ``radar_metadata`` (one row per snapshot). SQLite by
default; any SQLAlchemy URL works, PostgreSQL in production.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional
import json
import logging

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.engine import Engine, make_url

from radar_app.models.radar import Bounds, Snapshot

logger = logging.getLogger(__name__)

metadata = MetaData()

radar_data = Table(
    "radar_data",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("timestamp", DateTime, nullable=False),
    Column("lat", Float, nullable=False),
    Column("lon", Float, nullable=False),
    Column("reflectivity", Float, nullable=False),
    Column("precipitation", String(20), nullable=False),
    Column("color", String(7), nullable=False),
    Column("created_at", DateTime, nullable=False),
    Index("idx_radar_timestamp", "timestamp"),
    Index("idx_radar_location", "lat", "lon"),
)

radar_metadata = Table(
    "radar_metadata",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("timestamp", DateTime, nullable=False),
    Column("source_file", String(255)),
    Column("total_points", Integer, nullable=False),
    Column("bounds_json", Text),
    Column("created_at", DateTime, nullable=False),
    Index("idx_metadata_timestamp", "timestamp"),
)


class StoreNotReadyError(RuntimeError):
    """The store was used before ``init_schema()`` succeeded."""


@dataclass(frozen=True)
class StoredPoint:
    lat: float
    lon: float
    reflectivity: float
    precipitation: str
    color: str


@dataclass(frozen=True)
class StoredSnapshot:
    timestamp: datetime
    points: List[StoredPoint]


@dataclass(frozen=True)
class SnapshotMetadata:
    timestamp: datetime
    source: Optional[str]
    total_points: int
    bounds: Optional[Bounds]


@dataclass(frozen=True)
class StoreStats:
    total_points: int
    total_timestamps: int
    latest_timestamp: Optional[datetime]

    def to_dict(self) -> Dict[str, object]:
        return {
            "totalPoints": self.total_points,
            "totalTimestamps": self.total_timestamps,
            "latestTimestamp": self.latest_timestamp.isoformat() if self.latest_timestamp else None,
        }


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_db_time(value: datetime) -> datetime:
    """Naive UTC, which every backend stores the same way."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        # SQLite aggregates come back as text
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row_to_point(row) -> StoredPoint:
    return StoredPoint(
        lat=float(row.lat),
        lon=float(row.lon),
        reflectivity=float(row.reflectivity),
        precipitation=row.precipitation,
        color=row.color,
    )


class SnapshotStore:
    """Snapshot persistence on SQLAlchemy Core"""

    def __init__(self, url: str, clock: Optional[Callable[[], datetime]] = None):
        self.url = url
        self._clock = clock or _utc_now
        self._engine: Engine = self._create_engine(url)
        self.ready = False

    @staticmethod
    def _create_engine(url: str) -> Engine:
        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite":
            database = parsed.database
            if database and database != ":memory:":
                Path(database).parent.mkdir(parents=True, exist_ok=True)
            # Scheduler and API threads share the engine
            return create_engine(url, connect_args={"check_same_thread": False})
        return create_engine(url, pool_pre_ping=True)

    @property
    def backend(self) -> str:
        return self._engine.dialect.name

    def init_schema(self) -> None:
        """Create tables and indexes if missing."""
        metadata.create_all(self._engine)
        self.ready = True
        logger.info("Radar database ready (%s)", self.backend)

    def _require_ready(self) -> None:
        if not self.ready:
            raise StoreNotReadyError("database not initialized")

    def store_snapshot(self, snapshot: Snapshot) -> None:
        """Write every point plus the metadata row in one transaction."""
        self._require_ready()
        timestamp = _to_db_time(snapshot.timestamp)
        created_at = _to_db_time(self._clock())

        rows = [
            {
                "timestamp": timestamp,
                "lat": point.latitude,
                "lon": point.longitude,
                "reflectivity": point.reflectivity,
                "precipitation": point.precipitation.value,
                "color": point.color,
                "created_at": created_at,
            }
            for point in snapshot.points
        ]

        with self._engine.begin() as conn:
            if rows:
                conn.execute(radar_data.insert(), rows)
            conn.execute(
                radar_metadata.insert().values(
                    timestamp=timestamp,
                    source_file=snapshot.source_label,
                    total_points=snapshot.total_points,
                    bounds_json=json.dumps(snapshot.bounds.to_dict()),
                    created_at=created_at,
                )
            )
        logger.info("Stored %d radar points for %s", len(rows), snapshot.timestamp.isoformat())

    def get_latest(self) -> Optional[StoredSnapshot]:
        """Points of the newest snapshot, or None when nothing is stored."""
        self._require_ready()
        latest = select(func.max(radar_data.c.timestamp)).scalar_subquery()
        query = (
            select(radar_data)
            .where(radar_data.c.timestamp == latest)
            .order_by(radar_data.c.created_at.desc(), radar_data.c.id.desc())
        )
        with self._engine.connect() as conn:
            rows = conn.execute(query).all()

        if not rows:
            return None
        return StoredSnapshot(
            timestamp=_from_db_time(rows[0].timestamp),
            points=[_row_to_point(row) for row in rows],
        )

    def get_points_in_bounds(
        self,
        min_lat: float,
        max_lat: float,
        min_lon: float,
        max_lon: float,
        timestamp: Optional[datetime] = None,
    ) -> List[StoredPoint]:
        """Inclusive box query across all snapshots, or one when ``timestamp`` is given."""
        self._require_ready()
        query = select(radar_data).where(
            radar_data.c.lat.between(min_lat, max_lat),
            radar_data.c.lon.between(min_lon, max_lon),
        )
        if timestamp is not None:
            query = query.where(radar_data.c.timestamp == _to_db_time(timestamp))
        query = query.order_by(radar_data.c.created_at.desc(), radar_data.c.id.desc())

        with self._engine.connect() as conn:
            return [_row_to_point(row) for row in conn.execute(query)]

    def get_latest_metadata(self) -> Optional[SnapshotMetadata]:
        self._require_ready()
        query = select(radar_metadata).order_by(
            radar_metadata.c.timestamp.desc(), radar_metadata.c.id.desc()
        ).limit(1)
        with self._engine.connect() as conn:
            row = conn.execute(query).first()
        if row is None:
            return None

        bounds = None
        if row.bounds_json:
            try:
                bounds = Bounds.from_dict(json.loads(row.bounds_json))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("Unreadable bounds in radar_metadata row %s: %s", row.id, e)
        return SnapshotMetadata(
            timestamp=_from_db_time(row.timestamp),
            source=row.source_file,
            total_points=row.total_points,
            bounds=bounds,
        )

    def get_stats(self) -> StoreStats:
        self._require_ready()
        query = select(
            func.count(radar_data.c.id),
            func.count(func.distinct(radar_data.c.timestamp)),
            func.max(radar_data.c.timestamp),
        )
        with self._engine.connect() as conn:
            total_points, total_timestamps, latest = conn.execute(query).one()
        return StoreStats(
            total_points=int(total_points or 0),
            total_timestamps=int(total_timestamps or 0),
            latest_timestamp=_from_db_time(latest),
        )

    def cleanup_old_data(self, hours_to_keep: int) -> Dict[str, int]:
        """Delete rows created before the retention window; returns deleted row counts."""
        self._require_ready()
        cutoff = _to_db_time(self._clock() - timedelta(hours=hours_to_keep))
        with self._engine.begin() as conn:
            points = conn.execute(delete(radar_data).where(radar_data.c.created_at < cutoff)).rowcount
            snapshots = conn.execute(
                delete(radar_metadata).where(radar_metadata.c.created_at < cutoff)
            ).rowcount
        logger.info(
            "Cleaned up data older than %d hours (%d points, %d snapshots)",
            hours_to_keep, points, snapshots,
        )
        return {"points": points, "snapshots": snapshots}

    def close(self) -> None:
        self._engine.dispose()
        self.ready = False
