"""API routes"""
from datetime import datetime, timezone
from typing import Iterable, Optional
import logging

from fastapi import APIRouter, HTTPException, Query, Request

from radar_app.models.schemas import (
    AttemptInfo,
    PointGeometry,
    RadarFeature,
    RadarFeatureCollection,
    RadarMetadata,
    RadarProperties,
    RefreshResponse,
    StatsInfo,
    StatusResponse,
)
from radar_app.scheduler import CycleInProgressError, RadarScheduler
from radar_app.services.snapshot_store import SnapshotStore, StoredPoint

router = APIRouter()
logger = logging.getLogger(__name__)


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """
    Format a UTC datetime for API output.
    Example: datetime(2026, 1, 24, 0, 5, tzinfo=utc) -> "2026-01-24T00:05:00Z"
    """
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.isoformat() + "Z"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO timestamp; a trailing Z and a missing offset both mean UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _features(points: Iterable[StoredPoint]):
    return [
        RadarFeature(
            geometry=PointGeometry(coordinates=(point.lon, point.lat)),
            properties=RadarProperties(
                reflectivity=point.reflectivity,
                precipitation=point.precipitation,
                color=point.color,
            ),
        )
        for point in points
    ]


def get_ready_store(request: Request) -> SnapshotStore:
    store: Optional[SnapshotStore] = getattr(request.app.state, "store", None)
    if store is None or not store.ready:
        raise HTTPException(status_code=503, detail="Database not initialized")
    return store


@router.get("/radar/latest", response_model=RadarFeatureCollection)
def get_latest_radar(request: Request):
    """
    Get the most recent radar snapshot as a GeoJSON FeatureCollection.

    Raises:
        503: Database not initialized
        404: No snapshot stored yet
    """
    store = get_ready_store(request)
    latest = store.get_latest()
    if latest is None:
        raise HTTPException(status_code=404, detail="No radar data available")

    return RadarFeatureCollection(
        features=_features(latest.points),
        metadata=RadarMetadata(
            timestamp=format_timestamp(latest.timestamp),
            totalPoints=len(latest.points),
        ),
    )


@router.get("/radar/status", response_model=StatusResponse)
def get_status(request: Request):
    """Server status, database state and snapshot statistics."""
    store = get_ready_store(request)
    stats = store.get_stats()
    metadata = store.get_latest_metadata()

    return StatusResponse(
        status="running",
        database="connected",
        lastUpdate=format_timestamp(stats.latest_timestamp),
        dataAvailable=stats.latest_timestamp is not None,
        source=metadata.source if metadata else None,
        stats=StatsInfo(
            totalPoints=stats.total_points,
            totalTimestamps=stats.total_timestamps,
            latestTimestamp=format_timestamp(stats.latest_timestamp),
        ),
    )


@router.get("/radar/bounds", response_model=RadarFeatureCollection, response_model_exclude_none=True)
def get_radar_in_bounds(
    request: Request,
    minLat: Optional[float] = Query(None, description="Minimum latitude", examples=[24.0]),
    maxLat: Optional[float] = Query(None, description="Maximum latitude", examples=[49.0]),
    minLon: Optional[float] = Query(None, description="Minimum longitude", examples=[-125.0]),
    maxLon: Optional[float] = Query(None, description="Maximum longitude", examples=[-66.0]),
    timestamp: Optional[str] = Query(None, description="Snapshot timestamp (ISO format)"),
):
    """
    Get radar points inside a lat/lon box, optionally for one snapshot.

    Raises:
        400: A bound is missing or the timestamp is not ISO formatted
        503: Database not initialized
    """
    if None in (minLat, maxLat, minLon, maxLon):
        raise HTTPException(status_code=400, detail="Missing required bounds parameters")

    snapshot_time = None
    if timestamp:
        try:
            snapshot_time = parse_timestamp(timestamp)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid timestamp: {timestamp}")

    store = get_ready_store(request)
    points = store.get_points_in_bounds(minLat, maxLat, minLon, maxLon, timestamp=snapshot_time)
    return RadarFeatureCollection(features=_features(points))


@router.post("/radar/refresh", response_model=RefreshResponse)
def refresh_radar(request: Request):
    """
    Run one acquisition cycle now and store the result.

    Raises:
        409: A cycle is already running
        503: Database not initialized or refresh unavailable
    """
    get_ready_store(request)
    scheduler: Optional[RadarScheduler] = getattr(request.app.state, "radar_scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Radar refresh not available")

    try:
        result = scheduler.refresh()
    except CycleInProgressError:
        raise HTTPException(status_code=409, detail="Radar update already in progress")

    snapshot = result.snapshot
    return RefreshResponse(
        status="updated",
        source=snapshot.source_label,
        totalPoints=snapshot.total_points,
        timestamp=format_timestamp(snapshot.timestamp),
        attempts=[
            AttemptInfo(source=a.source, pointCount=a.point_count, error=a.error)
            for a in result.acquisition.attempts
        ],
    )
