"""Pydantic schemas for API"""
from pydantic import BaseModel, Field
from typing import List, Literal, Optional, Tuple


class PointGeometry(BaseModel):
    """GeoJSON point, coordinates in (lon, lat) order"""
    type: Literal["Point"] = "Point"
    coordinates: Tuple[float, float]


class RadarProperties(BaseModel):
    reflectivity: float  # dBZ
    precipitation: str  # none, light, moderate, heavy, extreme
    color: str  # Hex color code


class RadarFeature(BaseModel):
    type: Literal["Feature"] = "Feature"
    geometry: PointGeometry
    properties: RadarProperties


class RadarMetadata(BaseModel):
    timestamp: str  # ISO format
    totalPoints: int


class RadarFeatureCollection(BaseModel):
    """Response for radar point endpoints"""
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: List[RadarFeature]
    metadata: Optional[RadarMetadata] = None


class StatsInfo(BaseModel):
    totalPoints: int
    totalTimestamps: int
    latestTimestamp: Optional[str] = None


class StatusResponse(BaseModel):
    """Response for status endpoint"""
    status: str
    database: str
    lastUpdate: Optional[str] = None
    dataAvailable: bool
    source: Optional[str] = None  # Label of the source that produced the latest snapshot
    stats: StatsInfo


class AttemptInfo(BaseModel):
    source: str
    pointCount: int = 0
    error: Optional[str] = None


class RefreshResponse(BaseModel):
    """Response for manual refresh trigger"""
    status: str
    source: Optional[str] = None
    totalPoints: int = 0
    timestamp: Optional[str] = None
    attempts: List[AttemptInfo] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    database: str


class RootResponse(BaseModel):
    name: str
    version: str
    status: str
    docs: Optional[str] = None
