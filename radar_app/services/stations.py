"""
NEXRAD radar sites used for station-derived estimates and synthetic patterns.

Stations are listed in lookup priority order; the per-station fetcher only
queries the first few.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class RadarStation:
    id: str
    name: str
    lat: float
    lon: float


# Southern Plains / Gulf Coast WSR-88D sites
RADAR_STATIONS: Tuple[RadarStation, ...] = (
    RadarStation('KTLX', 'Oklahoma City', 35.3, -97.3),
    RadarStation('KDFX', 'Laughlin AFB', 29.3, -100.3),
    RadarStation('KEWX', 'San Antonio', 29.7, -98.0),
    RadarStation('KFWS', 'Fort Worth', 32.6, -97.3),
    RadarStation('KGRK', 'Fort Hood', 31.2, -97.1),
    RadarStation('KSHV', 'Shreveport', 32.4, -93.8),
    RadarStation('KLZK', 'Little Rock', 34.8, -92.3),
    RadarStation('KPOE', 'Fort Polk', 31.2, -93.2),
    RadarStation('KLCH', 'Lake Charles', 30.1, -93.2),
    RadarStation('KLIX', 'New Orleans', 30.3, -89.8),
)


def get_radar_stations(limit: Optional[int] = None) -> List[RadarStation]:
    """
    Get radar stations in priority order.

    Args:
        limit: Maximum number of stations to return (None = all)

    Returns:
        List of stations
    """
    stations = list(RADAR_STATIONS)
    if limit is not None:
        stations = stations[:max(0, limit)]
    return stations
