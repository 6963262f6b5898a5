"""Reflectivity (dBZ) to precipitation category and display color"""
from bisect import bisect_right
from typing import Dict, NamedTuple, Tuple

from radar_app.models.radar import ClassificationPolicy, Precipitation


class Classification(NamedTuple):
    precipitation: Precipitation
    color: str


class _ThresholdTable(NamedTuple):
    # Lower bounds (inclusive) of every band after the first
    breakpoints: Tuple[float, ...]
    bands: Tuple[Classification, ...]


_TABLES: Dict[ClassificationPolicy, _ThresholdTable] = {
    ClassificationPolicy.STANDARD: _ThresholdTable(
        breakpoints=(10.0, 20.0, 30.0, 40.0, 50.0),
        bands=(
            Classification(Precipitation.NONE, "#ffffff"),
            Classification(Precipitation.LIGHT, "#00ff00"),
            Classification(Precipitation.MODERATE, "#ffff00"),
            Classification(Precipitation.HEAVY, "#ff8000"),
            Classification(Precipitation.EXTREME, "#ff0000"),
            Classification(Precipitation.EXTREME, "#800080"),
        ),
    ),
    ClassificationPolicy.COARSE: _ThresholdTable(
        breakpoints=(20.0, 35.0, 45.0),
        bands=(
            Classification(Precipitation.LIGHT, "#00ff00"),
            Classification(Precipitation.MODERATE, "#ffff00"),
            Classification(Precipitation.HEAVY, "#ff8000"),
            Classification(Precipitation.EXTREME, "#ff0000"),
        ),
    ),
}


def classify(
    reflectivity: float,
    policy: ClassificationPolicy = ClassificationPolicy.STANDARD,
) -> Classification:
    """
    Map a reflectivity value onto its band under the given policy.

    Bands are half-open: 20.0 is moderate, 19.99 is light.
    """
    table = _TABLES[ClassificationPolicy(policy)]
    return table.bands[bisect_right(table.breakpoints, reflectivity)]
