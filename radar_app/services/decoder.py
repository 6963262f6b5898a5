"""Compressed grid payload -> classified RadarPoints"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import zlib
from typing import Any, Callable, Iterable, List, Mapping, Optional

import numpy as np
import xarray as xr

from radar_app.models.radar import ClassificationPolicy, PointSource, RadarPoint
from radar_app.services.grid import (
    DEFAULT_MAX_POINTS_PER_FIELD,
    GridField,
    dataset_to_fields,
    thinning_stride,
    wrap_longitudes,
)
from radar_app.services.upstream import DecodeError

logger = logging.getLogger(__name__)

# zlib wbits that auto-detects gzip or zlib framing
_AUTO_HEADER_WBITS = 32 + zlib.MAX_WBITS

GRIB_MAGIC = b"GRIB"

# Non-reflectivity fields are scaled into the dBZ range and clamped
NON_DBZ_SCALE = 10.0
DBZ_CLAMP = (0.0, 70.0)


def is_reflectivity_field(field_name: str) -> bool:
    """Fields whose values are already dBZ (MRMS BREF_*, *REFL*)"""
    name = field_name.upper()
    return "BREF" in name or "REFL" in name


class FormatDecoder:
    """
    Decode a compressed gridded payload into a flat list of RadarPoints.

    Two payload layouts are understood once decompressed:

    * GRIB2 messages (detected by the ``GRIB`` magic), opened through
      xarray/cfgrib;
    * a JSON document mapping field names to ``values`` / ``latitudes`` /
      ``longitudes`` arrays (grib2json-style output).

    ``open_dataset`` is injectable so tests can stand in for cfgrib.
    """

    def __init__(
        self,
        max_points_per_field: int = DEFAULT_MAX_POINTS_PER_FIELD,
        open_dataset: Optional[Callable[..., Any]] = None,
    ):
        self.max_points_per_field = max_points_per_field
        self._open_dataset = open_dataset or xr.open_dataset

    def decode(self, raw: bytes, field_hint: Optional[str] = None) -> List[RadarPoint]:
        """
        Decompress, parse, thin and classify a payload.

        Args:
            raw: Payload bytes as downloaded
            field_hint: Product name used for GRIB variables cfgrib cannot name

        Raises:
            DecodeError: stage "decompress", "parse" or "missingFields"
        """
        data = self.decompress(raw)
        fields = self.parse_fields(data, field_hint=field_hint)
        return self.points_from_fields(fields)

    def decompress(self, raw: bytes) -> bytes:
        if raw[:4] == GRIB_MAGIC:
            # Uncompressed .grib2 listing entries are downloaded as-is
            return raw
        try:
            data = zlib.decompress(raw, _AUTO_HEADER_WBITS)
        except zlib.error as exc:
            raise DecodeError("decompress", f"payload is not gzip/zlib data: {exc}") from exc
        logger.debug(f"Decompressed {len(raw)} bytes to {len(data)} bytes")
        return data

    def parse_fields(self, data: bytes, field_hint: Optional[str] = None) -> List[GridField]:
        if data[:4] == GRIB_MAGIC:
            fields = self._parse_grib(data, field_hint)
        else:
            fields = self._parse_json(data)

        if not fields:
            raise DecodeError(
                "missingFields",
                "no field carries paired values/latitudes/longitudes arrays",
            )
        logger.info(f"Decoded fields: {[f.name for f in fields]}")
        return fields

    def _parse_grib(self, data: bytes, field_hint: Optional[str]) -> List[GridField]:
        # cfgrib only reads from a path
        handle = tempfile.NamedTemporaryFile(suffix=".grib2", delete=False)
        try:
            with handle:
                handle.write(data)
            try:
                ds = self._open_dataset(
                    handle.name,
                    engine="cfgrib",
                    backend_kwargs={"indexpath": ""},
                )
            except Exception as exc:
                raise DecodeError("parse", f"cfgrib could not open GRIB payload: {exc}") from exc
            try:
                # cfgrib reads lazily, so truncated messages surface here
                ds.load()
                return dataset_to_fields(
                    ds,
                    name_hint=field_hint,
                    max_points=self.max_points_per_field,
                )
            except Exception as exc:
                raise DecodeError("parse", f"could not read GRIB payload: {exc}") from exc
            finally:
                ds.close()
        finally:
            try:
                os.unlink(handle.name)
            except OSError:
                pass

    def _parse_json(self, data: bytes) -> List[GridField]:
        try:
            document = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DecodeError("parse", f"payload is neither GRIB nor a JSON field document: {exc}") from exc
        if not isinstance(document, Mapping):
            raise DecodeError("parse", f"expected a mapping of fields, got {type(document).__name__}")
        return fields_from_mapping(document)

    def points_from_fields(self, fields: Iterable[GridField]) -> List[RadarPoint]:
        points: List[RadarPoint] = []
        for grid_field in fields:
            field_points = self._field_to_points(grid_field)
            logger.info(f"  {grid_field.name}: {len(field_points)} points from {grid_field.grid_size} samples")
            points.extend(field_points)
        return points

    def _field_to_points(self, grid_field: GridField) -> List[RadarPoint]:
        if grid_field.sample_count is None:
            stride = thinning_stride(grid_field.values.size, self.max_points_per_field)
        else:
            # Already sampled while flattening the grid
            stride = 1

        values = grid_field.values[::stride]
        lats = grid_field.latitudes[::stride]
        lons = grid_field.longitudes[::stride]

        keep = np.isfinite(values) & (values >= 0) & np.isfinite(lats) & np.isfinite(lons)

        if is_reflectivity_field(grid_field.name):
            reflectivity = values
        else:
            reflectivity = np.clip(values * NON_DBZ_SCALE, *DBZ_CLAMP)

        return [
            RadarPoint(
                latitude=float(lats[i]),
                longitude=float(lons[i]),
                reflectivity=float(reflectivity[i]),
                source=PointSource.DECODED_GRID,
                origin_field=grid_field.name,
                policy=ClassificationPolicy.STANDARD,
            )
            for i in np.flatnonzero(keep)
        ]


def _as_float_array(raw: Any) -> Optional[np.ndarray]:
    if raw is None:
        return None
    try:
        # None entries become NaN and are dropped with the other invalid samples
        array = np.asarray(raw, dtype=float).ravel()
    except (TypeError, ValueError):
        return None
    return array


def fields_from_mapping(document: Mapping[str, Any]) -> List[GridField]:
    """
    Pick out the fields of a ``{name: {values, latitudes, longitudes}}`` document.

    A field missing any of the three arrays, or whose arrays differ in
    length, is skipped rather than failing the whole payload.
    """
    fields: List[GridField] = []
    for name, body in document.items():
        if not isinstance(body, Mapping):
            continue
        values = _as_float_array(body.get("values"))
        lats = _as_float_array(body.get("latitudes"))
        lons = _as_float_array(body.get("longitudes"))
        if values is None or lats is None or lons is None:
            logger.debug(f"Skipping field {name}: missing values/latitudes/longitudes")
            continue
        if not (values.size == lats.size == lons.size):
            logger.warning(
                f"Skipping field {name}: array lengths differ "
                f"(values={values.size}, latitudes={lats.size}, longitudes={lons.size})"
            )
            continue
        fields.append(GridField(str(name), values, lats, wrap_longitudes(lons)))
    return fields
