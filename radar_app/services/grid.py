from __future__ import annotations

import logging
from typing import NamedTuple, Optional

import numpy as np
import xarray as xr

logger = logging.getLogger(__name__)

# cfgrib names MRMS local-table parameters "unknown"
UNKNOWN_VAR_NAMES = {"unknown", "paramId_0"}

DEFAULT_MAX_POINTS_PER_FIELD = 1000


class GridField(NamedTuple):
    """Parallel flat arrays for one named field"""
    name: str
    values: np.ndarray
    latitudes: np.ndarray
    longitudes: np.ndarray
    # Cell count of the source grid when the arrays are already a strided sample
    sample_count: Optional[int] = None

    @property
    def grid_size(self) -> int:
        return self.sample_count if self.sample_count is not None else int(self.values.size)


def thinning_stride(value_count: int, max_points: int = DEFAULT_MAX_POINTS_PER_FIELD) -> int:
    return max(1, value_count // max_points)


def detect_latlon_names(ds_or_da: xr.Dataset | xr.DataArray) -> tuple[str, str]:
    coords = ds_or_da.coords
    if "latitude" in coords and "longitude" in coords:
        return "latitude", "longitude"
    if "lat" in coords and "lon" in coords:
        return "lat", "lon"
    raise ValueError("Latitude/longitude coordinates not found in dataset")


def wrap_longitudes(lon_array: np.ndarray) -> np.ndarray:
    return ((lon_array + 180.0) % 360.0) - 180.0


def flatten_dataarray(
    da: xr.DataArray, name: str, max_points: Optional[int] = None
) -> GridField:
    """
    Flatten a lat/lon gridded DataArray into parallel value/lat/lon arrays.

    With ``max_points`` only every ``thinning_stride``-th cell (row-major) is
    taken. Coordinates are looked up for the sampled cells alone, so 1-D
    latitude/longitude axes are never expanded into a full mesh.
    """
    lat_name, lon_name = detect_latlon_names(da)
    lat = np.asarray(da.coords[lat_name].values)
    lon = np.asarray(da.coords[lon_name].values)
    axes_1d = lat.ndim == 1 and lon.ndim == 1

    if axes_1d:
        grid_shape = (lat.size, lon.size)
    elif lat.shape == lon.shape:
        grid_shape = lat.shape
    else:
        raise ValueError(f"Latitude shape {lat.shape} does not match longitude shape {lon.shape}")

    values = np.asarray(da.values).squeeze()
    grid_size = int(np.prod(grid_shape))
    if values.size != grid_size:
        raise ValueError(
            f"Values shape {values.shape} does not match lat/lon grid {grid_shape}"
        )

    stride = thinning_stride(grid_size, max_points) if max_points else 1
    idx = np.arange(0, grid_size, stride)

    if axes_1d:
        sample_lat = lat[idx // lon.size]
        sample_lon = lon[idx % lon.size]
    else:
        sample_lat = lat.reshape(-1)[idx]
        sample_lon = lon.reshape(-1)[idx]

    return GridField(
        name=name,
        values=values.reshape(-1)[idx].astype(float),
        latitudes=sample_lat.astype(float),
        longitudes=wrap_longitudes(sample_lon.astype(float)),
        sample_count=grid_size if max_points else None,
    )


def dataset_to_fields(
    ds: xr.Dataset,
    name_hint: str | None = None,
    max_points: Optional[int] = None,
) -> list[GridField]:
    """
    Convert every gridded data variable in ``ds`` to a GridField.

    Variables without lat/lon coordinates, or whose shape does not line up
    with them, are skipped. ``name_hint`` replaces cfgrib's placeholder
    variable names (MRMS products decode as "unknown"). ``max_points``
    is passed through to ``flatten_dataarray``.
    """
    fields: list[GridField] = []
    for var_name, da in ds.data_vars.items():
        name = str(var_name)
        if name in UNKNOWN_VAR_NAMES and name_hint:
            name = name_hint
        try:
            fields.append(flatten_dataarray(da, name, max_points=max_points))
        except ValueError as exc:
            logger.warning("Skipping GRIB variable %s: %s", var_name, exc)
    return fields
