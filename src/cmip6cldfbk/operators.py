"""
Array operators on gridded fields.

Fields are xarray DataArrays with `lat`/`lon` dimensions in degrees, optionally
with a leading `model` record axis. All operators return new arrays.
"""

import numpy as np
import xarray as xr

from cmip6cldfbk.dataset import RECORD_DIM


def subtract(a: xr.DataArray, b: xr.DataArray) -> xr.DataArray:
    # join="exact" turns a grid mismatch into an error instead of an inner join
    with xr.set_options(arithmetic_join="exact"):
        return a - b


def multiply(a: xr.DataArray, b: xr.DataArray) -> xr.DataArray:
    with xr.set_options(arithmetic_join="exact"):
        return a * b


def to_climatology(da: xr.DataArray) -> xr.DataArray:
    """Collapse a time axis, squeezing it when it holds a single time-mean record."""
    if "time" not in da.dims:
        return da
    if da.sizes["time"] == 1:
        return da.squeeze("time", drop=True)
    return da.mean(dim="time", keep_attrs=True)


def select_box(
    da: xr.DataArray,
    lat_bounds: tuple[float, float] | None = None,
    lon_bounds: tuple[float, float] | None = None,
) -> xr.DataArray:
    """Subset to an inclusive lat/lon box. None keeps the full extent."""
    if lat_bounds is not None:
        south, north = lat_bounds
        da = da.sel(lat=da.lat[(da.lat >= south) & (da.lat <= north)])
    if lon_bounds is not None:
        west, east = lon_bounds
        da = da.sel(lon=da.lon[(da.lon >= west) & (da.lon <= east)])
    return da


def area_weights(lat: xr.DataArray) -> xr.DataArray:
    return np.cos(np.deg2rad(lat))


def field_mean(
    da: xr.DataArray,
    lat_bounds: tuple[float, float] | None = None,
    lon_bounds: tuple[float, float] | None = None,
) -> xr.DataArray:
    """
    Area-weighted spatial mean, optionally restricted to a lat/lon box.

    Missing cells are skipped, so the mean covers valid cells only. The record
    axis, if any, is kept.
    """
    region = select_box(da, lat_bounds, lon_bounds)
    if region.sizes["lat"] == 0 or region.sizes["lon"] == 0:
        raise ValueError(f"Box lat={lat_bounds}, lon={lon_bounds} contains no grid cells")
    return region.weighted(area_weights(region.lat)).mean(dim=("lat", "lon"))


def zonal_mean(da: xr.DataArray) -> xr.DataArray:
    return da.mean(dim="lon", keep_attrs=True)


def ensemble_mean(da: xr.DataArray, dim: str = RECORD_DIM) -> xr.DataArray:
    return da.mean(dim=dim, keep_attrs=True)


def ensemble_std(da: xr.DataArray, dim: str = RECORD_DIM) -> xr.DataArray:
    """Population (divisor n) standard deviation across the record axis."""
    return da.std(dim=dim, ddof=0, keep_attrs=True)


def broadcast_to(da: xr.DataArray, like: xr.DataArray) -> xr.DataArray:
    """Enlarge a reduced field (e.g. one value per model) to the shape of another."""
    return da.broadcast_like(like)


def target_grid(nlon: int = 144, nlat: int = 90) -> tuple[np.ndarray, np.ndarray]:
    """
    Cell centers of a regular global lon/lat grid.

    For the default 144x90 grid: lon = 0, 2.5, ..., 357.5 and lat = -89, -87, ..., 89.
    """
    dlon = 360.0 / nlon
    dlat = 180.0 / nlat
    lon = np.arange(nlon) * dlon
    lat = -90.0 + dlat / 2 + np.arange(nlat) * dlat
    return lon, lat


def regrid_bilinear(da: xr.DataArray, nlon: int = 144, nlat: int = 90) -> xr.DataArray:
    """
    Bilinear interpolation of a rectilinear global field onto a regular grid.

    Longitude is treated as periodic. Target latitudes poleward of the
    outermost source rows are linearly extrapolated.
    """
    lon, lat = target_grid(nlon, nlat)

    src = da.assign_coords(lon=da.lon % 360).sortby("lon").sortby("lat")
    # a source grid holding both 0 and 360 maps them onto one column
    src = src.drop_duplicates("lon")
    # one wrapped column on each side so 357.5 interpolates across the seam
    west = src.isel(lon=[-1]).assign_coords(lon=src.lon.values[-1:] - 360.0)
    east = src.isel(lon=[0]).assign_coords(lon=src.lon.values[:1] + 360.0)
    wrapped = xr.concat([west, src, east], dim="lon")

    out = wrapped.interp(lon=lon, method="linear")
    out = out.interp(lat=lat, method="linear", kwargs={"fill_value": "extrapolate"})
    out.attrs = da.attrs.copy()
    out.lat.attrs.update({"units": "degrees_north", "standard_name": "latitude"})
    out.lon.attrs.update({"units": "degrees_east", "standard_name": "longitude"})
    return out


def threshold_mask(da: xr.DataArray, threshold: float) -> xr.DataArray:
    """1 where the field exceeds the threshold, 0 where it does not, NaN where missing."""
    mask = xr.where(da > threshold, 1.0, 0.0)
    return mask.where(da.notnull())


def select_where(mask: xr.DataArray, da: xr.DataArray) -> xr.DataArray:
    """Keep values where the mask is 1."""
    return da.where(mask == 1)


def select_where_not(mask: xr.DataArray, da: xr.DataArray) -> xr.DataArray:
    """Keep values where the mask is 0. Missing mask cells are dropped here too."""
    return da.where(mask == 0)
