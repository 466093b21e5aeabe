import os

import numpy as np
import pytest
import xarray as xr

from cmip6cldfbk.schema import climatology_filename

LAT = np.linspace(-87.5, 87.5, 36)
LON = np.arange(0.0, 360.0, 10.0)


def _make_field(value, lat=None, lon=None, name="field", units="W m-2") -> xr.DataArray:
    lat = LAT if lat is None else np.asarray(lat, dtype=float)
    lon = LON if lon is None else np.asarray(lon, dtype=float)
    if callable(value):
        lat2d, lon2d = np.meshgrid(lat, lon, indexing="ij")
        data = np.asarray(value(lat2d, lon2d), dtype=float)
    elif np.ndim(value) == 0:
        data = np.full((len(lat), len(lon)), float(value))
    else:
        data = np.asarray(value, dtype=float)
    return xr.DataArray(
        data,
        dims=("lat", "lon"),
        coords={"lat": lat, "lon": lon},
        name=name,
        attrs={"units": units},
    )


def _write_climatology(directory, variable, model, value, **kwargs) -> str:
    """Write a CMIP-style time-mean file with a single time record."""
    da = _make_field(value, name=variable, **kwargs).expand_dims(time=[0])
    path = os.path.join(str(directory), climatology_filename(variable, model))
    da.to_dataset().to_netcdf(path)
    return path


@pytest.fixture
def make_field():
    return _make_field


@pytest.fixture
def write_climatology():
    return _write_climatology


@pytest.fixture
def make_ensemble():
    def _make_ensemble(values, models, **kwargs) -> xr.DataArray:
        fields = [_make_field(v, **kwargs) for v in values]
        return xr.concat(fields, dim="model").assign_coords(model=list(models))

    return _make_ensemble
