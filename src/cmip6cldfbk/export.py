"""Plain-text tables of per-model scalars and the unconstrained 95% interval."""

import os

import numpy as np
import numpy.typing as npt
import pandas as pd
import xarray as xr

from cmip6cldfbk.dataset import RECORD_DIM


def to_model_series(da: xr.DataArray) -> pd.Series:
    """
    Reduce an ensemble collection to one scalar per model.

    Any spatial dimensions left over are averaged, so a regional or global
    mean that still carries singleton lat/lon axes becomes a plain series.
    """
    extra_dims = [d for d in da.dims if d != RECORD_DIM]
    if extra_dims:
        da = da.mean(dim=extra_dims)
    if RECORD_DIM not in da.dims:
        raise ValueError(f"Expected a '{RECORD_DIM}' axis, got dims {da.dims}")
    index = da[RECORD_DIM].values if RECORD_DIM in da.coords else None
    return pd.Series(da.values, index=index, name=da.name)


def export_table(da: xr.DataArray, path: str) -> str:
    """Write one value per line, in model order, with no header or index."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    series = to_model_series(da)
    series.to_csv(path, header=False, index=False)
    print(f"Saved {len(series)} values to {path}")
    return path


def read_table(path: str) -> npt.NDArray[np.float64]:
    table = pd.read_csv(path, header=None)
    return table.iloc[:, 0].to_numpy(dtype=np.float64)


def unconstrained_interval(
    series: xr.DataArray | npt.ArrayLike, multiplier: float = 1.96
) -> tuple[float, float]:
    """
    Two-sided normal-approximation interval, mean +/- multiplier * std.

    The standard deviation is the population one (divisor n) over the model
    axis, e.g. [1, 2, 3] gives approximately (0.4, 3.6).
    """
    values = np.asarray(series, dtype=np.float64).ravel()
    values = values[~np.isnan(values)]
    if values.size == 0:
        raise ValueError("Cannot compute an interval from an empty series")
    mean = values.mean()
    std = values.std(ddof=0)
    return float(mean - multiplier * std), float(mean + multiplier * std)


def write_interval(bounds: tuple[float, float], path: str) -> str:
    pd.Series(bounds, index=["lower", "upper"]).to_csv(path, header=False, index=False)
    print(f"Unconstrained interval [{bounds[0]:.4g}, {bounds[1]:.4g}] saved to {path}")
    return path
