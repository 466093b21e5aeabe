"""
Contribution of each grid point to the inter-model spread of a global mean
(Caldwell et al., 2018 style), split into two factors:

    factor 1 = std_models(field) / std_models(global_mean(field))
    factor 2 = corr_models(regional predictor, field)
    contribution = factor 1 * factor 2

No normalization or bounds checks are applied.
"""

from dataclasses import dataclass
import os

import xarray as xr

from cmip6cldfbk.correlation import correlate_across_models
from cmip6cldfbk.dataset import FieldHandle, ensure_aligned, write_field
from cmip6cldfbk.operators import ensemble_std, field_mean, multiply


@dataclass(frozen=True)
class Decomposition:
    factor1: xr.DataArray
    factor2: xr.DataArray
    contribution: xr.DataArray


def spread_ratio(field: xr.DataArray) -> xr.DataArray:
    global_series = field_mean(field)
    return ensemble_std(field) / ensemble_std(global_series)


def contribution_map(factor1: xr.DataArray, factor2: xr.DataArray) -> xr.DataArray:
    return multiply(factor1, factor2)


def decompose(predictor: xr.DataArray, field: xr.DataArray) -> Decomposition:
    """
    Args:
        predictor (xr.DataArray): One value per model, e.g. the 40-50S mean SW CRE
        field (xr.DataArray): (model, lat, lon) feedback field
    """
    ensure_aligned(predictor, field)
    factor1 = spread_ratio(field)
    factor2 = correlate_across_models(predictor, field)
    return Decomposition(factor1, factor2, contribution_map(factor1, factor2))


def write_decomposition(
    decomposition: Decomposition, output_dir: str, label: str, variable: str = "CLDfbk"
) -> dict[str, FieldHandle]:
    prefix = os.path.join(output_dir, f"contribution_{label}_{variable}")
    return {
        "factor1": write_field(
            decomposition.factor1,
            f"{prefix}_factor1.nc",
            "factor1",
            f"Inter-model std of {variable} over std of its global mean",
        ),
        "factor2": write_field(
            decomposition.factor2,
            f"{prefix}_factor2.nc",
            "factor2",
            f"Inter-model correlation of {label} with {variable}",
        ),
        "contribution": write_field(
            decomposition.contribution,
            f"{prefix}.nc",
            "contribution",
            f"Contribution map, factor1 * factor2, for {label} and {variable}",
        ),
    }
