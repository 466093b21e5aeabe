"""Cross-model (inter-model) Pearson correlation between ensemble collections."""

import os

import xarray as xr

from cmip6cldfbk.dataset import RECORD_DIM, FieldHandle, ensure_aligned, write_field
from cmip6cldfbk.operators import broadcast_to, zonal_mean


def correlate_across_models(a: xr.DataArray, b: xr.DataArray) -> xr.DataArray:
    """
    Pearson correlation across the model axis, separately at every other coordinate.

    A collection holding one value per model (e.g. a regional mean) is broadcast
    against the other collection's remaining dimensions. Only models with valid
    values in both collections contribute at a given coordinate.

    Args:
        a (xr.DataArray): Ensemble collection with a 'model' axis
        b (xr.DataArray): Ensemble collection with the same models in the same order

    Returns:
        xr.DataArray: Correlation coefficient with the 'model' axis removed

    Raises:
        RecordAlignmentError: If the two collections do not share the record axis
    """
    ensure_aligned(a, b)
    if set(a.dims) < set(b.dims):
        a = broadcast_to(a, b)
    elif set(b.dims) < set(a.dims):
        b = broadcast_to(b, a)
    r = xr.corr(a, b, dim=RECORD_DIM)
    r.attrs = {"long_name": "inter-model correlation coefficient", "units": "1"}
    return r


def correlation_zonal_mean(r: xr.DataArray) -> xr.DataArray:
    return zonal_mean(r)


def correlate_predictor(
    predictor: xr.DataArray,
    zonal: xr.DataArray,
    field: xr.DataArray,
    output_dir: str,
    label: str,
    variable: str = "CLDfbk",
) -> dict[str, FieldHandle]:
    """
    Correlate a per-model predictor with the zonal-mean and the full feedback field.

    Writes the per-latitude correlation with the zonal-mean feedback, the 2-D
    correlation map, and the zonal mean of that map.
    """
    print(f"Correlating {label} with {variable} across {predictor.sizes[RECORD_DIM]} models")
    r_zonal = correlate_across_models(predictor.rename(label), zonal.rename(f"{variable}_zonmean"))
    r_map = correlate_across_models(predictor.rename(label), field.rename(variable))

    prefix = os.path.join(output_dir, f"cor_{label}_{variable}")
    return {
        "zonal": write_field(
            r_zonal,
            f"{prefix}_zonmean.nc",
            "cor",
            f"Inter-model correlation of {label} with zonal-mean {variable}",
        ),
        "map": write_field(
            r_map,
            f"{prefix}_map.nc",
            "cor",
            f"Inter-model correlation of {label} with {variable} at each grid point",
        ),
        "map_zonal": write_field(
            correlation_zonal_mean(r_map),
            f"{prefix}_map_zonmean.nc",
            "cor",
            f"Zonal mean of the inter-model correlation map of {label} with {variable}",
        ),
    }
