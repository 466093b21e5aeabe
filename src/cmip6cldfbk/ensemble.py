"""
Copyright (c) 2025 Jacqueline Ryan

Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in all
copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
SOFTWARE.
"""

"""
Ensemble Assembly and SST Masking

Concatenates per-model fields into ensemble collections whose record axis is
the model roster, then partitions the surface SW CRE ensemble into warm and
cool SST regions using the ensemble-mean SST.

Input: Per-model regridded surface SW CRE, band-mean SW CRE and SST files
Output: Ensemble collections, the warm SST mask, and per-model warm-region,
        cool-region and warm-minus-cool spatial means
"""

from dataclasses import dataclass
import os

import numpy as np
import xarray as xr

from cmip6cldfbk.dataset import RECORD_DIM, FieldHandle, ensure_aligned, write_field
from cmip6cldfbk.errors import RecordAlignmentError
from cmip6cldfbk.operators import (
    ensemble_mean,
    field_mean,
    select_where,
    select_where_not,
    subtract,
    threshold_mask,
)


@dataclass(frozen=True)
class MaskSplit:
    warm: xr.DataArray
    cool: xr.DataArray
    gradient: xr.DataArray


def concat_ensemble(fields: list[xr.DataArray], models: list[str]) -> xr.DataArray:
    """
    Stack per-model fields along a new model axis in roster order.

    Args:
        fields (list[xr.DataArray]): One field per model, fields[k] belonging
            to models[k]
        models (list[str]): Ordered roster

    Returns:
        xr.DataArray: Ensemble collection with a labelled 'model' axis

    Raises:
        RecordAlignmentError: If the number of fields differs from the roster
    """
    if len(fields) != len(models):
        raise RecordAlignmentError(
            f"Got {len(fields)} fields for a roster of {len(models)} models"
        )
    if len(set(models)) != len(models):
        raise RecordAlignmentError(f"Duplicate models in roster: {', '.join(models)}")

    # join="override" because regridded fields share one grid up to float noise
    ensemble = xr.concat(fields, dim=RECORD_DIM, join="override", coords="minimal")
    ensemble = ensemble.assign_coords({RECORD_DIM: (RECORD_DIM, list(models))})
    ensemble.attrs = fields[0].attrs.copy()
    return ensemble


def concat_handles(handles: list[FieldHandle], models: list[str]) -> xr.DataArray:
    return concat_ensemble([h.open() for h in handles], models)


def build_warm_mask(sst_ensemble: xr.DataArray, threshold: float = 296.5) -> xr.DataArray:
    """
    Threshold the ensemble-mean SST into a warm (1) / cool (0) indicator.

    Cells where the ensemble-mean SST is missing are NaN and fall in neither
    region.
    """
    mask = threshold_mask(ensemble_mean(sst_ensemble), threshold)
    mask.attrs = {
        "long_name": f"ensemble-mean SST above {threshold} K",
        "threshold": threshold,
    }
    return mask


def split_by_mask(ensemble: xr.DataArray, mask: xr.DataArray) -> MaskSplit:
    """
    Spatial means of an ensemble over the warm and the cool part of a mask.

    The warm selection keeps cells where mask == 1 and the cool selection keeps
    cells where mask == 0, so no cell is counted in both. Each mean is taken
    per model.
    """
    warm = field_mean(select_where(mask, ensemble))
    cool = field_mean(select_where_not(mask, ensemble))
    return MaskSplit(warm=warm, cool=cool, gradient=warm_minus_cool(warm, cool))


def warm_minus_cool(warm: xr.DataArray, cool: xr.DataArray) -> xr.DataArray:
    ensure_aligned(warm.rename("warm"), cool.rename("cool"))
    return subtract(warm, cool)


def mask_coverage(mask: xr.DataArray, valid: xr.DataArray) -> tuple[int, int, int]:
    """
    Count cells of a partition: (warm, cool, overlap).

    warm + cool equals the number of valid cells when the partition is total,
    and overlap is zero when it is disjoint.
    """
    warm = (mask == 1) & valid
    cool = (mask == 0) & valid
    overlap = warm & cool
    return int(warm.sum()), int(cool.sum()), int(overlap.sum())


def ensemble_handles(output_dir: str, band_label: str = "40-50S") -> dict[str, FieldHandle]:
    """Where assemble_ensembles writes its products."""
    return {
        "swcre": FieldHandle(os.path.join(output_dir, "sfc-swcre_ensemble.nc"), "sfc-swcre"),
        "swcre_band": FieldHandle(
            os.path.join(output_dir, f"sfc-swcre_{band_label}_ensemble.nc"), "sfc-swcre"
        ),
        "sst_mean": FieldHandle(os.path.join(output_dir, "ts_ensmean.nc"), "ts"),
        "mask": FieldHandle(os.path.join(output_dir, "ts_warm_mask.nc"), "mask"),
        "warm": FieldHandle(os.path.join(output_dir, "sfc-swcre_warm.nc"), "sfc-swcre"),
        "cool": FieldHandle(os.path.join(output_dir, "sfc-swcre_cool.nc"), "sfc-swcre"),
        "gradient": FieldHandle(
            os.path.join(output_dir, "sfc-swcre_warm-minus-cool.nc"), "sfc-swcre"
        ),
    }


def assemble_ensembles(
    swcre: list[FieldHandle],
    swcre_band: list[FieldHandle],
    sst: list[FieldHandle],
    models: list[str],
    output_dir: str,
    sst_threshold: float = 296.5,
    band_label: str = "40-50S",
) -> dict[str, FieldHandle]:
    """
    Build and write the ensemble collections and the SST mask products.

    Returns:
        dict[str, FieldHandle]: Handles keyed by 'swcre', 'swcre_band', 'sst_mean',
            'mask', 'warm', 'cool' and 'gradient'
    """
    os.makedirs(output_dir, exist_ok=True)
    print(f"Assembling ensemble collections for {len(models)} models...")

    swcre_ens = concat_handles(swcre, models)
    band_ens = concat_handles(swcre_band, models)
    sst_ens = concat_handles(sst, models)
    ensure_aligned(swcre_ens.rename("swcre"), band_ens.rename("swcre_band"), sst_ens.rename("sst"))

    sst_mean = ensemble_mean(sst_ens)
    mask = build_warm_mask(sst_ens, sst_threshold)

    warm_cells, cool_cells, _ = mask_coverage(mask, sst_mean.notnull())
    print(f"SST mask at {sst_threshold} K: {warm_cells} warm cells, {cool_cells} cool cells")

    split = split_by_mask(swcre_ens, mask)

    targets = ensemble_handles(output_dir, band_label)
    handles = {
        "swcre": write_field(
            swcre_ens,
            targets["swcre"].path,
            targets["swcre"].variable,
            "Surface SW cloud radiative effect, one record per model",
            [h.path for h in swcre],
        ),
        "swcre_band": write_field(
            band_ens,
            targets["swcre_band"].path,
            targets["swcre_band"].variable,
            f"Surface SW cloud radiative effect averaged over {band_label}, one record per model",
            [h.path for h in swcre_band],
        ),
        "sst_mean": write_field(
            sst_mean,
            targets["sst_mean"].path,
            targets["sst_mean"].variable,
            "Ensemble-mean surface temperature",
            [h.path for h in sst],
        ),
        "mask": write_field(
            mask,
            targets["mask"].path,
            targets["mask"].variable,
            f"1 where ensemble-mean SST > {sst_threshold} K, 0 elsewhere over valid cells",
        ),
        "warm": write_field(
            split.warm,
            targets["warm"].path,
            targets["warm"].variable,
            "Surface SW cloud radiative effect averaged over the warm SST region",
        ),
        "cool": write_field(
            split.cool,
            targets["cool"].path,
            targets["cool"].variable,
            "Surface SW cloud radiative effect averaged over the cool SST region",
        ),
        "gradient": write_field(
            split.gradient,
            targets["gradient"].path,
            targets["gradient"].variable,
            "Warm-region minus cool-region surface SW cloud radiative effect",
        ),
    }

    if np.isnan(split.gradient.values).any():
        print("Warning: warm-minus-cool gradient is missing for some models")

    return handles
