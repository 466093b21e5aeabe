"""Zonal, global and tropical reductions of the multi-model cloud feedback file."""

from dataclasses import dataclass
import os

import numpy as np
import xarray as xr

from cmip6cldfbk.dataset import RECORD_DIM, FieldHandle, open_field, write_field
from cmip6cldfbk.errors import RecordAlignmentError
from cmip6cldfbk.operators import field_mean, zonal_mean


@dataclass(frozen=True)
class FeedbackAggregates:
    zonal: xr.DataArray
    global_mean: xr.DataArray
    tropical: xr.DataArray


def load_feedback(
    path: str,
    models: list[str],
    variable: str | None = None,
    preferred: str | None = "CLDfbk",
) -> xr.DataArray:
    """
    Open the cloud feedback ensemble and label its record axis with the roster.

    The file may store models along 'time' (one time step per model) or along
    an explicit 'model' axis. In the first case the axis is relabelled with the
    roster; in the second the stored labels must match the roster exactly.

    Without an explicit variable, `preferred` is read when present, otherwise
    the file's only data variable that is not a cell bound.

    Raises:
        MissingInputError: If the file does not exist
        RecordAlignmentError: If the record axis does not match the roster
    """
    da = open_field(path, variable, preferred)

    if RECORD_DIM not in da.dims:
        if "time" not in da.dims:
            raise RecordAlignmentError(
                f"{path} has neither a '{RECORD_DIM}' nor a 'time' record axis"
            )
        da = da.rename({"time": RECORD_DIM}).drop_vars(RECORD_DIM, errors="ignore")

    if da.sizes[RECORD_DIM] != len(models):
        raise RecordAlignmentError(
            f"{path} has {da.sizes[RECORD_DIM]} records for a roster of {len(models)} models"
        )

    if RECORD_DIM in da.coords:
        stored = da[RECORD_DIM].values.astype(str)
        if not np.array_equal(stored, np.asarray(models, dtype=str)):
            raise RecordAlignmentError(
                f"Model order in {path} ({', '.join(stored)}) differs from the roster"
            )

    da = da.assign_coords({RECORD_DIM: (RECORD_DIM, list(models))})
    return da.transpose(RECORD_DIM, ...)


def aggregate_feedback(
    feedback: xr.DataArray, tropics: tuple[float, float] = (-30.0, 30.0)
) -> FeedbackAggregates:
    return FeedbackAggregates(
        zonal=zonal_mean(feedback),
        global_mean=field_mean(feedback),
        tropical=field_mean(feedback, lat_bounds=tropics),
    )


def feedback_handles(output_dir: str, variable: str = "CLDfbk") -> dict[str, FieldHandle]:
    """Where write_feedback_aggregates writes its products."""
    return {
        "zonal": FieldHandle(os.path.join(output_dir, f"{variable}_zonmean.nc"), variable),
        "global": FieldHandle(os.path.join(output_dir, f"{variable}_fldmean.nc"), variable),
        "tropical": FieldHandle(os.path.join(output_dir, f"{variable}_tropmean.nc"), variable),
    }


def write_feedback_aggregates(
    aggregates: FeedbackAggregates,
    output_dir: str,
    variable: str = "CLDfbk",
    source_file: str | None = None,
) -> dict[str, FieldHandle]:
    targets = feedback_handles(output_dir, variable)
    sources = [source_file] if source_file else None
    descriptions = {
        "zonal": "Zonal-mean cloud feedback, one record per model",
        "global": "Global-mean cloud feedback, one record per model",
        "tropical": "Tropical (30S-30N) mean cloud feedback, one record per model",
    }
    fields = {
        "zonal": aggregates.zonal,
        "global": aggregates.global_mean,
        "tropical": aggregates.tropical,
    }
    return {
        key: write_field(fields[key], target.path, target.variable, descriptions[key], sources)
        for key, target in targets.items()
    }
