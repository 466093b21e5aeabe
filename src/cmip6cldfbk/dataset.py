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
Named-file handles

Every artifact of the pipeline is an immutable NetCDF file holding a single data
variable. A FieldHandle carries the path, the variable name and, for ensemble
collections, the ordered model labels of the record axis, so that stages pass
typed values around instead of bare filenames.
"""

from dataclasses import dataclass
import os

import numpy as np
import xarray as xr

from cmip6cldfbk.errors import MissingInputError, RecordAlignmentError

RECORD_DIM = "model"


@dataclass(frozen=True)
class FieldHandle:
    path: str
    variable: str
    models: tuple[str, ...] = ()

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def open(self) -> xr.DataArray:
        """Load the data variable fully into memory and close the file."""
        if not self.exists():
            raise MissingInputError(f"No such file: {self.path}")
        with xr.open_dataset(self.path) as ds:
            return ds[self.variable].load()


def bounds_variables(ds: xr.Dataset) -> set[str]:
    """Names of cell-bound variables, e.g. time_bnds or lat_bnds."""
    bounds = {
        str(var.attrs["bounds"]) for var in ds.variables.values() if "bounds" in var.attrs
    }
    for name in ds.data_vars:
        if str(name).endswith(("_bnds", "_bounds")):
            bounds.add(str(name))
    return bounds


def single_data_var(ds: xr.Dataset, variable: str | None = None) -> str:
    """
    Pick the data variable to read from a dataset.

    Args:
        ds (xr.Dataset): Opened dataset
        variable (str | None): Explicit variable name, checked for presence

    Returns:
        str: Name of the data variable

    Raises:
        KeyError: If the requested variable is absent, or if no variable was
            requested and the dataset does not hold exactly one data variable
            besides cell bounds
    """
    if variable is not None:
        if variable not in ds.data_vars:
            raise KeyError(
                f"{variable} not found, available variables: {', '.join(map(str, ds.data_vars))}"
            )
        return variable

    bounds = bounds_variables(ds)
    names = [str(name) for name in ds.data_vars if name not in bounds]
    if len(names) != 1:
        raise KeyError(
            f"Expected exactly one data variable, found {len(names)}: {', '.join(names)}"
        )
    return names[0]


def open_field(
    path: str, variable: str | None = None, preferred: str | None = None
) -> xr.DataArray:
    """
    Open one data variable of a NetCDF file, failing loudly if the file is missing.

    Without an explicit variable, `preferred` is read when the file holds it,
    otherwise the file's only non-bounds data variable.
    """
    if not os.path.exists(path):
        raise MissingInputError(f"No such file: {path}")
    with xr.open_dataset(path) as ds:
        if variable is None and preferred is not None and preferred in ds.data_vars:
            variable = preferred
        name = single_data_var(ds, variable)
        return ds[name].load()


def write_field(
    da: xr.DataArray,
    path: str,
    variable: str,
    description: str = "",
    source_files: list[str] | None = None,
) -> FieldHandle:
    """
    Write a DataArray as a single-variable NetCDF file and return its handle.

    Args:
        da (xr.DataArray): Data to write
        path (str): Output file path, parent directories are created
        variable (str): Name of the data variable in the file
        description (str): Free text stored in the global attributes
        source_files (list[str] | None): Input files this field was derived from

    Returns:
        FieldHandle: Handle to the new file
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    ds = da.rename(variable).to_dataset()
    models: tuple[str, ...] = ()
    if RECORD_DIM in da.dims and RECORD_DIM in da.coords:
        models = tuple(str(m) for m in da[RECORD_DIM].values)
        ds.attrs["models_used"] = ", ".join(models)
    if description:
        ds.attrs["description"] = description
    if source_files:
        ds.attrs["source_files"] = ", ".join(os.path.basename(f) for f in source_files)

    ds.to_netcdf(path)
    print(f"Saved {variable} to {path}")
    return FieldHandle(path, variable, models)


def ensure_aligned(*arrays: xr.DataArray, dim: str = RECORD_DIM) -> None:
    """
    Check that ensemble collections share the record axis, record for record.

    Lengths must match, and where both arrays label the axis, the labels must be
    identical and in the same order.

    Raises:
        RecordAlignmentError: On the first mismatch found
    """
    if not arrays:
        return
    reference = arrays[0]
    if dim not in reference.dims:
        raise RecordAlignmentError(f"Array {reference.name} has no '{dim}' axis")

    for other in arrays[1:]:
        if dim not in other.dims:
            raise RecordAlignmentError(f"Array {other.name} has no '{dim}' axis")
        if reference.sizes[dim] != other.sizes[dim]:
            raise RecordAlignmentError(
                f"Record axis length mismatch: {reference.name} has "
                f"{reference.sizes[dim]} records, {other.name} has {other.sizes[dim]}"
            )
        if dim in reference.coords and dim in other.coords:
            ref_labels = reference[dim].values.astype(str)
            other_labels = other[dim].values.astype(str)
            if not np.array_equal(ref_labels, other_labels):
                mismatched = [
                    f"{a} != {b}" for a, b in zip(ref_labels, other_labels) if a != b
                ]
                raise RecordAlignmentError(
                    f"Record order mismatch between {reference.name} and "
                    f"{other.name}: {', '.join(mismatched)}"
                )
