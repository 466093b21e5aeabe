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
Composite Group Differencing

Compares two analyst-curated subsets of the ensemble, e.g. two clusters of
models, each stored as its own directory of per-model files.

Input: Two directories of NetCDF files; a file belongs to a variable when the
       variable name appears anywhere in its file name
Output: Per variable, the ensemble mean of each group and the difference
        group one minus group two
"""

import glob
import os
import warnings

import xarray as xr

from cmip6cldfbk.cli import get_parser
from cmip6cldfbk.dataset import FieldHandle, open_field, write_field
from cmip6cldfbk.errors import MissingInputError
from cmip6cldfbk.operators import ensemble_mean, subtract, to_climatology


def find_variable_files(directory: str, variable: str) -> list[str]:
    """NetCDF files in a directory whose name contains the variable name, sorted."""
    pattern = os.path.join(directory, "*.nc")
    return sorted(f for f in glob.glob(pattern) if variable in os.path.basename(f))


def warn_on_collisions(directory: str, variables: list[str]) -> None:
    """Warn about files that would be picked up for more than one variable."""
    for nc_file in sorted(glob.glob(os.path.join(directory, "*.nc"))):
        filename = os.path.basename(nc_file)
        matches = [v for v in variables if v in filename]
        if len(matches) > 1:
            warnings.warn(
                f"{filename} matches several variables ({', '.join(matches)}) and "
                "will be averaged into each of them"
            )


def group_mean(files: list[str], variable: str) -> xr.DataArray:
    """
    Ensemble mean of the matching files of one group.

    Each file is read through `variable` when it holds it, otherwise through its
    only data variable that is not a cell bound.
    """
    fields = []
    for nc_file in files:
        print(f"Reading {os.path.basename(nc_file)}")
        da = to_climatology(open_field(nc_file, preferred=variable))
        fields.append(da.rename(variable))
    stacked = xr.concat(fields, dim="model", join="override", coords="minimal")
    return ensemble_mean(stacked)


def composite_difference(
    group_one_dir: str,
    group_two_dir: str,
    variables: list[str],
    output_dir: str,
) -> dict[str, dict[str, FieldHandle]]:
    """
    Difference of the group ensemble means, variable by variable.

    Args:
        group_one_dir (str): Directory with the first group's files
        group_two_dir (str): Directory with the second group's files
        variables (list[str]): Variable names, matched as substrings of file names
        output_dir (str): Directory for the group means and differences

    Returns:
        dict[str, dict[str, FieldHandle]]: Per variable, handles keyed by
            'group_one', 'group_two' and 'difference'

    Raises:
        MissingInputError: If a group directory is missing or holds no file for
            one of the variables
    """
    for directory in [group_one_dir, group_two_dir]:
        if not os.path.isdir(directory):
            raise MissingInputError(f"Composite group directory not found: {directory}")
        warn_on_collisions(directory, variables)

    os.makedirs(output_dir, exist_ok=True)
    results: dict[str, dict[str, FieldHandle]] = {}

    for variable in variables:
        files_one = find_variable_files(group_one_dir, variable)
        files_two = find_variable_files(group_two_dir, variable)
        if not files_one or not files_two:
            empty = group_one_dir if not files_one else group_two_dir
            raise MissingInputError(f"No files matching '{variable}' in {empty}")

        print(
            f"Compositing {variable}: {len(files_one)} files in group one, "
            f"{len(files_two)} in group two"
        )
        mean_one = group_mean(files_one, variable)
        mean_two = group_mean(files_two, variable)

        results[variable] = {
            "group_one": write_field(
                mean_one,
                os.path.join(output_dir, f"{variable}_group1_ensmean.nc"),
                variable,
                f"Ensemble mean of {variable} over {len(files_one)} group one files",
                files_one,
            ),
            "group_two": write_field(
                mean_two,
                os.path.join(output_dir, f"{variable}_group2_ensmean.nc"),
                variable,
                f"Ensemble mean of {variable} over {len(files_two)} group two files",
                files_two,
            ),
            "difference": write_field(
                subtract(mean_one, mean_two),
                os.path.join(output_dir, f"{variable}_group1-minus-group2.nc"),
                variable,
                f"Group one minus group two ensemble mean of {variable}",
                files_one + files_two,
            ),
        }

    return results


def cli() -> None:
    """Command Line Interface for differencing two composite groups of files."""
    parser = get_parser(
        "Difference the ensemble means of two directories of model files",
        task="composite",
    )

    args = parser.parse_args()
    composite_difference(
        args.group_one_dir,
        args.group_two_dir,
        args.variables,
        args.output_dir,
    )
