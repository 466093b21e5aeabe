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
Per-model surface shortwave cloud radiative effect

Input: A directory of piControl climatologies (years 100-130) named
       {var}_Amon_{model}_piControl_r1_100-130.tm.nc for rsds, rsdscs, rsus,
       rsuscs and ts
Output: Per model, the surface SW CRE regridded to the common 144x90 grid, its
        area mean over the 40-50S band, and the regridded surface temperature
"""

from dataclasses import dataclass
import os
from typing import cast

import dask
import dask.delayed
from dask.distributed import Client
from tqdm import tqdm  # type: ignore [import-untyped]
import xarray as xr

from cmip6cldfbk.cli import get_parser, resolve_models
from cmip6cldfbk.dataset import FieldHandle, open_field, write_field
from cmip6cldfbk.errors import MissingInputError
from cmip6cldfbk.operators import field_mean, regrid_bilinear, subtract, to_climatology
from cmip6cldfbk.schema import PIPELINE_SCHEMA, climatology_filename

SWCRE_VAR = "sfc-swcre"


@dataclass(frozen=True)
class ModelProducts:
    model: str
    swcre: FieldHandle
    swcre_band: FieldHandle
    sst: FieldHandle


def compute_sfc_swcre(
    rsds: xr.DataArray,
    rsdscs: xr.DataArray,
    rsus: xr.DataArray,
    rsuscs: xr.DataArray,
) -> tuple[xr.DataArray, xr.DataArray, xr.DataArray]:
    """
    Surface shortwave cloud radiative effect from all-sky and clear-sky fluxes.

    Returns:
        tuple: (swcrf, up_swcrf, sfc_swcre) where swcrf = rsds - rsdscs,
            up_swcrf = rsus - rsuscs and sfc_swcre = swcrf - up_swcrf
    """
    swcrf = subtract(rsds, rsdscs)
    up_swcrf = subtract(rsus, rsuscs)
    sfc_swcre = subtract(swcrf, up_swcrf)
    sfc_swcre.attrs = {
        "units": rsds.attrs.get("units", "W m-2"),
        "long_name": "surface shortwave cloud radiative effect",
    }
    return swcrf, up_swcrf, sfc_swcre


def input_path(input_dir: str, variable: str, model: str) -> str:
    path = os.path.join(input_dir, climatology_filename(variable, model))
    if not os.path.exists(path):
        raise MissingInputError(f"Missing {variable} climatology for {model}: {path}")
    return path


def product_paths(output_dir: str, model: str) -> dict[str, str]:
    band_label = PIPELINE_SCHEMA["band_label"]
    sst_var = PIPELINE_SCHEMA["sst_variable"]
    return {
        "swcre": os.path.join(output_dir, f"{SWCRE_VAR}_{model}.nc"),
        "swcre_band": os.path.join(output_dir, f"{SWCRE_VAR}_{band_label}_{model}.nc"),
        "sst": os.path.join(output_dir, f"{sst_var}_{model}.nc"),
    }


def expected_products(model: str, output_dir: str) -> ModelProducts:
    """Handles to the files preprocess_model writes for a model, whether or not they exist yet."""
    paths = product_paths(output_dir, model)
    sst_var = str(PIPELINE_SCHEMA["sst_variable"])
    return ModelProducts(
        model=model,
        swcre=FieldHandle(paths["swcre"], SWCRE_VAR),
        swcre_band=FieldHandle(paths["swcre_band"], SWCRE_VAR),
        sst=FieldHandle(paths["sst"], sst_var),
    )


def preprocess_model(
    model: str,
    input_dir: str,
    output_dir: str,
    nlon: int = 144,
    nlat: int = 90,
    band: tuple[float, float] | None = None,
) -> ModelProducts:
    """
    Compute and write the per-model surface SW CRE products.

    Args:
        model (str): Model name as it appears in the input file names
        input_dir (str): Directory holding the piControl climatologies
        output_dir (str): Directory for derived files
        nlon (int): Longitudes of the common target grid
        nlat (int): Latitudes of the common target grid
        band (tuple[float, float] | None): (south, north) latitude band for the
            regional mean, defaults to the 40-50S band

    Returns:
        ModelProducts: Handles to the three files written for this model

    Raises:
        MissingInputError: If any of the five input climatologies is missing
    """
    if band is None:
        band = cast(tuple[float, float], PIPELINE_SCHEMA["band"])
    radiation_vars = cast(list[str], PIPELINE_SCHEMA["radiation_variables"])
    sst_var = str(PIPELINE_SCHEMA["sst_variable"])

    # Resolve all inputs first so a missing file fails before anything is written
    sources = {var: input_path(input_dir, var, model) for var in radiation_vars + [sst_var]}

    fluxes = [to_climatology(open_field(sources[var], var)) for var in radiation_vars]
    _, _, sfc_swcre = compute_sfc_swcre(*fluxes)

    swcre_regrid = regrid_bilinear(sfc_swcre, nlon, nlat)
    swcre_band = field_mean(swcre_regrid, lat_bounds=band)
    sst_regrid = regrid_bilinear(to_climatology(open_field(sources[sst_var], sst_var)), nlon, nlat)

    paths = product_paths(output_dir, model)
    radiation_sources = [sources[var] for var in radiation_vars]
    return ModelProducts(
        model=model,
        swcre=write_field(
            swcre_regrid,
            paths["swcre"],
            SWCRE_VAR,
            f"Surface SW cloud radiative effect of {model}, regridded to r{nlon}x{nlat}",
            radiation_sources,
        ),
        swcre_band=write_field(
            swcre_band,
            paths["swcre_band"],
            SWCRE_VAR,
            f"Surface SW cloud radiative effect of {model}, mean over latitudes {band[0]} to {band[1]}",
            radiation_sources,
        ),
        sst=write_field(
            sst_regrid,
            paths["sst"],
            sst_var,
            f"{sst_var} of {model}, regridded to r{nlon}x{nlat}",
            [sources[sst_var]],
        ),
    )


def preprocess_roster(
    models: list[str],
    input_dir: str,
    output_dir: str,
    parallel: bool = False,
    nlon: int = 144,
    nlat: int = 90,
    band: tuple[float, float] | None = None,
) -> list[ModelProducts]:
    """
    Run preprocess_model for every model, returning products in roster order.

    With parallel=True the models are processed as dask delayed tasks on a local
    distributed client. All tasks are computed before this returns.
    """
    os.makedirs(output_dir, exist_ok=True)
    print(f"Preprocessing {len(models)} models: {', '.join(models)}")

    if not parallel:
        products = []
        for model in tqdm(models, desc="Preprocessing models"):
            print(f"Processing model: {model}")
            products.append(preprocess_model(model, input_dir, output_dir, nlon, nlat, band))
        return products

    client = Client()
    print(f"Dask dashboard available at: {client.dashboard_link}")
    try:
        tasks: list[dask.delayed.Delayed] = []
        for model in models:
            task = dask.delayed(preprocess_model)(
                model, input_dir, output_dir, nlon, nlat, band
            )
            tasks.append(task)
        # dask.compute keeps the input order
        return list(dask.compute(*tasks))
    finally:
        client.close()


def cli() -> None:
    """Command Line Interface for the per-model preprocessing step only."""
    parser = get_parser(
        "Compute per-model surface SW cloud radiative effect from piControl climatologies",
        task="preprocess",
    )

    args = parser.parse_args()
    preprocess_roster(
        resolve_models(args.models, args.exclude_models),
        args.input_dir,
        args.output_dir,
        args.parallel,
    )
