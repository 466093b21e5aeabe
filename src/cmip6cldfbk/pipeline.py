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
Cloud Feedback / Surface SW CRE Pipeline

Runs the analysis stages in a fixed order. Every stage writes new files under
the output directory, and later stages read them back, so a subset of stages can
be re-run on top of the files left by an earlier run.

    preprocess     per-model surface SW CRE, 40-50S mean and regridded SST
    ensemble       ensemble collections, warm SST mask, warm-minus-cool gradient
    feedback       zonal, global and tropical means of the cloud feedback
    correlation    inter-model correlation of the SW CRE predictors with feedback
    decomposition  contribution map (spread ratio x correlation)
    export         per-model text tables and the unconstrained 95% interval
    composite      difference of two curated groups of files (optional)
"""

import os
from typing import Any

from cmip6cldfbk.cli import get_parser, resolve_models
from cmip6cldfbk.composite import composite_difference
from cmip6cldfbk.correlation import correlate_predictor
from cmip6cldfbk.decomposition import decompose, write_decomposition
from cmip6cldfbk.dataset import FieldHandle
from cmip6cldfbk.ensemble import assemble_ensembles, ensemble_handles
from cmip6cldfbk.export import export_table, unconstrained_interval, write_interval
from cmip6cldfbk.feedback import (
    aggregate_feedback,
    feedback_handles,
    load_feedback,
    write_feedback_aggregates,
)
from cmip6cldfbk.preprocess import expected_products, preprocess_roster
from cmip6cldfbk.schema import DEFAULT_MODELS, PIPELINE_SCHEMA, STAGES


def validate_inputs(
    models: list[str], stages: list[str], schema: dict[str, Any]
) -> None:
    errmsg: list[str] = []

    if not models:
        errmsg.append("model roster is empty")

    duplicates = sorted({m for m in models if models.count(m) > 1})
    if duplicates:
        errmsg.append(f"duplicate models in roster: {', '.join(duplicates)}")

    unknown = [s for s in stages if s not in STAGES]
    if unknown:
        errmsg.append(
            f"unknown stages: {', '.join(unknown)}, choices are: {', '.join(STAGES)}"
        )

    for key in ["band", "tropics"]:
        south, north = schema[key]
        if south >= north:
            errmsg.append(f"{key} bounds must run south to north, got {south} to {north}")

    if len(models) < 3 and any(s in stages for s in ["correlation", "decomposition"]):
        errmsg.append("inter-model correlation needs at least 3 models")

    if errmsg != []:
        raise ValueError("; ".join(errmsg))


def run_pipeline(
    input_dir: str,
    output_dir: str,
    feedback_file: str,
    models: list[str] | None = None,
    feedback_variable: str | None = None,
    stages: list[str] | None = None,
    group_one_dir: str | None = None,
    group_two_dir: str | None = None,
    parallel: bool = False,
    schema: dict[str, Any] | None = None,
) -> dict[str, str]:
    """
    Run the selected pipeline stages in canonical order.

    Args:
        input_dir (str): Directory with the piControl climatologies
        output_dir (str): Directory for all derived files
        feedback_file (str): Multi-model cloud feedback file, one record per model
            in roster order
        models (list[str] | None): Ordered roster, default is the full 20-model roster
        feedback_variable (str | None): Variable to read from the feedback file
        stages (list[str] | None): Stages to run, default is all of them
        group_one_dir (str | None): First composite group directory
        group_two_dir (str | None): Second composite group directory
        parallel (bool): Preprocess models in parallel with dask
        schema (dict[str, Any] | None): Override of PIPELINE_SCHEMA constants

    Returns:
        dict[str, str]: Paths of the final products, keyed by product name

    Raises:
        ValueError: If the roster, stage list or schema is invalid
        MissingInputError: If an input file is missing
        RecordAlignmentError: If two ensemble collections do not share the
            model axis
    """
    schema = {**PIPELINE_SCHEMA, **(schema or {})}
    if models is None:
        models = list(DEFAULT_MODELS)
    if stages is None:
        stages = list(STAGES)
    validate_inputs(models, stages, schema)

    selected = [s for s in STAGES if s in stages]
    band: tuple[float, float] = schema["band"]
    band_label = str(schema["band_label"])
    fbk_label = feedback_variable or str(schema["feedback_variable"])
    nlon, nlat = int(schema["nlon"]), int(schema["nlat"])

    model_dir = os.path.join(output_dir, "models")
    os.makedirs(output_dir, exist_ok=True)

    print(f"Running stages: {', '.join(selected)}")
    print(f"Models ({len(models)}): {', '.join(models)}")
    print(f"Input directory: {input_dir}")
    print(f"Output directory: {output_dir}")

    products: dict[str, str] = {}

    if "preprocess" in selected:
        per_model = preprocess_roster(
            models, input_dir, model_dir, parallel, nlon, nlat, band
        )
    else:
        per_model = [expected_products(m, model_dir) for m in models]

    if "ensemble" in selected:
        ens = assemble_ensembles(
            [p.swcre for p in per_model],
            [p.swcre_band for p in per_model],
            [p.sst for p in per_model],
            models,
            output_dir,
            float(schema["sst_threshold"]),
            band_label,
        )
        products.update({f"ensemble_{k}": h.path for k, h in ens.items()})
    else:
        ens = ensemble_handles(output_dir, band_label)

    needs_feedback = {"feedback", "correlation", "decomposition"} & set(selected)
    feedback = None
    if needs_feedback:
        print(f"Loading cloud feedback from {feedback_file}")
        feedback = load_feedback(
            feedback_file, models, feedback_variable, str(schema["feedback_variable"])
        )

    if "feedback" in selected and feedback is not None:
        fbk = write_feedback_aggregates(
            aggregate_feedback(feedback, schema["tropics"]),
            output_dir,
            fbk_label,
            feedback_file,
        )
        products.update({f"feedback_{k}": h.path for k, h in fbk.items()})
    else:
        fbk = feedback_handles(output_dir, fbk_label)

    predictors: dict[str, FieldHandle] = {
        f"sfc-swcre_{band_label}": ens["swcre_band"],
        "sfc-swcre_warm-minus-cool": ens["gradient"],
    }

    if "correlation" in selected and feedback is not None:
        zonal = fbk["zonal"].open()
        for label, handle in predictors.items():
            cor = correlate_predictor(handle.open(), zonal, feedback, output_dir, label, fbk_label)
            products.update({f"cor_{label}_{k}": h.path for k, h in cor.items()})

    if "decomposition" in selected and feedback is not None:
        label = f"sfc-swcre_{band_label}"
        print(f"Decomposing {fbk_label} spread against {label}")
        dec = write_decomposition(
            decompose(ens["swcre_band"].open(), feedback), output_dir, label, fbk_label
        )
        products.update({f"contribution_{k}": h.path for k, h in dec.items()})

    if "export" in selected:
        tables = {
            f"sfc-swcre_{band_label}": ens["swcre_band"],
            "sfc-swcre_warm-minus-cool": ens["gradient"],
            f"{fbk_label}_tropmean": fbk["tropical"],
            f"{fbk_label}_fldmean": fbk["global"],
        }
        for name, handle in tables.items():
            products[f"table_{name}"] = export_table(
                handle.open(), os.path.join(output_dir, f"{name}.txt")
            )

        tropical = fbk["tropical"].open()
        bounds = unconstrained_interval(tropical, float(schema["interval_multiplier"]))
        products["interval"] = write_interval(
            bounds, os.path.join(output_dir, f"{fbk_label}_tropmean_interval.txt")
        )

    if "composite" in selected:
        if group_one_dir and group_two_dir:
            composite = composite_difference(
                group_one_dir,
                group_two_dir,
                schema["composite_variables"],
                os.path.join(output_dir, "composite"),
            )
            for variable, handles in composite.items():
                products[f"composite_{variable}"] = handles["difference"].path
        else:
            print("No composite group directories given, skipping composite stage")

    print(f"Pipeline complete. {len(products)} products under {output_dir}")
    return products


def cli() -> None:
    """Command Line Interface for running the full analysis pipeline."""
    parser = get_parser(
        "Reproduce the surface SW cloud radiative effect / cloud feedback analysis "
        "products from piControl climatologies",
        task="run",
    )

    args = parser.parse_args()
    run_pipeline(
        args.input_dir,
        args.output_dir,
        args.feedback_file,
        resolve_models(args.models, args.exclude_models),
        args.feedback_variable,
        args.stages,
        args.group_one_dir,
        args.group_two_dir,
        args.parallel,
    )
