import argparse

from cmip6cldfbk.schema import DEFAULT_MODELS, PIPELINE_SCHEMA, STAGES


def resolve_models(
    models: list[str] | None = None, exclude_models: list[str] | None = None
) -> list[str]:
    """
    Build the ordered roster for a run.

    Explicit models keep the order they were given in. Exclusions are removed
    from the default roster without reordering it.
    """
    if models and exclude_models:
        raise ValueError("cannot exclude and include models in same query.")
    if models:
        return list(models)
    if exclude_models:
        return [m for m in DEFAULT_MODELS if m not in exclude_models]
    return list(DEFAULT_MODELS)


def get_parser(description: str, task: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=description,
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    schema = PIPELINE_SCHEMA

    # Base parser parameters, common to all tasks
    parser.add_argument(
        "-o",
        "--output-dir",
        type=str,
        default=str(schema["output_dir"]),
        help="Directory to save derived files",
    )

    if task in ["run", "preprocess"]:
        parser.add_argument(
            "-i",
            "--input-dir",
            type=str,
            default=str(schema["input_dir"]),
            help="Directory with piControl climatology NetCDF files",
        )
        parser.add_argument(
            "--models",
            type=str,
            nargs="+",
            help="Specific models to use, in ensemble order (default: full roster)",
        )
        parser.add_argument(
            "--exclude-models",
            type=str,
            nargs="+",
            help="Exclude specific models from processing",
        )
        parser.add_argument(
            "--parallel",
            action="store_true",
            help="Preprocess models in parallel on a local dask cluster",
        )

    if task == "run":
        parser.add_argument(
            "-f",
            "--feedback-file",
            type=str,
            default=str(schema["feedback_file"]),
            help="Multi-model cloud feedback file with one record per model",
        )
        parser.add_argument(
            "--feedback-variable",
            type=str,
            default=None,
            help="Data variable in the feedback file (default: its only variable)",
        )
        parser.add_argument(
            "--stages",
            type=str,
            nargs="+",
            choices=STAGES,
            default=STAGES,
            help="Pipeline stages to run, always executed in canonical order",
        )

    if task in ["run", "composite"]:
        required = task == "composite"
        parser.add_argument(
            "--group-one-dir",
            type=str,
            required=required,
            help="Directory with the files of the first composite group",
        )
        parser.add_argument(
            "--group-two-dir",
            type=str,
            required=required,
            help="Directory with the files of the second composite group",
        )

    if task == "composite":
        parser.add_argument(
            "--variables",
            type=str,
            nargs="+",
            default=PIPELINE_SCHEMA["composite_variables"],
            help="Variable names to match (by substring) in the group file names",
        )

    return parser
