"""Fixed rosters, file naming convention and analysis constants for the pipeline."""

# piControl models with rsds/rsdscs/rsus/rsuscs/ts climatologies over years
# 100-130. Order defines the record order of every ensemble collection.
DEFAULT_MODELS: list[str] = [
    "ACCESS-CM2",
    "ACCESS-ESM1-5",
    "BCC-CSM2-MR",
    "CAMS-CSM1-0",
    "CanESM5",
    "CESM2",
    "CESM2-WACCM",
    "CNRM-CM6-1",
    "CNRM-ESM2-1",
    "E3SM-1-0",
    "GFDL-CM4",
    "GISS-E2-1-G",
    "HadGEM3-GC31-LL",
    "INM-CM4-8",
    "IPSL-CM6A-LR",
    "MIROC6",
    "MPI-ESM1-2-LR",
    "MRI-ESM2-0",
    "NorESM2-LM",
    "UKESM1-0-LL",
]

PIPELINE_SCHEMA: dict[str, str | list[str] | int | float | tuple[float, float]] = {
    "models": DEFAULT_MODELS,
    "radiation_variables": ["rsds", "rsdscs", "rsus", "rsuscs"],
    "sst_variable": "ts",
    "feedback_variable": "CLDfbk",
    "composite_variables": ["sfc-swcre", "ts"],
    "file_template": "{variable}_Amon_{model}_piControl_r1_100-130.tm.nc",
    "nlon": 144,
    "nlat": 90,
    # (south, north) in degrees
    "band": (-50.0, -40.0),
    "band_label": "40-50S",
    "tropics": (-30.0, 30.0),
    "sst_threshold": 296.5,
    "interval_multiplier": 1.96,
    "input_dir": "./piControl-climatologies",
    "output_dir": "./cldfbk-products",
    "feedback_file": "./CLDfbk_ensemble.nc",
}

STAGES: list[str] = [
    "preprocess",
    "ensemble",
    "feedback",
    "correlation",
    "decomposition",
    "export",
    "composite",
]


def climatology_filename(variable: str, model: str) -> str:
    """Input file name for one variable of one model."""
    return str(PIPELINE_SCHEMA["file_template"]).format(variable=variable, model=model)
