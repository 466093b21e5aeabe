from .ensemble import assemble_ensembles, concat_ensemble
from .pipeline import run_pipeline
from .preprocess import compute_sfc_swcre, preprocess_roster

__all__ = [
    "assemble_ensembles",
    "concat_ensemble",
    "run_pipeline",
    "compute_sfc_swcre",
    "preprocess_roster",
]
