"""BRMA vs RMA meta-regression simulation study."""

from brmasim._version import __version__
from brmasim.config import StudyConfig, load_study_config
from brmasim.design import build_design_grid
from brmasim.simulate import simulate_smd


def run_study(*args, **kwargs):
    """Lazy wrapper to avoid starting joblib/scikit-learn imports at import time."""
    from brmasim.driver import run_study as _run_study

    return _run_study(*args, **kwargs)


__all__ = [
    "__version__",
    "StudyConfig",
    "build_design_grid",
    "load_study_config",
    "run_study",
    "simulate_smd",
]
