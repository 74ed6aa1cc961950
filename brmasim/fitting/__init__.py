"""Fitting strategies compared in the study."""

from brmasim.fitting.base import ConvergenceError, FitError, FittedModel
from brmasim.fitting.classical import ClassicalFit, fit_rma
from brmasim.fitting.retry import DEFAULT_STAGES, FitStage, RetryPolicy, correct_outliers
from brmasim.fitting.shrinkage import ShrinkageFit, fit_shrinkage

__all__ = [
    "ClassicalFit",
    "ConvergenceError",
    "DEFAULT_STAGES",
    "FitError",
    "FitStage",
    "FittedModel",
    "RetryPolicy",
    "ShrinkageFit",
    "correct_outliers",
    "fit_rma",
    "fit_shrinkage",
]
