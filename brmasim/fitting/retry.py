"""Escalating retry policy for the classical meta-regression fit."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Callable

import numpy as np
import pandas as pd

from brmasim.fitting.base import ConvergenceError, FitError
from brmasim.fitting.classical import ClassicalFit, fit_rma

LOGGER = logging.getLogger(__name__)
OUTLIER_Z = 3.0


@dataclass(frozen=True)
class FitStage:
    """One fitting configuration in the escalation sequence."""

    name: str
    method: str = "REML"
    stepadj: float = 1.0
    maxiter: int = 100
    correct_outliers: bool = False


DEFAULT_STAGES: tuple[FitStage, ...] = (
    FitStage("default"),
    FitStage("relaxed", stepadj=0.01, maxiter=1000),
    FitStage("eb", method="EB", stepadj=0.01, maxiter=1000),
    FitStage("ml", method="ML", stepadj=0.01, maxiter=1000),
    FitStage("outlier_corrected", correct_outliers=True),
)

Fitter = Callable[..., ClassicalFit]


def correct_outliers(
    training: pd.DataFrame, z_threshold: float = OUTLIER_Z
) -> tuple[pd.DataFrame, np.ndarray]:
    """Overwrite training rows with extreme `yi` by the preceding row.

    Outliers are rows whose standardized `yi` (sample SD) exceeds
    `z_threshold` in absolute value. Replacement values come from the
    uncorrected frame; row 0 has no predecessor and borrows row 1.

    Returns:
        Corrected copy of `training` and the positions that were replaced.
    """
    yi = training["yi"].to_numpy(dtype=float)
    out = training.copy()
    if yi.size < 2:
        return out, np.array([], dtype=int)
    sd = float(np.std(yi, ddof=1))
    if not np.isfinite(sd) or sd == 0.0:
        return out, np.array([], dtype=int)
    z = (yi - float(np.mean(yi))) / sd
    idx = np.flatnonzero(np.abs(z) > float(z_threshold))
    if idx.size:
        src = np.where(idx > 0, idx - 1, 1)
        out.iloc[idx] = training.iloc[src].to_numpy()
    return out, idx


class RetryPolicy:
    """Try each `FitStage` in order until one fit converges.

    `attempts` on the returned fit lists every stage tried, in order, ending
    with the stage that succeeded. If all stages fail, `ConvergenceError` is
    raised; a degenerate fit is never accepted silently.
    """

    def __init__(
        self,
        stages: tuple[FitStage, ...] = DEFAULT_STAGES,
        fitter: Fitter = fit_rma,
        logger: logging.Logger | None = None,
    ) -> None:
        if not stages:
            raise ValueError("RetryPolicy needs at least one stage.")
        names = [s.name for s in stages]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate stage names: {names}")
        self.stages = tuple(stages)
        self.fitter = fitter
        self.logger = logger or LOGGER

    @property
    def stage_names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.stages)

    def fit(self, training: pd.DataFrame) -> ClassicalFit:
        mods = [c for c in training.columns if c not in ("yi", "vi")]
        attempts: list[str] = []
        errors: list[str] = []
        for stage in self.stages:
            data = training
            if stage.correct_outliers:
                data, replaced = correct_outliers(training)
                self.logger.warning(
                    "rma stage '%s': replaced %d outlying training row(s) %s",
                    stage.name,
                    int(replaced.size),
                    replaced.tolist(),
                )
            attempts.append(stage.name)
            try:
                res = self.fitter(
                    data[mods].to_numpy(dtype=float),
                    data["yi"].to_numpy(dtype=float),
                    data["vi"].to_numpy(dtype=float),
                    method=stage.method,
                    stepadj=stage.stepadj,
                    maxiter=stage.maxiter,
                )
            except FitError as exc:
                errors.append(f"{stage.name}: {exc}")
                self.logger.warning("rma stage '%s' failed: %s", stage.name, exc)
                continue
            return dataclasses.replace(res, stage=stage.name, attempts=tuple(attempts))
        raise ConvergenceError(
            "rma did not converge under any configured stage "
            f"({', '.join(attempts)}). Last errors: {'; '.join(errors)}"
        )
