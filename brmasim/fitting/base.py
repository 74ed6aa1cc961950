"""Common fitted-model container and fitting errors."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from brmasim.utils import as_1d_float, as_2d_float


class FitError(RuntimeError):
    """A single fitting attempt failed (non-convergence, singular system)."""


class ConvergenceError(RuntimeError):
    """Every configured fitting attempt failed for one dataset."""


@dataclass(frozen=True)
class FittedModel:
    """Coefficients (intercept first) plus a residual heterogeneity estimate."""

    coef: np.ndarray
    tau2: float

    @property
    def n_moderators(self) -> int:
        return int(np.asarray(self.coef).size) - 1

    def predict(self, x: np.ndarray) -> np.ndarray:
        X = as_2d_float("x", x)
        if X.shape[1] != self.n_moderators:
            raise ValueError(
                f"x has {X.shape[1]} columns; model expects {self.n_moderators}."
            )
        # Dropped (redundant) terms carry NaN coefficients and contribute nothing.
        b = np.nan_to_num(np.asarray(self.coef, dtype=float), nan=0.0)
        return b[0] + X @ b[1:]

    def selected(self) -> np.ndarray:
        """Moderators with a non-zero coefficient; NaN (dropped) terms are unselected."""
        b = np.asarray(self.coef, dtype=float)[1:]
        return np.where(np.isfinite(b), b != 0.0, False)

    def importance(self) -> np.ndarray:
        return np.abs(np.asarray(self.coef, dtype=float)[1:])


def check_meta_inputs(x, y, v) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Validate moderator matrix, effect sizes and sampling variances."""
    yv = as_1d_float("y", y)
    vv = as_1d_float("v", v)
    if vv.size != yv.size:
        raise ValueError(f"v has {vv.size} values; y has {yv.size}.")
    if np.any(vv <= 0.0):
        raise ValueError("Sampling variances must be strictly positive.")
    X = as_2d_float("x", x, n_rows=yv.size)
    return X, yv, vv
