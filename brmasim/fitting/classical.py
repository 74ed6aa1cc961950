"""Mixed-effects meta-regression (the RMA strategy)."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.stats import norm

from brmasim.fitting.base import FitError, FittedModel, check_meta_inputs

RMA_METHODS = ("REML", "ML", "EB")
MAX_CONDITION = 1e12
MAX_STEP_HALVINGS = 60


@dataclass(frozen=True)
class ClassicalFit(FittedModel):
    se: np.ndarray
    ci_lb: np.ndarray
    ci_ub: np.ndarray
    method: str
    n_iter: int
    stage: str = ""
    attempts: tuple[str, ...] = ()

    @property
    def zval(self) -> np.ndarray:
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.asarray(self.coef, dtype=float) / np.asarray(self.se, dtype=float)

    def selected(self) -> np.ndarray:
        lb = np.asarray(self.ci_lb, dtype=float)[1:]
        return np.where(np.isfinite(lb), lb > 0.0, False)

    def importance(self) -> np.ndarray:
        return np.abs(self.zval[1:])


def independent_columns(design: np.ndarray) -> list[int]:
    """Greedy left-to-right selection of linearly independent columns."""
    keep: list[int] = []
    for j in range(design.shape[1]):
        trial = keep + [j]
        if np.linalg.matrix_rank(design[:, trial]) == len(trial):
            keep.append(j)
    return keep


def _weighted_inverse(X: np.ndarray, w: np.ndarray) -> np.ndarray:
    xtwx = X.T @ (w[:, None] * X)
    if not np.all(np.isfinite(xtwx)) or np.linalg.cond(xtwx) > MAX_CONDITION:
        raise FitError("Weighted design matrix is singular or ill-conditioned.")
    try:
        return np.linalg.inv(xtwx)
    except np.linalg.LinAlgError as exc:
        raise FitError(f"Could not invert weighted design matrix: {exc}") from exc


def _projection(X: np.ndarray, w: np.ndarray) -> np.ndarray:
    inv = _weighted_inverse(X, w)
    wx = w[:, None] * X
    return np.diag(w) - wx @ inv @ wx.T


def _initial_tau2(X: np.ndarray, y: np.ndarray, v: np.ndarray) -> float:
    """Hedges (method-of-moments) starting value from an OLS fit."""
    k, p = X.shape
    hat = X @ np.linalg.pinv(X)
    resid = y - hat @ y
    residual_op = np.eye(k) - hat
    est = (float(resid @ resid) - float(np.trace(residual_op @ np.diag(v)))) / (k - p)
    return max(0.0, est)


def _tau2_adjustment(
    X: np.ndarray, y: np.ndarray, v: np.ndarray, tau2: float, method: str
) -> float:
    k, p = X.shape
    w = 1.0 / (v + tau2)
    if method == "ML":
        inv = _weighted_inverse(X, w)
        b = inv @ (X.T @ (w * y))
        resid = y - X @ b
        score = 0.5 * float(np.sum(w * w * resid * resid)) - 0.5 * float(np.sum(w))
        info = 0.5 * float(np.sum(w * w))
        return score / info
    P = _projection(X, w)
    Py = P @ y
    if method == "REML":
        score = 0.5 * float(Py @ Py) - 0.5 * float(np.trace(P))
        info = 0.5 * float(np.sum(P * P))
        if info <= 0.0:
            raise FitError("Non-positive Fisher information for tau2.")
        return score / info
    # EB (Morris) estimating-equation step.
    return (float(y @ Py) * k / (k - p) - k) / float(np.sum(w))


def estimate_tau2(
    X: np.ndarray,
    y: np.ndarray,
    v: np.ndarray,
    *,
    method: str,
    stepadj: float,
    maxiter: int,
    threshold: float,
) -> tuple[float, int]:
    """Iterate tau2 updates until the change drops below `threshold`."""
    tau2 = _initial_tau2(X, y, v)
    for it in range(1, int(maxiter) + 1):
        adj = float(stepadj) * _tau2_adjustment(X, y, v, tau2, method)
        if not np.isfinite(adj):
            raise FitError(f"tau2 update became non-finite (method={method}).")
        halvings = 0
        while tau2 + adj < 0.0 and halvings < MAX_STEP_HALVINGS:
            adj /= 2.0
            halvings += 1
        new_tau2 = max(0.0, tau2 + adj)
        if abs(new_tau2 - tau2) < float(threshold):
            return new_tau2, it
        tau2 = new_tau2
    raise FitError(
        f"Fisher scoring algorithm did not converge after {int(maxiter)} iterations "
        f"(method={method}, stepadj={stepadj})."
    )


def fit_rma(
    x: np.ndarray,
    y: np.ndarray,
    v: np.ndarray,
    *,
    method: str = "REML",
    stepadj: float = 1.0,
    maxiter: int = 100,
    threshold: float = 1e-5,
    level: float = 0.95,
) -> ClassicalFit:
    """Fit a random-effects meta-regression with an intercept and all moderators.

    Redundant moderator columns are dropped before fitting; their coefficient,
    standard error and confidence bounds are reported as NaN.

    Raises:
        ValueError: On malformed inputs or an unknown method.
        FitError: When the tau2 iteration does not converge or the weighted
            system is singular.
    """
    if method not in RMA_METHODS:
        raise ValueError(f"method must be one of {RMA_METHODS}, got '{method}'.")
    X, yv, vv = check_meta_inputs(x, y, v)
    k = yv.size
    design = np.column_stack([np.ones(k), X])
    keep = independent_columns(design)
    Xr = design[:, keep]
    p = Xr.shape[1]
    if k <= p:
        raise FitError(
            f"Number of parameters to estimate ({p}) must be smaller than k ({k})."
        )

    tau2, n_iter = estimate_tau2(
        Xr,
        yv,
        vv,
        method=method,
        stepadj=stepadj,
        maxiter=maxiter,
        threshold=threshold,
    )
    w = 1.0 / (vv + tau2)
    vb = _weighted_inverse(Xr, w)
    b = vb @ (Xr.T @ (w * yv))
    se = np.sqrt(np.clip(np.diag(vb), 0.0, None))
    crit = float(norm.ppf(1.0 - (1.0 - float(level)) / 2.0))

    n_coef = design.shape[1]
    coef = np.full(n_coef, np.nan)
    se_full = np.full(n_coef, np.nan)
    coef[keep] = b
    se_full[keep] = se
    return ClassicalFit(
        coef=coef,
        tau2=float(tau2),
        se=se_full,
        ci_lb=coef - crit * se_full,
        ci_ub=coef + crit * se_full,
        method=method,
        n_iter=int(n_iter),
    )
