"""Iterative weighted-lasso meta-regression (the BRMA strategy)."""

from __future__ import annotations

import warnings
from dataclasses import dataclass

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import Lasso, LassoCV
from sklearn.model_selection import KFold

from brmasim.config import LAMBDA_RULES, ShrinkageSettings
from brmasim.fitting.base import FittedModel, check_meta_inputs

ALPHA_MIN_RATIO = 1e-3
LASSO_MAX_ITER = 10_000


@dataclass(frozen=True)
class ShrinkageFit(FittedModel):
    alpha: float
    use_lambda: str
    n_iter: int
    converged: bool

    def selected(self) -> np.ndarray:
        return np.asarray(self.coef, dtype=float)[1:] > 0.0


def alpha_grid(
    X: np.ndarray, y: np.ndarray, w: np.ndarray, n_alphas: int
) -> np.ndarray:
    """Log-spaced penalty path from the smallest all-zero penalty downwards.

    Weights are rescaled to sum to the number of rows, which is how
    scikit-learn normalizes `sample_weight` in the lasso objective.
    """
    n = y.size
    wn = w * (n / w.sum())
    xm = np.average(X, axis=0, weights=wn)
    ym = float(np.average(y, weights=wn))
    grad = (X - xm).T @ (wn * (y - ym))
    alpha_max = float(np.max(np.abs(grad))) / n
    if not np.isfinite(alpha_max) or alpha_max <= 0.0:
        alpha_max = 1e-8
    return np.geomspace(alpha_max, alpha_max * ALPHA_MIN_RATIO, int(n_alphas))


def _one_se_alpha(alphas: np.ndarray, mse_path: np.ndarray) -> float:
    mean = mse_path.mean(axis=1)
    se = mse_path.std(axis=1, ddof=1) / np.sqrt(mse_path.shape[1])
    i_min = int(np.argmin(mean))
    eligible = np.flatnonzero(mean <= mean[i_min] + se[i_min])
    return float(np.max(alphas[eligible]))


def weighted_lasso(
    X: np.ndarray,
    y: np.ndarray,
    w: np.ndarray,
    *,
    seed: int,
    n_folds: int,
    n_alphas: int,
    use_lambda: str,
) -> tuple[float, np.ndarray, float]:
    """Cross-validated weighted lasso; returns (intercept, coefficients, alpha)."""
    if use_lambda not in LAMBDA_RULES:
        raise ValueError(f"use_lambda must be one of {LAMBDA_RULES}, got '{use_lambda}'.")
    cv = KFold(n_splits=int(n_folds), shuffle=True, random_state=int(seed) % (2**32))
    alphas = alpha_grid(X, y, w, n_alphas)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=ConvergenceWarning)
        model = LassoCV(alphas=alphas, cv=cv, max_iter=LASSO_MAX_ITER)
        model.fit(X, y, sample_weight=w)
        if use_lambda == "lambda_min":
            return float(model.intercept_), np.asarray(model.coef_, dtype=float), float(
                model.alpha_
            )
        alpha = _one_se_alpha(np.asarray(model.alphas_), np.asarray(model.mse_path_))
        refit = Lasso(alpha=alpha, max_iter=LASSO_MAX_ITER)
        refit.fit(X, y, sample_weight=w)
    return float(refit.intercept_), np.asarray(refit.coef_, dtype=float), alpha


def residual_tau2(resid: np.ndarray, v: np.ndarray, df: int) -> float:
    """Method-of-moments residual heterogeneity, truncated at zero."""
    if int(df) <= 0:
        return 0.0
    w = 1.0 / v
    q = float(np.sum(w * resid * resid))
    c = float(np.sum(w) - np.sum(w * w) / np.sum(w))
    if c <= 0.0:
        return 0.0
    return max(0.0, (q - int(df)) / c)


def fit_shrinkage(
    x: np.ndarray,
    y: np.ndarray,
    v: np.ndarray,
    seed: int,
    settings: ShrinkageSettings | None = None,
) -> ShrinkageFit:
    """Alternate between a weighted lasso fit and a residual tau2 update.

    Starts at tau2 = 0 and stops when tau2 changes by less than `tol` or
    after `max_iter` rounds. The fold assignment is fixed by `seed`, so
    repeated calls are reproducible.
    """
    cfg = settings or ShrinkageSettings()
    X, yv, vv = check_meta_inputs(x, y, v)
    k = yv.size
    n_folds = min(int(cfg.n_folds), k)
    if n_folds < 2:
        raise ValueError(f"Need at least 2 studies for cross-validation, got {k}.")

    tau2 = 0.0
    converged = False
    n_iter = 0
    intercept, beta, alpha = 0.0, np.zeros(X.shape[1]), float("nan")
    for n_iter in range(1, int(cfg.max_iter) + 1):
        w = 1.0 / (vv + tau2)
        intercept, beta, alpha = weighted_lasso(
            X,
            yv,
            w,
            seed=seed,
            n_folds=n_folds,
            n_alphas=int(cfg.n_alphas),
            use_lambda=cfg.use_lambda,
        )
        resid = yv - intercept - X @ beta
        df = k - int(np.count_nonzero(beta)) - 1
        new_tau2 = residual_tau2(resid, vv, df)
        delta = abs(new_tau2 - tau2)
        tau2 = new_tau2
        if delta < float(cfg.tol):
            converged = True
            break

    return ShrinkageFit(
        coef=np.concatenate([[intercept], beta]),
        tau2=float(tau2),
        alpha=float(alpha),
        use_lambda=cfg.use_lambda,
        n_iter=int(n_iter),
        converged=converged,
    )
