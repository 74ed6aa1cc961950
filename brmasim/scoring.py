"""Predictive-accuracy and variable-selection scoring."""

from __future__ import annotations

import numpy as np

from brmasim.core.types import AccuracyRecord, SelectionRecord, SimulatedDataset
from brmasim.fitting.base import FittedModel
from brmasim.utils import as_1d_float


def _corr(x: np.ndarray, y: np.ndarray) -> float:
    if x.size != y.size or x.size < 2:
        return float("nan")
    if float(np.std(x)) == 0.0 or float(np.std(y)) == 0.0:
        return float("nan")
    return float(np.corrcoef(x, y)[0, 1])


def model_accuracy(
    predicted: np.ndarray, observed: np.ndarray, ymean: float | None = None
) -> dict[str, float]:
    """R², MSE and Pearson r of predictions against observed outcomes.

    R² is computed against `ymean` (the observed mean when omitted). Test-set
    scoring passes the training mean so the baseline never sees test targets.
    """
    pred = as_1d_float("predicted", predicted)
    obs = as_1d_float("observed", observed)
    if pred.size != obs.size:
        raise ValueError(
            f"predicted has {pred.size} values; observed has {obs.size}."
        )
    base = float(np.mean(obs)) if ymean is None else float(ymean)
    resid = obs - pred
    ss_res = float(np.sum(resid * resid))
    ss_tot = float(np.sum((obs - base) ** 2))
    r2 = 1.0 - ss_res / ss_tot if ss_tot > 0.0 else float("nan")
    return {
        "r2": float(r2),
        "mse": ss_res / obs.size,
        "r": _corr(pred, obs),
    }


def selection_accuracy(selected: np.ndarray, n_relevant: int) -> SelectionRecord:
    """True-positive rate over the first `n_relevant` moderators and
    true-negative rate over the rest."""
    sel = np.asarray(selected, dtype=bool).ravel()
    n_rel = int(n_relevant)
    if n_rel < 0 or n_rel > sel.size:
        raise ValueError(f"n_relevant must be in [0, {sel.size}], got {n_rel}.")
    relevant = sel[:n_rel]
    noise = sel[n_rel:]
    true_pos = float(np.mean(relevant)) if relevant.size else float("nan")
    true_neg = float(np.mean(~noise)) if noise.size else float("nan")
    return SelectionRecord(true_pos=true_pos, true_neg=true_neg)


def score_fit(model: FittedModel, dataset: SimulatedDataset) -> AccuracyRecord:
    """In-sample and out-of-sample accuracy for one fitted model."""
    y_train = dataset.training["yi"].to_numpy(dtype=float)
    y_test = dataset.testing["yi"].to_numpy(dtype=float)
    train = model_accuracy(model.predict(dataset.train_x()), y_train)
    test = model_accuracy(
        model.predict(dataset.test_x()), y_test, ymean=float(np.mean(y_train))
    )
    return AccuracyRecord(
        train_r2=train["r2"],
        train_mse=train["mse"],
        train_r=train["r"],
        test_r2=test["r2"],
        test_mse=test["mse"],
        test_r=test["r"],
        tau2=float(model.tau2),
    )
