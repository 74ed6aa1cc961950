from __future__ import annotations

import math

import numpy as np
import pandas as pd
import pytest

from brmasim.core.types import SimulatedDataset
from brmasim.fitting.base import FittedModel
from brmasim.fitting.shrinkage import ShrinkageFit
from brmasim.scoring import model_accuracy, score_fit, selection_accuracy


def test_perfect_predictions():
    obs = np.array([0.1, 0.4, -0.2, 0.9])
    out = model_accuracy(obs.copy(), obs)
    assert out["r2"] == pytest.approx(1.0)
    assert out["mse"] == pytest.approx(0.0)
    assert out["r"] == pytest.approx(1.0)


def test_mean_baseline_has_zero_r2():
    obs = np.array([1.0, 2.0, 3.0, 4.0])
    out = model_accuracy(np.full(4, obs.mean()), obs)
    assert out["r2"] == pytest.approx(0.0)
    assert out["mse"] == pytest.approx(1.25)
    assert math.isnan(out["r"])


def test_r2_uses_supplied_baseline_mean():
    obs = np.array([1.0, 2.0, 3.0])
    pred = np.array([1.0, 2.0, 4.0])
    out = model_accuracy(pred, obs, ymean=0.0)
    assert out["r2"] == pytest.approx(1.0 - 1.0 / 14.0)


def test_constant_observed_gives_nan_r2():
    out = model_accuracy(np.array([1.0, 2.0]), np.array([3.0, 3.0]))
    assert math.isnan(out["r2"])


def test_length_mismatch_rejected():
    with pytest.raises(ValueError, match="observed"):
        model_accuracy(np.zeros(3), np.zeros(4))


def test_selection_of_exactly_relevant_half():
    sel = np.array([True, True, True, False, False, False])
    rec = selection_accuracy(sel, 3)
    assert rec.true_pos == 1.0
    assert rec.true_neg == 1.0


def test_selecting_nothing():
    rec = selection_accuracy(np.zeros(6, dtype=bool), 3)
    assert rec.true_pos == 0.0
    assert rec.true_neg == 1.0


def test_partial_selection_rates():
    sel = np.array([True, False, False, True, True, False])
    rec = selection_accuracy(sel, 3)
    assert rec.true_pos == pytest.approx(1 / 3)
    assert rec.true_neg == pytest.approx(1 / 3)


def test_selection_rejects_out_of_range_relevant_count():
    with pytest.raises(ValueError, match="n_relevant"):
        selection_accuracy(np.zeros(4, dtype=bool), 5)


def test_score_fit_uses_training_mean_for_test_r2():
    training = pd.DataFrame(
        {"yi": [0.0, 1.0, 2.0], "vi": [0.1, 0.1, 0.1], "X1": [0.0, 1.0, 2.0]}
    )
    testing = pd.DataFrame({"yi": [3.0, 4.0], "X1": [3.0, 4.0]})
    ds = SimulatedDataset(training=training, testing=testing, n_relevant=1, seed=1)
    model = FittedModel(coef=np.array([0.0, 1.0]), tau2=0.02)
    rec = score_fit(model, ds)
    assert rec.train_r2 == pytest.approx(1.0)
    assert rec.test_mse == pytest.approx(0.0)
    assert rec.test_r2 == pytest.approx(1.0)
    assert rec.tau2 == pytest.approx(0.02)

    biased = FittedModel(coef=np.array([1.0, 0.0]), tau2=0.0)
    rec = score_fit(biased, ds)
    # Predicting the training mean everywhere scores zero on the training set.
    assert rec.train_r2 == pytest.approx(0.0)
    # Test baseline is the training mean (1.0): ss_tot = 4 + 9, ss_res = 4 + 9.
    assert rec.test_r2 == pytest.approx(0.0)
    assert math.isnan(rec.test_r)


def test_constant_predictions_leave_only_correlations_unset():
    training = pd.DataFrame(
        {"yi": [0.0, 1.0, 2.0, 3.0], "vi": [0.1] * 4, "X1": [0.0, 1.0, 0.0, 1.0]}
    )
    testing = pd.DataFrame({"yi": [1.0, 2.0], "X1": [0.0, 1.0]})
    ds = SimulatedDataset(training=training, testing=testing, n_relevant=1, seed=1)
    empty_lasso = ShrinkageFit(
        coef=np.array([1.5, 0.0]),
        tau2=0.0,
        alpha=1.0,
        use_lambda="lambda_min",
        n_iter=1,
        converged=True,
    )
    rec = score_fit(empty_lasso, ds)
    assert math.isnan(rec.train_r) and math.isnan(rec.test_r)
    assert rec.train_r2 == pytest.approx(0.0)
    assert rec.test_mse == pytest.approx(0.25)
    assert not empty_lasso.selected().any()


def test_base_model_selects_nonzero_terms():
    model = FittedModel(coef=np.array([0.3, -0.4, 0.0, np.nan, 0.2]), tau2=0.0)
    assert model.selected().tolist() == [True, False, False, True]
    np.testing.assert_allclose(model.importance()[[0, 1, 3]], [0.4, 0.0, 0.2])
    assert np.isnan(model.importance()[2])
