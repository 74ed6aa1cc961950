from __future__ import annotations

import numpy as np
import pytest

from brmasim.config import ShrinkageSettings
from brmasim.fitting import FitError, fit_rma, fit_shrinkage
from brmasim.fitting.shrinkage import weighted_lasso


def _meta_data(k: int, beta: np.ndarray, tau2: float, seed: int):
    rng = np.random.default_rng(seed)
    x = rng.normal(size=(k, beta.size - 1))
    v = rng.uniform(0.01, 0.05, size=k)
    y = beta[0] + x @ beta[1:] + rng.normal(0.0, np.sqrt(v + tau2))
    return x, y, v


def test_rma_recovers_coefficients():
    beta = np.array([0.2, 0.5, 0.0, -0.3])
    x, y, v = _meta_data(300, beta, 0.02, seed=10)
    res = fit_rma(x, y, v)
    np.testing.assert_allclose(res.coef, beta, atol=0.1)
    assert res.tau2 == pytest.approx(0.02, abs=0.02)
    assert res.method == "REML"
    sel = res.selected()
    assert sel[0] and not sel[2]
    assert np.all(res.ci_lb <= res.coef) and np.all(res.coef <= res.ci_ub)


@pytest.mark.parametrize("method", ["ML", "EB"])
def test_rma_alternative_estimators(method):
    beta = np.array([0.0, 0.4, 0.4])
    x, y, v = _meta_data(200, beta, 0.05, seed=2)
    res = fit_rma(x, y, v, method=method)
    assert res.tau2 >= 0.0
    np.testing.assert_allclose(res.coef, beta, atol=0.15)


def test_rma_importance_is_absolute_z():
    beta = np.array([0.0, 0.6, 0.0])
    x, y, v = _meta_data(150, beta, 0.01, seed=8)
    res = fit_rma(x, y, v)
    np.testing.assert_allclose(res.importance(), np.abs(res.coef[1:] / res.se[1:]))


def test_rma_redundant_column_reported_as_nan():
    beta = np.array([0.1, 0.5, 0.0])
    x, y, v = _meta_data(80, beta, 0.02, seed=3)
    x = np.column_stack([x, x[:, 0]])
    res = fit_rma(x, y, v)
    assert np.isnan(res.coef[3])
    assert not res.selected()[2]
    assert res.predict(x).shape == (80,)


def test_rma_too_few_studies():
    x = np.random.default_rng(0).normal(size=(4, 3))
    with pytest.raises(FitError, match="smaller than k"):
        fit_rma(x, np.arange(4.0), np.full(4, 0.1))


def test_rma_nonconvergence_raises():
    beta = np.array([0.1, 0.3])
    x, y, v = _meta_data(40, beta, 0.1, seed=1)
    with pytest.raises(FitError, match="did not converge"):
        fit_rma(x, y, v, threshold=0.0, maxiter=5)


def test_rma_unknown_method():
    x, y, v = _meta_data(20, np.array([0.0, 0.1]), 0.0, seed=1)
    with pytest.raises(ValueError, match="method"):
        fit_rma(x, y, v, method="DL")


def test_shrinkage_selects_relevant_moderators():
    beta = np.array([0.0, 0.6, 0.6, 0.6, 0.0, 0.0, 0.0])
    x, y, v = _meta_data(120, beta, 0.01, seed=21)
    res = fit_shrinkage(x, y, v, seed=99)
    sel = res.selected()
    assert sel.shape == (6,)
    assert sel[:3].all()
    assert res.tau2 >= 0.0
    assert res.use_lambda == "lambda_min"
    np.testing.assert_allclose(res.importance(), np.abs(res.coef[1:]))


def test_shrinkage_is_deterministic_for_a_seed():
    beta = np.array([0.1, 0.5, 0.0, 0.0])
    x, y, v = _meta_data(60, beta, 0.02, seed=5)
    settings = ShrinkageSettings(n_folds=5, n_alphas=30)
    a = fit_shrinkage(x, y, v, seed=17, settings=settings)
    b = fit_shrinkage(x, y, v, seed=17, settings=settings)
    np.testing.assert_array_equal(a.coef, b.coef)
    assert a.tau2 == b.tau2


def test_one_se_rule_penalizes_at_least_as_hard():
    beta = np.array([0.0, 0.5, 0.2, 0.0, 0.0])
    x, y, v = _meta_data(80, beta, 0.0, seed=6)
    w = 1.0 / v
    kwargs = dict(seed=3, n_folds=5, n_alphas=40)
    _, _, alpha_min = weighted_lasso(x, y, w, use_lambda="lambda_min", **kwargs)
    _, _, alpha_1se = weighted_lasso(x, y, w, use_lambda="lambda_1se", **kwargs)
    assert alpha_1se >= alpha_min


def test_shrinkage_rejects_nonpositive_variances():
    x, y, v = _meta_data(20, np.array([0.0, 0.1]), 0.0, seed=1)
    v[0] = 0.0
    with pytest.raises(ValueError, match="strictly positive"):
        fit_shrinkage(x, y, v, seed=1)
