"""Simulate meta-analytic datasets of standardized mean differences."""

from __future__ import annotations

import numpy as np
import pandas as pd

from brmasim.core.types import Condition, SimulatedDataset
from brmasim.outcome_models import get_mean_function
from brmasim.seeding import rng_from_seed

MODERATOR_DISTRIBUTIONS = ("normal", "bernoulli")
MIN_STUDY_N = 8


def moderator_names(n_moderators: int) -> list[str]:
    return [f"X{j}" for j in range(1, int(n_moderators) + 1)]


def draw_moderators(
    n_rows: int, n_moderators: int, distribution: str, rng: np.random.Generator
) -> np.ndarray:
    if distribution == "normal":
        return rng.normal(0.0, 1.0, size=(int(n_rows), int(n_moderators)))
    if distribution == "bernoulli":
        return rng.binomial(1, 0.5, size=(int(n_rows), int(n_moderators))).astype(
            float
        )
    raise ValueError(
        f"Unknown moderator distribution '{distribution}'. "
        f"Available: {list(MODERATOR_DISTRIBUTIONS)}"
    )


def draw_study_sizes(
    k: int, mean_n: float, rng: np.random.Generator
) -> np.ndarray:
    """Total per-study sample sizes, Normal(mean_n, mean_n / 3), floored at 8."""
    raw = rng.normal(float(mean_n), float(mean_n) / 3.0, size=int(k))
    return np.maximum(np.ceil(raw), MIN_STUDY_N).astype(int)


def hedges_g(
    treatment: np.ndarray, control: np.ndarray
) -> tuple[float, float]:
    """Bias-corrected standardized mean difference and its sampling variance."""
    n1 = int(treatment.size)
    n2 = int(control.size)
    df = n1 + n2 - 2
    pooled = ((n1 - 1) * np.var(treatment, ddof=1) + (n2 - 1) * np.var(control, ddof=1)) / df
    d = (float(np.mean(treatment)) - float(np.mean(control))) / float(np.sqrt(pooled))
    g = (1.0 - 3.0 / (4.0 * df - 1.0)) * d
    vi = 1.0 / n1 + 1.0 / n2 + g * g / (2.0 * (n1 + n2))
    return float(g), float(vi)


def _validate_condition(condition: Condition, k_test: int) -> None:
    if int(condition.k_train) < 2:
        raise ValueError(f"k_train must be >= 2, got {condition.k_train}.")
    if not float(condition.mean_n) > 0:
        raise ValueError(f"mean_n must be > 0, got {condition.mean_n}.")
    if float(condition.tau2) < 0 or not np.isfinite(float(condition.tau2)):
        raise ValueError(f"tau2 must be finite and >= 0, got {condition.tau2}.")
    if not np.isfinite(float(condition.es)):
        raise ValueError(f"es must be finite, got {condition.es}.")
    if int(condition.moderators) < 2:
        raise ValueError(f"moderators must be >= 2, got {condition.moderators}.")
    if int(k_test) < 2:
        raise ValueError(f"k_test must be >= 2, got {k_test}.")


def simulate_smd(
    condition: Condition, seed: int, k_test: int = 100
) -> SimulatedDataset:
    """Simulate one training set of SMD studies and one held-out test set.

    Only the first `moderators // 2` moderators enter the mean function; the
    remainder are noise columns.

    Args:
        condition: Design cell to simulate.
        seed: Caller-supplied seed; the only source of randomness.
        k_test: Number of held-out studies.

    Returns:
        `SimulatedDataset` with training columns `yi, vi, X1..Xm` and testing
        columns `yi, X1..Xm`.
    """
    _validate_condition(condition, k_test)
    mean_fn = get_mean_function(condition.model)
    rng = rng_from_seed(seed)
    k = int(condition.k_train)
    m = int(condition.moderators)
    n_relevant = condition.n_relevant
    names = moderator_names(m)

    sizes = draw_study_sizes(k, condition.mean_n, rng)
    x_train = draw_moderators(k, m, condition.distribution, rng)
    theta = mean_fn(x_train, condition.es, n_relevant)
    theta = theta + rng.normal(0.0, np.sqrt(float(condition.tau2)), size=k)

    yi = np.empty(k, dtype=float)
    vi = np.empty(k, dtype=float)
    for i in range(k):
        n_treat = int(np.ceil(sizes[i] / 2.0))
        n_ctrl = int(sizes[i]) - n_treat
        treatment = rng.normal(theta[i], 1.0, size=n_treat)
        control = rng.normal(0.0, 1.0, size=n_ctrl)
        yi[i], vi[i] = hedges_g(treatment, control)

    training = pd.DataFrame(x_train, columns=names)
    training.insert(0, "vi", vi)
    training.insert(0, "yi", yi)

    x_test = draw_moderators(int(k_test), m, condition.distribution, rng)
    testing = pd.DataFrame(x_test, columns=names)
    testing.insert(0, "yi", mean_fn(x_test, condition.es, n_relevant))

    return SimulatedDataset(
        training=training,
        testing=testing,
        n_relevant=n_relevant,
        seed=int(seed),
    )
