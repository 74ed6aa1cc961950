"""Population mean functions linking moderators to true effect sizes."""

from __future__ import annotations

from typing import Callable

import numpy as np

MeanFunction = Callable[[np.ndarray, float, int], np.ndarray]


def _relevant_block(x: np.ndarray, n_relevant: int) -> np.ndarray:
    arr = np.asarray(x, dtype=float)
    if arr.ndim != 2:
        raise ValueError("x must be a 2D moderator matrix.")
    if int(n_relevant) < 1 or int(n_relevant) > arr.shape[1]:
        raise ValueError(
            f"n_relevant must be in [1, {arr.shape[1]}], got {int(n_relevant)}."
        )
    return arr[:, : int(n_relevant)]


def linear_mean(x: np.ndarray, es: float, n_relevant: int) -> np.ndarray:
    """Additive model: each relevant moderator contributes `es`."""
    block = _relevant_block(x, n_relevant)
    return float(es) * block.sum(axis=1)


def interaction_mean(x: np.ndarray, es: float, n_relevant: int) -> np.ndarray:
    """Additive model plus an `es`-weighted product of the first two moderators."""
    block = _relevant_block(x, n_relevant)
    out = float(es) * block.sum(axis=1)
    if block.shape[1] >= 2:
        out = out + float(es) * block[:, 0] * block[:, 1]
    return out


MEAN_FUNCTIONS: dict[str, MeanFunction] = {
    "linear": linear_mean,
    "interaction": interaction_mean,
}


def get_mean_function(name: str) -> MeanFunction:
    try:
        return MEAN_FUNCTIONS[str(name)]
    except KeyError:
        raise ValueError(
            f"Unknown outcome model '{name}'. Available: {sorted(MEAN_FUNCTIONS)}"
        ) from None
