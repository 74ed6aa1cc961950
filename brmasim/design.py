"""Full-factorial design grid for the simulation study."""

from __future__ import annotations

import itertools
import math

import pandas as pd

from brmasim.config import DesignLevels
from brmasim.core.types import CONDITION_FIELDS, Condition
from brmasim.outcome_models import MEAN_FUNCTIONS
from brmasim.simulate import MODERATOR_DISTRIBUTIONS


def _check_positive(name: str, values: tuple, *, allow_zero: bool = False) -> None:
    for v in values:
        bad = v < 0 if allow_zero else v <= 0
        if bad or not math.isfinite(float(v)):
            cmp = ">= 0" if allow_zero else "> 0"
            raise ValueError(f"design.{name} levels must be finite and {cmp}, got {v}.")


def validate_levels(levels: DesignLevels) -> None:
    """Raise `ValueError` on a malformed design configuration."""
    if int(levels.replicates) <= 0:
        raise ValueError(
            f"design.replicates must be a positive count, got {levels.replicates}."
        )
    for name in CONDITION_FIELDS[1:]:
        if len(getattr(levels, name)) == 0:
            raise ValueError(f"design.{name} must list at least one level.")
    for k in levels.k_train:
        if int(k) < 2:
            raise ValueError(f"design.k_train levels must be >= 2, got {k}.")
    _check_positive("mean_n", levels.mean_n)
    _check_positive("tau2", levels.tau2, allow_zero=True)
    for v in levels.es:
        if not math.isfinite(float(v)):
            raise ValueError(f"design.es levels must be finite, got {v}.")
    for m in levels.moderators:
        if int(m) < 2:
            raise ValueError(f"design.moderators levels must be >= 2, got {m}.")
    for name in levels.model:
        if name not in MEAN_FUNCTIONS:
            raise ValueError(
                f"Unknown outcome model '{name}'. Available: {sorted(MEAN_FUNCTIONS)}"
            )
    for name in levels.distribution:
        if name not in MODERATOR_DISTRIBUTIONS:
            raise ValueError(
                f"Unknown moderator distribution '{name}'. "
                f"Available: {list(MODERATOR_DISTRIBUTIONS)}"
            )


def expected_row_count(levels: DesignLevels) -> int:
    n = int(levels.replicates)
    for name in CONDITION_FIELDS[1:]:
        n *= len(getattr(levels, name))
    return n


def build_design_grid(levels: DesignLevels) -> pd.DataFrame:
    """Cartesian product of factor levels, first factor varying fastest."""
    validate_levels(levels)
    factors = [list(range(1, int(levels.replicates) + 1))]
    factors.extend(list(getattr(levels, name)) for name in CONDITION_FIELDS[1:])

    # itertools.product varies the last factor fastest; reverse in and out.
    rows = [combo[::-1] for combo in itertools.product(*factors[::-1])]
    grid = pd.DataFrame(rows, columns=list(CONDITION_FIELDS))
    grid = grid.astype(
        {
            "replicate": int,
            "k_train": int,
            "mean_n": float,
            "es": float,
            "tau2": float,
            "moderators": int,
            "model": str,
            "distribution": str,
        }
    )
    if len(grid) != expected_row_count(levels):
        raise RuntimeError("Design grid size does not match factor level product.")
    return grid


def conditions_from_grid(
    grid: pd.DataFrame, start: int = 0, stop: int | None = None
) -> list[Condition]:
    """Materialize `Condition` records for a positional slice of the grid."""
    part = grid.iloc[int(start) : (len(grid) if stop is None else int(stop))]
    return [Condition.from_row(row) for _, row in part.iterrows()]
