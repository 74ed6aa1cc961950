"""Shared utilities for simulation-study workflows."""

from __future__ import annotations

from pathlib import Path

import numpy as np


def ensure_dir(path: str | Path) -> Path:
    """Create a directory if needed and return it as ``Path``."""
    out = Path(path)
    out.mkdir(parents=True, exist_ok=True)
    return out


def as_1d_float(name: str, values) -> np.ndarray:
    arr = np.asarray(values, dtype=float).ravel()
    if arr.size == 0:
        raise ValueError(f"{name} must contain at least one value.")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} must be finite.")
    return arr


def as_2d_float(name: str, values, n_rows: int | None = None) -> np.ndarray:
    """Coerce a moderator matrix to a finite 2D float array.

    Args:
        name: Label used in error messages.
        values: Array-like or DataFrame of shape (k, m).
        n_rows: Expected number of rows, if known.

    Returns:
        Float array of shape (k, m).
    """
    arr = np.asarray(values, dtype=float)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    if arr.ndim != 2:
        raise ValueError(f"{name} must be 2D, got shape {arr.shape}.")
    if n_rows is not None and arr.shape[0] != int(n_rows):
        raise ValueError(
            f"{name} row mismatch: expected {int(n_rows)}, got {arr.shape[0]}."
        )
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} must be finite.")
    return arr
