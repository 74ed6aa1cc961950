"""Deterministic seed plans for chunked simulation batches."""

from __future__ import annotations

import numpy as np

SEED_HIGH = 2**31 - 1


def rng_from_seed(seed: int) -> np.random.Generator:
    """Construct a NumPy Generator from seed."""
    return np.random.default_rng(int(seed))


def draw_chunk_seeds(n_chunks: int, master_seed: int) -> list[int]:
    """Draw `n_chunks` distinct seeds in [1, 2**31 - 1).

    Duplicates are dropped and replaced by fresh draws until every chunk has
    a unique seed. The result depends only on `master_seed` and `n_chunks`.
    """
    n = int(n_chunks)
    if n < 1:
        raise ValueError(f"n_chunks must be >= 1, got {n}.")
    rng = rng_from_seed(master_seed)
    seeds: list[int] = []
    seen: set[int] = set()
    while len(seeds) < n:
        for s in rng.integers(1, SEED_HIGH, size=n - len(seeds)):
            s = int(s)
            if s not in seen:
                seen.add(s)
                seeds.append(s)
    return seeds


def row_seeds(chunk_seed: int, n_rows: int, n_streams: int = 2) -> np.ndarray:
    """Per-row seeds for one chunk, shape (n_rows, n_streams).

    Column 0 seeds dataset simulation, column 1 seeds model fitting.
    """
    rng = rng_from_seed(chunk_seed)
    return rng.integers(1, SEED_HIGH, size=(int(n_rows), int(n_streams)))
