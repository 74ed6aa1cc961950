"""Deterministic parallel helpers for simulation workloads."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from joblib import Parallel, delayed

T = TypeVar("T")
R = TypeVar("R")

LOGGER = logging.getLogger(__name__)


def _item_seed(item: Any) -> int | None:
    if isinstance(item, dict):
        seed = item.get("seed")
        return int(seed) if seed is not None else None
    if hasattr(item, "seed"):
        seed = getattr(item, "seed")
        return int(seed) if seed is not None else None
    return None


def _validate_items_have_seed(items: list[T]) -> None:
    missing = [idx for idx, item in enumerate(items) if _item_seed(item) is None]
    if missing:
        head = ",".join(str(i) for i in missing[:5])
        raise ValueError(
            "parallel_map requires every item to carry a deterministic `seed` "
            f"(missing at indices: {head}{'...' if len(missing) > 5 else ''})."
        )


def _call_indexed(func: Callable[[T], R], indexed: tuple[int, T]) -> tuple[int, R]:
    idx, item = indexed
    return idx, func(item)


def make_pool(n_jobs: int = -1, backend: str = "loky") -> Parallel:
    """Worker pool to be entered once (``with make_pool(...) as pool``) per batch."""
    return Parallel(n_jobs=int(n_jobs), backend=str(backend))


def parallel_map(
    func: Callable[[T], R],
    items: Iterable[T],
    *,
    pool: Parallel | None = None,
    n_jobs: int = 1,
    backend: str = "loky",
) -> list[R]:
    """Apply `func` to items with deterministic, order-stable aggregation.

    Notes:
    - Every item must include a deterministic `seed`.
    - Output order is always aligned to input order, independent of scheduling.
    - Pass an entered `pool` to reuse workers across calls; otherwise a
      one-off pool is created (or the map runs serially when `n_jobs == 1`).
    """
    seq = list(items)
    if not seq:
        return []
    _validate_items_have_seed(seq)
    indexed = list(enumerate(seq))

    if pool is None and (int(n_jobs) == 1 or len(seq) == 1):
        LOGGER.debug("parallel_map serial execution: n_items=%d", len(seq))
        return [func(item) for item in seq]

    runner = pool if pool is not None else make_pool(n_jobs=n_jobs, backend=backend)
    LOGGER.debug("parallel_map n_items=%d n_jobs=%s", len(seq), runner.n_jobs)
    rows = runner(delayed(_call_indexed)(func, pair) for pair in indexed)
    rows = sorted(rows, key=lambda x: x[0])
    return [row for _, row in rows]
