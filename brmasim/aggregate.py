"""Merge per-chunk checkpoints back into the master analysis table."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from brmasim.checkpoint import (
    IMPORTANCE_FILE,
    MERGED_FILE,
    atomic_write_csv,
    checkpoint_path,
    read_checkpoint_table,
    read_grid,
    read_seeds,
)
from brmasim.schema import (
    COLUMN_SCHEMA,
    FIT_METRICS,
    SELECTION_METRICS,
    STRATEGIES,
    result_columns,
    validate_schema,
)

LOGGER = logging.getLogger(__name__)

_MERGED_ARTIFACTS = (("fits", FIT_METRICS), ("selected", SELECTION_METRICS))


def _chunk_length(n_rows: int, n_chunks: int) -> int:
    if int(n_chunks) < 1 or int(n_rows) % int(n_chunks) != 0:
        raise ValueError(
            f"n_chunks={n_chunks} does not evenly divide the grid ({n_rows} rows)."
        )
    return int(n_rows) // int(n_chunks)


def _check_table(
    table: pd.DataFrame, path: Path, expected_rows: int, columns: tuple[str, ...]
) -> None:
    if len(table) != expected_rows:
        raise ValueError(
            f"Checkpoint '{path}' has {len(table)} rows; chunk holds {expected_rows}."
        )
    missing = [c for c in columns if c not in table.columns]
    if missing:
        raise ValueError(f"Checkpoint '{path}' missing columns: {missing}")


def merge_results(
    grid: pd.DataFrame,
    root: str | Path,
    n_chunks: int,
    strategies: tuple[str, ...] = STRATEGIES,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """Return the grid with every result column filled from chunk checkpoints.

    Chunk `i` (1-based) owns rows `(i-1)*L .. i*L-1` where `L` is the chunk
    length. Missing checkpoint files are skipped, leaving those rows NaN, so
    a partially finished batch can still be analysed. The input grid is not
    modified.
    """
    log = logger or LOGGER
    validate_schema()
    n_rows = len(grid)
    length = _chunk_length(n_rows, n_chunks)
    merged = grid.reset_index(drop=True).copy()
    for col in result_columns(strategies):
        merged[col] = np.nan

    n_missing = 0
    for strategy in strategies:
        for artifact, metrics in _MERGED_ARTIFACTS:
            targets = [COLUMN_SCHEMA[(strategy, m)] for m in metrics]
            col_idx = merged.columns.get_indexer(targets)
            for i in range(1, int(n_chunks) + 1):
                path = checkpoint_path(root, artifact, i, strategy)
                table = read_checkpoint_table(path)
                if table is None:
                    n_missing += 1
                    log.info("Checkpoint %s not found; rows left unset", path.name)
                    continue
                _check_table(table, path, length, metrics)
                start = (i - 1) * length
                merged.iloc[start : start + length, col_idx] = table[
                    list(metrics)
                ].to_numpy(dtype=float)

    if n_missing:
        log.warning("Merged with %d missing checkpoint file(s).", n_missing)
    return merged


def merge_importance(
    grid: pd.DataFrame,
    root: str | Path,
    n_chunks: int,
    strategies: tuple[str, ...] = STRATEGIES,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """Per-row variable importance, columns `<strategy>_importance_X<j>`.

    Rows align with the grid; chunks without an importance checkpoint stay
    NaN. Narrower chunks (fewer moderators) are padded with NaN.
    """
    log = logger or LOGGER
    n_rows = len(grid)
    length = _chunk_length(n_rows, n_chunks)
    blocks: list[pd.DataFrame] = []
    for strategy in strategies:
        parts: dict[int, pd.DataFrame] = {}
        for i in range(1, int(n_chunks) + 1):
            path = checkpoint_path(root, "importance", i, strategy)
            table = read_checkpoint_table(path)
            if table is None:
                log.info("Checkpoint %s not found; importance rows left unset", path.name)
                continue
            _check_table(table, path, length, ())
            parts[i] = table
        width = max((t.shape[1] for t in parts.values()), default=0)
        values = np.full((n_rows, width), np.nan)
        for i, table in parts.items():
            start = (i - 1) * length
            values[start : start + length, : table.shape[1]] = table.to_numpy(dtype=float)
        blocks.append(
            pd.DataFrame(
                values,
                columns=[f"{strategy}_importance_X{j}" for j in range(1, width + 1)],
            )
        )
    return pd.concat(blocks, axis=1) if blocks else pd.DataFrame(index=range(n_rows))


def merge_study(
    root: str | Path,
    n_chunks: int | None = None,
    strategies: tuple[str, ...] = STRATEGIES,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """Merge a study directory in place and write the merged tables.

    The chunk count defaults to the length of the persisted seed list.
    """
    out = Path(root)
    grid = read_grid(out)
    if n_chunks is None:
        seeds = read_seeds(out)
        if seeds is None:
            raise FileNotFoundError(
                f"No seed list in {out}; pass the chunk count explicitly."
            )
        n_chunks = len(seeds)
    merged = merge_results(grid, out, n_chunks, strategies, logger=logger)
    atomic_write_csv(out / MERGED_FILE, merged)
    importance = merge_importance(grid, out, n_chunks, strategies, logger=logger)
    atomic_write_csv(out / IMPORTANCE_FILE, importance)
    return merged
