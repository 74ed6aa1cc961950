from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from brmasim.aggregate import merge_importance, merge_results, merge_study
from brmasim.checkpoint import (
    IMPORTANCE_FILE,
    MERGED_FILE,
    atomic_write_csv,
    checkpoint_path,
    write_grid,
    write_seeds,
)
from brmasim.config import DesignLevels
from brmasim.design import build_design_grid
from brmasim.schema import FIT_METRICS, SELECTION_METRICS, STRATEGIES


def _grid() -> pd.DataFrame:
    return build_design_grid(
        DesignLevels(replicates=6, k_train=(22,), mean_n=(40,), es=(0.5,), tau2=(0.04,))
    )


def _write_chunk(root: Path, chunk: int, rows: int, value: float) -> None:
    for strategy in STRATEGIES:
        fits = pd.DataFrame({m: np.full(rows, value) for m in FIT_METRICS})
        sel = pd.DataFrame({m: np.full(rows, value) for m in SELECTION_METRICS})
        atomic_write_csv(checkpoint_path(root, "fits", chunk, strategy), fits)
        atomic_write_csv(checkpoint_path(root, "selected", chunk, strategy), sel)


def test_missing_chunk_leaves_only_its_rows_unset(tmp_path: Path, caplog):
    grid = _grid()
    _write_chunk(tmp_path, 1, 2, 0.1)
    _write_chunk(tmp_path, 3, 2, 0.3)
    merged = merge_results(grid, tmp_path, n_chunks=3)

    assert merged["brma_test_r2"].tolist()[:2] == [0.1, 0.1]
    assert merged["rma_true_neg"].tolist()[4:] == [0.3, 0.3]
    assert merged.iloc[2:4][["brma_tau2", "rma_true_pos"]].isna().all().all()
    assert merged.iloc[[0, 1, 4, 5]]["rma_tau2"].notna().all()
    assert any("missing checkpoint" in r.getMessage() for r in caplog.records)


def test_merge_keeps_grid_untouched(tmp_path: Path):
    grid = _grid()
    before = grid.copy()
    _write_chunk(tmp_path, 1, 6, 0.5)
    merged = merge_results(grid, tmp_path, n_chunks=1)
    pd.testing.assert_frame_equal(grid, before)
    pd.testing.assert_frame_equal(merged[list(grid.columns)], grid)
    assert merged.shape == (6, len(grid.columns) + 18)


def test_wrong_row_count_is_rejected(tmp_path: Path):
    _write_chunk(tmp_path, 1, 3, 0.5)
    with pytest.raises(ValueError, match="rows"):
        merge_results(_grid(), tmp_path, n_chunks=2)


def test_non_divisor_chunk_count_rejected(tmp_path: Path):
    with pytest.raises(ValueError, match="evenly divide"):
        merge_results(_grid(), tmp_path, n_chunks=4)


def test_importance_is_padded_to_widest_chunk(tmp_path: Path):
    grid = _grid()
    atomic_write_csv(
        checkpoint_path(tmp_path, "importance", 1, "brma"),
        pd.DataFrame({"X1": [1.0, 2.0, 3.0], "X2": [0.0, 0.0, 0.0]}),
    )
    atomic_write_csv(
        checkpoint_path(tmp_path, "importance", 2, "brma"),
        pd.DataFrame({"X1": [4.0] * 3, "X2": [5.0] * 3, "X3": [6.0] * 3}),
    )
    imp = merge_importance(grid, tmp_path, n_chunks=2, strategies=("brma",))
    assert list(imp.columns) == [
        "brma_importance_X1",
        "brma_importance_X2",
        "brma_importance_X3",
    ]
    assert imp["brma_importance_X3"].iloc[:3].isna().all()
    assert imp["brma_importance_X3"].iloc[3:].tolist() == [6.0] * 3


def test_merge_study_reads_chunk_count_from_seed_list(tmp_path: Path):
    grid = _grid()
    write_grid(tmp_path, grid)
    write_seeds(tmp_path, [11, 22])
    _write_chunk(tmp_path, 1, 3, 0.2)
    _write_chunk(tmp_path, 2, 3, 0.4)
    merged = merge_study(tmp_path)
    assert (tmp_path / MERGED_FILE).exists()
    assert (tmp_path / IMPORTANCE_FILE).exists()
    assert merged["brma_train_mse"].tolist() == [0.2] * 3 + [0.4] * 3


def test_merge_study_without_seed_list(tmp_path: Path):
    write_grid(tmp_path, _grid())
    with pytest.raises(FileNotFoundError, match="chunk count"):
        merge_study(tmp_path)
