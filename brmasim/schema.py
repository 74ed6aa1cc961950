"""Result-column schema for the merged analysis table."""

from __future__ import annotations

from brmasim.core.types import CONDITION_FIELDS

STRATEGIES = ("brma", "rma")

FIT_METRICS = (
    "train_r2",
    "train_mse",
    "train_r",
    "test_r2",
    "test_mse",
    "test_r",
    "tau2",
)
SELECTION_METRICS = ("true_pos", "true_neg")

COLUMN_SCHEMA: dict[tuple[str, str], str] = {
    ("brma", "train_r2"): "brma_train_r2",
    ("brma", "train_mse"): "brma_train_mse",
    ("brma", "train_r"): "brma_train_r",
    ("brma", "test_r2"): "brma_test_r2",
    ("brma", "test_mse"): "brma_test_mse",
    ("brma", "test_r"): "brma_test_r",
    ("brma", "tau2"): "brma_tau2",
    ("brma", "true_pos"): "brma_true_pos",
    ("brma", "true_neg"): "brma_true_neg",
    ("rma", "train_r2"): "rma_train_r2",
    ("rma", "train_mse"): "rma_train_mse",
    ("rma", "train_r"): "rma_train_r",
    ("rma", "test_r2"): "rma_test_r2",
    ("rma", "test_mse"): "rma_test_mse",
    ("rma", "test_r"): "rma_test_r",
    ("rma", "tau2"): "rma_tau2",
    ("rma", "true_pos"): "rma_true_pos",
    ("rma", "true_neg"): "rma_true_neg",
}


def validate_schema(
    schema: dict[tuple[str, str], str] | None = None,
    strategies: tuple[str, ...] = STRATEGIES,
) -> None:
    """Check the schema covers every (strategy, metric) pair exactly once."""
    mapping = COLUMN_SCHEMA if schema is None else schema
    expected = {
        (s, m) for s in strategies for m in (*FIT_METRICS, *SELECTION_METRICS)
    }
    missing = sorted(expected - set(mapping))
    if missing:
        raise ValueError(f"Column schema missing entries: {missing}")
    unknown = sorted(set(mapping) - expected)
    if unknown:
        raise ValueError(f"Column schema has unknown entries: {unknown}")
    cols = list(mapping.values())
    dupes = sorted({c for c in cols if cols.count(c) > 1})
    if dupes:
        raise ValueError(f"Column schema maps several metrics to: {dupes}")
    clash = sorted(set(cols) & set(CONDITION_FIELDS))
    if clash:
        raise ValueError(f"Column schema collides with grid columns: {clash}")


def fit_columns(strategy: str) -> list[str]:
    return [COLUMN_SCHEMA[(strategy, m)] for m in FIT_METRICS]


def selection_columns(strategy: str) -> list[str]:
    return [COLUMN_SCHEMA[(strategy, m)] for m in SELECTION_METRICS]


def result_columns(strategies: tuple[str, ...] = STRATEGIES) -> list[str]:
    cols: list[str] = []
    for strategy in strategies:
        cols.extend(fit_columns(strategy))
        cols.extend(selection_columns(strategy))
    return cols
