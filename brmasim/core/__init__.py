"""Core record types."""

from brmasim.core.types import (
    CONDITION_FIELDS,
    AccuracyRecord,
    ChunkResult,
    ChunkSpec,
    Condition,
    SelectionRecord,
    SimulatedDataset,
    StrategyOutcome,
)

__all__ = [
    "CONDITION_FIELDS",
    "AccuracyRecord",
    "ChunkResult",
    "ChunkSpec",
    "Condition",
    "SelectionRecord",
    "SimulatedDataset",
    "StrategyOutcome",
]
