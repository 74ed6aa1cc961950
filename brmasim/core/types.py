"""Typed records passed between simulation, fitting and scoring stages."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

import numpy as np
import pandas as pd

CONDITION_FIELDS = (
    "replicate",
    "k_train",
    "mean_n",
    "es",
    "tau2",
    "moderators",
    "model",
    "distribution",
)


@dataclass(frozen=True)
class Condition:
    """One row of the factorial design grid."""

    replicate: int
    k_train: int
    mean_n: float
    es: float
    tau2: float
    moderators: int
    model: str
    distribution: str

    @property
    def n_relevant(self) -> int:
        return int(self.moderators) // 2

    @classmethod
    def from_row(cls, row: dict[str, Any] | pd.Series) -> "Condition":
        missing = [name for name in CONDITION_FIELDS if name not in row]
        if missing:
            raise ValueError(f"Condition row missing fields: {missing}")
        return cls(
            replicate=int(row["replicate"]),
            k_train=int(row["k_train"]),
            mean_n=float(row["mean_n"]),
            es=float(row["es"]),
            tau2=float(row["tau2"]),
            moderators=int(row["moderators"]),
            model=str(row["model"]),
            distribution=str(row["distribution"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SimulatedDataset:
    """Training and held-out partitions simulated from one condition.

    - `training`: columns `yi`, `vi`, `X1..Xm`.
    - `testing`: columns `yi`, `X1..Xm`; `yi` is the population effect.
    """

    training: pd.DataFrame
    testing: pd.DataFrame
    n_relevant: int
    seed: int

    @property
    def moderator_names(self) -> list[str]:
        return [c for c in self.training.columns if c not in ("yi", "vi")]

    def train_x(self) -> np.ndarray:
        return self.training[self.moderator_names].to_numpy(dtype=float)

    def test_x(self) -> np.ndarray:
        return self.testing[self.moderator_names].to_numpy(dtype=float)


@dataclass(frozen=True)
class AccuracyRecord:
    train_r2: float
    train_mse: float
    train_r: float
    test_r2: float
    test_mse: float
    test_r: float
    tau2: float

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class SelectionRecord:
    true_pos: float
    true_neg: float

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class ChunkSpec:
    """Contiguous slice of grid rows processed and checkpointed together."""

    index: int
    start: int
    stop: int
    seed: int

    @property
    def n_rows(self) -> int:
        return int(self.stop) - int(self.start)


@dataclass(frozen=True)
class StrategyOutcome:
    """Everything a worker hands back for one (condition, strategy) pair."""

    accuracy: AccuracyRecord
    selection: SelectionRecord
    importance: np.ndarray
    fit_config: str
    n_attempts: int = 1


@dataclass
class ChunkResult:
    chunk: ChunkSpec
    n_datasets: int
    outcomes: dict[str, list[StrategyOutcome]] = field(default_factory=dict)
    skipped: bool = False
