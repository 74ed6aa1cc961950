"""Configuration loading utilities for the simulation study."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from brmasim.schema import STRATEGIES

DEFAULT_MASTER_SEED = 78326
DEFAULT_ROWS_PER_CHUNK = 10
LAMBDA_RULES = ("lambda_min", "lambda_1se")
BACKENDS = ("loky", "multiprocessing", "threading")


def load_json_config(path: str | Path) -> dict[str, Any]:
    """Load and validate a study config from a JSON file."""
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    if config_path.suffix.lower() != ".json":
        raise ValueError(
            f"Unsupported config format for '{config_path}'. Use a .json config file."
        )

    try:
        with open(config_path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"Invalid JSON in config '{config_path}' at line {exc.lineno}, "
            f"column {exc.colno}: {exc.msg}"
        ) from exc

    if not isinstance(data, dict):
        raise ValueError(
            f"Invalid config root in '{config_path}': expected JSON object, got {type(data).__name__}."
        )
    return data


@dataclass(frozen=True)
class DesignLevels:
    """Levels of every factor in the simulation design."""

    replicates: int = 100
    k_train: tuple[int, ...] = (22, 40, 80)
    mean_n: tuple[float, ...] = (40, 100, 200)
    es: tuple[float, ...] = (0.2, 0.5, 0.8)
    tau2: tuple[float, ...] = (0.01, 0.04, 0.1)
    moderators: tuple[int, ...] = (20,)
    model: tuple[str, ...] = ("linear",)
    distribution: tuple[str, ...] = ("bernoulli",)


@dataclass(frozen=True)
class ShrinkageSettings:
    n_folds: int = 10
    use_lambda: str = "lambda_min"
    n_alphas: int = 100
    max_iter: int = 100
    tol: float = 1e-4


@dataclass(frozen=True)
class StudyConfig:
    design: DesignLevels = field(default_factory=DesignLevels)
    shrinkage: ShrinkageSettings = field(default_factory=ShrinkageSettings)
    k_test: int = 100
    n_chunks: int | None = None
    master_seed: int = DEFAULT_MASTER_SEED
    n_jobs: int = -1
    backend: str = "loky"
    outdir: str = "results"
    strategies: tuple[str, ...] = STRATEGIES

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _as_levels(name: str, value: Any, cast) -> tuple:
    if isinstance(value, (list, tuple)):
        vals = list(value)
    else:
        vals = [value]
    if not vals:
        raise ValueError(f"design.{name} must list at least one level.")
    try:
        return tuple(cast(v) for v in vals)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"design.{name} has an invalid level: {exc}") from exc


def _design_from_dict(raw: dict[str, Any]) -> DesignLevels:
    base = DesignLevels()
    unknown = sorted(set(raw) - set(asdict(base)))
    if unknown:
        raise ValueError(f"Unknown design factors: {unknown}")
    replicates = raw.get("replicates", base.replicates)
    if isinstance(replicates, bool) or not isinstance(replicates, int):
        raise ValueError("design.replicates must be an integer count.")
    return DesignLevels(
        replicates=int(replicates),
        k_train=_as_levels("k_train", raw.get("k_train", base.k_train), int),
        mean_n=_as_levels("mean_n", raw.get("mean_n", base.mean_n), float),
        es=_as_levels("es", raw.get("es", base.es), float),
        tau2=_as_levels("tau2", raw.get("tau2", base.tau2), float),
        moderators=_as_levels(
            "moderators", raw.get("moderators", base.moderators), int
        ),
        model=_as_levels("model", raw.get("model", base.model), str),
        distribution=_as_levels(
            "distribution", raw.get("distribution", base.distribution), str
        ),
    )


def _shrinkage_from_dict(raw: dict[str, Any]) -> ShrinkageSettings:
    settings = ShrinkageSettings(**raw)
    if settings.use_lambda not in LAMBDA_RULES:
        raise ValueError(
            f"shrinkage.use_lambda must be one of {LAMBDA_RULES}, got '{settings.use_lambda}'."
        )
    if int(settings.n_folds) < 2:
        raise ValueError("shrinkage.n_folds must be >= 2.")
    if int(settings.max_iter) < 1 or float(settings.tol) <= 0.0:
        raise ValueError("shrinkage.max_iter must be >= 1 and shrinkage.tol > 0.")
    return settings


def study_config_from_dict(data: dict[str, Any]) -> StudyConfig:
    """Build a validated `StudyConfig` from a parsed JSON object."""
    known = set(asdict(StudyConfig()))
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {unknown}")

    design = _design_from_dict(dict(data.get("design", {})))
    try:
        shrinkage = _shrinkage_from_dict(dict(data.get("shrinkage", {})))
    except TypeError as exc:
        raise ValueError(f"Invalid shrinkage settings: {exc}") from exc

    n_chunks = data.get("n_chunks")
    if n_chunks is not None and int(n_chunks) < 1:
        raise ValueError("n_chunks must be a positive integer.")
    k_test = int(data.get("k_test", 100))
    if k_test < 2:
        raise ValueError("k_test must be >= 2.")
    backend = str(data.get("backend", "loky"))
    if backend not in BACKENDS:
        raise ValueError(f"backend must be one of {BACKENDS}, got '{backend}'.")
    strategies = tuple(str(s) for s in data.get("strategies", STRATEGIES))
    bad = [s for s in strategies if s not in STRATEGIES]
    if bad or not strategies:
        raise ValueError(f"strategies must be a non-empty subset of {STRATEGIES}.")

    return StudyConfig(
        design=design,
        shrinkage=shrinkage,
        k_test=k_test,
        n_chunks=int(n_chunks) if n_chunks is not None else None,
        master_seed=int(data.get("master_seed", DEFAULT_MASTER_SEED)),
        n_jobs=int(data.get("n_jobs", -1)),
        backend=backend,
        outdir=str(data.get("outdir", "results")),
        strategies=strategies,
    )


def load_study_config(path: str | Path) -> StudyConfig:
    return study_config_from_dict(load_json_config(path))
