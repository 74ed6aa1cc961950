"""Filesystem helpers for per-chunk checkpoints and study-level tables."""

from __future__ import annotations

import json
import pickle
from pathlib import Path
from typing import Any

import pandas as pd

from brmasim.utils import ensure_dir

GRID_FILE = "summarydata.csv"
SEEDS_FILE = "chunk_seeds.json"
MERGED_FILE = "data.csv"
IMPORTANCE_FILE = "importance.csv"
LOG_FILE = "logs/run.log"
CONFIG_SNAPSHOT = "config/resolved_config.json"

SIMDATA = "simdata"
STRATEGY_ARTIFACTS = ("fits", "selected", "importance", "tau2")
ARTIFACT_SUFFIX = {
    SIMDATA: ".pkl",
    "fits": ".csv",
    "selected": ".csv",
    "importance": ".csv",
    "tau2": ".csv",
}


def write_json(path: str | Path, payload: dict[str, Any] | list[Any]) -> Path:
    """Write JSON payload to disk."""
    out = Path(path)
    ensure_dir(out.parent)
    out.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    return out


def read_json(path: str | Path) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def atomic_write_csv(path: str | Path, df: pd.DataFrame) -> Path:
    """Safely write a CSV by replacing a temporary file."""
    out = Path(path)
    ensure_dir(out.parent)
    tmp = out.with_suffix(out.suffix + ".tmp")
    df.to_csv(tmp, index=False)
    tmp.replace(out)
    return out


def atomic_write_pickle(path: str | Path, obj: Any) -> Path:
    out = Path(path)
    ensure_dir(out.parent)
    tmp = out.with_suffix(out.suffix + ".tmp")
    with tmp.open("wb") as fh:
        pickle.dump(obj, fh, protocol=pickle.HIGHEST_PROTOCOL)
    tmp.replace(out)
    return out


def read_pickle(path: str | Path) -> Any:
    with Path(path).open("rb") as fh:
        return pickle.load(fh)


def checkpoint_path(
    root: str | Path, artifact: str, chunk: int, strategy: str | None = None
) -> Path:
    """Checkpoint file for one artifact of one chunk.

    ``simdata_<chunk>.pkl`` for simulated datasets and
    ``<strategy>_<artifact>_<chunk>.csv`` for per-strategy tables.
    """
    if artifact not in ARTIFACT_SUFFIX:
        raise ValueError(
            f"Unknown artifact '{artifact}'. Expected one of {sorted(ARTIFACT_SUFFIX)}."
        )
    if artifact == SIMDATA:
        stem = f"{SIMDATA}_{int(chunk)}"
    else:
        if not strategy:
            raise ValueError(f"Artifact '{artifact}' requires a strategy name.")
        stem = f"{strategy}_{artifact}_{int(chunk)}"
    return Path(root) / f"{stem}{ARTIFACT_SUFFIX[artifact]}"


def chunk_complete(root: str | Path, chunk: int, strategies: tuple[str, ...]) -> bool:
    """Whether every checkpoint for `chunk` is present on disk."""
    paths = [checkpoint_path(root, SIMDATA, chunk)]
    for strategy in strategies:
        paths.extend(
            checkpoint_path(root, art, chunk, strategy) for art in STRATEGY_ARTIFACTS
        )
    return all(p.exists() for p in paths)


def read_checkpoint_table(path: str | Path) -> pd.DataFrame | None:
    """Read a per-chunk table; ``None`` when the chunk has not been written."""
    p = Path(path)
    if not p.exists():
        return None
    return pd.read_csv(p)


def write_grid(root: str | Path, grid: pd.DataFrame) -> Path:
    return atomic_write_csv(Path(root) / GRID_FILE, grid)


def read_grid(root: str | Path) -> pd.DataFrame:
    path = Path(root) / GRID_FILE
    if not path.exists():
        raise FileNotFoundError(f"Design grid not found: {path}")
    return pd.read_csv(path, dtype={"model": str, "distribution": str})


def write_seeds(root: str | Path, seeds: list[int]) -> Path:
    return write_json(Path(root) / SEEDS_FILE, [int(s) for s in seeds])


def read_seeds(root: str | Path) -> list[int] | None:
    path = Path(root) / SEEDS_FILE
    if not path.exists():
        return None
    payload = read_json(path)
    if not isinstance(payload, list):
        raise ValueError(f"Seed file '{path}' must hold a JSON list.")
    return [int(s) for s in payload]
