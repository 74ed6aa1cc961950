"""Chunked batch driver: simulate, fit, score and checkpoint the design grid."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import pandas as pd

from brmasim.aggregate import merge_study
from brmasim.checkpoint import (
    CONFIG_SNAPSHOT,
    GRID_FILE,
    LOG_FILE,
    MERGED_FILE,
    SIMDATA,
    atomic_write_csv,
    atomic_write_pickle,
    checkpoint_path,
    chunk_complete,
    read_grid,
    read_seeds,
    write_grid,
    write_json,
    write_seeds,
)
from brmasim.config import DEFAULT_ROWS_PER_CHUNK, ShrinkageSettings, StudyConfig
from brmasim.core.types import (
    ChunkResult,
    ChunkSpec,
    Condition,
    SimulatedDataset,
    StrategyOutcome,
)
from brmasim.design import build_design_grid, conditions_from_grid
from brmasim.fitting import FittedModel, RetryPolicy, fit_shrinkage
from brmasim.parallel import make_pool, parallel_map
from brmasim.pipeline_utils import chunk_label, close_logger, setup_logger
from brmasim.schema import FIT_METRICS, SELECTION_METRICS, validate_schema
from brmasim.scoring import score_fit, selection_accuracy
from brmasim.seeding import draw_chunk_seeds, row_seeds
from brmasim.simulate import simulate_smd
from brmasim.utils import ensure_dir


@dataclass(frozen=True)
class SimulationTask:
    condition: Condition
    seed: int
    k_test: int


@dataclass(frozen=True)
class FitTask:
    dataset: SimulatedDataset
    seed: int
    strategy: str
    settings: ShrinkageSettings


@dataclass
class StudyRun:
    root: Path
    grid: pd.DataFrame
    chunks: list[ChunkSpec]
    merged: pd.DataFrame
    results: list[ChunkResult] = field(default_factory=list)


def resolve_n_chunks(n_rows: int, n_chunks: int | None = None) -> int:
    """Configured chunk count, defaulting to ten rows per chunk (rounded up)."""
    if n_chunks is not None:
        return int(n_chunks)
    return max(1, math.ceil(int(n_rows) / DEFAULT_ROWS_PER_CHUNK))


def check_chunking(n_rows: int, n_chunks: int) -> int:
    """Return the chunk length; raise when `n_chunks` does not divide `n_rows`."""
    if int(n_chunks) < 1:
        raise ValueError(f"n_chunks must be >= 1, got {n_chunks}.")
    if int(n_rows) % int(n_chunks) != 0:
        raise ValueError(
            "Make sure the number of chunks is an even divisor of the total job "
            f"length (rows={int(n_rows)}, n_chunks={int(n_chunks)})."
        )
    return int(n_rows) // int(n_chunks)


def same_design(a: pd.DataFrame, b: pd.DataFrame) -> bool:
    """Compare two grids cell by cell as text, tolerant of CSV dtype round trips."""
    if list(a.columns) != list(b.columns) or len(a) != len(b):
        return False
    return all(
        a[c].astype(str).tolist() == b[c].astype(str).tolist() for c in a.columns
    )


def plan_chunks(n_rows: int, n_chunks: int, seeds: list[int]) -> list[ChunkSpec]:
    """Partition rows 0..n_rows-1 into equal contiguous chunks, one seed each."""
    length = check_chunking(n_rows, n_chunks)
    if len(seeds) != int(n_chunks):
        raise ValueError(f"Expected {int(n_chunks)} chunk seeds, got {len(seeds)}.")
    if len(set(int(s) for s in seeds)) != len(seeds):
        raise ValueError("Chunk seeds must be distinct.")
    return [
        ChunkSpec(index=i + 1, start=i * length, stop=(i + 1) * length, seed=int(seeds[i]))
        for i in range(int(n_chunks))
    ]


def simulate_task(task: SimulationTask) -> SimulatedDataset:
    return simulate_smd(task.condition, task.seed, k_test=task.k_test)


def fit_strategy(
    dataset: SimulatedDataset,
    strategy: str,
    seed: int,
    settings: ShrinkageSettings | None = None,
) -> FittedModel:
    training = dataset.training
    if strategy == "brma":
        return fit_shrinkage(
            dataset.train_x(),
            training["yi"].to_numpy(dtype=float),
            training["vi"].to_numpy(dtype=float),
            seed=seed,
            settings=settings,
        )
    if strategy == "rma":
        return RetryPolicy().fit(training)
    raise ValueError(f"Unknown fitting strategy '{strategy}'.")


def fit_and_score(task: FitTask) -> StrategyOutcome:
    model = fit_strategy(task.dataset, task.strategy, task.seed, task.settings)
    if task.strategy == "brma":
        fit_config, n_attempts = model.use_lambda, model.n_iter
    else:
        fit_config, n_attempts = model.stage, len(model.attempts)
    return StrategyOutcome(
        accuracy=score_fit(model, task.dataset),
        selection=selection_accuracy(model.selected(), task.dataset.n_relevant),
        importance=np.asarray(model.importance(), dtype=float),
        fit_config=str(fit_config),
        n_attempts=int(n_attempts),
    )


def outcome_tables(outcomes: list[StrategyOutcome]) -> dict[str, pd.DataFrame]:
    """Per-chunk checkpoint tables, one row per condition in grid order."""
    fits = pd.DataFrame(
        [o.accuracy.to_dict() for o in outcomes], columns=list(FIT_METRICS)
    )
    selected = pd.DataFrame(
        [o.selection.to_dict() for o in outcomes], columns=list(SELECTION_METRICS)
    )
    width = max((o.importance.size for o in outcomes), default=0)
    imp = np.full((len(outcomes), width), np.nan)
    for i, o in enumerate(outcomes):
        imp[i, : o.importance.size] = o.importance
    importance = pd.DataFrame(imp, columns=[f"X{j}" for j in range(1, width + 1)])
    tau2 = pd.DataFrame(
        {
            "tau2": [o.accuracy.tau2 for o in outcomes],
            "fit_config": [o.fit_config for o in outcomes],
            "n_attempts": [o.n_attempts for o in outcomes],
        }
    )
    return {"fits": fits, "selected": selected, "importance": importance, "tau2": tau2}


def run_chunk(
    chunk: ChunkSpec,
    grid: pd.DataFrame,
    config: StudyConfig,
    root: Path,
    pool,
    logger: logging.Logger,
    n_chunks: int,
) -> ChunkResult:
    """Simulate, fit and checkpoint one chunk; datasets are released on return."""
    label = chunk_label(chunk.index, n_chunks)
    t0 = time.time()
    conditions = conditions_from_grid(grid, chunk.start, chunk.stop)
    seeds = row_seeds(chunk.seed, chunk.n_rows)

    sim_tasks = [
        SimulationTask(condition=c, seed=int(seeds[i, 0]), k_test=config.k_test)
        for i, c in enumerate(conditions)
    ]
    datasets = parallel_map(simulate_task, sim_tasks, pool=pool)
    if len(datasets) != chunk.n_rows:
        raise RuntimeError(
            f"{label}: simulated {len(datasets)} datasets for {chunk.n_rows} rows."
        )
    atomic_write_pickle(checkpoint_path(root, SIMDATA, chunk.index), datasets)
    logger.info("%s: simulated %d datasets (seed=%d)", label, len(datasets), chunk.seed)

    result = ChunkResult(chunk=chunk, n_datasets=len(datasets))
    for strategy in config.strategies:
        fit_tasks = [
            FitTask(
                dataset=d,
                seed=int(seeds[i, 1]),
                strategy=strategy,
                settings=config.shrinkage,
            )
            for i, d in enumerate(datasets)
        ]
        outcomes = parallel_map(fit_and_score, fit_tasks, pool=pool)
        if len(outcomes) != chunk.n_rows:
            raise RuntimeError(
                f"{label}: {strategy} returned {len(outcomes)} fits for {chunk.n_rows} rows."
            )
        for artifact, table in outcome_tables(outcomes).items():
            atomic_write_csv(checkpoint_path(root, artifact, chunk.index, strategy), table)
        if strategy == "rma":
            n_retried = sum(1 for o in outcomes if o.n_attempts > 1)
            logger.info(
                "%s: rma fitted %d models (%d needed a fallback stage)",
                label,
                len(outcomes),
                n_retried,
            )
        else:
            logger.info("%s: %s fitted %d models", label, strategy, len(outcomes))
        result.outcomes[strategy] = outcomes
        del fit_tasks

    del datasets
    logger.info("%s: done in %.1fs", label, time.time() - t0)
    return result


def prepare_study(
    config: StudyConfig,
    root: Path,
    logger: logging.Logger,
    *,
    resume: bool = False,
) -> tuple[pd.DataFrame, list[ChunkSpec]]:
    """Build the grid and seed plan and persist both before any work starts."""
    validate_schema()
    grid = build_design_grid(config.design)
    n_chunks = resolve_n_chunks(len(grid), config.n_chunks)
    check_chunking(len(grid), n_chunks)

    seeds = read_seeds(root) if resume else None
    if seeds is None:
        seeds = draw_chunk_seeds(n_chunks, config.master_seed)
    elif len(seeds) != n_chunks:
        raise ValueError(
            f"Existing seed file holds {len(seeds)} seeds; configuration needs {n_chunks}."
        )
    else:
        logger.info("Reusing %d chunk seeds from %s", len(seeds), root)

    if resume and (root / GRID_FILE).exists():
        existing = read_grid(root)
        if not same_design(existing, grid):
            raise ValueError(
                f"Existing design grid in {root} differs from the configured design."
            )

    chunks = plan_chunks(len(grid), n_chunks, seeds)
    write_grid(root, grid)
    write_seeds(root, seeds)
    write_json(root / CONFIG_SNAPSHOT, config.to_dict())
    logger.info(
        "Design grid: %d conditions in %d chunks of %d",
        len(grid),
        n_chunks,
        chunks[0].n_rows,
    )
    return grid, chunks


def run_study(
    config: StudyConfig,
    root: str | Path | None = None,
    *,
    resume: bool = False,
    logger: logging.Logger | None = None,
) -> StudyRun:
    """Run every chunk sequentially on one worker pool, then merge checkpoints."""
    out = ensure_dir(root if root is not None else config.outdir)
    log = logger or setup_logger(out / LOG_FILE, "brmasim")
    try:
        grid, chunks = prepare_study(config, out, log, resume=resume)

        results: list[ChunkResult] = []
        with make_pool(n_jobs=config.n_jobs, backend=config.backend) as pool:
            for chunk in chunks:
                if resume and chunk_complete(out, chunk.index, config.strategies):
                    log.info(
                        "%s: checkpoints present, skipping",
                        chunk_label(chunk.index, len(chunks)),
                    )
                    results.append(
                        ChunkResult(chunk=chunk, n_datasets=chunk.n_rows, skipped=True)
                    )
                    continue
                results.append(
                    run_chunk(chunk, grid, config, out, pool, log, len(chunks))
                )

        merged = merge_study(out, len(chunks), config.strategies, logger=log)
        log.info("Merged table written to %s", out / MERGED_FILE)
    finally:
        if logger is None:
            close_logger(log)
    return StudyRun(root=out, grid=grid, chunks=chunks, merged=merged, results=results)
