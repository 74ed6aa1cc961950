"""Command-line interface for the BRMA/RMA simulation study."""

from __future__ import annotations

import argparse
import dataclasses
import sys
from pathlib import Path
from typing import Iterable

from brmasim.aggregate import merge_study
from brmasim.checkpoint import LOG_FILE, MERGED_FILE
from brmasim.config import BACKENDS, StudyConfig, load_study_config
from brmasim.design import build_design_grid
from brmasim.driver import check_chunking, prepare_study, resolve_n_chunks, run_study
from brmasim.pipeline_utils import close_logger, setup_logger
from brmasim.schema import STRATEGIES
from brmasim.utils import ensure_dir


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", required=True, type=str, help="Study config (.json)")
    parser.add_argument(
        "--outdir",
        type=str,
        default=None,
        help="Output directory (defaults to the config's outdir).",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="BRMA vs RMA simulation study")
    sub = parser.add_subparsers(dest="command", required=True)

    grid = sub.add_parser("grid", help="Write the design grid and chunk seed plan")
    _add_config_args(grid)

    run = sub.add_parser("run", help="Simulate, fit, score and merge every chunk")
    _add_config_args(run)
    run.add_argument(
        "--n_jobs",
        "--workers",
        dest="n_jobs",
        type=int,
        default=None,
        help="Worker processes (-1 uses every core).",
    )
    run.add_argument("--backend", type=str, choices=list(BACKENDS), default=None)
    run.add_argument("--master_seed", type=int, default=None, help="Master seed.")
    run.add_argument(
        "--resume",
        action="store_true",
        help="Reuse the seed list and skip chunks whose checkpoints exist.",
    )
    run.add_argument(
        "--dry_run",
        action="store_true",
        help="Print condition/chunk counts and exit.",
    )

    merge = sub.add_parser("merge", help="Merge existing chunk checkpoints")
    merge.add_argument("--outdir", required=True, type=str)
    merge.add_argument(
        "--n_chunks",
        type=int,
        default=None,
        help="Chunk count (defaults to the length of the saved seed list).",
    )
    merge.add_argument(
        "--strategies", nargs="+", choices=list(STRATEGIES), default=list(STRATEGIES)
    )
    return parser.parse_args(argv)


def _resolved_config(args: argparse.Namespace) -> StudyConfig:
    cfg = load_study_config(args.config)
    overrides = {}
    if getattr(args, "outdir", None):
        overrides["outdir"] = str(args.outdir)
    if getattr(args, "n_jobs", None) is not None:
        overrides["n_jobs"] = int(args.n_jobs)
    if getattr(args, "backend", None):
        overrides["backend"] = str(args.backend)
    if getattr(args, "master_seed", None) is not None:
        overrides["master_seed"] = int(args.master_seed)
    return dataclasses.replace(cfg, **overrides) if overrides else cfg


def _dry_run(cfg: StudyConfig) -> int:
    grid = build_design_grid(cfg.design)
    n_chunks = resolve_n_chunks(len(grid), cfg.n_chunks)
    length = check_chunking(len(grid), n_chunks)
    print(
        f"conditions={len(grid)} n_chunks={n_chunks} chunk_length={length} "
        f"strategies={','.join(cfg.strategies)} outdir={cfg.outdir}"
    )
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(list(argv) if argv is not None else None)

    if args.command == "merge":
        out = Path(args.outdir)
        logger = setup_logger(out / LOG_FILE, "brmasim")
        try:
            merge_study(out, args.n_chunks, tuple(args.strategies), logger=logger)
            logger.info("Merged table written to %s", out / MERGED_FILE)
        finally:
            close_logger(logger)
        return 0

    cfg = _resolved_config(args)
    if args.command == "run" and bool(args.dry_run):
        return _dry_run(cfg)

    out = ensure_dir(cfg.outdir)
    logger = setup_logger(out / LOG_FILE, "brmasim")
    try:
        if args.command == "grid":
            prepare_study(cfg, out, logger)
        else:
            run_study(cfg, out, resume=bool(args.resume), logger=logger)
    finally:
        close_logger(logger)
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
