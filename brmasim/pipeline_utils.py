"""Shared helpers for simulation pipeline modules."""

from __future__ import annotations

import logging
from pathlib import Path

from brmasim.utils import ensure_dir

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def setup_logger(log_path: Path, logger_name: str) -> logging.Logger:
    ensure_dir(log_path.parent)
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    formatter = logging.Formatter(LOG_FORMAT)
    fh = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    fh.setFormatter(formatter)
    logger.addHandler(fh)
    sh = logging.StreamHandler()
    sh.setFormatter(formatter)
    logger.addHandler(sh)
    return logger


def close_logger(logger: logging.Logger) -> None:
    """Detach and close all handlers so log files are released."""
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def chunk_label(index: int, n_chunks: int) -> str:
    return f"chunk {int(index)}/{int(n_chunks)}"
