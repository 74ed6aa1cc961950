#!/usr/bin/env python3
"""Run the full BRMA vs RMA simulation study from a JSON config."""

from __future__ import annotations

import argparse

from brmasim.cli import main as cli_main


def main() -> int:
    """Main CLI entry point for a complete study run.

    Returns:
        Exit code (0 for success).
    """
    parser = argparse.ArgumentParser(description="BRMA vs RMA simulation study")
    parser.add_argument(
        "--config",
        default="configs/study_full.json",
        help="Path to study config",
    )
    parser.add_argument("--resume", action="store_true", help="Resume a partial run")
    args = parser.parse_args()

    forwarded = ["run", "--config", str(args.config)]
    if bool(args.resume):
        forwarded.append("--resume")
    return cli_main(forwarded)


if __name__ == "__main__":
    raise SystemExit(main())
