from __future__ import annotations

import importlib.util
import sys
from pathlib import Path

from brmasim.cli import main as cli_main
from brmasim.cli import parse_args


def _load_script_module(script_name: str):
    root = Path(__file__).resolve().parents[1]
    script_path = root / "scripts" / script_name
    spec = importlib.util.spec_from_file_location(script_name.replace(".py", ""), script_path)
    if spec is None or spec.loader is None:
        raise RuntimeError(f"Unable to load script module: {script_path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _smoke_config() -> str:
    return str(Path(__file__).resolve().parents[1] / "configs" / "study_smoke.json")


def test_run_study_script_forwards_to_cli(monkeypatch):
    module = _load_script_module("run_study.py")
    called: list[list[str]] = []

    def _fake_main(argv: list[str]) -> int:
        called.append(list(argv))
        return 0

    monkeypatch.setattr(module, "cli_main", _fake_main)
    monkeypatch.setattr(sys, "argv", ["run_study.py", "--config", "tiny.json", "--resume"])

    rc = module.main()
    assert rc == 0
    assert called == [["run", "--config", "tiny.json", "--resume"]]


def test_cli_dry_run_reports_plan(capsys):
    rc = cli_main(["run", "--config", _smoke_config(), "--dry_run"])
    assert rc == 0
    out = capsys.readouterr().out
    assert "conditions=4 n_chunks=2 chunk_length=2" in out


def test_cli_overrides_and_aliases():
    args = parse_args(
        ["run", "--config", "c.json", "--workers", "3", "--master_seed", "9", "--resume"]
    )
    assert args.n_jobs == 3
    assert args.master_seed == 9
    assert args.resume


def test_cli_grid_writes_plan(tmp_path: Path):
    out = tmp_path / "grid_only"
    rc = cli_main(["grid", "--config", _smoke_config(), "--outdir", str(out)])
    assert rc == 0
    assert (out / "summarydata.csv").exists()
    assert (out / "chunk_seeds.json").exists()
    assert not (out / "data.csv").exists()
