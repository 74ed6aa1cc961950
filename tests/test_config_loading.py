from __future__ import annotations

import json
from pathlib import Path

import pytest

from brmasim.config import (
    DesignLevels,
    ShrinkageSettings,
    load_json_config,
    load_study_config,
    study_config_from_dict,
)


def test_load_project_configs():
    root = Path(__file__).resolve().parents[1]
    full = load_study_config(root / "configs" / "study_full.json")
    smoke = load_study_config(root / "configs" / "study_smoke.json")
    assert full.design == DesignLevels()
    assert full.master_seed == 78326
    assert full.n_chunks is None
    assert smoke.n_chunks == 2
    assert smoke.shrinkage.use_lambda == "lambda_1se"
    assert smoke.design.model == ("linear", "interaction")


def test_invalid_json_reports_line_and_column(tmp_path: Path):
    bad = tmp_path / "bad.json"
    bad.write_text('{"a": 1,}\n', encoding="utf-8")
    with pytest.raises(ValueError, match=r"line \d+, column \d+"):
        load_json_config(bad)


def test_non_object_json_config_rejected(tmp_path: Path):
    bad = tmp_path / "list.json"
    bad.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
    with pytest.raises(ValueError, match="expected JSON object"):
        load_json_config(bad)


def test_non_json_extension_rejected(tmp_path: Path):
    bad = tmp_path / "cfg.yaml"
    bad.write_text("{}", encoding="utf-8")
    with pytest.raises(ValueError, match="Use a .json config file"):
        load_json_config(bad)


def test_missing_config_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_json_config(tmp_path / "nope.json")


def test_defaults_fill_missing_sections():
    cfg = study_config_from_dict({"design": {"replicates": 3, "es": 0.5}})
    assert cfg.design.replicates == 3
    assert cfg.design.es == (0.5,)
    assert cfg.design.k_train == (22, 40, 80)
    assert cfg.shrinkage == ShrinkageSettings()
    assert cfg.strategies == ("brma", "rma")


@pytest.mark.parametrize(
    "payload, match",
    [
        ({"bogus": 1}, "Unknown config keys"),
        ({"design": {"studies": [1]}}, "Unknown design factors"),
        ({"design": {"replicates": 2.5}}, "integer count"),
        ({"design": {"k_train": []}}, "at least one level"),
        ({"shrinkage": {"use_lambda": "lambda_max"}}, "use_lambda"),
        ({"shrinkage": {"n_folds": 1}}, "n_folds"),
        ({"shrinkage": {"penalty": 1}}, "Invalid shrinkage settings"),
        ({"n_chunks": 0}, "n_chunks"),
        ({"backend": "dask"}, "backend"),
        ({"strategies": ["metaforest"]}, "strategies"),
    ],
)
def test_invalid_study_config_rejected(payload, match):
    with pytest.raises(ValueError, match=match):
        study_config_from_dict(payload)
