import argparse
import json
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from scripts import cross_validate
from seqlab.config import Config


def _write_corpus(path: Path) -> None:
    lines = []
    for i in range(6):
        if i % 2 == 0:
            sample = {"tokens": ["John", "went", "home"], "spans": [{"start": 0, "end": 1, "type": "PERSON"}]}
        else:
            sample = {"tokens": ["she", "saw", "John"], "spans": [{"start": 2, "end": 3, "type": "PERSON"}]}
        lines.append(json.dumps(sample))
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _run(monkeypatch, argv) -> int:
    monkeypatch.setattr(sys, "argv", ["cross_validate.py", *argv])
    with pytest.raises(SystemExit) as exc:
        cross_validate.main()
    return exc.value.code


def test_cross_validate_prints_detailed_report(tmp_path: Path, monkeypatch, capsys) -> None:
    _write_corpus(tmp_path / "train.jsonl")
    config_path = tmp_path / "config.yaml"
    config_path.write_text("train_set: train.jsonl\nfolds: 3\n", encoding="utf-8")
    report = tmp_path / "report.csv"

    code = _run(
        monkeypatch,
        ["--config", str(config_path), "--evaluation-type", "detailed", "--report-csv", str(report), "--no-progress"],
    )

    out = capsys.readouterr().out
    assert code == 0
    assert "PERSON" in out
    assert "Fold F-measure" in out
    assert report.exists()


def test_cross_validate_reports_missing_training_set(tmp_path: Path, monkeypatch, capsys) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("train_set: missing.jsonl\nfolds: 2\n", encoding="utf-8")

    code = _run(monkeypatch, ["--config", str(config_path), "--no-progress"])

    assert code == 1
    assert "Sample file not found" in capsys.readouterr().err


def test_cross_validate_rejects_unknown_codec(tmp_path: Path, monkeypatch, capsys) -> None:
    _write_corpus(tmp_path / "train.jsonl")
    config_path = tmp_path / "config.yaml"
    config_path.write_text("train_set: train.jsonl\nfolds: 2\n", encoding="utf-8")

    code = _run(monkeypatch, ["--config", str(config_path), "--codec", "BIOES"])

    assert code == 1
    assert "BIOES" in capsys.readouterr().err


def test_types_switch_overrides_config_types() -> None:
    args = argparse.Namespace(
        train_set=None, folds=None, codec=None, evaluation_type=None, max_workers=None, types="PERSON, ORG"
    )

    cfg = cross_validate.apply_overrides(Config(types=("DATE",)), args)

    assert cfg.types == ("PERSON", "ORG")
