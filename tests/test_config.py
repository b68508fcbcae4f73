import json
from pathlib import Path

import pytest

from seqlab.config import load_config
from seqlab.errors import InvalidConfigurationError
from seqlab.factory import DEFAULT_DESCRIPTOR


def test_load_config_reads_settings_and_feature_file(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    (tmp_path / "features.yaml").write_text(
        """
generators:
  - kind: token
  - kind: pos_tag
    params: {model: pos}
""".strip(),
        encoding="utf-8",
    )
    (tmp_path / "lexicon.tsv").write_text("john\tNNP\nruns\tVBZ\n", encoding="utf-8")
    config_path.write_text(
        """
train_set: data/train.jsonl
folds: 5
beam_size: 4
codec: BILOU
default_type: ENT
types: PERSON, ORG
evaluation_type: detailed
features: features.yaml
resources:
  pos:
    kind: lexicon
    path: lexicon.tsv
    lowercase: true
trainer:
  alpha: 0.5
  cutoff: 2
max_workers: 2
""".strip(),
        encoding="utf-8",
    )

    cfg = load_config(str(config_path))

    assert cfg.train_set == tmp_path / "data" / "train.jsonl"
    assert cfg.folds == 5
    assert cfg.beam_size == 4
    assert cfg.codec == "BILOU"
    assert cfg.default_type == "ENT"
    assert cfg.types == ("PERSON", "ORG")
    assert cfg.evaluation_type == "detailed"
    assert [g.kind for g in cfg.features.generators] == ["token", "pos_tag"]
    assert cfg.trainer == {"alpha": 0.5, "cutoff": 2}
    assert cfg.max_workers == 2

    cg = cfg.create_factory().create_context_generator()
    assert "posTag=NNP" in cg.get_context(0, ["John", "runs"], [])


def test_load_config_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("train_set: train.jsonl", encoding="utf-8")

    cfg = load_config(str(config_path))

    assert cfg.folds == 10
    assert cfg.beam_size == 3
    assert cfg.codec == "BIO"
    assert cfg.types == ()
    assert cfg.evaluation_type == "none"
    assert cfg.features == DEFAULT_DESCRIPTOR
    assert cfg.max_workers == 1


def test_load_config_accepts_inline_features(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        json.dumps({"features": [{"kind": "token"}], "types": ["PERSON"]}),
        encoding="utf-8",
    )

    cfg = load_config(str(config_path))

    assert [g.kind for g in cfg.features.generators] == ["token"]
    assert cfg.types == ("PERSON",)


def test_load_config_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.yaml"))


def test_load_config_rejects_non_dict_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- not a mapping", encoding="utf-8")

    with pytest.raises(TypeError):
        load_config(str(config_path))


def test_load_config_rejects_invalid_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("folds: [3", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(str(config_path))


@pytest.mark.parametrize(
    "content",
    [
        "folds: 1",
        "beam_size: 0",
        "evaluation_type: verbose",
        "features: [{kind: nope}]",
        "resources: [pos]",
    ],
)
def test_load_config_rejects_invalid_settings(tmp_path: Path, content: str) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(content, encoding="utf-8")

    with pytest.raises(InvalidConfigurationError):
        load_config(str(config_path))


@pytest.mark.parametrize("key", ["folds", "beam_size", "max_workers"])
def test_load_config_names_the_key_of_a_non_numeric_setting(tmp_path: Path, key: str) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"{key}: many", encoding="utf-8")

    with pytest.raises(InvalidConfigurationError, match=f"'{key}' must be an integer"):
        load_config(str(config_path))
