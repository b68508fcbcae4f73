# seqlab/config.py
"""Loads cross-validation settings from a YAML file.

The :class:`Config` dataclass collects everything a cross-validation run
needs: the training data, the fold count, the codec and feature descriptor,
named resources and the trainer parameters. Relative paths (training set,
feature descriptor, resource files) are resolved against the directory that
holds the configuration file.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .errors import InvalidConfigurationError
from .factory import DEFAULT_DESCRIPTOR, FeatureDescriptor, SequenceLabelerFactory, load_descriptor
from .resources import load_resources

__all__ = ["Config", "EVALUATION_TYPES", "load_config"]

EVALUATION_TYPES = ("none", "error", "detailed")


@dataclass
class Config:
    """
    A typed container for the settings of a cross-validation run.

    Attributes:
        train_set: Path of the JSON-lines file with the labelled samples.
        folds: Number of cross-validation folds (at least 2).
        beam_size: Beam width used while decoding held-out samples.
        codec: Name of the span codec (``BIO`` or ``BILOU``).
        default_type: Entity type given to spans that carry none.
        types: If set, only spans of these types are kept.
        evaluation_type: ``none``, ``error`` (log misclassified samples) or
                         ``detailed`` (per-type table).
        features: The feature descriptor.
        resources: Resource entries, loaded by :meth:`create_factory`.
        trainer: Parameters passed to the trainer unchanged.
        max_workers: Number of folds processed concurrently.
        base_dir: Directory relative paths are resolved against.
    """
    train_set: Optional[Path] = None
    folds: int = 10
    beam_size: int = 3
    codec: str = "BIO"
    default_type: Optional[str] = None
    types: Tuple[str, ...] = ()
    evaluation_type: str = "none"
    features: FeatureDescriptor = DEFAULT_DESCRIPTOR
    resources: Dict[str, Any] = field(default_factory=dict)
    trainer: Dict[str, Any] = field(default_factory=dict)
    max_workers: int = 1
    base_dir: Path = Path(".")

    def create_factory(self) -> SequenceLabelerFactory:
        """Loads the configured resources and builds the labeler factory."""
        resources = load_resources(self.resources, self.base_dir)
        return SequenceLabelerFactory(self.features, resources, self.codec)


def _parse_types(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(t.strip() for t in value.split(",") if t.strip())
    if isinstance(value, list):
        return tuple(str(t) for t in value)
    raise InvalidConfigurationError(f"'types' must be a list or a comma separated string, got {value!r}.")


def _int_setting(y: Dict[str, Any], key: str, default: int, minimum: int) -> int:
    value = y.get(key, default)
    if isinstance(value, bool):
        raise InvalidConfigurationError(f"'{key}' must be an integer, got {value!r}.")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidConfigurationError(f"'{key}' must be an integer, got {value!r}.") from None
    if number < minimum:
        raise InvalidConfigurationError(f"'{key}' must be at least {minimum}, got {number}.")
    return number


def _parse_features(value: Any, base_dir: Path) -> FeatureDescriptor:
    if value is None:
        return DEFAULT_DESCRIPTOR
    if isinstance(value, str):
        return load_descriptor(base_dir / value)
    return FeatureDescriptor.from_dict(value)


def load_config(path: str = "config.yaml") -> Config:
    """
    Loads and validates a cross-validation configuration file.

    Args:
        path: The path to the YAML file.

    Returns:
        A populated :class:`Config`.

    Raises:
        FileNotFoundError: If the file (or a referenced descriptor) cannot be found.
        ValueError: If there is an error parsing the YAML file.
        TypeError: If the root of the YAML file is not a dictionary.
        InvalidConfigurationError: If a setting has an invalid value.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            y = yaml.safe_load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found at: {path}")
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML file at {path}: {e}")

    if not isinstance(y, dict):
        raise TypeError(f"Configuration file {path} must be a dictionary.")

    base_dir = Path(path).parent

    folds = _int_setting(y, "folds", 10, minimum=2)
    beam_size = _int_setting(y, "beam_size", 3, minimum=1)
    max_workers = _int_setting(y, "max_workers", 1, minimum=1)

    evaluation_type = str(y.get("evaluation_type", "none")).lower()
    if evaluation_type not in EVALUATION_TYPES:
        raise InvalidConfigurationError(
            f"'evaluation_type' must be one of {', '.join(EVALUATION_TYPES)}, got '{evaluation_type}'."
        )

    resources = y.get("resources") or {}
    if not isinstance(resources, dict):
        raise InvalidConfigurationError("'resources' must be a mapping of name to resource entry.")
    trainer = y.get("trainer") or {}
    if not isinstance(trainer, dict):
        raise InvalidConfigurationError("'trainer' must be a mapping of parameters.")

    train_set = y.get("train_set")
    return Config(
        train_set=base_dir / train_set if train_set else None,
        folds=folds,
        beam_size=beam_size,
        codec=str(y.get("codec", "BIO")),
        default_type=y.get("default_type"),
        types=_parse_types(y.get("types")),
        evaluation_type=evaluation_type,
        features=_parse_features(y.get("features"), base_dir),
        resources=dict(resources),
        trainer=dict(trainer),
        max_workers=max_workers,
        base_dir=base_dir,
    )
