# seqlab/factory.py
"""Builds codec and feature pipelines from a serializable descriptor.

A feature descriptor is an ordered list of generator entries::

    generators:
      - kind: window
        params: {prev: 2, next: 2}
        generators:
          - kind: token
          - kind: token_class
      - kind: outcome_prior
      - kind: pos_tag
        params: {model: pos}

Generator kinds and codec names are resolved against the registries in
:mod:`seqlab.features` and :mod:`seqlab.codec`, so new variants can be added
without touching this module. Anything that cannot be resolved is reported as
:class:`~seqlab.errors.InvalidConfigurationError` while the factory is being
constructed.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import yaml

from .codec import SequenceCodec, create_codec
from .context import SequenceContextGenerator
from .errors import FeatureGeneratorCreationError, InvalidConfigurationError
from .features import FEATURE_GENERATORS, FeatureGenerator

__all__ = [
    "GeneratorSpec",
    "FeatureDescriptor",
    "DEFAULT_DESCRIPTOR",
    "load_descriptor",
    "resource_resolver",
    "build_feature_generator",
    "SequenceLabelerFactory",
]

_ENTRY_KEYS = {"kind", "params", "generators"}

Resources = Union[Mapping[str, Any], Callable[[str], Any], None]


@dataclass(frozen=True)
class GeneratorSpec:
    """One entry of a feature descriptor."""
    kind: str
    params: Mapping[str, Any] = field(default_factory=dict)
    generators: Tuple["GeneratorSpec", ...] = ()

    @classmethod
    def from_dict(cls, data: Any, where: str = "generator") -> "GeneratorSpec":
        if not isinstance(data, Mapping):
            raise InvalidConfigurationError(f"{where} must be a mapping, got {type(data).__name__}.")
        unknown = set(data) - _ENTRY_KEYS
        if unknown:
            raise InvalidConfigurationError(f"{where} has unknown keys: {sorted(unknown)}.")
        kind = data.get("kind")
        if not isinstance(kind, str) or not kind:
            raise InvalidConfigurationError(f"{where} is missing a 'kind'.")
        if kind not in FEATURE_GENERATORS:
            raise InvalidConfigurationError(f"Unknown feature generator '{kind}' in {where}.")
        params = data.get("params") or {}
        if not isinstance(params, Mapping):
            raise InvalidConfigurationError(f"'params' of {where} ({kind}) must be a mapping.")
        children = data.get("generators") or []
        if not isinstance(children, list):
            raise InvalidConfigurationError(f"'generators' of {where} ({kind}) must be a list.")
        return cls(
            kind=kind,
            params=dict(params),
            generators=tuple(
                cls.from_dict(child, f"{where}.generators[{i}]") for i, child in enumerate(children)
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind}
        if self.params:
            data["params"] = dict(self.params)
        if self.generators:
            data["generators"] = [g.to_dict() for g in self.generators]
        return data


@dataclass(frozen=True)
class FeatureDescriptor:
    """The persisted description of a feature pipeline."""
    generators: Tuple[GeneratorSpec, ...]

    @classmethod
    def from_dict(cls, data: Any) -> "FeatureDescriptor":
        if isinstance(data, Mapping):
            unknown = set(data) - {"generators"}
            if unknown:
                raise InvalidConfigurationError(f"Feature descriptor has unknown keys: {sorted(unknown)}.")
            data = data.get("generators")
        if not isinstance(data, list) or not data:
            raise InvalidConfigurationError("Feature descriptor must contain a non-empty 'generators' list.")
        return cls(tuple(GeneratorSpec.from_dict(entry, f"generators[{i}]") for i, entry in enumerate(data)))

    @classmethod
    def from_yaml(cls, text: str) -> "FeatureDescriptor":
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise InvalidConfigurationError(f"Feature descriptor is not valid YAML: {e}") from e
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {"generators": [g.to_dict() for g in self.generators]}

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False)


DEFAULT_DESCRIPTOR = FeatureDescriptor.from_dict(
    {
        "generators": [
            {
                "kind": "window",
                "params": {"prev": 2, "next": 2},
                "generators": [{"kind": "token"}, {"kind": "token_class"}],
            },
            {"kind": "outcome_prior"},
            {"kind": "previous_map"},
            {"kind": "bigram_class"},
            {"kind": "sentence", "params": {"begin": True, "end": False}},
        ]
    }
)


def load_descriptor(path: Union[str, Path]) -> FeatureDescriptor:
    """
    Reads a feature descriptor from a YAML (or JSON) file.

    Raises:
        FileNotFoundError: If the file does not exist.
        InvalidConfigurationError: If the content is not a valid descriptor.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        raise FileNotFoundError(f"Feature descriptor not found at: {path}")
    return FeatureDescriptor.from_yaml(text)


def resource_resolver(resources: Resources) -> Callable[[str], Any]:
    """Normalises a resource mapping or lookup function into a strict resolver."""
    def resolve(name: str) -> Any:
        if resources is None:
            resource = None
        elif callable(resources) and not isinstance(resources, Mapping):
            resource = resources(name)
        else:
            resource = resources.get(name)
        if resource is None:
            raise InvalidConfigurationError(f"No resource named '{name}' is available.")
        return resource
    return resolve


def build_feature_generator(spec: GeneratorSpec, resolve: Callable[[str], Any]) -> FeatureGenerator:
    """Instantiates the generator described by ``spec`` and its nested generators."""
    children = [build_feature_generator(child, resolve) for child in spec.generators]
    generator_cls = FEATURE_GENERATORS.get(spec.kind)
    return generator_cls.from_config(dict(spec.params), children, resolve)


class SequenceLabelerFactory:
    """
    Wires a codec and a feature descriptor into working pipeline objects.

    The descriptor is built once during construction so configuration
    problems surface immediately. Every later call to
    :meth:`create_context_generator` returns a fresh generator with its own
    adaptive state; if rebuilding fails at that point the failure is treated
    as an internal defect and raised as
    :class:`~seqlab.errors.FeatureGeneratorCreationError`.

    Attributes:
        descriptor: The feature descriptor in use.
        resources: Named external resources available to generators.
        codec: The span encoding scheme.
    """

    def __init__(
        self,
        descriptor: Union[FeatureDescriptor, Mapping[str, Any], Sequence[Any], None] = None,
        resources: Resources = None,
        codec: Union[SequenceCodec, str, None] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if descriptor is None:
            descriptor = DEFAULT_DESCRIPTOR
        elif not isinstance(descriptor, FeatureDescriptor):
            descriptor = FeatureDescriptor.from_dict(descriptor if isinstance(descriptor, Mapping) else list(descriptor))
        self.descriptor: FeatureDescriptor = descriptor
        self.resources = resources
        self.codec: SequenceCodec = codec if isinstance(codec, SequenceCodec) else create_codec(codec)
        self.log = logger or logging.getLogger(__name__)
        self._resolve = resource_resolver(resources)
        self._validated = False
        self.create_feature_generators()
        self._validated = True

    @classmethod
    def create(
        cls,
        descriptor: Union[FeatureDescriptor, Mapping[str, Any], Sequence[Any], None],
        resources: Resources = None,
        codec: Union[SequenceCodec, str, None] = None,
    ) -> "SequenceLabelerFactory":
        return cls(descriptor, resources, codec)

    @classmethod
    def from_config(
        cls, config: Mapping[str, Any], logger: Optional[logging.Logger] = None
    ) -> "SequenceLabelerFactory":
        """
        Builds a factory from one combined mapping::

            {"codec": "BILOU",
             "generators": [{"kind": "pos_tag", "params": {"model": "pos"}}],
             "resources": {"pos": tagger}}

        ``codec`` and ``resources`` are optional; everything else is read as
        the feature descriptor.
        """
        if not isinstance(config, Mapping):
            raise InvalidConfigurationError(f"Factory config must be a mapping, got {type(config).__name__}.")
        descriptor = {k: v for k, v in config.items() if k not in ("codec", "resources")}
        resources = config.get("resources")
        if resources is not None and not isinstance(resources, Mapping) and not callable(resources):
            raise InvalidConfigurationError("'resources' must be a mapping of name to resource.")
        return cls(descriptor, resources, config.get("codec"), logger=logger)

    def create_sequence_codec(self) -> SequenceCodec:
        return self.codec

    def create_feature_generators(self) -> List[FeatureGenerator]:
        """Builds a new set of generators from the descriptor."""
        try:
            return [build_feature_generator(spec, self._resolve) for spec in self.descriptor.generators]
        except InvalidConfigurationError as e:
            if self._validated:
                raise FeatureGeneratorCreationError(
                    f"Feature generators could not be re-created from a descriptor that was valid before: {e}"
                ) from e
            raise

    def create_context_generator(self) -> SequenceContextGenerator:
        return SequenceContextGenerator(self.create_feature_generators(), logger=self.log)
