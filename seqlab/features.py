# seqlab/features.py
"""Composable per-token feature generators.

Every generator appends opaque feature strings for one token position to a
caller-supplied list. Generators read the sentence through a
:class:`SentenceContext`, which is created once per sentence and carries a
cache scoped to that sentence, so expensive sentence-level work (such as a
call to an external POS tagger) runs once no matter how many token positions,
or windowed neighbours, ask for it.

Adaptive generators additionally keep state across sentences. That state is
updated with :meth:`FeatureGenerator.update_adaptive_data` after a sentence
has been processed and dropped with :meth:`FeatureGenerator.clear_adaptive_data`.
"""
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple

from .errors import InvalidConfigurationError, SampleFormatError
from .registry import Registry

__all__ = [
    "SentenceContext",
    "FeatureGenerator",
    "AggregatedFeatureGenerator",
    "TokenFeatureGenerator",
    "TokenClassFeatureGenerator",
    "BigramClassFeatureGenerator",
    "SentenceFeatureGenerator",
    "OutcomePriorFeatureGenerator",
    "PreviousMapFeatureGenerator",
    "PrefixFeatureGenerator",
    "SuffixFeatureGenerator",
    "WindowFeatureGenerator",
    "AdditionalContextFeatureGenerator",
    "POSTagFeatureGenerator",
    "FEATURE_GENERATORS",
    "register_feature_generator",
    "additional_context_window",
    "token_shape",
]

FEATURE_GENERATORS: Registry[Any] = Registry("feature generator")

ResourceResolver = Callable[[str], Any]


def register_feature_generator(kind: str):
    """Class decorator adding a generator to :data:`FEATURE_GENERATORS` under ``kind``."""
    def decorator(cls):
        cls.kind = kind
        return FEATURE_GENERATORS.register(kind)(cls)
    return decorator


def token_shape(token: str) -> str:
    """
    Classifies a raw token into a coarse orthographic shape.

    The classes are: ``lc`` (lowercase word), ``2d``/``4d`` (two or four
    digits), ``an`` (letters and digits), ``dd``/``ds``/``dc``/``dp`` (digits
    with a hyphen, slash, comma or period), ``num`` (other numbers), ``sc``
    (single capital), ``ac`` (all caps), ``cp`` (capital followed by a period),
    ``ic`` (initial capital) and ``other``.
    """
    if not token:
        return "other"
    if token.isalpha() and token.islower():
        return "lc"
    if token.isdigit() and len(token) == 2:
        return "2d"
    if token.isdigit() and len(token) == 4:
        return "4d"
    if any(c.isdigit() for c in token):
        if any(c.isalpha() for c in token):
            return "an"
        if "-" in token:
            return "dd"
        if "/" in token:
            return "ds"
        if "," in token:
            return "dc"
        if "." in token:
            return "dp"
        return "num"
    if token.isalpha() and token.isupper():
        return "sc" if len(token) == 1 else "ac"
    if len(token) == 2 and token[0].isupper() and token[1] == ".":
        return "cp"
    if token[0].isupper():
        return "ic"
    return "other"


class SentenceContext:
    """
    The tokens of one sentence plus a cache whose lifetime is that sentence.

    Attributes:
        tokens: The token strings of the sentence.
        additional_context: Optional per-token side-channel feature rows.
    """

    __slots__ = ("tokens", "additional_context", "_cache")

    def __init__(self, tokens: Sequence[str], additional_context: Optional[Sequence[Sequence[str]]] = None):
        self.tokens: Tuple[str, ...] = tuple(tokens)
        if additional_context is not None and len(additional_context) != len(self.tokens):
            raise SampleFormatError(
                f"Additional context has {len(additional_context)} rows for {len(self.tokens)} tokens."
            )
        self.additional_context = additional_context
        self._cache: Dict[Hashable, Any] = {}

    def cached(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        """Returns the value stored under ``key``, computing it on first use."""
        if key not in self._cache:
            self._cache[key] = compute()
        return self._cache[key]

    def __len__(self) -> int:
        return len(self.tokens)


class FeatureGenerator:
    """Base class for feature generators; adaptive hooks are no-ops by default."""

    kind: str = ""

    def create_features(
        self,
        features: List[str],
        sentence: SentenceContext,
        index: int,
        previous_outcomes: Sequence[str],
    ) -> None:
        raise NotImplementedError

    def update_adaptive_data(self, tokens: Sequence[str], outcomes: Sequence[str]) -> None:
        pass

    def clear_adaptive_data(self) -> None:
        pass

    @classmethod
    def from_config(
        cls,
        params: Mapping[str, Any],
        generators: Sequence["FeatureGenerator"],
        resources: ResourceResolver,
    ) -> "FeatureGenerator":
        """Builds the generator from descriptor parameters."""
        if generators:
            raise InvalidConfigurationError(f"Feature generator '{cls.kind}' does not accept nested generators.")
        try:
            return cls(**params)
        except TypeError as e:
            raise InvalidConfigurationError(f"Invalid parameters for feature generator '{cls.kind}': {e}") from e


def _int_param(kind: str, name: str, value: Any, minimum: int = 0) -> int:
    if isinstance(value, bool):
        raise InvalidConfigurationError(f"Parameter '{name}' of '{kind}' must be an integer, got {value!r}.")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidConfigurationError(
            f"Parameter '{name}' of '{kind}' must be an integer, got {value!r}."
        ) from None
    if number < minimum:
        raise InvalidConfigurationError(f"Parameter '{name}' of '{kind}' must be >= {minimum}, got {number}.")
    return number


@register_feature_generator("aggregated")
class AggregatedFeatureGenerator(FeatureGenerator):
    """Runs an ordered collection of generators as one."""

    def __init__(self, generators: Sequence[FeatureGenerator] = ()):
        self.generators: List[FeatureGenerator] = list(generators)

    def add(self, generator: FeatureGenerator) -> None:
        self.generators.append(generator)

    def create_features(self, features, sentence, index, previous_outcomes):
        for generator in self.generators:
            generator.create_features(features, sentence, index, previous_outcomes)

    def update_adaptive_data(self, tokens, outcomes):
        for generator in self.generators:
            generator.update_adaptive_data(tokens, outcomes)

    def clear_adaptive_data(self):
        for generator in self.generators:
            generator.clear_adaptive_data()

    @classmethod
    def from_config(cls, params, generators, resources):
        if params:
            raise InvalidConfigurationError(f"Feature generator 'aggregated' takes no parameters, got {sorted(params)}.")
        return cls(generators)


@register_feature_generator("token")
class TokenFeatureGenerator(FeatureGenerator):
    def __init__(self, lowercase: bool = True):
        self.lowercase = bool(lowercase)

    def create_features(self, features, sentence, index, previous_outcomes):
        token = sentence.tokens[index]
        features.append("w=" + (token.lower() if self.lowercase else token))


@register_feature_generator("token_class")
class TokenClassFeatureGenerator(FeatureGenerator):
    def __init__(self, word_and_class: bool = True):
        self.word_and_class = bool(word_and_class)

    def create_features(self, features, sentence, index, previous_outcomes):
        token = sentence.tokens[index]
        shape = token_shape(token)
        features.append("wc=" + shape)
        if self.word_and_class:
            features.append("w&c=" + token.lower() + "," + shape)


@register_feature_generator("bigram_class")
class BigramClassFeatureGenerator(FeatureGenerator):
    """Adds token and token-shape bigrams with the previous and next token."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.log = logger or logging.getLogger(__name__)

    def create_features(self, features, sentence, index, previous_outcomes):
        tokens = sentence.tokens
        shape = token_shape(tokens[index])
        added = []
        if index > 0:
            added.append("pw,w=" + tokens[index - 1] + "," + tokens[index])
            added.append("pwc,wc=" + token_shape(tokens[index - 1]) + "," + shape)
        if index + 1 < len(tokens):
            added.append("w,nw=" + tokens[index] + "," + tokens[index + 1])
            added.append("wc,nc=" + shape + "," + token_shape(tokens[index + 1]))
        if added and self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("-> %s: %s", tokens[index], " ".join(added))
        features.extend(added)


@register_feature_generator("sentence")
class SentenceFeatureGenerator(FeatureGenerator):
    def __init__(self, begin: bool = True, end: bool = False):
        self.begin = bool(begin)
        self.end = bool(end)

    def create_features(self, features, sentence, index, previous_outcomes):
        if self.begin and index == 0:
            features.append("S=begin")
        if self.end and index == len(sentence) - 1:
            features.append("S=end")


@register_feature_generator("outcome_prior")
class OutcomePriorFeatureGenerator(FeatureGenerator):
    """Emits a constant feature so the learner can model outcome priors."""

    def create_features(self, features, sentence, index, previous_outcomes):
        features.append("def")


@register_feature_generator("previous_map")
class PreviousMapFeatureGenerator(FeatureGenerator):
    """Adaptive generator recalling the last outcome assigned to each token string."""

    def __init__(self):
        self.previous_map: Dict[str, str] = {}

    def create_features(self, features, sentence, index, previous_outcomes):
        features.append("pd=" + self.previous_map.get(sentence.tokens[index], "none"))

    def update_adaptive_data(self, tokens, outcomes):
        for token, outcome in zip(tokens, outcomes):
            self.previous_map[token] = outcome

    def clear_adaptive_data(self):
        self.previous_map.clear()


@register_feature_generator("prefix")
class PrefixFeatureGenerator(FeatureGenerator):
    def __init__(self, length: int = 4):
        self.length = _int_param("prefix", "length", length, minimum=1)

    def create_features(self, features, sentence, index, previous_outcomes):
        token = sentence.tokens[index]
        for i in range(1, min(self.length, len(token)) + 1):
            features.append("pre=" + token[:i])


@register_feature_generator("suffix")
class SuffixFeatureGenerator(FeatureGenerator):
    def __init__(self, length: int = 4):
        self.length = _int_param("suffix", "length", length, minimum=1)

    def create_features(self, features, sentence, index, previous_outcomes):
        token = sentence.tokens[index]
        for i in range(1, min(self.length, len(token)) + 1):
            features.append("suf=" + token[-i:])


@register_feature_generator("window")
class WindowFeatureGenerator(FeatureGenerator):
    """
    Repeats the wrapped generator's features for neighbouring tokens.

    Features of the token ``k`` positions to the left are prefixed with
    ``p{k}``, those ``k`` positions to the right with ``n{k}``; the current
    token's features are passed through unprefixed. Neighbours outside the
    sentence are skipped.
    """

    PREV_PREFIX = "p"
    NEXT_PREFIX = "n"

    def __init__(self, generator: FeatureGenerator, prev_window: int = 2, next_window: int = 2):
        self.generator = generator
        self.prev_window = _int_param("window", "prev", prev_window)
        self.next_window = _int_param("window", "next", next_window)

    def create_features(self, features, sentence, index, previous_outcomes):
        self.generator.create_features(features, sentence, index, previous_outcomes)

        for offset in range(1, self.prev_window + 1):
            if index - offset < 0:
                break
            window_features: List[str] = []
            self.generator.create_features(window_features, sentence, index - offset, previous_outcomes)
            features.extend(f"{self.PREV_PREFIX}{offset}{f}" for f in window_features)

        for offset in range(1, self.next_window + 1):
            if index + offset >= len(sentence):
                break
            window_features = []
            self.generator.create_features(window_features, sentence, index + offset, previous_outcomes)
            features.extend(f"{self.NEXT_PREFIX}{offset}{f}" for f in window_features)

    def update_adaptive_data(self, tokens, outcomes):
        self.generator.update_adaptive_data(tokens, outcomes)

    def clear_adaptive_data(self):
        self.generator.clear_adaptive_data()

    @classmethod
    def from_config(cls, params, generators, resources):
        unknown = set(params) - {"prev", "next"}
        if unknown:
            raise InvalidConfigurationError(f"Unknown parameters for feature generator 'window': {sorted(unknown)}.")
        if not generators:
            raise InvalidConfigurationError("Feature generator 'window' requires at least one nested generator.")
        inner = generators[0] if len(generators) == 1 else AggregatedFeatureGenerator(generators)
        return cls(inner, params.get("prev", 2), params.get("next", 2))


@register_feature_generator("additional_context")
class AdditionalContextFeatureGenerator(FeatureGenerator):
    """Emits the sample's out-of-band per-token features, prefixed with ``ne=``."""

    def create_features(self, features, sentence, index, previous_outcomes):
        if sentence.additional_context is None:
            return
        for feature in sentence.additional_context[index]:
            features.append("ne=" + feature)


@register_feature_generator("pos_tag")
class POSTagFeatureGenerator(FeatureGenerator):
    """
    Adds the POS tag of the token as ``posTag=TAG``.

    The tagger is called once per sentence; the tags are kept in the
    sentence's cache, so windowed lookups of neighbouring tokens reuse them.
    """

    def __init__(self, tagger: Any):
        if not callable(getattr(tagger, "tag", None)):
            raise InvalidConfigurationError(
                f"POS tag resource must provide a tag(tokens) method, got {type(tagger).__name__}."
            )
        self.tagger = tagger

    def _tag(self, sentence: SentenceContext) -> List[str]:
        tags = list(self.tagger.tag(sentence.tokens))
        if len(tags) != len(sentence):
            raise SampleFormatError(f"POS tagger returned {len(tags)} tags for {len(sentence)} tokens.")
        return tags

    def create_features(self, features, sentence, index, previous_outcomes):
        tags = sentence.cached(self, lambda: self._tag(sentence))
        features.append("posTag=" + str(tags[index]))

    @classmethod
    def from_config(cls, params, generators, resources):
        if generators:
            raise InvalidConfigurationError("Feature generator 'pos_tag' does not accept nested generators.")
        unknown = set(params) - {"model"}
        if unknown:
            raise InvalidConfigurationError(f"Unknown parameters for feature generator 'pos_tag': {sorted(unknown)}.")
        model = params.get("model")
        if not model:
            raise InvalidConfigurationError("Feature generator 'pos_tag' requires a 'model' resource name.")
        resource = resources(model)
        if not callable(getattr(resource, "tag", None)):
            raise InvalidConfigurationError(f"Resource '{model}' is not a POS tagger.")
        return cls(resource)


def additional_context_window(size: int = 8) -> WindowFeatureGenerator:
    """The ``±size`` window over the sample side-channel used by training and decoding."""
    return WindowFeatureGenerator(AdditionalContextFeatureGenerator(), size, size)
