# seqlab/resources.py
"""External resources consumed by feature generators (e.g. POS taggers)."""
from __future__ import annotations
import csv
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Union

try:
    import spacy
    from spacy.tokens import Doc
except ImportError:
    spacy = None
    Doc = None

from .errors import InvalidConfigurationError
from .registry import Registry

__all__ = [
    "PosTagger",
    "DictionaryPosTagger",
    "SpacyPosTagger",
    "RESOURCE_LOADERS",
    "load_resources",
]

RESOURCE_LOADERS: Registry[Any] = Registry("resource kind")
SPACY_DISABLED_PIPES = ("ner", "parser")


class PosTagger(Protocol):
    def tag(self, tokens: Sequence[str]) -> Sequence[str]:
        ...


class DictionaryPosTagger:
    """
    Tags tokens by lexicon lookup.

    Attributes:
        lexicon: Mapping of word form to tag.
        default: Tag used for words missing from the lexicon.
        lowercase: Look words up in lowercase.
    """

    def __init__(self, lexicon: Mapping[str, str], default: str = "UNK", lowercase: bool = False):
        self.lowercase = lowercase
        self.lexicon = {(k.lower() if lowercase else k): v for k, v in lexicon.items()}
        self.default = default

    def tag(self, tokens: Sequence[str]) -> List[str]:
        return [self.lexicon.get(t.lower() if self.lowercase else t, self.default) for t in tokens]

    @classmethod
    def from_file(cls, path: Union[str, Path], default: str = "UNK", lowercase: bool = False) -> "DictionaryPosTagger":
        """Reads a tab-separated ``word<TAB>tag`` lexicon."""
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                rows = [row for row in csv.reader(f, delimiter="\t") if row]
        except FileNotFoundError:
            raise FileNotFoundError(f"Lexicon file not found at: {path}")
        lexicon: Dict[str, str] = {}
        for line_no, row in enumerate(rows, start=1):
            if len(row) < 2:
                raise InvalidConfigurationError(f"Lexicon {path} line {line_no}: expected 'word<TAB>tag'.")
            lexicon[row[0]] = row[1]
        return cls(lexicon, default=default, lowercase=lowercase)


class SpacyPosTagger:
    """
    Tags pre-tokenized sentences with a spaCy pipeline.

    The pipeline is loaded once on construction with entity recognition and
    parsing disabled.

    Raises:
        InvalidConfigurationError: If spaCy or the requested model is not installed.
    """

    def __init__(self, model: str, fine_grained: bool = False):
        if spacy is None:
            raise InvalidConfigurationError(
                "A spaCy POS tagger was requested, but the spaCy package is not installed. "
                "Install seqlab[spacy] or remove the resource."
            )
        try:
            self.nlp = spacy.load(model, disable=list(SPACY_DISABLED_PIPES))
        except OSError as exc:
            raise InvalidConfigurationError(f"spaCy model '{model}' is not available.") from exc
        self.model = model
        self.fine_grained = fine_grained

    def tag(self, tokens: Sequence[str]) -> List[str]:
        doc = Doc(self.nlp.vocab, words=list(tokens))
        doc = self.nlp(doc)
        return [tok.tag_ if self.fine_grained else tok.pos_ for tok in doc]


@RESOURCE_LOADERS.register("spacy")
def _load_spacy(entry: Mapping[str, Any], base_dir: Path) -> SpacyPosTagger:
    return SpacyPosTagger(str(entry["model"]), fine_grained=bool(entry.get("fine_grained", False)))


@RESOURCE_LOADERS.register("lexicon")
def _load_lexicon(entry: Mapping[str, Any], base_dir: Path) -> DictionaryPosTagger:
    path = Path(entry["path"])
    if not path.is_absolute():
        path = base_dir / path
    return DictionaryPosTagger.from_file(
        path, default=str(entry.get("default", "UNK")), lowercase=bool(entry.get("lowercase", False))
    )


def load_resources(entries: Optional[Mapping[str, Any]], base_dir: Union[str, Path] = ".") -> Dict[str, Any]:
    """
    Builds the named resources described in a configuration mapping.

    Args:
        entries: Mapping of resource name to ``{kind: ..., ...}``.
        base_dir: Directory relative paths are resolved against.

    Returns:
        A mapping of resource name to the loaded resource.

    Raises:
        InvalidConfigurationError: If an entry is malformed or its kind is unknown.
    """
    resources: Dict[str, Any] = {}
    for name, entry in (entries or {}).items():
        if not isinstance(entry, Mapping) or "kind" not in entry:
            raise InvalidConfigurationError(f"Resource '{name}' must be a mapping with a 'kind' key.")
        loader = RESOURCE_LOADERS.get(entry["kind"])
        try:
            resources[name] = loader(entry, Path(base_dir))
        except KeyError as e:
            raise InvalidConfigurationError(f"Resource '{name}' is missing key {e}.") from e
    return resources
