# seqlab/types.py

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from .errors import SampleFormatError

__all__ = [
    "OTHER",
    "START",
    "CONTINUE",
    "LAST",
    "UNIT",
    "DEFAULT_TYPE",
    "Span",
    "SequenceSample",
    "Event",
    "outcome_type",
    "outcome_role",
]

OTHER = "OTHER"
START = "START"
CONTINUE = "CONTINUE"
LAST = "LAST"
UNIT = "UNIT"
DEFAULT_TYPE = "default"


def outcome_role(outcome: str) -> str:
    """Returns the tag role of ``outcome`` (``START``, ``CONTINUE``, ... or ``OTHER``)."""
    if outcome == OTHER:
        return OTHER
    _, sep, role = outcome.rpartition("-")
    return role if sep else outcome


def outcome_type(outcome: str) -> Optional[str]:
    """Returns the entity type encoded in ``outcome``, or None for ``OTHER``."""
    if outcome == OTHER:
        return None
    entity_type, sep, _ = outcome.rpartition("-")
    return entity_type if sep else None


@dataclass(frozen=True)
class Span:
    """
    A half-open token range ``[start, end)`` with an optional entity type.

    Attributes:
        start: Index of the first token covered by the span.
        end: Index one past the last covered token.
        type: The entity type, or None when the caller supplies a default
              at encoding time.
    """
    start: int
    end: int
    type: Optional[str] = None

    def __post_init__(self) -> None:
        if self.start < 0 or self.end <= self.start:
            raise ValueError(f"Invalid span [{self.start}, {self.end}): expected 0 <= start < end.")

    @property
    def length(self) -> int:
        return self.end - self.start

    def contains(self, other: "Span") -> bool:
        return self.start <= other.start and other.end <= self.end

    def intersects(self, other: "Span") -> bool:
        return self.start < other.end and other.start < self.end

    def crosses(self, other: "Span") -> bool:
        """True if the spans overlap but neither contains the other."""
        return self.intersects(other) and not self.contains(other) and not other.contains(self)

    def covered_text(self, tokens: Sequence[str]) -> str:
        return " ".join(tokens[self.start:self.end])

    def __str__(self) -> str:
        label = f"{self.type}" if self.type is not None else ""
        return f"[{self.start}..{self.end}) {label}".rstrip()


@dataclass(frozen=True)
class SequenceSample:
    """
    One labelled sentence as produced by a corpus reader.

    Attributes:
        tokens: The token strings of the sentence.
        spans: The gold entity spans, kept in start order.
        additional_context: Optional per-token side-channel features, one row
                            of strings per token.
        clear_adaptive_data: True if adaptive feature state must be reset
                             before this sample is processed (e.g. at a
                             document boundary).
        id: Optional identifier used in reports.
    """
    tokens: Tuple[str, ...]
    spans: Tuple[Span, ...] = ()
    additional_context: Optional[Tuple[Tuple[str, ...], ...]] = None
    clear_adaptive_data: bool = False
    id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "tokens", tuple(self.tokens))
        object.__setattr__(self, "spans", tuple(sorted(self.spans, key=lambda s: (s.start, s.end))))
        for span in self.spans:
            if span.end > len(self.tokens):
                raise SampleFormatError(
                    f"Span {span} exceeds sentence length {len(self.tokens)} in sample {self.id!r}."
                )
        if self.additional_context is not None:
            rows = tuple(tuple(row) for row in self.additional_context)
            if len(rows) != len(self.tokens):
                raise SampleFormatError(
                    f"Additional context has {len(rows)} rows but sample {self.id!r} "
                    f"has {len(self.tokens)} tokens."
                )
            object.__setattr__(self, "additional_context", rows)

    def __len__(self) -> int:
        return len(self.tokens)


@dataclass(frozen=True)
class Event:
    """A single training event: the gold outcome and its feature context."""
    outcome: str
    context: Tuple[str, ...] = field(default_factory=tuple)
