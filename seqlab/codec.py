# seqlab/codec.py
"""Encoding schemes mapping entity spans to per-token outcome labels and back.

Two codecs are provided:

-   **BIO**: the first token of an entity is ``TYPE-START``, the remaining
    tokens are ``TYPE-CONTINUE`` and everything else is ``OTHER``.
-   **BILOU**: single-token entities are ``TYPE-UNIT``; longer entities are
    ``TYPE-START``, ``TYPE-CONTINUE``... and a closing ``TYPE-LAST``.

Each codec also exposes a :class:`SequenceValidator` that a decoder can query
at every step to reject illegal transitions, e.g. ``A-CONTINUE`` right after
``OTHER`` or right after ``B-CONTINUE``.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence

from .errors import InvalidSequenceError
from .registry import Registry
from .types import CONTINUE, DEFAULT_TYPE, LAST, OTHER, START, UNIT, Span, outcome_role, outcome_type

__all__ = [
    "SequenceCodec",
    "SequenceValidator",
    "BioCodec",
    "BilouCodec",
    "BilouSequenceValidator",
    "CODECS",
    "register_codec",
    "create_codec",
]

CODECS: Registry["SequenceCodec"] = Registry("sequence codec", case_sensitive=False)


def register_codec(name: str):
    """Class decorator adding a codec implementation to :data:`CODECS`."""
    return CODECS.register(name)


def create_codec(name: Optional[str] = None) -> "SequenceCodec":
    """Instantiates the codec registered as ``name``; None selects BIO."""
    if name is None:
        return BioCodec()
    return CODECS.create(name)


def _check_spans(spans: Iterable[Span], length: int) -> List[Span]:
    ordered = sorted(spans, key=lambda s: (s.start, s.end))
    previous: Optional[Span] = None
    for span in ordered:
        if span.end > length:
            raise InvalidSequenceError(f"Span {span} exceeds sequence length {length}.")
        if previous is not None and previous.intersects(span):
            raise InvalidSequenceError(f"Overlapping spans {previous} and {span} cannot be encoded.")
        previous = span
    return ordered


class SequenceValidator:
    """Checks whether appending ``outcome`` keeps a partial sequence legal."""

    def __init__(self, codec: "SequenceCodec"):
        self.codec = codec

    def validate_sequence(
        self,
        index: int,
        sequence: Sequence[str],
        outcomes_so_far: Sequence[str],
        outcome: str,
    ) -> bool:
        previous = outcomes_so_far[index - 1] if index > 0 else None
        return self.codec.is_valid_transition(previous, outcome)


class SequenceCodec(ABC):
    """Base class for span/outcome encoding schemes."""

    name: str = ""
    roles: frozenset = frozenset()

    @abstractmethod
    def encode(self, spans: Iterable[Span], length: int, default_type: str = DEFAULT_TYPE) -> List[str]:
        """Returns one outcome label per token for ``spans`` over ``length`` tokens."""

    @abstractmethod
    def decode(self, outcomes: Sequence[str]) -> List[Span]:
        """Rebuilds the spans encoded in ``outcomes``."""

    @abstractmethod
    def is_valid_transition(self, previous: Optional[str], outcome: str) -> bool:
        """True if ``outcome`` may follow ``previous`` (None at sequence start)."""

    @abstractmethod
    def are_outcomes_compatible(self, outcomes: Iterable[str]) -> bool:
        """True if a model with this outcome inventory can produce legal sequences."""

    def create_sequence_validator(self) -> SequenceValidator:
        return SequenceValidator(self)

    def _check_outcome(self, index: int, outcome: str) -> str:
        role = outcome_role(outcome)
        if role != OTHER and (role not in self.roles or not outcome_type(outcome)):
            raise InvalidSequenceError(f"Unknown {self.name} outcome '{outcome}' at index {index}.")
        return role

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


@register_codec("BIO")
class BioCodec(SequenceCodec):
    name = "BIO"
    roles = frozenset({START, CONTINUE})

    def encode(self, spans: Iterable[Span], length: int, default_type: str = DEFAULT_TYPE) -> List[str]:
        outcomes = [OTHER] * length
        for span in _check_spans(spans, length):
            entity_type = span.type if span.type is not None else default_type
            outcomes[span.start] = f"{entity_type}-{START}"
            for i in range(span.start + 1, span.end):
                outcomes[i] = f"{entity_type}-{CONTINUE}"
        return outcomes

    def decode(self, outcomes: Sequence[str]) -> List[Span]:
        spans: List[Span] = []
        start = -1
        current_type: Optional[str] = None
        previous: Optional[str] = None
        for i, outcome in enumerate(outcomes):
            role = self._check_outcome(i, outcome)
            if not self.is_valid_transition(previous, outcome):
                raise InvalidSequenceError(
                    f"Illegal transition {previous or '<start>'} -> {outcome} at index {i}."
                )
            if role == START:
                if start != -1:
                    spans.append(Span(start, i, current_type))
                start, current_type = i, outcome_type(outcome)
            elif role == OTHER and start != -1:
                spans.append(Span(start, i, current_type))
                start, current_type = -1, None
            previous = outcome
        if start != -1:
            spans.append(Span(start, len(outcomes), current_type))
        return spans

    def is_valid_transition(self, previous: Optional[str], outcome: str) -> bool:
        if outcome_role(outcome) != CONTINUE:
            return True
        if previous is None or outcome_role(previous) not in (START, CONTINUE):
            return False
        return outcome_type(previous) == outcome_type(outcome)

    def are_outcomes_compatible(self, outcomes: Iterable[str]) -> bool:
        start_types, continue_types = set(), set()
        for outcome in outcomes:
            role = outcome_role(outcome)
            if role == START:
                start_types.add(outcome_type(outcome))
            elif role == CONTINUE:
                continue_types.add(outcome_type(outcome))
        return continue_types <= start_types


class BilouSequenceValidator(SequenceValidator):
    """BILOU validator; an entity may not be left open at the last token."""

    def validate_sequence(
        self,
        index: int,
        sequence: Sequence[str],
        outcomes_so_far: Sequence[str],
        outcome: str,
    ) -> bool:
        if index == len(sequence) - 1 and outcome_role(outcome) in (START, CONTINUE):
            return False
        return super().validate_sequence(index, sequence, outcomes_so_far, outcome)


@register_codec("BILOU")
class BilouCodec(SequenceCodec):
    name = "BILOU"
    roles = frozenset({START, CONTINUE, LAST, UNIT})

    def encode(self, spans: Iterable[Span], length: int, default_type: str = DEFAULT_TYPE) -> List[str]:
        outcomes = [OTHER] * length
        for span in _check_spans(spans, length):
            entity_type = span.type if span.type is not None else default_type
            if span.length == 1:
                outcomes[span.start] = f"{entity_type}-{UNIT}"
                continue
            outcomes[span.start] = f"{entity_type}-{START}"
            for i in range(span.start + 1, span.end - 1):
                outcomes[i] = f"{entity_type}-{CONTINUE}"
            outcomes[span.end - 1] = f"{entity_type}-{LAST}"
        return outcomes

    def decode(self, outcomes: Sequence[str]) -> List[Span]:
        spans: List[Span] = []
        start = -1
        current_type: Optional[str] = None
        previous: Optional[str] = None
        for i, outcome in enumerate(outcomes):
            role = self._check_outcome(i, outcome)
            if not self.is_valid_transition(previous, outcome):
                raise InvalidSequenceError(
                    f"Illegal transition {previous or '<start>'} -> {outcome} at index {i}."
                )
            if role == UNIT:
                spans.append(Span(i, i + 1, outcome_type(outcome)))
            elif role == START:
                start, current_type = i, outcome_type(outcome)
            elif role == LAST:
                spans.append(Span(start, i + 1, current_type))
                start, current_type = -1, None
            previous = outcome
        # An entity still open at the end of the sequence is closed there.
        if start != -1:
            spans.append(Span(start, len(outcomes), current_type))
        return spans

    def is_valid_transition(self, previous: Optional[str], outcome: str) -> bool:
        previous_role = outcome_role(previous) if previous is not None else None
        if outcome_role(outcome) in (CONTINUE, LAST):
            if previous_role not in (START, CONTINUE):
                return False
            return outcome_type(previous) == outcome_type(outcome)
        return previous_role not in (START, CONTINUE)

    def are_outcomes_compatible(self, outcomes: Iterable[str]) -> bool:
        by_role = {START: set(), CONTINUE: set(), LAST: set(), UNIT: set()}
        for outcome in outcomes:
            role = outcome_role(outcome)
            if role in by_role:
                by_role[role].add(outcome_type(outcome))
        return (
            by_role[START] <= by_role[LAST]
            and by_role[LAST] <= by_role[START]
            and by_role[CONTINUE] <= by_role[START]
        )

    def create_sequence_validator(self) -> SequenceValidator:
        return BilouSequenceValidator(self)
