# seqlab/spans.py
"""Overlap handling for spans coming from different sources.

When statistical predictions are combined with spans from another source
(a gazetteer, a rule set), overlaps must be resolved before the result can
be encoded. The policy is pluggable: strategies are registered by name in
:data:`CONFLICT_STRATEGIES` and selected through :func:`merge_spans`.
"""
from __future__ import annotations
from typing import Callable, Iterable, List, Sequence

from .registry import Registry
from .types import Span

__all__ = [
    "CONFLICT_STRATEGIES",
    "drop_overlapping_spans",
    "merge_spans",
    "prefer_primary",
    "prefer_longer",
]

ConflictStrategy = Callable[[Sequence[Span], Sequence[Span]], List[Span]]

CONFLICT_STRATEGIES: Registry[List[Span]] = Registry("span conflict strategy")


def _ordered(spans: Iterable[Span]) -> List[Span]:
    return sorted(spans, key=lambda s: (s.start, s.end))


def drop_overlapping_spans(spans: Iterable[Span]) -> List[Span]:
    """
    Keeps a non-overlapping subset of ``spans``.

    Spans are visited by start position, the longer one first on ties, and a
    span is dropped when it overlaps one already kept.
    """
    kept: List[Span] = []
    for span in sorted(spans, key=lambda s: (s.start, -s.end)):
        if kept and kept[-1].intersects(span):
            continue
        kept.append(span)
    return kept


@CONFLICT_STRATEGIES.register("prefer_primary")
def prefer_primary(primary: Sequence[Span], secondary: Sequence[Span]) -> List[Span]:
    """Keeps all primary spans and the secondary spans that overlap none of them."""
    merged = list(primary)
    for span in secondary:
        if not any(span.intersects(p) for p in merged):
            merged.append(span)
    return _ordered(merged)


@CONFLICT_STRATEGIES.register("prefer_longer")
def prefer_longer(primary: Sequence[Span], secondary: Sequence[Span]) -> List[Span]:
    """On conflict keeps the longer span; primary spans win ties."""
    merged = list(primary)
    for span in secondary:
        conflicts = [p for p in merged if span.intersects(p)]
        if all(span.length > p.length for p in conflicts):
            merged = [p for p in merged if p not in conflicts]
            merged.append(span)
    return _ordered(merged)


def merge_spans(
    primary: Sequence[Span],
    secondary: Sequence[Span],
    strategy: str = "prefer_primary",
) -> List[Span]:
    """Combines two span lists, resolving overlaps with the named strategy."""
    resolve = CONFLICT_STRATEGIES.get(strategy)
    return drop_overlapping_spans(resolve(list(primary), list(secondary)))
