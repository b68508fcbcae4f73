# seqlab/evaluation.py
"""Span-level evaluation: precision, recall and F-measure.

Predicted spans count as correct only when start, end and type all match a
gold span. :class:`FMeasure` accumulates the counts over any number of
samples (and folds, through :meth:`FMeasure.merge`); listeners receive each
evaluated sample and can keep their own breakdowns or error reports.
"""
from __future__ import annotations
import logging
from collections import Counter
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from .stream import SampleStream, as_sample_stream
from .types import DEFAULT_TYPE, SequenceSample, Span

__all__ = [
    "FMeasure",
    "count_true_positives",
    "EvaluationListener",
    "EvaluationErrorListener",
    "DetailedFMeasureListener",
    "SequenceLabelerEvaluator",
]


def count_true_positives(gold: Sequence[Span], predicted: Sequence[Span]) -> int:
    """Number of predicted spans that exactly match a gold span (multiset semantics)."""
    return sum((Counter(gold) & Counter(predicted)).values())


@dataclass
class FMeasure:
    """
    Accumulated span counts.

    Attributes:
        true_positive: Predicted spans matching a gold span.
        target: Number of gold spans.
        selected: Number of predicted spans.
    """
    true_positive: int = 0
    target: int = 0
    selected: int = 0

    def update(self, gold: Sequence[Span], predicted: Sequence[Span]) -> None:
        self.true_positive += count_true_positives(gold, predicted)
        self.target += len(gold)
        self.selected += len(predicted)

    def merge(self, other: "FMeasure") -> None:
        self.true_positive += other.true_positive
        self.target += other.target
        self.selected += other.selected

    @property
    def precision(self) -> float:
        return self.true_positive / self.selected if self.selected else 0.0

    @property
    def recall(self) -> float:
        return self.true_positive / self.target if self.target else 0.0

    @property
    def f_measure(self) -> float:
        p, r = self.precision, self.recall
        return 2 * p * r / (p + r) if p + r > 0 else 0.0

    def __str__(self) -> str:
        return f"Precision: {self.precision:.4f}\nRecall: {self.recall:.4f}\nF-Measure: {self.f_measure:.4f}"


class EvaluationListener:
    """
    Receives every evaluated sample.

    :meth:`on_sample` dispatches to :meth:`correctly_classified` or
    :meth:`misclassified`; subclasses override whichever they need.
    """

    def on_sample(self, gold: SequenceSample, predicted: Sequence[Span]) -> None:
        if sorted(gold.spans, key=_span_key) == sorted(predicted, key=_span_key):
            self.correctly_classified(gold, predicted)
        else:
            self.misclassified(gold, predicted)

    def correctly_classified(self, gold: SequenceSample, predicted: Sequence[Span]) -> None:
        pass

    def misclassified(self, gold: SequenceSample, predicted: Sequence[Span]) -> None:
        pass


def _span_key(span: Span):
    return (span.start, span.end, span.type or "")


class EvaluationErrorListener(EvaluationListener):
    """Logs every sample whose predicted spans differ from the gold spans."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.log = logger or logging.getLogger(__name__)
        self.errors = 0

    def misclassified(self, gold: SequenceSample, predicted: Sequence[Span]) -> None:
        self.errors += 1
        gold_set, predicted_set = set(gold.spans), set(predicted)
        missed = [f"{s} '{s.covered_text(gold.tokens)}'" for s in gold.spans if s not in predicted_set]
        spurious = [f"{s} '{s.covered_text(gold.tokens)}'" for s in predicted if s not in gold_set]
        self.log.info(
            "Misclassified sample %s: %s\n  missed: %s\n  spurious: %s",
            gold.id if gold.id is not None else "",
            " ".join(gold.tokens),
            "; ".join(missed) or "-",
            "; ".join(spurious) or "-",
        )


class DetailedFMeasureListener(EvaluationListener):
    """Keeps per-entity-type counts and reports precision, recall and F1 per type."""

    def __init__(self):
        self.by_type: Dict[str, FMeasure] = {}
        self.samples = 0

    def on_sample(self, gold: SequenceSample, predicted: Sequence[Span]) -> None:
        self.samples += 1
        types = {s.type for s in gold.spans} | {s.type for s in predicted}
        for entity_type in types:
            fm = self.by_type.setdefault(str(entity_type), FMeasure())
            fm.update(
                [s for s in gold.spans if s.type == entity_type],
                [s for s in predicted if s.type == entity_type],
            )
        super().on_sample(gold, predicted)

    @property
    def overall(self) -> FMeasure:
        total = FMeasure()
        for fm in self.by_type.values():
            total.merge(fm)
        return total

    def to_frame(self) -> pd.DataFrame:
        """Per-type table with a final micro-averaged ``overall`` row."""
        rows = []
        for entity_type, fm in sorted(self.by_type.items()) + [("overall", self.overall)]:
            rows.append({
                "type": entity_type,
                "precision": fm.precision,
                "recall": fm.recall,
                "f1": fm.f_measure,
                "true_positive": fm.true_positive,
                "target": fm.target,
                "selected": fm.selected,
            })
        return pd.DataFrame(rows).set_index("type")

    def __str__(self) -> str:
        total = self.overall
        lines = [
            f"Evaluated {self.samples} samples with {total.target} entities; "
            f"found: {total.selected} entities; correct: {total.true_positive}.",
            f"{'TOTAL':>14}: precision: {total.precision:7.2%}; recall: {total.recall:7.2%}; "
            f"F1: {total.f_measure:7.2%}.",
        ]
        for entity_type, fm in sorted(self.by_type.items()):
            lines.append(
                f"{entity_type:>14}: precision: {fm.precision:7.2%}; recall: {fm.recall:7.2%}; "
                f"F1: {fm.f_measure:7.2%}. target: {fm.target}; found: {fm.selected}; correct: {fm.true_positive}."
            )
        return "\n".join(lines)


class SequenceLabelerEvaluator:
    """
    Runs a labeler over gold samples and accumulates an :class:`FMeasure`.

    Gold spans without a type are compared as ``default_type``, the type the
    codec assigned them at training time.
    """

    def __init__(
        self,
        labeler,
        listeners: Iterable[EvaluationListener] = (),
        default_type: str = DEFAULT_TYPE,
    ):
        self.labeler = labeler
        self.listeners: List[EvaluationListener] = list(listeners)
        self.default_type = default_type
        self.fmeasure = FMeasure()

    def _normalise(self, sample: SequenceSample) -> SequenceSample:
        if all(s.type is not None for s in sample.spans):
            return sample
        spans = tuple(s if s.type is not None else replace(s, type=self.default_type) for s in sample.spans)
        return replace(sample, spans=spans)

    def evaluate_sample(self, sample: SequenceSample) -> List[Span]:
        if sample.clear_adaptive_data:
            self.labeler.clear_adaptive_data()
        gold = self._normalise(sample)
        predicted = self.labeler.find(gold.tokens, gold.additional_context)
        self.fmeasure.update(gold.spans, predicted)
        for listener in self.listeners:
            listener.on_sample(gold, predicted)
        return predicted

    def evaluate(self, samples: Union[SampleStream, Iterable[SequenceSample]]) -> FMeasure:
        stream = as_sample_stream(samples)
        try:
            for sample in stream:
                self.evaluate_sample(sample)
        finally:
            stream.close()
        return self.fmeasure
