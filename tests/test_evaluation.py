import logging

import pytest

from seqlab.evaluation import (
    DetailedFMeasureListener,
    EvaluationErrorListener,
    EvaluationListener,
    FMeasure,
    SequenceLabelerEvaluator,
    count_true_positives,
)
from seqlab.stream import ListSampleStream
from seqlab.types import SequenceSample, Span


class ScriptedLabeler:
    """Returns pre-recorded spans for each token sequence."""

    def __init__(self, answers):
        self.answers = answers
        self.cleared = 0

    def find(self, tokens, additional_context=None):
        return list(self.answers.get(tuple(tokens), []))

    def clear_adaptive_data(self):
        self.cleared += 1


class RecordingListener(EvaluationListener):
    def __init__(self):
        self.correct = []
        self.wrong = []

    def correctly_classified(self, gold, predicted):
        self.correct.append(gold)

    def misclassified(self, gold, predicted):
        self.wrong.append(gold)


def test_fmeasure_counts_exact_matches() -> None:
    fm = FMeasure()
    fm.update([Span(0, 1, "A"), Span(2, 3, "B")], [Span(0, 1, "A"), Span(3, 4, "C")])

    assert (fm.true_positive, fm.target, fm.selected) == (1, 2, 2)
    assert fm.precision == pytest.approx(0.5)
    assert fm.recall == pytest.approx(0.5)
    assert fm.f_measure == pytest.approx(0.5)


def test_type_mismatch_is_not_a_match() -> None:
    assert count_true_positives([Span(0, 2, "PERSON")], [Span(0, 2, "ORG")]) == 0
    assert count_true_positives([Span(0, 1, "A")], [Span(0, 1, "A"), Span(0, 1, "A")]) == 1


def test_empty_fmeasure_is_zero() -> None:
    fm = FMeasure()

    assert fm.precision == 0.0
    assert fm.recall == 0.0
    assert fm.f_measure == 0.0


def test_merge_sums_counts() -> None:
    a = FMeasure(true_positive=1, target=2, selected=3)
    a.merge(FMeasure(true_positive=2, target=2, selected=2))

    assert (a.true_positive, a.target, a.selected) == (3, 4, 5)
    assert a.precision == pytest.approx(0.6)
    assert a.recall == pytest.approx(0.75)


def test_evaluator_scores_and_notifies_listeners() -> None:
    samples = [
        SequenceSample(["John", "runs"], [Span(0, 1, "PERSON")]),
        SequenceSample(["in", "Paris"], [Span(1, 2, "LOCATION")]),
    ]
    labeler = ScriptedLabeler({("John", "runs"): [Span(0, 1, "PERSON")], ("in", "Paris"): [Span(0, 1, "LOCATION")]})
    listener = RecordingListener()
    stream = ListSampleStream(samples)

    fm = SequenceLabelerEvaluator(labeler, [listener]).evaluate(stream)

    assert (fm.true_positive, fm.target, fm.selected) == (1, 2, 2)
    assert listener.correct == [samples[0]]
    assert listener.wrong == [samples[1]]
    assert stream.closed


def test_evaluator_gives_untyped_gold_spans_the_default_type() -> None:
    labeler = ScriptedLabeler({("x",): [Span(0, 1, "default")]})

    fm = SequenceLabelerEvaluator(labeler).evaluate([SequenceSample(["x"], [Span(0, 1)])])

    assert fm.f_measure == pytest.approx(1.0)


def test_evaluator_clears_adaptive_data_when_asked() -> None:
    labeler = ScriptedLabeler({})
    samples = [SequenceSample(["a"]), SequenceSample(["b"], clear_adaptive_data=True)]

    SequenceLabelerEvaluator(labeler).evaluate(samples)

    assert labeler.cleared == 1


def test_detailed_listener_reports_per_type() -> None:
    listener = DetailedFMeasureListener()
    gold = SequenceSample(["John", "in", "Paris"], [Span(0, 1, "PERSON"), Span(2, 3, "LOCATION")])

    listener.on_sample(gold, [Span(0, 1, "PERSON"), Span(1, 2, "LOCATION")])

    assert listener.by_type["PERSON"].f_measure == pytest.approx(1.0)
    assert listener.by_type["LOCATION"].f_measure == pytest.approx(0.0)
    frame = listener.to_frame()
    assert list(frame.index) == ["LOCATION", "PERSON", "overall"]
    assert frame.loc["overall", "precision"] == pytest.approx(0.5)
    assert "PERSON" in str(listener)


def test_error_listener_logs_misclassified_samples(caplog) -> None:
    listener = EvaluationErrorListener(logging.getLogger("seqlab.test"))
    gold = SequenceSample(["John", "runs"], [Span(0, 1, "PERSON")], id="s1")

    with caplog.at_level(logging.INFO, logger="seqlab.test"):
        listener.on_sample(gold, [Span(0, 1, "PERSON")])
        listener.on_sample(gold, [Span(1, 2, "PERSON")])

    assert listener.errors == 1
    assert "s1" in caplog.text
    assert "'John'" in caplog.text
    assert "'runs'" in caplog.text
