import threading

import pytest

from seqlab.cross_validation import (
    CrossValidationPartitioner,
    CrossValidationState,
    CrossValidator,
)
from seqlab.errors import InvalidConfigurationError
from seqlab.evaluation import EvaluationListener
from seqlab.factory import SequenceLabelerFactory
from seqlab.model_builder import LogOddsTrainer
from seqlab.stream import ListSampleStream, SampleStream
from seqlab.types import SequenceSample, Span


class OtherModel:
    outcomes = ["OTHER"]

    def eval(self, context):
        return {"OTHER": 0.0}


class RecordingTrainer:
    """Counts the events of each training call and returns a model predicting OTHER."""

    def __init__(self):
        self.event_counts = []
        self._lock = threading.Lock()

    def train(self, events, params):
        count = sum(1 for _ in events)
        with self._lock:
            self.event_counts.append(count)
        return OtherModel()


class FailingTrainer:
    def train(self, events, params):
        raise RuntimeError("learner crashed")


class OrderListener(EvaluationListener):
    def __init__(self):
        self.seen = []

    def on_sample(self, gold, predicted):
        self.seen.append(gold.id)


class BrokenStream(SampleStream):
    def __init__(self):
        self.closed = False

    def __iter__(self):
        yield SequenceSample(["a"], id="0")
        raise OSError("disk went away")

    def close(self):
        self.closed = True


def make_samples(n):
    samples = []
    for i in range(n):
        if i % 2 == 0:
            samples.append(SequenceSample(["John", "went", "home"], [Span(0, 1, "PERSON")], id=str(i)))
        else:
            samples.append(SequenceSample(["she", "saw", "John"], [Span(2, 3, "PERSON")], id=str(i)))
    return samples


def test_partitioner_assigns_round_robin() -> None:
    samples = make_samples(7)
    splits = list(CrossValidationPartitioner(samples, 3))

    assert [[s.id for s in split.held_out] for split in splits] == [["0", "3", "6"], ["1", "4"], ["2", "5"]]
    assert [s.id for s in splits[1].training] == ["0", "2", "3", "5", "6"]
    held_out = sorted(s.id for split in splits for s in split.held_out)
    assert held_out == sorted(s.id for s in samples)


@pytest.mark.parametrize("n_samples,folds", [(5, 1), (2, 3)])
def test_partitioner_rejects_bad_fold_counts(n_samples, folds) -> None:
    with pytest.raises(InvalidConfigurationError):
        CrossValidationPartitioner(make_samples(n_samples), folds)


def test_every_sample_is_held_out_exactly_once() -> None:
    samples = make_samples(7)
    listener = OrderListener()
    trainer = RecordingTrainer()
    validator = CrossValidator(SequenceLabelerFactory(), trainer, listeners=[listener])

    result = validator.evaluate(samples, 3)

    assert listener.seen == ["0", "3", "6", "1", "4", "2", "5"]
    assert sorted(trainer.event_counts) == [12, 15, 15]
    assert result.fmeasure.target == 7
    assert result.fmeasure.selected == 0
    assert len(result.fold_scores) == 3
    assert validator.state is CrossValidationState.DONE


def test_log_odds_pipeline_learns_the_name() -> None:
    validator = CrossValidator(SequenceLabelerFactory(), LogOddsTrainer(), params={"alpha": 0.1})

    result = validator.evaluate(make_samples(6), 3)

    assert result.fmeasure.f_measure == pytest.approx(1.0)
    assert validator.get_fmeasure() is result.fmeasure


def test_parallel_folds_give_the_same_result() -> None:
    samples = make_samples(9)
    sequential_listener, parallel_listener = OrderListener(), OrderListener()

    sequential = CrossValidator(
        SequenceLabelerFactory(codec="BILOU"), LogOddsTrainer(), listeners=[sequential_listener]
    ).evaluate(samples, 3)
    parallel = CrossValidator(
        SequenceLabelerFactory(codec="BILOU"), LogOddsTrainer(), listeners=[parallel_listener], max_workers=3
    ).evaluate(samples, 3)

    assert parallel_listener.seen == sequential_listener.seen
    assert parallel.fmeasure == sequential.fmeasure
    assert parallel.fold_scores.tolist() == sequential.fold_scores.tolist()


def test_stream_is_closed_when_reading_fails() -> None:
    stream = BrokenStream()

    with pytest.raises(OSError):
        CrossValidator(SequenceLabelerFactory(), RecordingTrainer()).evaluate(stream, 2)
    assert stream.closed


def test_training_failure_aborts_the_run() -> None:
    stream = ListSampleStream(make_samples(4))

    with pytest.raises(RuntimeError, match="learner crashed"):
        CrossValidator(SequenceLabelerFactory(), FailingTrainer()).evaluate(stream, 2)
    assert stream.closed


def test_fewer_than_two_folds_is_rejected() -> None:
    stream = ListSampleStream(make_samples(4))

    with pytest.raises(InvalidConfigurationError):
        CrossValidator(SequenceLabelerFactory(), RecordingTrainer()).evaluate(stream, 1)
    assert stream.closed
