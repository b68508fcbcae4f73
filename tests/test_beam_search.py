import math

import pytest

from seqlab.beam_search import BeamSearch, log_softmax
from seqlab.codec import BilouCodec, BioCodec
from seqlab.context import SequenceContextGenerator
from seqlab.errors import InvalidSequenceError
from seqlab.features import SentenceContext, TokenFeatureGenerator


class FixedModel:
    """Returns the same raw scores at every position."""

    def __init__(self, scores):
        self.scores = dict(scores)
        self.outcomes = sorted(scores)
        self.calls = 0

    def eval(self, context):
        self.calls += 1
        return dict(self.scores)


def make_search(model, validator=None, beam_size=3) -> BeamSearch:
    return BeamSearch(beam_size, model, SequenceContextGenerator([TokenFeatureGenerator()]), validator)


def test_log_softmax_normalises_scores() -> None:
    logp = log_softmax({"a": 1.0, "b": 2.0, "c": 3.0})

    assert sum(math.exp(v) for v in logp.values()) == pytest.approx(1.0)
    assert logp["c"] > logp["b"] > logp["a"]


def test_without_validator_best_scores_win() -> None:
    model = FixedModel({"OTHER": 0.0, "A-START": 1.0, "A-CONTINUE": 2.0})

    best = make_search(model).best_sequence(SentenceContext(["x", "y"]))

    assert best.outcomes == ("A-CONTINUE", "A-CONTINUE")


def test_validator_keeps_illegal_transitions_out_of_the_beam() -> None:
    model = FixedModel({"OTHER": 0.0, "A-START": 1.0, "A-CONTINUE": 2.0})
    validator = BioCodec().create_sequence_validator()

    best = make_search(model, validator).best_sequence(SentenceContext(["x", "y"]))

    assert best.outcomes == ("A-START", "A-CONTINUE")
    assert len(best.probs) == 2
    assert all(0.0 < p <= 1.0 for p in best.probs)


def test_bilou_validator_forces_closed_entities() -> None:
    model = FixedModel({"OTHER": 0.0, "A-START": 3.0, "A-CONTINUE": 2.0, "A-LAST": 1.0, "A-UNIT": 0.5})
    validator = BilouCodec().create_sequence_validator()

    best = make_search(model, validator).best_sequence(SentenceContext(["x", "y", "z"]))

    assert BilouCodec().decode(best.outcomes)
    assert best.outcomes[-1] in ("A-LAST", "A-UNIT", "OTHER")


def test_no_legal_outcome_raises() -> None:
    model = FixedModel({"A-CONTINUE": 0.0})

    with pytest.raises(InvalidSequenceError):
        make_search(model, BioCodec().create_sequence_validator()).best_sequence(SentenceContext(["x"]))


def test_empty_sentence_yields_empty_sequence() -> None:
    model = FixedModel({"OTHER": 0.0})

    best = make_search(model).best_sequence(SentenceContext([]))

    assert best.outcomes == ()
    assert model.calls == 0


def test_beam_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        make_search(FixedModel({"OTHER": 0.0}), beam_size=0)
