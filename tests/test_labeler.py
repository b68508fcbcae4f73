import pytest

from seqlab.errors import InvalidConfigurationError
from seqlab.factory import SequenceLabelerFactory
from seqlab.labeler import SequenceLabeler
from seqlab.types import Span


class PersonModel:
    """Tags 'john' as a person start and 'smith' after a person start as its continuation."""

    outcomes = ["OTHER", "PERSON-CONTINUE", "PERSON-START"]

    def __init__(self):
        self.contexts = []

    def eval(self, context):
        self.contexts.append(context)
        scores = {"OTHER": 0.0, "PERSON-START": -2.0, "PERSON-CONTINUE": -2.0}
        if "w=john" in context:
            scores["PERSON-START"] = 4.0
        if "w=smith" in context and "po=PERSON-START" in context:
            scores["PERSON-CONTINUE"] = 4.0
        return scores


def make_labeler(descriptor=None, model=None) -> SequenceLabeler:
    factory = SequenceLabelerFactory(descriptor or [{"kind": "token"}, {"kind": "previous_map"}])
    return SequenceLabeler(model or PersonModel(), factory)


def test_find_returns_decoded_spans() -> None:
    labeler = make_labeler()

    spans = labeler.find(["John", "Smith", "runs"])

    assert spans == [Span(0, 2, "PERSON")]
    assert len(labeler.last_probs) == 3


def test_tag_returns_outcomes() -> None:
    assert make_labeler().tag(["John", "runs"]) == ["PERSON-START", "OTHER"]


def test_incompatible_model_is_rejected() -> None:
    class ContinueOnlyModel:
        outcomes = ["OTHER", "PERSON-CONTINUE"]

        def eval(self, context):
            return {"OTHER": 0.0, "PERSON-CONTINUE": 0.0}

    with pytest.raises(InvalidConfigurationError):
        make_labeler(model=ContinueOnlyModel())


def test_adaptive_data_follows_decoded_sentences() -> None:
    model = PersonModel()
    labeler = make_labeler(model=model)

    labeler.find(["John"])
    assert "pd=none" in model.contexts[-1]

    labeler.find(["John"])
    assert "pd=PERSON-START" in model.contexts[-1]

    labeler.clear_adaptive_data()
    labeler.find(["John"])
    assert "pd=none" in model.contexts[-1]


def test_additional_context_reaches_the_model() -> None:
    model = PersonModel()
    labeler = make_labeler(model=model)

    labeler.find(["John", "runs"], additional_context=[["dict=PERSON"], ["dict=none"]])

    assert any("ne=dict=PERSON" in c and "n1ne=dict=none" in c for c in model.contexts)


def test_extra_spans_are_merged() -> None:
    labeler = make_labeler()
    tokens = ["John", "Smith", "visited", "New", "York"]

    spans = labeler.find(tokens, extra_spans=[Span(1, 3, "ORG"), Span(3, 5, "LOCATION")])

    assert spans == [Span(0, 2, "PERSON"), Span(3, 5, "LOCATION")]


def test_labeler_without_factory_needs_context_generator() -> None:
    with pytest.raises(ValueError):
        SequenceLabeler(PersonModel())
