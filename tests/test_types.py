import pytest

from seqlab.errors import InvalidConfigurationError, SampleFormatError
from seqlab.registry import Registry
from seqlab.types import SequenceSample, Span, outcome_role, outcome_type


@pytest.mark.parametrize(
    "outcome,role,entity_type",
    [
        ("OTHER", "OTHER", None),
        ("PERSON-START", "START", "PERSON"),
        ("date-time-CONTINUE", "CONTINUE", "date-time"),
    ],
)
def test_outcome_parts(outcome, role, entity_type) -> None:
    assert outcome_role(outcome) == role
    assert outcome_type(outcome) == entity_type


def test_sample_sorts_spans_and_freezes_tokens() -> None:
    sample = SequenceSample(["a", "b", "c"], [Span(2, 3, "B"), Span(0, 1, "A")])

    assert sample.tokens == ("a", "b", "c")
    assert sample.spans == (Span(0, 1, "A"), Span(2, 3, "B"))
    assert len(sample) == 3


def test_sample_rejects_span_outside_tokens() -> None:
    with pytest.raises(SampleFormatError):
        SequenceSample(["a"], [Span(0, 2, "A")])


def test_span_str_and_text() -> None:
    span = Span(1, 3, "LOCATION")

    assert str(span) == "[1..3) LOCATION"
    assert str(Span(0, 1)) == "[0..1)"
    assert span.covered_text(["in", "New", "York"]) == "New York"


def test_registry_lookup() -> None:
    registry = Registry("widget", case_sensitive=False)

    @registry.register("round")
    class Round:
        pass

    assert registry.get("ROUND") is Round
    assert "Round" in registry
    assert list(registry) == ["ROUND"]
    with pytest.raises(InvalidConfigurationError, match="Known values: ROUND"):
        registry.get("square")
    with pytest.raises(ValueError):
        registry.register("round", object)
