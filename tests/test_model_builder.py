import math

import pandas as pd
import pytest

from seqlab.model_builder import LogOddsTrainer, build_weights, events_to_frame, log_odds
from seqlab.types import Event

EVENTS = [
    Event("PERSON-START", ("w=john", "def")),
    Event("OTHER", ("w=the", "def")),
    Event("OTHER", ("w=cat", "def")),
]


def test_log_odds_is_symmetric_and_clipped() -> None:
    assert log_odds(0.5) == pytest.approx(0.0)
    assert log_odds(0.8) == pytest.approx(-log_odds(0.2))
    assert math.isfinite(log_odds(0.0))
    assert math.isfinite(log_odds(1.0))


def test_events_to_frame_has_one_row_per_feature() -> None:
    df = events_to_frame(EVENTS)

    assert list(df.columns) == ["event_id", "outcome", "feature"]
    assert len(df) == 6
    assert df.loc[df["feature"] == "w=john", "outcome"].tolist() == ["PERSON-START"]


def test_build_weights_favours_observed_outcome() -> None:
    weights = build_weights(events_to_frame(EVENTS), alpha=0.1)

    assert weights["w=john"]["PERSON-START"] > 0 > weights["w=john"]["OTHER"]
    assert weights["def"]["OTHER"] > weights["def"]["PERSON-START"]


def test_build_weights_applies_cutoff() -> None:
    weights = build_weights(events_to_frame(EVENTS), cutoff=2)

    assert set(weights) == {"def"}


def test_build_weights_rejects_empty_frame() -> None:
    with pytest.raises(ValueError):
        build_weights(pd.DataFrame(columns=["event_id", "outcome", "feature"]))


def test_trainer_produces_model_over_all_outcomes() -> None:
    model = LogOddsTrainer().train(EVENTS, {"alpha": 0.1})

    assert model.outcomes == ["OTHER", "PERSON-START"]
    assert model.best_outcome(("w=john", "def")) == "PERSON-START"
    assert model.best_outcome(("w=cat", "def")) == "OTHER"
    assert model.best_outcome(("w=unseen",)) == "OTHER"


def test_trainer_reweighting_keeps_model_usable() -> None:
    model = LogOddsTrainer().train(EVENTS, {"iterations": 3, "error_boost_factor": 2.0})

    scores = model.eval(("w=john", "def"))
    data = model.to_dict()
    expected = (
        data["prior"]["PERSON-START"]
        + data["weights"]["w=john"]["PERSON-START"]
        + data["weights"]["def"]["PERSON-START"]
    )

    assert set(scores) == {"OTHER", "PERSON-START"}
    assert scores["PERSON-START"] == pytest.approx(expected)


def test_trainer_rejects_empty_event_stream() -> None:
    with pytest.raises(ValueError):
        LogOddsTrainer().train([], {})
