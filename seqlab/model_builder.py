# seqlab/model_builder.py
"""Reference learner for training events.

The toolkit treats the statistical learner as an external capability: any
object with a ``train(events, params)`` method returning a model with an
``eval(context)`` method and an ``outcomes`` attribute can be plugged into the
event stream and the cross validator. This module ships a small baseline so
the harness can run end to end:

1.  **Feature Table**: :func:`events_to_frame` explodes the events into a
    long pandas DataFrame with one row per (event, feature) pair.
2.  **Weight Building**: :func:`build_weights` computes the smoothed
    conditional probability of each outcome given each feature and converts
    it to log-odds.
3.  **Reweighting**: :class:`LogOddsTrainer` optionally repeats the weight
    building, boosting the weight of events the previous model misclassified.
"""
from __future__ import annotations
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

import numpy as np
import pandas as pd
from tqdm import tqdm

from .types import Event

__all__ = [
    "EventModel",
    "Trainer",
    "log_odds",
    "events_to_frame",
    "build_weights",
    "LogOddsModel",
    "LogOddsTrainer",
]


class EventModel(Protocol):
    outcomes: Sequence[str]

    def eval(self, context: Sequence[str]) -> Dict[str, float]:
        ...


class Trainer(Protocol):
    def train(self, events: Iterable[Event], params: Mapping[str, Any]) -> EventModel:
        ...


def log_odds(p: float, eps: float = 1e-6) -> float:
    """
    Converts a probability to log-odds.

    Args:
        p: The probability (0.0 to 1.0).
        eps: A small epsilon value to prevent division by zero or log(0).

    Returns:
        The log-odds representation of the probability.
    """
    p = min(1 - eps, max(eps, p))
    return math.log(p / (1 - p))


def events_to_frame(events: Iterable[Event]) -> pd.DataFrame:
    """Returns a long table with columns ``event_id``, ``outcome`` and ``feature``."""
    rows = [
        (event_id, event.outcome, feature)
        for event_id, event in enumerate(events)
        for feature in event.context
    ]
    return pd.DataFrame(rows, columns=["event_id", "outcome", "feature"])


def build_weights(
    df: pd.DataFrame,
    alpha: float = 0.1,
    cutoff: int = 1,
    sample_weights: Optional[pd.Series] = None,
) -> Dict[str, Dict[str, float]]:
    """
    Builds per-feature outcome weights from a feature table.

    Args:
        df: The table produced by :func:`events_to_frame`.
        alpha: Laplace smoothing added to every (feature, outcome) count.
        cutoff: Features seen in fewer events than this are dropped.
        sample_weights: Optional weight per ``event_id``; missing ids count 1.0.

    Returns:
        A nested dictionary ``{feature: {outcome: log_odds}}``.

    Raises:
        ValueError: If the input DataFrame is empty.
    """
    if df.empty:
        raise ValueError("Input DataFrame is empty. Cannot build weights.")

    df = df.copy()
    if sample_weights is not None:
        df["sample_weight"] = df["event_id"].map(sample_weights).fillna(1.0)
    else:
        df["sample_weight"] = 1.0

    if cutoff > 1:
        support = df.groupby("feature")["event_id"].nunique()
        df = df[df["feature"].isin(support[support >= cutoff].index)]
        if df.empty:
            raise ValueError(f"No feature reaches the cutoff of {cutoff} events.")

    outcomes = sorted(df["outcome"].unique())
    counts = df.groupby(["feature", "outcome"])["sample_weight"].sum().unstack(fill_value=0.0) + alpha
    for out in outcomes:
        if out not in counts.columns:
            counts[out] = alpha
    probs = counts.div(counts.sum(axis=1), axis=0)

    weights: Dict[str, Dict[str, float]] = {}
    for feature, row in probs.iterrows():
        weights[feature] = {outcome: log_odds(row[outcome]) for outcome in outcomes}
    return weights


class LogOddsModel:
    """
    Scores outcomes by summing per-feature log-odds and an outcome prior.

    Attributes:
        outcomes: The outcome labels, in column order.
        features: Mapping of feature string to row index in ``matrix``.
        matrix: Array of shape ``(n_features, n_outcomes)`` holding the weights.
        prior: Log prior probability of each outcome.
    """

    def __init__(self, weights: Mapping[str, Mapping[str, float]], prior: Mapping[str, float]):
        self.outcomes: List[str] = sorted(prior)
        self.features: Dict[str, int] = {f: i for i, f in enumerate(weights)}
        self.matrix = np.array(
            [[weights[f].get(o, 0.0) for o in self.outcomes] for f in weights], dtype=float
        ).reshape(len(weights), len(self.outcomes))
        self.prior = np.array([prior[o] for o in self.outcomes], dtype=float)

    def eval(self, context: Sequence[str]) -> Dict[str, float]:
        rows = [self.features[f] for f in context if f in self.features]
        scores = self.prior + (self.matrix[rows].sum(axis=0) if rows else 0.0)
        return dict(zip(self.outcomes, scores.tolist()))

    def best_outcome(self, context: Sequence[str]) -> str:
        scores = self.eval(context)
        return max(scores, key=scores.get)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prior": dict(zip(self.outcomes, self.prior.tolist())),
            "weights": {
                f: dict(zip(self.outcomes, self.matrix[i].tolist())) for f, i in self.features.items()
            },
        }


class LogOddsTrainer:
    """
    Baseline trainer producing a :class:`LogOddsModel`.

    Recognised parameters: ``alpha`` (smoothing, 0.1), ``cutoff`` (minimum
    feature support, 1), ``iterations`` (reweighting rounds, 1),
    ``error_boost_factor`` (weight added to misclassified events, 1.0).
    """

    def __init__(self, progress: bool = False):
        self.progress = progress

    def train(self, events: Iterable[Event], params: Optional[Mapping[str, Any]] = None) -> LogOddsModel:
        params = dict(params or {})
        alpha = float(params.get("alpha", 0.1))
        cutoff = int(params.get("cutoff", 1))
        iterations = max(1, int(params.get("iterations", 1)))
        boost = float(params.get("error_boost_factor", 1.0))

        events = list(events)
        df = events_to_frame(events)
        if df.empty:
            raise ValueError("No training events with features were produced. Cannot train a model.")

        gold = pd.Series([e.outcome for e in events])
        sample_weights = pd.Series(1.0, index=gold.index)
        model = None
        for i in range(iterations):
            weights = build_weights(df, alpha=alpha, cutoff=cutoff, sample_weights=sample_weights)
            outcome_mass = sample_weights.groupby(gold).sum() + alpha
            prior = {o: math.log(m / outcome_mass.sum()) for o, m in outcome_mass.items()}
            model = LogOddsModel(weights, prior)
            if i == iterations - 1:
                break

            predictions = pd.Series([
                model.best_outcome(e.context)
                for e in tqdm(events, desc=f"Predicting (Iter {i + 1})", disable=not self.progress)
            ])
            errors = predictions != gold
            if not errors.any():
                break
            sample_weights[errors] += boost
        return model
