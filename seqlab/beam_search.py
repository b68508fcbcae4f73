"""Beam search decoding of outcome sequences.

The decoder walks the sentence left to right. At every position each
hypothesis in the beam asks the context generator for the token's features,
given the outcomes the hypothesis has already committed to, and the model
scores every outcome. Scores are normalised to log-probabilities so that path
scores are comparable, and every extension is checked against the codec's
sequence validator, which keeps illegal transitions (``A-CONTINUE`` after
``OTHER``) out of the beam entirely.
"""
from __future__ import annotations
from dataclasses import dataclass
from heapq import nlargest
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .codec import SequenceValidator
from .context import SequenceContextGenerator
from .errors import InvalidSequenceError
from .features import SentenceContext
from .model_builder import EventModel

__all__ = ["Hypothesis", "BeamSearch", "log_softmax"]


def log_softmax(scores: Dict[str, float]) -> Dict[str, float]:
    """Normalises raw outcome scores into log-probabilities."""
    values = np.fromiter(scores.values(), dtype=float, count=len(scores))
    shifted = values - values.max()
    normalised = shifted - np.log(np.exp(shifted).sum())
    return dict(zip(scores.keys(), normalised.tolist()))


@dataclass(frozen=True)
class Hypothesis:
    """One partial outcome sequence in the beam."""
    score: float
    outcomes: Tuple[str, ...]
    probs: Tuple[float, ...] = ()


class BeamSearch:
    """
    Finds the best-scoring legal outcome sequence for a sentence.

    Attributes:
        beam_size: Number of hypotheses kept after each position, and number
                   of outcomes each hypothesis may be extended with.
        model: Any object with ``eval(context) -> {outcome: score}``.
        context_generator: Produces the feature context at each position.
        validator: Optional sequence validator consulted for every extension.
    """

    def __init__(
        self,
        beam_size: int,
        model: EventModel,
        context_generator: SequenceContextGenerator,
        validator: Optional[SequenceValidator] = None,
    ):
        if beam_size < 1:
            raise ValueError(f"beam_size must be >= 1, got {beam_size}.")
        self.beam_size = beam_size
        self.model = model
        self.context_generator = context_generator
        self.validator = validator

    def _extensions(self, index: int, sentence: SentenceContext, hyp: Hypothesis) -> List[Hypothesis]:
        context = self.context_generator.get_context(index, sentence, hyp.outcomes)
        scores = log_softmax(self.model.eval(context))
        extensions: List[Hypothesis] = []
        for outcome, logp in sorted(scores.items(), key=lambda kv: kv[1], reverse=True):
            if self.validator is not None and not self.validator.validate_sequence(
                index, sentence.tokens, hyp.outcomes, outcome
            ):
                continue
            extensions.append(
                Hypothesis(hyp.score + logp, hyp.outcomes + (outcome,), hyp.probs + (float(np.exp(logp)),))
            )
            if len(extensions) == self.beam_size:
                break
        return extensions

    def best_sequence(self, sentence: SentenceContext) -> Hypothesis:
        """
        Runs the search over ``sentence``.

        Returns:
            The highest-scoring complete hypothesis. An empty sentence yields
            an empty hypothesis.

        Raises:
            InvalidSequenceError: If no legal extension exists for any
                                  hypothesis at some position.
        """
        beam: List[Hypothesis] = [Hypothesis(0.0, ())]
        for i in range(len(sentence)):
            candidates: List[Hypothesis] = []
            for hyp in beam:
                candidates.extend(self._extensions(i, sentence, hyp))
            if not candidates:
                raise InvalidSequenceError(f"No legal outcome available at index {i}.")
            beam = nlargest(self.beam_size, candidates, key=lambda h: h.score)
        return max(beam, key=lambda h: h.score)

    def best_outcomes(self, sentence: SentenceContext) -> Sequence[str]:
        return self.best_sequence(sentence).outcomes
