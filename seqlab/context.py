# seqlab/context.py
"""Aggregates feature generators into the full feature context of a token."""
from __future__ import annotations
import logging
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .features import AggregatedFeatureGenerator, FeatureGenerator, SentenceContext, token_shape
from .types import OTHER

__all__ = ["SequenceContextGenerator"]


class SequenceContextGenerator:
    """
    Produces the feature context for one token position.

    The context is the union of the features emitted by every registered
    generator plus a fixed set of previous-outcome features (``po=``,
    ``pow=``, ``powf=``, ``ppo=``) that let the learner condition on the
    decisions already taken for the sentence.

    Attributes:
        feature_generator: The aggregate holding all registered generators.
        log: Logger receiving per-token feature traces at DEBUG level.
    """

    def __init__(
        self,
        generators: Union[FeatureGenerator, Iterable[FeatureGenerator]] = (),
        logger: Optional[logging.Logger] = None,
    ):
        if isinstance(generators, FeatureGenerator):
            generators = [generators]
        self.feature_generator = AggregatedFeatureGenerator(generators)
        self.log = logger or logging.getLogger(__name__)

    def add_feature_generator(self, generator: FeatureGenerator) -> None:
        """Registers an extra generator, e.g. the additional-context window."""
        self.feature_generator.add(generator)

    @property
    def generators(self) -> List[FeatureGenerator]:
        return list(self.feature_generator.generators)

    def sentence(
        self,
        tokens: Sequence[str],
        additional_context: Optional[Sequence[Sequence[str]]] = None,
    ) -> SentenceContext:
        """Opens the per-sentence context shared by all positions of ``tokens``."""
        return SentenceContext(tokens, additional_context)

    def get_context(
        self,
        index: int,
        tokens: Union[SentenceContext, Sequence[str]],
        previous_outcomes: Sequence[str],
        additional_context: Optional[Sequence[Sequence[str]]] = None,
    ) -> Tuple[str, ...]:
        """
        Returns the unique features for position ``index``.

        Args:
            index: Position of the token being classified.
            tokens: The sentence, either as an open :class:`SentenceContext`
                    (preferred when several positions are queried) or as a
                    plain token sequence.
            previous_outcomes: Outcomes already assigned to earlier positions.
                               Must hold at least ``index`` entries; only
                               ``previous_outcomes[:index]`` is read.
            additional_context: Side-channel rows, used only when ``tokens``
                                is a plain sequence.

        Returns:
            The feature strings, de-duplicated in first-seen order.
        """
        sentence = tokens if isinstance(tokens, SentenceContext) else self.sentence(tokens, additional_context)
        features: List[str] = []
        self.feature_generator.create_features(features, sentence, index, previous_outcomes)

        token = sentence.tokens[index]
        po = previous_outcomes[index - 1] if index > 0 else OTHER
        ppo = previous_outcomes[index - 2] if index > 1 else OTHER
        features.append("po=" + po)
        features.append("pow=" + po + "," + token)
        features.append("powf=" + po + "," + token_shape(token))
        features.append("ppo=" + ppo)

        context = tuple(dict.fromkeys(features))
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("context[%d] %r: %s", index, token, " ".join(context))
        return context

    def update_adaptive_data(self, tokens: Sequence[str], outcomes: Sequence[str]) -> None:
        self.feature_generator.update_adaptive_data(tokens, outcomes)

    def clear_adaptive_data(self) -> None:
        self.feature_generator.clear_adaptive_data()
