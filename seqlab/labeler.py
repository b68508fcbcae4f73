# seqlab/labeler.py

from __future__ import annotations
import logging
from typing import List, Optional, Sequence

from .beam_search import BeamSearch
from .codec import BioCodec, SequenceCodec
from .context import SequenceContextGenerator
from .errors import InvalidConfigurationError
from .event_stream import ADDITIONAL_CONTEXT_WINDOW
from .factory import SequenceLabelerFactory
from .features import additional_context_window
from .model_builder import EventModel
from .spans import merge_spans
from .types import Span

__all__ = ["SequenceLabeler"]


class SequenceLabeler:
    """
    Applies a trained model to new sentences.

    The labeler owns its own context generator, set up exactly like the one
    used while generating training events, and decodes with a beam search
    constrained by the codec's sequence validator. After each sentence the
    chosen outcomes are fed back to the adaptive feature generators, mirroring
    training.

    Attributes:
        model: The trained model (``eval(context)`` and ``outcomes``).
        codec: The span encoding the model was trained with.
        context_generator: Feature context generator for decoding.
        beam_size: Width of the beam search.
        last_probs: Per-token probabilities of the last decoded sentence.
    """

    def __init__(
        self,
        model: EventModel,
        factory: Optional[SequenceLabelerFactory] = None,
        *,
        context_generator: Optional[SequenceContextGenerator] = None,
        codec: Optional[SequenceCodec] = None,
        beam_size: int = 3,
        logger: Optional[logging.Logger] = None,
    ):
        if factory is not None:
            context_generator = factory.create_context_generator()
            codec = factory.create_sequence_codec()
        if context_generator is None:
            raise ValueError("Either a factory or a context_generator is required.")

        self.model = model
        self.codec = codec if codec is not None else BioCodec()
        if not self.codec.are_outcomes_compatible(model.outcomes):
            raise InvalidConfigurationError(
                f"Model outcomes {sorted(model.outcomes)} are not compatible with the {self.codec.name} codec."
            )
        self.context_generator = context_generator
        self.context_generator.add_feature_generator(additional_context_window(ADDITIONAL_CONTEXT_WINDOW))
        self.beam_size = beam_size
        self.search = BeamSearch(beam_size, model, context_generator, self.codec.create_sequence_validator())
        self.log = logger or logging.getLogger(__name__)
        self.last_probs: List[float] = []

    def predict(
        self,
        tokens: Sequence[str],
        additional_context: Optional[Sequence[Sequence[str]]] = None,
    ) -> List[str]:
        """Returns one outcome per token and updates the adaptive data with them."""
        sentence = self.context_generator.sentence(tokens, additional_context)
        best = self.search.best_sequence(sentence)
        outcomes = list(best.outcomes)
        self.last_probs = list(best.probs)
        self.log.debug("decoded %d tokens: %s", len(outcomes), " ".join(outcomes))
        self.context_generator.update_adaptive_data(sentence.tokens, outcomes)
        return outcomes

    def find(
        self,
        tokens: Sequence[str],
        additional_context: Optional[Sequence[Sequence[str]]] = None,
        extra_spans: Sequence[Span] = (),
        conflict_strategy: str = "prefer_primary",
    ) -> List[Span]:
        """
        Returns the entity spans found in ``tokens``.

        ``extra_spans`` from another source (e.g. a gazetteer) are merged with
        the predicted spans using ``conflict_strategy``.
        """
        spans = self.codec.decode(self.predict(tokens, additional_context))
        if extra_spans:
            spans = merge_spans(spans, extra_spans, conflict_strategy)
        return spans

    def tag(self, tokens: Sequence[str]) -> List[str]:
        """Outcome labels for ``tokens``; lets a labeler serve as a tagging resource."""
        return self.predict(tokens)

    def clear_adaptive_data(self) -> None:
        self.context_generator.clear_adaptive_data()
