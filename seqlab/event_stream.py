# seqlab/event_stream.py
"""Turns labelled samples into per-token training events."""
from __future__ import annotations
import logging
from typing import Iterable, Iterator, List, Mapping, Optional, Sequence, Union

from .codec import BioCodec, SequenceCodec
from .context import SequenceContextGenerator
from .errors import SampleFormatError
from .features import additional_context_window
from .stream import SampleStream, as_sample_stream
from .types import DEFAULT_TYPE, Event, SequenceSample

__all__ = ["SequenceLabelerEventStream", "generate_events", "additional_context"]

ADDITIONAL_CONTEXT_WINDOW = 8


def generate_events(
    tokens: Sequence[str],
    outcomes: Sequence[str],
    context_generator: SequenceContextGenerator,
    additional_context: Optional[Sequence[Sequence[str]]] = None,
) -> List[Event]:
    """
    Creates one event per token and then feeds the sentence to adaptive generators.

    Args:
        tokens: The sentence.
        outcomes: The gold outcome of every token.
        context_generator: Generator providing the feature context; its
                           adaptive data is updated once all events exist.
        additional_context: Optional side-channel feature rows.

    Returns:
        The events, in token order.

    Raises:
        SampleFormatError: If ``outcomes`` and ``tokens`` differ in length.
    """
    if len(outcomes) != len(tokens):
        raise SampleFormatError(f"Got {len(outcomes)} outcomes for {len(tokens)} tokens.")
    sentence = context_generator.sentence(tokens, additional_context)
    events = [
        Event(outcomes[i], context_generator.get_context(i, sentence, outcomes))
        for i in range(len(tokens))
    ]
    context_generator.update_adaptive_data(sentence.tokens, outcomes)
    return events


def additional_context(tokens: Sequence[str], previous_map: Mapping[str, str]) -> List[List[str]]:
    """Builds ``pd=`` side-channel rows from a token -> previous decision map."""
    return [["pd=" + previous_map.get(token, "none")] for token in tokens]


class SequenceLabelerEventStream:
    """
    Iterable of training events built from a stream of samples.

    For each sample the stream clears adaptive data if the sample asks for
    it, encodes the gold spans with the codec, emits one event per token in
    token order and finally updates the adaptive generators with the
    sentence and its outcomes. The underlying sample stream is closed once it
    has been consumed, whether iteration finished or failed.

    Attributes:
        samples: The source of samples.
        context_generator: The generator producing each token's features.
        codec: Encoding of spans into outcomes (BIO when not given).
        default_type: Entity type used for spans without one.
    """

    def __init__(
        self,
        samples: Union[SampleStream, Iterable[SequenceSample]],
        context_generator: SequenceContextGenerator,
        codec: Optional[SequenceCodec] = None,
        default_type: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.samples = as_sample_stream(samples)
        self.codec = codec if codec is not None else BioCodec()
        self.context_generator = context_generator
        self.context_generator.add_feature_generator(additional_context_window(ADDITIONAL_CONTEXT_WINDOW))
        self.default_type = default_type if default_type is not None else DEFAULT_TYPE
        self.log = logger or logging.getLogger(__name__)

    def create_events(self, sample: SequenceSample) -> List[Event]:
        if sample.clear_adaptive_data:
            self.context_generator.clear_adaptive_data()

        outcomes = self.codec.encode(sample.spans, len(sample.tokens), self.default_type)
        if len(outcomes) != len(sample.tokens):
            raise SampleFormatError(
                f"{self.codec.name} produced {len(outcomes)} outcomes for {len(sample.tokens)} tokens "
                f"in sample {sample.id!r}."
            )
        return generate_events(sample.tokens, outcomes, self.context_generator, sample.additional_context)

    def __iter__(self) -> Iterator[Event]:
        n_samples = n_events = 0
        try:
            for sample in self.samples:
                events = self.create_events(sample)
                n_samples += 1
                n_events += len(events)
                yield from events
        finally:
            self.samples.close()
        self.log.debug("Generated %d events from %d samples.", n_events, n_samples)
