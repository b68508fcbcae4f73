# seqlab/stream.py
"""Pull-based sample streams and their JSON-lines serialization.

A sample stream is a finite, single-pass iterable of
:class:`~seqlab.types.SequenceSample` objects with a ``close`` method that
releases whatever backs it. Consumers (the event stream, the cross validator)
always close the stream when they are done with it, including on failure.

The on-disk format used by :class:`JsonlSampleStream` holds one JSON object
per line::

    {"tokens": ["John", "Smith"], "spans": [{"start": 0, "end": 2, "type": "PERSON"}],
     "clear_adaptive_data": true}
"""
from __future__ import annotations
import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Sequence, TextIO, Union

from .errors import SampleFormatError
from .types import SequenceSample, Span

__all__ = [
    "SampleStream",
    "ListSampleStream",
    "IteratorSampleStream",
    "JsonlSampleStream",
    "SampleTypeFilter",
    "as_sample_stream",
    "sample_from_dict",
    "sample_to_dict",
    "load_samples",
    "save_samples",
]


class SampleStream:
    """Base class for sample sources."""

    def __iter__(self) -> Iterator[SequenceSample]:
        raise NotImplementedError

    def reset(self) -> None:
        """Rewinds the stream so it can be iterated again."""
        raise NotImplementedError(f"{type(self).__name__} cannot be reset.")

    def close(self) -> None:
        pass

    def __enter__(self) -> "SampleStream":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ListSampleStream(SampleStream):
    """An in-memory stream; each iteration starts from the first sample."""

    def __init__(self, samples: Iterable[SequenceSample]):
        self.samples: List[SequenceSample] = list(samples)
        self.closed = False

    def __iter__(self) -> Iterator[SequenceSample]:
        return iter(self.samples)

    def __len__(self) -> int:
        return len(self.samples)

    def reset(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class IteratorSampleStream(SampleStream):
    """
    Pulls samples from an iterable one at a time.

    Nothing is read until the stream is iterated, and only a single pass is
    possible when the source is an iterator. ``close`` is forwarded to the
    source when it has one (generators, open files).
    """

    def __init__(self, samples: Iterable[SequenceSample]):
        self.source = samples
        self.closed = False

    def __iter__(self) -> Iterator[SequenceSample]:
        if self.closed:
            raise ValueError("Cannot iterate a closed sample stream.")
        return iter(self.source)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        close = getattr(self.source, "close", None)
        if callable(close):
            close()


def sample_from_dict(data: Any, where: str = "sample") -> SequenceSample:
    """
    Builds a :class:`SequenceSample` from its JSON dictionary form.

    Raises:
        SampleFormatError: If the structure is wrong or a span is invalid.
    """
    if not isinstance(data, dict):
        raise SampleFormatError(f"{where} is not a JSON object.")
    tokens = data.get("tokens")
    if not isinstance(tokens, list) or not all(isinstance(t, str) for t in tokens):
        raise SampleFormatError(f"{where} must have a 'tokens' list of strings.")

    spans = []
    for i, item in enumerate(data.get("spans") or []):
        if not isinstance(item, dict):
            raise SampleFormatError(f"Span {i} in {where} is not a JSON object.")
        try:
            spans.append(Span(int(item["start"]), int(item["end"]), item.get("type")))
        except (KeyError, TypeError, ValueError) as e:
            raise SampleFormatError(f"Invalid span {i} in {where}: {e}") from e

    additional_context = data.get("additional_context")
    return SequenceSample(
        tokens=tuple(tokens),
        spans=tuple(spans),
        additional_context=additional_context,
        clear_adaptive_data=bool(data.get("clear_adaptive_data", False)),
        id=data.get("id"),
    )


def sample_to_dict(sample: SequenceSample) -> dict:
    data: dict = {
        "tokens": list(sample.tokens),
        "spans": [{"start": s.start, "end": s.end, "type": s.type} for s in sample.spans],
    }
    if sample.clear_adaptive_data:
        data["clear_adaptive_data"] = True
    if sample.additional_context is not None:
        data["additional_context"] = [list(row) for row in sample.additional_context]
    if sample.id is not None:
        data["id"] = sample.id
    return data


class JsonlSampleStream(SampleStream):
    """
    Reads samples lazily from a JSON-lines file.

    The file is opened on iteration and closed when the iteration finishes,
    when :meth:`reset` is called or when :meth:`close` is called. Blank lines
    are skipped.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        SampleFormatError: If a line is not valid JSON or not a valid sample;
                           the message carries the line number.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        if not self.path.is_file():
            raise FileNotFoundError(f"Sample file not found at: {self.path}")
        self._handle: Optional[TextIO] = None

    def __iter__(self) -> Iterator[SequenceSample]:
        self.close()
        self._handle = open(self.path, "r", encoding="utf-8")
        try:
            for line_no, line in enumerate(self._handle, start=1):
                if not line.strip():
                    continue
                where = f"line {line_no} of {self.path}"
                try:
                    data = json.loads(line)
                except json.JSONDecodeError as e:
                    raise SampleFormatError(f"Error decoding JSON at {where}: {e}") from e
                yield sample_from_dict(data, where)
        finally:
            self.close()

    def reset(self) -> None:
        self.close()

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


class SampleTypeFilter(SampleStream):
    """Passes samples through, keeping only the spans of the allowed types."""

    def __init__(self, types: Union[str, Iterable[str]], samples: Union[SampleStream, Iterable[SequenceSample]]):
        if isinstance(types, str):
            types = [t for t in (part.strip() for part in types.split(",")) if t]
        self.types = frozenset(types)
        self.samples = as_sample_stream(samples)

    def __iter__(self) -> Iterator[SequenceSample]:
        for sample in self.samples:
            kept = tuple(s for s in sample.spans if s.type in self.types)
            yield sample if len(kept) == len(sample.spans) else replace(sample, spans=kept)

    def reset(self) -> None:
        self.samples.reset()

    def close(self) -> None:
        self.samples.close()


def as_sample_stream(samples: Union[SampleStream, Iterable[SequenceSample]]) -> SampleStream:
    """
    Wraps plain samples in a stream.

    Lists and tuples become a :class:`ListSampleStream`; any other iterable is
    read lazily through an :class:`IteratorSampleStream`.
    """
    if isinstance(samples, SampleStream):
        return samples
    if isinstance(samples, (list, tuple)):
        return ListSampleStream(samples)
    return IteratorSampleStream(samples)


def load_samples(path: Union[str, Path]) -> List[SequenceSample]:
    """Reads every sample of a JSON-lines file into a list."""
    with JsonlSampleStream(path) as stream:
        return list(stream)


def save_samples(path: Union[str, Path], samples: Sequence[SequenceSample]) -> None:
    """Writes ``samples`` as JSON lines."""
    with open(path, "w", encoding="utf-8") as f:
        for sample in samples:
            f.write(json.dumps(sample_to_dict(sample), ensure_ascii=False))
            f.write("\n")
