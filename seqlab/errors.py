# seqlab/errors.py
"""Exception hierarchy shared by the sequence labelling toolkit."""
from __future__ import annotations

__all__ = [
    "SeqLabError",
    "InvalidConfigurationError",
    "InvalidSequenceError",
    "SampleFormatError",
    "FeatureGeneratorCreationError",
]


class SeqLabError(Exception):
    """Base class for all errors raised by ``seqlab``."""


class InvalidConfigurationError(SeqLabError, ValueError):
    """A descriptor, codec name, generator kind or resource could not be resolved."""


class InvalidSequenceError(SeqLabError, ValueError):
    """An outcome sequence or span list violates the codec's grammar."""


class SampleFormatError(SeqLabError, ValueError):
    """A sample is internally inconsistent (e.g. token/label length mismatch)."""


class FeatureGeneratorCreationError(SeqLabError, RuntimeError):
    """A feature pipeline that was built successfully before could not be rebuilt.

    This points at a programming defect rather than bad input, so callers are
    not expected to recover from it.
    """
