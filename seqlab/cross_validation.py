# seqlab/cross_validation.py
"""K-fold cross validation of sequence labelling configurations.

The run moves through the states ``IDLE -> PARTITIONING -> (TRAINING,
EVALUATING) x k -> AGGREGATED -> DONE``:

1.  **Partitioning**: the sample stream is read completely and closed, then
    sample ``i`` is assigned to fold ``i % k``; each fold keeps the samples
    in their original relative order.
2.  **Training**: for each fold a fresh context generator turns the other
    folds into training events, which the external trainer turns into a model.
3.  **Evaluating**: a labeler built from that model (with its own context
    generator) decodes the held-out fold and the span counts are collected.
4.  **Aggregation**: fold counts are summed into a micro-averaged
    F-measure, and listeners are replayed every evaluated sample in fold
    order, then held-out order.

Folds can run on a thread pool. Every fold owns its context generators, and
aggregation happens on the calling thread in fold order, so the result does
not depend on which fold finishes first.
"""
from __future__ import annotations
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from tqdm import tqdm

from .errors import InvalidConfigurationError
from .evaluation import EvaluationListener, FMeasure, SequenceLabelerEvaluator
from .event_stream import SequenceLabelerEventStream
from .factory import SequenceLabelerFactory
from .labeler import SequenceLabeler
from .model_builder import Trainer
from .stream import SampleStream, as_sample_stream
from .types import DEFAULT_TYPE, SequenceSample, Span

__all__ = [
    "CrossValidationState",
    "FoldSplit",
    "FoldResult",
    "CrossValidationResult",
    "CrossValidationPartitioner",
    "CrossValidator",
]


class CrossValidationState(Enum):
    IDLE = "idle"
    PARTITIONING = "partitioning"
    TRAINING = "training"
    EVALUATING = "evaluating"
    AGGREGATED = "aggregated"
    DONE = "done"


@dataclass(frozen=True)
class FoldSplit:
    index: int
    training: Tuple[SequenceSample, ...]
    held_out: Tuple[SequenceSample, ...]


@dataclass
class FoldResult:
    index: int
    fmeasure: FMeasure
    predictions: List[Tuple[SequenceSample, List[Span]]] = field(default_factory=list)


@dataclass
class CrossValidationResult:
    """
    Outcome of a cross-validation run.

    Attributes:
        fmeasure: Counts summed over all folds (micro average).
        folds: Per-fold results, in fold order.
    """
    fmeasure: FMeasure
    folds: List[FoldResult]

    @property
    def fold_scores(self) -> np.ndarray:
        return np.array([f.fmeasure.f_measure for f in self.folds], dtype=float)

    @property
    def mean_f_measure(self) -> float:
        return float(self.fold_scores.mean()) if self.folds else 0.0

    @property
    def std_f_measure(self) -> float:
        return float(self.fold_scores.std()) if self.folds else 0.0


class CrossValidationPartitioner:
    """
    Round-robin partition of samples into ``folds`` folds.

    Raises:
        InvalidConfigurationError: If ``folds < 2`` or there are fewer
                                   samples than folds.
    """

    def __init__(self, samples: Sequence[SequenceSample], folds: int):
        if folds < 2:
            raise InvalidConfigurationError(f"Cross validation needs at least 2 folds, got {folds}.")
        if len(samples) < folds:
            raise InvalidConfigurationError(
                f"Cannot split {len(samples)} samples into {folds} folds."
            )
        self.samples = list(samples)
        self.folds = folds

    def fold_of(self, sample_index: int) -> int:
        return sample_index % self.folds

    def fold_indices(self) -> List[List[int]]:
        assignment: List[List[int]] = [[] for _ in range(self.folds)]
        for i in range(len(self.samples)):
            assignment[self.fold_of(i)].append(i)
        return assignment

    def __iter__(self) -> Iterator[FoldSplit]:
        for fold in range(self.folds):
            training = tuple(s for i, s in enumerate(self.samples) if self.fold_of(i) != fold)
            held_out = tuple(s for i, s in enumerate(self.samples) if self.fold_of(i) == fold)
            yield FoldSplit(fold, training, held_out)

    def __len__(self) -> int:
        return self.folds


class _RecordingListener(EvaluationListener):
    def __init__(self):
        self.samples: List[Tuple[SequenceSample, List[Span]]] = []

    def on_sample(self, gold: SequenceSample, predicted: Sequence[Span]) -> None:
        self.samples.append((gold, list(predicted)))


class CrossValidator:
    """
    Orchestrates repeated train/evaluate cycles over k folds.

    Attributes:
        factory: Builds the codec and a fresh context generator per use.
        trainer: The external learner, ``train(events, params) -> model``.
        params: Parameters passed to the trainer unchanged.
        listeners: Evaluation listeners notified for every held-out sample.
        beam_size: Beam width used when decoding held-out samples.
        default_type: Entity type assigned to spans without one.
        max_workers: Number of folds processed concurrently.
        state: Current :class:`CrossValidationState`.
        result: The last :class:`CrossValidationResult`, once available.
    """

    def __init__(
        self,
        factory: SequenceLabelerFactory,
        trainer: Trainer,
        params: Optional[Mapping[str, Any]] = None,
        listeners: Iterable[EvaluationListener] = (),
        beam_size: int = 3,
        default_type: Optional[str] = None,
        max_workers: int = 1,
        logger: Optional[logging.Logger] = None,
        progress: bool = False,
    ):
        self.factory = factory
        self.trainer = trainer
        self.params = dict(params or {})
        self.listeners: List[EvaluationListener] = list(listeners)
        self.beam_size = beam_size
        self.default_type = default_type if default_type is not None else DEFAULT_TYPE
        self.max_workers = max(1, int(max_workers))
        self.log = logger or logging.getLogger(__name__)
        self.progress = progress
        self.state = CrossValidationState.IDLE
        self.result: Optional[CrossValidationResult] = None
        self._state_lock = threading.Lock()

    def _transition(self, state: CrossValidationState, fold: Optional[int] = None) -> None:
        with self._state_lock:
            self.state = state
        if fold is None:
            self.log.debug("Cross validation state: %s", state.value)
        else:
            self.log.debug("Cross validation state: %s (fold %d)", state.value, fold + 1)

    def _read_samples(self, stream: SampleStream) -> List[SequenceSample]:
        try:
            return list(stream)
        finally:
            try:
                stream.close()
            except OSError as e:
                self.log.error("IO error while closing the sample stream: %s", e)

    def _run_fold(self, split: FoldSplit, folds: int) -> FoldResult:
        self._transition(CrossValidationState.TRAINING, split.index)
        events = SequenceLabelerEventStream(
            split.training,
            self.factory.create_context_generator(),
            self.factory.create_sequence_codec(),
            self.default_type,
            logger=self.log,
        )
        model = self.trainer.train(events, self.params)

        self._transition(CrossValidationState.EVALUATING, split.index)
        labeler = SequenceLabeler(model, self.factory, beam_size=self.beam_size, logger=self.log)
        recorder = _RecordingListener()
        evaluator = SequenceLabelerEvaluator(labeler, [recorder], default_type=self.default_type)
        fmeasure = evaluator.evaluate(split.held_out)
        self.log.info(
            "Fold %d/%d: %d training samples, %d held out, F-measure %.4f",
            split.index + 1, folds, len(split.training), len(split.held_out), fmeasure.f_measure,
        )
        return FoldResult(split.index, fmeasure, recorder.samples)

    def evaluate(
        self,
        samples: Union[SampleStream, Iterable[SequenceSample]],
        folds: int,
    ) -> CrossValidationResult:
        """
        Cross-validates the configured pipeline over ``samples``.

        The sample stream is always closed before this method returns or
        raises. A failing fold aborts the whole run.

        Args:
            samples: The labelled samples.
            folds: Number of folds, at least 2.

        Returns:
            The aggregated :class:`CrossValidationResult`.
        """
        self._transition(CrossValidationState.IDLE)
        if folds < 2:
            as_sample_stream(samples).close()
            raise InvalidConfigurationError(f"Cross validation needs at least 2 folds, got {folds}.")

        self._transition(CrossValidationState.PARTITIONING)
        partitioner = CrossValidationPartitioner(self._read_samples(as_sample_stream(samples)), folds)
        splits = list(partitioner)

        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(lambda s: self._run_fold(s, folds), splits))
        else:
            results = [
                self._run_fold(split, folds)
                for split in tqdm(splits, desc="Cross-validating", unit="fold", disable=not self.progress)
            ]

        total = FMeasure()
        for fold_result in results:
            total.merge(fold_result.fmeasure)
            for gold, predicted in fold_result.predictions:
                for listener in self.listeners:
                    listener.on_sample(gold, predicted)
        self.result = CrossValidationResult(total, results)
        self._transition(CrossValidationState.AGGREGATED)
        self.log.info(
            "Cross validation over %d folds: F-measure %.4f (fold mean %.4f, std %.4f)",
            folds, total.f_measure, self.result.mean_f_measure, self.result.std_f_measure,
        )
        self._transition(CrossValidationState.DONE)
        return self.result

    def get_fmeasure(self) -> FMeasure:
        if self.result is None:
            raise RuntimeError("evaluate() has not completed yet.")
        return self.result.fmeasure
