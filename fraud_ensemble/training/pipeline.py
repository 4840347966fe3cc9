"""
Batched Training Pipeline

Purpose:
Train all 23 components on labeled samples.

Pipeline Flow:
1. Validate the sample set (minimum count, well-formed records)
2. Warn on a skewed fraud share
3. Partition into fixed-size batches
4. For each batch, train every component in tier order
5. Accumulate per-component outcomes into a TrainingReport

Design Contract:
- Single writer: a non-blocking lock is the training-in-progress flag.
  An overlapping train_all() raises TrainingInProgressError immediately.
- Validation happens before any component is touched.
- A failing component is logged and counted; the run continues.
- Scoring requests keep using each component's previous state until its
  new state is swapped in.
"""

import logging
import threading
import time
import warnings
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from fraud_ensemble.components.registry import ComponentRegistry
from fraud_ensemble.config import settings
from fraud_ensemble.errors import TrainingDataError, TrainingInProgressError
from fraud_ensemble.schema import AnalysisInput, TrainingSample
from fraud_ensemble.training.report import ComponentTrainingSummary, TrainingReport
from fraud_ensemble.training.synthetic import SyntheticContextGenerator


logger = logging.getLogger(__name__)

SampleLike = Union[TrainingSample, Mapping[str, Any]]

FRAUD_LABEL_THRESHOLD = 0.7
MIN_FRAUD_SHARE = 0.1
MAX_FRAUD_SHARE = 0.9


def coerce_sample(sample: SampleLike) -> TrainingSample:
    """
    Accept a TrainingSample, {"input": {...}, "label": x}, or a flat
    snapshot dict carrying a "label" key.
    """
    if isinstance(sample, TrainingSample):
        return sample
    if not isinstance(sample, Mapping):
        raise TypeError(f"Unsupported sample type: {type(sample).__name__}")
    if "input" in sample:
        return TrainingSample(input=sample["input"], label=sample.get("label"))
    fields = dict(sample)
    label = fields.pop("label", None)
    return TrainingSample(input=AnalysisInput(**fields), label=label)


def validate_samples(samples: Iterable[SampleLike], min_samples: int) -> List[TrainingSample]:
    """
    Raises:
        TrainingDataError: Too few samples or any malformed sample
    """
    samples = list(samples) if samples is not None else []
    if len(samples) < min_samples:
        raise TrainingDataError(
            f"Insufficient training samples: {len(samples)} provided, at least {min_samples} required"
        )

    validated = []
    for i, sample in enumerate(samples):
        try:
            validated.append(coerce_sample(sample))
        except (ValidationError, TypeError, ValueError) as exc:
            raise TrainingDataError(f"Malformed training sample at index {i}: {exc}") from exc
    return validated


def fraud_share(samples: Sequence[TrainingSample]) -> float:
    if not samples:
        return 0.0
    return sum(1 for s in samples if s.label >= FRAUD_LABEL_THRESHOLD) / len(samples)


class TrainingPipeline:
    """
    Trains every registered component in fixed-size batches.

    Args:
        registry: Components to train
        batch_size: Samples per batch
        min_samples: Minimum sample count accepted by train_all()
        generator: Synthetic lower-tier context for Tier 2 and above
    """

    def __init__(
        self,
        registry: ComponentRegistry,
        batch_size: Optional[int] = None,
        min_samples: Optional[int] = None,
        generator: Optional[SyntheticContextGenerator] = None
    ):
        self.registry = registry
        self.batch_size = batch_size or settings.TRAINING_BATCH_SIZE
        self.min_samples = settings.MIN_TRAINING_SAMPLES if min_samples is None else min_samples
        self.generator = generator or SyntheticContextGenerator.from_settings()
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        self._lock = threading.Lock()

    @property
    def is_training(self) -> bool:
        return self._lock.locked()

    def train_all(self, samples: Iterable[SampleLike], verbose: bool = True) -> TrainingReport:
        """
        Train all components.

        Args:
            samples: Labeled samples
            verbose: Print progress banners

        Returns:
            TrainingReport

        Raises:
            TrainingInProgressError: Another run is active
            TrainingDataError: Sample set rejected (no model mutated)
        """
        if not self._lock.acquire(blocking=False):
            raise TrainingInProgressError("A training run is already in progress")
        try:
            return self._train_all(samples, verbose)
        finally:
            self._lock.release()

    def _train_all(self, samples, verbose: bool) -> TrainingReport:
        start = time.perf_counter()
        validated = validate_samples(samples, self.min_samples)

        share = fraud_share(validated)
        if share < MIN_FRAUD_SHARE or share > MAX_FRAUD_SHARE:
            warnings.warn(
                f"Skewed training labels: fraud share {share:.1%} "
                f"(expected between {MIN_FRAUD_SHARE:.0%} and {MAX_FRAUD_SHARE:.0%})",
                UserWarning
            )

        batches = [validated[i:i + self.batch_size] for i in range(0, len(validated), self.batch_size)]
        components = list(self.registry.iter_components())
        report = TrainingReport(samples=len(validated), batches=len(batches), batch_size=self.batch_size)
        for component in components:
            report.per_component[component.component_id] = ComponentTrainingSummary(
                component_id=component.component_id, tier=component.tier
            )

        if verbose:
            print(f"\n{'='*70}")
            print(f"ENSEMBLE TRAINING")
            print(f"{'='*70}")
            print(f"   Samples: {len(validated):,}  |  Fraud share: {share:.1%}")
            print(f"   Batches: {len(batches)} x {self.batch_size}  |  Components: {len(components)}\n")

        logger.info(f"Training {len(components)} components on {len(validated)} samples "
                    f"in {len(batches)} batches")

        for batch_index, batch in enumerate(batches, start=1):
            if verbose:
                print(f"📦 Batch {batch_index}/{len(batches)} ({len(batch)} samples)")
            for component in components:
                summary = report.per_component[component.component_id]
                try:
                    result = component.train(
                        batch,
                        generator=self.generator,
                        continue_training=batch_index > 1
                    )
                    summary.successful_batches += 1
                    summary.iterations += result.iterations
                    summary.final_error = result.final_error
                except Exception as exc:
                    summary.failed_batches += 1
                    summary.last_error = str(exc)
                    logger.error(f"❌ Training failed for {component.component_id} "
                                 f"(batch {batch_index}): {exc}", exc_info=True)

        report.total_time_ms = (time.perf_counter() - start) * 1000

        if verbose:
            print(f"\n{'='*70}")
            print(f"✅ TRAINING COMPLETE")
            print(f"{'='*70}")
            print(f"   Successful components: {report.successful_components}/{len(components)}")
            if report.failed_components:
                print(f"   ⚠️  Failed components: {report.failed_components}")
            print(f"   Total time: {report.total_time_ms / 1000:.1f}s\n")

        logger.info(f"Training finished: {report.successful_components} succeeded, "
                    f"{report.failed_components} failed, {report.total_time_ms:.0f}ms")
        return report
