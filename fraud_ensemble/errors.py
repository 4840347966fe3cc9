"""
Error taxonomy for the scoring ensemble.

Only TrainingDataError and TrainingInProgressError ever reach callers of the
public API. The others are raised internally, logged, and recovered into a
degraded but complete result.
"""
from typing import Optional


class FraudEnsembleError(Exception):
    """Base class for all ensemble errors."""


class ComponentComputeError(FraudEnsembleError):
    """A single component failed while scoring a transaction."""

    def __init__(self, component_id: str, cause: Optional[BaseException] = None):
        self.component_id = component_id
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Component '{component_id}' failed{detail}")


class TrainingDataError(FraudEnsembleError):
    """Sample set is too small or malformed. No model was mutated."""


class TrainingInProgressError(FraudEnsembleError):
    """Another training run holds the single-writer flag."""


class FusionFailure(FraudEnsembleError):
    """The decision fusion stage failed for a request."""


class PersistenceError(FraudEnsembleError):
    """Model artifact could not be saved or loaded."""


class ModelImportError(PersistenceError):
    """Exported blob does not belong to this component or cannot be decoded."""
