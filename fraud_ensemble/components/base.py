"""
Trainable Component Base

Purpose:
Every one of the 23 scoring components shares the same life cycle:
- created Untrained (heuristic scoring only)
- trained on labeled samples, which swaps in a Trained state
- exported to / imported from a JSON-safe blob (weights + side tables)

Design Contract:
- Model state is an explicit tagged value (Untrained | Trained) held in one
  attribute. Training and import build the new state completely, then
  replace the attribute in a single assignment (import and reset write the
  side tables and metadata in the same update); the read path takes one
  snapshot of it per request and never locks.
- Scoring goes through a strategy picked from that snapshot:
  HeuristicScorer for Untrained, LearnedScorer for Trained.
- Scoring never raises. Any failure is logged as a ComponentComputeError
  and the heuristic result is substituted (flagged heuristic=True). If the
  heuristic itself fails, a neutral result (score 0.5, confidence 0.1) is
  returned.
"""

import binascii
import copy
import logging
import pickle
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

import numpy as np
import pandas as pd

from fraud_ensemble.components.catalog import TIER1_IDS, TIER2_IDS
from fraud_ensemble.components.estimators import (
    default_hyperparameters,
    deserialize_estimator,
    fit_estimator,
    predict_one,
    serialize_estimator,
)
from fraud_ensemble.components.scoring import clamp01
from fraud_ensemble.errors import ComponentComputeError, ModelImportError, TrainingDataError
from fraud_ensemble.schema import AnalysisInput, AnalyzerResult, CombinerResult, DeepResult, TrainingSample
from fraud_ensemble.training.report import ComponentTrainingResult


logger = logging.getLogger(__name__)


# ============================================================================
# TAGGED MODEL STATE
# ============================================================================

@dataclass(frozen=True)
class Untrained:
    is_trained: ClassVar[bool] = False


@dataclass(frozen=True)
class Trained:
    estimator: Any
    estimator_kind: str
    feature_names: Tuple[str, ...]
    trained_at: datetime
    iterations: int = 0
    final_error: Optional[float] = None
    is_trained: ClassVar[bool] = True


ComponentState = Union[Untrained, Trained]


# ============================================================================
# SCORING CONTEXT
# ============================================================================

@dataclass(frozen=True)
class ScoringContext:
    """
    Everything a component may read for one request: the input snapshot
    plus the complete result sets of the tiers below it.
    """
    input: AnalysisInput
    tier1: Mapping[str, AnalyzerResult] = field(default_factory=dict)
    tier2: Mapping[str, CombinerResult] = field(default_factory=dict)
    tier3: Mapping[str, DeepResult] = field(default_factory=dict)

    def t1(self, name: str, default: float = 0.0) -> float:
        """Tier-1 score by variable name ('amount' -> amount_analyzer)."""
        result = self.tier1.get(f"{name}_analyzer")
        return result.score if result is not None else default

    def t2(self, name: str, default: float = 0.0) -> float:
        """Tier-2 score by theme ('behavior' -> behavior_combiner)."""
        result = self.tier2.get(f"{name}_combiner")
        return result.score if result is not None else default

    def t3(self, component_id: str, default: float = 0.0) -> float:
        result = self.tier3.get(component_id)
        return result.score if result is not None else default

    def t3_assessment(self, component_id: str) -> Dict[str, Any]:
        result = self.tier3.get(component_id)
        return dict(result.structured_assessment) if result is not None else {}

    @property
    def tier1_scores(self) -> List[float]:
        return [r.score for r in self.tier1.values()]

    @property
    def tier2_scores(self) -> List[float]:
        return [r.score for r in self.tier2.values()]

    @property
    def tier3_scores(self) -> List[float]:
        return [r.score for r in self.tier3.values()]

    @property
    def tier2_patterns(self) -> Dict[str, Tuple[str, ...]]:
        """Detected patterns by combiner id; combiners that found none are left out."""
        return {cid: tuple(r.detected_patterns) for cid, r in self.tier2.items() if r.detected_patterns}

    @property
    def distinct_patterns(self) -> Set[str]:
        return {p for patterns in self.tier2_patterns.values() for p in patterns}

    def has_pattern(self, *names: str) -> bool:
        """True if any combiner reported one of the named patterns."""
        return not self.distinct_patterns.isdisjoint(names)


@dataclass
class Assessment:
    """Intermediate scoring outcome, turned into a tier result record."""
    score: float
    confidence: float
    reasons: List[str] = field(default_factory=list)
    patterns: List[str] = field(default_factory=list)
    sub_scores: Dict[str, float] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# SCORING STRATEGIES
# ============================================================================

class HeuristicScorer:
    """Deterministic rule-based scoring (Untrained state)."""
    heuristic = True

    def assess(self, component: "EnsembleComponent", ctx: ScoringContext, features: Dict[str, float]) -> Assessment:
        return component.heuristic_assessment(ctx, features)


class LearnedScorer:
    """Score from the trained estimator (Trained state)."""
    heuristic = False

    def __init__(self, state: Trained):
        self.state = state

    def assess(self, component: "EnsembleComponent", ctx: ScoringContext, features: Dict[str, float]) -> Assessment:
        raw_score = predict_one(
            self.state.estimator_kind,
            self.state.estimator,
            features,
            self.state.feature_names
        )
        return component.learned_assessment(ctx, features, raw_score)


_HEURISTIC = HeuristicScorer()


# ============================================================================
# COMPONENT BASE
# ============================================================================

class EnsembleComponent(ABC):
    """
    Base class for every trainable component.

    Subclasses define:
    - COMPONENT_ID, TIER, DESCRIPTION, HIDDEN_LAYERS
    - default_side_tables(): lookup tables carried in exported models
    - prepare_features(ctx): numeric feature vector for the learned scorer
    - heuristic_assessment(ctx, features): rule-based scoring
    """
    COMPONENT_ID: ClassVar[str] = ""
    TIER: ClassVar[int] = 0
    VERSION: ClassVar[str] = "1.0.0"
    DESCRIPTION: ClassVar[str] = ""
    HIDDEN_LAYERS: ClassVar[Tuple[int, ...]] = (8, 6, 4)

    def __init__(self, estimator_kind: str = "mlp", hyperparameters: Optional[Dict[str, Any]] = None):
        self.estimator_kind = estimator_kind
        self.hyperparameters = default_hyperparameters(estimator_kind, self.HIDDEN_LAYERS)
        if hyperparameters:
            self.hyperparameters.update(hyperparameters)
        self.version = self.VERSION
        self._install(Untrained(), self.default_side_tables())

    # ------------------------------------------------------------------
    # Identity and state
    # ------------------------------------------------------------------

    @property
    def component_id(self) -> str:
        return self.COMPONENT_ID

    @property
    def tier(self) -> int:
        return self.TIER

    @property
    def state(self) -> ComponentState:
        return self._state

    @property
    def is_trained(self) -> bool:
        return self._state.is_trained

    @property
    def trained_at(self) -> Optional[datetime]:
        state = self._state
        return state.trained_at if isinstance(state, Trained) else None

    def swap_state(self, new_state: ComponentState) -> None:
        """Replace the model state in one assignment."""
        self._state = new_state

    def _install(self, new_state: ComponentState, tables: Mapping[str, Any], **attributes) -> None:
        """
        Install a state together with its side tables and metadata.

        Everything is copied first, then written with a single update of the
        instance dict, so a reader never sees new tables with an old state.
        """
        updates = {
            name: copy.deepcopy(tables[name])
            for name in self.default_side_tables() if name in tables
        }
        updates.update(attributes)
        updates["_state"] = new_state
        vars(self).update(updates)

    def reset(self) -> None:
        """Back to Untrained with default side tables."""
        self._install(Untrained(), self.default_side_tables(), version=self.VERSION)
        logger.info(f"Component {self.component_id} reset to untrained")

    def get_stats(self) -> Dict[str, Any]:
        state = self._state
        return {
            "component_id": self.component_id,
            "tier": self.tier,
            "version": self.version,
            "is_trained": state.is_trained,
            "trained_at": state.trained_at.isoformat() if isinstance(state, Trained) else None,
            "estimator_kind": self.estimator_kind,
            "description": self.DESCRIPTION,
            "side_tables": sorted(self.default_side_tables()),
        }

    # ------------------------------------------------------------------
    # Side tables
    # ------------------------------------------------------------------

    def default_side_tables(self) -> Dict[str, Any]:
        """Fresh copies of this component's lookup tables, keyed by attribute name."""
        return {}

    def side_tables(self) -> Dict[str, Any]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self.default_side_tables()}

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    @abstractmethod
    def prepare_features(self, ctx: ScoringContext) -> Dict[str, float]:
        """Numeric feature vector (fixed keys) for the learned scorer."""

    @abstractmethod
    def heuristic_assessment(self, ctx: ScoringContext, features: Dict[str, float]) -> Assessment:
        """Deterministic rule-based scoring."""

    def learned_assessment(self, ctx: ScoringContext, features: Dict[str, float], score: float) -> Assessment:
        """
        Wrap a learned score. Descriptive parts (patterns, sub-scores,
        structured details) still come from the rules.
        """
        base = self.heuristic_assessment(ctx, features)
        return Assessment(
            score=score,
            confidence=self.learned_confidence(ctx, features, base),
            reasons=self.learned_reasons(ctx, features, score, base),
            patterns=base.patterns,
            sub_scores=base.sub_scores,
            warnings=base.warnings,
            details=base.details,
        )

    def learned_confidence(self, ctx: ScoringContext, features: Dict[str, float], base: Assessment) -> float:
        return base.confidence

    def learned_reasons(self, ctx: ScoringContext, features: Dict[str, float], score: float, base: Assessment) -> List[str]:
        return list(base.reasons)

    def _scorer_for(self, state: ComponentState):
        if isinstance(state, Trained):
            return LearnedScorer(state)
        return _HEURISTIC

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def training_context(self, sample: TrainingSample, generator=None) -> ScoringContext:
        """Context used to build a training row (Tier 1 needs only the input)."""
        return ScoringContext(input=sample.input)

    def build_training_frame(self, samples: Sequence[TrainingSample], generator=None) -> Tuple[pd.DataFrame, np.ndarray]:
        rows = []
        labels = []
        for sample in samples:
            ctx = self.training_context(sample, generator)
            rows.append(self.prepare_features(ctx))
            labels.append(sample.label)
        return pd.DataFrame(rows, dtype=float), np.asarray(labels, dtype=float)

    def train(
        self,
        samples: Sequence[TrainingSample],
        generator=None,
        continue_training: bool = False
    ) -> ComponentTrainingResult:
        """
        Fit the learned scorer on labeled samples.

        Re-runnable: without continue_training the estimator is fit from
        scratch. With continue_training a trained component continues from
        a copy of its current weights.

        Args:
            samples: Labeled snapshots
            generator: SyntheticContextGenerator (required above Tier 1)
            continue_training: Continue from current weights if trained

        Returns:
            ComponentTrainingResult

        Raises:
            TrainingDataError: If samples is empty
        """
        if not samples:
            raise TrainingDataError(f"No training samples for {self.component_id}")

        X, y = self.build_training_frame(samples, generator)

        previous = None
        state = self._state
        if continue_training and isinstance(state, Trained) and state.estimator_kind == self.estimator_kind \
                and tuple(X.columns) == state.feature_names:
            previous = state.estimator

        outcome = fit_estimator(self.estimator_kind, self.hyperparameters, X, y, previous)

        self.swap_state(Trained(
            estimator=outcome.estimator,
            estimator_kind=self.estimator_kind,
            feature_names=tuple(X.columns),
            trained_at=datetime.now(),
            iterations=outcome.iterations,
            final_error=outcome.final_error
        ))

        logger.info(
            f"✅ Trained {self.component_id}: {len(y)} samples, "
            f"{outcome.iterations} iterations, mse={outcome.final_error:.4f}"
        )
        return ComponentTrainingResult(
            component_id=self.component_id,
            success=True,
            iterations=outcome.iterations,
            final_error=outcome.final_error,
            samples=len(y)
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_model(self) -> Dict[str, Any]:
        """Full state as a JSON-serializable dict."""
        state = self._state
        trained = isinstance(state, Trained)
        return {
            "component_id": self.component_id,
            "tier": self.tier,
            "version": self.version,
            "estimator_kind": state.estimator_kind if trained else self.estimator_kind,
            "hyperparameters": copy.deepcopy(self.hyperparameters),
            "is_trained": trained,
            "trained_at": state.trained_at.isoformat() if trained else None,
            "iterations": state.iterations if trained else 0,
            "final_error": state.final_error if trained else None,
            "feature_names": list(state.feature_names) if trained else [],
            "weights": serialize_estimator(state.estimator_kind, state.estimator) if trained else None,
            "side_tables": self.side_tables(),
        }

    def import_model(self, blob: Dict[str, Any]) -> None:
        """
        Restore state from export_model() output.

        Raises:
            ModelImportError: Wrong component or undecodable weights
        """
        if not isinstance(blob, dict) or blob.get("component_id") != self.component_id:
            found = blob.get("component_id") if isinstance(blob, dict) else type(blob).__name__
            raise ModelImportError(f"Blob for '{found}' cannot be imported into '{self.component_id}'")

        try:
            if blob.get("is_trained"):
                kind = blob["estimator_kind"]
                new_state = Trained(
                    estimator=deserialize_estimator(kind, blob["weights"]),
                    estimator_kind=kind,
                    feature_names=tuple(blob["feature_names"]),
                    trained_at=datetime.fromisoformat(blob["trained_at"]),
                    iterations=int(blob.get("iterations") or 0),
                    final_error=blob.get("final_error")
                )
            else:
                new_state = Untrained()
            tables = blob.get("side_tables") or {}
            if not isinstance(tables, dict):
                raise TypeError(f"side_tables must be a mapping, got {type(tables).__name__}")
        except (KeyError, TypeError, ValueError, AttributeError, binascii.Error, pickle.UnpicklingError) as exc:
            raise ModelImportError(f"Corrupt model blob for '{self.component_id}': {exc}") from exc

        self._install(
            new_state,
            tables,
            hyperparameters=copy.deepcopy(blob.get("hyperparameters") or self.hyperparameters),
            estimator_kind=blob.get("estimator_kind", self.estimator_kind),
            version=blob.get("version", self.VERSION),
        )
        logger.info(f"Model loaded: {self.component_id} v{self.version} (trained={new_state.is_trained})")


# ============================================================================
# TIER BASES
# ============================================================================

class TierComponent(EnsembleComponent):
    """
    Tiers 1-3: each request is scored by _evaluate() into a tier result
    record, with the heuristic and neutral fallbacks applied there.
    """

    def _evaluate(self, ctx: ScoringContext):
        start = time.perf_counter()
        state = self._state
        scorer = self._scorer_for(state)
        error = None
        try:
            features = self.prepare_features(ctx)
            assessment = scorer.assess(self, ctx, features)
            heuristic = scorer.heuristic
        except Exception as exc:
            failure = ComponentComputeError(self.component_id, exc)
            logger.warning(f"⚠️  {failure} - using heuristic fallback")
            error = str(failure)
            features, assessment = self._recover(ctx)
            heuristic = True

        latency_ms = (time.perf_counter() - start) * 1000
        return self._make_result(
            assessment=assessment,
            features=features,
            heuristic=heuristic,
            latency_ms=latency_ms,
            error=error
        )

    def _recover(self, ctx: ScoringContext) -> Tuple[Dict[str, float], Assessment]:
        try:
            features = self.prepare_features(ctx)
            return features, self.heuristic_assessment(ctx, features)
        except Exception as exc:
            logger.error(f"Heuristic fallback failed for {self.component_id}: {exc}", exc_info=True)
            return {}, self.neutral_assessment()

    @staticmethod
    def neutral_assessment() -> Assessment:
        return Assessment(score=0.5, confidence=0.1, reasons=["Analysis unavailable"])

    @abstractmethod
    def _make_result(self, assessment: Assessment, features: Dict[str, float],
                     heuristic: bool, latency_ms: float, error: Optional[str]):
        """Tier-specific result record."""

    def neutral_result(self, error: Optional[str] = None):
        """Result used by the orchestrator when a task cannot be collected."""
        return self._make_result(
            assessment=self.neutral_assessment(),
            features={},
            heuristic=True,
            latency_ms=0.0,
            error=error
        )


class VariableAnalyzer(TierComponent):
    """Tier 1: one variable of the input snapshot."""
    TIER = 1
    HIDDEN_LAYERS = (8, 6, 4)

    def analyze(self, analysis_input: AnalysisInput) -> AnalyzerResult:
        return self._evaluate(ScoringContext(input=analysis_input))

    def _make_result(self, assessment, features, heuristic, latency_ms, error):
        return AnalyzerResult(
            component_id=self.component_id,
            score=clamp01(assessment.score),
            confidence=clamp01(assessment.confidence),
            reasons=tuple(assessment.reasons),
            raw_features={k: float(v) for k, v in features.items()},
            heuristic=heuristic,
            version=self.version,
            latency_ms=latency_ms,
            error=error
        )

    def learned_reasons(self, ctx, features, score, base):
        return self.band_reasons(ctx, features, score)

    def band_reasons(self, ctx: ScoringContext, features: Dict[str, float], score: float) -> List[str]:
        """Reasons for a learned score, by score band (>0.7, >0.5, >0.3)."""
        return []


class Combiner(TierComponent):
    """Tier 2: themed subset of Tier-1 scores."""
    TIER = 2
    HIDDEN_LAYERS = (12, 8, 4)

    def analyze(self, analysis_input: AnalysisInput, tier1_results: Mapping[str, AnalyzerResult]) -> CombinerResult:
        return self._evaluate(ScoringContext(input=analysis_input, tier1=dict(tier1_results)))

    def training_context(self, sample, generator=None):
        if generator is None:
            raise ValueError(f"{self.component_id} needs a synthetic context generator to train")
        return ScoringContext(input=sample.input, tier1=generator.tier1_results(sample.label))

    def learned_confidence(self, ctx, features, base):
        confidence = 0.7
        if base.sub_scores.get("anomaly_concentration", 0.0) > 0.5:
            confidence += 0.2
        if base.sub_scores.get("overall_consistency", 0.0) > 0.7:
            confidence += 0.1
        return min(confidence, 1.0)

    def _make_result(self, assessment, features, heuristic, latency_ms, error):
        return CombinerResult(
            component_id=self.component_id,
            score=clamp01(assessment.score),
            confidence=clamp01(assessment.confidence),
            detected_patterns=tuple(assessment.patterns),
            sub_scores={k: float(v) for k, v in assessment.sub_scores.items()},
            reasons=tuple(assessment.reasons),
            heuristic=heuristic,
            version=self.version,
            latency_ms=latency_ms,
            error=error
        )


class DeepValidator(TierComponent):
    """Tier 3: deep assessment over Tier-1 and Tier-2 results."""
    TIER = 3
    HIDDEN_LAYERS = (18, 12, 6)

    def analyze(
        self,
        analysis_input: AnalysisInput,
        tier1_results: Mapping[str, AnalyzerResult],
        tier2_results: Mapping[str, CombinerResult]
    ) -> DeepResult:
        return self._evaluate(ScoringContext(
            input=analysis_input,
            tier1=dict(tier1_results),
            tier2=dict(tier2_results)
        ))

    @staticmethod
    def upstream_features(ctx: ScoringContext) -> Dict[str, float]:
        """Every Tier-1 and Tier-2 score under a fixed key (missing results count as 0)."""
        features = {}
        for cid in TIER1_IDS:
            result = ctx.tier1.get(cid)
            features[f"l1_{cid}"] = result.score if result is not None else 0.0
        for cid in TIER2_IDS:
            result = ctx.tier2.get(cid)
            features[f"l2_{cid}"] = result.score if result is not None else 0.0
        return features

    def training_context(self, sample, generator=None):
        if generator is None:
            raise ValueError(f"{self.component_id} needs a synthetic context generator to train")
        return ScoringContext(
            input=sample.input,
            tier1=generator.tier1_results(sample.label),
            tier2=generator.tier2_results(sample.label)
        )

    def _make_result(self, assessment, features, heuristic, latency_ms, error):
        return DeepResult(
            component_id=self.component_id,
            score=clamp01(assessment.score),
            confidence=clamp01(assessment.confidence),
            warnings=tuple(assessment.warnings),
            structured_assessment=dict(assessment.details),
            heuristic=heuristic,
            version=self.version,
            latency_ms=latency_ms,
            error=error
        )
