"""
Ensemble Orchestrator

Purpose:
Run one transaction through the four tiers and return the final decision.

Flow:
    AnalysisInput
      -> Tier 1 (12 analyzers, concurrent)
      -> Tier 2 (6 combiners, concurrent, after all of Tier 1)
      -> Tier 3 (4 validators, concurrent, after all of Tier 2)
      -> Decision fusion
      -> DecisionResult stamped with latency, tier timings, version manifest

Design Contract:
- Waiting for a whole tier is the only suspension point.
- analyze_transaction() never raises. A component task that fails outside
  the component's own recovery gets that component's neutral result.
- A request-scoped deadline covers the whole pipeline. When it passes, the
  remaining work is abandoned and a degraded requires_review decision is
  returned.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional

from fraud_ensemble.components.base import TierComponent
from fraud_ensemble.components.registry import ComponentRegistry
from fraud_ensemble.config import settings
from fraud_ensemble.decision.fusion import degraded_decision, tier_averages
from fraud_ensemble.errors import ComponentComputeError
from fraud_ensemble.schema import AnalysisInput, ComponentVersion, DecisionCategory, DecisionResult


logger = logging.getLogger(__name__)

TIMEOUT_SCORE = 0.5
TIMEOUT_CONFIDENCE = 0.3


class RequestTimeout(Exception):
    """The request deadline passed while a tier was running."""


class EnsembleOrchestrator:
    """
    Owns a thread pool and references to every registered component.

    Args:
        registry: Components to run
        request_timeout_ms: Deadline for a whole analysis
        max_workers: Thread pool size (one tier fans out at a time)
    """

    def __init__(
        self,
        registry: ComponentRegistry,
        request_timeout_ms: Optional[float] = None,
        max_workers: Optional[int] = None
    ):
        missing = registry.missing_components()
        if missing:
            raise ValueError(f"Registry is missing components: {missing}")
        self.registry = registry
        self.request_timeout_ms = request_timeout_ms or settings.REQUEST_TIMEOUT_MS
        self.max_workers = max_workers or settings.TIER_MAX_WORKERS
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="ensemble-tier")

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    # ------------------------------------------------------------------
    # Tier execution
    # ------------------------------------------------------------------

    def _run_tier(
        self,
        components: List[TierComponent],
        task: Callable[[TierComponent], object],
        deadline: float
    ) -> Dict[str, object]:
        futures = {self._executor.submit(task, c): c for c in components}
        remaining = deadline - time.perf_counter()
        done, not_done = wait(futures, timeout=max(remaining, 0.0))
        if not_done:
            for future in not_done:
                future.cancel()
            raise RequestTimeout(f"{len(not_done)} of {len(futures)} components unfinished at the deadline")

        results = {}
        for future, component in futures.items():
            try:
                results[component.component_id] = future.result()
            except Exception as exc:
                failure = ComponentComputeError(component.component_id, exc)
                logger.error(f"❌ {failure} - using neutral result")
                results[component.component_id] = component.neutral_result(error=str(failure))
        return results

    def version_manifest(self) -> Dict[str, ComponentVersion]:
        return {
            c.component_id: ComponentVersion(version=c.version, is_trained=c.is_trained, trained_at=c.trained_at)
            for c in self.registry.iter_components()
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def analyze_transaction(self, analysis_input: AnalysisInput) -> DecisionResult:
        """
        Score one transaction through all four tiers.

        Args:
            analysis_input: Normalized snapshot

        Returns:
            DecisionResult (never raises)
        """
        start = time.perf_counter()
        deadline = start + self.request_timeout_ms / 1000
        timings: Dict[str, float] = {}
        tier1: Dict = {}
        tier2: Dict = {}
        tier3: Dict = {}

        try:
            t0 = time.perf_counter()
            tier1 = self._run_tier(self.registry.tier1, lambda c: c.analyze(analysis_input), deadline)
            timings["tier1"] = (time.perf_counter() - t0) * 1000

            t0 = time.perf_counter()
            tier2 = self._run_tier(self.registry.tier2, lambda c: c.analyze(analysis_input, tier1), deadline)
            timings["tier2"] = (time.perf_counter() - t0) * 1000

            t0 = time.perf_counter()
            tier3 = self._run_tier(
                self.registry.tier3, lambda c: c.analyze(analysis_input, tier1, tier2), deadline
            )
            timings["tier3"] = (time.perf_counter() - t0) * 1000

            if time.perf_counter() > deadline:
                raise RequestTimeout("Deadline passed before decision fusion")

            t0 = time.perf_counter()
            decision = self.registry.fusion.decide(analysis_input, tier1, tier2, tier3)
            timings["fusion"] = (time.perf_counter() - t0) * 1000
        except RequestTimeout as exc:
            logger.warning(f"⚠️  Analysis timed out after {self.request_timeout_ms:.0f}ms: {exc}")
            decision = self.timeout_decision(analysis_input, tier1, tier2, tier3, str(exc))
        except Exception as exc:
            logger.error(f"❌ Orchestration failed: {exc}", exc_info=True)
            averages = self._completed_averages(tier1, tier2, tier3)
            decision = degraded_decision(
                analysis_input,
                averages,
                score=max(averages.values(), default=TIMEOUT_SCORE),
                confidence=0.5,
                decision_method="error_fallback",
                reason="Processing error - using conservative decision",
                error=str(exc),
                **self._fusion_settings(),
            )

        latency_ms = (time.perf_counter() - start) * 1000
        decision = decision.model_copy(update={
            "latency_ms": latency_ms,
            "tier_timings_ms": timings,
            "version_manifest": self.version_manifest(),
        })
        logger.info(
            f"Decision {analysis_input.transaction_id}: {decision.decision_category.value} "
            f"score={decision.fraud_score:.3f} confidence={decision.confidence:.2f} ({latency_ms:.1f}ms)"
        )
        return decision

    def _fusion_settings(self) -> Dict[str, Dict[str, float]]:
        fusion = self.registry.fusion
        return {"thresholds": fusion.decision_thresholds, "layer_weights": fusion.layer_weights}

    @staticmethod
    def _completed_averages(tier1, tier2, tier3) -> Dict[str, float]:
        averages = tier_averages(tier1, tier2, tier3)
        completed = {"tier1": bool(tier1), "tier2": bool(tier2), "tier3": bool(tier3)}
        return {name: value for name, value in averages.items() if completed[name]}

    def timeout_decision(self, analysis_input, tier1, tier2, tier3, reason: str) -> DecisionResult:
        return degraded_decision(
            analysis_input,
            self._completed_averages(tier1, tier2, tier3),
            score=TIMEOUT_SCORE,
            confidence=TIMEOUT_CONFIDENCE,
            decision_method="timeout",
            reason=f"Analysis timed out - manual review required ({reason})",
            error=reason,
            category=DecisionCategory.REQUIRES_REVIEW,
            **self._fusion_settings(),
        )
