"""
Fraud Analysis Service

Wraps the orchestrator, model store, training pipeline and alert sink
behind one object constructed once per process:
- analyze(): score a transaction, alert above the threshold, track metrics
- train() / save_models() / load_models() / reset_component()
- health_check(), get_metrics(), get_component_stats()

Usage:
    service = FraudAnalysisService.from_settings()
    decision = service.analyze({"amount": 120.0, "channel": "physical"})
"""
import logging
import time
from collections import deque
from typing import Any, Dict, Iterable, Mapping, Optional, Union

import numpy as np
from pydantic import ValidationError

from fraud_ensemble.components.registry import ComponentRegistry
from fraud_ensemble.config import Settings, settings as default_settings
from fraud_ensemble.inference.orchestrator import EnsembleOrchestrator
from fraud_ensemble.schema import AnalysisInput, DecisionResult
from fraud_ensemble.service.alerting import AlertSink, FraudAlert, LoggingAlertSink
from fraud_ensemble.training.model_store import LoadReport, ModelStore
from fraud_ensemble.training.pipeline import TrainingPipeline
from fraud_ensemble.training.report import TrainingReport
from fraud_ensemble.training.synthetic import SyntheticContextGenerator


logger = logging.getLogger(__name__)


class ServiceMetrics:
    """
    Tracks analysis metrics across requests.

    Metrics:
    - Total analyses, frauds detected, reviews, alerts, errors
    - Latency percentiles (p50, p95, p99) over the last 10K analyses
    """

    def __init__(self):
        self.total_analyses = 0
        self.fraud_detected = 0
        self.manual_reviews = 0
        self.alerts_sent = 0
        self.error_count = 0
        self.latencies = deque(maxlen=10000)
        self.start_time = time.time()

    def record(self, decision: DecisionResult, alerted: bool) -> None:
        self.total_analyses += 1
        self.latencies.append(decision.latency_ms)
        if decision.fraud_detected:
            self.fraud_detected += 1
        if decision.requires_manual_review:
            self.manual_reviews += 1
        if alerted:
            self.alerts_sent += 1
        if decision.audit_trail.error_occurred:
            self.error_count += 1

    def record_error(self) -> None:
        """Record a request that never reached the pipeline."""
        self.error_count += 1

    def get_summary(self) -> Dict[str, Any]:
        if not self.latencies:
            latency = {"avg_latency_ms": 0.0, "p50_latency_ms": 0.0, "p95_latency_ms": 0.0, "p99_latency_ms": 0.0}
        else:
            latencies = np.array(list(self.latencies))
            latency = {
                "avg_latency_ms": float(np.mean(latencies)),
                "p50_latency_ms": float(np.percentile(latencies, 50)),
                "p95_latency_ms": float(np.percentile(latencies, 95)),
                "p99_latency_ms": float(np.percentile(latencies, 99)),
            }
        return {
            "total_analyses": self.total_analyses,
            "fraud_detected": self.fraud_detected,
            "fraud_detection_rate": self.fraud_detected / max(self.total_analyses, 1),
            "manual_reviews": self.manual_reviews,
            "alerts_sent": self.alerts_sent,
            "error_count": self.error_count,
            "uptime_seconds": time.time() - self.start_time,
            **latency,
        }


class FraudAnalysisService:
    """
    Production facade over the ensemble.

    Args:
        registry: Component registry shared by every collaborator
        store: Model artifact store
        alert_sink: Outbound alert channel
        config: Settings (uses global settings if None)
        auto_load: Load saved artifacts on construction
    """

    def __init__(
        self,
        registry: Optional[ComponentRegistry] = None,
        store: Optional[ModelStore] = None,
        alert_sink: Optional[AlertSink] = None,
        config: Optional[Settings] = None,
        auto_load: Optional[bool] = None
    ):
        logger.info("Initializing FraudAnalysisService...")
        self.config = config or default_settings
        self.registry = registry or ComponentRegistry.default(self.config)
        self.store = store or ModelStore(self.config.MODELS_DIR, self.config.MANIFEST_FILENAME)
        self.alert_sink = alert_sink or LoggingAlertSink()
        self.alert_threshold = self.config.ALERT_THRESHOLD
        self.orchestrator = EnsembleOrchestrator(
            self.registry,
            request_timeout_ms=self.config.REQUEST_TIMEOUT_MS,
            max_workers=self.config.TIER_MAX_WORKERS
        )
        self.pipeline = TrainingPipeline(
            self.registry,
            batch_size=self.config.TRAINING_BATCH_SIZE,
            min_samples=self.config.MIN_TRAINING_SAMPLES,
            generator=SyntheticContextGenerator.from_settings(self.config)
        )
        self.metrics = ServiceMetrics()

        if self.config.AUTO_LOAD_MODELS if auto_load is None else auto_load:
            self.load_models()

        trained = sum(1 for c in self.registry.iter_components() if c.is_trained)
        logger.info("✅ FraudAnalysisService ready")
        logger.info(f"   Components: {len(self.registry)} ({trained} trained)")
        logger.info(f"   Alert threshold: {self.alert_threshold}")

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "FraudAnalysisService":
        return cls(config=config)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze(self, transaction: Union[AnalysisInput, Mapping[str, Any]]) -> DecisionResult:
        """
        Score one transaction.

        Raises:
            pydantic.ValidationError: If a dict input does not validate
        """
        try:
            analysis_input = transaction if isinstance(transaction, AnalysisInput) else AnalysisInput(**transaction)
        except ValidationError:
            self.metrics.record_error()
            raise
        decision = self.orchestrator.analyze_transaction(analysis_input)
        alerted = False
        if decision.fraud_score >= self.alert_threshold:
            alerted = self._send_alert(decision)
        self.metrics.record(decision, alerted)
        return decision

    def _send_alert(self, decision: DecisionResult) -> bool:
        try:
            self.alert_sink.send(FraudAlert.from_decision(decision))
            return True
        except Exception as exc:
            logger.error(f"❌ Alert delivery failed for {decision.transaction_id}: {exc}", exc_info=True)
            return False

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    def train(self, samples: Iterable, verbose: bool = True) -> TrainingReport:
        return self.pipeline.train_all(samples, verbose=verbose)

    def save_models(self) -> Dict[str, Any]:
        return self.store.save_all(self.registry)

    def load_models(self) -> LoadReport:
        return self.store.load_all(self.registry)

    def reset_component(self, component_id: str) -> None:
        """
        Raises:
            KeyError: Unknown component id
        """
        self.registry.get(component_id).reset()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def health_check(self) -> Dict[str, Any]:
        """Healthy when every component is trained, degraded otherwise."""
        components = list(self.registry.iter_components())
        untrained = [c.component_id for c in components if not c.is_trained]
        return {
            "status": "healthy" if not untrained else "degraded",
            "components": len(components),
            "trained_components": len(components) - len(untrained),
            "untrained_components": untrained,
            "training_in_progress": self.pipeline.is_training,
            "last_latency_ms": self.metrics.latencies[-1] if self.metrics.latencies else None,
        }

    def get_metrics(self) -> Dict[str, Any]:
        return self.metrics.get_summary()

    def get_component_stats(self) -> Dict[str, Dict[str, Any]]:
        return {c.component_id: c.get_stats() for c in self.registry.iter_components()}

    def close(self) -> None:
        logger.info("Closing FraudAnalysisService...")
        logger.info(f"Final stats: {self.metrics.total_analyses} analyses, "
                    f"{self.metrics.fraud_detected} frauds, "
                    f"{self.metrics.alerts_sent} alerts, "
                    f"{self.metrics.error_count} errors")
        self.orchestrator.close()
