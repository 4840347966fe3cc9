"""
Tests for the FraudAnalysisService facade
"""

import pytest
from pydantic import ValidationError

from fraud_ensemble.service.alerting import CollectingAlertSink, FraudAlert
from fraud_ensemble.service.analysis_service import FraudAnalysisService, ServiceMetrics
from fraud_ensemble.training.model_store import ModelStore


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def sink():
    return CollectingAlertSink()


@pytest.fixture
def service(registry, small_config, sink):
    svc = FraudAnalysisService(
        registry=registry,
        store=ModelStore(small_config.MODELS_DIR),
        alert_sink=sink,
        config=small_config,
        auto_load=False
    )
    yield svc
    svc.close()


class FailingSink(CollectingAlertSink):
    def send(self, alert):
        raise ConnectionError("alert channel down")


# ============================================================================
# TEST 1: Analysis and alerts
# ============================================================================

@pytest.mark.integration
def test_fraud_triggers_alert(service, sink, fraud_input):
    decision = service.analyze(fraud_input)

    assert decision.fraud_detected
    assert len(sink.alerts) == 1
    alert = sink.alerts[0]
    assert alert.transaction_id == "TXN_FRAUD_001"
    assert alert.fraud_score == decision.fraud_score
    assert "FRAUD ALERT" in alert.render()


@pytest.mark.integration
def test_safe_transaction_no_alert(service, sink, safe_input):
    decision = service.analyze(safe_input)

    assert not decision.fraud_detected
    assert sink.alerts == []


@pytest.mark.integration
def test_dict_input_is_validated(service):
    decision = service.analyze({"transaction_id": 77, "amount": 120.0, "channel": "PHYSICAL"})
    assert decision.transaction_id == "77"

    with pytest.raises(ValidationError):
        service.analyze({"amount": -1.0})
    assert service.get_metrics()["error_count"] == 1


@pytest.mark.integration
def test_alert_failure_does_not_fail_analysis(registry, small_config, fraud_input):
    svc = FraudAnalysisService(registry=registry, alert_sink=FailingSink(), config=small_config, auto_load=False)
    try:
        decision = svc.analyze(fraud_input)
        assert decision.fraud_detected
        assert svc.get_metrics()["alerts_sent"] == 0
    finally:
        svc.close()


# ============================================================================
# TEST 2: Metrics and health
# ============================================================================

@pytest.mark.integration
def test_metrics_track_decisions(service, fraud_input, safe_input):
    service.analyze(fraud_input)
    service.analyze(safe_input)
    metrics = service.get_metrics()

    assert metrics["total_analyses"] == 2
    assert metrics["fraud_detected"] == 1
    assert metrics["fraud_detection_rate"] == pytest.approx(0.5)
    assert metrics["alerts_sent"] == 1
    assert metrics["p50_latency_ms"] > 0


def test_empty_metrics_summary():
    summary = ServiceMetrics().get_summary()
    assert summary["total_analyses"] == 0
    assert summary["p99_latency_ms"] == 0.0
    assert summary["fraud_detection_rate"] == 0.0


def test_health_degraded_until_trained(service):
    health = service.health_check()

    assert health["status"] == "degraded"
    assert health["components"] == 23
    assert health["trained_components"] == 0
    assert len(health["untrained_components"]) == 23
    assert not health["training_in_progress"]


@pytest.mark.integration
def test_train_save_reload_reset(service, labeled_samples, registry, small_config):
    report = service.train(labeled_samples, verbose=False)
    assert report.successful_components == 23
    assert service.health_check()["status"] == "healthy"

    manifest = service.save_models()
    assert manifest["component_count"] == 23

    service.reset_component("amount_analyzer")
    assert not registry.get("amount_analyzer").is_trained
    assert service.health_check()["status"] == "degraded"

    load = service.load_models()
    assert load.all_loaded
    assert registry.get("amount_analyzer").is_trained

    stats = service.get_component_stats()
    assert stats["amount_analyzer"]["is_trained"]
    assert stats["fraud_decision"]["tier"] == 4


def test_reset_unknown_component(service):
    with pytest.raises(KeyError):
        service.reset_component("no_such_component")


def test_alert_model_is_frozen(fraud_input, service):
    decision = service.analyze(fraud_input)
    alert = FraudAlert.from_decision(decision)

    assert alert.risk_tier == decision.risk_level
    with pytest.raises(ValidationError):
        alert.fraud_score = 0.0
