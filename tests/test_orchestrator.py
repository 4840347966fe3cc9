"""
Tests for the four-tier orchestrator

Validates end-to-end decisions for the reference scenarios, isolation of
failing components, and the request deadline.
"""

import time

import pytest

from fraud_ensemble.analyzers import TIER1_ANALYZERS
from fraud_ensemble.analyzers.amount import AmountAnalyzer
from fraud_ensemble.combiners import TIER2_COMBINERS
from fraud_ensemble.components.catalog import ALL_IDS
from fraud_ensemble.components.registry import ComponentRegistry
from fraud_ensemble.decision import DecisionFusion
from fraud_ensemble.inference.orchestrator import EnsembleOrchestrator, RequestTimeout
from fraud_ensemble.schema import AnalysisInput, AnalyzerResult, DecisionCategory
from fraud_ensemble.validators import TIER3_VALIDATORS


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def orchestrator(registry):
    orch = EnsembleOrchestrator(registry, request_timeout_ms=30000)
    yield orch
    orch.close()


class SlowAmountAnalyzer(AmountAnalyzer):
    def analyze(self, analysis_input):
        time.sleep(0.5)
        return super().analyze(analysis_input)


# ============================================================================
# TEST 1: Reference scenarios
# ============================================================================

@pytest.mark.integration
def test_large_foreign_night_purchase_is_fraud(orchestrator, fraud_input):
    decision = orchestrator.analyze_transaction(fraud_input)

    assert decision.fraud_detected, f"Expected fraud, got score {decision.fraud_score:.3f}"
    assert decision.decision_category in (DecisionCategory.FRAUD_DETECTED, DecisionCategory.CRITICAL_FRAUD)
    assert decision.fraud_score >= 0.7
    assert decision.mitigation_report.total_mitigation == 0.0
    assert not decision.requires_manual_review
    assert 1 <= len(decision.primary_reasons) <= 5


@pytest.mark.integration
def test_bare_foreign_night_online_purchase_is_fraud(orchestrator):
    """Only the headline facts are known: everything else stays at its no-history default."""
    analysis_input = AnalysisInput(
        amount=15000,
        channel="online",
        is_night_transaction=True,
        is_domestic=False,
        device_info=None,
    )
    decision = orchestrator.analyze_transaction(analysis_input)

    assert decision.fraud_detected, f"Expected fraud, got score {decision.fraud_score:.3f}"
    assert decision.decision_category in (DecisionCategory.FRAUD_DETECTED, DecisionCategory.CRITICAL_FRAUD)
    assert decision.fraud_score >= 0.7
    assert not decision.requires_manual_review


@pytest.mark.integration
def test_small_domestic_purchase_is_safe(orchestrator, safe_input):
    decision = orchestrator.analyze_transaction(safe_input)

    assert not decision.fraud_detected
    assert decision.decision_category in (DecisionCategory.SAFE, DecisionCategory.LOW_RISK), \
        f"Expected safe/low_risk, got {decision.decision_category} ({decision.fraud_score:.3f})"
    assert decision.mitigation_report.total_mitigation == pytest.approx(0.4)
    assert "trusted_customer" in decision.mitigation_report.factors


@pytest.mark.integration
def test_decision_invariants(orchestrator, fraud_input, safe_input):
    for analysis_input in (fraud_input, safe_input):
        decision = orchestrator.analyze_transaction(analysis_input)

        assert 0.0 <= decision.fraud_score <= 1.0
        assert 0.5 <= decision.confidence <= 0.95
        assert decision.requires_manual_review == (0.5 <= decision.fraud_score < 0.7)
        assert decision.transaction_id == analysis_input.transaction_id
        assert decision.audit_trail.components_analyzed == 22
        assert set(decision.tier_timings_ms) == {"tier1", "tier2", "tier3", "fusion"}
        assert decision.latency_ms > 0
        assert set(decision.version_manifest) == set(ALL_IDS)
        assert not decision.version_manifest["amount_analyzer"].is_trained


# ============================================================================
# TEST 2: Component isolation
# ============================================================================

@pytest.mark.unit
def test_failing_task_gets_neutral_result(orchestrator, registry, safe_input, monkeypatch):
    amount = registry.get("amount_analyzer")

    def explode(analysis_input):
        raise RuntimeError("boom")

    monkeypatch.setattr(amount, "analyze", explode)
    deadline = time.perf_counter() + 10
    results = orchestrator._run_tier(registry.tier1, lambda c: c.analyze(safe_input), deadline)

    assert len(results) == 12
    neutral = results["amount_analyzer"]
    assert isinstance(neutral, AnalyzerResult)
    assert neutral.score == 0.5
    assert neutral.confidence == pytest.approx(0.1)
    assert neutral.heuristic
    assert "boom" in neutral.error
    assert results["location_analyzer"].error is None


@pytest.mark.integration
def test_pipeline_survives_failing_component(orchestrator, registry, fraud_input, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("validator down")

    monkeypatch.setattr(registry.get("context_analyzer"), "analyze", explode)
    decision = orchestrator.analyze_transaction(fraud_input)

    assert decision.audit_trail.decision_method == "heuristic_weighted_average"
    assert decision.audit_trail.components_analyzed == 22
    assert decision.fraud_detected


# ============================================================================
# TEST 3: Request deadline
# ============================================================================

@pytest.mark.integration
def test_timeout_returns_review_decision(safe_input):
    components = [SlowAmountAnalyzer()]
    components += [cls() for cls in TIER1_ANALYZERS if cls is not AmountAnalyzer]
    components += [cls() for cls in TIER2_COMBINERS + TIER3_VALIDATORS]
    components.append(DecisionFusion())

    with EnsembleOrchestrator(ComponentRegistry(components), request_timeout_ms=50) as orch:
        decision = orch.analyze_transaction(safe_input)

    assert decision.decision_category == DecisionCategory.REQUIRES_REVIEW
    assert decision.fraud_score == pytest.approx(0.5)
    assert decision.confidence == pytest.approx(0.3)
    assert decision.requires_manual_review
    assert decision.audit_trail.decision_method == "timeout"
    assert decision.audit_trail.error_occurred
    assert decision.tier_averages == {}, "No tier completed, so no averages"


@pytest.mark.unit
def test_run_tier_raises_when_deadline_passed(orchestrator, registry, safe_input):
    with pytest.raises(RequestTimeout):
        orchestrator._run_tier(
            [SlowAmountAnalyzer()],
            lambda c: c.analyze(safe_input),
            time.perf_counter() + 0.01
        )


@pytest.mark.unit
def test_incomplete_registry_rejected():
    with pytest.raises(ValueError, match="missing components"):
        EnsembleOrchestrator(ComponentRegistry([AmountAnalyzer()]))


# ============================================================================
# TEST 4: Degraded decisions
# ============================================================================

@pytest.mark.integration
def test_error_fallback_uses_fusion_thresholds(orchestrator, registry, safe_input, monkeypatch):
    fusion = registry.fusion
    fusion.decision_thresholds["fraud"] = 0.05

    def explode(*args, **kwargs):
        raise RuntimeError("fusion unavailable")

    monkeypatch.setattr(fusion, "decide", explode)
    decision = orchestrator.analyze_transaction(safe_input)

    assert decision.audit_trail.decision_method == "error_fallback"
    assert decision.audit_trail.thresholds == fusion.decision_thresholds
    assert decision.fraud_score >= 0.05
    assert decision.fraud_detected
    assert decision.decision_category == DecisionCategory.FRAUD_DETECTED
    assert decision.requires_manual_review
