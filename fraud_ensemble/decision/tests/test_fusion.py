"""
Tests for Decision Fusion

Validates category bands, mitigation, consensus-driven confidence, critical
patterns and the conservative fallback paths.
"""

from datetime import datetime

import pytest

from fraud_ensemble.components.base import TierComponent, Trained
from fraud_ensemble.components.catalog import TIER1_IDS, TIER2_IDS, TIER3_IDS
from fraud_ensemble.decision import DecisionFusion, categorize, mitigate
from fraud_ensemble.decision.fusion import consensus_bonus, recommended_actions
from fraud_ensemble.schema import AnalysisInput, AnalyzerResult, CombinerResult, DecisionCategory, DeepResult


# ============================================================================
# FIXTURES
# ============================================================================

def tier_results(t1, t2, t3):
    """Complete result sets with one score per tier."""
    tier1 = {cid: AnalyzerResult(component_id=cid, score=t1, confidence=0.8) for cid in TIER1_IDS}
    tier2 = {cid: CombinerResult(component_id=cid, score=t2, confidence=0.8) for cid in TIER2_IDS}
    tier3 = {cid: DeepResult(component_id=cid, score=t3, confidence=0.8) for cid in TIER3_IDS}
    return tier1, tier2, tier3


@pytest.fixture
def fusion():
    return DecisionFusion()


@pytest.fixture
def foreign_input():
    """No mitigation applies except possibly no_critical_alerts."""
    return AnalysisInput(transaction_id="TXN_1", amount=5000.0, is_domestic=False, client_age_days=10)


# ============================================================================
# TEST 1: Categories and mitigation
# ============================================================================

@pytest.mark.parametrize("score,expected", [
    (0.0, DecisionCategory.SAFE),
    (0.2999, DecisionCategory.SAFE),
    (0.3, DecisionCategory.LOW_RISK),
    (0.5, DecisionCategory.REQUIRES_REVIEW),
    (0.6999, DecisionCategory.REQUIRES_REVIEW),
    (0.7, DecisionCategory.FRAUD_DETECTED),
    (0.9, DecisionCategory.CRITICAL_FRAUD),
    (1.0, DecisionCategory.CRITICAL_FRAUD),
])
def test_categorize_half_open_bands(score, expected):
    assert categorize(score) == expected


def test_mitigation_is_capped_and_floored():
    assert mitigate(0.85, 0.4) == pytest.approx(0.45)
    assert mitigate(0.85, 0.6) == pytest.approx(0.45), "Mitigation above 0.4 must be capped"
    assert mitigate(0.1, 0.4) == 0.0, "Score must floor at 0"
    assert mitigate(0.5, 0.0) == 0.5


def test_consensus_bonus_by_variance():
    assert consensus_bonus(0.0) == 0.2
    assert consensus_bonus(0.07) == 0.1
    assert consensus_bonus(0.15) == 0.05
    assert consensus_bonus(0.3) == 0.0


def test_recommended_actions_follow_score():
    assert recommended_actions(0.95)[0].startswith("BLOCK")
    assert recommended_actions(0.75)[0].startswith("HOLD")
    assert recommended_actions(0.1)[0].startswith("APPROVE")


# ============================================================================
# TEST 2: Consensus and confidence
# ============================================================================

def test_unanimous_high_risk(fusion, foreign_input):
    decision = fusion.decide(foreign_input, *tier_results(0.85, 0.85, 0.85))

    assert decision.consensus_report.unanimous_high_risk
    assert decision.confidence == pytest.approx(0.95)
    assert decision.fraud_detected
    assert decision.decision_category == DecisionCategory.CRITICAL_FRAUD
    assert decision.audit_trail.critical_adjustment == pytest.approx(0.2), "Critical bonus is capped at 0.2"
    assert decision.mitigation_report.factors == {"no_critical_alerts": 0.05}
    assert "Unanimous high risk consensus across all tiers" in decision.primary_reasons
    assert len(decision.primary_reasons) <= 5


def test_unanimous_low_risk(fusion, foreign_input):
    decision = fusion.decide(foreign_input, *tier_results(0.1, 0.1, 0.1))

    assert decision.consensus_report.unanimous_low_risk
    assert decision.confidence == pytest.approx(0.95)
    assert decision.audit_trail.critical_adjustment == pytest.approx(-0.1)
    assert decision.decision_category == DecisionCategory.SAFE
    assert not decision.fraud_detected
    assert not decision.requires_manual_review


def test_conflicting_signals_lower_confidence(fusion, foreign_input):
    decision = fusion.decide(foreign_input, *tier_results(0.1, 0.5, 0.9))

    assert decision.consensus_report.conflicting_signals
    assert not decision.consensus_report.unanimous_high_risk
    assert 0.5 <= decision.confidence < 0.95


# ============================================================================
# TEST 3: Critical patterns
# ============================================================================

def test_risk_escalation_pattern(fusion, foreign_input):
    decision = fusion.decide(foreign_input, *tier_results(0.2, 0.5, 0.9))
    names = {p.name for p in decision.critical_patterns}

    assert "risk_escalation" in names
    assert "behavior_incoherence" in names
    assert decision.consensus_report.escalation_pattern


def test_no_patterns_for_flat_medium_scores(fusion, foreign_input):
    decision = fusion.decide(foreign_input, *tier_results(0.5, 0.5, 0.5))

    assert decision.critical_patterns == ()
    assert decision.audit_trail.critical_adjustment == 0.0


def test_tier3_assessment_counts_trigger_patterns(fusion, foreign_input):
    tier1, tier2, tier3 = tier_results(0.5, 0.5, 0.5)
    tier3["anomaly_detector"] = DeepResult(
        component_id="anomaly_detector", score=0.5, confidence=0.8,
        structured_assessment={"types_detected": 6}
    )
    tier3["context_analyzer"] = DeepResult(
        component_id="context_analyzer", score=0.5, confidence=0.8,
        structured_assessment={"critical_factors": 4}
    )
    decision = fusion.decide(foreign_input, tier1, tier2, tier3)
    names = {p.name for p in decision.critical_patterns}

    assert names == {"multiple_anomaly_types", "critical_context"}
    assert decision.audit_trail.critical_adjustment == pytest.approx(0.15)


def test_combiner_scheme_patterns_add_bonus(fusion, foreign_input):
    tier1, tier2, tier3 = tier_results(0.5, 0.5, 0.5)
    plain = fusion.decide(foreign_input, tier1, tier2, tier3)

    tier2["pattern_combiner"] = tier2["pattern_combiner"].model_copy(
        update={"detected_patterns": ("account_takeover", "multi_anomaly")}
    )
    flagged = fusion.decide(foreign_input, tier1, tier2, tier3)
    names = {p.name for p in flagged.critical_patterns}

    assert names == {"fraud_scheme_patterns"}, "Only named fraud schemes count"
    assert flagged.audit_trail.critical_adjustment == pytest.approx(0.05)
    assert flagged.fraud_score > plain.fraud_score


# ============================================================================
# TEST 4: Fallback paths
# ============================================================================

def test_fusion_failure_uses_conservative_fallback(fusion, foreign_input, monkeypatch):
    def explode(ctx):
        raise RuntimeError("fusion broke")

    monkeypatch.setattr(fusion, "analyze_tiers", explode)
    decision = fusion.decide(foreign_input, *tier_results(0.2, 0.4, 0.6))

    assert decision.audit_trail.decision_method == "error_fallback"
    assert decision.audit_trail.error_occurred
    assert "fusion broke" in decision.audit_trail.error
    assert decision.fraud_score == pytest.approx(0.6), "Highest tier average is the fallback score"
    assert decision.confidence == pytest.approx(0.5)
    assert decision.requires_manual_review


def test_fallback_uses_tuned_thresholds(foreign_input, monkeypatch):
    strict = DecisionFusion()
    strict.decision_thresholds["fraud"] = 0.5

    def explode(ctx):
        raise RuntimeError("fusion broke")

    monkeypatch.setattr(strict, "analyze_tiers", explode)
    decision = strict.decide(foreign_input, *tier_results(0.6, 0.6, 0.6))

    assert decision.audit_trail.decision_method == "error_fallback"
    assert decision.fraud_score == pytest.approx(0.6)
    assert decision.fraud_detected, "0.6 is fraud under a 0.5 threshold"
    assert decision.decision_category == DecisionCategory.FRAUD_DETECTED
    assert decision.audit_trail.thresholds["fraud"] == 0.5
    assert decision.requires_manual_review


def test_broken_learned_estimator_falls_back_to_heuristic(fusion, foreign_input):
    fusion.swap_state(Trained(
        estimator=object(),
        estimator_kind="xgboost",
        feature_names=("l1_avg",),
        trained_at=datetime.now()
    ))
    decision = fusion.decide(foreign_input, *tier_results(0.5, 0.5, 0.5))

    assert decision.heuristic
    assert decision.audit_trail.decision_method == "heuristic_weighted_average"
    assert decision.audit_trail.error_occurred
    assert 0.0 <= decision.fraud_score <= 1.0


def test_fraud_threshold_is_tunable(foreign_input):
    results = tier_results(0.6, 0.6, 0.6)

    default = DecisionFusion().decide(foreign_input, *results)
    assert default.fraud_score == pytest.approx(0.51)
    assert default.decision_category == DecisionCategory.REQUIRES_REVIEW
    assert default.requires_manual_review

    strict = DecisionFusion()
    strict.decision_thresholds["fraud"] = 0.5
    decision = strict.decide(foreign_input, *results)
    assert decision.fraud_detected
    assert decision.decision_category == DecisionCategory.FRAUD_DETECTED
    assert not decision.requires_manual_review


# ============================================================================
# TEST 5: Component contract
# ============================================================================

def test_fusion_has_no_tier_result_path(fusion):
    assert not isinstance(fusion, TierComponent)
    assert not hasattr(fusion, "neutral_result"), "Fusion results only come from decide()"
    assert not hasattr(fusion, "_make_result")
