"""
Tests for the Tier-3 deep validators

Validates bounds, warning severity prefixes and the structured assessment
fields that decision fusion reads.
"""

import numpy as np
import pytest

from fraud_ensemble.components.base import DeepValidator, ScoringContext
from fraud_ensemble.components.catalog import TIER1_IDS, TIER2_IDS, TIER3_IDS
from fraud_ensemble.schema import AnalysisInput
from fraud_ensemble.training.synthetic import SyntheticContextGenerator
from fraud_ensemble.validators import TIER3_VALIDATORS
from fraud_ensemble.validators.anomaly_detector import AnomalyDetector
from fraud_ensemble.validators.behavior_validator import BehaviorValidator
from fraud_ensemble.validators.context_analyzer import ContextAnalyzer
from fraud_ensemble.validators.risk_assessment import RiskAssessment, risk_level_for


# ============================================================================
# FIXTURES
# ============================================================================

SEVERITY_PREFIXES = ("CRITICAL:", "HIGH:", "WARNING:")


@pytest.fixture
def validators():
    return [cls() for cls in TIER3_VALIDATORS]


@pytest.fixture
def generator():
    return SyntheticContextGenerator(seed=42)


@pytest.fixture
def risky_input():
    return AnalysisInput(
        amount=18000.0,
        channel="online",
        country="NG",
        is_domestic=False,
        proxy_detected=True,
        vpn_detected=True,
        hour_of_day=3,
        is_night_transaction=True,
        is_weekend=True,
        day_of_week=0,
        distance_from_prev=2500.0,
        time_since_prev_transaction=20.0,
        transactions_last_hour=10,
        transactions_last_24h=30,
        amount_last_24h=40000.0,
        historical_avg_amount=80.0,
        historical_max_amount=150.0,
        prev_amount=5.0,
        client_age_days=2,
        risk_profile="high",
        fraud_incidents=2,
    )


@pytest.fixture
def calm_input():
    return AnalysisInput(
        amount=60.0,
        channel="physical",
        country="GT",
        hour_of_day=13,
        transactions_last_24h=1,
        avg_transactions_per_day=1.0,
        historical_transaction_count=800,
        historical_avg_amount=55.0,
        historical_max_amount=300.0,
        historical_location_count=3,
        prev_amount=50.0,
        client_age_days=1200,
        merchant_frequency=20,
    )


# ============================================================================
# TEST 1: Bounds and catalog
# ============================================================================

def test_catalog_matches_validators(validators):
    assert tuple(v.component_id for v in validators) == TIER3_IDS
    assert all(v.tier == 3 for v in validators)


@pytest.mark.parametrize("label", [0.0, 0.5, 1.0])
def test_bounds_and_warning_prefixes(validators, generator, risky_input, calm_input, label):
    tier1 = generator.tier1_results(label)
    tier2 = generator.tier2_results(label)
    for analysis_input in (risky_input, calm_input):
        for validator in validators:
            result = validator.analyze(analysis_input, tier1, tier2)
            assert 0.0 <= result.score <= 1.0
            assert 0.0 <= result.confidence <= 1.0
            assert result.error is None, f"{validator.component_id} failed: {result.error}"
            for warning in result.warnings:
                assert warning.startswith(SEVERITY_PREFIXES), f"Unprefixed warning: {warning}"


def test_upstream_features_cover_every_lower_component(generator, calm_input):
    ctx = ScoringContext(input=calm_input, tier1=generator.tier1_results(0.2))
    features = DeepValidator.upstream_features(ctx)

    assert len(features) == len(TIER1_IDS) + len(TIER2_IDS)
    assert all(features[f"l2_{cid}"] == 0.0 for cid in TIER2_IDS), "Missing Tier-2 results count as 0"

    for validator in (cls() for cls in TIER3_VALIDATORS):
        result = validator.analyze(calm_input, ctx.tier1, {})
        assert 0.0 <= result.score <= 1.0
        assert result.error is None, f"{validator.component_id} failed: {result.error}"


# ============================================================================
# TEST 2: Structured assessments read by fusion
# ============================================================================

def test_anomaly_detector_counts_types(generator, risky_input, calm_input):
    detector = AnomalyDetector()
    risky = detector.analyze(risky_input, generator.tier1_results(0.95), generator.tier2_results(0.95))
    calm = detector.analyze(calm_input, generator.tier1_results(0.05), generator.tier2_results(0.05))

    assert isinstance(risky.structured_assessment["types_detected"], int)
    assert risky.structured_assessment["types_detected"] > calm.structured_assessment["types_detected"]
    assert risky.score > calm.score


def test_context_analyzer_reports_critical_factors(generator, risky_input, calm_input):
    analyzer = ContextAnalyzer()
    risky = analyzer.analyze(risky_input, generator.tier1_results(0.9), generator.tier2_results(0.9))
    calm = analyzer.analyze(calm_input, generator.tier1_results(0.1), generator.tier2_results(0.1))

    assert risky.structured_assessment["critical_factors"] >= 1
    assert calm.structured_assessment["critical_factors"] == 0
    assert risky.score > calm.score
    assert any(w.startswith("WARNING: Possible proxy or VPN use") for w in risky.warnings)


def test_behavior_validator_flags_incoherence(generator, risky_input, calm_input):
    validator = BehaviorValidator()
    risky = validator.analyze(risky_input, generator.tier1_results(0.9), generator.tier2_results(0.9))
    calm = validator.analyze(calm_input, generator.tier1_results(0.1), generator.tier2_results(0.1))

    assert risky.score > calm.score
    assert calm.structured_assessment["is_coherent"]
    assert not risky.structured_assessment["is_coherent"]
    assert len(risky.structured_assessment["anomalous_behaviors"]) > 0


def test_risk_assessment_levels(generator, risky_input, calm_input):
    assessor = RiskAssessment()
    risky = assessor.analyze(risky_input, generator.tier1_results(0.95), generator.tier2_results(0.95))
    calm = assessor.analyze(calm_input, generator.tier1_results(0.05), generator.tier2_results(0.05))

    assert risky.score > calm.score
    assert risky.structured_assessment["risk_level"] == risk_level_for(risky.score)
    assert len(risky.structured_assessment["recommended_actions"]) > 0
    assert np.isfinite(calm.score)


# ============================================================================
# TEST 3: Combiner patterns feed the validators
# ============================================================================

@pytest.mark.parametrize("validator_cls", [AnomalyDetector, ContextAnalyzer, BehaviorValidator, RiskAssessment])
def test_tier2_patterns_raise_validator_scores(generator, calm_input, validator_cls):
    tier1 = generator.tier1_results(0.5)
    plain = generator.tier2_results(0.5)
    flagged = dict(plain)
    for cid, pattern in (
        ("behavior_combiner", "night_international"),
        ("location_combiner", "impossible_travel"),
        ("pattern_combiner", "account_takeover"),
    ):
        flagged[cid] = plain[cid].model_copy(update={"detected_patterns": (pattern,)})

    validator = validator_cls()
    without = validator.analyze(calm_input, tier1, plain)
    with_patterns = validator.analyze(calm_input, tier1, flagged)

    assert with_patterns.error is None
    assert with_patterns.score > without.score, f"{validator.component_id} ignored combiner patterns"
