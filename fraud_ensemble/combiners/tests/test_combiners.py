"""
Tests for the Tier-2 combiners
"""

import pytest

from fraud_ensemble.analyzers import TIER1_ANALYZERS
from fraud_ensemble.combiners import TIER2_COMBINERS
from fraud_ensemble.combiners.behavior import BehaviorCombiner
from fraud_ensemble.combiners.pattern import PatternCombiner
from fraud_ensemble.components.catalog import TIER2_IDS
from fraud_ensemble.schema import AnalysisInput
from fraud_ensemble.training.synthetic import SyntheticContextGenerator


@pytest.fixture
def combiners():
    return [cls() for cls in TIER2_COMBINERS]


@pytest.fixture
def night_abroad():
    return AnalysisInput(
        amount=9000.0,
        channel="online",
        country="RU",
        is_domestic=False,
        hour_of_day=3,
        is_night_transaction=True,
        transactions_last_hour=7,
        transactions_last_24h=20,
        historical_avg_amount=100.0,
        client_age_days=10,
    )


def tier1_for(analysis_input):
    return {a.component_id: a.analyze(analysis_input) for a in (cls() for cls in TIER1_ANALYZERS)}


def test_catalog_matches_combiners(combiners):
    assert tuple(c.component_id for c in combiners) == TIER2_IDS
    assert all(c.tier == 2 for c in combiners)


@pytest.mark.parametrize("label", [0.0, 0.3, 0.7, 1.0])
def test_bounds_on_synthetic_tier1(combiners, night_abroad, label):
    tier1 = SyntheticContextGenerator(seed=7).tier1_results(label)
    for combiner in combiners:
        result = combiner.analyze(night_abroad, tier1)
        assert 0.0 <= result.score <= 1.0
        assert 0.0 <= result.confidence <= 1.0
        assert result.error is None, f"{combiner.component_id} failed: {result.error}"


def test_missing_tier1_results_still_score(combiners, night_abroad):
    for combiner in combiners:
        result = combiner.analyze(night_abroad, {})
        assert 0.0 <= result.score <= 1.0
        assert result.error is None, f"{combiner.component_id} failed: {result.error}"


def test_high_risk_tier1_raises_behavior_score(night_abroad):
    generator = SyntheticContextGenerator(jitter_tier1=0.0, seed=1)
    combiner = BehaviorCombiner()

    low = combiner.analyze(night_abroad, generator.tier1_results(0.05))
    high = combiner.analyze(night_abroad, generator.tier1_results(0.95))

    assert high.score > low.score
    assert "night_international" in high.detected_patterns
    assert high.sub_scores["anomaly_concentration"] == pytest.approx(1.0)


def test_real_tier1_results_feed_combiners(combiners, night_abroad):
    tier1 = tier1_for(night_abroad)
    scores = {c.component_id: c.analyze(night_abroad, tier1).score for c in combiners}

    assert scores["behavior_combiner"] > 0.5
    assert all(0.0 <= s <= 1.0 for s in scores.values())


def test_pattern_combiner_flags_new_account_abuse():
    first_purchase = AnalysisInput(
        amount=15000, channel="online", is_night_transaction=True, is_domestic=False, device_info=None,
    )
    result = PatternCombiner().analyze(first_purchase, tier1_for(first_purchase))

    assert "new_account_abuse" in result.detected_patterns
    assert "Large first transactions on a new account" in result.reasons
