"""
Tests for the synthetic lower-tier context generator
"""

import numpy as np
import pytest

from fraud_ensemble.components.catalog import TIER1_IDS, TIER2_IDS, TIER3_IDS
from fraud_ensemble.config import Settings
from fraud_ensemble.training.synthetic import SyntheticContextGenerator


def test_result_sets_cover_catalog():
    generator = SyntheticContextGenerator(seed=42)

    assert set(generator.tier1_results(0.5)) == set(TIER1_IDS)
    assert set(generator.tier2_results(0.5)) == set(TIER2_IDS)
    assert set(generator.tier3_results(0.5)) == set(TIER3_IDS)


@pytest.mark.parametrize("label", [0.0, 0.05, 0.5, 0.95, 1.0])
def test_scores_stay_within_jitter_and_bounds(label):
    generator = SyntheticContextGenerator(jitter_tier1=0.2, jitter_tier2=0.15, jitter_tier3=0.1, seed=3)
    for _ in range(20):
        for result in generator.tier1_results(label).values():
            assert 0.0 <= result.score <= 1.0
            assert abs(result.score - label) <= 0.1 + 1e-9
        for result in generator.tier2_results(label).values():
            assert abs(result.score - label) <= 0.075 + 1e-9
        for result in generator.tier3_results(label).values():
            assert abs(result.score - label) <= 0.05 + 1e-9


def test_tier_details_follow_score():
    generator = SyntheticContextGenerator(jitter_tier2=0.0, jitter_tier3=0.0, seed=1)

    combiner = generator.tier2_results(0.8)["behavior_combiner"]
    assert combiner.sub_scores["anomaly_concentration"] == pytest.approx(0.8)
    assert combiner.sub_scores["overall_consistency"] == pytest.approx(0.2)

    validator = generator.tier3_results(0.8)["anomaly_detector"]
    assert validator.structured_assessment["types_detected"] == 6
    assert validator.structured_assessment["critical_factors"] == 4
    assert validator.version == "synthetic"


def test_seed_makes_output_reproducible():
    a = SyntheticContextGenerator(seed=11)
    b = SyntheticContextGenerator(seed=11)
    scores_a = [r.score for r in a.tier1_results(0.4).values()]
    scores_b = [r.score for r in b.tier1_results(0.4).values()]
    assert scores_a == scores_b

    a.reseed()
    assert [r.score for r in a.tier1_results(0.4).values()] == scores_a


def test_zero_jitter_returns_label():
    generator = SyntheticContextGenerator(jitter_tier1=0.0, seed=None)
    scores = [r.score for r in generator.tier1_results(0.37).values()]
    assert np.allclose(scores, 0.37)


def test_negative_jitter_rejected():
    with pytest.raises(ValueError):
        SyntheticContextGenerator(jitter_tier2=-0.1)


def test_from_settings():
    config = Settings(SYNTHETIC_JITTER_TIER1=0.3, SYNTHETIC_SEED=5)
    generator = SyntheticContextGenerator.from_settings(config)
    assert generator.jitter[1] == 0.3
    assert generator.seed == 5
