"""
Tests for the Tier-1 variable analyzers

Validates score bounds on random snapshots, a few hand-checked rules,
heuristic fallback on a broken model, and export/import of trained state.
"""

import json
from datetime import datetime

import numpy as np
import pytest

from fraud_ensemble.analyzers import TIER1_ANALYZERS
from fraud_ensemble.analyzers.amount import AmountAnalyzer
from fraud_ensemble.analyzers.country import CountryAnalyzer
from fraud_ensemble.analyzers.distance import DistanceAnalyzer
from fraud_ensemble.analyzers.merchant import MerchantAnalyzer, normalize_merchant_type
from fraud_ensemble.components.base import Assessment, TierComponent, Trained
from fraud_ensemble.components.catalog import TIER1_IDS
from fraud_ensemble.errors import ModelImportError, TrainingDataError
from fraud_ensemble.schema import AnalysisInput, TrainingSample


# ============================================================================
# FIXTURES
# ============================================================================

CHANNELS = ["physical", "online", "atm", "mobile", "phone", "unknown"]
COUNTRIES = ["GT", "US", "MX", "RU", "NG", "BR", None]
MERCHANTS = ["grocery", "casino", "jewelry", "Online Casino", "pharmacy", None, "unlisted"]


def random_input(rng):
    has_prev = rng.random() < 0.7
    return AnalysisInput(
        amount=float(rng.choice([0.5, 3.0, 45.0, 900.0, 7000.0, 50000.0])),
        merchant_type=rng.choice(MERCHANTS),
        merchant_risk_score=float(rng.random()),
        latitude=float(rng.uniform(-60, 60)) if has_prev else None,
        longitude=float(rng.uniform(-150, 150)) if has_prev else None,
        prev_latitude=float(rng.uniform(-60, 60)) if has_prev else None,
        prev_longitude=float(rng.uniform(-150, 150)) if has_prev else None,
        country=rng.choice(COUNTRIES),
        is_domestic=bool(rng.random() < 0.5),
        distance_from_prev=float(rng.uniform(0, 3000)),
        channel=rng.choice(CHANNELS),
        device_info=rng.choice([None, "Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0", "curl/8.0", "bot"]),
        ip_address=rng.choice([None, "201.218.12.34", "10.0.0.5", "not-an-ip"]),
        proxy_detected=bool(rng.random() < 0.2),
        hour_of_day=int(rng.integers(0, 24)),
        day_of_week=int(rng.integers(0, 7)),
        is_weekend=bool(rng.random() < 0.3),
        is_night_transaction=bool(rng.random() < 0.3),
        time_since_prev_transaction=float(rng.uniform(0, 10000)) if has_prev else None,
        transactions_last_hour=int(rng.integers(0, 15)),
        transactions_last_24h=int(rng.integers(0, 40)),
        amount_last_24h=float(rng.uniform(0, 30000)),
        avg_transactions_per_day=float(rng.uniform(0, 5)),
        historical_transaction_count=int(rng.integers(0, 2000)),
        historical_avg_amount=float(rng.choice([0.0, 20.0, 500.0])),
        historical_max_amount=float(rng.choice([0.0, 100.0, 5000.0])),
        historical_location_count=int(rng.integers(0, 30)),
        historical_merchant_types=int(rng.integers(0, 25)),
        unique_countries=int(rng.integers(0, 15)),
        prev_amount=float(rng.uniform(0, 1000)) if has_prev else None,
        client_age_days=int(rng.integers(0, 3000)),
        risk_profile=rng.choice(["low", "medium", "high"]),
        fraud_incidents=int(rng.integers(0, 3)),
        merchant_frequency=int(rng.integers(0, 30)),
    )


@pytest.fixture
def analyzers():
    return [cls() for cls in TIER1_ANALYZERS]


def training_samples(n=40):
    np.random.seed(42)
    samples = []
    for i in range(n):
        fraud = i % 2 == 0
        amount = float(np.random.uniform(8000, 30000) if fraud else np.random.uniform(10, 500))
        samples.append(TrainingSample(
            input=AnalysisInput(amount=amount, historical_avg_amount=150.0, client_age_days=20 if fraud else 900),
            label=0.9 if fraud else 0.1
        ))
    return samples


# ============================================================================
# TEST 1: Bounds and catalog
# ============================================================================

def test_catalog_matches_analyzers(analyzers):
    assert tuple(a.component_id for a in analyzers) == TIER1_IDS
    assert all(a.tier == 1 for a in analyzers)


def test_scores_in_bounds_for_random_inputs(analyzers):
    rng = np.random.default_rng(42)
    for _ in range(100):
        analysis_input = random_input(rng)
        for analyzer in analyzers:
            result = analyzer.analyze(analysis_input)
            assert 0.0 <= result.score <= 1.0, f"{analyzer.component_id} score out of bounds"
            assert 0.0 <= result.confidence <= 1.0, f"{analyzer.component_id} confidence out of bounds"
            assert result.heuristic
            assert result.error is None, f"{analyzer.component_id} failed: {result.error}"
            assert all(np.isfinite(v) for v in result.raw_features.values())


# ============================================================================
# TEST 2: Hand-checked rules
# ============================================================================

def test_amount_extreme_for_new_client():
    result = AmountAnalyzer().analyze(AnalysisInput(amount=25000.0, historical_avg_amount=100.0, client_age_days=3))
    assert result.score == 1.0
    assert any("Extremely high amount" in r for r in result.reasons)


def test_coincident_coordinates_mean_no_movement():
    analysis_input = AnalysisInput(
        amount=100.0,
        latitude=14.6, longitude=-90.5,
        prev_latitude=14.6, prev_longitude=-90.5,
        distance_from_prev=500.0,
        time_since_prev_transaction=10.0,
    )
    result = DistanceAnalyzer().analyze(analysis_input)
    assert result.score == 0.0, "Coordinates take precedence over distance_from_prev"
    assert result.confidence == pytest.approx(0.5)


def test_impossible_travel_speed():
    analysis_input = AnalysisInput(amount=100.0, distance_from_prev=1000.0, time_since_prev_transaction=30.0)
    result = DistanceAnalyzer().analyze(analysis_input)
    assert result.score >= 0.9
    assert any("Impossible travel speed" in r for r in result.reasons)


def test_merchant_classification():
    analyzer = MerchantAnalyzer()
    assert normalize_merchant_type("Online Casino") == "online_casino"
    assert analyzer.classify("casino") == "very_high"
    assert analyzer.classify("Online Casino") == "very_high"
    assert analyzer.classify("GROCERY") == "low"
    assert analyzer.classify(None) == "unknown"
    assert analyzer.classify("spaceship dealer") == "unknown"


def test_home_country_is_configurable():
    analysis_input = AnalysisInput(amount=100.0, country="mx")
    assert CountryAnalyzer(home_country="MX").classify(analysis_input.country) == "home"
    assert CountryAnalyzer(home_country="GT").classify(analysis_input.country) != "home"


# ============================================================================
# TEST 3: Fallback
# ============================================================================

def test_broken_estimator_falls_back_to_heuristic():
    analyzer = AmountAnalyzer()
    analysis_input = AnalysisInput(amount=25000.0, historical_avg_amount=100.0)
    expected = analyzer.analyze(analysis_input)

    analyzer.swap_state(Trained(
        estimator=object(),
        estimator_kind="mlp",
        feature_names=tuple(expected.raw_features),
        trained_at=datetime.now()
    ))
    result = analyzer.analyze(analysis_input)

    assert result.heuristic
    assert result.error is not None
    assert result.score == expected.score


def test_neutral_result_when_heuristic_fails(monkeypatch):
    analyzer = AmountAnalyzer()

    def explode(ctx):
        raise RuntimeError("bad features")

    monkeypatch.setattr(analyzer, "prepare_features", explode)
    result = analyzer.analyze(AnalysisInput(amount=10.0))

    assert result.score == 0.5
    assert result.confidence == pytest.approx(0.1)
    assert "bad features" in result.error


def test_tier_component_must_build_its_result():
    class NoResultAnalyzer(TierComponent):
        COMPONENT_ID = "no_result_analyzer"

        def prepare_features(self, ctx):
            return {}

        def heuristic_assessment(self, ctx, features):
            return Assessment(score=0.0, confidence=1.0)

    with pytest.raises(TypeError):
        NoResultAnalyzer()


# ============================================================================
# TEST 4: Training and persistence
# ============================================================================

def test_train_requires_samples():
    with pytest.raises(TrainingDataError):
        AmountAnalyzer().train([])


def test_trained_state_survives_export_import():
    analyzer = AmountAnalyzer(hyperparameters={"max_iter": 50})
    outcome = analyzer.train(training_samples())
    assert outcome.success
    assert analyzer.is_trained

    blob = json.loads(json.dumps(analyzer.export_model()))
    restored = AmountAnalyzer()
    restored.import_model(blob)

    analysis_input = AnalysisInput(amount=12000.0, historical_avg_amount=150.0, client_age_days=15)
    before = analyzer.analyze(analysis_input)
    after = restored.analyze(analysis_input)

    assert restored.is_trained
    assert not after.heuristic
    assert after.score == pytest.approx(before.score)
    assert after.confidence == pytest.approx(before.confidence)
    assert after.reasons == before.reasons
    assert after.raw_features == before.raw_features


def test_continue_training_keeps_feature_layout():
    analyzer = AmountAnalyzer(hyperparameters={"max_iter": 20})
    samples = training_samples()
    analyzer.train(samples[:20])
    first = analyzer.state
    analyzer.train(samples[20:], continue_training=True)

    assert analyzer.state is not first
    assert analyzer.state.feature_names == first.feature_names


def test_import_rejects_wrong_component():
    blob = MerchantAnalyzer().export_model()
    with pytest.raises(ModelImportError):
        AmountAnalyzer().import_model(blob)


def test_import_rejects_corrupt_weights():
    analyzer = AmountAnalyzer(hyperparameters={"max_iter": 20})
    analyzer.train(training_samples())
    blob = analyzer.export_model()
    blob["weights"] = "%%% not base64 %%%"

    restored = AmountAnalyzer()
    with pytest.raises(ModelImportError):
        restored.import_model(blob)
    assert not restored.is_trained, "A failed import must leave the previous state in place"


def test_reset_returns_to_untrained():
    analyzer = AmountAnalyzer(hyperparameters={"max_iter": 20})
    analyzer.train(training_samples())
    analyzer.amount_thresholds["high"] = 1.0
    analyzer.reset()

    assert not analyzer.is_trained
    assert analyzer.amount_thresholds["high"] == 10000.0


class RecordingAmountAnalyzer(AmountAnalyzer):
    """Records attribute assignments made one at a time after construction."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.assignments = []

    def __setattr__(self, name, value):
        if "assignments" in vars(self):
            self.assignments.append(name)
        super().__setattr__(name, value)


def test_import_installs_state_and_side_tables_in_one_update():
    source = AmountAnalyzer(hyperparameters={"max_iter": 20})
    source.train(training_samples())
    source.amount_thresholds["high"] = 7500.0
    blob = json.loads(json.dumps(source.export_model()))

    restored = RecordingAmountAnalyzer()
    restored.import_model(blob)

    assert restored.assignments == [], "State, side tables and metadata must land together"
    assert restored.is_trained
    assert restored.amount_thresholds["high"] == 7500.0
    assert restored.hyperparameters["max_iter"] == 20
    assert restored.version == source.version


def test_reset_installs_defaults_in_one_update():
    analyzer = RecordingAmountAnalyzer(hyperparameters={"max_iter": 20})
    analyzer.train(training_samples())
    analyzer.amount_thresholds["high"] = 1.0
    analyzer.assignments.clear()

    analyzer.reset()

    assert analyzer.assignments == []
    assert not analyzer.is_trained
    assert analyzer.amount_thresholds["high"] == 10000.0
