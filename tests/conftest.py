"""
Pytest configuration and fixtures for the ensemble tests.

Markers:
- unit: fast, isolated
- integration: runs the full four-tier pipeline or trains components
"""

import numpy as np
import pytest

from fraud_ensemble.components.registry import ComponentRegistry
from fraud_ensemble.config import Settings
from fraud_ensemble.schema import AnalysisInput, TrainingSample
from fraud_ensemble.training.model_store import ModelStore
from fraud_ensemble.training.pipeline import TrainingPipeline
from fraud_ensemble.training.synthetic import SyntheticContextGenerator


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (may be slow or require full setup)"
    )
    config.addinivalue_line(
        "markers",
        "unit: mark test as unit test (fast, isolated)"
    )


# ============================================================================
# TRANSACTIONS
# ============================================================================

@pytest.fixture
def fraud_input():
    """Large foreign online purchase at night with no device metadata."""
    return AnalysisInput(
        transaction_id="TXN_FRAUD_001",
        client_id="CLIENT_NEW",
        amount=15000.0,
        merchant_type="casino",
        country="NG",
        prev_country="GT",
        is_domestic=False,
        distance_from_prev=1000.0,
        channel="online",
        device_info=None,
        ip_address=None,
        hour_of_day=3,
        day_of_week=0,
        is_weekend=True,
        is_night_transaction=True,
        time_since_prev_transaction=30.0,
        transactions_last_hour=9,
        transactions_last_24h=25,
        amount_last_24h=20000.0,
        avg_transactions_per_day=1.0,
        historical_transaction_count=3,
        historical_avg_amount=100.0,
        historical_max_amount=200.0,
        historical_location_count=1,
        historical_merchant_types=1,
        unique_countries=1,
        prev_amount=1.0,
        client_age_days=5,
        risk_profile="high",
        merchant_frequency=0,
    )


@pytest.fixture
def safe_input():
    """Small in-store grocery purchase by a long-standing client."""
    return AnalysisInput(
        transaction_id="TXN_SAFE_001",
        client_id="CLIENT_LOYAL",
        amount=45.0,
        merchant_type="grocery",
        country="GT",
        prev_country="GT",
        is_domestic=True,
        channel="physical",
        device_info="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36",
        ip_address="201.218.12.34",
        hour_of_day=14,
        day_of_week=2,
        time_since_prev_transaction=1440.0,
        transactions_last_hour=0,
        transactions_last_24h=1,
        amount_last_24h=45.0,
        avg_transactions_per_day=1.5,
        historical_transaction_count=1500,
        historical_avg_amount=50.0,
        historical_max_amount=400.0,
        historical_location_count=4,
        historical_merchant_types=8,
        unique_countries=1,
        prev_amount=52.0,
        client_age_days=1000,
        fraud_incidents=0,
        merchant_frequency=15,
    )


# ============================================================================
# TRAINING
# ============================================================================

@pytest.fixture
def small_config(tmp_path):
    """Settings with tiny estimators so training runs in seconds."""
    return Settings(
        MODELS_DIR=str(tmp_path / "models"),
        AUTO_LOAD_MODELS=False,
        TRAINING_BATCH_SIZE=20,
        MIN_TRAINING_SAMPLES=10,
        MLP_MAX_ITER=30,
        XGB_NUM_BOOST_ROUND=5,
        REQUEST_TIMEOUT_MS=30000.0,
    )


@pytest.fixture
def registry(small_config):
    return ComponentRegistry.default(small_config)


def make_samples(n, fraud_rate=0.5, seed=42):
    """Labeled snapshots: fraud rows look like night-time foreign bursts."""
    np.random.seed(seed)
    samples = []
    for i in range(n):
        is_fraud = np.random.rand() < fraud_rate
        if is_fraud:
            snapshot = AnalysisInput(
                transaction_id=f"TXN_{i:05d}",
                amount=float(np.random.uniform(3000, 20000)),
                channel="online",
                country="RU",
                is_domestic=False,
                hour_of_day=int(np.random.randint(1, 5)),
                is_night_transaction=True,
                transactions_last_hour=int(np.random.randint(3, 10)),
                transactions_last_24h=int(np.random.randint(10, 30)),
                historical_avg_amount=float(np.random.uniform(50, 300)),
                client_age_days=int(np.random.randint(1, 60)),
            )
            label = float(np.random.uniform(0.8, 1.0))
        else:
            snapshot = AnalysisInput(
                transaction_id=f"TXN_{i:05d}",
                amount=float(np.random.uniform(10, 400)),
                channel="physical",
                country="GT",
                hour_of_day=int(np.random.randint(9, 20)),
                transactions_last_24h=int(np.random.randint(0, 4)),
                avg_transactions_per_day=2.0,
                historical_avg_amount=float(np.random.uniform(50, 300)),
                client_age_days=int(np.random.randint(365, 3000)),
                merchant_frequency=int(np.random.randint(0, 30)),
            )
            label = float(np.random.uniform(0.0, 0.2))
        samples.append(TrainingSample(input=snapshot, label=label))
    return samples


@pytest.fixture
def labeled_samples():
    return make_samples(40)


@pytest.fixture
def sample_factory():
    return make_samples


@pytest.fixture(scope="module")
def round_trip(tmp_path_factory):
    """Trained registry plus a fresh registry restored from its artifacts (trained once per module)."""
    config = Settings(
        MODELS_DIR=str(tmp_path_factory.mktemp("round_trip") / "models"),
        AUTO_LOAD_MODELS=False,
        MLP_MAX_ITER=30,
        XGB_NUM_BOOST_ROUND=5,
    )
    trained = ComponentRegistry.default(config)
    TrainingPipeline(
        trained, batch_size=20, min_samples=10, generator=SyntheticContextGenerator(seed=42)
    ).train_all(make_samples(40), verbose=False)
    store = ModelStore(config.MODELS_DIR)
    store.save_all(trained)

    restored = ComponentRegistry.default(config)
    report = store.load_all(restored)
    return trained, restored, report
