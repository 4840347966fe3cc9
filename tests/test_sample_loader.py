"""
Tests for loading labeled samples from DuckDB
"""

import duckdb
import numpy as np
import pandas as pd
import pytest

from fraud_ensemble.ingestion.sample_loader import load_training_samples, to_training_samples


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def samples_frame():
    return pd.DataFrame({
        "transaction_id": ["T1", "T2", "T3", "T4"],
        "amount": [120.0, 15000.0, -5.0, 45.0],
        "channel": ["physical", "online", "online", "mobile"],
        "is_domestic": [True, False, True, True],
        "latitude": [14.6, np.nan, 14.6, np.nan],
        "hour_of_day": [13, 3, 10, 18],
        "client_age_days": [900, 4, 30, 400],
        "label": [0.05, 0.95, 0.5, 0.1],
    })


@pytest.fixture
def samples_db(tmp_path, samples_frame):
    db_path = str(tmp_path / "samples.duckdb")
    con = duckdb.connect(db_path)
    con.register("samples_view", samples_frame)
    con.execute("CREATE TABLE training_samples AS SELECT * FROM samples_view")
    con.close()
    return db_path


# ============================================================================
# TESTS
# ============================================================================

def test_load_and_validate(samples_db):
    df = load_training_samples(samples_db, "training_samples")
    assert len(df) == 4

    samples = to_training_samples(df)
    assert [s.input.transaction_id for s in samples] == ["T1", "T2", "T4"], "Negative amount row is skipped"
    assert samples[1].label == pytest.approx(0.95)
    assert samples[1].input.latitude is None
    assert samples[0].input.latitude == pytest.approx(14.6)
    assert samples[1].input.is_domestic is False


def test_limit(samples_db):
    df = load_training_samples(samples_db, "training_samples", limit=2)
    assert len(df) == 2


def test_invalid_table_name_rejected(samples_db):
    with pytest.raises(ValueError, match="Invalid table name"):
        load_training_samples(samples_db, "training_samples; DROP TABLE x")


def test_missing_label_column(samples_frame):
    with pytest.raises(ValueError, match="label"):
        to_training_samples(samples_frame.drop(columns=["label"]))
