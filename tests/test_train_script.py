"""
Tests for scripts/train_models.py
"""

import importlib.util
from pathlib import Path

import duckdb
import pandas as pd
import pytest


SCRIPT = Path(__file__).parent.parent / "scripts" / "train_models.py"


@pytest.fixture
def train_script():
    spec = importlib.util.spec_from_file_location("train_models", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def tiny_db(tmp_path):
    db_path = str(tmp_path / "tiny.duckdb")
    frame = pd.DataFrame({"amount": [10.0, 20.0, 30.0], "label": [0.1, 0.9, 0.2]})
    con = duckdb.connect(db_path)
    con.register("frame_view", frame)
    con.execute("CREATE TABLE training_samples AS SELECT * FROM frame_view")
    con.close()
    return db_path


def test_too_few_samples_exits_with_error(train_script, tiny_db, tmp_path):
    models_dir = tmp_path / "models"
    code = train_script.main([
        "--db", tiny_db,
        "--table", "training_samples",
        "--models-dir", str(models_dir),
        "--quiet",
    ])

    assert code == 1
    assert not models_dir.exists(), "Nothing is saved when training is rejected"
