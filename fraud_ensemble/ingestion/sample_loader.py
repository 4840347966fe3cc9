"""
Labeled training samples from DuckDB.

The table holds one row per transaction snapshot: the AnalysisInput
columns plus a `label` column (fraud score target in [0, 1]).
"""
import logging
import re
from typing import List, Optional

import duckdb
import pandas as pd
from pydantic import ValidationError

from fraud_ensemble.config import settings
from fraud_ensemble.schema import AnalysisInput, TrainingSample


logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def load_training_samples(db_path: Optional[str] = None, table: Optional[str] = None,
                          limit: Optional[int] = None) -> pd.DataFrame:
    """
    Read labeled snapshots from DuckDB.

    Args:
        db_path: DuckDB file (defaults to settings.SAMPLES_DB_PATH)
        table: Table name (defaults to settings.SAMPLES_TABLE)
        limit: Optional row limit

    Returns:
        DataFrame with one row per sample
    """
    db_path = db_path or settings.SAMPLES_DB_PATH
    table = table or settings.SAMPLES_TABLE
    if not _IDENTIFIER.match(table):
        raise ValueError(f"Invalid table name: {table!r}")

    query = f"SELECT * FROM {table}"
    if limit is not None:
        query += f" LIMIT {int(limit)}"

    logger.info(f"Loading training samples from {db_path} ({table})")
    con = duckdb.connect(db_path, read_only=True)
    try:
        df = con.execute(query).df()
    finally:
        con.close()

    logger.info(f"Loaded {len(df)} rows from DuckDB")
    return df


def to_training_samples(df: pd.DataFrame) -> List[TrainingSample]:
    """
    Validate DataFrame rows into TrainingSample objects.

    Rows that fail validation are skipped with a warning.
    """
    if "label" not in df.columns:
        raise ValueError("Sample table has no 'label' column")

    # NaN -> None so Optional fields validate
    clean = df.astype(object).where(pd.notna(df), None)

    samples = []
    skipped = 0
    for record in clean.to_dict(orient="records"):
        label = record.pop("label")
        try:
            samples.append(TrainingSample(input=AnalysisInput(**record), label=label))
        except ValidationError as exc:
            skipped += 1
            logger.warning(f"⚠️  Skipping invalid sample row: {exc.errors()[0].get('msg', exc)}")

    if skipped:
        logger.warning(f"⚠️  Skipped {skipped} invalid rows out of {len(clean)}")
    logger.info(f"Validated {len(samples)} training samples")
    return samples
