"""
Train all ensemble components from labeled samples in DuckDB and save
the artifacts.

Usage:
    python scripts/train_models.py
    python scripts/train_models.py --db data/processed/training_samples.duckdb --limit 5000
"""
import argparse
import logging
import sys

from fraud_ensemble.components.registry import ComponentRegistry
from fraud_ensemble.config import configure_logging, settings
from fraud_ensemble.errors import FraudEnsembleError
from fraud_ensemble.ingestion.sample_loader import load_training_samples, to_training_samples
from fraud_ensemble.training.model_store import ModelStore
from fraud_ensemble.training.pipeline import TrainingPipeline


logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Train the fraud scoring ensemble.")
    parser.add_argument("--db", default=settings.SAMPLES_DB_PATH, help="DuckDB file with labeled samples")
    parser.add_argument("--table", default=settings.SAMPLES_TABLE, help="Sample table name")
    parser.add_argument("--limit", type=int, default=None, help="Use at most this many samples")
    parser.add_argument("--models-dir", default=settings.MODELS_DIR, help="Artifact output directory")
    parser.add_argument("--batch-size", type=int, default=settings.TRAINING_BATCH_SIZE)
    parser.add_argument("--quiet", action="store_true", help="No progress banners")
    args = parser.parse_args(argv)

    configure_logging()

    df = load_training_samples(args.db, args.table, limit=args.limit)
    samples = to_training_samples(df)

    registry = ComponentRegistry.default()
    pipeline = TrainingPipeline(registry, batch_size=args.batch_size)
    try:
        report = pipeline.train_all(samples, verbose=not args.quiet)
    except FraudEnsembleError as exc:
        logger.error(f"❌ Training rejected: {exc}")
        return 1

    print(report.to_frame().to_string(index=False))

    manifest = ModelStore(args.models_dir).save_all(registry)
    print(f"\n✅ Saved {manifest['component_count']} artifacts to {args.models_dir}")
    return 0 if report.failed_components == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
