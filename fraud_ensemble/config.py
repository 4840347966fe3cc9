"""
Configuration management using Pydantic Settings.
Loads from environment variables or .env file.
"""
import logging
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Ensemble configuration loaded from environment variables.

    Usage:
        # .env file
        MODELS_DIR=models/ensemble
        TRAINING_BATCH_SIZE=1000
        REQUEST_TIMEOUT_MS=5000

        # In code
        from fraud_ensemble.config import settings
        print(settings.MODELS_DIR)
    """
    # Model artifacts
    MODELS_DIR: str = "models/ensemble"
    MANIFEST_FILENAME: str = "models_metadata.json"
    AUTO_LOAD_MODELS: bool = True

    # Training
    TRAINING_BATCH_SIZE: int = 1000
    MIN_TRAINING_SAMPLES: int = 100
    SYNTHETIC_JITTER_TIER1: float = 0.20
    SYNTHETIC_JITTER_TIER2: float = 0.15
    SYNTHETIC_JITTER_TIER3: float = 0.10
    SYNTHETIC_SEED: Optional[int] = 42

    # Learned scorers
    COMPONENT_ESTIMATOR: str = "mlp"
    FUSION_ESTIMATOR: str = "xgboost"
    MLP_MAX_ITER: int = 2000
    MLP_LEARNING_RATE: float = 0.01
    MLP_TOL: float = 1e-4
    XGB_NUM_BOOST_ROUND: int = 200
    XGB_MAX_DEPTH: int = 4
    XGB_LEARNING_RATE: float = 0.1

    # Request path
    REQUEST_TIMEOUT_MS: float = 5000.0
    TIER_MAX_WORKERS: int = 12
    FRAUD_THRESHOLD: float = 0.7

    # Alerting
    ALERT_THRESHOLD: float = 0.7

    # Geography
    HOME_COUNTRY: str = "GT"

    # Labeled samples
    SAMPLES_DB_PATH: str = "data/processed/training_samples.duckdb"
    SAMPLES_TABLE: str = "training_samples"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(config: Optional[Settings] = None) -> None:
    """
    Configure root logging for services and offline scripts.

    Args:
        config: Settings instance (uses global settings if None)
    """
    config = config or settings
    handlers = [logging.StreamHandler()]
    if config.LOG_FILE:
        handlers.append(logging.FileHandler(config.LOG_FILE))

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers
    )


# Global settings instance
settings = Settings()
