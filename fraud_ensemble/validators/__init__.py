"""Tier 3: deep validators over the Tier-1 and Tier-2 results."""
from fraud_ensemble.validators.anomaly_detector import AnomalyDetector
from fraud_ensemble.validators.behavior_validator import BehaviorValidator
from fraud_ensemble.validators.context_analyzer import ContextAnalyzer
from fraud_ensemble.validators.risk_assessment import RiskAssessment


# Catalog order
TIER3_VALIDATORS = (
    RiskAssessment,
    AnomalyDetector,
    BehaviorValidator,
    ContextAnalyzer,
)

__all__ = [
    "AnomalyDetector",
    "BehaviorValidator",
    "ContextAnalyzer",
    "RiskAssessment",
    "TIER3_VALIDATORS",
]
