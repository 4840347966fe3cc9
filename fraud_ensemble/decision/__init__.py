"""Tier 4: final decision fusion."""
from fraud_ensemble.decision.fusion import DecisionFusion, categorize, degraded_decision, mitigate

__all__ = ["DecisionFusion", "categorize", "degraded_decision", "mitigate"]
