"""
Fraud alerts for high-scoring decisions.

Delivery is an external concern: the service hands a FraudAlert to an
AlertSink. The default sink only logs it.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from fraud_ensemble.schema import DecisionResult


logger = logging.getLogger(__name__)


class FraudAlert(BaseModel):
    transaction_id: Optional[str] = None
    fraud_score: float
    risk_tier: str
    decision_category: str
    reasons: Tuple[str, ...] = ()
    actions: Tuple[str, ...] = ()
    created_at: datetime = Field(default_factory=datetime.now)

    class Config:
        frozen = True

    @classmethod
    def from_decision(cls, decision: DecisionResult) -> "FraudAlert":
        return cls(
            transaction_id=decision.transaction_id,
            fraud_score=decision.fraud_score,
            risk_tier=decision.risk_level,
            decision_category=decision.decision_category.value,
            reasons=decision.primary_reasons,
            actions=decision.recommended_actions,
        )

    def render(self) -> str:
        lines = [
            f"FRAUD ALERT [{self.risk_tier.upper()}] transaction={self.transaction_id} "
            f"score={self.fraud_score:.3f} ({self.decision_category})"
        ]
        lines.extend(f"  - {reason}" for reason in self.reasons)
        if self.actions:
            lines.append(f"  Actions: {'; '.join(self.actions)}")
        return "\n".join(lines)


class AlertSink(ABC):
    """Outbound alert channel."""

    @abstractmethod
    def send(self, alert: FraudAlert) -> None:
        """Deliver one alert. May raise; the caller logs and continues."""


class LoggingAlertSink(AlertSink):
    def send(self, alert: FraudAlert) -> None:
        logger.warning(alert.render())


class CollectingAlertSink(AlertSink):
    """Keeps alerts in memory (useful for batch replays and tests)."""

    def __init__(self):
        self.alerts: List[FraudAlert] = []

    def send(self, alert: FraudAlert) -> None:
        self.alerts.append(alert)
