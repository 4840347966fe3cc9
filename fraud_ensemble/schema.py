"""
Typed records that flow through the ensemble.

AnalysisInput is the single immutable snapshot every component reads.
Each tier produces its own frozen result record; nothing downstream
mutates an upstream result (new values are made with model_copy).
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field, validator


KNOWN_CHANNELS = ("physical", "online", "atm", "mobile", "phone", "unknown")


# ============================================================================
# INPUT SNAPSHOT
# ============================================================================

class AnalysisInput(BaseModel):
    """
    Normalized per-transaction snapshot (~40 derived variables).

    Built once per request by the persistence layer and read-only to every
    component. Counters default to "no history" values so partially
    populated snapshots still score.
    """
    # --- Transaction identity ---
    transaction_id: Optional[str] = None
    client_id: Optional[str] = None

    # --- Amount ---
    amount: float = Field(..., ge=0, description="Transaction amount")
    merchant_type: Optional[str] = None
    merchant_risk_score: float = Field(default=0.0, ge=0, le=1)

    # --- Geography ---
    location: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    prev_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    prev_longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    country: Optional[str] = None
    prev_country: Optional[str] = None
    is_domestic: bool = True
    distance_from_prev: float = Field(default=0.0, ge=0, description="Kilometres")

    # --- Channel and technology ---
    channel: str = "unknown"
    device_info: Optional[str] = None
    ip_address: Optional[str] = None
    proxy_detected: bool = False
    vpn_detected: bool = False

    # --- Time ---
    hour_of_day: int = Field(default=12, ge=0, le=23)
    day_of_week: int = Field(default=2, ge=0, le=6, description="0 = Sunday")
    is_weekend: bool = False
    is_night_transaction: bool = False
    is_holiday: bool = False
    time_since_prev_transaction: Optional[float] = Field(
        default=None, ge=0, description="Minutes; None when there is no previous transaction"
    )

    # --- Velocity counters ---
    transactions_last_hour: int = Field(default=0, ge=0)
    transactions_last_24h: int = Field(default=0, ge=0)
    amount_last_24h: float = Field(default=0.0, ge=0)
    avg_transactions_per_day: float = Field(default=0.0, ge=0)

    # --- Historical aggregates ---
    historical_transaction_count: int = Field(default=0, ge=0)
    historical_avg_amount: float = Field(default=0.0, ge=0)
    historical_max_amount: float = Field(default=0.0, ge=0)
    historical_location_count: int = Field(default=0, ge=0)
    historical_merchant_types: int = Field(default=0, ge=0)
    unique_countries: int = Field(default=1, ge=0)
    prev_amount: Optional[float] = Field(default=None, ge=0)

    # --- Client profile ---
    client_age_days: int = Field(default=0, ge=0)
    risk_profile: str = "low"
    fraud_incidents: int = Field(default=0, ge=0)
    merchant_frequency: int = Field(default=0, ge=0)

    class Config:
        frozen = True

    @validator("channel", pre=True)
    def normalize_channel(cls, v):
        if not v:
            return "unknown"
        v = str(v).lower()
        return v if v in KNOWN_CHANNELS else "unknown"

    @validator("country", "prev_country", pre=True)
    def normalize_country(cls, v):
        if v:
            return str(v).upper()
        return None

    @validator("risk_profile", pre=True)
    def normalize_risk_profile(cls, v):
        return str(v).lower() if v else "low"

    @validator("transaction_id", "client_id", pre=True)
    def force_string_id(cls, v):
        return str(v) if v is not None else None

    @property
    def amount_ratio_to_avg(self) -> float:
        """Amount over historical average (1.0 when there is no history)."""
        if self.historical_avg_amount > 0:
            return self.amount / self.historical_avg_amount
        return 1.0

    @property
    def amount_ratio_to_max(self) -> float:
        """Amount over historical maximum (1.0 when there is no history)."""
        if self.historical_max_amount > 0:
            return self.amount / self.historical_max_amount
        return 1.0

    @property
    def has_coordinates(self) -> bool:
        return None not in (self.latitude, self.longitude, self.prev_latitude, self.prev_longitude)


# ============================================================================
# TIER RESULTS
# ============================================================================

class ComponentResult(BaseModel):
    """Fields shared by every tier's result."""
    component_id: str
    score: float = Field(..., ge=0.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    heuristic: bool = True
    version: str = "1.0.0"
    latency_ms: float = 0.0
    error: Optional[str] = None

    class Config:
        frozen = True


class AnalyzerResult(ComponentResult):
    """Tier-1 output: one variable's suspicion score."""
    reasons: Tuple[str, ...] = ()
    raw_features: Dict[str, float] = Field(default_factory=dict)


class CombinerResult(ComponentResult):
    """Tier-2 output: cross-feature score plus named patterns."""
    detected_patterns: Tuple[str, ...] = ()
    sub_scores: Dict[str, float] = Field(default_factory=dict)
    reasons: Tuple[str, ...] = ()


class DeepResult(ComponentResult):
    """Tier-3 output: deep assessment with severity-prefixed warnings."""
    warnings: Tuple[str, ...] = ()
    structured_assessment: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# DECISION
# ============================================================================

class DecisionCategory(str, Enum):
    SAFE = "safe"
    LOW_RISK = "low_risk"
    REQUIRES_REVIEW = "requires_review"
    FRAUD_DETECTED = "fraud_detected"
    CRITICAL_FRAUD = "critical_fraud"


class ConsensusReport(BaseModel):
    tier_averages: Dict[str, float]
    variance: float
    agreement: float
    unanimous_high_risk: bool
    unanimous_low_risk: bool
    conflicting_signals: bool
    escalation_pattern: bool
    consensus_bonus: float
    confidence_in_consensus: float

    class Config:
        frozen = True


class MitigationReport(BaseModel):
    factors: Dict[str, float] = Field(default_factory=dict)
    total_mitigation: float = 0.0
    original_score: float = 0.0
    adjusted_score: float = 0.0

    class Config:
        frozen = True


class CriticalPattern(BaseModel):
    name: str
    severity: str
    description: str
    bonus: float

    class Config:
        frozen = True


class AuditTrail(BaseModel):
    decision_method: str
    layer_weights: Dict[str, float] = Field(default_factory=dict)
    thresholds: Dict[str, float] = Field(default_factory=dict)
    weighted_score: Optional[float] = None
    critical_adjustment: float = 0.0
    components_analyzed: int = 0
    heuristic_components: Tuple[str, ...] = ()
    error_occurred: bool = False
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        frozen = True


class ComponentVersion(BaseModel):
    version: str
    is_trained: bool
    trained_at: Optional[datetime] = None

    class Config:
        frozen = True


class DecisionResult(BaseModel):
    """Terminal artifact of one analysis, persisted by the caller."""
    transaction_id: Optional[str] = None
    fraud_detected: bool
    fraud_score: float = Field(..., ge=0.0, le=1.0)
    decision_category: DecisionCategory
    confidence: float = Field(..., ge=0.0, le=1.0)
    requires_manual_review: bool
    risk_level: str
    primary_reasons: Tuple[str, ...] = ()
    recommended_actions: Tuple[str, ...] = ()
    tier_averages: Dict[str, float] = Field(default_factory=dict)
    consensus_report: Optional[ConsensusReport] = None
    mitigation_report: Optional[MitigationReport] = None
    critical_patterns: Tuple[CriticalPattern, ...] = ()
    audit_trail: AuditTrail
    heuristic: bool = True
    latency_ms: float = 0.0
    tier_timings_ms: Dict[str, float] = Field(default_factory=dict)
    version_manifest: Dict[str, ComponentVersion] = Field(default_factory=dict)

    class Config:
        frozen = True


# ============================================================================
# TRAINING SAMPLES
# ============================================================================

class TrainingSample(BaseModel):
    """One labeled snapshot: label is the fraud score target in [0, 1]."""
    input: AnalysisInput
    label: float = Field(..., ge=0.0, le=1.0)

    class Config:
        frozen = True
