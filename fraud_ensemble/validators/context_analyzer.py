"""
Context analyzer: eight multiplicative risk modifiers (1.0 = neutral)
describing the circumstances of the transaction, plus a list of
contextual risk factors.

The heuristic score maps the product of the modifiers into [0, 1] as
(product - 0.5) / 2, so a fully neutral context scores 0.25.
"""
from dataclasses import dataclass, field
from typing import Dict, List

from fraud_ensemble.analyzers.distance import DistanceAnalyzer
from fraud_ensemble.analyzers.merchant import normalize_merchant_type
from fraud_ensemble.components.base import Assessment, DeepValidator
from fraud_ensemble.components.catalog import SCHEME_PATTERNS


CONTEXTS = (
    "temporal", "geographical", "client", "transactional",
    "network", "economic", "technological", "situational",
)

DEFAULT_SITUATIONAL_INDICATORS = {
    "emergency": ["hospital", "emergency", "emergency_services"],
    "travel": ["hotel", "airline"],
    "tourist": ["airport", "hotel", "resort", "beach", "tourist", "vacation"],
    "luxury": ["luxury", "luxury_goods", "jewelry"],
}

CRITICAL_FACTOR_THRESHOLD = 0.3


@dataclass
class ContextModifier:
    value: float = 1.0
    anomalies: List[str] = field(default_factory=list)

    def apply(self, factor: float, note: str) -> None:
        self.value *= factor
        self.anomalies.append(note)


class ContextAnalyzer(DeepValidator):
    COMPONENT_ID = "context_analyzer"
    DESCRIPTION = "Weighs the circumstances of the transaction as risk modifiers"

    def default_side_tables(self):
        return {"situational_indicators": {k: list(v) for k, v in DEFAULT_SITUATIONAL_INDICATORS.items()}}

    def _merchant_in(self, v, group: str) -> bool:
        merchant = normalize_merchant_type(v.merchant_type)
        return bool(merchant) and any(m in merchant for m in self.situational_indicators.get(group, []))

    # ------------------------------------------------------------------
    # Modifiers
    # ------------------------------------------------------------------

    def temporal(self, ctx) -> ContextModifier:
        v = ctx.input
        m = ContextModifier()
        if v.is_night_transaction and normalize_merchant_type(v.merchant_type) == "jewelry":
            m.apply(1.3, "Jewelry purchase at night")
        if v.is_weekend and v.channel == "online" and v.amount > 5000:
            m.apply(1.2, "High value online transaction at the weekend")
        if v.is_holiday:
            m.apply(0.8, "Holiday season")
        return m

    def geographical(self, ctx) -> ContextModifier:
        v = ctx.input
        m = ContextModifier()
        if not v.is_domestic and v.client_age_days < 30:
            m.apply(1.4, "International transaction by a new client")
        if DistanceAnalyzer.distance_km(v) > 500 and v.time_since_prev_transaction is not None \
                and v.time_since_prev_transaction < 120:
            m.apply(1.5, "Impossible distance for the elapsed time")
        location = (v.location or "").lower()
        if any(k in location for k in self.situational_indicators.get("tourist", [])):
            m.apply(0.9, "Tourist location")
        return m

    @staticmethod
    def client(ctx) -> ContextModifier:
        v = ctx.input
        m = ContextModifier()
        if v.client_age_days < 30 and v.transactions_last_24h > 5:
            m.apply(1.3, "New client with unusually high activity")
        if v.client_age_days >= 365 and v.historical_max_amount > 0 \
                and v.amount > v.historical_max_amount * 2:
            m.apply(1.2, "Established client with an atypically large amount")
        return m

    @staticmethod
    def transactional(ctx) -> ContextModifier:
        v = ctx.input
        m = ContextModifier()
        prev = v.prev_amount
        if v.amount < 5 and prev is not None and prev < 5 and v.transactions_last_hour > 3:
            m.apply(1.4, "Micro-transaction pattern (possible card testing)")
        if v.transactions_last_hour > 3 and v.amount < 1000 and prev is not None \
                and abs(v.amount - prev) < 100:
            m.apply(1.3, "Possible split transaction to avoid limits")
        return m

    @staticmethod
    def network(ctx) -> ContextModifier:
        v = ctx.input
        m = ContextModifier()
        if v.merchant_risk_score > 0.7:
            m.apply(1.3, "Merchant with a fraud history")
        high_l1 = sum(1 for s in ctx.tier1_scores if s > 0.7)
        high_l2 = sum(1 for s in ctx.tier2_scores if s > 0.7)
        if high_l1 > 3 and high_l2 > 2:
            m.apply(1.2, "Multiple suspicious correlations")
        distinct = ctx.distinct_patterns
        if distinct:
            m.apply(1 + min(len(distinct) * 0.03, 0.2), f"{len(distinct)} patterns reported by the combiners")
        return m

    def economic(self, ctx) -> ContextModifier:
        v = ctx.input
        m = ContextModifier()
        if v.historical_max_amount > 0 and v.amount_last_24h > v.historical_max_amount * 5:
            m.apply(1.3, "Spending far above the client's profile")
        if self._merchant_in(v, "luxury") and v.historical_avg_amount < 500:
            m.apply(1.2, "Luxury purchase inconsistent with history")
        return m

    @staticmethod
    def technological(ctx) -> ContextModifier:
        v = ctx.input
        m = ContextModifier()
        if ctx.t1("channel") > 0.7:
            m.apply(1.2, "Unusual change of transaction channel")
        if v.channel == "online" and not v.device_info:
            m.apply(1.3, "Online transaction without device information")
        if v.proxy_detected or v.vpn_detected:
            m.apply(1.4, "Anonymizing network detected")
        return m

    def situational(self, ctx) -> ContextModifier:
        v = ctx.input
        m = ContextModifier()
        if self._merchant_in(v, "emergency"):
            m.apply(0.7, "Possible emergency")
        if self.is_travel(v):
            m.apply(0.85, "Travel context")
        if ctx.t1("velocity") > 0.8:
            m.apply(1.3, "Transaction under pressure")
        return m

    def is_travel(self, v) -> bool:
        return (not v.is_domestic
                or self._merchant_in(v, "travel")
                or "airport" in (v.location or "").lower())

    def modifiers(self, ctx) -> Dict[str, ContextModifier]:
        return {name: getattr(self, name)(ctx) for name in CONTEXTS}

    # ------------------------------------------------------------------
    # Risk factors
    # ------------------------------------------------------------------

    @staticmethod
    def risk_factors(ctx) -> List[Dict]:
        v = ctx.input
        factors = []

        def add(name, description, increase):
            factors.append({"factor": name, "description": description, "risk_increase": increase})

        if not v.is_domestic and v.unique_countries <= 1:
            add("first_international_transaction", "First international transaction of the client", 0.3)
        if v.is_night_transaction and normalize_merchant_type(v.merchant_type) == "office_supplies":
            add("incompatible_time_location", "Purchase at a time incompatible with the merchant", 0.2)
        if sum(1 for s in ctx.tier1_scores if s > 0.7) >= 4:
            add("multiple_high_risk_contexts", "Several high risk contexts at once", 0.4)
        if ctx.t2("pattern") > 0.7 and ctx.t2("behavior") > 0.7:
            add("contextual_pattern_break", "Significant break of established patterns", 0.3)
        schemes = sorted(ctx.distinct_patterns.intersection(SCHEME_PATTERNS))
        if schemes:
            add("fraud_scheme_match", f"Combiners matched fraud schemes: {', '.join(schemes)}", 0.3)
        if ctx.t1("distance") > 0.9:
            add("impossible_travel", "Travel between locations is physically impossible", 0.4)
        if v.proxy_detected or v.vpn_detected:
            add("anonymizing_network", "Transaction routed through a proxy or VPN", 0.3)
        if v.client_age_days < 30 and v.amount > 5000:
            add("new_client_high_value", "High value transaction by a new client", 0.3)
        return factors

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    @staticmethod
    def context_risk(modifiers: Dict[str, ContextModifier]) -> float:
        product = 1.0
        for m in modifiers.values():
            product *= m.value
        return min(max((product - 0.5) / 2, 0.0), 1.0)

    @staticmethod
    def primary_context(modifiers: Dict[str, ContextModifier]) -> str:
        return max(CONTEXTS, key=lambda name: abs(modifiers[name].value - 1))

    def prepare_features(self, ctx):
        modifiers = self.modifiers(ctx)
        factors = self.risk_factors(ctx)
        features = self.upstream_features(ctx)
        features.update({f"{name}_risk_modifier": m.value for name, m in modifiers.items()})
        features.update({
            "total_anomaly_count": float(sum(len(m.anomalies) for m in modifiers.values())),
            "critical_factor_count": float(sum(1 for f in factors if f["risk_increase"] >= CRITICAL_FACTOR_THRESHOLD)),
            "overall_context_risk": self.context_risk(modifiers),
        })
        return features

    def heuristic_assessment(self, ctx, features):
        modifiers = self.modifiers(ctx)
        factors = self.risk_factors(ctx)
        critical = [f["factor"] for f in factors if f["risk_increase"] >= CRITICAL_FACTOR_THRESHOLD]
        score = features["overall_context_risk"]

        warnings = []
        if score >= 0.8:
            warnings.append("CRITICAL: Multiple high risk contextual factors")
        if len(factors) > 3:
            warnings.append("HIGH: Several problematic contextual factors")
        if critical:
            warnings.append(f"HIGH: Critical factors: {', '.join(critical)}")
        if ctx.input.proxy_detected or ctx.input.vpn_detected:
            warnings.append("WARNING: Possible proxy or VPN use")

        return Assessment(
            score=score,
            confidence=0.8,
            warnings=warnings,
            details={
                "critical_factors": len(critical),
                "anomaly_count": int(features["total_anomaly_count"]),
                "primary_context": self.primary_context(modifiers),
                "modifiers": {name: round(m.value, 4) for name, m in modifiers.items()},
                "anomalies": {name: list(m.anomalies) for name, m in modifiers.items() if m.anomalies},
                "risk_factors": factors,
            },
        )

    def learned_confidence(self, ctx, features, base):
        confidence = 0.7
        if features["total_anomaly_count"] > 5:
            confidence += 0.15
        elif features["total_anomaly_count"] > 3:
            confidence += 0.1
        if features["critical_factor_count"] > 0:
            confidence += 0.1
        return min(confidence, 1.0)
