"""
Risk assessment: aggregate risk profile of client, transaction, behaviour
and technology, reduced by mitigating factors.

The heuristic score is the category-weighted risk scaled by
(1 - mitigation * 0.3): strong mitigation can remove at most 30% of it.
"""
from fraud_ensemble.components.base import Assessment, DeepValidator
from fraud_ensemble.components.scoring import std


DEFAULT_RISK_WEIGHTS = {
    "client": 0.25,
    "transaction": 0.30,
    "behavior": 0.25,
    "technology": 0.20,
}

RISK_LEVELS = (
    (0.9, "critical"),
    (0.7, "high"),
    (0.5, "medium"),
    (0.3, "low"),
)

CORRELATED_PAIRS = (
    ("amount", "merchant"),
    ("location", "country"),
    ("time", "day"),
    ("velocity", "frequency"),
)


def risk_level_for(score: float) -> str:
    for threshold, level in RISK_LEVELS:
        if score >= threshold:
            return level
    return "minimal"


def actions_for(score: float):
    if score >= 0.9:
        return ["Block transaction immediately", "Alert the security team",
                "Investigate the client account", "Notify the client"]
    if score >= 0.7:
        return ["Hold transaction for review", "Request additional verification",
                "Monitor client activity", "Notify the client"]
    if score >= 0.5:
        return ["Review transaction manually", "Increase client monitoring",
                "Verify device information"]
    if score >= 0.3:
        return ["Monitor future activity", "Record in the risk log"]
    return ["Process normally", "Routine monitoring"]


class RiskAssessment(DeepValidator):
    COMPONENT_ID = "risk_assessment"
    DESCRIPTION = "Aggregates client, transaction, behaviour and technology risk"

    def default_side_tables(self):
        return {"risk_weights": dict(DEFAULT_RISK_WEIGHTS)}

    # ------------------------------------------------------------------
    # Category risks
    # ------------------------------------------------------------------

    @staticmethod
    def client_risk(v) -> float:
        risk = 0.0
        if v.client_age_days < 7:
            risk += 0.4
        elif v.client_age_days < 30:
            risk += 0.2
        if v.risk_profile == "high":
            risk += 0.3
        elif v.risk_profile == "medium":
            risk += 0.1
        if v.historical_transaction_count < 5:
            risk += 0.2
        if v.unique_countries > 10:
            risk += 0.1
        return min(risk, 1.0)

    @staticmethod
    def transaction_risk(ctx) -> float:
        risk = (
            ctx.t1("amount") * 0.3
            + max(ctx.t1("location"), ctx.t1("country")) * 0.3
            + max(ctx.t1("time"), ctx.t1("day")) * 0.2
            + ctx.t1("merchant") * 0.2
        )
        return min(risk, 1.0)

    @staticmethod
    def behavior_risk(ctx) -> float:
        risk = (
            ctx.t1("pattern") * 0.3
            + max(ctx.t1("velocity"), ctx.t1("frequency")) * 0.3
            + ctx.t2("behavior") * 0.4
            + min(len(ctx.distinct_patterns) * 0.03, 0.15)
        )
        return min(risk, 1.0)

    @staticmethod
    def technology_risk(ctx) -> float:
        risk = ctx.t1("channel") * 0.3 + ctx.t1("device") * 0.3 + ctx.t2("device") * 0.4
        return min(risk, 1.0)

    @staticmethod
    def mitigation(v) -> float:
        mitigation = 0.0
        if v.client_age_days > 365 and v.historical_transaction_count > 100:
            mitigation += 0.3
        if v.is_domestic:
            mitigation += 0.2
        if not v.is_night_transaction and not v.is_weekend:
            mitigation += 0.2
        if v.channel in ("physical", "atm"):
            mitigation += 0.2
        if v.historical_avg_amount > 0 and 0.5 <= v.amount / v.historical_avg_amount <= 2.0:
            mitigation += 0.1
        return min(mitigation, 1.0)

    # ------------------------------------------------------------------
    # Escalation, urgency, impact
    # ------------------------------------------------------------------

    @staticmethod
    def _upstream_scores(ctx):
        return ctx.tier1_scores + ctx.tier2_scores

    def escalation(self, ctx) -> float:
        scores = self._upstream_scores(ctx)
        high = sum(1 for s in scores if s > 0.7)
        correlated = sum(1 for a, b in CORRELATED_PAIRS if ctx.t1(a) > 0.6 and ctx.t1(b) > 0.6)
        value = min(high / 5, 0.4) + max(scores, default=0.0) * 0.3 + min(correlated / 3, 0.3)
        return min(value, 1.0)

    def urgency(self, ctx) -> float:
        v = ctx.input
        urgency = 0.0
        if v.amount > 20000:
            urgency += 0.3
        elif v.amount > 10000:
            urgency += 0.2
        if v.transactions_last_hour > 5:
            urgency += 0.2
        simultaneous = sum(1 for s in self._upstream_scores(ctx) if s > 0.6)
        if simultaneous >= 4:
            urgency += 0.3
        elif simultaneous >= 2:
            urgency += 0.2
        if ctx.t2("behavior") > 0.8:
            urgency += 0.2
        return min(urgency, 1.0)

    @staticmethod
    def impact(v) -> float:
        impact = min(v.amount / 50000, 0.4)
        if v.client_age_days > 365:
            impact += 0.2
        if v.transactions_last_24h > 10:
            impact += 0.2
        if not v.is_domestic:
            impact += 0.2
        return min(impact, 1.0)

    def analysis_confidence(self, ctx) -> float:
        scores = self._upstream_scores(ctx)
        confidence = 0.5 + min(len(scores) / 10, 0.3)
        consistency = max(0.0, 1 - std(scores)) if len(scores) >= 2 else 0.5
        return min(confidence + consistency * 0.2, 1.0)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def prepare_features(self, ctx):
        v = ctx.input
        weights = self.risk_weights
        categories = {
            "client_risk": self.client_risk(v),
            "transaction_risk": self.transaction_risk(ctx),
            "behavior_risk": self.behavior_risk(ctx),
            "technology_risk": self.technology_risk(ctx),
        }
        mitigation = self.mitigation(v)
        weighted = sum(categories[f"{name}_risk"] * weight for name, weight in weights.items())

        features = self.upstream_features(ctx)
        features.update(categories)
        features.update({
            "risk_escalation": self.escalation(ctx),
            "urgency_assessment": self.urgency(ctx),
            "impact_assessment": self.impact(v),
            "confidence_assessment": self.analysis_confidence(ctx),
            "mitigation_factors": mitigation,
            "overall_risk_score": min(weighted * (1 - mitigation * 0.3), 1.0),
        })
        return features

    def heuristic_assessment(self, ctx, features):
        score = features["overall_risk_score"]
        warnings = []
        if score >= 0.9:
            warnings.append("CRITICAL: Possible fraud in progress")
        if features["urgency_assessment"] > 0.7:
            warnings.append("HIGH: Immediate action required")
        if features["impact_assessment"] > 0.6:
            warnings.append("HIGH: Significant potential loss")
        if features["risk_escalation"] > 0.7:
            warnings.append("WARNING: Multiple risk indicators active")
        if features["confidence_assessment"] < 0.4:
            warnings.append("WARNING: Insufficient data for a precise assessment")

        return Assessment(
            score=score,
            confidence=0.8,
            warnings=warnings,
            details=self.describe(features, score),
        )

    def learned_confidence(self, ctx, features, base):
        return features["confidence_assessment"]

    @staticmethod
    def describe(features, score):
        return {
            "risk_level": risk_level_for(score),
            "category_risks": {
                name: round(features[name], 4)
                for name in ("client_risk", "transaction_risk", "behavior_risk", "technology_risk")
            },
            "mitigation": round(features["mitigation_factors"], 4),
            "escalation": round(features["risk_escalation"], 4),
            "urgency": round(features["urgency_assessment"], 4),
            "impact": round(features["impact_assessment"], 4),
            "recommended_actions": actions_for(score),
        }

    def learned_assessment(self, ctx, features, score):
        assessment = super().learned_assessment(ctx, features, score)
        assessment.details = self.describe(features, score)
        return assessment
