"""
Behavior combiner: the broadest Tier-2 view.

Groups all twelve Tier-1 scores into five behaviour families, takes their
weighted average and adds bonuses for cross-family patterns (night abroad,
large amount at high velocity, clusters of new behaviour, concentration of
anomalies).
"""
from fraud_ensemble.components.base import Assessment, Combiner
from fraud_ensemble.components.scoring import flag, mean, pair_correlation, std, weighted_average


DEFAULT_BEHAVIOR_WEIGHTS = {
    "temporal": 0.25,
    "spending": 0.25,
    "location": 0.20,
    "frequency": 0.15,
    "context": 0.15,
}

BEHAVIOR_GROUPS = {
    "temporal": ("time", "day"),
    "spending": ("amount", "pattern"),
    "location": ("location", "distance", "country"),
    "frequency": ("velocity", "frequency"),
    "context": ("channel", "device", "merchant"),
}

ALL_VARIABLES = (
    "amount", "location", "time", "day", "merchant", "velocity",
    "distance", "pattern", "frequency", "channel", "device", "country",
)


class BehaviorCombiner(Combiner):
    COMPONENT_ID = "behavior_combiner"
    DESCRIPTION = "Combines all Tier-1 signals into behaviour families"

    def default_side_tables(self):
        return {"behavior_weights": dict(DEFAULT_BEHAVIOR_WEIGHTS)}

    @staticmethod
    def client_risk_factor(v) -> float:
        risk = 0.0
        if v.client_age_days < 30:
            risk += 0.3
        if v.risk_profile == "high":
            risk += 0.4
        elif v.risk_profile == "medium":
            risk += 0.2
        if v.historical_transaction_count < 10:
            risk += 0.2
        if v.historical_location_count > 15:
            risk += 0.3
        return min(risk, 1.0)

    @staticmethod
    def transaction_risk_factor(v) -> float:
        risk = 0.0
        if v.amount > 10000:
            risk += 0.3
        elif v.amount > 5000:
            risk += 0.2
        if v.is_night_transaction:
            risk += 0.2
        if not v.is_domestic:
            risk += 0.2
        if v.is_weekend:
            risk += 0.1
        if v.channel in ("online", "phone"):
            risk += 0.2
        return min(risk, 1.0)

    def prepare_features(self, ctx):
        v = ctx.input
        scores = {name: ctx.t1(name) for name in ALL_VARIABLES}
        groups = {g: mean([scores[n] for n in names]) for g, names in BEHAVIOR_GROUPS.items()}
        values = list(scores.values())

        novel = sum(1 for n in ("location", "merchant", "pattern", "channel") if scores[n] > 0.6)
        if v.client_age_days < 30 and novel >= 3:
            new_behavior_cluster = 1.0
        else:
            new_behavior_cluster = novel / 4

        features = {f"{name}_score": s for name, s in scores.items()}
        features.update({f"{g}_behavior": s for g, s in groups.items()})
        features.update({
            "time_location_correlation": pair_correlation(scores["time"], scores["location"]),
            "amount_merchant_correlation": pair_correlation(scores["amount"], scores["merchant"]),
            "velocity_distance_correlation": pair_correlation(scores["velocity"], scores["distance"]),
            "pattern_frequency_correlation": pair_correlation(scores["pattern"], scores["frequency"]),
            "night_international_pattern": flag(
                v.is_night_transaction and not v.is_domestic
                and scores["time"] > 0.5 and scores["country"] > 0.5
            ),
            "high_amount_velocity_pattern": flag(scores["amount"] > 0.6 and scores["velocity"] > 0.6),
            "new_behavior_cluster": new_behavior_cluster,
            "overall_consistency": max(0.0, 1 - std(values) * 2),
            "anomaly_concentration": sum(1 for s in values if s > 0.6) / len(values),
            "weighted_average": weighted_average(
                (groups[g], self.behavior_weights.get(g, 0.0)) for g in BEHAVIOR_GROUPS
            ),
            "client_risk_factor": self.client_risk_factor(v),
            "transaction_risk_factor": self.transaction_risk_factor(v),
        })
        return features

    def heuristic_assessment(self, ctx, features):
        score = features["weighted_average"]
        patterns = []
        reasons = []

        if features["night_international_pattern"]:
            score += 0.2
            patterns.append("night_international")
            reasons.append("Night-time international transaction")
        if features["high_amount_velocity_pattern"]:
            score += 0.2
            patterns.append("high_amount_velocity")
            reasons.append("High amount combined with high velocity")
        if features["new_behavior_cluster"] > 0.7:
            score += 0.15
            patterns.append("new_behavior_cluster")
            reasons.append("Several new behaviours at once")
        if features["anomaly_concentration"] > 0.6:
            score += 0.1
            patterns.append("anomaly_concentration")
            reasons.append("High concentration of anomalies")

        if features["overall_consistency"] < 0.3:
            patterns.append("inconsistent_behavior")
        if features["client_risk_factor"] > 0.7 and features["transaction_risk_factor"] > 0.6:
            patterns.append("high_risk_client_transaction")
            reasons.append("High risk client with a high risk transaction")

        sub_scores = {f"{g}_risk": features[f"{g}_behavior"] for g in BEHAVIOR_GROUPS}
        sub_scores.update({
            "overall_consistency": features["overall_consistency"],
            "anomaly_concentration": features["anomaly_concentration"],
            "client_risk_factor": features["client_risk_factor"],
            "transaction_risk_factor": features["transaction_risk_factor"],
        })
        return Assessment(
            score=min(score, 1.0),
            confidence=0.7,
            reasons=reasons,
            patterns=patterns,
            sub_scores=sub_scores,
        )
