"""
Pattern combiner: meta-patterns across all twelve Tier-1 scores.

Named fraud schemes (testing then escalation, structuring, account takeover,
synthetic identity, new account abuse) are scored from the snapshot; the Tier-1 score set is
examined for multi-anomaly and cascading-risk shapes.
"""
from fraud_ensemble.combiners.behavior import ALL_VARIABLES
from fraud_ensemble.components.base import Assessment, Combiner
from fraud_ensemble.components.scoring import mean, std


DEFAULT_META_PATTERNS = {
    "structuring_range": [9000, 9999],
    "takeover_min_age_days": 90,
    "takeover_min_history": 20,
    "synthetic_max_age_days": 60,
    "new_account_max_age_days": 30,
    "new_account_large_amount": 5000,
}

# Related Tier-1 groups checked for cascading risk
CASCADE_GROUPS = (
    ("amount", "merchant", "pattern"),
    ("location", "distance", "country"),
    ("time", "day", "velocity"),
    ("channel", "device", "frequency"),
)


class PatternCombiner(Combiner):
    COMPONENT_ID = "pattern_combiner"
    DESCRIPTION = "Detects multi-signal fraud schemes"

    def default_side_tables(self):
        patterns = dict(DEFAULT_META_PATTERNS)
        patterns["structuring_range"] = list(patterns["structuring_range"])
        return {"meta_patterns": patterns}

    # ------------------------------------------------------------------
    # Meta-patterns from the snapshot
    # ------------------------------------------------------------------

    @staticmethod
    def testing_escalation(v) -> float:
        score = 0.0
        if v.client_age_days < 30 and v.transactions_last_24h > 10:
            score += 0.4
        if v.amount > 2000 and v.transactions_last_24h > 5:
            score += 0.3
        if v.historical_avg_amount > 0 and v.amount / v.historical_avg_amount > 5:
            score += 0.3
        return min(score, 1.0)

    def structuring(self, v) -> float:
        low, high = self.meta_patterns["structuring_range"]
        score = 0.0
        if low <= v.amount <= high:
            score += 0.6
        if v.transactions_last_24h > 8 and v.amount_last_24h > 0:
            avg_today = v.amount_last_24h / v.transactions_last_24h
            if abs(v.amount - avg_today) / avg_today < 0.2:
                score += 0.4
        return min(score, 1.0)

    def account_takeover(self, v) -> float:
        limits = self.meta_patterns
        if v.client_age_days <= limits["takeover_min_age_days"] \
                or v.historical_transaction_count <= limits["takeover_min_history"]:
            return 0.0
        score = 0.0
        if v.historical_location_count < 3 and not v.is_domestic:
            score += 0.4
        if v.historical_avg_amount > 0:
            r = v.amount / v.historical_avg_amount
            if r > 8 or r < 0.1:
                score += 0.3
        if v.is_night_transaction:
            score += 0.2
        if v.channel in ("online", "phone"):
            score += 0.1
        return min(score, 1.0)

    def synthetic_identity(self, v) -> float:
        if v.client_age_days >= self.meta_patterns["synthetic_max_age_days"]:
            return 0.0
        score = 0.0
        if v.historical_location_count > 8:
            score += 0.3
        if v.historical_merchant_types > 10:
            score += 0.3
        if v.unique_countries > 3:
            score += 0.2
        if v.avg_transactions_per_day > 3:
            score += 0.2
        return min(score, 1.0)

    def new_account_abuse(self, v) -> float:
        """A young account with no history moving a large amount, worse abroad or at night."""
        limits = self.meta_patterns
        if v.client_age_days >= limits["new_account_max_age_days"] or v.historical_transaction_count >= 5:
            return 0.0
        score = 0.0
        if v.historical_transaction_count == 0:
            score += 0.3
        if v.amount > limits["new_account_large_amount"]:
            score += 0.3
        if not v.is_domestic:
            score += 0.2
        if v.is_night_transaction:
            score += 0.1
        if v.channel in ("online", "phone"):
            score += 0.1
        return min(score, 1.0)

    @staticmethod
    def correlated_anomalies(v) -> float:
        count = sum([
            v.historical_avg_amount > 0 and v.amount / v.historical_avg_amount > 5,
            not v.is_domestic or v.distance_from_prev > 1000,
            v.is_night_transaction or v.transactions_last_hour > 5,
            v.transactions_last_24h > 15,
            v.historical_merchant_types < 3,
        ])
        score = min(count / 5, 1.0)
        if count >= 3:
            score += 0.2
        return min(score, 1.0)

    @staticmethod
    def behavior_change(v) -> float:
        score = 0.0
        if v.avg_transactions_per_day > 0:
            r = v.transactions_last_24h / v.avg_transactions_per_day
            if r > 10:
                score += 0.4
            elif r > 5:
                score += 0.2
        if v.historical_avg_amount > 0:
            r = v.amount / v.historical_avg_amount
            if r > 15:
                score += 0.4
            elif r > 8:
                score += 0.2
        if v.historical_location_count < 3 and v.distance_from_prev > 500:
            score += 0.2
        return min(score, 1.0)

    # ------------------------------------------------------------------
    # Shapes of the Tier-1 score set
    # ------------------------------------------------------------------

    @staticmethod
    def cascading_risk(scores) -> float:
        return sum(0.25 for group in CASCADE_GROUPS if mean([scores[n] for n in group]) > 0.5)

    @staticmethod
    def correlation_index(values) -> float:
        pairs = [1 - abs(a - b) for i, a in enumerate(values) for b in values[i + 1:]]
        return mean(pairs)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def prepare_features(self, ctx):
        v = ctx.input
        scores = {name: ctx.t1(name) for name in ALL_VARIABLES}
        values = list(scores.values())

        testing = self.testing_escalation(v)
        takeover = self.account_takeover(v)
        synthetic = self.synthetic_identity(v)
        structuring = self.structuring(v)
        correlated = self.correlated_anomalies(v)
        new_account = self.new_account_abuse(v)
        likelihood = (
            testing * 0.25 + takeover * 0.25 + synthetic * 0.2 + new_account * 0.2
            + structuring * 0.15 + correlated * 0.15
        )

        average = mean(values)
        deviation = std(values)
        high_ratio = sum(1 for s in values if s > 0.6) / len(values)

        features = {f"{name}_score": s for name, s in scores.items()}
        features.update({
            "testing_escalation_pattern": testing,
            "structuring_pattern": structuring,
            "account_takeover_pattern": takeover,
            "synthetic_fraud_pattern": synthetic,
            "new_account_abuse_pattern": new_account,
            "behavior_change": self.behavior_change(v),
            "correlated_anomalies": correlated,
            "score_average": average,
            "score_deviation": deviation,
            "high_score_ratio": high_ratio,
            "score_correlation_index": self.correlation_index(values),
            "multi_anomaly_pattern": min(sum(1 for s in values if s > 0.7) / 4, 1.0),
            "cascading_risk_pattern": self.cascading_risk(scores),
            "distributed_suspicion_pattern": min(sum(1 for s in values if 0.4 <= s <= 0.7) / 6, 1.0),
            "overall_pattern_disruption": min(average * 0.4 + deviation * 0.3 + high_ratio * 0.3, 1.0),
            "fraud_pattern_likelihood": min(likelihood, 1.0),
            "client_maturity": min(v.client_age_days / 365, 1.0),
            "transaction_experience": min(v.historical_transaction_count / 100, 1.0),
        })
        return features

    def heuristic_assessment(self, ctx, features):
        score = features["fraud_pattern_likelihood"]
        patterns = []
        reasons = []

        checks = (
            ("testing_escalation", features["testing_escalation_pattern"] > 0.6, 0.2, "Testing then escalation"),
            ("account_takeover", features["account_takeover_pattern"] > 0.6, 0.25, "Account takeover pattern"),
            ("synthetic_identity", features["synthetic_fraud_pattern"] > 0.6, 0.2, "Synthetic identity pattern"),
            ("new_account_abuse", features["new_account_abuse_pattern"] > 0.6, 0.25,
             "Large first transactions on a new account"),
            ("structuring", features["structuring_pattern"] > 0.5, 0.2, "Structuring pattern"),
            ("multi_anomaly", features["multi_anomaly_pattern"] > 0.7, 0.15, "Multiple correlated anomalies"),
            ("cascading_risk", features["cascading_risk_pattern"] > 0.6, 0.1, "Cascading risk across signal groups"),
        )
        for name, hit, bonus, reason in checks:
            if hit:
                score += bonus
                patterns.append(name)
                reasons.append(reason)

        return Assessment(
            score=min(score, 1.0),
            confidence=0.8,
            reasons=reasons,
            patterns=patterns,
            sub_scores={
                "overall_disruption": features["overall_pattern_disruption"],
                "fraud_likelihood": features["fraud_pattern_likelihood"],
                "score_consistency": 1 - features["score_deviation"],
                "anomaly_concentration": features["high_score_ratio"],
                "correlation_strength": features["score_correlation_index"],
            },
        )
