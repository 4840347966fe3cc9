"""
Amount combiner: spending behaviour around the amount.

Looks for card testing (micro amounts in bursts), escalation, fragmentation
(many near-identical amounts), amounts just under reporting thresholds and
amounts implausible for the merchant type.
"""
from fraud_ensemble.analyzers.merchant import normalize_merchant_type
from fraud_ensemble.components.base import Assessment, Combiner
from fraud_ensemble.components.scoring import flag, log_amount, pair_correlation


DEFAULT_AMOUNT_PATTERNS = {
    "round_amounts": [100, 200, 500, 1000, 2000, 5000, 10000],
    "card_testing_ranges": [[0.01, 1.99], [1.00, 9.99]],
    "reporting_thresholds": [3000, 5000, 10000, 15000],
    "threshold_margin": 100,
    "merchant_thresholds": {
        "gas_station": {"normal": 100, "suspicious": 500, "extreme": 1000},
        "grocery": {"normal": 300, "suspicious": 1000, "extreme": 2000},
        "restaurant": {"normal": 200, "suspicious": 500, "extreme": 1000},
        "online": {"normal": 500, "suspicious": 2000, "extreme": 10000},
        "jewelry": {"normal": 1000, "suspicious": 5000, "extreme": 50000},
        "electronics": {"normal": 800, "suspicious": 3000, "extreme": 20000},
    },
}


class AmountCombiner(Combiner):
    COMPONENT_ID = "amount_combiner"
    DESCRIPTION = "Combines amount signals with spending patterns"

    def default_side_tables(self):
        patterns = DEFAULT_AMOUNT_PATTERNS
        return {
            "amount_patterns": {
                "round_amounts": list(patterns["round_amounts"]),
                "card_testing_ranges": [list(r) for r in patterns["card_testing_ranges"]],
                "reporting_thresholds": list(patterns["reporting_thresholds"]),
                "threshold_margin": patterns["threshold_margin"],
                "merchant_thresholds": {k: dict(t) for k, t in patterns["merchant_thresholds"].items()},
            }
        }

    # ------------------------------------------------------------------
    # Spending patterns
    # ------------------------------------------------------------------

    @staticmethod
    def amount_deviation(v) -> float:
        if v.historical_avg_amount <= 0:
            return 0.5
        r = v.amount / v.historical_avg_amount
        if r > 10:
            return 1.0
        if r > 5:
            return 0.8
        if r > 2:
            return 0.5
        if r < 0.1:
            return 0.7
        if r < 0.2:
            return 0.4
        return 0.1

    @staticmethod
    def spending_consistency(v) -> float:
        if v.historical_transaction_count < 5:
            return 0.5
        consistency = 0.5
        if v.historical_avg_amount > 0 and 0.5 <= v.amount / v.historical_avg_amount <= 2.0:
            consistency += 0.3
        if v.client_age_days > 90:
            consistency += 0.2
        return min(consistency, 1.0)

    @staticmethod
    def escalation(v) -> float:
        if v.client_age_days < 30 and v.amount > 5000:
            return 0.8
        if v.historical_avg_amount > 0:
            r = v.amount / v.historical_avg_amount
            if r > 8:
                return 1.0
            if r > 4:
                return 0.6
            if r > 2:
                return 0.3
        return 0.0

    def is_just_below_threshold(self, amount) -> bool:
        margin = self.amount_patterns["threshold_margin"]
        return any(t - margin <= amount < t for t in self.amount_patterns["reporting_thresholds"])

    def fragmentation(self, v) -> float:
        fragmentation = 0.0
        if v.transactions_last_24h > 5 and v.amount_last_24h > 0:
            avg_today = v.amount_last_24h / v.transactions_last_24h
            if abs(v.amount - avg_today) / avg_today < 0.1:
                fragmentation += 0.6
        if self.is_just_below_threshold(v.amount):
            fragmentation += 0.4
        return min(fragmentation, 1.0)

    def round_amount(self, amount) -> float:
        if amount in self.amount_patterns["round_amounts"]:
            return 0.6
        if amount >= 100 and amount % 100 == 0:
            return 0.4
        if amount >= 50 and amount % 50 == 0:
            return 0.2
        return 0.0

    def card_testing(self, v) -> float:
        testing = 0.0
        if any(low <= v.amount <= high for low, high in self.amount_patterns["card_testing_ranges"]):
            testing += 0.7
        if v.amount < 10 and v.transactions_last_hour > 3:
            testing += 0.5
        if v.amount < 2 and v.client_age_days < 7:
            testing += 0.3
        return min(testing, 1.0)

    @staticmethod
    def spending_velocity(v) -> float:
        velocity = 0.0
        if v.amount_last_24h > 20000:
            velocity += 0.6
        elif v.amount_last_24h > 10000:
            velocity += 0.4
        elif v.amount_last_24h > 5000:
            velocity += 0.2
        if v.amount_last_24h > 0 and v.amount / v.amount_last_24h > 0.5:
            velocity += 0.3
        return min(velocity, 1.0)

    def merchant_amount_consistency(self, v) -> float:
        thresholds = self.amount_patterns["merchant_thresholds"]
        limits = thresholds.get(normalize_merchant_type(v.merchant_type), thresholds["online"])
        if v.amount > limits["extreme"]:
            return 1.0
        if v.amount > limits["suspicious"]:
            return 0.6
        if v.amount <= limits["normal"]:
            return 0.1
        return 0.3

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def prepare_features(self, ctx):
        v = ctx.input
        amount, pattern, merchant = ctx.t1("amount"), ctx.t1("pattern"), ctx.t1("merchant")
        velocity, frequency = ctx.t1("velocity"), ctx.t1("frequency")
        escalation = self.escalation(v)
        card_testing = self.card_testing(v)

        suspicion = amount * 0.3 + pattern * 0.25 + merchant * 0.2 + escalation * 0.15 + card_testing * 0.1

        return {
            "amount_score": amount,
            "pattern_score": pattern,
            "merchant_score": merchant,
            "velocity_score": velocity,
            "frequency_score": frequency,
            "amount_deviation": self.amount_deviation(v),
            "spending_consistency": self.spending_consistency(v),
            "escalation_pattern": escalation,
            "fragmentation_pattern": self.fragmentation(v),
            "round_amount_pattern": self.round_amount(v.amount),
            "card_testing_pattern": card_testing,
            "spending_velocity": self.spending_velocity(v),
            "merchant_amount_consistency": self.merchant_amount_consistency(v),
            "amount_normalized": log_amount(v.amount),
            "amount_vs_historical": min(v.amount / v.historical_avg_amount / 10, 1.0)
            if v.historical_avg_amount > 0 else 0.5,
            "micro_transaction": flag(v.amount < 1),
            "large_transaction": flag(v.amount > 10000),
            "threshold_avoidance": flag(self.is_just_below_threshold(v.amount)),
            "new_client_large_amount": flag(v.client_age_days < 30 and v.amount > 5000),
            "night_large_amount": flag(v.is_night_transaction and v.amount > 8000),
            "international_large_amount": flag(not v.is_domestic and v.amount > 3000),
            "client_experience": min(v.client_age_days / 365, 1.0),
            "transaction_count": min(v.historical_transaction_count / 100, 1.0),
            "amount_combined_score": (amount + pattern + merchant) / 3,
            "amount_merchant_correlation": pair_correlation(amount, merchant),
            "amount_velocity_correlation": pair_correlation(amount, velocity),
            "amount_suspicion_index": min(suspicion, 1.0),
        }

    def heuristic_assessment(self, ctx, features):
        score = features["amount_suspicion_index"]
        patterns = []
        reasons = []

        checks = (
            ("escalation", features["escalation_pattern"] > 0.7, 0.2, "Escalating amounts"),
            ("card_testing", features["card_testing_pattern"] > 0.6, 0.25, "Card testing pattern"),
            ("fragmentation", features["fragmentation_pattern"] > 0.5, 0.2, "Fragmented amounts"),
            ("threshold_avoidance", features["threshold_avoidance"], 0.15, "Amount just below a reporting threshold"),
            ("new_client_large_amount", features["new_client_large_amount"], 0.15, "New client with a large amount"),
            ("night_large_amount", features["night_large_amount"], 0.1, "Large amount at night"),
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
                "amount_deviation": features["amount_deviation"],
                "spending_consistency": features["spending_consistency"],
                "spending_velocity": features["spending_velocity"],
                "merchant_amount_consistency": features["merchant_amount_consistency"],
                "card_testing_risk": features["card_testing_pattern"],
                "amount_suspicion_index": features["amount_suspicion_index"],
            },
        )
