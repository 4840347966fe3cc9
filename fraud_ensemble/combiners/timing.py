"""
Timing combiner: hour, day, velocity and frequency read together.

A 3 AM transaction is mildly odd; a 3 AM Sunday transaction seconds after
the previous one, on an account dormant for a month, is not.
"""
from fraud_ensemble.components.base import Assessment, Combiner
from fraud_ensemble.components.scoring import flag, pair_correlation


DEFAULT_TEMPORAL_PATTERNS = {
    "high_risk_hours": [2, 3, 4, 5],
    "high_risk_days": [0, 6],
    # minutes since the previous transaction
    "rapid_succession": {"very_fast": 2, "fast": 5, "moderate": 15},
}


class TimingCombiner(Combiner):
    COMPONENT_ID = "timing_combiner"
    DESCRIPTION = "Combines temporal signals: hour, day, velocity and rhythm"

    def default_side_tables(self):
        return {
            "temporal_patterns": {
                "high_risk_hours": list(DEFAULT_TEMPORAL_PATTERNS["high_risk_hours"]),
                "high_risk_days": list(DEFAULT_TEMPORAL_PATTERNS["high_risk_days"]),
                "rapid_succession": dict(DEFAULT_TEMPORAL_PATTERNS["rapid_succession"]),
            }
        }

    # ------------------------------------------------------------------
    # Temporal behaviour
    # ------------------------------------------------------------------

    @staticmethod
    def temporal_consistency(v) -> float:
        if v.historical_transaction_count < 10:
            return 0.5
        consistency = 0.5
        if not v.is_night_transaction and not v.is_weekend:
            consistency += 0.3
        if v.client_age_days > 90:
            consistency += 0.2
        return min(consistency, 1.0)

    @staticmethod
    def preferred_time_deviation(hour) -> float:
        if 9 <= hour <= 18:
            return 0.1
        if 18 <= hour <= 22:
            return 0.3
        if hour >= 22 or hour <= 1:
            return 0.6
        return 0.9

    @staticmethod
    def preferred_day_deviation(day) -> float:
        if 1 <= day <= 5:
            return 0.2
        if day == 6:
            return 0.5
        return 0.8

    @staticmethod
    def activity_rhythm(v) -> float:
        rhythm = 0.0
        if v.transactions_last_hour > 5:
            rhythm += 0.4
        if v.transactions_last_24h > 15:
            rhythm += 0.3
        if v.time_since_prev_transaction is not None and v.time_since_prev_transaction < 2:
            rhythm += 0.3
        return min(rhythm, 1.0)

    def nocturnal_behavior(self, v) -> float:
        if not v.is_night_transaction:
            return 0.0
        nocturnal = 0.3
        if v.hour_of_day in self.temporal_patterns["high_risk_hours"]:
            nocturnal += 0.4
        if not v.is_domestic:
            nocturnal += 0.2
        if v.amount > 5000:
            nocturnal += 0.1
        return min(nocturnal, 1.0)

    @staticmethod
    def weekend_behavior(v) -> float:
        if not v.is_weekend:
            return 0.0
        weekend = 0.2
        if v.day_of_week == 0:
            weekend += 0.2
        if v.is_night_transaction:
            weekend += 0.3
        if v.transactions_last_24h > 10:
            weekend += 0.2
        if v.amount > 8000:
            weekend += 0.1
        return min(weekend, 1.0)

    def transaction_velocity(self, v) -> float:
        limits = self.temporal_patterns["rapid_succession"]
        minutes = v.time_since_prev_transaction
        velocity = 0.0
        if minutes is not None:
            if minutes < limits["very_fast"]:
                velocity += 0.6
            elif minutes < limits["fast"]:
                velocity += 0.4
            elif minutes < limits["moderate"]:
                velocity += 0.2
        if v.transactions_last_hour > 8:
            velocity += 0.3
        elif v.transactions_last_hour > 5:
            velocity += 0.2
        return min(velocity, 1.0)

    def is_critical_time(self, v) -> bool:
        if v.day_of_week == 0 and 2 <= v.hour_of_day <= 6:
            return True
        return v.hour_of_day in self.temporal_patterns["high_risk_hours"] and v.amount > 5000

    @staticmethod
    def is_dormant_then_active(v) -> bool:
        minutes = v.time_since_prev_transaction
        if minutes is not None and minutes > 4320 and v.transactions_last_24h > 5:
            return True
        return v.client_age_days > 180 and v.avg_transactions_per_day < 0.1 and v.transactions_last_24h > 3

    @staticmethod
    def unusual_day_pattern(v) -> float:
        if v.day_of_week == 0 and v.transactions_last_24h > 8:
            return 1.0
        if v.is_weekend and v.amount > 15000:
            return 0.8
        return 0.0

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def prepare_features(self, ctx):
        v = ctx.input
        time_score, day, velocity = ctx.t1("time"), ctx.t1("day"), ctx.t1("velocity")
        frequency, pattern = ctx.t1("frequency"), ctx.t1("pattern")
        nocturnal = self.nocturnal_behavior(v)
        minutes = v.time_since_prev_transaction

        anomaly_index = time_score * 0.25 + day * 0.2 + velocity * 0.25 + frequency * 0.2 + nocturnal * 0.1

        return {
            "time_score": time_score,
            "day_score": day,
            "velocity_score": velocity,
            "frequency_score": frequency,
            "pattern_score": pattern,
            "temporal_consistency": self.temporal_consistency(v),
            "preferred_time_deviation": self.preferred_time_deviation(v.hour_of_day),
            "preferred_day_deviation": self.preferred_day_deviation(v.day_of_week),
            "activity_rhythm": self.activity_rhythm(v),
            "nocturnal_behavior": nocturnal,
            "weekend_behavior": self.weekend_behavior(v),
            "transaction_velocity": self.transaction_velocity(v),
            "hour_normalized": v.hour_of_day / 24,
            "day_normalized": v.day_of_week / 7,
            "is_night": flag(v.is_night_transaction),
            "is_weekend": flag(v.is_weekend),
            "critical_time_combination": flag(self.is_critical_time(v)),
            "rapid_succession_pattern": flag(minutes is not None and minutes < 5),
            "burst_activity_pattern": flag(v.transactions_last_hour > 5),
            "dormant_then_active": flag(self.is_dormant_then_active(v)),
            "night_weekend_combo": flag(v.is_night_transaction and v.is_weekend),
            "early_morning_activity": flag(2 <= v.hour_of_day <= 6),
            "unusual_day_pattern": self.unusual_day_pattern(v),
            "client_maturity": min(v.client_age_days / 365, 1.0),
            "transaction_experience": min(v.historical_transaction_count / 100, 1.0),
            "temporal_combined_score": (time_score + day + velocity) / 3,
            "time_velocity_correlation": pair_correlation(time_score, velocity),
            "day_frequency_correlation": pair_correlation(day, frequency),
            "temporal_anomaly_index": min(anomaly_index, 1.0),
        }

    def heuristic_assessment(self, ctx, features):
        score = features["temporal_anomaly_index"]
        patterns = []
        reasons = []

        bonuses = (
            ("critical_time_combination", 0.3, "Critical time combination"),
            ("rapid_succession_pattern", 0.2, "Transactions in rapid succession"),
            ("burst_activity_pattern", 0.2, "Burst of activity"),
            ("dormant_then_active", 0.2, "Dormant account reactivated"),
            ("night_weekend_combo", 0.15, "Weekend night transaction"),
            ("early_morning_activity", 0.15, "Activity in the early hours"),
        )
        for name, bonus, reason in bonuses:
            if features[name]:
                score += bonus
                patterns.append(name)
                reasons.append(reason)

        return Assessment(
            score=min(score, 1.0),
            confidence=0.8,
            reasons=reasons,
            patterns=patterns,
            sub_scores={
                "temporal_risk": features["temporal_combined_score"],
                "nocturnal_risk": features["nocturnal_behavior"],
                "weekend_risk": features["weekend_behavior"],
                "velocity_risk": features["transaction_velocity"],
                "temporal_consistency": features["temporal_consistency"],
                "temporal_anomaly_index": features["temporal_anomaly_index"],
            },
        )
