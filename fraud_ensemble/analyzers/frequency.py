"""
Frequency analyzer: how often the client transacts now versus their usual
rhythm. Catches bursts, hyperactivity and dormant accounts that wake up.
"""
from fraud_ensemble.components.base import Assessment, VariableAnalyzer
from fraud_ensemble.components.scoring import flag, ratio


class FrequencyAnalyzer(VariableAnalyzer):
    COMPONENT_ID = "frequency_analyzer"
    DESCRIPTION = "Compares current transaction frequency with the client's normal rhythm"

    @staticmethod
    def metrics(v):
        """Daily ratio, burst factor and historical consistency."""
        daily_ratio = ratio(v.transactions_last_24h, v.avg_transactions_per_day)
        burst_factor = ratio(v.transactions_last_hour, v.transactions_last_24h / 24)
        if v.client_age_days > 7 and v.avg_transactions_per_day > 0:
            expected = v.client_age_days * v.avg_transactions_per_day
            consistency = min(v.historical_transaction_count / expected, 2.0)
        else:
            consistency = 1.0
        return daily_ratio, burst_factor, consistency

    @staticmethod
    def is_dormant_reactivation(v) -> bool:
        if v.client_age_days > 90 and v.avg_transactions_per_day < 0.1 and v.transactions_last_24h > 3:
            return True
        minutes = v.time_since_prev_transaction
        return minutes is not None and minutes > 4320 and v.transactions_last_24h > 5

    def prepare_features(self, ctx):
        v = ctx.input
        daily_ratio, burst_factor, consistency = self.metrics(v)
        hyperactive = daily_ratio > 8 or burst_factor > 15 or (
            v.client_age_days < 7 and v.transactions_last_24h > 10
        )
        if v.avg_transactions_per_day > 0:
            deviation = abs(v.transactions_last_24h - v.avg_transactions_per_day)
            deviation = min(deviation / max(v.avg_transactions_per_day, 1) / 5, 1.0)
        else:
            deviation = 0.5
        return {
            "tx_last_hour": min(v.transactions_last_hour / 10, 1.0),
            "tx_last_24h": min(v.transactions_last_24h / 30, 1.0),
            "daily_ratio": min(daily_ratio / 10, 1.0),
            "burst_factor": min(burst_factor / 20, 1.0),
            "consistency": consistency / 2,
            "is_dormant_reactivation": flag(self.is_dormant_reactivation(v)),
            "is_hyperactive": flag(hyperactive),
            "frequency_deviation": deviation,
            "client_maturity": min(v.client_age_days / 365, 1.0),
            "history_depth": min(v.historical_transaction_count / 100, 1.0),
        }

    def heuristic_assessment(self, ctx, features):
        v = ctx.input
        daily_ratio, _, consistency = self.metrics(v)
        minutes = v.time_since_prev_transaction
        score = 0.0
        reasons = []

        if v.transactions_last_24h > 20:
            score += 0.8
            reasons.append(f"Extreme daily frequency: {v.transactions_last_24h} transactions")
        elif v.transactions_last_24h > 15:
            score += 0.6
            reasons.append(f"High daily frequency: {v.transactions_last_24h} transactions")

        if v.transactions_last_hour > 8:
            score += 0.7
            reasons.append(f"Burst of {v.transactions_last_hour} transactions in one hour")
        elif v.transactions_last_hour > 5:
            score += 0.4
            reasons.append(f"{v.transactions_last_hour} transactions in one hour")

        if minutes is not None:
            if minutes < 1:
                score += 0.6
                reasons.append("Less than a minute since the previous transaction")
            elif minutes < 3:
                score += 0.3
                reasons.append("Transactions minutes apart")

        if daily_ratio > 10:
            score += 0.7
            reasons.append(f"Activity {daily_ratio:.1f}x the daily average")
        elif daily_ratio > 5:
            score += 0.4
            reasons.append(f"Activity {daily_ratio:.1f}x the daily average")

        if self.is_dormant_reactivation(v):
            score += 0.6
            reasons.append("Dormant account suddenly active")

        if v.client_age_days < 7 and v.transactions_last_24h > 8:
            score += 0.5
            reasons.append("New client with high frequency")

        if consistency < 0.5 and v.transactions_last_24h > 10:
            score += 0.3
            reasons.append("Inconsistent history with a burst of activity")

        return Assessment(score=min(score, 1.0), confidence=0.8, reasons=reasons)

    def learned_confidence(self, ctx, features, base):
        v = ctx.input
        confidence = 0.7
        if v.historical_transaction_count > 10:
            confidence += 0.2
        if features["client_maturity"] > 0.3:
            confidence += 0.1
        if features["client_maturity"] < 0.1:
            confidence -= 0.2
        return min(max(confidence, 0.5), 1.0)

    def band_reasons(self, ctx, features, score):
        reasons = []
        if score > 0.7:
            if features["is_hyperactive"]:
                reasons.append("Hyperactive account")
            if features["is_dormant_reactivation"]:
                reasons.append("Dormant account reactivated")
        elif score > 0.5:
            if features["daily_ratio"] > 0.5:
                reasons.append("Frequency well above the daily average")
            if features["burst_factor"] > 0.5:
                reasons.append("Transaction burst")
        elif score > 0.3:
            if features["frequency_deviation"] > 0.3:
                reasons.append("Frequency differs from the client's norm")
        return reasons
