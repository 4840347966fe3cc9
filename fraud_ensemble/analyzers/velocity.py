"""
Velocity analyzer: transaction count and money moved over short windows.
"""
from fraud_ensemble.components.base import Assessment, VariableAnalyzer
from fraud_ensemble.components.scoring import flag, ratio


class VelocityAnalyzer(VariableAnalyzer):
    COMPONENT_ID = "velocity_analyzer"
    DESCRIPTION = "Scores transaction and amount velocity"

    def prepare_features(self, ctx):
        v = ctx.input
        minutes = v.time_since_prev_transaction
        activity_ratio = ratio(v.transactions_last_24h, v.avg_transactions_per_day, default=1.0)
        return {
            "tx_last_hour": min(v.transactions_last_hour / 10, 1.0),
            "tx_last_24h": min(v.transactions_last_24h / 50, 1.0),
            "amount_last_24h": min(v.amount_last_24h / 20000, 1.0),
            "activity_ratio": min(activity_ratio / 10, 1.0),
            "burst_intensity": min(v.transactions_last_hour / max(v.transactions_last_24h / 24, 0.1) / 10, 1.0),
            "rapid_succession": flag(minutes is not None and minutes < 5),
            "minutes_since_prev": min(minutes / 1440, 1.0) if minutes is not None else 1.0,
            "has_history": flag(v.historical_transaction_count > 0),
            "client_age_factor": min(v.client_age_days / 365, 1.0),
        }

    def heuristic_assessment(self, ctx, features):
        v = ctx.input
        minutes = v.time_since_prev_transaction
        activity_ratio = ratio(v.transactions_last_24h, v.avg_transactions_per_day, default=1.0)
        score = 0.0
        reasons = []

        if v.transactions_last_hour >= 8:
            score += 0.8
            reasons.append(f"{v.transactions_last_hour} transactions in the last hour")
        elif v.transactions_last_hour >= 5:
            score += 0.5
            reasons.append(f"{v.transactions_last_hour} transactions in the last hour")

        if v.transactions_last_24h >= 30:
            score += 0.7
            reasons.append(f"{v.transactions_last_24h} transactions in 24h")
        elif v.transactions_last_24h >= 15:
            score += 0.4
            reasons.append(f"{v.transactions_last_24h} transactions in 24h")

        if minutes is not None:
            if minutes < 2:
                score += 0.6
                reasons.append(f"Only {minutes:.1f} minutes since the previous transaction")
            elif minutes < 5:
                score += 0.3
                reasons.append(f"Only {minutes:.1f} minutes since the previous transaction")

        # the current transaction counts toward the 24h volume
        volume = v.amount_last_24h + v.amount
        if volume >= 15000:
            score += 0.6
            reasons.append(f"${volume:,.2f} moved in 24h")
        elif volume >= 8000:
            score += 0.3
            reasons.append(f"${volume:,.2f} moved in 24h")

        if v.client_age_days < 7 and v.transactions_last_24h > 5:
            score += 0.4
            reasons.append("New client with high velocity")

        if activity_ratio > 5:
            score += 0.5
            reasons.append(f"Activity {activity_ratio:.1f}x the daily average")
        elif activity_ratio > 3:
            score += 0.3
            reasons.append(f"Activity {activity_ratio:.1f}x the daily average")

        return Assessment(score=min(score, 1.0), confidence=0.8, reasons=reasons)

    def learned_confidence(self, ctx, features, base):
        confidence = 0.8
        if features["has_history"]:
            confidence += 0.1
        if features["client_age_factor"] > 0.1:
            confidence += 0.1
        return min(confidence, 1.0)

    def band_reasons(self, ctx, features, score):
        reasons = []
        if score > 0.7:
            if features["tx_last_hour"] >= 0.5:
                reasons.append("Very high hourly velocity")
            if features["rapid_succession"]:
                reasons.append("Transactions in rapid succession")
        elif score > 0.5:
            if features["amount_last_24h"] > 0.4:
                reasons.append("High amount velocity")
            if features["activity_ratio"] > 0.3:
                reasons.append("Activity above the daily average")
        elif score > 0.3:
            if features["burst_intensity"] > 0.3:
                reasons.append("Burst of activity")
        return reasons
