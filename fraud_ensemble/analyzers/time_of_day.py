"""
Time-of-day analyzer: risk by hour, with extra weight for weekend nights
and brand-new clients transacting at night.
"""
import math

from fraud_ensemble.components.base import Assessment, VariableAnalyzer
from fraud_ensemble.components.scoring import flag


class TimeAnalyzer(VariableAnalyzer):
    COMPONENT_ID = "time_analyzer"
    DESCRIPTION = "Scores the hour of the transaction"

    def prepare_features(self, ctx):
        v = ctx.input
        hour = v.hour_of_day
        angle = 2 * math.pi * hour / 24
        return {
            "hour_sin": math.sin(angle),
            "hour_cos": math.cos(angle),
            "is_business_hours": flag(9 <= hour <= 17),
            "is_evening": flag(18 <= hour <= 22),
            "is_night": flag(v.is_night_transaction or hour >= 23 or hour <= 5),
            "is_early_morning": flag(6 <= hour <= 8),
            "is_weekend": flag(v.is_weekend),
            "is_holiday": flag(v.is_holiday),
            "client_age_factor": min(v.client_age_days / 365, 1.0),
        }

    def heuristic_assessment(self, ctx, features):
        v = ctx.input
        hour = v.hour_of_day
        score = 0.0
        reasons = []

        if 2 <= hour <= 5:
            score += 0.6
            reasons.append(f"Transaction in the early hours ({hour}:00)")
        elif hour >= 23 or hour <= 1:
            score += 0.3
            reasons.append(f"Late night transaction ({hour}:00)")
        elif hour == 6:
            score += 0.2
            reasons.append("Transaction at dawn")
        elif v.is_night_transaction:
            # Local night reported by the caller; hour_of_day may be in another zone
            score += 0.3
            reasons.append("Night-time transaction")

        if v.is_weekend and (hour < 8 or hour > 22):
            score += 0.2
            reasons.append("Weekend transaction outside normal hours")

        if v.client_age_days < 7 and features["is_night"]:
            score += 0.4
            reasons.append("New client transacting at night")

        return Assessment(score=min(score, 1.0), confidence=0.8, reasons=reasons)

    def learned_confidence(self, ctx, features, base):
        confidence = 0.9
        if features["client_age_factor"] < 0.1:
            confidence -= 0.2
        return max(confidence, 0.6)

    def band_reasons(self, ctx, features, score):
        reasons = []
        if score > 0.7:
            if features["is_night"]:
                reasons.append("Night transaction")
        elif score > 0.5:
            if features["is_night"] or features["is_early_morning"]:
                reasons.append("Unusual hour")
            if features["is_weekend"]:
                reasons.append("Weekend timing")
        elif score > 0.3:
            if not features["is_business_hours"]:
                reasons.append("Outside business hours")
        return reasons
