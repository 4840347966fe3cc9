"""
Day-of-week analyzer.

Weekends and the small hours of Sunday carry more risk than a Tuesday
afternoon; the per-day table below encodes how "business-like" each day is.
Days are numbered 0 = Sunday ... 6 = Saturday.
"""
import math

from fraud_ensemble.components.base import Assessment, VariableAnalyzer
from fraud_ensemble.components.scoring import flag


# Index = day_of_week (0 = Sunday)
DEFAULT_DAY_PATTERNS = [
    {"name": "sunday", "business": 0.3, "risk": 0.4},
    {"name": "monday", "business": 0.9, "risk": 0.2},
    {"name": "tuesday", "business": 1.0, "risk": 0.1},
    {"name": "wednesday", "business": 1.0, "risk": 0.1},
    {"name": "thursday", "business": 1.0, "risk": 0.1},
    {"name": "friday", "business": 0.9, "risk": 0.2},
    {"name": "saturday", "business": 0.5, "risk": 0.3},
]


class DayAnalyzer(VariableAnalyzer):
    COMPONENT_ID = "day_analyzer"
    DESCRIPTION = "Scores weekday/weekend timing against the client's habits"

    def default_side_tables(self):
        return {"day_patterns": [dict(d) for d in DEFAULT_DAY_PATTERNS]}

    @staticmethod
    def _day_consistency(v):
        if v.historical_transaction_count < 10:
            return 0.5
        if v.is_weekend:
            return 0.3 if v.avg_transactions_per_day > 2 else 0.7
        return 0.8 if v.avg_transactions_per_day > 0.5 else 0.4

    def prepare_features(self, ctx):
        v = ctx.input
        day = v.day_of_week
        pattern = self.day_patterns[day]
        angle = 2 * math.pi * day / 7
        return {
            "day_sin": math.sin(angle),
            "day_cos": math.cos(angle),
            "is_weekend": flag(v.is_weekend),
            "is_sunday": flag(day == 0),
            "is_saturday": flag(day == 6),
            "is_monday": flag(day == 1),
            "is_friday": flag(day == 5),
            "business_day_factor": pattern["business"],
            "day_risk_factor": pattern["risk"],
            "is_weekend_night": flag(v.is_weekend and v.is_night_transaction),
            "is_business_day_late": flag(not v.is_weekend and v.hour_of_day > 22),
            "is_sunday_early": flag(day == 0 and v.hour_of_day < 8),
            "client_age_factor": min(v.client_age_days / 365, 1.0),
            "day_consistency": self._day_consistency(v),
        }

    def heuristic_assessment(self, ctx, features):
        v = ctx.input
        day = v.day_of_week
        hour = v.hour_of_day
        weekday = not v.is_weekend
        score = 0.0
        reasons = []

        if day == 0 and hour < 7:
            score += 0.5
            reasons.append("Early Sunday morning transaction")

        if v.is_weekend and v.amount > 10000:
            score += 0.4
            reasons.append("High weekend amount")

        if day == 0 and v.transactions_last_24h > 10:
            score += 0.6
            reasons.append("Heavy activity on a Sunday")

        if weekday and v.is_night_transaction:
            score += 0.3
            reasons.append("Late-night transaction on a business day")

        if v.client_age_days < 14:
            if v.is_weekend and v.amount > 2000:
                score += 0.3
                reasons.append("New client with a large weekend transaction")
            if day == 0 and v.transactions_last_24h > 5:
                score += 0.4
                reasons.append("New client active on a Sunday")

        if day == 6 and hour < 6:
            score += 0.3
            reasons.append("Early Saturday morning transaction")

        if weekday and (hour == 23 or v.is_night_transaction) and v.amount > 5000:
            score += 0.4
            reasons.append("Large late-night business day transaction")

        return Assessment(score=min(score, 1.0), confidence=0.7, reasons=reasons)

    def learned_confidence(self, ctx, features, base):
        confidence = 0.8
        if features["day_consistency"] > 0.5:
            confidence += 0.1
        if features["client_age_factor"] > 0.1:
            confidence += 0.1
        return min(confidence, 1.0)

    def band_reasons(self, ctx, features, score):
        reasons = []
        if score > 0.7:
            if features["is_sunday_early"]:
                reasons.append("Early Sunday morning")
            if features["is_weekend_night"]:
                reasons.append("Weekend night transaction")
            if features["day_risk_factor"] > 0.3:
                reasons.append("High risk day")
        elif score > 0.5:
            if features["is_weekend"]:
                reasons.append("Weekend transaction")
            if features["is_business_day_late"]:
                reasons.append("Late on a business day")
            if features["day_consistency"] < 0.4:
                reasons.append("Unusual day for this client")
        elif score > 0.3:
            if features["business_day_factor"] < 0.5:
                reasons.append("Non-business day")
        return reasons
