"""
Pattern analyzer: does this transaction fit the client's established
behaviour (amount, places, timing, activity level)?
"""
import math

from fraud_ensemble.components.base import Assessment, VariableAnalyzer
from fraud_ensemble.components.scoring import flag, ratio


class PatternAnalyzer(VariableAnalyzer):
    COMPONENT_ID = "pattern_analyzer"
    DESCRIPTION = "Scores how far the transaction departs from established client patterns"

    def prepare_features(self, ctx):
        v = ctx.input
        amount_ratio = v.amount_ratio_to_avg
        activity_ratio = ratio(v.transactions_last_24h, v.avg_transactions_per_day, default=1.0)
        established = v.historical_transaction_count >= 10
        if v.historical_avg_amount > 0:
            fits_amount = math.exp(-abs(v.amount - v.historical_avg_amount) / v.historical_avg_amount)
        else:
            fits_amount = 0.5
        new_behavior = amount_ratio > 5 or activity_ratio > 4 or (
            not v.is_domestic and v.historical_location_count < 2
        )
        breaks = sum([amount_ratio > 5, activity_ratio > 4, v.is_night_transaction, not v.is_domestic])
        return {
            "amount_deviation": min(abs(amount_ratio - 1) / 10, 1.0),
            "location_pattern_score": min(v.historical_location_count / 10, 1.0),
            "merchant_pattern_score": min(v.historical_merchant_types / 10, 1.0),
            "time_consistency": 0.0 if v.is_night_transaction else 1.0,
            "behavioral_consistency": fits_amount * (1.0 if activity_ratio <= 4 else 0.5),
            "is_new_behavior": flag(new_behavior),
            "pattern_break_severity": breaks / 4,
            "fits_amount_pattern": fits_amount,
            "has_established_pattern": flag(established),
            "client_maturity": min(v.client_age_days / 730, 1.0),
            "client_experience": min(v.historical_transaction_count / 100, 1.0),
        }

    def heuristic_assessment(self, ctx, features):
        v = ctx.input
        amount_ratio = v.amount_ratio_to_avg
        activity_ratio = ratio(v.transactions_last_24h, v.avg_transactions_per_day, default=1.0)
        score = 0.0
        reasons = []

        if amount_ratio > 10:
            score += 0.7
            reasons.append(f"Amount {amount_ratio:.1f}x the usual pattern")
        elif amount_ratio > 5:
            score += 0.4
            reasons.append(f"Amount {amount_ratio:.1f}x the usual pattern")
        elif v.historical_avg_amount > 0 and amount_ratio < 0.1:
            score += 0.5
            reasons.append("Amount far below the usual pattern")

        if v.historical_transaction_count > 20 and v.historical_location_count < 2:
            if not v.is_domestic:
                score += 0.5
                reasons.append("Established local client transacting abroad")
            if v.is_night_transaction:
                score += 0.3
                reasons.append("Established client active at an unusual hour")

        if activity_ratio > 8:
            score += 0.6
            reasons.append(f"Activity {activity_ratio:.1f}x the usual pattern")
        elif activity_ratio > 4:
            score += 0.3
            reasons.append(f"Activity {activity_ratio:.1f}x the usual pattern")

        if v.client_age_days < 30:
            if v.amount > 5000:
                score += 0.4
                reasons.append("New client breaking pattern with a large amount")
            if v.transactions_last_24h > 10:
                score += 0.3
                reasons.append("New client with intense activity")

        if v.historical_transaction_count == 0 and v.amount > 10000:
            score += 0.3
            reasons.append("Large amount with no transaction history")

        return Assessment(score=min(score, 1.0), confidence=0.7, reasons=reasons)

    def learned_confidence(self, ctx, features, base):
        confidence = 0.6
        if features["has_established_pattern"]:
            confidence += 0.2
        if features["client_maturity"] > 0.3:
            confidence += 0.1
        if features["client_experience"] > 0.2:
            confidence += 0.1
        return min(confidence, 1.0)

    def band_reasons(self, ctx, features, score):
        reasons = []
        if score > 0.7:
            if features["pattern_break_severity"] > 0.5:
                reasons.append("Severe break from established patterns")
            if features["amount_deviation"] > 0.5:
                reasons.append("Amount far from the usual pattern")
        elif score > 0.5:
            if features["is_new_behavior"]:
                reasons.append("New behaviour for this client")
        elif score > 0.3:
            if features["fits_amount_pattern"] < 0.3:
                reasons.append("Amount does not fit the usual pattern")
        return reasons
