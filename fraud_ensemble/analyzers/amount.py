"""
Amount analyzer: is the transaction amount itself suspicious?

Looks at absolute size (micro amounts used for card testing, very large
amounts), deviation from the client's historical average and large amounts
on very young accounts.
"""
from fraud_ensemble.components.base import Assessment, VariableAnalyzer
from fraud_ensemble.components.scoring import flag, log_amount


DEFAULT_AMOUNT_THRESHOLDS = {
    "micro": 1.0,
    "very_small": 5.0,
    "small": 50.0,
    "large": 5000.0,
    "high": 10000.0,
    "extreme": 20000.0,
    "ratio_elevated": 5.0,
    "ratio_extreme": 10.0,
    "new_client_days": 30,
    "new_client_amount": 1000.0,
}


class AmountAnalyzer(VariableAnalyzer):
    COMPONENT_ID = "amount_analyzer"
    DESCRIPTION = "Flags amounts that are unusually small, large or out of line with client history"

    def default_side_tables(self):
        return {"amount_thresholds": dict(DEFAULT_AMOUNT_THRESHOLDS)}

    def prepare_features(self, ctx):
        v = ctx.input
        t = self.amount_thresholds
        return {
            "amount_normalized": log_amount(v.amount),
            "amount_vs_avg": min(v.amount_ratio_to_avg / 10, 1.0),
            "amount_vs_max": min(v.amount_ratio_to_max, 1.0),
            "is_very_small": flag(v.amount < t["micro"]),
            "is_small": flag(v.amount < t["small"]),
            "is_large": flag(v.amount > t["large"]),
            "is_very_large": flag(v.amount > t["extreme"]),
            "client_age_factor": min(v.client_age_days / 365, 1.0),
        }

    def heuristic_assessment(self, ctx, features):
        v = ctx.input
        t = self.amount_thresholds
        score = 0.0
        reasons = []

        if v.amount < t["micro"]:
            score += 0.7
            reasons.append(f"Extremely small amount (< ${t['micro']:.0f})")
        elif v.amount < t["very_small"]:
            score += 0.4
            reasons.append(f"Very small amount (< ${t['very_small']:.0f})")

        if v.amount > t["extreme"]:
            score += 0.8
            reasons.append(f"Extremely high amount (> ${t['extreme']:,.0f})")
        elif v.amount > t["high"]:
            score += 0.5
            reasons.append(f"High amount (> ${t['high']:,.0f})")

        ratio = v.amount_ratio_to_avg
        if ratio > t["ratio_extreme"]:
            score += 0.6
            reasons.append(f"Amount {ratio:.1f}x the historical average")
        elif ratio > t["ratio_elevated"]:
            score += 0.3
            reasons.append(f"Amount {ratio:.1f}x the historical average")

        if v.client_age_days < t["new_client_days"] and v.amount > t["new_client_amount"]:
            score += 0.4
            reasons.append("New client with a large transaction")

        return Assessment(score=min(score, 1.0), confidence=0.7, reasons=reasons)

    def learned_confidence(self, ctx, features, base):
        confidence = 0.8
        if features["amount_vs_avg"] > 0 and features["amount_vs_max"] > 0:
            confidence += 0.1
        if features["client_age_factor"] > 0.1:
            confidence += 0.1
        return min(confidence, 1.0)

    def band_reasons(self, ctx, features, score):
        reasons = []
        if score > 0.7:
            if features["is_very_small"]:
                reasons.append("Extremely small amount")
            if features["is_very_large"]:
                reasons.append("Extremely high amount")
            if features["amount_vs_avg"] > 0.5:
                reasons.append("Amount far above historical average")
        elif score > 0.5:
            if features["is_small"]:
                reasons.append("Unusually small amount")
            if features["is_large"]:
                reasons.append("High amount")
            if features["amount_vs_avg"] > 0.3:
                reasons.append("Amount above historical average")
        return reasons
