"""
Merchant analyzer: risk of the merchant category, and whether the amount
is plausible for that category.

Merchant types are matched loosely: the raw type is lowercased, anything
that is not alphanumeric becomes "_", and a category matches when either
string contains the other ("Online Casino" matches "casino").
"""
import re

from fraud_ensemble.components.base import Assessment, VariableAnalyzer
from fraud_ensemble.components.scoring import flag, log_amount


DEFAULT_MERCHANT_CATEGORIES = {
    "very_high": [
        "casino", "gambling", "betting", "lottery", "adult_entertainment",
        "money_transfer", "check_cashing", "pawn_shop", "precious_metals",
        "cryptocurrency", "forex", "investment_high_risk",
    ],
    "high": [
        "jewelry", "electronics_high_value", "luxury_goods", "art_antiques",
        "online_gaming", "subscription_services", "prepaid_cards", "gift_cards",
        "money_order", "wire_transfer",
    ],
    "medium": [
        "electronics", "computer_software", "online_retail", "fashion",
        "automotive_parts", "home_improvement", "sporting_goods",
        "beauty_cosmetics", "books_media", "travel_services",
    ],
    "low": [
        "grocery", "supermarket", "pharmacy", "gas_station", "restaurant",
        "fast_food", "coffee_shop", "retail_general", "clothing",
        "department_store", "convenience_store", "hardware_store",
    ],
    "very_low": [
        "medical", "hospital", "clinic", "emergency_services", "utilities",
        "government", "education", "insurance", "bank", "atm",
    ],
}

DEFAULT_CATEGORY_SCORES = {
    "very_high": 0.9,
    "high": 0.7,
    "medium": 0.5,
    "low": 0.2,
    "very_low": 0.1,
    "unknown": 0.6,
}

DEFAULT_AMOUNT_LIMITS = {
    "very_high": {"suspicious": 1000, "extreme": 5000},
    "high": {"suspicious": 2000, "extreme": 10000},
    "medium": {"suspicious": 5000, "extreme": 20000},
    "low": {"suspicious": 10000, "extreme": 50000},
    "very_low": {"suspicious": 20000, "extreme": 100000},
}

# Exact matches win; otherwise the riskiest matching category
_CATEGORY_ORDER = ("very_high", "high", "medium", "low", "very_low")


def normalize_merchant_type(merchant_type) -> str:
    if not merchant_type:
        return ""
    return re.sub(r"[^a-z0-9]+", "_", str(merchant_type).lower()).strip("_")


class MerchantAnalyzer(VariableAnalyzer):
    COMPONENT_ID = "merchant_analyzer"
    DESCRIPTION = "Scores merchant category risk and category-relative amount"

    def default_side_tables(self):
        return {
            "merchant_categories": {k: list(v) for k, v in DEFAULT_MERCHANT_CATEGORIES.items()},
            "category_scores": dict(DEFAULT_CATEGORY_SCORES),
            "amount_limits": {k: dict(v) for k, v in DEFAULT_AMOUNT_LIMITS.items()},
        }

    def classify(self, merchant_type) -> str:
        normalized = normalize_merchant_type(merchant_type)
        if not normalized:
            return "unknown"
        for category in _CATEGORY_ORDER:
            if normalized in self.merchant_categories.get(category, []):
                return category
        for category in _CATEGORY_ORDER:
            for known in self.merchant_categories.get(category, []):
                if known in normalized or normalized in known:
                    return category
        return "unknown"

    def limits_for(self, category):
        return self.amount_limits.get(category, self.amount_limits["medium"])

    def prepare_features(self, ctx):
        v = ctx.input
        category = self.classify(v.merchant_type)
        limits = self.limits_for(category)
        return {
            "is_very_high_risk": flag(category == "very_high"),
            "is_high_risk": flag(category == "high"),
            "is_medium_risk": flag(category == "medium"),
            "is_low_risk": flag(category in ("low", "very_low")),
            "is_unknown_merchant": flag(category == "unknown"),
            "category_risk": self.category_scores.get(category, 0.6),
            "external_risk_score": v.merchant_risk_score,
            "amount_normalized": log_amount(v.amount),
            "amount_vs_suspicious": min(v.amount / limits["suspicious"], 2.0) / 2,
            "amount_over_extreme": flag(v.amount > limits["extreme"]),
            "merchant_familiarity": min(v.merchant_frequency / 20, 1.0),
            "merchant_diversity": min(v.historical_merchant_types / 20, 1.0),
            "is_night_transaction": flag(v.is_night_transaction),
            "client_age_factor": min(v.client_age_days / 365, 1.0),
        }

    def heuristic_assessment(self, ctx, features):
        v = ctx.input
        category = self.classify(v.merchant_type)
        limits = self.limits_for(category)
        risky = category in ("very_high", "high")
        label = v.merchant_type or "unknown"
        score = 0.0
        reasons = []

        if category == "very_high":
            score += 0.7
            reasons.append(f"Very high risk merchant: {label}")
        elif category == "high":
            score += 0.5
            reasons.append(f"High risk merchant: {label}")
        elif category == "unknown":
            score += 0.4
            reasons.append(f"Unknown merchant type: {label}")

        if v.amount > limits["extreme"]:
            score += 0.6
            reasons.append(f"Extreme amount for {label}: ${v.amount:,.2f}")
        elif v.amount > limits["suspicious"]:
            score += 0.3
            reasons.append(f"Suspicious amount for {label}: ${v.amount:,.2f}")

        if risky and v.is_night_transaction:
            score += 0.4
            reasons.append("Risky merchant at night")

        if risky and v.client_age_days < 30:
            score += 0.5
            reasons.append("New client at a risky merchant")

        if risky and not v.is_domestic:
            score += 0.4
            reasons.append("Risky merchant from abroad")

        if category == "very_high" and v.historical_merchant_types < 3:
            score += 0.4
            reasons.append("First visits to a very high risk merchant category")

        if category == "very_high" and v.transactions_last_24h > 10:
            score += 0.3
            reasons.append("Repeated activity at a very high risk merchant")

        if v.merchant_risk_score > 0:
            score += 0.3 * v.merchant_risk_score

        return Assessment(score=min(score, 1.0), confidence=0.8, reasons=reasons)

    def learned_confidence(self, ctx, features, base):
        confidence = 0.8
        if not features["is_unknown_merchant"]:
            confidence += 0.1
        if features["client_age_factor"] > 0.2:
            confidence += 0.1
        if features["client_age_factor"] < 0.05:
            confidence -= 0.2
        return min(max(confidence, 0.6), 1.0)

    def band_reasons(self, ctx, features, score):
        label = ctx.input.merchant_type or "unknown"
        reasons = []
        if score > 0.7:
            if features["is_very_high_risk"]:
                reasons.append(f"Very high risk merchant: {label}")
            if features["amount_over_extreme"]:
                reasons.append("Extreme amount for this merchant type")
        elif score > 0.5:
            if features["is_high_risk"]:
                reasons.append(f"High risk merchant: {label}")
            if features["amount_vs_suspicious"] > 0.5:
                reasons.append("Unusual amount for this merchant type")
        elif score > 0.3:
            if features["is_unknown_merchant"]:
                reasons.append("Unknown merchant type")
        return reasons
