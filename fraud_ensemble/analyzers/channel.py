"""
Channel analyzer: risk of the channel the transaction came through, and of
risky combinations (large online or phone orders, online at night or from
abroad, online without device metadata).
"""
from fraud_ensemble.components.base import Assessment, VariableAnalyzer
from fraud_ensemble.components.scoring import flag


DEFAULT_CHANNEL_RISK_LEVELS = {
    "physical": 0.2,
    "atm": 0.3,
    "online": 0.5,
    "mobile": 0.4,
    "phone": 0.6,
    "unknown": 0.8,
}


class ChannelAnalyzer(VariableAnalyzer):
    COMPONENT_ID = "channel_analyzer"
    DESCRIPTION = "Scores channel risk and risky channel/amount/time combinations"

    def default_side_tables(self):
        return {"channel_risk_levels": dict(DEFAULT_CHANNEL_RISK_LEVELS)}

    def prepare_features(self, ctx):
        v = ctx.input
        channel = v.channel
        online = channel == "online"
        return {
            "is_physical": flag(channel == "physical"),
            "is_online": flag(online),
            "is_atm": flag(channel == "atm"),
            "is_mobile": flag(channel == "mobile"),
            "is_phone": flag(channel == "phone"),
            "is_unknown": flag(channel == "unknown"),
            "channel_risk_level": self.channel_risk_levels.get(channel, 0.8),
            "is_night_online": flag(online and v.is_night_transaction),
            "is_weekend_atm": flag(channel == "atm" and v.is_weekend),
            "client_experience": min(v.client_age_days / 365, 1.0),
            "high_amount_online": flag(online and v.amount > 5000),
            "high_amount_phone": flag(channel == "phone" and v.amount > 1000),
            "recent_activity_factor": min(v.transactions_last_24h / 20, 1.0),
            "foreign_online": flag(online and not v.is_domestic),
            "has_device_info": flag(bool(v.device_info)),
            "has_ip_info": flag(bool(v.ip_address)),
        }

    def heuristic_assessment(self, ctx, features):
        v = ctx.input
        channel = v.channel
        score = 0.0
        reasons = []

        if channel == "unknown":
            score += 0.7
            reasons.append("Unknown transaction channel")
        elif channel == "phone":
            score += 0.4
            reasons.append("Phone transaction (risky channel)")

        if channel == "online" and v.amount > 10000:
            score += 0.5
            reasons.append("Very high amount for an online transaction")
        elif channel == "phone" and v.amount > 2000:
            score += 0.6
            reasons.append("High amount for a phone transaction")

        if channel == "online" and v.is_night_transaction:
            score += 0.3
            reasons.append("Online transaction at night")

        if channel == "online" and not v.is_domestic:
            score += 0.4
            reasons.append("Online transaction from a foreign country")

        if v.client_age_days < 30 and channel in ("online", "phone"):
            score += 0.3
            reasons.append("New client using a risky channel")

        if channel == "online" and not v.device_info and not v.ip_address:
            score += 0.4
            reasons.append("Online transaction without device information")

        return Assessment(score=min(score, 1.0), confidence=0.7, reasons=reasons)

    def learned_confidence(self, ctx, features, base):
        confidence = 0.8
        if features["has_device_info"] or features["has_ip_info"]:
            confidence += 0.1
        if features["client_experience"] > 0.2:
            confidence += 0.1
        return min(confidence, 1.0)

    def band_reasons(self, ctx, features, score):
        reasons = []
        if score > 0.7:
            if features["is_unknown"]:
                reasons.append("Unknown channel")
            if features["high_amount_phone"]:
                reasons.append("High amount by phone")
            if features["foreign_online"]:
                reasons.append("International online transaction")
        elif score > 0.5:
            if features["high_amount_online"]:
                reasons.append("High amount online")
            if features["is_night_online"]:
                reasons.append("Online transaction at night")
            if not features["has_device_info"] and features["is_online"]:
                reasons.append("Online without device information")
        elif score > 0.3:
            if features["channel_risk_level"] > 0.5:
                reasons.append(f"Risky channel: {ctx.input.channel}")
            if features["is_weekend_atm"]:
                reasons.append("ATM use on a weekend")
        return reasons
