"""
Country analyzer: risk classification of the transaction country, the
client's travel footprint and risky country/amount/time combinations.
"""
from fraud_ensemble.components.base import Assessment, VariableAnalyzer
from fraud_ensemble.components.scoring import flag, log_amount


DEFAULT_RISK_CLASSIFICATION = {
    "very_high": ["CN", "RU", "NG", "PK", "IR", "KP", "MM", "AF"],
    "high": ["VE", "CO", "PE", "EC", "BO", "PY", "UY", "SR", "GY", "BD", "LK", "NP"],
    "medium": ["BR", "AR", "CL", "MX", "PA", "CR", "NI", "HN", "SV", "BZ", "IN", "TH", "PH", "ID"],
    "low": ["US", "CA", "ES", "FR", "DE", "IT", "GB", "AU", "JP", "KR", "SG"],
}

DEFAULT_RISK_SCORES = {
    "very_high": 0.9,
    "high": 0.7,
    "medium": 0.5,
    "low": 0.2,
    "home": 0.1,
    "unknown": 0.8,
}

# Relative distance from the home region (0 = home, 1 = unknown)
DEFAULT_GEOGRAPHIC_DISTANCE = {
    "GT": 0.0,
    "BZ": 0.1, "SV": 0.1, "HN": 0.1, "NI": 0.1, "CR": 0.1, "PA": 0.2,
    "MX": 0.2, "US": 0.3, "CA": 0.4,
    "CU": 0.3, "JM": 0.3, "HT": 0.3, "DO": 0.3,
    "CO": 0.4, "VE": 0.4, "BR": 0.5, "AR": 0.6, "CL": 0.6, "PE": 0.5,
    "EC": 0.4, "BO": 0.5, "PY": 0.6, "UY": 0.6,
    "ES": 0.8, "FR": 0.8, "DE": 0.8, "IT": 0.8, "GB": 0.8,
    "CN": 0.9, "JP": 0.9, "KR": 0.9, "IN": 0.9, "RU": 0.9,
    "AU": 0.9, "NZ": 0.9,
}


class CountryAnalyzer(VariableAnalyzer):
    COMPONENT_ID = "country_analyzer"
    DESCRIPTION = "Classifies country risk and the client's international footprint"

    def __init__(self, home_country: str = "GT", **kwargs):
        self.default_home_country = home_country.upper()
        super().__init__(**kwargs)

    def default_side_tables(self):
        return {
            "home_country": self.default_home_country,
            "risk_classification": {k: list(v) for k, v in DEFAULT_RISK_CLASSIFICATION.items()},
            "risk_scores": dict(DEFAULT_RISK_SCORES),
            "geographic_distance": dict(DEFAULT_GEOGRAPHIC_DISTANCE),
        }

    def classify(self, country):
        if not country:
            return "unknown"
        code = country.upper()
        if code == self.home_country:
            return "home"
        for classification, countries in self.risk_classification.items():
            if code in countries:
                return classification
        return "unknown"

    @staticmethod
    def _travel_pattern_score(unique_countries):
        if unique_countries <= 1:
            return 0.1
        if unique_countries <= 3:
            return 0.3
        if unique_countries <= 7:
            return 0.5
        if unique_countries <= 15:
            return 0.7
        return 0.9

    @staticmethod
    def _is_new_country(v):
        if v.unique_countries <= 1:
            return 1.0
        if v.unique_countries <= 2 and not v.is_domestic:
            return 1.0
        return 0.0

    def prepare_features(self, ctx):
        v = ctx.input
        classification = self.classify(v.country)
        return {
            "is_very_high_risk": flag(classification == "very_high"),
            "is_high_risk": flag(classification == "high"),
            "is_medium_risk": flag(classification == "medium"),
            "is_low_risk": flag(classification == "low"),
            "is_home_country": flag(classification == "home"),
            "is_unknown_country": flag(classification == "unknown"),
            "country_risk_score": self.risk_scores.get(classification, 0.8),
            "is_domestic": flag(v.is_domestic),
            "country_diversity": min(v.unique_countries / 20, 1.0),
            "is_new_country": self._is_new_country(v),
            "amount_normalized": log_amount(v.amount),
            "is_high_amount": flag(v.amount > 5000),
            "is_night_transaction": flag(v.is_night_transaction),
            "recent_activity": min(v.transactions_last_24h / 20, 1.0),
            "client_age_factor": min(v.client_age_days / 365, 1.0),
            "geographical_distance": self.geographic_distance.get((v.country or "").upper(), 0.9)
            if v.country else 1.0,
            "travel_pattern_score": self._travel_pattern_score(v.unique_countries),
        }

    def heuristic_assessment(self, ctx, features):
        v = ctx.input
        country = v.country or "unknown"
        classification = self.classify(v.country)
        risky = classification in ("very_high", "high")
        score = 0.0
        reasons = []

        if classification == "very_high":
            score += 0.8
            reasons.append(f"Very high risk country: {country}")
        elif classification == "high":
            score += 0.6
            reasons.append(f"High risk country: {country}")
        elif classification == "unknown":
            score += 0.7
            reasons.append(f"Unknown country: {country}")

        if not v.is_domestic and v.unique_countries <= 1:
            score += 0.4
            reasons.append("Client's first international transaction")

        if risky and v.amount > 2000:
            score += 0.5
            reasons.append(f"High amount from a risky country: ${v.amount:,.2f}")

        if v.unique_countries > 10:
            score += 0.4
            reasons.append(f"Client active in many countries: {v.unique_countries}")

        if not v.is_domestic and v.is_night_transaction:
            score += 0.3
            reasons.append("International transaction at night")

        if v.client_age_days < 30 and classification not in ("home", "low"):
            score += 0.4
            reasons.append("New client transacting from a risky country")

        return Assessment(score=min(score, 1.0), confidence=0.8, reasons=reasons)

    def learned_confidence(self, ctx, features, base):
        confidence = 0.9
        if features["is_unknown_country"]:
            confidence -= 0.2
        if features["client_age_factor"] > 0.1:
            confidence += 0.1
        return min(max(confidence, 0.6), 1.0)

    def band_reasons(self, ctx, features, score):
        country = ctx.input.country
        reasons = []
        if score > 0.7:
            if features["is_very_high_risk"]:
                reasons.append(f"Very high risk country: {country}")
            if features["is_unknown_country"]:
                reasons.append(f"Unknown country: {country}")
            if features["geographical_distance"] > 0.8:
                reasons.append("Geographically distant country")
        elif score > 0.5:
            if features["is_high_risk"]:
                reasons.append(f"High risk country: {country}")
            if features["is_new_country"] and features["is_high_amount"]:
                reasons.append("First use of this country with a high amount")
            if features["travel_pattern_score"] > 0.7:
                reasons.append("Very diverse travel pattern")
        elif score > 0.3:
            if features["is_medium_risk"]:
                reasons.append(f"Medium risk country: {country}")
            if not features["is_domestic"] and features["is_night_transaction"]:
                reasons.append("International transaction at night")
        return reasons
