"""
Location analyzer: where the transaction happened relative to the client's
footprint (high-risk countries, first trip abroad, implausible movement).
"""
from fraud_ensemble.analyzers.distance import DistanceAnalyzer
from fraud_ensemble.components.base import Assessment, VariableAnalyzer
from fraud_ensemble.components.scoring import flag


DEFAULT_HIGH_RISK_COUNTRIES = ["CN", "RU", "NG", "PK", "IR"]


class LocationAnalyzer(VariableAnalyzer):
    COMPONENT_ID = "location_analyzer"
    DESCRIPTION = "Scores the transaction location against the client's footprint"

    def default_side_tables(self):
        return {"high_risk_countries": list(DEFAULT_HIGH_RISK_COUNTRIES)}

    def prepare_features(self, ctx):
        v = ctx.input
        distance = DistanceAnalyzer.distance_km(v)
        speed = DistanceAnalyzer.required_speed(distance, v.time_since_prev_transaction)
        return {
            "latitude_normalized": (v.latitude + 90) / 180 if v.latitude is not None else 0.5,
            "longitude_normalized": (v.longitude + 180) / 360 if v.longitude is not None else 0.5,
            "is_domestic": flag(v.is_domestic),
            "is_high_risk_country": flag(v.country in self.high_risk_countries),
            "distance_from_prev": min(distance / 10000, 1.0),
            "location_diversity": min(v.historical_location_count / 50, 1.0),
            "is_new_location": flag(v.historical_location_count < 3 and not v.is_domestic),
            "unusual_distance_for_time": min(speed / 1800, 1.0) if speed > 900 else 0.0,
            "has_coordinates": flag(v.has_coordinates),
        }

    def heuristic_assessment(self, ctx, features):
        v = ctx.input
        distance = DistanceAnalyzer.distance_km(v)
        speed = DistanceAnalyzer.required_speed(distance, v.time_since_prev_transaction)
        score = 0.0
        reasons = []

        if v.country in self.high_risk_countries:
            score += 0.6
            reasons.append(f"Transaction from high risk country: {v.country}")

        if not v.is_domestic and v.historical_location_count < 3:
            score += 0.4
            reasons.append("First international transaction")

        if not v.is_domestic and v.country is None:
            score += 0.3
            reasons.append("Foreign transaction with no reported country")

        if speed > 900:
            score += 0.8
            reasons.append(f"Implausible movement: {distance:.0f} km at {speed:.0f} km/h")
        elif speed > 500:
            score += 0.5
            reasons.append(f"Very fast movement: {speed:.0f} km/h")

        if v.historical_location_count > 20:
            score += 0.3
            reasons.append(f"Client seen in many locations: {v.historical_location_count}")

        return Assessment(score=min(score, 1.0), confidence=0.7, reasons=reasons)

    def learned_confidence(self, ctx, features, base):
        confidence = 0.8
        if features["has_coordinates"]:
            confidence += 0.1
        if features["location_diversity"] > 0.1:
            confidence += 0.1
        return min(confidence, 1.0)

    def band_reasons(self, ctx, features, score):
        reasons = []
        if score > 0.7:
            if features["is_high_risk_country"]:
                reasons.append(f"High risk country: {ctx.input.country}")
            if features["unusual_distance_for_time"] > 0:
                reasons.append("Impossible travel between transactions")
        elif score > 0.5:
            if features["is_new_location"]:
                reasons.append("New international location")
            if features["distance_from_prev"] > 0.1:
                reasons.append("Far from the previous transaction")
        elif score > 0.3:
            if not features["is_domestic"]:
                reasons.append("International transaction")
        return reasons
