"""
Distance analyzer: how far from the previous transaction, and how fast the
client would have had to travel to get here.
"""
import math

from fraud_ensemble.components.base import Assessment, VariableAnalyzer
from fraud_ensemble.components.scoring import flag, haversine_km


DEFAULT_DISTANCE_THRESHOLDS = {
    "local": 10,
    "city": 50,
    "regional": 200,
    "national": 1000,
    "continental": 5000,
}

# Maximum plausible speed per transport mode, km/h
DEFAULT_TRANSPORT_SPEEDS = {
    "walking": 6,
    "bicycle": 25,
    "car": 120,
    "train": 300,
    "plane": 900,
}


class DistanceAnalyzer(VariableAnalyzer):
    COMPONENT_ID = "distance_analyzer"
    DESCRIPTION = "Scores travel distance and the speed needed to cover it"

    def default_side_tables(self):
        return {
            "distance_thresholds": dict(DEFAULT_DISTANCE_THRESHOLDS),
            "transport_speeds": dict(DEFAULT_TRANSPORT_SPEEDS),
        }

    @staticmethod
    def distance_km(v) -> float:
        """Great-circle distance when both coordinate pairs exist, else the reported distance."""
        if v.has_coordinates:
            return haversine_km(v.prev_latitude, v.prev_longitude, v.latitude, v.longitude)
        return v.distance_from_prev

    @staticmethod
    def required_speed(distance: float, minutes) -> float:
        """km/h needed to cover `distance` in `minutes` (0 when unknown)."""
        if distance <= 0 or minutes is None or minutes <= 0:
            return 0.0
        return distance / (minutes / 60)

    def speed_suspicion(self, speed: float) -> float:
        speeds = self.transport_speeds
        if speed <= 0:
            return 0.0
        if speed <= speeds["walking"]:
            return 0.0
        if speed <= speeds["bicycle"]:
            return 0.1
        if speed <= speeds["car"]:
            return 0.2
        if speed <= speeds["train"]:
            return 0.3
        if speed <= speeds["plane"]:
            return 0.4
        return 1.0

    def prepare_features(self, ctx):
        v = ctx.input
        t = self.distance_thresholds
        distance = self.distance_km(v)
        speed = self.required_speed(distance, v.time_since_prev_transaction)
        unusual = (
            (v.historical_location_count <= 2 and distance > t["regional"])
            or (v.historical_location_count <= 5 and distance > t["national"])
        )
        return {
            "distance_normalized": min(math.log10(distance + 1) / 5, 1.0),
            "is_local": flag(distance <= t["local"]),
            "is_city": flag(t["local"] < distance <= t["city"]),
            "is_regional": flag(t["city"] < distance <= t["regional"]),
            "is_national": flag(t["regional"] < distance <= t["national"]),
            "is_continental": flag(t["national"] < distance <= t["continental"]),
            "is_intercontinental": flag(distance > t["continental"]),
            "speed_required": min(speed / 1000, 1.0),
            "speed_suspicion": self.speed_suspicion(speed),
            "is_impossible_speed": flag(speed > self.transport_speeds["plane"]),
            "time_known": flag(v.time_since_prev_transaction is not None),
            "is_unusual_for_client": flag(unusual),
            "client_mobility": min(v.historical_location_count / 20, 1.0),
            "client_experience": min(v.historical_transaction_count / 100, 1.0),
            "is_international": flag(not v.is_domestic),
        }

    def heuristic_assessment(self, ctx, features):
        v = ctx.input
        distance = self.distance_km(v)
        if distance == 0:
            return Assessment(score=0.0, confidence=0.5, reasons=[])

        minutes = v.time_since_prev_transaction
        speed = self.required_speed(distance, minutes)
        score = 0.0
        reasons = []

        if speed > self.transport_speeds["plane"]:
            score += 0.9
            reasons.append(f"Impossible travel speed: {speed:.0f} km/h")
        elif speed > self.transport_speeds["car"]:
            score += 0.6
            reasons.append(f"Travel speed above road transport: {speed:.0f} km/h")

        timed = minutes is not None
        if timed and distance > 500 and minutes < 120:
            score += 0.7
            reasons.append(f"{distance:.0f} km in {minutes:.0f} minutes")

        if v.historical_location_count <= 2 and distance > self.distance_thresholds["regional"]:
            score += 0.5
            reasons.append(f"Local client {distance:.0f} km from the previous transaction")

        if timed and distance > 100 and minutes < 30:
            score += 0.6
            reasons.append("Rapid long-distance movement")

        if not v.is_domestic and v.unique_countries <= 1 and distance > 1000:
            score += 0.4
            reasons.append("First international transaction far from home")

        if timed and v.amount > 5000 and distance > 500 and minutes < 180:
            score += 0.3
            reasons.append("High amount after rapid travel")

        if v.client_age_days < 30 and distance > 300:
            score += 0.3
            reasons.append("New client transacting far from the previous location")

        return Assessment(score=min(score, 1.0), confidence=0.8, reasons=reasons)

    def learned_confidence(self, ctx, features, base):
        confidence = 0.7
        if features["time_known"]:
            confidence += 0.2
        if features["client_experience"] > 0.1:
            confidence += 0.1
        if features["distance_normalized"] == 0:
            confidence -= 0.3
        return min(max(confidence, 0.4), 1.0)

    def band_reasons(self, ctx, features, score):
        reasons = []
        if score > 0.7:
            if features["is_impossible_speed"]:
                reasons.append("Impossible travel speed")
            if features["is_intercontinental"]:
                reasons.append("Intercontinental distance")
        elif score > 0.5:
            if features["speed_suspicion"] >= 0.3:
                reasons.append("Suspicious travel speed")
            if features["is_unusual_for_client"]:
                reasons.append("Unusual distance for this client")
        elif score > 0.3:
            if features["is_national"] or features["is_continental"]:
                reasons.append("Long distance from the previous transaction")
        return reasons
