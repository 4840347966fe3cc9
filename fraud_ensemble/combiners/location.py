"""
Location combiner: geography across Tier-1 location, distance, country and
velocity, plus mobility patterns taken directly from the snapshot
(impossible travel, location hopping, international jumping).
"""
from fraud_ensemble.analyzers.distance import DistanceAnalyzer
from fraud_ensemble.components.base import Assessment, Combiner
from fraud_ensemble.components.scoring import flag, pair_correlation


DEFAULT_MOBILITY_LIMITS = {
    "impossible_speed_kmh": 900,
    "distant_risk_countries": ["CN", "RU", "NG", "PK", "IR"],
}


class LocationCombiner(Combiner):
    COMPONENT_ID = "location_combiner"
    DESCRIPTION = "Combines geographic signals and mobility patterns"

    def default_side_tables(self):
        limits = dict(DEFAULT_MOBILITY_LIMITS)
        limits["distant_risk_countries"] = list(limits["distant_risk_countries"])
        return {"mobility_limits": limits}

    # ------------------------------------------------------------------
    # Mobility patterns
    # ------------------------------------------------------------------

    @staticmethod
    def travel_frequency(v) -> float:
        if v.historical_transaction_count < 10:
            return 0.5
        return min(v.historical_location_count / v.historical_transaction_count * 2, 1.0)

    @staticmethod
    def geographic_consistency(v) -> float:
        if v.historical_location_count <= 3:
            return 0.9
        if v.historical_location_count <= 8:
            return 0.7
        if v.historical_location_count > 20:
            return 0.2
        return 0.5

    def risk_location_pattern(self, v) -> float:
        risk = 0.0
        if v.country in self.mobility_limits["distant_risk_countries"]:
            risk += 0.6
        if v.unique_countries > 10:
            risk += 0.3
        if not v.is_domestic and v.is_night_transaction:
            risk += 0.2
        return min(risk, 1.0)

    @staticmethod
    def is_location_hopping(v, distance, minutes) -> bool:
        if v.historical_location_count > 15 and v.client_age_days < 90:
            return True
        return distance > 500 and minutes is not None and minutes < 360

    @staticmethod
    def is_international_jumping(v, distance) -> bool:
        if v.unique_countries <= 1 and not v.is_domestic and distance > 1000:
            return True
        return v.unique_countries > 5 and v.client_age_days < 60

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def prepare_features(self, ctx):
        v = ctx.input
        location, distance_score, country = ctx.t1("location"), ctx.t1("distance"), ctx.t1("country")
        time_score, velocity = ctx.t1("time"), ctx.t1("velocity")

        distance = DistanceAnalyzer.distance_km(v)
        minutes = v.time_since_prev_transaction
        speed = DistanceAnalyzer.required_speed(distance, minutes)
        hopping = self.is_location_hopping(v, distance, minutes)
        jumping = self.is_international_jumping(v, distance)

        suspicion = country * 0.3 + distance_score * 0.25 + location * 0.2
        if hopping:
            suspicion += 0.15
        if jumping:
            suspicion += 0.1

        return {
            "location_score": location,
            "distance_score": distance_score,
            "country_score": country,
            "time_score": time_score,
            "velocity_score": velocity,
            "travel_frequency": self.travel_frequency(v),
            "location_diversity": min(v.historical_location_count / 25, 1.0),
            "country_diversity": min(v.unique_countries / 15, 1.0),
            "current_travel_speed": min(speed / 1000, 1.0),
            "risk_location_pattern": self.risk_location_pattern(v),
            "geographic_consistency": self.geographic_consistency(v),
            "location_hopping": flag(hopping),
            "international_jumping": flag(jumping),
            "impossible_travel": flag(speed > self.mobility_limits["impossible_speed_kmh"]),
            "night_foreign_transaction": flag(not v.is_domestic and v.is_night_transaction),
            "high_risk_country_large_amount": flag(country > 0.7 and v.amount > 5000),
            "rapid_international_movement": flag(
                distance > 2000 and minutes is not None and minutes < 360
            ),
            "is_domestic": flag(v.is_domestic),
            "distance_from_prev": min(distance / 10000, 1.0),
            "client_experience": min(v.client_age_days / 365, 1.0),
            "is_new_client": flag(v.client_age_days < 30),
            "location_combined_score": (location + distance_score + country) / 3,
            "location_distance_correlation": pair_correlation(location, distance_score),
            "country_velocity_correlation": pair_correlation(country, velocity),
            "geographic_suspicion_index": min(suspicion, 1.0),
        }

    def heuristic_assessment(self, ctx, features):
        score = features["geographic_suspicion_index"]
        patterns = []
        reasons = []

        bonuses = (
            ("impossible_travel", 0.3, "Physically impossible travel speed"),
            ("location_hopping", 0.2, "Hopping between locations"),
            ("international_jumping", 0.2, "Suspicious international jump"),
            ("night_foreign_transaction", 0.15, "Foreign transaction at night"),
            ("high_risk_country_large_amount", 0.15, "Large amount in a high risk country"),
            ("rapid_international_movement", 0.1, "Very fast international movement"),
        )
        for name, bonus, reason in bonuses:
            if features[name]:
                score += bonus
                patterns.append(name)
                reasons.append(reason)

        return Assessment(
            score=min(score, 1.0),
            confidence=0.8,
            reasons=reasons,
            patterns=patterns,
            sub_scores={
                "geographic_risk": features["location_combined_score"],
                "mobility_risk": features["travel_frequency"],
                "distance_risk": features["distance_score"],
                "country_risk": features["country_score"],
                "travel_speed_risk": features["current_travel_speed"],
                "geographic_suspicion_index": features["geographic_suspicion_index"],
            },
        )
