"""
Behaviour validator: is the transaction coherent with the client's own
history? Six coherence checks plus a cross-tier consistency check, each
scored in [0, 1], and a list of named anomalous behaviours. Patterns
reported by the combiners count against the check they belong to (at most
0.3 per check).

A check is coherent while its score stays below 0.5 (0.3 for the
cross-tier consistency check).
"""
from dataclasses import dataclass, field
from typing import Dict, List

from fraud_ensemble.analyzers.merchant import normalize_merchant_type
from fraud_ensemble.components.base import Assessment, DeepValidator
from fraud_ensemble.components.scoring import mean


DEFAULT_COHERENCE_WEIGHTS = {
    "temporal": 0.15,
    "spatial": 0.20,
    "spending": 0.20,
    "channel": 0.10,
    "merchant": 0.10,
    "evolution": 0.15,
    "consistency": 0.10,
}

# Combiner patterns that break each coherence check
PATTERN_CHECKS = {
    "temporal": (
        "night_international", "critical_time_combination", "rapid_succession_pattern",
        "burst_activity_pattern", "night_weekend_combo", "early_morning_activity",
        "night_online_activity", "dormant_then_active",
    ),
    "spatial": (
        "impossible_travel", "location_hopping", "international_jumping",
        "night_foreign_transaction", "rapid_international_movement", "high_risk_country_large_amount",
    ),
    "spending": (
        "escalation", "card_testing", "fragmentation", "threshold_avoidance", "structuring",
        "new_client_large_amount", "night_large_amount", "high_amount_velocity",
    ),
    "channel": (
        "automation", "geo_tech_conflict", "suspicious_user_agent", "missing_tech_info",
        "rapid_online_activity",
    ),
    "evolution": (
        "account_takeover", "synthetic_identity", "new_account_abuse", "testing_escalation",
        "new_behavior_cluster", "inconsistent_behavior",
    ),
    "consistency": (
        "multi_anomaly", "cascading_risk", "anomaly_concentration", "high_risk_client_transaction",
    ),
}
PATTERN_WEIGHT = 0.15
PATTERN_CAP = 0.3


@dataclass
class CoherenceCheck:
    score: float = 0.0
    issues: List[str] = field(default_factory=list)
    threshold: float = 0.5

    def add(self, amount: float, issue: str) -> None:
        self.score += amount
        self.issues.append(issue)

    @property
    def is_coherent(self) -> bool:
        return self.score < self.threshold


class BehaviorValidator(DeepValidator):
    COMPONENT_ID = "behavior_validator"
    DESCRIPTION = "Checks the transaction for coherence with the client's history"

    def default_side_tables(self):
        return {"coherence_weights": dict(DEFAULT_COHERENCE_WEIGHTS)}

    # ------------------------------------------------------------------
    # Coherence checks
    # ------------------------------------------------------------------

    @staticmethod
    def temporal(ctx) -> CoherenceCheck:
        v = ctx.input
        check = CoherenceCheck()
        if v.transactions_last_hour > 5:
            check.add(0.3, "Too many transactions in one hour")
        if v.is_night_transaction and v.transactions_last_hour > 2:
            check.add(0.2, "High activity at an unusual night hour")
        if ctx.t1("time") > 0.7 and ctx.t1("day") > 0.7:
            check.add(0.3, "Completely atypical timing")
        if v.is_night_transaction and v.client_age_days < 30:
            check.add(0.3, "Night-time activity on a new account")
        return check

    @staticmethod
    def spatial(ctx) -> CoherenceCheck:
        v = ctx.input
        check = CoherenceCheck()
        if ctx.t1("distance") > 0.9:
            check.add(0.5, "Physically impossible distance between transactions")
        if v.unique_countries > 3 and v.client_age_days < 30:
            check.add(0.3, "Too many countries for a new client")
        if ctx.t1("location") > 0.7 and ctx.t1("merchant") > 0.7:
            check.add(0.2, "Location inconsistent with merchant type")
        return check

    @staticmethod
    def spending(ctx) -> CoherenceCheck:
        v = ctx.input
        check = CoherenceCheck()
        if v.historical_avg_amount > 0 and v.amount_ratio_to_avg > 10:
            check.add(0.4, f"Spending {v.amount_ratio_to_avg:.1f}x the average")
        if v.amount > 5000 and v.prev_amount is not None and v.prev_amount < 10:
            check.add(0.3, "Micro-transaction followed by a very large amount")
        if v.amount_last_24h > 20000:
            check.add(0.3, "Excessive spending in 24 hours")
        if v.historical_transaction_count == 0 and v.amount > 5000:
            check.add(0.4, "Large amount with no spending history")
        return check

    @staticmethod
    def channel(ctx) -> CoherenceCheck:
        v = ctx.input
        check = CoherenceCheck()
        if ctx.t1("channel") > 0.7 and v.historical_transaction_count > 50:
            check.add(0.2, "Unusual change of transaction channel")
        if v.channel == "atm" and v.amount > 10000:
            check.add(0.3, "Unusually large ATM withdrawal")
        if v.channel == "online" and not v.device_info and not v.ip_address:
            check.add(0.2, "Online transaction without device information")
        return check

    @staticmethod
    def merchant(ctx) -> CoherenceCheck:
        v = ctx.input
        merchant = normalize_merchant_type(v.merchant_type)
        check = CoherenceCheck()
        if ctx.t1("merchant") > 0.7 and v.client_age_days > 365:
            check.add(0.2, "Merchant type never used by an established client")
        if merchant == "grocery" and v.amount > 2000:
            check.add(0.2, "Unusually large amount for the merchant type")
        if merchant == "jewelry" and v.historical_merchant_types < 5:
            check.add(0.3, "High risk purchase for a conservative profile")
        return check

    @staticmethod
    def evolution(ctx) -> CoherenceCheck:
        v = ctx.input
        check = CoherenceCheck()
        if ctx.t2("behavior") > 0.8 and v.client_age_days > 180:
            check.add(0.4, "Abrupt change in established behaviour")
        if v.transactions_last_24h > v.avg_transactions_per_day * 5:
            check.add(0.3, "Abnormal escalation of activity")
        if ctx.t1("pattern") > 0.8:
            check.add(0.3, "Severe degradation of historical patterns")
        return check

    @staticmethod
    def consistency(ctx) -> CoherenceCheck:
        check = CoherenceCheck(threshold=0.3)
        l1_avg, l2_avg = mean(ctx.tier1_scores), mean(ctx.tier2_scores)
        if abs(l1_avg - l2_avg) > 0.4:
            check.add(0.3, "Significant inconsistency between analysis tiers")
        if sum(1 for s in ctx.tier1_scores if s > 0.8) > 3 and l2_avg < 0.3:
            check.add(0.2, "Many individual alerts but low combined risk")
        return check

    def run_checks(self, ctx) -> Dict[str, CoherenceCheck]:
        checks = {name: getattr(self, name)(ctx) for name in DEFAULT_COHERENCE_WEIGHTS}
        reported = ctx.distinct_patterns
        for name, patterns in PATTERN_CHECKS.items():
            hits = [p for p in patterns if p in reported]
            if hits:
                checks[name].add(min(len(hits) * PATTERN_WEIGHT, PATTERN_CAP),
                                 f"Combiner patterns: {', '.join(hits)}")
        return checks

    @staticmethod
    def anomalous_behaviors(v) -> List[Dict[str, str]]:
        found = []
        if v.amount < 5 and v.transactions_last_hour > 3:
            found.append({"type": "card_testing", "severity": "high",
                          "description": "Possible card testing with micro-transactions"})
        if not v.is_domestic and v.is_night_transaction and v.amount > 5000:
            found.append({"type": "compromised_account", "severity": "critical",
                          "description": "Typical compromised account pattern"})
        if v.transactions_last_24h > 20 and v.unique_countries > 3:
            found.append({"type": "money_laundering", "severity": "critical",
                          "description": "Possible money laundering pattern"})
        if v.client_age_days < 30 and v.historical_merchant_types > 15:
            found.append({"type": "synthetic_identity", "severity": "high",
                          "description": "Behaviour consistent with a synthetic identity"})
        return found

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def prepare_features(self, ctx):
        v = ctx.input
        checks = self.run_checks(ctx)
        behaviors = self.anomalous_behaviors(v)

        features = self.upstream_features(ctx)
        features.update({f"{name}_coherence": min(c.score, 1.0) for name, c in checks.items()})
        features.update({
            "anomalous_behavior_count": min(len(behaviors) / 4, 1.0),
            "incoherent_checks": sum(1 for c in checks.values() if not c.is_coherent) / len(checks),
            "client_age_factor": min(v.client_age_days / 365, 1.0),
            "history_factor": min(v.historical_transaction_count / 100, 1.0),
        })
        return features

    def heuristic_assessment(self, ctx, features):
        checks = self.run_checks(ctx)
        behaviors = self.anomalous_behaviors(ctx.input)
        weights = self.coherence_weights

        score = sum(min(checks[name].score, 1.0) * weight for name, weight in weights.items())
        score = min(score + min(len(behaviors) * 0.1, 0.3), 1.0)

        warnings = []
        for behavior in behaviors:
            prefix = "CRITICAL" if behavior["severity"] == "critical" else "HIGH"
            warnings.append(f"{prefix}: {behavior['description']}")
        for name, check in checks.items():
            if not check.is_coherent:
                warnings.append(f"WARNING: {name} incoherence: {'; '.join(check.issues)}")

        return Assessment(
            score=score,
            confidence=0.8,
            warnings=warnings,
            details={
                "is_coherent": score < 0.5,
                "coherence": {
                    name: {"score": round(c.score, 4), "is_coherent": c.is_coherent, "issues": list(c.issues)}
                    for name, c in checks.items()
                },
                "anomalous_behaviors": behaviors,
            },
        )

    def learned_confidence(self, ctx, features, base):
        confidence = 0.7
        if features["history_factor"] > 0.5:
            confidence += 0.15
        if features["client_age_factor"] > 0.5:
            confidence += 0.1
        return min(confidence, 1.0)
