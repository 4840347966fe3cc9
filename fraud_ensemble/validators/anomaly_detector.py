"""
Anomaly detector: eight families of anomaly computed over the snapshot and
the Tier-1/Tier-2 results.

  statistical  - amount z-score, frequency ratio, spread of Tier-1 scores
  emergent     - many simultaneous alerts, unexpected co-occurrences,
                 patterns reported by the combiners
  correlation  - independent signals high together, expected pairs split,
                 several combiners reporting patterns at once
  cascade      - whole temporal/spatial/behavioural groups high
  context      - risky combinations of time, place, client and channel
  system       - weak coverage or disagreement between tiers
  interaction  - Tier-2 high while Tier-1 low (and the reverse)
  synthetic    - signs of a fabricated identity

The heuristic score blends the mean type score (0.5), the most severe type
(0.3) and the share of types present (0.2).
"""
from fraud_ensemble.components.base import Assessment, DeepValidator
from fraud_ensemble.components.scoring import mean, std


ANOMALY_TYPES = (
    "statistical", "emergent", "correlation", "cascade",
    "context", "system", "interaction", "synthetic",
)

DEFAULT_TYPE_THRESHOLDS = {name: 0.1 for name in ANOMALY_TYPES}

INDEPENDENT_PAIRS = (("amount", "time"), ("location", "merchant"), ("device", "distance"))
EXPECTED_PAIRS = (("pattern", "velocity"), ("location", "device"))
UNEXPECTED_PAIRS = (("amount", "day"), ("time", "merchant"), ("device", "location"))
CASCADES = (
    ("temporal", ("time", "day", "frequency"), 0.3),
    ("spatial", ("location", "distance", "country"), 0.3),
    ("behavioral", ("pattern", "velocity", "frequency"), 0.4),
)


class AnomalyDetector(DeepValidator):
    COMPONENT_ID = "anomaly_detector"
    DESCRIPTION = "Counts distinct anomaly types across all upstream signals"

    def default_side_tables(self):
        return {"type_thresholds": dict(DEFAULT_TYPE_THRESHOLDS)}

    # ------------------------------------------------------------------
    # Anomaly families: each returns (score, findings)
    # ------------------------------------------------------------------

    @staticmethod
    def statistical(ctx):
        v = ctx.input
        score, findings = 0.0, []
        if v.historical_avg_amount > 0:
            z = (v.amount - v.historical_avg_amount) / (v.historical_avg_amount * 0.5)
            if abs(z) > 3:
                score += 0.3
                findings.append(f"Amount is a statistical outlier (z={z:.2f})")
        if v.avg_transactions_per_day > 0:
            r = v.transactions_last_24h / v.avg_transactions_per_day
            if r > 5 or r < 0.1:
                score += 0.2
                findings.append(f"Unusual frequency (ratio={r:.2f})")
        spread = std(ctx.tier1_scores)
        if spread > 0.3:
            score += 0.15
            findings.append(f"High spread in Tier-1 scores ({spread:.3f})")
        return min(score, 1.0), findings

    @staticmethod
    def emergent(ctx):
        score, findings = 0.0, []
        high = sum(1 for s in ctx.tier1_scores if s > 0.7)
        if high >= 4:
            score += 0.4
            findings.append(f"{high} simultaneous high alerts")
        unexpected = sum(1 for a, b in UNEXPECTED_PAIRS if ctx.t1(a) > 0.7 and ctx.t1(b) > 0.7)
        if unexpected > 2:
            score += 0.3
            findings.append(f"{unexpected} unexpected correlations")
        complex_patterns = sum(1 for s in ctx.tier2_scores if s > 0.7)
        if complex_patterns >= 2:
            score += 0.3
            findings.append(f"{complex_patterns} complex patterns at once")
        distinct = ctx.distinct_patterns
        if distinct:
            score += min(len(distinct) * 0.05, 0.3)
            findings.append(f"{len(distinct)} distinct patterns reported by the combiners")
        return min(score, 1.0), findings

    @staticmethod
    def correlation(ctx):
        score, findings = 0.0, []
        for a, b in INDEPENDENT_PAIRS:
            if ctx.t1(a) > 0.7 and ctx.t1(b) > 0.7:
                score += 0.2
                findings.append(f"Unusual correlation: {a} and {b}")
        for a, b in EXPECTED_PAIRS:
            sa, sb = ctx.t1(a), ctx.t1(b)
            if (sa > 0.8 and sb < 0.2) or (sa < 0.2 and sb > 0.8):
                score += 0.15
                findings.append(f"Unusual anti-correlation: {a} vs {b}")
        reporting = len(ctx.tier2_patterns)
        if reporting >= 3:
            score += 0.2
            findings.append(f"Patterns reported by {reporting} combiners at once")
        return min(score, 1.0), findings

    @staticmethod
    def cascade(ctx):
        score, findings = 0.0, []
        for name, members, bonus in CASCADES:
            if all(ctx.t1(m) > 0.6 for m in members):
                score += bonus
                findings.append(f"Complete {name} cascade")
        return min(score, 1.0), findings

    @staticmethod
    def context(ctx):
        v = ctx.input
        score, findings = 0.0, []
        if v.is_night_transaction and v.is_weekend and v.amount > 10000:
            score += 0.3
            findings.append("Night, weekend and high amount together")
        if not v.is_domestic and v.is_night_transaction and ctx.t1("device") > 0.7:
            score += 0.3
            findings.append("International night transaction from a suspicious device")
        if v.client_age_days < 30 and v.amount > 5000 and v.unique_countries > 3:
            score += 0.4
            findings.append("New client, high amount, several countries")
        if v.channel == "online" and not v.device_info and not v.is_domestic:
            score += 0.2
            findings.append("International online transaction without device information")
        if v.client_age_days < 30 and v.historical_transaction_count == 0 \
                and not v.is_domestic and v.amount > 5000:
            score += 0.3
            findings.append("First transaction of a new client, abroad, with a high amount")
        return min(score, 1.0), findings

    @staticmethod
    def system(ctx):
        score, findings = 0.0, []
        t1, t2 = ctx.tier1_scores, ctx.tier2_scores
        reporting = sum(1 for s in t1 if s > 0.1)
        if reporting < 5:
            score += 0.2
            findings.append(f"Low coverage: only {reporting} analyzers reporting")
        if std(t1) > 0.4:
            score += 0.1
            findings.append("No consensus among Tier-1 analyzers")
        l1_max, l2_max = max(t1, default=0.0), max(t2, default=0.0)
        if abs(l1_max - l2_max) > 0.5:
            score += 0.15
            findings.append(f"Tier disagreement: L1={l1_max:.2f}, L2={l2_max:.2f}")
        return min(score, 1.0), findings

    @staticmethod
    def interaction(ctx):
        score, findings = 0.0, []
        t1, t2 = ctx.tier1_scores, ctx.tier2_scores
        l1_max, l2_max = max(t1, default=0.0), max(t2, default=0.0)
        if sum(1 for s in t1 if s > 0.8) >= 2 and sum(1 for s in t1 if s < 0.2) >= 2:
            score += 0.1
            findings.append("Non-linear interaction in Tier-1 scores")
        emergent = sum(1 for s in t2 if s > 0.7) if l1_max < 0.5 else 0
        if emergent:
            score += emergent * 0.15
            findings.append(f"Tier-2 patterns without Tier-1 support: {emergent}")
        if l1_max > 0.8 and l2_max < 0.4:
            score += 0.1
            findings.append("Tier-1 alert suppressed at Tier-2")
        return min(score, 1.0), findings

    @staticmethod
    def synthetic(ctx):
        v = ctx.input
        score, findings = 0.0, []
        if v.client_age_days < 60 and v.unique_countries > 5 and v.historical_merchant_types > 10:
            score += 0.4
            findings.append("New client with very diverse activity")
        if ctx.t2("behavior") > 0.8 and ctx.t1("pattern") > 0.8 and v.client_age_days < 90:
            score += 0.3
            findings.append("Extreme behavioural anomalies on a young account")
        if ctx.t1("device") > 0.7 and ctx.t1("channel") > 0.7 and not v.device_info:
            score += 0.2
            findings.append("Technology alerts without device information")
        if ctx.has_pattern("synthetic_identity", "new_account_abuse"):
            score += 0.3
            findings.append("Combiners flagged a fabricated or throwaway account")
        return min(score, 1.0), findings

    def detect(self, ctx):
        return {name: getattr(self, name)(ctx) for name in ANOMALY_TYPES}

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def count_types(self, type_scores) -> int:
        return sum(1 for name, s in type_scores.items() if s > self.type_thresholds.get(name, 0.1))

    def prepare_features(self, ctx):
        type_scores = {name: score for name, (score, _) in self.detect(ctx).items()}
        values = list(type_scores.values())
        features = self.upstream_features(ctx)
        features.update({f"{name}_anomalies": s for name, s in type_scores.items()})
        features.update({
            "total_anomaly_score": mean(values),
            "anomaly_diversity": self.count_types(type_scores) / len(ANOMALY_TYPES),
            "anomaly_severity": max(values),
        })
        return features

    def heuristic_assessment(self, ctx, features):
        detected = self.detect(ctx)
        type_scores = {name: score for name, (score, _) in detected.items()}
        score = (
            features["total_anomaly_score"] * 0.5
            + features["anomaly_severity"] * 0.3
            + features["anomaly_diversity"] * 0.2
        )

        warnings = []
        if score >= 0.8:
            warnings.append("CRITICAL: Multiple anomalous patterns detected")
        if type_scores["cascade"] > 0.7:
            warnings.append("HIGH: Cascading anomalies")
        if type_scores["emergent"] > 0.6:
            warnings.append("HIGH: Emergent anomalies in signal interactions")
        if type_scores["synthetic"] > 0.6:
            warnings.append("HIGH: Possible synthetic identity")
        if type_scores["system"] > 0.5:
            warnings.append("WARNING: Inconsistencies between analysis tiers")

        return Assessment(
            score=min(score, 1.0),
            confidence=0.8,
            warnings=warnings,
            details={
                "types_detected": self.count_types(type_scores),
                "type_scores": {k: round(s, 4) for k, s in type_scores.items()},
                "findings": {k: f for k, (_, f) in detected.items() if f},
                "diversity": round(features["anomaly_diversity"], 4),
                "severity": round(features["anomaly_severity"], 4),
            },
        )

    def learned_confidence(self, ctx, features, base):
        confidence = 0.7
        if features["anomaly_diversity"] > 0.5:
            confidence += 0.15
        if features["anomaly_severity"] > 0.7:
            confidence += 0.1
        return min(confidence, 1.0)
