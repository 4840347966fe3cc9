"""
Decision Fusion (Tier 4)

Purpose:
Fuse the complete Tier-1, Tier-2 and Tier-3 result sets into the final
DecisionResult.

Algorithm:
1. Per-tier averages, weighted 0.25 / 0.30 / 0.35, plus a consensus bonus
   (weight 0.10) that grows as the tier averages agree.
2. Critical patterns (including fraud schemes named by the Tier-2
   combiners) add a bounded adjustment (total within +/-0.2).
3. The learned estimator, when trained, replaces the weighted score.
4. Mitigation factors (capped at 0.4) are subtracted; the score floors at 0.
5. The score is classified by half-open thresholds:
   safe < 0.3 <= low_risk < 0.5 <= requires_review < 0.7 <= fraud_detected
   < 0.9 <= critical_fraud.

Design Contract:
- decide() never raises. If the fusion stage itself fails, the most
  conservative signal available (the highest tier average) becomes the
  score, confidence drops to 0.5 and manual review is forced; the failure
  is recorded in the audit trail.
- A failing learned estimator is a ComponentComputeError: the heuristic
  weighted score is used instead and the decision is flagged heuristic.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from fraud_ensemble.components.base import Assessment, EnsembleComponent, ScoringContext, Trained
from fraud_ensemble.components.catalog import FUSION_ID, SCHEME_PATTERNS, TIER1_IDS, TIER2_IDS, TIER3_IDS
from fraud_ensemble.components.scoring import clamp01, mean, variance
from fraud_ensemble.errors import ComponentComputeError, FusionFailure
from fraud_ensemble.schema import (
    AnalysisInput,
    AnalyzerResult,
    AuditTrail,
    CombinerResult,
    ConsensusReport,
    CriticalPattern,
    DecisionCategory,
    DecisionResult,
    DeepResult,
    MitigationReport,
)


logger = logging.getLogger(__name__)


DEFAULT_DECISION_THRESHOLDS = {
    "safe": 0.3,
    "low_risk": 0.5,
    "review": 0.5,
    "fraud": 0.7,
    "critical": 0.9,
}

DEFAULT_LAYER_WEIGHTS = {
    "tier1": 0.25,
    "tier2": 0.30,
    "tier3": 0.35,
    "consensus": 0.10,
}

MITIGATION_CAP = 0.4
CRITICAL_ADJUSTMENT_CAP = 0.2
SEVERITY_BONUS = {"critical": 0.10, "high": 0.05}
FULL_COVERAGE = len(TIER1_IDS) + len(TIER2_IDS) + len(TIER3_IDS)

RISK_LEVEL_BY_CATEGORY = {
    DecisionCategory.SAFE: "minimal",
    DecisionCategory.LOW_RISK: "low",
    DecisionCategory.REQUIRES_REVIEW: "medium",
    DecisionCategory.FRAUD_DETECTED: "high",
    DecisionCategory.CRITICAL_FRAUD: "critical",
}


# ============================================================================
# HELPERS
# ============================================================================

def categorize(score: float, thresholds: Mapping[str, float] = DEFAULT_DECISION_THRESHOLDS) -> DecisionCategory:
    """Half-open bands: a score equal to a threshold belongs to the band above it."""
    if score >= thresholds["critical"]:
        return DecisionCategory.CRITICAL_FRAUD
    if score >= thresholds["fraud"]:
        return DecisionCategory.FRAUD_DETECTED
    if score >= thresholds["review"]:
        return DecisionCategory.REQUIRES_REVIEW
    if score >= thresholds["safe"]:
        return DecisionCategory.LOW_RISK
    return DecisionCategory.SAFE


def mitigate(score: float, total_mitigation: float) -> float:
    """Subtract mitigation (capped at MITIGATION_CAP), flooring at 0."""
    return max(0.0, score - min(max(total_mitigation, 0.0), MITIGATION_CAP))


def consensus_bonus(tier_variance: float) -> float:
    if tier_variance < 0.05:
        return 0.2
    if tier_variance < 0.1:
        return 0.1
    if tier_variance < 0.2:
        return 0.05
    return 0.0


def recommended_actions(score: float) -> List[str]:
    if score >= 0.9:
        return [
            "BLOCK transaction immediately",
            "NOTIFY the security team",
            "FREEZE the account temporarily",
            "CONTACT the client for verification",
        ]
    if score >= 0.7:
        return [
            "HOLD transaction for review",
            "REQUEST additional authentication",
            "REVIEW the client's recent history",
        ]
    if score >= 0.5:
        return ["FLAG for monitoring", "VERIFY with the merchant if possible"]
    if score >= 0.3:
        return ["ALLOW with monitoring", "LOG in the activity record"]
    return ["APPROVE transaction", "No further action required"]


def tier_averages(tier1: Mapping, tier2: Mapping, tier3: Mapping) -> Dict[str, float]:
    return {
        "tier1": mean([r.score for r in tier1.values()]),
        "tier2": mean([r.score for r in tier2.values()]),
        "tier3": mean([r.score for r in tier3.values()]),
    }


def degraded_decision(
    analysis_input: AnalysisInput,
    averages: Dict[str, float],
    score: float,
    confidence: float,
    decision_method: str,
    reason: str,
    error: Optional[str] = None,
    category: Optional[DecisionCategory] = None,
    thresholds: Optional[Mapping[str, float]] = None,
    layer_weights: Optional[Mapping[str, float]] = None,
) -> DecisionResult:
    """
    Decision used when the normal fusion path cannot complete.

    Always forces manual review. The category defaults to the band of
    the score under the given thresholds (the fusion defaults when None).
    """
    thresholds = thresholds or DEFAULT_DECISION_THRESHOLDS
    layer_weights = layer_weights or DEFAULT_LAYER_WEIGHTS
    score = clamp01(score)
    category = category or categorize(score, thresholds)
    return DecisionResult(
        transaction_id=analysis_input.transaction_id,
        fraud_detected=score >= thresholds["fraud"],
        fraud_score=score,
        decision_category=category,
        confidence=clamp01(confidence),
        requires_manual_review=True,
        risk_level=RISK_LEVEL_BY_CATEGORY[category],
        primary_reasons=(reason,),
        recommended_actions=("REVIEW manually", "VERIFY system health"),
        tier_averages=dict(averages),
        audit_trail=AuditTrail(
            decision_method=decision_method,
            layer_weights=dict(layer_weights),
            thresholds=dict(thresholds),
            error_occurred=error is not None,
            error=error,
        ),
        heuristic=True,
    )


# ============================================================================
# FUSION ANALYSIS
# ============================================================================

@dataclass
class FusionAnalysis:
    """Everything derived from the three tiers before the score is final."""
    consensus: ConsensusReport
    critical_patterns: List[CriticalPattern]
    critical_adjustment: float
    mitigation_factors: Dict[str, float]
    total_mitigation: float
    weighted_score: float
    confidence: float
    tier_max: Dict[str, float] = field(default_factory=dict)
    tier1_variance: float = 0.0
    critical_warnings: List[str] = field(default_factory=list)
    high_risk_tier1: int = 0
    components_analyzed: int = 0
    heuristic_components: List[str] = field(default_factory=list)


class DecisionFusion(EnsembleComponent):
    """Tier 4: final fraud decision over every lower-tier result."""
    COMPONENT_ID = FUSION_ID
    TIER = 4
    DESCRIPTION = "Fuses all tiers into the final fraud decision"
    HIDDEN_LAYERS = (24, 16, 8, 4)

    def __init__(self, estimator_kind: str = "xgboost", hyperparameters=None):
        super().__init__(estimator_kind=estimator_kind, hyperparameters=hyperparameters)

    def default_side_tables(self):
        return {
            "decision_thresholds": dict(DEFAULT_DECISION_THRESHOLDS),
            "layer_weights": dict(DEFAULT_LAYER_WEIGHTS),
        }

    # ------------------------------------------------------------------
    # Consensus
    # ------------------------------------------------------------------

    @staticmethod
    def consensus(ctx: ScoringContext) -> ConsensusReport:
        averages = tier_averages(ctx.tier1, ctx.tier2, ctx.tier3)
        values = list(averages.values())
        tier_variance = variance(values)
        unanimous_high = all(v > 0.7 for v in values)
        unanimous_low = all(v < 0.3 for v in values)
        conflicting = max(values) > 0.7 and min(values) < 0.3
        agreement = 1 - tier_variance

        if unanimous_high or unanimous_low:
            confidence = 0.95
        elif agreement > 0.8:
            confidence = 0.85
        elif conflicting:
            confidence = 0.6
        else:
            confidence = 0.75

        return ConsensusReport(
            tier_averages=averages,
            variance=tier_variance,
            agreement=agreement,
            unanimous_high_risk=unanimous_high,
            unanimous_low_risk=unanimous_low,
            conflicting_signals=conflicting,
            escalation_pattern=averages["tier1"] < averages["tier2"] < averages["tier3"],
            consensus_bonus=consensus_bonus(tier_variance),
            confidence_in_consensus=confidence,
        )

    # ------------------------------------------------------------------
    # Critical patterns
    # ------------------------------------------------------------------

    @staticmethod
    def tier_maxima(ctx: ScoringContext) -> Dict[str, float]:
        return {
            "tier1": max(ctx.tier1_scores, default=0.0),
            "tier2": max(ctx.tier2_scores, default=0.0),
            "tier3": max(ctx.tier3_scores, default=0.0),
        }

    def critical_patterns(self, ctx: ScoringContext) -> List[CriticalPattern]:
        patterns = []

        def add(name, severity, description):
            patterns.append(CriticalPattern(
                name=name, severity=severity, description=description, bonus=SEVERITY_BONUS[severity]
            ))

        high_l1 = sum(1 for s in ctx.tier1_scores if s > 0.8)
        if high_l1 >= 4:
            add("multiple_tier1_alerts", "high", f"{high_l1} individual variables at very high risk")

        if ctx.t2("behavior") > 0.8:
            add("anomalous_behavior", "critical", "Highly anomalous behaviour detected")

        if ctx.t3("behavior_validator") > 0.8:
            add("behavior_incoherence", "critical", "Transaction incoherent with the client's behaviour")

        types_detected = ctx.t3_assessment("anomaly_detector").get("types_detected", 0)
        if types_detected > 5:
            add("multiple_anomaly_types", "critical", f"{types_detected} anomaly types detected")

        critical_factors = ctx.t3_assessment("context_analyzer").get("critical_factors", 0)
        if critical_factors > 3:
            add("critical_context", "high", f"{critical_factors} critical contextual factors")

        schemes = sorted(ctx.distinct_patterns.intersection(SCHEME_PATTERNS))
        if schemes:
            add("fraud_scheme_patterns", "high", f"Combiners matched fraud schemes: {', '.join(schemes)}")

        maxima = self.tier_maxima(ctx)
        if maxima["tier1"] < maxima["tier2"] < maxima["tier3"] and maxima["tier3"] - maxima["tier1"] >= 0.4:
            add("risk_escalation", "critical",
                f"Rapid risk escalation: {maxima['tier1']:.0%} -> {maxima['tier3']:.0%}")

        return patterns

    @staticmethod
    def critical_adjustment(ctx: ScoringContext, patterns: List[CriticalPattern]) -> float:
        adjustment = sum(p.bonus for p in patterns)
        signals = ctx.tier1_scores + ctx.tier2_scores + ctx.tier3_scores
        if signals and all(s < 0.3 for s in signals):
            adjustment -= 0.1
        return max(-CRITICAL_ADJUSTMENT_CAP, min(adjustment, CRITICAL_ADJUSTMENT_CAP))

    # ------------------------------------------------------------------
    # Mitigation
    # ------------------------------------------------------------------

    @staticmethod
    def mitigation_factors(ctx: ScoringContext) -> Dict[str, float]:
        v = ctx.input
        factors = {}
        if v.client_age_days > 730 and v.fraud_incidents == 0:
            factors["trusted_customer"] = 0.2
        if v.is_domestic and not v.is_night_transaction and not v.is_weekend:
            factors["normal_context"] = 0.15
        if v.merchant_frequency > 10:
            factors["frequent_merchant"] = 0.1
        if v.historical_avg_amount > 0 and v.amount <= v.historical_avg_amount * 1.5:
            factors["normal_amount"] = 0.1
        signals = ctx.tier1_scores + ctx.tier2_scores + ctx.tier3_scores
        if not any(s > 0.9 for s in signals):
            factors["no_critical_alerts"] = 0.05
        return factors

    # ------------------------------------------------------------------
    # Confidence
    # ------------------------------------------------------------------

    @staticmethod
    def decision_confidence(ctx: ScoringContext, consensus: ConsensusReport) -> float:
        if consensus.unanimous_high_risk or consensus.unanimous_low_risk:
            return 0.95

        confidence = consensus.confidence_in_consensus
        signals = ctx.tier1_scores + ctx.tier2_scores + ctx.tier3_scores
        if len(signals) < FULL_COVERAGE:
            confidence -= 0.1
        if 1 - consensus.variance * 3 > 0.8:
            confidence += 0.05
        if signals and sum(1 for s in signals if s < 0.2 or s > 0.8) / len(signals) > 0.7:
            confidence += 0.05
        if consensus.conflicting_signals:
            confidence -= 0.1
        return min(max(confidence, 0.5), 0.95)

    # ------------------------------------------------------------------
    # Analysis and features
    # ------------------------------------------------------------------

    def analyze_tiers(self, ctx: ScoringContext) -> FusionAnalysis:
        weights = self.layer_weights
        consensus = self.consensus(ctx)
        averages = consensus.tier_averages
        patterns = self.critical_patterns(ctx)
        adjustment = self.critical_adjustment(ctx, patterns)
        factors = self.mitigation_factors(ctx)

        weighted = (
            averages["tier1"] * weights["tier1"]
            + averages["tier2"] * weights["tier2"]
            + averages["tier3"] * weights["tier3"]
            + consensus.consensus_bonus * weights["consensus"]
        )
        weighted = min(max(weighted + adjustment, 0.0), 1.0)

        critical_warnings = [
            w for result in ctx.tier3.values() for w in result.warnings if w.startswith("CRITICAL")
        ]
        heuristic_components = [
            cid for tier in (ctx.tier1, ctx.tier2, ctx.tier3)
            for cid, result in tier.items() if result.heuristic
        ]

        return FusionAnalysis(
            consensus=consensus,
            critical_patterns=patterns,
            critical_adjustment=adjustment,
            mitigation_factors=factors,
            total_mitigation=min(sum(factors.values()), MITIGATION_CAP),
            weighted_score=weighted,
            confidence=self.decision_confidence(ctx, consensus),
            tier_max=self.tier_maxima(ctx),
            tier1_variance=variance(ctx.tier1_scores),
            critical_warnings=critical_warnings,
            high_risk_tier1=sum(1 for s in ctx.tier1_scores if s > 0.7),
            components_analyzed=len(ctx.tier1) + len(ctx.tier2) + len(ctx.tier3),
            heuristic_components=heuristic_components,
        )

    def features_from(self, ctx: ScoringContext, analysis: FusionAnalysis) -> Dict[str, float]:
        features = {}
        for prefix, ids, results in (("l1", TIER1_IDS, ctx.tier1), ("l2", TIER2_IDS, ctx.tier2),
                                     ("l3", TIER3_IDS, ctx.tier3)):
            for cid in ids:
                result = results.get(cid)
                features[f"{prefix}_{cid}"] = result.score if result is not None else 0.0
        averages = analysis.consensus.tier_averages
        features.update({
            "l1_avg": averages["tier1"],
            "l1_max": analysis.tier_max["tier1"],
            "l1_variance": analysis.tier1_variance,
            "l2_avg": averages["tier2"],
            "l2_max": analysis.tier_max["tier2"],
            "l3_avg": averages["tier3"],
            "l3_max": analysis.tier_max["tier3"],
            "consensus_agreement": analysis.consensus.agreement,
            "consensus_confidence": analysis.consensus.confidence_in_consensus,
            "critical_pattern_count": float(len(analysis.critical_patterns)),
            "has_critical_patterns": 1.0 if analysis.critical_patterns else 0.0,
            "mitigation_score": analysis.total_mitigation,
            "weighted_score": analysis.weighted_score,
        })
        return features

    def prepare_features(self, ctx):
        return self.features_from(ctx, self.analyze_tiers(ctx))

    def heuristic_assessment(self, ctx, features):
        analysis = self.analyze_tiers(ctx)
        return Assessment(score=analysis.weighted_score, confidence=analysis.confidence)

    def training_context(self, sample, generator=None):
        if generator is None:
            raise ValueError(f"{self.component_id} needs a synthetic context generator to train")
        return ScoringContext(
            input=sample.input,
            tier1=generator.tier1_results(sample.label),
            tier2=generator.tier2_results(sample.label),
            tier3=generator.tier3_results(sample.label),
        )

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def primary_reasons(self, score: float, analysis: FusionAnalysis) -> List[str]:
        """At most five reasons, most severe first."""
        reasons = []
        if score >= self.decision_thresholds["critical"]:
            reasons.append("Critical fraud score detected")
        elif score >= self.decision_thresholds["fraud"]:
            reasons.append("High fraud risk identified")
        reasons.extend(p.description for p in analysis.critical_patterns if p.severity == "critical")
        if analysis.consensus.unanimous_high_risk:
            reasons.append("Unanimous high risk consensus across all tiers")
        reasons.extend(analysis.critical_warnings[:2])
        if analysis.high_risk_tier1 >= 3:
            reasons.append(f"{analysis.high_risk_tier1} individual variables at high risk")
        return reasons[:5]

    def decide(
        self,
        analysis_input: AnalysisInput,
        tier1_results: Mapping[str, AnalyzerResult],
        tier2_results: Mapping[str, CombinerResult],
        tier3_results: Mapping[str, DeepResult],
    ) -> DecisionResult:
        """
        Final decision for one transaction.

        Args:
            analysis_input: Snapshot the lower tiers scored
            tier1_results: Complete Tier-1 result set
            tier2_results: Complete Tier-2 result set
            tier3_results: Complete Tier-3 result set

        Returns:
            DecisionResult (never raises)
        """
        ctx = ScoringContext(
            input=analysis_input,
            tier1=dict(tier1_results),
            tier2=dict(tier2_results),
            tier3=dict(tier3_results),
        )
        try:
            return self._decide(ctx)
        except Exception as exc:
            failure = FusionFailure(f"Decision fusion failed: {exc}")
            logger.error(f"❌ {failure} - using conservative fallback", exc_info=True)
            return self.fallback_decision(ctx, str(failure))

    def _decide(self, ctx: ScoringContext) -> DecisionResult:
        state = self._state
        analysis = self.analyze_tiers(ctx)
        features = self.features_from(ctx, analysis)

        method = "heuristic_weighted_average"
        heuristic = True
        error = None
        raw_score = analysis.weighted_score
        if isinstance(state, Trained):
            try:
                assessment = self._scorer_for(state).assess(self, ctx, features)
                raw_score = assessment.score
                method = "learned"
                heuristic = False
            except Exception as exc:
                failure = ComponentComputeError(self.component_id, exc)
                logger.warning(f"⚠️  {failure} - using heuristic fallback")
                error = str(failure)

        raw_score = clamp01(raw_score)
        score = mitigate(raw_score, analysis.total_mitigation)
        thresholds = self.decision_thresholds
        category = categorize(score, thresholds)
        fraud_detected = score >= thresholds["fraud"]

        return DecisionResult(
            transaction_id=ctx.input.transaction_id,
            fraud_detected=fraud_detected,
            fraud_score=score,
            decision_category=category,
            confidence=analysis.confidence,
            requires_manual_review=thresholds["review"] <= score < thresholds["fraud"],
            risk_level=RISK_LEVEL_BY_CATEGORY[category],
            primary_reasons=tuple(self.primary_reasons(score, analysis)),
            recommended_actions=tuple(recommended_actions(score)),
            tier_averages=dict(analysis.consensus.tier_averages),
            consensus_report=analysis.consensus,
            mitigation_report=MitigationReport(
                factors=analysis.mitigation_factors,
                total_mitigation=analysis.total_mitigation,
                original_score=raw_score,
                adjusted_score=score,
            ),
            critical_patterns=tuple(analysis.critical_patterns),
            audit_trail=AuditTrail(
                decision_method=method,
                layer_weights=dict(self.layer_weights),
                thresholds=dict(thresholds),
                weighted_score=analysis.weighted_score,
                critical_adjustment=analysis.critical_adjustment,
                components_analyzed=analysis.components_analyzed,
                heuristic_components=tuple(analysis.heuristic_components),
                error_occurred=error is not None,
                error=error,
            ),
            heuristic=heuristic,
        )

    def fallback_decision(self, ctx: ScoringContext, error: str) -> DecisionResult:
        """Highest tier average as a conservative score, manual review forced."""
        averages = tier_averages(ctx.tier1, ctx.tier2, ctx.tier3)
        return degraded_decision(
            ctx.input,
            averages,
            score=max(averages.values()),
            confidence=0.5,
            decision_method="error_fallback",
            reason="Processing error - using conservative decision",
            error=error,
            thresholds=self.decision_thresholds,
            layer_weights=self.layer_weights,
        )
