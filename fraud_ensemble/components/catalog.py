"""
Component identifiers, in tier order.

Results are keyed by these ids everywhere (tier result mappings, artifacts,
version manifest, training report).
"""

TIER1_IDS = (
    "amount_analyzer",
    "location_analyzer",
    "time_analyzer",
    "day_analyzer",
    "merchant_analyzer",
    "velocity_analyzer",
    "distance_analyzer",
    "pattern_analyzer",
    "frequency_analyzer",
    "channel_analyzer",
    "device_analyzer",
    "country_analyzer",
)

TIER2_IDS = (
    "behavior_combiner",
    "location_combiner",
    "timing_combiner",
    "amount_combiner",
    "device_combiner",
    "pattern_combiner",
)

TIER3_IDS = (
    "risk_assessment",
    "anomaly_detector",
    "behavior_validator",
    "context_analyzer",
)

FUSION_ID = "fraud_decision"

ALL_IDS = TIER1_IDS + TIER2_IDS + TIER3_IDS + (FUSION_ID,)

TIER_OF = {
    **{cid: 1 for cid in TIER1_IDS},
    **{cid: 2 for cid in TIER2_IDS},
    **{cid: 3 for cid in TIER3_IDS},
    FUSION_ID: 4,
}

# Tier-2 patterns that name a concrete fraud scheme
SCHEME_PATTERNS = (
    "account_takeover",
    "synthetic_identity",
    "new_account_abuse",
    "testing_escalation",
    "structuring",
    "card_testing",
    "impossible_travel",
    "automation",
)
