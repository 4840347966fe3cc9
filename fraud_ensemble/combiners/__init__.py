"""
Tier 2: combiners over themed subsets of Tier-1 results.
"""
from fraud_ensemble.combiners.amount import AmountCombiner
from fraud_ensemble.combiners.behavior import BehaviorCombiner
from fraud_ensemble.combiners.device import DeviceCombiner
from fraud_ensemble.combiners.location import LocationCombiner
from fraud_ensemble.combiners.pattern import PatternCombiner
from fraud_ensemble.combiners.timing import TimingCombiner

TIER2_COMBINERS = (
    BehaviorCombiner,
    LocationCombiner,
    TimingCombiner,
    AmountCombiner,
    DeviceCombiner,
    PatternCombiner,
)

__all__ = [cls.__name__ for cls in TIER2_COMBINERS] + ["TIER2_COMBINERS"]
