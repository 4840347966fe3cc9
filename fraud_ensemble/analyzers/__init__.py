"""
Tier 1: one analyzer per input variable.

Each analyzer reads only the AnalysisInput snapshot and returns an
AnalyzerResult (score, confidence, reasons, raw features).
"""
from fraud_ensemble.analyzers.amount import AmountAnalyzer
from fraud_ensemble.analyzers.channel import ChannelAnalyzer
from fraud_ensemble.analyzers.country import CountryAnalyzer
from fraud_ensemble.analyzers.day import DayAnalyzer
from fraud_ensemble.analyzers.device import DeviceAnalyzer
from fraud_ensemble.analyzers.distance import DistanceAnalyzer
from fraud_ensemble.analyzers.frequency import FrequencyAnalyzer
from fraud_ensemble.analyzers.location import LocationAnalyzer
from fraud_ensemble.analyzers.merchant import MerchantAnalyzer
from fraud_ensemble.analyzers.pattern import PatternAnalyzer
from fraud_ensemble.analyzers.time_of_day import TimeAnalyzer
from fraud_ensemble.analyzers.velocity import VelocityAnalyzer

TIER1_ANALYZERS = (
    AmountAnalyzer,
    LocationAnalyzer,
    TimeAnalyzer,
    DayAnalyzer,
    MerchantAnalyzer,
    VelocityAnalyzer,
    DistanceAnalyzer,
    PatternAnalyzer,
    FrequencyAnalyzer,
    ChannelAnalyzer,
    DeviceAnalyzer,
    CountryAnalyzer,
)

__all__ = [cls.__name__ for cls in TIER1_ANALYZERS] + ["TIER1_ANALYZERS"]
