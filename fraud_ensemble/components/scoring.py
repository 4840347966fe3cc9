"""
Small numeric helpers shared by the rule-based scorers.
"""
import math
from typing import Iterable, Sequence, Tuple

import numpy as np


EARTH_RADIUS_KM = 6371.0


def clamp01(value: float) -> float:
    """Clip into [0, 1]; non-finite values become the neutral 0.5."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.5
    if not math.isfinite(value):
        return 0.5
    return min(max(value, 0.0), 1.0)


def log_amount(amount: float) -> float:
    """log10 scale with 1M mapped to 1.0."""
    return min(math.log10(max(amount, 0.0) + 1) / 6, 1.0)


def ratio(numerator: float, denominator: float, default: float = 0.0) -> float:
    if denominator and denominator > 0:
        return numerator / denominator
    return default


def pair_correlation(a: float, b: float) -> float:
    """
    Correlation heuristic between two risk scores.

    Both high (>0.6) gives 1.0, both low (<0.3) gives 0.8, close scores
    (|a-b| < 0.3) give 0.7, anything else 0.3.
    """
    if a > 0.6 and b > 0.6:
        return 1.0
    if a < 0.3 and b < 0.3:
        return 0.8
    if abs(a - b) < 0.3:
        return 0.7
    return 0.3


def weighted_average(pairs: Iterable[Tuple[float, float]]) -> float:
    """Weighted mean of (value, weight) pairs."""
    total = 0.0
    weights = 0.0
    for value, weight in pairs:
        total += value * weight
        weights += weight
    return total / weights if weights > 0 else 0.0


def mean(values: Sequence[float]) -> float:
    return float(np.mean(values)) if len(values) else 0.0


def variance(values: Sequence[float]) -> float:
    """Population variance (0 for empty input)."""
    return float(np.var(values)) if len(values) else 0.0


def std(values: Sequence[float]) -> float:
    return float(np.std(values)) if len(values) else 0.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (math.sin(d_phi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def flag(condition: bool) -> float:
    return 1.0 if condition else 0.0
