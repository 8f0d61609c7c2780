"""
Statistics helpers shared by discovery and validation.

p-values use the approximation ``max(0.001, 1 / (1 + |t|))`` with
``t = r * sqrt(n - 2) / sqrt(1 - r^2)``; discovery thresholds assume it.
"""

import math
from typing import Optional, Sequence

import numpy as np

from covercast.domain.patterns import Strength

MIN_P_VALUE = 0.001


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> Optional[float]:
    """
    Pearson correlation coefficient of two equal-length series.
    
    Returns None for fewer than 3 points, mismatched lengths, or a constant series.
    A series correlated with itself gives exactly 1.0, and with its negation exactly -1.0.
    """
    if len(x) != len(y) or len(x) < 3:
        return None
    
    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    dx = xs - xs.mean()
    dy = ys - ys.mean()
    
    sxx = float(np.dot(dx, dx))
    syy = float(np.dot(dy, dy))
    if sxx == 0 or syy == 0:
        return None
    
    r = float(np.dot(dx, dy)) / math.sqrt(sxx * syy)
    return clamp_correlation(r)


def approximate_p_value(r: float, n: int) -> float:
    """Simplified significance for a correlation ``r`` over ``n`` samples."""
    if n <= 2:
        return 1.0
    if abs(r) >= 1:
        return MIN_P_VALUE
    t = r * math.sqrt(n - 2) / math.sqrt(1 - r * r)
    return max(MIN_P_VALUE, 1 / (1 + abs(t)))


def classify_strength(value: float) -> Strength:
    """
    Bucket a correlation. Callers pass ``abs(r)`` when direction does not matter.
    
    >= 0.8 very_strong, >= 0.6 strong, >= 0.4 moderate, >= 0.2 weak, > 0 very_weak, else none.
    """
    if value >= 0.8:
        return Strength.VERY_STRONG
    if value >= 0.6:
        return Strength.STRONG
    if value >= 0.4:
        return Strength.MODERATE
    if value >= 0.2:
        return Strength.WEAK
    if value > 0:
        return Strength.VERY_WEAK
    return Strength.NONE


def clamp_correlation(value: float) -> float:
    return max(-1.0, min(1.0, value))


def percent_change(value: float, baseline: float) -> float:
    """(value - baseline) / baseline * 100, or 0 when the baseline is zero."""
    if not baseline:
        return 0.0
    return (value - baseline) / baseline * 100


def mean(values: Sequence[float]) -> float:
    return float(np.mean(values)) if len(values) else 0.0
