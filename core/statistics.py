"""
statistics.py
--------------
Pure statistical helpers shared by the decomposer, the forecasting engine,
both anomaly detectors and the insight rules.

Empty-input policy: average() and std_dev() return 0.0 for empty input
("no signal"). Call sites that need a minimum number of points check it
themselves before calling.
"""

import math
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

import numpy as np
from scipy import stats

from core.exceptions import DegenerateInputError


@dataclass(frozen=True)
class BaselineComparison:
    """Where a value sits relative to a baseline distribution."""
    mean: float
    std_dev: float
    z_score: float


def average(values: Sequence[float]) -> float:
    """Arithmetic mean. 0.0 for empty input."""
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=float)))


def std_dev(values: Sequence[float]) -> float:
    """Population standard deviation. 0.0 for empty or single-element input."""
    if len(values) < 2:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float), ddof=0))


def linear_regression(x: Sequence[float], y: Sequence[float]) -> tuple[float, float]:
    """
    Ordinary least squares via the closed-form sums formula.

        slope = (nΣxy - ΣxΣy) / (nΣx² - (Σx)²)
        intercept = (Σy - slope·Σx) / n

    Returns:
        (slope, intercept)

    Raises:
        DegenerateInputError: lengths differ, fewer than 2 points, or all x equal.
    """
    if len(x) != len(y):
        raise DegenerateInputError(f"x and y lengths differ ({len(x)} vs {len(y)}).")
    n = len(x)
    if n < 2:
        raise DegenerateInputError(f"Regression needs at least 2 points, got {n}.")

    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    sum_x = xs.sum()
    sum_y = ys.sum()
    sum_xy = (xs * ys).sum()
    sum_x2 = (xs * xs).sum()

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        raise DegenerateInputError("Regression x values are all equal.")

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    return float(slope), float(intercept)


def z_score(value: float, mean: float, std: float) -> float:
    """(value - mean) / std. Raises DegenerateInputError when std is 0."""
    if std == 0:
        raise DegenerateInputError("Standard deviation is zero; z-score undefined.")
    return (value - mean) / std


def compare_to_baseline(value: float, baseline: Sequence[float]) -> Optional[BaselineComparison]:
    """
    Scores a value against a baseline sample.

    Returns None when the baseline is empty or has no variation, since a
    flat baseline cannot make anything anomalous.
    """
    if len(baseline) == 0:
        return None
    mean = average(baseline)
    std = std_dev(baseline)
    try:
        z = z_score(value, mean, std)
    except DegenerateInputError:
        return None
    return BaselineComparison(mean=mean, std_dev=std, z_score=z)


def band_severity(abs_z: float, thresholds: Mapping[str, float]) -> Optional[str]:
    """
    Maps |z| to the most severe band whose threshold it reaches.

    Args:
        abs_z: Absolute z-score.
        thresholds: Band name -> minimum |z|, in any order.

    Returns:
        Band name, or None if |z| is below every threshold.
    """
    for name, minimum in sorted(thresholds.items(), key=lambda kv: kv[1], reverse=True):
        if abs_z >= minimum:
            return name
    return None


def z_for_confidence(level: float) -> float:
    """Two-sided normal critical value. 0.95 -> 1.96."""
    if not 0 < level < 1:
        raise ValueError(f"Confidence level must be in (0, 1), got {level}.")
    return round(float(stats.norm.ppf(0.5 + level / 2)), 2)


def interval_half_width(sigma: float, z: float, step: int, horizon: int) -> float:
    """Half width of the forecast band at `step`; grows with distance into the horizon."""
    return sigma * z * math.sqrt(1 + step / horizon)


def autocorrelation(values: Sequence[float], lag: int) -> float:
    """Lag-k autocorrelation around the series mean. 0.0 when the series is flat."""
    xs = np.asarray(values, dtype=float)
    n = len(xs)
    if lag <= 0 or lag >= n:
        return 0.0
    centred = xs - xs.mean()
    denominator = float((centred ** 2).sum())
    if denominator == 0:
        return 0.0
    numerator = float((centred[: n - lag] * centred[lag:]).sum())
    return numerator / denominator


def percent_change(current: float, baseline: float) -> Optional[float]:
    """Relative change as a fraction. None when the baseline is 0."""
    if baseline == 0:
        return None
    return (current - baseline) / baseline
