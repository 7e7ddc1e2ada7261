"""
decomposer.py
--------------
Additive time-series decomposition: value = trend + seasonal + residual.

    1. Trend: centred moving average over a 7-point (weekly) window. Near the
       edges the window is truncated rather than padded, so the first and
       last three points are smoothed over fewer values.
    2. Detrend: value - trend.
    3. Seasonal: average of the detrended values sharing a phase (i mod 7),
       broadcast back to every index with that phase. Fewer than one full
       period of data leaves the seasonal component at zero.
    4. Residual: value - trend - seasonal.

The decomposer does not enforce a minimum length; the forecasting engine
requires 14 points before calling it.
"""

from typing import Sequence

import numpy as np
import pandas as pd

from core.models import Decomposition
from core.statistics import autocorrelation


class TimeSeriesDecomposer:
    """
    Usage:
        decomposer = TimeSeriesDecomposer()
        parts = decomposer.decompose(values)
    """

    def __init__(self, window: int = 7, period: int = 7):
        self.window = window
        self.period = period

    def decompose(self, values: Sequence[float]) -> Decomposition:
        series = pd.Series(np.asarray(values, dtype=float))
        n = len(series)

        if n == 0:
            return Decomposition(trend=[], seasonal=[], residual=[], seasonality_period=self.period)

        # Centred window [i - w//2, i + w//2], truncated at both ends.
        trend = series.rolling(self.window, center=True, min_periods=1).mean()

        detrended = series - trend

        if n >= self.period:
            phase = pd.Series(np.arange(n) % self.period)
            seasonal = detrended.groupby(phase).transform("mean")
        else:
            seasonal = pd.Series(np.zeros(n))

        residual = series - trend - seasonal

        return Decomposition(
            trend=trend.tolist(),
            seasonal=seasonal.tolist(),
            residual=residual.tolist(),
            seasonality_period=self.period,
        )


def detect_seasonality(values: Sequence[float], candidates: Sequence[int] = (7, 30)) -> int:
    """
    Picks the candidate period with the strongest autocorrelation.

    Candidates need at least two full cycles of data to be considered.
    Falls back to weekly (7) when nothing scores above zero.
    """
    best_period = 7
    best_score = 0.0
    for period in candidates:
        if len(values) < period * 2:
            continue
        score = autocorrelation(values, period)
        if score > best_score:
            best_score = score
            best_period = period
    return best_period
