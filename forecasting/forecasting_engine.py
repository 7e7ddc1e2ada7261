"""
forecasting_engine.py
----------------------
Short-horizon forecasts for a single merchant metric.

Pipeline per call:
    1. Decompose the historical values (trend / weekly seasonal / residual).
    2. Fit a straight line to the trend and project it forward.
    3. Add back the average seasonal effect for each forecast day's phase.
    4. Build a confidence band from the residual spread. The band widens
       with distance into the horizon.
    5. Score the in-sample fit (MAPE, RMSE).

Thresholds (minimum history, default horizon, confidence level) come from
config.yaml unless passed in.
"""

import logging
import math
from typing import Any, Dict, List, Sequence

import pandas as pd

from config.config_loader import get_forecasting_config
from core.decomposer import TimeSeriesDecomposer
from core.exceptions import InsufficientHistoryError
from core.models import (
    AccuracyMetrics,
    ConfidenceInterval,
    Decomposition,
    Forecast,
    MetricSeries,
    TimeSeriesPoint,
)
from core.statistics import (
    average,
    interval_half_width,
    linear_regression,
    std_dev,
    z_for_confidence,
)

logger = logging.getLogger(__name__)


class ForecastingEngine:
    """
    Usage:
        engine = ForecastingEngine()
        result = engine.forecast(series, days_ahead=7)
    """

    def __init__(self, config: Dict[str, Any] | None = None, confidence_level: float | None = None):
        self.config = config or get_forecasting_config()
        self.min_history_points = self.config["min_history_points"]
        self.default_days_ahead = self.config["default_days_ahead"]
        self.confidence_level = confidence_level or self.config["confidence_level"]
        self.z = z_for_confidence(self.confidence_level)
        self.methodology = self.config["methodology"]
        self.decomposer = TimeSeriesDecomposer(
            window=self.config["trend_window"],
            period=self.config["seasonality_period"],
        )

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def forecast(self, series: MetricSeries, days_ahead: int | None = None) -> Forecast:
        """
        Forecast the next `days_ahead` days of a metric.

        Args:
            series: Chronological, contiguous daily points for one metric.
            days_ahead: Horizon in days. Defaults to config value.

        Returns:
            Forecast with exactly `days_ahead` points starting the day after
            the last historical date.

        Raises:
            InsufficientHistoryError: Fewer points than min_history_points.
            ValueError: days_ahead < 1.
        """
        if days_ahead is None:
            days_ahead = self.default_days_ahead
        if days_ahead < 1:
            raise ValueError(f"days_ahead must be at least 1, got {days_ahead}.")
        if len(series) < self.min_history_points:
            raise InsufficientHistoryError(
                self.min_history_points, len(series), what="days of history for forecasting"
            )

        metric = series[0].metric
        values = [p.value for p in series]

        decomposition = self.decomposer.decompose(values)
        trend_projection = self._project_trend(decomposition.trend, days_ahead)
        projected = self._apply_seasonality(
            trend_projection, decomposition.seasonal, decomposition.seasonality_period
        )

        sigma = std_dev(decomposition.residual)
        interval = self._confidence_interval(projected, sigma, days_ahead)

        forecast_dates = pd.date_range(
            start=pd.Timestamp(series[-1].date) + pd.Timedelta(days=1),
            periods=days_ahead,
            freq="D",
        )
        forecast_points = [
            TimeSeriesPoint(date=ts.date(), value=max(0, round(value)), metric=metric)
            for ts, value in zip(forecast_dates, projected)
        ]

        accuracy = self._accuracy_metrics(values, decomposition)

        logger.debug(
            f"Forecast for {metric}: {len(series)} points in, {days_ahead} out. "
            f"Residual sigma={sigma:.2f}, MAPE={accuracy.mape:.1f}%, RMSE={accuracy.rmse:.2f}."
        )

        return Forecast(
            metric=metric,
            historical=list(series),
            forecast=forecast_points,
            confidence_interval=interval,
            accuracy_metrics=accuracy,
            methodology=self.methodology,
        )

    # -------------------------------------------------------------------------
    # INTERNAL: PROJECTION
    # -------------------------------------------------------------------------

    @staticmethod
    def _project_trend(trend: Sequence[float], steps: int) -> List[float]:
        """Linear fit over x = 0..n-1, evaluated at n..n+steps-1."""
        n = len(trend)
        slope, intercept = linear_regression(list(range(n)), trend)
        return [slope * (n + i) + intercept for i in range(steps)]

    @staticmethod
    def _apply_seasonality(trend_projection: Sequence[float], seasonal: Sequence[float], period: int) -> List[float]:
        """Adds the mean historical seasonal value for each step's phase."""
        n = len(seasonal)
        projected = []
        for i, trend_value in enumerate(trend_projection):
            phase = (n + i) % period
            projected.append(trend_value + average(seasonal[phase::period]))
        return projected

    def _confidence_interval(self, projected: Sequence[float], sigma: float, horizon: int) -> ConfidenceInterval:
        lower, upper = [], []
        for i, value in enumerate(projected):
            half_width = interval_half_width(sigma, self.z, i, horizon)
            low = max(0.0, value - half_width)
            # Clamping at 0 shifts the band up rather than narrowing it.
            lower.append(low)
            upper.append(max(value + half_width, low + 2 * half_width))
        return ConfidenceInterval(lower=lower, upper=upper)

    # -------------------------------------------------------------------------
    # INTERNAL: ACCURACY
    # -------------------------------------------------------------------------

    @staticmethod
    def _accuracy_metrics(actual: Sequence[float], decomposition: Decomposition) -> AccuracyMetrics:
        """
        In-sample fit of trend + seasonal against the actuals.

        MAPE skips days whose actual value is 0 (percentage error is undefined
        there) and is 0.0 when every actual is 0.
        """
        fitted = [t + s for t, s in zip(decomposition.trend, decomposition.seasonal)]

        percentage_errors = [
            abs(a - f) / abs(a) * 100 for a, f in zip(actual, fitted) if a != 0
        ]
        mape = average(percentage_errors)

        squared_errors = [(a - f) ** 2 for a, f in zip(actual, fitted)]
        rmse = math.sqrt(average(squared_errors))

        return AccuracyMetrics(mape=mape, rmse=rmse)
