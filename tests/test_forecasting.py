"""
test_forecasting.py
--------------------
Tests for time-series decomposition, seasonality detection and the
forecasting engine.

Run from the project root:
    python -m pytest tests/test_forecasting.py -v
"""

import sys
import os
import math
import pytest
from datetime import date, timedelta

# Ensure the project root is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config.config_loader import get_forecasting_config, reset_config
from core.decomposer import TimeSeriesDecomposer, detect_seasonality
from core.exceptions import InsufficientHistoryError
from core.models import TimeSeriesPoint
from core.series import series_to_frame
from core.statistics import interval_half_width
from forecasting.forecasting_engine import ForecastingEngine


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def reset_config_cache():
    """Clears config cache before each test for isolation."""
    reset_config()
    yield
    reset_config()


WEEKLY = [0, 40, 25, -10, 60, 120, -30]


def _make_values(n: int = 28, level: float = 1000.0, slope: float = 10.0) -> list:
    """Helper: linear trend + weekly pattern + a deterministic non-periodic wobble."""
    return [level + slope * i + WEEKLY[i % 7] + (i * 37) % 11 for i in range(n)]


def _make_series(values, metric: str = "transactions", start: date = date(2024, 5, 1)) -> list:
    """Helper: wraps values as a contiguous daily MetricSeries."""
    return [
        TimeSeriesPoint(date=start + timedelta(days=i), value=v, metric=metric)
        for i, v in enumerate(values)
    ]


# =============================================================================
# DECOMPOSITION TESTS
# =============================================================================

class TestDecomposer:
    def test_components_reconstruct_values(self):
        values = _make_values(35)
        parts = TimeSeriesDecomposer().decompose(values)
        for i, v in enumerate(values):
            assert abs(parts.trend[i] + parts.seasonal[i] + parts.residual[i] - v) < 1e-9

    def test_reconstruction_with_zeros(self):
        values = [0, 0, 5, 0, 12, 0, 0, 3, 0, 0, 0, 7, 0, 1, 0]
        parts = TimeSeriesDecomposer().decompose(values)
        for i, v in enumerate(values):
            assert abs(parts.trend[i] + parts.seasonal[i] + parts.residual[i] - v) < 1e-9

    def test_seasonal_is_periodic(self):
        parts = TimeSeriesDecomposer().decompose(_make_values(30))
        for i in range(len(parts.seasonal) - 7):
            assert parts.seasonal[i] == parts.seasonal[i + 7]

    def test_components_align_with_input(self):
        parts = TimeSeriesDecomposer().decompose(_make_values(20))
        assert len(parts.trend) == len(parts.seasonal) == len(parts.residual) == 20
        assert parts.seasonality_period == 7

    def test_trend_is_centred_truncated_average(self):
        values = list(range(10))
        trend = TimeSeriesDecomposer().decompose(values).trend
        # Index 0 averages [0..3], index 5 averages [2..8], index 9 averages [6..9]
        assert trend[0] == pytest.approx(1.5)
        assert trend[5] == pytest.approx(5.0)
        assert trend[9] == pytest.approx(7.5)

    def test_short_series_has_no_seasonality(self):
        parts = TimeSeriesDecomposer().decompose([5, 9, 2, 7, 4])
        assert parts.seasonal == [0.0] * 5

    def test_empty_series(self):
        parts = TimeSeriesDecomposer().decompose([])
        assert parts.trend == [] and parts.seasonal == [] and parts.residual == []


class TestSeasonalityDetection:
    def test_weekly_pattern(self):
        assert detect_seasonality([WEEKLY[i % 7] for i in range(28)]) == 7

    def test_monthly_pattern(self):
        values = [100 + 50 * math.sin(2 * math.pi * i / 30) for i in range(90)]
        assert detect_seasonality(values) == 30

    def test_monthly_candidate_needs_two_cycles(self):
        values = [100 + 50 * math.sin(2 * math.pi * i / 30) for i in range(45)]
        assert detect_seasonality(values) == 7

    def test_flat_series_falls_back_to_weekly(self):
        assert detect_seasonality([10] * 70) == 7


# =============================================================================
# FORECASTING ENGINE TESTS
# =============================================================================

class TestForecastingEngine:
    def test_default_horizon_and_dates(self):
        series = _make_series(_make_values(28))
        result = ForecastingEngine().forecast(series)

        assert len(result.forecast) == get_forecasting_config()["default_days_ahead"]
        assert result.forecast[0].date == series[-1].date + timedelta(days=1)
        for prev, nxt in zip(result.forecast, result.forecast[1:]):
            assert nxt.date - prev.date == timedelta(days=1)
        assert all(p.metric == "transactions" for p in result.forecast)

    def test_custom_horizon(self):
        result = ForecastingEngine().forecast(_make_series(_make_values(28)), days_ahead=14)
        assert len(result.forecast) == 14
        assert len(result.confidence_interval.lower) == 14
        assert len(result.confidence_interval.upper) == 14

    def test_follows_upward_trend(self):
        values = _make_values(42)
        result = ForecastingEngine().forecast(_make_series(values), days_ahead=7)
        assert average_of(p.value for p in result.forecast) > average_of(values[-7:])

    def test_confidence_interval_widens(self):
        result = ForecastingEngine().forecast(_make_series(_make_values(28)), days_ahead=7)
        ci = result.confidence_interval
        widths = [u - l for l, u in zip(ci.lower, ci.upper)]
        assert widths[0] > 0
        assert all(b >= a for a, b in zip(widths, widths[1:]))
        assert widths[-1] > widths[0]

    def test_clamped_band_keeps_widening(self):
        engine = ForecastingEngine()
        projected = [30.0, 20.0, 10.0, 0.0, -10.0, -20.0, -30.0]
        ci = engine._confidence_interval(projected, sigma=15.0, horizon=7)
        widths = [u - l for l, u in zip(ci.lower, ci.upper)]

        assert ci.lower[-1] == 0.0
        assert all(low >= 0 for low in ci.lower)
        assert all(b >= a for a, b in zip(widths, widths[1:]))
        for i, width in enumerate(widths):
            assert width == pytest.approx(2 * interval_half_width(15.0, engine.z, i, 7))

    def test_declining_series_band_never_narrows(self):
        values = [max(0, 60 - 2 * i) + WEEKLY[i % 7] + (37 * i) % 23 for i in range(28)]
        result = ForecastingEngine().forecast(_make_series(values), days_ahead=7)
        ci = result.confidence_interval
        widths = [u - l for l, u in zip(ci.lower, ci.upper)]

        assert all(low >= 0 for low in ci.lower)
        assert all(b >= a - 1e-9 for a, b in zip(widths, widths[1:]))

    def test_interval_brackets_projection(self):
        result = ForecastingEngine().forecast(_make_series(_make_values(28)))
        ci = result.confidence_interval
        for point, low, high in zip(result.forecast, ci.lower, ci.upper):
            assert low - 1 <= point.value <= high + 1

    def test_non_negative_on_collapsing_series(self):
        values = [max(0, 200 - 9 * i) for i in range(28)]
        result = ForecastingEngine().forecast(_make_series(values), days_ahead=10)
        assert all(p.value >= 0 for p in result.forecast)
        assert all(low >= 0 for low in result.confidence_interval.lower)

    def test_forecast_values_are_whole_numbers(self):
        result = ForecastingEngine().forecast(_make_series(_make_values(28)))
        assert all(float(p.value).is_integer() for p in result.forecast)

    def test_all_zero_series(self):
        result = ForecastingEngine().forecast(_make_series([0] * 21))
        assert all(p.value == 0 for p in result.forecast)
        assert result.accuracy_metrics.mape == 0.0
        assert result.accuracy_metrics.rmse == 0.0

    def test_mape_skips_zero_actuals(self):
        values = _make_values(28)
        values[3] = 0
        result = ForecastingEngine().forecast(_make_series(values))
        assert math.isfinite(result.accuracy_metrics.mape)
        assert result.accuracy_metrics.mape >= 0

    def test_accuracy_metrics_reasonable(self):
        result = ForecastingEngine().forecast(_make_series(_make_values(42)))
        assert 0 <= result.accuracy_metrics.mape < 10
        assert result.accuracy_metrics.rmse >= 0

    def test_keeps_history_and_methodology(self):
        series = _make_series(_make_values(28), metric="revenue")
        result = ForecastingEngine().forecast(series)
        assert result.metric == "revenue"
        assert result.historical == series
        assert result.methodology == get_forecasting_config()["methodology"]

    def test_insufficient_history_raises(self):
        with pytest.raises(InsufficientHistoryError) as exc_info:
            ForecastingEngine().forecast(_make_series(_make_values(13)))
        assert exc_info.value.required == 14
        assert exc_info.value.actual == 13

    def test_invalid_horizon_raises(self):
        with pytest.raises(ValueError):
            ForecastingEngine().forecast(_make_series(_make_values(28)), days_ahead=0)

    def test_wider_confidence_level_widens_interval(self):
        series = _make_series(_make_values(28))
        narrow = ForecastingEngine(confidence_level=0.80).forecast(series)
        wide = ForecastingEngine(confidence_level=0.99).forecast(series)
        narrow_width = narrow.confidence_interval.upper[0] - narrow.confidence_interval.lower[0]
        wide_width = wide.confidence_interval.upper[0] - wide.confidence_interval.lower[0]
        assert wide_width > narrow_width

    def test_is_deterministic(self):
        series = _make_series(_make_values(28))
        engine = ForecastingEngine()
        assert engine.forecast(series) == engine.forecast(series)


class TestSeriesFrame:
    def test_series_to_frame(self):
        frame = series_to_frame(_make_series([1, 2, 3]))
        assert list(frame.columns) == ["date", "value", "metric"]
        assert len(frame) == 3
        assert frame["value"].tolist() == [1, 2, 3]


def average_of(values) -> float:
    values = list(values)
    return sum(values) / len(values)
