"""
test_pipeline.py
-----------------
Integration tests: config loading, the demo data generator and the full
analytics pipeline.

Run from the project root:
    python -m pytest tests/test_pipeline.py -v
"""

import sys
import os
import pytest
import numpy as np
from datetime import date, datetime, timedelta

# Ensure the project root is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config.config_loader import (
    DETECTOR_MODES,
    get_anomaly_detection_config,
    load_config,
    reset_config,
)
from core.models import MerchantSnapshot
from core.series import metric_value, snapshots_to_series
from fixtures.demo_data import generate_competitor_field, generate_daily_snapshots, inject_spike
from pipeline import MerchantAnalyticsPipeline


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def reset_config_cache():
    """Clears config cache before each test for isolation."""
    reset_config()
    yield
    reset_config()


END_DATE = date(2024, 6, 30)
GENERATED_AT = datetime(2024, 6, 30, 23, 0)


def _make_demo(days: int = 60, seed: int = 42, spike: float | None = None):
    """Helper: (current, historical, competitors) from the demo generator."""
    rng = np.random.default_rng(seed)
    snapshots = generate_daily_snapshots("Carrefour Demo", END_DATE, days, rng)
    if spike is not None:
        snapshots = inject_spike(snapshots, spike)
    current = snapshots[-1]
    return current, snapshots[:-1], generate_competitor_field(current, rng)


# =============================================================================
# CONFIG TESTS
# =============================================================================

class TestConfig:
    def test_config_loads_successfully(self):
        config = load_config()
        for section in ("currency", "forecasting", "anomaly_detection", "anomaly_recommendations", "alerts", "insights"):
            assert section in config

    def test_every_detector_mode_configured(self):
        for mode in DETECTOR_MODES:
            assert "metrics" in get_anomaly_detection_config(mode)

    def test_missing_mode_raises(self):
        with pytest.raises(KeyError):
            get_anomaly_detection_config("nonexistent")


# =============================================================================
# SERIES CONVERSION TESTS
# =============================================================================

class TestSeriesConversion:
    def test_derived_metrics(self):
        snap = MerchantSnapshot("M", 50, 100000, 40, 5000, 5.0, 2000.0)
        assert metric_value(snap, "cashback") == 5000
        assert metric_value(snap, "avg_transaction") == 2000
        assert metric_value(snap, "cashback_rate") == pytest.approx(5.0)

    def test_ratio_metrics_zero_denominator(self):
        snap = MerchantSnapshot("M", 0, 0, 0, 0, 5.0, 0.0)
        assert metric_value(snap, "avg_transaction") == 0.0
        assert metric_value(snap, "cashback_rate") == 0.0

    def test_unknown_metric_raises(self):
        with pytest.raises(KeyError):
            metric_value(MerchantSnapshot("M", 1, 1, 1, 1, 1.0, 1.0), "bogus")

    def test_series_sorted_by_date(self):
        snaps = [
            MerchantSnapshot("M", n, 0, 0, 0, 0.0, 0.0, period=date(2024, 6, d))
            for n, d in ((3, 3), (1, 1), (2, 2))
        ]
        assert [p.value for p in snapshots_to_series(snaps, "transactions")] == [1, 2, 3]

    def test_undated_snapshots_raise(self):
        with pytest.raises(ValueError):
            snapshots_to_series([MerchantSnapshot("M", 1, 1, 1, 1, 1.0, 1.0)], "transactions")


# =============================================================================
# DEMO DATA TESTS
# =============================================================================

class TestDemoData:
    def test_same_seed_is_reproducible(self):
        first = generate_daily_snapshots("M", END_DATE, 30, np.random.default_rng(7))
        second = generate_daily_snapshots("M", END_DATE, 30, np.random.default_rng(7))
        assert first == second

    def test_contiguous_days_ending_on_end_date(self):
        snaps = generate_daily_snapshots("M", END_DATE, 30, np.random.default_rng(1))
        assert len(snaps) == 30
        assert snaps[-1].period == END_DATE
        for prev, nxt in zip(snaps, snaps[1:]):
            assert nxt.period - prev.period == timedelta(days=1)

    def test_snapshot_fields_consistent(self):
        for snap in generate_daily_snapshots("M", END_DATE, 30, np.random.default_rng(3)):
            assert snap.transactions >= 0
            assert snap.customers <= snap.transactions
            assert 0 <= snap.returning_customers <= snap.customers

    def test_competitor_field_is_ranked(self):
        current, _, field = _make_demo(days=14)
        assert [c.rank for c in field] == list(range(1, len(field) + 1))
        assert sum(c.is_you for c in field) == 1
        assert all(c.period == current.period for c in field)
        revenues = [c.revenue for c in field]
        assert revenues == sorted(revenues, reverse=True)

    def test_inject_spike_only_touches_last_day(self):
        snaps = generate_daily_snapshots("M", END_DATE, 10, np.random.default_rng(5))
        spiked = inject_spike(snaps, 3.0)
        assert spiked[:-1] == snaps[:-1]
        assert spiked[-1].transactions == round(snaps[-1].transactions * 3.0)


# =============================================================================
# FULL PIPELINE TESTS
# =============================================================================

class TestMerchantAnalyticsPipeline:
    def test_pipeline_runs_end_to_end(self):
        current, historical, competitors = _make_demo()
        report = MerchantAnalyticsPipeline().run(current, historical, competitors, GENERATED_AT)

        assert report.merchant_name == "Carrefour Demo"
        assert report.generated_at == GENERATED_AT
        assert set(report.forecasts) == {"transactions", "revenue", "customers"}
        assert report.skipped_forecasts == {}
        assert len(report.insights) <= 10

    def test_forecasts_start_after_current_day(self):
        current, historical, competitors = _make_demo()
        report = MerchantAnalyticsPipeline(days_ahead=5).run(current, historical, competitors, GENERATED_AT)
        for fc in report.forecasts.values():
            assert len(fc.forecast) == 5
            assert fc.forecast[0].date == END_DATE + timedelta(days=1)

    def test_short_history_skips_forecasts(self):
        current, historical, competitors = _make_demo(days=10)
        report = MerchantAnalyticsPipeline().run(current, historical, competitors, GENERATED_AT)

        assert report.forecasts == {}
        assert set(report.skipped_forecasts) == {"transactions", "revenue", "customers"}
        assert "Need at least 14" in report.skipped_forecasts["transactions"]
        assert report.anomalies == []

    def test_spike_raises_critical_alert(self):
        current, historical, competitors = _make_demo(spike=3.0)
        report = MerchantAnalyticsPipeline().run(current, historical, competitors, GENERATED_AT)

        transactions = next(a for a in report.anomalies if a.metric == "transactions")
        assert transactions.severity == "critical"
        assert transactions.anomaly_type == "spike"
        assert transactions.seasonality_adjusted is True
        assert len(report.alerts) == len(report.anomalies)
        alert = next(a for a in report.alerts if a.metric == "transactions")
        assert "mobile" in alert.channels_sent

    def test_metric_history_mode(self):
        current, historical, competitors = _make_demo(spike=3.0)
        pipeline = MerchantAnalyticsPipeline(detector_mode="metric_history")
        report = pipeline.run(current, historical, competitors, GENERATED_AT)

        transactions = next(a for a in report.anomalies if a.metric == "transactions")
        assert transactions.severity == "critical"
        assert transactions.merchant_id == "Carrefour Demo"
        assert transactions.recommendation

    def test_unknown_mode_raises(self):
        with pytest.raises(KeyError):
            MerchantAnalyticsPipeline(detector_mode="nonexistent")

    def test_is_deterministic(self):
        current, historical, competitors = _make_demo(spike=2.0)
        pipeline = MerchantAnalyticsPipeline()
        assert pipeline.run(current, historical, competitors, GENERATED_AT) == pipeline.run(
            current, historical, competitors, GENERATED_AT
        )

    def test_frames(self):
        current, historical, competitors = _make_demo(spike=3.0)
        pipeline = MerchantAnalyticsPipeline()
        report = pipeline.run(current, historical, competitors, GENERATED_AT)

        forecasts = pipeline.forecasts_to_frame(report)
        assert len(forecasts) == 3 * 7
        assert {"metric", "date", "forecast", "lower", "upper"}.issubset(forecasts.columns)
        assert (forecasts["lower"] <= forecasts["upper"]).all()

        anomalies = pipeline.anomalies_to_frame(report)
        assert len(anomalies) == len(report.anomalies)

        insights = pipeline.insights_to_frame(report)
        assert len(insights) == len(report.insights)

    def test_empty_frames_keep_columns(self):
        current, historical, competitors = _make_demo(days=10)
        pipeline = MerchantAnalyticsPipeline()
        report = pipeline.run(current, historical, competitors, GENERATED_AT)
        assert pipeline.forecasts_to_frame(report).empty
        assert "severity" in pipeline.anomalies_to_frame(report).columns

    def test_summary_counts(self):
        current, historical, competitors = _make_demo(spike=3.0)
        pipeline = MerchantAnalyticsPipeline()
        report = pipeline.run(current, historical, competitors, GENERATED_AT)
        summary = pipeline.summary(report)
        assert summary["forecasts"] == 3
        assert summary["anomalies"] == len(report.anomalies)
        assert summary["critical_anomalies"] >= 1
