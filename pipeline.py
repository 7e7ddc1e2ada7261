"""
pipeline.py
------------
Main orchestration layer. Wires together:
    1. ForecastingEngine     →  one Forecast per requested metric
    2. Anomaly detector      →  Anomalies for the current snapshot
    3. AlertBuilder          →  routable Alerts from those anomalies
    4. InsightsEngine        →  ranked Insights
    5. Output serialization  →  flat DataFrames for rendering or export

The three analyses read the same inputs and never each other's output.
A metric whose forecast cannot be produced (too little history, degenerate
series) is logged and recorded in skipped_forecasts; the rest still run.

Usage:
    from pipeline import MerchantAnalyticsPipeline

    pipeline = MerchantAnalyticsPipeline()
    report = pipeline.run(today, history, competitors)
"""

import logging
from datetime import datetime
from typing import Dict, List, Sequence

import pandas as pd

from config.config_loader import get_forecasting_config
from core.decomposer import detect_seasonality
from core.exceptions import AnalyticsError
from core.models import AnalyticsReport, CompetitorSnapshot, MerchantSnapshot
from core.series import metric_histories_from_snapshots, series_values, snapshots_to_series
from detectors.alerts import AlertBuilder
from detectors.anomaly_detectors import create_detector
from forecasting.forecasting_engine import ForecastingEngine
from insights.insights_engine import InsightsEngine

logger = logging.getLogger(__name__)


DEFAULT_FORECAST_METRICS = ("transactions", "revenue", "customers")


class MerchantAnalyticsPipeline:
    """
    End-to-end analytics for one merchant.

    Orchestrates forecasting → anomaly detection → alerting → insights
    without exposing the engines to callers.
    """

    def __init__(
        self,
        detector_mode: str = "day_aligned",
        forecast_metrics: Sequence[str] = DEFAULT_FORECAST_METRICS,
        days_ahead: int | None = None,
    ):
        """
        Args:
            detector_mode: "day_aligned" or "metric_history".
            forecast_metrics: Metrics to forecast.
            days_ahead: Override default forecast horizon from config.
        """
        self.detector_mode = detector_mode
        self.forecast_metrics = list(forecast_metrics)
        self.days_ahead = days_ahead
        forecasting_config = get_forecasting_config()
        self.seasonality_period = forecasting_config["seasonality_period"]
        self.candidate_periods = tuple(forecasting_config["candidate_periods"])
        self.forecaster = ForecastingEngine()
        self.detector = create_detector(detector_mode)
        self.alert_builder = AlertBuilder()
        self.insights_engine = InsightsEngine()

        logger.info(
            f"Pipeline initialized. "
            f"Detector: {detector_mode}. "
            f"Forecast metrics: {self.forecast_metrics}. "
            f"Horizon: {days_ahead or forecasting_config['default_days_ahead']} days."
        )

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def run(
        self,
        current: MerchantSnapshot,
        historical: Sequence[MerchantSnapshot],
        competitors: Sequence[CompetitorSnapshot] = (),
        generated_at: datetime | None = None,
    ) -> AnalyticsReport:
        """
        Run every analysis for one merchant.

        Args:
            current: Snapshot for the day being analyzed.
            historical: Earlier dated daily snapshots, chronological.
            competitors: Ranked competitor field for the same period.
            generated_at: Timestamp for anomalies and insights. Defaults to now.

        Returns:
            AnalyticsReport with forecasts, anomalies, alerts and insights.
        """
        generated_at = generated_at or datetime.now()
        report = AnalyticsReport(merchant_name=current.merchant_name, generated_at=generated_at)
        logger.info(
            f"Pipeline starting for {current.merchant_name}. "
            f"History: {len(historical):,} days, competitors: {len(competitors):,}."
        )

        # --- Stage 1: Forecasts ---
        self._run_forecasts(list(historical) + [current], report)
        logger.info(
            f"Stage 1 complete. Forecasts: {len(report.forecasts)}, "
            f"skipped: {len(report.skipped_forecasts)}."
        )

        # --- Stage 2: Anomalies + alerts ---
        report.anomalies = self._run_detector(current, historical, generated_at)
        report.alerts = self.alert_builder.build(report.anomalies, current.merchant_name)
        logger.info(f"Stage 2 complete. Anomalies: {len(report.anomalies)}, alerts: {len(report.alerts)}.")

        # --- Stage 3: Insights ---
        report.insights = self.insights_engine.detect_insights(
            current, historical, competitors, detected_at=generated_at
        )
        logger.info(f"Pipeline complete. Insights: {len(report.insights)}.")

        return report

    # -------------------------------------------------------------------------
    # INTERNAL: STAGES
    # -------------------------------------------------------------------------

    def _run_forecasts(self, snapshots: List[MerchantSnapshot], report: AnalyticsReport) -> None:
        for metric in self.forecast_metrics:
            try:
                series = snapshots_to_series(snapshots, metric)
                report.forecasts[metric] = self.forecaster.forecast(series, self.days_ahead)
            except (AnalyticsError, ValueError) as exc:
                logger.warning(f"Forecast skipped for {metric}: {exc}")
                report.skipped_forecasts[metric] = str(exc)
                continue

            period = detect_seasonality(series_values(series), self.candidate_periods)
            if period != self.seasonality_period:
                logger.info(
                    f"{metric}: strongest seasonality is {period} days, "
                    f"forecast assumes {self.seasonality_period}."
                )

    def _run_detector(self, current, historical, generated_at):
        if self.detector_mode == "metric_history":
            try:
                histories = metric_histories_from_snapshots(list(historical) + [current], self.detector.metrics)
            except ValueError as exc:
                logger.warning(f"Anomaly detection skipped for {current.merchant_name}: {exc}")
                return []
            return self.detector.detect(current.merchant_name, histories, detected_at=generated_at)
        return self.detector.detect(current, historical, current.period or generated_at)

    # -------------------------------------------------------------------------
    # OUTPUT SERIALIZATION
    # -------------------------------------------------------------------------

    @staticmethod
    def forecasts_to_frame(report: AnalyticsReport) -> pd.DataFrame:
        """One row per forecast day per metric."""
        columns = ["metric", "date", "forecast", "lower", "upper", "mape", "rmse"]
        rows = []
        for metric, fc in report.forecasts.items():
            for point, lower, upper in zip(fc.forecast, fc.confidence_interval.lower, fc.confidence_interval.upper):
                rows.append({
                    "metric": metric,
                    "date": point.date.isoformat(),
                    "forecast": point.value,
                    "lower": round(lower, 2),
                    "upper": round(upper, 2),
                    "mape": round(fc.accuracy_metrics.mape, 2),
                    "rmse": round(fc.accuracy_metrics.rmse, 2),
                })
        return pd.DataFrame(rows, columns=columns)

    @staticmethod
    def anomalies_to_frame(report: AnalyticsReport) -> pd.DataFrame:
        columns = [
            "id", "metric", "severity", "anomaly_type", "current_value", "expected_value",
            "deviation_stddev", "seasonality_adjusted", "explanation", "recommendation", "detected_at",
        ]
        rows = [
            {
                "id": a.id,
                "metric": a.metric,
                "severity": a.severity,
                "anomaly_type": a.anomaly_type,
                "current_value": a.current_value,
                "expected_value": round(a.expected_value, 2),
                "deviation_stddev": round(a.deviation_stddev, 3),
                "seasonality_adjusted": a.seasonality_adjusted,
                "explanation": a.explanation,
                "recommendation": a.recommendation,
                "detected_at": a.detected_at.isoformat(),
            }
            for a in report.anomalies
        ]
        return pd.DataFrame(rows, columns=columns)

    @staticmethod
    def insights_to_frame(report: AnalyticsReport) -> pd.DataFrame:
        columns = [
            "id", "type", "severity", "title", "metric", "current_value",
            "change_percent", "change_absolute", "confidence", "context", "recommendations",
        ]
        rows = [
            {
                "id": i.id,
                "type": i.type,
                "severity": i.severity,
                "title": i.title,
                "metric": i.metric,
                "current_value": round(i.impact.current_value, 4),
                "change_percent": round(i.impact.change_percent, 2),
                "change_absolute": round(i.impact.change_absolute, 4),
                "confidence": i.confidence,
                "context": i.context,
                "recommendations": " | ".join(i.actionable_recommendations),
            }
            for i in report.insights
        ]
        return pd.DataFrame(rows, columns=columns)

    @staticmethod
    def summary(report: AnalyticsReport) -> Dict[str, int]:
        return {
            "forecasts": len(report.forecasts),
            "skipped_forecasts": len(report.skipped_forecasts),
            "anomalies": len(report.anomalies),
            "critical_anomalies": sum(1 for a in report.anomalies if a.severity == "critical"),
            "alerts": len(report.alerts),
            "insights": len(report.insights),
        }
