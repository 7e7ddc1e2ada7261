"""
anomaly_detectors.py
---------------------
Concrete anomaly detectors. Two baseline policies over one scoring core
(BaseAnomalyDetector):

    MetricHistoryDetector ("metric_history")
        Per-metric daily history. Baseline = every point but the latest.
        Four severity bands (low / medium / high / critical) and a
        spike / drop / trend_change / unusual_pattern classification with a
        recommendation per metric x type, read from config.yaml.

    DayAlignedDetector ("day_aligned")
        Current snapshot vs historical snapshots. Baseline = the same weekday
        when at least three such days exist, else the full history. Stricter
        significance (|z| > 2) and three severity bands (info / warning /
        critical) with a lower bar for transactions and revenue.

Use create_detector(mode) to pick one.
"""

import logging
from datetime import date, datetime, time
from typing import Any, Dict, List, Mapping, Sequence

from config.config_loader import get_anomaly_recommendations
from core.models import Anomaly, MerchantSnapshot, MetricSeries
from core.series import format_metric_value, metric_value
from core.statistics import average, band_severity
from detectors.base_detector import BaseAnomalyDetector

logger = logging.getLogger(__name__)


# =============================================================================
# MODE A: PER-METRIC HISTORY
# =============================================================================
class MetricHistoryDetector(BaseAnomalyDetector):
    """
    Flags the latest point of each tracked metric when it sits at least
    `thresholds.low` standard deviations from the mean of the earlier points.

    Usage:
        detector = MetricHistoryDetector()
        anomalies = detector.detect("merchant-1", {"transactions": series, ...})
    """

    severity_order = ("critical", "high", "medium", "low")

    def __init__(self, config: Dict[str, Any] | None = None, recommendations: Dict[str, Dict[str, str]] | None = None):
        super().__init__("metric_history", config)
        self.metrics = self.config["metrics"]
        self.min_data_points = self.config["min_data_points"]
        self.baseline_days = self.config["baseline_days"]
        self.thresholds = self.config["thresholds"]
        self.metric_labels = self.config["metric_labels"]
        self.trend_window = self.config["trend_change_window"]
        self.trend_change_percent = self.config["trend_change_percent"]
        self.recommendations = recommendations or get_anomaly_recommendations()

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def detect(
        self,
        merchant_id: str,
        metric_histories: Mapping[str, MetricSeries],
        detected_at: datetime | None = None,
    ) -> List[Anomaly]:
        """
        Args:
            merchant_id: Carried onto each Anomaly.
            metric_histories: metric name -> chronological daily series. The
                last point is the value under test. Missing metrics are skipped.
            detected_at: Timestamp for the results. Defaults to now.

        Returns:
            Anomalies, most severe first. Metrics with too little history or
            no variation are skipped.
        """
        detected_at = detected_at or datetime.now()
        anomalies: List[Anomaly] = []

        for metric in self.metrics:
            history = list(metric_histories.get(metric, []))[-self.baseline_days:]
            if len(history) < self.min_data_points:
                logger.debug(
                    f"Skipping {metric} for {merchant_id}: {len(history)} points, "
                    f"need {self.min_data_points}."
                )
                continue

            anomaly = self._detect_metric(merchant_id, metric, history, detected_at)
            if anomaly is not None:
                anomalies.append(anomaly)

        return self._sort(anomalies)

    # -------------------------------------------------------------------------
    # INTERNAL
    # -------------------------------------------------------------------------

    def _detect_metric(
        self, merchant_id: str, metric: str, history: MetricSeries, detected_at: datetime
    ) -> Anomaly | None:
        values = [p.value for p in history]
        latest = values[-1]

        comparison = self._score(latest, values[:-1])
        if comparison is None:
            logger.debug(f"Skipping {metric} for {merchant_id}: baseline has no variation.")
            return None

        severity = self._determine_severity(metric, comparison.z_score)
        if severity is None:
            return None

        anomaly_type = self._classify(latest, comparison.mean, values)
        description = self._describe(metric, anomaly_type, latest, comparison.mean, comparison.z_score)

        return Anomaly(
            metric=metric,
            detected_at=detected_at,
            current_value=latest,
            expected_value=comparison.mean,
            deviation_stddev=comparison.z_score,
            is_significant=True,
            seasonality_adjusted=False,
            explanation=description,
            severity=severity,
            id=f"anomaly-{merchant_id}-{metric}-{history[-1].date.isoformat()}",
            anomaly_type=anomaly_type,
            merchant_id=merchant_id,
            recommendation=self.recommendations[metric][anomaly_type],
        )

    def _determine_severity(self, metric: str, z: float) -> str | None:
        return band_severity(abs(z), self.thresholds)

    def _classify(self, latest: float, expected: float, values: Sequence[float]) -> str:
        """
        trend_change when the baseline itself shifted: the average of the
        `trend_window` points before the latest differs from the window before
        that by more than trend_change_percent. Otherwise by direction.
        """
        baseline = values[:-1]
        w = self.trend_window
        if len(baseline) >= 2 * w:
            recent_avg = average(baseline[-w:])
            previous_avg = average(baseline[-2 * w:-w])
            if previous_avg != 0:
                shift = (recent_avg - previous_avg) / previous_avg * 100
                if abs(shift) > self.trend_change_percent:
                    return "trend_change"

        if latest > expected:
            return "spike"
        if latest < expected:
            return "drop"
        return "unusual_pattern"

    def _describe(self, metric: str, anomaly_type: str, value: float, expected: float, z: float) -> str:
        label = self.metric_labels.get(metric, metric)
        title_label = label[:1].upper() + label[1:]
        pct = self._percent_difference(value, expected)
        pct_text = f"{pct:.1f}% " if pct is not None else ""
        shown = format_metric_value(metric, value, self.currency)
        shown_expected = format_metric_value(metric, expected, self.currency)

        if anomaly_type == "spike":
            return f"{title_label} spiked {pct_text}above expected ({shown} vs {shown_expected} expected)"
        if anomaly_type == "drop":
            return f"{title_label} dropped {pct_text}below expected ({shown} vs {shown_expected} expected)"
        if anomaly_type == "trend_change":
            direction = "upward" if z > 0 else "downward"
            return f"Significant trend change detected in {label} - {direction} shift of {pct_text or 'unknown size '}".rstrip()
        return f"Unusual pattern detected in {label} - deviation of {pct_text or 'unknown size '}from normal"


# =============================================================================
# MODE B: DAY-OF-WEEK ALIGNED
# =============================================================================
class DayAlignedDetector(BaseAnomalyDetector):
    """
    Compares today's snapshot with the same weekday in the history.

    Same-weekday days are found from each snapshot's period date when every
    historical snapshot has one. Undated history is assumed to be a
    contiguous daily series ending the day before `date`, so the same weekday
    falls every 7th position counting back from the end.

    Usage:
        detector = DayAlignedDetector()
        anomalies = detector.detect(today, history, date(2024, 6, 3))
    """

    severity_order = ("critical", "warning", "info")

    WEEKEND_NOTE = " Note: Weekend patterns can differ from weekdays."

    def __init__(self, config: Dict[str, Any] | None = None):
        super().__init__("day_aligned", config)
        self.metrics = self.config["metrics"]
        self.min_history = self.config["min_history"]
        self.min_same_day_points = self.config["min_same_day_points"]
        self.significance_z = self.config["significance_z"]
        self.critical_z = self.config["critical_z"]
        self.warning_z = self.config["warning_z"]
        self.critical_metric_warning_z = self.config["critical_metric_warning_z"]
        self.critical_metrics = set(self.config["critical_metrics"])

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def detect(
        self,
        current: MerchantSnapshot,
        historical: Sequence[MerchantSnapshot],
        date: date | datetime | None = None,
    ) -> List[Anomaly]:
        """
        Args:
            current: Snapshot under test.
            historical: Earlier daily snapshots, chronological.
            date: Day the current snapshot covers. Defaults to current.period,
                then today.

        Returns:
            Anomalies for transactions, revenue, customers and cashback_paid,
            most severe first. Empty when history is shorter than min_history.
        """
        if len(historical) < self.min_history:
            logger.debug(
                f"Skipping anomaly detection for {current.merchant_name}: "
                f"{len(historical)} historical snapshots, need {self.min_history}."
            )
            return []

        detected_at = self._as_datetime(date if date is not None else current.period)
        same_day = self._same_weekday_positions(historical, detected_at.date())

        anomalies: List[Anomaly] = []
        for metric in self.metrics:
            anomaly = self._detect_metric(metric, current, historical, same_day, detected_at)
            if anomaly is not None:
                anomalies.append(anomaly)

        return self._sort(anomalies)

    # -------------------------------------------------------------------------
    # INTERNAL
    # -------------------------------------------------------------------------

    def _detect_metric(
        self,
        metric: str,
        current: MerchantSnapshot,
        historical: Sequence[MerchantSnapshot],
        same_day: List[int],
        detected_at: datetime,
    ) -> Anomaly | None:
        values = [metric_value(s, metric) for s in historical]
        current_value = metric_value(current, metric)

        same_day_values = [values[i] for i in same_day]
        adjusted = len(same_day_values) >= self.min_same_day_points
        baseline = same_day_values if adjusted else values

        comparison = self._score(current_value, baseline)
        if comparison is None:
            logger.debug(f"Skipping {metric} for {current.merchant_name}: baseline has no variation.")
            return None

        z = comparison.z_score
        if abs(z) <= self.significance_z:
            return None

        return Anomaly(
            metric=metric,
            detected_at=detected_at,
            current_value=current_value,
            expected_value=comparison.mean,
            deviation_stddev=z,
            is_significant=True,
            seasonality_adjusted=adjusted,
            explanation=self._explain(metric, current_value, comparison.mean, z, detected_at, adjusted),
            severity=self._determine_severity(metric, z),
            id=f"anomaly-{current.merchant_name}-{metric}-{detected_at.date().isoformat()}",
            anomaly_type="spike" if z > 0 else "drop",
            merchant_id=current.merchant_name,
        )

    def _determine_severity(self, metric: str, z: float) -> str:
        magnitude = abs(z)
        if magnitude > self.critical_z:
            return "critical"
        if magnitude > self.warning_z or (
            metric in self.critical_metrics and magnitude > self.critical_metric_warning_z
        ):
            return "warning"
        return "info"

    def _explain(
        self, metric: str, current: float, expected: float, z: float, when: datetime, adjusted: bool
    ) -> str:
        direction = "higher" if z > 0 else "lower"
        pct = self._percent_difference(current, expected)
        shown = format_metric_value(metric, current, self.currency)
        shown_expected = format_metric_value(metric, expected, self.currency)

        if pct is not None:
            text = f"Your {metric} today ({shown}) is {pct:.0f}% {direction} than expected ({shown_expected}). "
        else:
            text = f"Your {metric} today ({shown}) is {direction} than expected ({shown_expected}). "

        if adjusted:
            text += f"This comparison accounts for typical {when.strftime('%A')} patterns. "

        magnitude = abs(z)
        if magnitude > self.critical_z:
            text += "This is a highly unusual variation that requires immediate attention."
        elif magnitude > self.warning_z:
            text += "This is a significant deviation from normal patterns."
        else:
            text += "This exceeds normal variation ranges."

        if when.weekday() >= 5 and metric == "transactions":
            text += self.WEEKEND_NOTE

        return text

    @staticmethod
    def _same_weekday_positions(historical: Sequence[MerchantSnapshot], day: date) -> List[int]:
        if all(s.period is not None for s in historical):
            return [i for i, s in enumerate(historical) if s.period.weekday() == day.weekday()]
        n = len(historical)
        return [i for i in range(n) if (n - i) % 7 == 0]

    @staticmethod
    def _as_datetime(value: date | datetime | None) -> datetime:
        if value is None:
            return datetime.now()
        if isinstance(value, datetime):
            return value
        return datetime.combine(value, time.min)


# =============================================================================
# REGISTRY
# =============================================================================

DETECTORS = {
    "metric_history": MetricHistoryDetector,
    "day_aligned": DayAlignedDetector,
}


def create_detector(mode: str, config: Dict[str, Any] | None = None) -> BaseAnomalyDetector:
    """
    Returns the detector for a mode: "metric_history" or "day_aligned".

    Raises:
        KeyError: Unknown mode.
    """
    if mode not in DETECTORS:
        raise KeyError(f"Unknown detector mode '{mode}'. Available: {list(DETECTORS)}")
    return DETECTORS[mode](config=config)
