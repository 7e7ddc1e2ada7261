"""
alerts.py
----------
Turns anomalies into routable alerts: a title, a message with recommended
actions for strong moves, an alert severity and the channels to notify.
Delivery itself happens outside the core. Channels and action lists come
from the alerts block of config.yaml.
"""

from typing import Any, Dict, List, Sequence

from config.config_loader import get_alert_config, get_currency_config
from core.models import Alert, Anomaly
from core.series import format_metric_value


class AlertBuilder:
    """
    Usage:
        alerts = AlertBuilder().build(anomalies, "Demo Store")
    """

    def __init__(self, config: Dict[str, Any] | None = None):
        self.config = config or get_alert_config()
        self.channels = self.config["channels"]
        self.severity_map = self.config["severity_map"]
        self.significant_z = self.config["significant_z"]
        self.action_z = self.config["action_z"]
        self.drop_actions = self.config.get("drop_actions", {})
        self.spike_actions = self.config.get("spike_actions", {})
        self.currency = get_currency_config()

    def build(self, anomalies: Sequence[Anomaly], merchant_name: str) -> List[Alert]:
        return [self._build_one(a, merchant_name) for a in anomalies]

    def channels_for(self, severity: str) -> List[str]:
        """Notification channels for an anomaly or alert severity."""
        return list(self.channels.get(severity, ["email"]))

    # -------------------------------------------------------------------------
    # INTERNAL
    # -------------------------------------------------------------------------

    def _build_one(self, anomaly: Anomaly, merchant_name: str) -> Alert:
        alert_severity = self.severity_map.get(anomaly.severity, "info")
        return Alert(
            id=f"alert-{anomaly.id or anomaly.metric}",
            type="anomaly",
            severity=alert_severity,
            title=self._title(anomaly),
            message=self._message(anomaly, merchant_name),
            metric=anomaly.metric,
            current_value=anomaly.current_value,
            threshold_value=anomaly.expected_value,
            detected_at=anomaly.detected_at,
            acknowledged=False,
            channels_sent=self.channels_for(anomaly.severity),
        )

    def _title(self, anomaly: Anomaly) -> str:
        direction = "spike" if anomaly.deviation_stddev > 0 else "drop"
        magnitude = "Significant" if abs(anomaly.deviation_stddev) > self.significant_z else "Unusual"
        return f"{magnitude} {direction} in {anomaly.metric}"

    def _message(self, anomaly: Anomaly, merchant_name: str) -> str:
        direction = "increase" if anomaly.deviation_stddev > 0 else "decrease"
        current = format_metric_value(anomaly.metric, anomaly.current_value, self.currency)
        expected = format_metric_value(anomaly.metric, anomaly.expected_value, self.currency)

        if anomaly.expected_value != 0:
            pct = abs((anomaly.current_value - anomaly.expected_value) / anomaly.expected_value * 100)
            message = f"{merchant_name}: Your {anomaly.metric} show a {pct:.0f}% {direction}. "
        else:
            message = f"{merchant_name}: Your {anomaly.metric} show an {direction}. "
        message += f"Current: {current}, Expected: {expected}."

        actions: List[str] = []
        heading = ""
        if anomaly.deviation_stddev < -self.action_z:
            heading, actions = "Recommended actions:", self.drop_actions.get(anomaly.metric, [])
        elif anomaly.deviation_stddev > self.action_z:
            heading, actions = "Opportunity:", self.spike_actions.get(anomaly.metric, [])

        if actions:
            message += f"\n\n{heading}\n" + "\n".join(f"- {a}" for a in actions)

        return message
