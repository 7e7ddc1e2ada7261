"""
series.py
----------
Conversions from dated MerchantSnapshots to MetricSeries, plus value
formatting for human-readable text.

Metric names follow the anomaly detectors: "cashback" is the paid amount,
"avg_transaction" is revenue per transaction and "cashback_rate" is cashback
paid as a percent of revenue. Ratio metrics are 0 when their denominator is 0.
"""

from typing import Dict, Iterable, List, Sequence

import pandas as pd

from core.models import MerchantSnapshot, MetricSeries, TimeSeriesPoint


MONEY_METRICS = {"revenue", "cashback", "cashback_paid", "avg_transaction"}


def metric_value(snapshot: MerchantSnapshot, metric: str) -> float:
    """Reads one metric from a snapshot. Raises KeyError for unknown metrics."""
    if metric == "cashback":
        return float(snapshot.cashback_paid)
    if metric == "avg_transaction":
        return snapshot.revenue / snapshot.transactions if snapshot.transactions > 0 else 0.0
    if metric == "cashback_rate":
        return snapshot.cashback_paid / snapshot.revenue * 100 if snapshot.revenue > 0 else 0.0
    if metric in ("transactions", "revenue", "customers", "cashback_paid"):
        return float(getattr(snapshot, metric))
    raise KeyError(f"Unknown metric '{metric}'.")


def snapshots_to_series(snapshots: Sequence[MerchantSnapshot], metric: str) -> MetricSeries:
    """
    Builds a chronological MetricSeries from dated snapshots.

    Raises:
        ValueError: If any snapshot has no period date.
    """
    undated = [i for i, s in enumerate(snapshots) if s.period is None]
    if undated:
        raise ValueError(f"Snapshots at positions {undated[:5]} have no period date.")
    ordered = sorted(snapshots, key=lambda s: s.period)
    return [TimeSeriesPoint(date=s.period, value=metric_value(s, metric), metric=metric) for s in ordered]


def metric_histories_from_snapshots(
    snapshots: Sequence[MerchantSnapshot], metrics: Iterable[str]
) -> Dict[str, MetricSeries]:
    """One MetricSeries per requested metric."""
    return {metric: snapshots_to_series(snapshots, metric) for metric in metrics}


def series_to_frame(series: MetricSeries) -> pd.DataFrame:
    """MetricSeries as a (date, value, metric) DataFrame."""
    return pd.DataFrame(
        [{"date": p.date, "value": p.value, "metric": p.metric} for p in series],
        columns=["date", "value", "metric"],
    )


def series_values(series: MetricSeries) -> List[float]:
    return [p.value for p in series]


def format_money(minor_units: float, currency: dict) -> str:
    """12345 minor units -> '123.45 RON'."""
    return f"{minor_units / currency['minor_units']:.2f} {currency['code']}"


def format_metric_value(metric: str, value: float, currency: dict) -> str:
    """Money metrics from minor units, percentages with one decimal, counts rounded."""
    if metric in MONEY_METRICS:
        return format_money(value, currency)
    if metric == "cashback_rate":
        return f"{value:.1f}%"
    return f"{round(value):,}"
