"""
models.py
----------
Core domain models. These are the typed contracts between engine layers.

- MerchantSnapshot / CompetitorSnapshot: inputs. One day (or period) of
  aggregates for a merchant. Money fields are integer minor units (cents).

- TimeSeriesPoint: one element of a MetricSeries. Series are chronological
  and contiguous (one point per day, no gaps).

- Decomposition, Forecast, Anomaly, Alert, Insight: outputs. Created fresh per
  call and never mutated by the core afterwards.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional


@dataclass(frozen=True)
class TimeSeriesPoint:
    date: date
    value: float
    metric: str


# Chronological, contiguous daily points for one metric.
MetricSeries = list[TimeSeriesPoint]


@dataclass(frozen=True)
class MerchantSnapshot:
    """
    One period's aggregates for a merchant.

    `period` is the calendar day the snapshot covers (None for synthetic or
    undated aggregates). `returning_customers` is optional: when the data
    source can tell repeat customers apart, it feeds the repeat customer rate.
    """

    merchant_name: str
    transactions: int
    revenue: int                     # Minor currency units
    customers: int
    cashback_paid: int               # Minor currency units
    cashback_percent: float
    avg_transaction: float
    campaign_active: bool = True
    period: Optional[date] = None
    returning_customers: Optional[int] = None


@dataclass(frozen=True)
class CompetitorSnapshot(MerchantSnapshot):
    """MerchantSnapshot placed in a market comparison. Rank 1 = highest revenue."""

    rank: int = 0
    is_you: bool = False
    market_share: Optional[float] = None   # Percent of field revenue


@dataclass
class Decomposition:
    """Index-aligned with the input: value[i] == trend[i] + seasonal[i] + residual[i]."""

    trend: list[float]
    seasonal: list[float]
    residual: list[float]
    seasonality_period: int


@dataclass
class ConfidenceInterval:
    lower: list[float]
    upper: list[float]


@dataclass
class AccuracyMetrics:
    mape: float                      # Mean Absolute Percentage Error
    rmse: float                      # Root Mean Square Error


@dataclass
class Forecast:
    metric: str
    historical: MetricSeries
    forecast: MetricSeries
    confidence_interval: ConfidenceInterval
    accuracy_metrics: AccuracyMetrics
    methodology: str


@dataclass
class Anomaly:
    """
    A metric value that deviates from its baseline.

    `severity` is "low" | "medium" | "high" | "critical" for the
    metric_history detector and "info" | "warning" | "critical" for the
    day_aligned detector. Both are banded on |deviation_stddev|.
    """

    metric: str
    detected_at: datetime
    current_value: float
    expected_value: float
    deviation_stddev: float          # z-score
    is_significant: bool
    seasonality_adjusted: bool
    explanation: str
    severity: str

    # Populated by the metric_history detector
    id: str = ""
    anomaly_type: str = ""           # "spike" | "drop" | "trend_change" | "unusual_pattern"
    merchant_id: str = ""
    recommendation: str = ""


@dataclass
class Alert:
    """Routable notification built from an Anomaly."""

    id: str
    type: str                        # "anomaly" | "threshold" | "forecast" | "insight"
    severity: str                    # "critical" | "warning" | "info"
    title: str
    message: str
    metric: str
    current_value: float
    threshold_value: Optional[float]
    detected_at: datetime
    acknowledged: bool = False
    channels_sent: list[str] = field(default_factory=list)


@dataclass
class InsightImpact:
    current_value: float
    change_percent: float
    change_absolute: float


@dataclass
class Insight:
    id: str
    type: str                        # "opportunity" | "warning" | "trend" | "comparison" | "forecast"
    severity: str                    # "high" | "medium" | "low"
    title: str
    description: str
    metric: str
    impact: InsightImpact
    context: str
    actionable_recommendations: list[str]
    detected_at: datetime
    confidence: float                # 0.0 – 1.0


@dataclass
class AnalyticsReport:
    """Everything the pipeline produced for one merchant in one run."""

    merchant_name: str
    generated_at: datetime
    forecasts: dict[str, Forecast] = field(default_factory=dict)
    anomalies: list[Anomaly] = field(default_factory=list)
    insights: list[Insight] = field(default_factory=list)
    alerts: list[Alert] = field(default_factory=list)
    skipped_forecasts: dict[str, str] = field(default_factory=dict)
