"""
base_rule.py
-------------
Abstract base class for the insight rules.

Each concrete rule (trend, competitive position, efficiency, opportunity,
risk) inherits from this. Shared logic (config lookup, deterministic ids,
Insight construction, money formatting) lives here so it's never duplicated.

Concrete rules only need to implement:
    - evaluate(): inspect the snapshots and return zero or more Insights
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Sequence

from config.config_loader import get_currency_config, get_insights_config
from core.models import CompetitorSnapshot, Insight, InsightImpact, MerchantSnapshot
from core.series import format_money


class BaseInsightRule(ABC):
    """
    Subclasses implement evaluate(). This class handles config and
    Insight construction.
    """

    def __init__(self, name: str, config: Dict[str, Any] | None = None):
        self.name = name
        insights_config = config or get_insights_config()
        self.config = insights_config[name]
        self.currency = get_currency_config()

    # -------------------------------------------------------------------------
    # ABSTRACT METHODS
    # -------------------------------------------------------------------------

    @abstractmethod
    def evaluate(
        self,
        current: MerchantSnapshot,
        historical: Sequence[MerchantSnapshot],
        competitors: Sequence[CompetitorSnapshot],
        detected_at: datetime,
    ) -> List[Insight]:
        """
        Returns the insights this rule finds. Checks whose inputs would divide
        by zero are skipped rather than reported.
        """
        ...

    # -------------------------------------------------------------------------
    # SHARED HELPERS
    # -------------------------------------------------------------------------

    def _insight(
        self,
        key: str,
        current: MerchantSnapshot,
        detected_at: datetime,
        *,
        type: str,
        severity: str,
        title: str,
        description: str,
        metric: str,
        current_value: float,
        change_percent: float,
        change_absolute: float,
        context: str,
        recommendations: List[str],
        confidence: float,
    ) -> Insight:
        period = current.period.isoformat() if current.period else "current"
        return Insight(
            id=f"{self.name}-{key}-{period}",
            type=type,
            severity=severity,
            title=title,
            description=description,
            metric=metric,
            impact=InsightImpact(
                current_value=current_value,
                change_percent=change_percent,
                change_absolute=change_absolute,
            ),
            context=context,
            actionable_recommendations=recommendations,
            detected_at=detected_at,
            confidence=confidence,
        )

    def _money(self, minor_units: float) -> str:
        return format_money(minor_units, self.currency)
