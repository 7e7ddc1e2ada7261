"""
insights_engine.py
-------------------
Runs every insight rule and returns the highest-scoring insights.

Score = severity weight (high=3, medium=2, low=1) x confidence x |change_percent|.
Sorting is stable, so equal scores keep rule evaluation order. There is no
randomness anywhere in the rules, so identical inputs give identical output.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Sequence

from config.config_loader import get_insights_config
from core.models import CompetitorSnapshot, Insight, MerchantSnapshot
from insights.insight_rules import get_all_rules

logger = logging.getLogger(__name__)


class InsightsEngine:
    """
    Usage:
        engine = InsightsEngine()
        insights = engine.detect_insights(today, history, competitors)
    """

    def __init__(self, config: Dict[str, Any] | None = None):
        self.config = config or get_insights_config()
        self.max_insights = self.config["max_insights"]
        self.severity_weights = self.config["severity_weights"]
        self.rules = get_all_rules(self.config)

    def detect_insights(
        self,
        current: MerchantSnapshot,
        historical: Sequence[MerchantSnapshot],
        competitors: Sequence[CompetitorSnapshot],
        detected_at: datetime | None = None,
    ) -> List[Insight]:
        """
        Args:
            current: Snapshot being analyzed.
            historical: Earlier daily snapshots, chronological.
            competitors: Ranked competitor field, including the merchant itself
                (is_you=True) when available.
            detected_at: Timestamp for the results. Defaults to now.

        Returns:
            Up to max_insights insights, highest score first.
        """
        detected_at = detected_at or datetime.now()
        insights: List[Insight] = []

        for rule in self.rules:
            found = rule.evaluate(current, historical, competitors, detected_at)
            logger.debug(f"Rule '{rule.name}' produced {len(found)} insights.")
            insights.extend(found)

        ranked = sorted(insights, key=self.score, reverse=True)
        return ranked[: self.max_insights]

    def score(self, insight: Insight) -> float:
        return (
            self.severity_weights[insight.severity]
            * insight.confidence
            * abs(insight.impact.change_percent)
        )
