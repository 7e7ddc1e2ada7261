"""
insight_rules.py
-----------------
Concrete insight rules. One class per analysis.

Each rule follows the same pattern:

    1. Guards: too little history or a zero denominator skips the check.
    2. Measure: compute the ratio or change the check is about.
    3. Threshold: compare against config.yaml and emit an Insight with an
       impact, a benchmark context string and 2-4 recommendations.

Thresholds come from config.yaml; only the analysis structure lives in code.
"""

import math
from typing import Any, Dict, List, Optional

from core.competitors import find_you
from core.models import Insight, MerchantSnapshot
from core.statistics import average, percent_change
from insights.base_rule import BaseInsightRule


# =============================================================================
# TREND
# =============================================================================
class TrendRule(BaseInsightRule):
    """
    Transactions vs the trailing week, and average transaction value vs the
    full history.
    """

    def __init__(self, config: Dict[str, Any] | None = None):
        super().__init__("trend", config)

    def evaluate(self, current, historical, competitors, detected_at) -> List[Insight]:
        insights: List[Insight] = []
        if len(historical) < self.config["min_history"]:
            return insights

        last_week = historical[-self.config["lookback_days"]:]
        avg_last_week = average([d.transactions for d in last_week])
        change = percent_change(current.transactions, avg_last_week)

        if change is not None and abs(change) > self.config["transaction_change"]:
            up = change > 0
            pct = abs(change * 100)
            insights.append(self._insight(
                "transactions", current, detected_at,
                type="opportunity" if up else "warning",
                severity="high" if abs(change) > self.config["transaction_high_change"] else "medium",
                title=f"Transactions {'surging' if up else 'declining'} {pct:.0f}%",
                description=(
                    f"Your transaction count is {pct:.0f}% {'higher' if up else 'lower'} than last week's average. "
                    + ("This growth momentum presents an opportunity to scale." if up
                       else "This decline requires immediate attention to prevent further losses.")
                ),
                metric="transactions",
                current_value=current.transactions,
                change_percent=change * 100,
                change_absolute=current.transactions - avg_last_week,
                context=f"Last week average: {avg_last_week:.0f} transactions/day",
                recommendations=[
                    "Investigate what's driving this growth (seasonality, marketing, word-of-mouth)",
                    "Consider increasing campaign budget to capitalize on momentum",
                    "Monitor closely to ensure growth is sustainable",
                ] if up else [
                    "Check for technical issues affecting checkout flow",
                    "Review recent competitor campaigns that may be drawing customers",
                    "Analyze which customer segments are churning",
                    "Consider emergency promotion to re-engage customers",
                ],
                confidence=0.9,
            ))

        insight = self._average_value_insight(current, historical, detected_at)
        if insight is not None:
            insights.append(insight)

        return insights

    def _average_value_insight(self, current, historical, detected_at) -> Optional[Insight]:
        if current.transactions == 0:
            return None
        history = [d.revenue / d.transactions for d in historical if d.transactions > 0]
        if not history:
            return None

        current_value = current.revenue / current.transactions
        avg_value = average(history)
        change = percent_change(current_value, avg_value)
        if change is None or abs(change) <= self.config["avg_value_change"]:
            return None

        up = change > 0
        return self._insight(
            "avg-transaction-value", current, detected_at,
            type="opportunity" if up else "warning",
            severity="medium",
            title=f"Average transaction value {'increasing' if up else 'decreasing'}",
            description=(
                f"Customers are spending {abs(change * 100):.0f}% {'more' if up else 'less'} per transaction. "
                + ("This suggests customers are buying higher-value items or larger quantities." if up
                   else "This may indicate customers are trading down or buying fewer items.")
            ),
            metric="avg_transaction_value",
            current_value=current_value,
            change_percent=change * 100,
            change_absolute=current_value - avg_value,
            context=f"Historical average: {self._money(avg_value)}",
            recommendations=[
                "Promote higher-margin products to similar customer segments",
                "Introduce bundle deals to maintain high transaction values",
                "Analyze which products are driving the increase",
            ] if up else [
                "Review product pricing strategy",
                "Investigate if out-of-stock items are affecting basket size",
                "Consider promotions on complementary products to increase basket",
            ],
            confidence=0.85,
        )


# =============================================================================
# COMPETITIVE POSITION
# =============================================================================
class CompetitivePositionRule(BaseInsightRule):
    """Market rank and cashback rate relative to the competitor field."""

    def __init__(self, config: Dict[str, Any] | None = None):
        super().__init__("competitive", config)

    def evaluate(self, current, historical, competitors, detected_at) -> List[Insight]:
        insights: List[Insight] = []
        if not competitors:
            return insights

        position = self._position_insight(current, competitors, detected_at)
        if position is not None:
            insights.append(position)

        cashback = self._cashback_rate_insight(current, competitors, detected_at)
        if cashback is not None:
            insights.append(cashback)

        return insights

    def _position_insight(self, current, competitors, detected_at) -> Optional[Insight]:
        you = find_you(competitors)
        if you is None or you.rank < 1:
            return None

        rank = you.rank
        total = len(competitors)

        if rank <= self.config["top_rank"]:
            neighbours = [f"#{r}" for r in (rank - 1, rank + 1) if 1 <= r <= total]
            watch = (
                f"Defend position by monitoring {' and '.join(neighbours)} competitors"
                if neighbours else "Defend position by tracking new market entrants"
            )
            return self._insight(
                "market-leader", current, detected_at,
                type="opportunity",
                severity="high",
                title=f"You're #{rank} in the market",
                description=(
                    f"Strong market position in top {round(rank / total * 100)}%. "
                    "Maintaining this position requires continued innovation and customer focus."
                ),
                metric="market_rank",
                current_value=rank,
                change_percent=0.0,
                change_absolute=0.0,
                context=f"Out of {total} active merchants with campaigns",
                recommendations=[
                    watch,
                    "Consider exclusive partnerships or unique offerings",
                    "Invest in customer retention programs",
                ],
                confidence=1.0,
            )

        if rank > total * self.config["bottom_percentile"]:
            ranked = sorted(competitors, key=lambda c: c.rank)
            median = ranked[total // 2]
            gap = median.transactions - current.transactions
            return self._insight(
                "market-underdog", current, detected_at,
                type="warning",
                severity="high",
                title=f"Market position needs improvement (#{rank} of {total})",
                description=(
                    f"Currently in bottom {round((total - rank + 1) / total * 100)}% of market. "
                    "Significant opportunity to climb rankings with targeted improvements."
                ),
                metric="market_rank",
                current_value=rank,
                change_percent=0.0,
                change_absolute=0.0,
                context=f"Gap to #{median.rank}: {gap} transactions",
                recommendations=[
                    "Analyze what top 3 competitors are doing differently",
                    "Consider increasing cashback rate or promotional frequency",
                    "Focus on customer acquisition in underserved segments",
                ],
                confidence=1.0,
            )

        return None

    def _cashback_rate_insight(self, current, competitors, detected_at) -> Optional[Insight]:
        others = [c for c in competitors if not c.is_you]
        if not others:
            return None

        avg_rate = average([c.cashback_percent for c in others])
        if avg_rate == 0:
            return None

        diff = current.cashback_percent - avg_rate
        gap = self.config["cashback_rate_gap"]

        if diff > gap:
            top_rate = max(c.cashback_percent for c in others)
            return self._insight(
                "cashback-high", current, detected_at,
                type="trend",
                severity="medium",
                title=f"Your cashback rate is {diff:.1f}% above market average",
                description=(
                    f"At {current.cashback_percent}% vs {avg_rate:.1f}% average, you're using aggressive pricing. "
                    "This can drive acquisition but impacts profitability."
                ),
                metric="cashback_rate",
                current_value=current.cashback_percent,
                change_percent=diff / avg_rate * 100,
                change_absolute=diff,
                context=f"Top competitor offers: {top_rate}%",
                recommendations=[
                    "Test if reducing by 0.5-1% significantly impacts conversion",
                    "Consider tiered cashback (higher for loyal customers)",
                    "Monitor if high rate is delivering proportional customer value",
                ],
                confidence=0.9,
            )

        if diff < -gap:
            return self._insight(
                "cashback-low", current, detected_at,
                type="opportunity",
                severity="medium",
                title="Room to increase cashback rate",
                description=(
                    f"Your {current.cashback_percent}% is below market average of {avg_rate:.1f}%. "
                    "Strategic increase could boost customer acquisition."
                ),
                metric="cashback_rate",
                current_value=current.cashback_percent,
                change_percent=diff / avg_rate * 100,
                change_absolute=diff,
                context=f"Market average: {avg_rate:.1f}% across {len(others)} competitors",
                recommendations=[
                    "Test 0.5% increase and measure impact on transactions",
                    "Consider limited-time bonus cashback promotion",
                    "Calculate break-even point for cashback increase",
                ],
                confidence=0.85,
            )

        return None


# =============================================================================
# EFFICIENCY
# =============================================================================
class EfficiencyRule(BaseInsightRule):
    """
    ROI = (revenue - cashback_paid) / cashback_paid
    CAC = cashback_paid / customers
    """

    def __init__(self, config: Dict[str, Any] | None = None):
        super().__init__("efficiency", config)

    def evaluate(self, current, historical, competitors, detected_at) -> List[Insight]:
        insights: List[Insight] = []

        roi = self._roi_insight(current, detected_at)
        if roi is not None:
            insights.append(roi)

        cac = self._cac_insight(current, historical, detected_at)
        if cac is not None:
            insights.append(cac)

        return insights

    def _roi_insight(self, current, detected_at) -> Optional[Insight]:
        if current.cashback_paid == 0:
            return None

        roi = (current.revenue - current.cashback_paid) / current.cashback_paid
        benchmark = self.config["benchmark_roi"]
        change_percent = (roi - benchmark) / benchmark * 100

        if roi < self.config["low_roi"]:
            target_revenue = current.cashback_paid * (benchmark + 1)
            return self._insight(
                "low-roi", current, detected_at,
                type="warning",
                severity="high",
                title="Campaign ROI below healthy threshold",
                description=(
                    f"Current ROI of {roi:.2f}x means you're earning {roi:.2f} {self.currency['code']} "
                    f"for every 1 {self.currency['code']} in cashback. Industry leaders achieve 3-4x ROI."
                ),
                metric="roi",
                current_value=roi,
                change_percent=change_percent,
                change_absolute=roi - benchmark,
                context=f"At current cashback spend, need {self._money(target_revenue)} revenue for a {benchmark:.0f}x ROI",
                recommendations=[
                    "Reduce cashback rate by 1% and monitor impact",
                    "Target promotions to high-value customer segments",
                    "Improve conversion rate to increase revenue per customer",
                ],
                confidence=0.95,
            )

        if roi > self.config["high_roi"]:
            return self._insight(
                "high-roi", current, detected_at,
                type="opportunity",
                severity="medium",
                title="Excellent ROI - room to invest in growth",
                description=(
                    f"Your {roi:.2f}x ROI is industry-leading. You can afford to increase "
                    "marketing spend or cashback rate to accelerate growth."
                ),
                metric="roi",
                current_value=roi,
                change_percent=change_percent,
                change_absolute=roi - benchmark,
                context=f"Benchmark ROI: {benchmark:.1f}x",
                recommendations=[
                    "Test 1% cashback increase to drive more transactions",
                    "Invest surplus in customer acquisition campaigns",
                    "Expand to new customer segments or geographies",
                ],
                confidence=0.9,
            )

        return None

    def _cac_insight(self, current, historical, detected_at) -> Optional[Insight]:
        if current.customers == 0:
            return None
        history = [d.cashback_paid / d.customers for d in historical if d.customers > 0]
        if not history:
            return None

        cac = current.cashback_paid / current.customers
        avg_cac = average(history)
        change = percent_change(cac, avg_cac)
        if change is None or change <= self.config["cac_increase"]:
            return None

        return self._insight(
            "cac-rising", current, detected_at,
            type="warning",
            severity="medium",
            title="Customer acquisition cost increasing",
            description=(
                f"You're spending {self._money(cac)} to acquire each customer, up {change * 100:.0f}% "
                "from historical average. Rising CAC reduces profitability."
            ),
            metric="customer_acquisition_cost",
            current_value=cac,
            change_percent=change * 100,
            change_absolute=cac - avg_cac,
            context=f"Historical CAC: {self._money(avg_cac)}",
            recommendations=[
                "Optimize targeting to reach more cost-effective customers",
                "Review if cashback rate can be reduced without hurting conversion",
                "Focus on customer retention to maximize lifetime value",
            ],
            confidence=0.8,
        )


# =============================================================================
# GROWTH OPPORTUNITY
# =============================================================================
class OpportunityRule(BaseInsightRule):
    """Low repeat customer rate, and the customer gap to the top competitor."""

    def __init__(self, config: Dict[str, Any] | None = None):
        super().__init__("opportunity", config)

    def evaluate(self, current, historical, competitors, detected_at) -> List[Insight]:
        insights: List[Insight] = []

        if len(historical) >= self.config["min_history"]:
            retention = self._retention_insight(current, detected_at)
            if retention is not None:
                insights.append(retention)

        gap = self._customer_gap_insight(current, competitors, detected_at)
        if gap is not None:
            insights.append(gap)

        return insights

    @staticmethod
    def repeat_customer_rate(snapshot: MerchantSnapshot) -> Optional[float]:
        """
        Share of customers who came back within the snapshot's period.

        Uses returning_customers when the source provides it. Otherwise
        estimates from visit counts: every transaction beyond one per customer
        is a repeat visit, so (transactions - customers) / transactions.
        None when neither form has a non-zero denominator.
        """
        if snapshot.returning_customers is not None and snapshot.customers > 0:
            return min(max(snapshot.returning_customers / snapshot.customers, 0.0), 1.0)
        if snapshot.transactions > 0:
            return max(snapshot.transactions - snapshot.customers, 0) / snapshot.transactions
        return None

    def _retention_insight(self, current, detected_at) -> Optional[Insight]:
        rate = self.repeat_customer_rate(current)
        if rate is None or rate >= self.config["low_repeat_rate"]:
            return None

        target = self.config["target_repeat_rate"]
        return self._insight(
            "retention", current, detected_at,
            type="opportunity",
            severity="high",
            title="Low customer retention - major opportunity",
            description=(
                f"Only {rate * 100:.0f}% of customers return. Increasing retention to {target * 100:.0f}% "
                "could grow revenue without additional acquisition costs."
            ),
            metric="customer_retention",
            current_value=rate,
            change_percent=(rate - target) / target * 100,
            change_absolute=rate - target,
            context="Industry benchmark: 35-45% repeat customer rate",
            recommendations=[
                "Launch loyalty program with bonus cashback for repeat purchases",
                "Send personalized offers to customers 7 days after first purchase",
                "Survey churned customers to understand pain points",
            ],
            confidence=0.85,
        )

    def _customer_gap_insight(self, current, competitors, detected_at) -> Optional[Insight]:
        others = [c for c in competitors if not c.is_you]
        if not others or current.customers == 0:
            return None

        top_customers = max(c.customers for c in others)
        gap = top_customers - current.customers
        if gap <= current.customers * self.config["customer_gap_ratio"]:
            return None

        if current.transactions > 0:
            per_customer = current.transactions / current.customers
        else:
            per_customer = self.config["transactions_per_customer_factor"]
        needed = math.ceil(gap * per_customer)

        return self._insight(
            "customer-gap", current, detected_at,
            type="opportunity",
            severity="high",
            title="Significant untapped customer base",
            description=(
                f"Top competitor has {gap} more customers than you. "
                f"This represents {gap / current.customers * 100:.0f}% growth potential."
            ),
            metric="customer_gap",
            current_value=current.customers,
            change_percent=gap / current.customers * 100,
            change_absolute=gap,
            context=f"At {per_customer:.2f} transactions per customer, closing the gap means {needed} more transactions",
            recommendations=[
                "Analyze demographic/geographic differences with top competitor",
                "Test marketing in channels where you're underrepresented",
                "Consider partnership or co-marketing opportunities",
            ],
            confidence=0.75,
        )


# =============================================================================
# RISK
# =============================================================================
class RiskRule(BaseInsightRule):
    """Cashback spend as a share of revenue."""

    def __init__(self, config: Dict[str, Any] | None = None):
        super().__init__("risk", config)

    def evaluate(self, current, historical, competitors, detected_at) -> List[Insight]:
        if current.revenue == 0:
            return []

        ratio = current.cashback_paid / current.revenue
        if ratio <= self.config["max_cashback_ratio"]:
            return []

        low, high = self.config["healthy_band"]
        return [self._insight(
            "cashback-sustainability", current, detected_at,
            type="warning",
            severity="high",
            title=f"Cashback costs consuming {ratio * 100:.0f}% of revenue",
            description=(
                "High cashback-to-revenue ratio suggests campaign may not be sustainable long-term. "
                "Need to improve unit economics."
            ),
            metric="cashback_ratio",
            current_value=ratio,
            change_percent=(ratio - high) / high * 100,
            change_absolute=ratio - high,
            context=f"Sustainable range: {low * 100:.0f}-{high * 100:.0f}% of revenue",
            recommendations=[
                "Gradually reduce cashback rate while monitoring churn",
                "Focus on increasing average transaction value",
                "Implement tiered cashback (lower % on higher amounts)",
            ],
            confidence=0.9,
        )]


# =============================================================================
# REGISTRY
# =============================================================================

def get_all_rules(config: Dict[str, Any] | None = None) -> List[BaseInsightRule]:
    """Returns one instance of every rule, in evaluation order."""
    return [
        TrendRule(config),
        CompetitivePositionRule(config),
        EfficiencyRule(config),
        OpportunityRule(config),
        RiskRule(config),
    ]
