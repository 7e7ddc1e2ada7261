"""
competitors.py
---------------
Market ranking for competitor comparisons.

Snapshots are ranked by revenue, highest first. Ties keep their input order
(Python's sort is stable), so two merchants with equal revenue are ranked in
the order the data source supplied them.
"""

from dataclasses import replace
from typing import Iterable, List, Optional

from core.models import CompetitorSnapshot, MerchantSnapshot


def rank_competitors(snapshots: Iterable[MerchantSnapshot], you: Optional[str] = None) -> List[CompetitorSnapshot]:
    """
    Sort by revenue descending and assign 1-based ranks by position.

    Args:
        snapshots: MerchantSnapshots or CompetitorSnapshots for one comparison.
        you: merchant_name of the subject merchant. When given, its entry is
            marked is_you; otherwise existing is_you flags are kept.

    Returns:
        New CompetitorSnapshots with rank and market_share filled in.
    """
    items = list(snapshots)
    total_revenue = sum(s.revenue for s in items)
    ordered = sorted(items, key=lambda s: s.revenue, reverse=True)

    ranked: List[CompetitorSnapshot] = []
    for position, snap in enumerate(ordered, start=1):
        share = round(snap.revenue / total_revenue * 100, 2) if total_revenue > 0 else None
        if you is not None:
            is_you = snap.merchant_name == you
        else:
            is_you = getattr(snap, "is_you", False)
        ranked.append(_as_competitor(snap, rank=position, is_you=is_you, market_share=share))

    return ranked


def find_you(competitors: Iterable[CompetitorSnapshot]) -> Optional[CompetitorSnapshot]:
    """Returns the subject merchant's entry, or None if it is not in the field."""
    return next((c for c in competitors if c.is_you), None)


def _as_competitor(snap: MerchantSnapshot, **changes) -> CompetitorSnapshot:
    if isinstance(snap, CompetitorSnapshot):
        return replace(snap, **changes)
    return CompetitorSnapshot(
        merchant_name=snap.merchant_name,
        transactions=snap.transactions,
        revenue=snap.revenue,
        customers=snap.customers,
        cashback_paid=snap.cashback_paid,
        cashback_percent=snap.cashback_percent,
        avg_transaction=snap.avg_transaction,
        campaign_active=snap.campaign_active,
        period=snap.period,
        returning_customers=snap.returning_customers,
        **changes,
    )
