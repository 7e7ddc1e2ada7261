"""
demo_data.py
-------------
Synthetic merchant data for demos and tests.

This is the only module that uses randomness. The caller passes in a
numpy Generator, so runs are reproducible with a fixed seed:

    rng = np.random.default_rng(42)
    history = generate_daily_snapshots("Demo Store", date(2024, 6, 1), 60, rng)

Nothing in core/, forecasting/, detectors/ or insights/ imports this module.
"""

from dataclasses import replace
from datetime import date, timedelta
from typing import List, Sequence

import numpy as np

from core.competitors import rank_competitors
from core.models import CompetitorSnapshot, MerchantSnapshot


# Relative weekday volume, Monday first. Weekends are busier.
WEEKLY_PATTERN = (0.90, 0.92, 0.95, 1.00, 1.10, 1.25, 1.05)

DEMO_COMPETITORS = (
    # name, daily transactions, avg transaction (minor units), cashback %
    ("Lidl", 845, 47620, 3.0),
    ("Kaufland", 723, 53840, 3.5),
    ("Auchan", 634, 51360, 2.7),
    ("Mega Image", 567, 51040, 3.4),
    ("Profi", 423, 46970, 3.0),
    ("Penny", 389, 45330, 2.5),
)


def generate_daily_snapshots(
    merchant_name: str,
    end_date: date,
    days: int,
    rng: np.random.Generator,
    base_transactions: int = 480,
    avg_transaction: int = 56600,
    cashback_percent: float = 5.0,
    daily_growth: float = 0.002,
    noise: float = 0.05,
    repeat_rate: float = 0.35,
) -> List[MerchantSnapshot]:
    """
    Contiguous daily snapshots ending on `end_date` (inclusive).

    Transactions follow a mild linear trend, a weekly pattern and
    multiplicative Gaussian noise. Revenue and cashback derive from them.
    """
    snapshots: List[MerchantSnapshot] = []
    start = end_date - timedelta(days=days - 1)

    for offset in range(days):
        day = start + timedelta(days=offset)
        level = base_transactions * (1 + daily_growth * offset) * WEEKLY_PATTERN[day.weekday()]
        transactions = max(int(round(level * (1 + rng.normal(0, noise)))), 0)
        basket = avg_transaction * (1 + rng.normal(0, noise / 2))
        revenue = int(round(transactions * basket))
        cashback = int(round(revenue * cashback_percent / 100))
        customers = int(round(transactions * rng.uniform(0.82, 0.90)))
        returning = int(round(customers * min(max(rng.normal(repeat_rate, 0.03), 0.0), 1.0)))

        snapshots.append(MerchantSnapshot(
            merchant_name=merchant_name,
            transactions=transactions,
            revenue=revenue,
            customers=customers,
            cashback_paid=cashback,
            cashback_percent=cashback_percent,
            avg_transaction=revenue / transactions if transactions else 0.0,
            campaign_active=True,
            period=day,
            returning_customers=returning,
        ))

    return snapshots


def generate_competitor_field(
    you: MerchantSnapshot,
    rng: np.random.Generator,
    competitors: Sequence[tuple] = DEMO_COMPETITORS,
    noise: float = 0.05,
) -> List[CompetitorSnapshot]:
    """Demo competitor snapshots for the same period as `you`, ranked by revenue."""
    field = [you]
    for name, transactions, basket, cashback_percent in competitors:
        txns = int(round(transactions * (1 + rng.normal(0, noise))))
        revenue = int(round(txns * basket))
        field.append(MerchantSnapshot(
            merchant_name=name,
            transactions=txns,
            revenue=revenue,
            customers=int(round(txns * 0.86)),
            cashback_paid=int(round(revenue * cashback_percent / 100)),
            cashback_percent=cashback_percent,
            avg_transaction=revenue / txns if txns else 0.0,
            campaign_active=True,
            period=you.period,
        ))
    return rank_competitors(field, you=you.merchant_name)


def inject_spike(snapshots: List[MerchantSnapshot], factor: float) -> List[MerchantSnapshot]:
    """Copy of `snapshots` with the last day's volume multiplied by `factor`."""
    last = snapshots[-1]
    txns = int(round(last.transactions * factor))
    revenue = int(round(last.revenue * factor))
    spiked = replace(
        last,
        transactions=txns,
        revenue=revenue,
        customers=int(round(last.customers * factor)),
        cashback_paid=int(round(revenue * last.cashback_percent / 100)),
    )
    return list(snapshots[:-1]) + [spiked]
