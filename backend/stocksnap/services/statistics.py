# Overview: Pure dashboard statistics over in-memory ledger snapshots.

"""
Dashboard statistics.

Pure functions: no I/O, no session access, no clock reads. The caller passes
the snapshot (products or sales) and, for time buckets, the reference day and
zone. Empty input yields empty or zeroed output, never an error.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable

from ..errors import ValidationError
from stocksnap.time_utils import local_date


# Longest revenue window served (about ten years of daily buckets)
MAX_STATS_DAYS = 3660


def low_stock(products: Iterable, limit: int) -> list:
    """
    Products at or below their own threshold, lowest stock first.

    Ties on stock are ordered by name, then id.
    """
    if limit <= 0:
        return []
    flagged = [
        p for p in products
        if getattr(p, "is_active", True) and p.stock_quantity <= p.low_stock_threshold
    ]
    flagged.sort(key=lambda p: (p.stock_quantity, p.name or "", p.id or 0))
    return flagged[:limit]


def top_sellers(sales: Iterable, limit: int) -> list[dict]:
    """
    Units sold per product across `sales`, highest first.

    `sales` is the already-bounded window (most recent N sales). Equal counts
    keep first-seen order; the name is the first snapshot seen.
    """
    if limit <= 0:
        return []

    counts: dict = {}
    for sale in sales:
        for item in sale.items:
            entry = counts.get(item.product_id)
            if entry is None:
                entry = counts[item.product_id] = {
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "count": 0,
                }
            entry["count"] += item.quantity

    # sorted() is stable, so ties stay in first-seen order
    ranked = sorted(counts.values(), key=lambda e: e["count"], reverse=True)
    return ranked[:limit]


def day_range(days: int, today: date) -> list[date]:
    """Calendar days from today - days to today inclusive (days + 1 entries)."""
    if days < 0:
        raise ValidationError("days cannot be negative", details={"days": days})
    if days > MAX_STATS_DAYS:
        raise ValidationError(
            f"days cannot exceed {MAX_STATS_DAYS}",
            details={"days": days, "max_days": MAX_STATS_DAYS},
        )
    start = today - timedelta(days=days)
    return [start + timedelta(days=i) for i in range(days + 1)]


def sales_stats(sales: Iterable, days: int, today: date, tz_name: str = "UTC") -> list[dict]:
    """
    Revenue per calendar day, oldest first, one bucket per day with no gaps.

    A sale lands in the bucket of its created_at date in `tz_name`; sales
    outside the window are ignored.
    """
    buckets = {day: 0.0 for day in day_range(days, today)}
    for sale in sales:
        day = local_date(sale.created_at, tz_name)
        if day in buckets:
            buckets[day] += sale.total
    return [{"date": day.isoformat(), "total": total} for day, total in buckets.items()]
