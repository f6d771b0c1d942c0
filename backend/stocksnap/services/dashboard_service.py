# Overview: Dashboard reads; fetches ledger snapshots and derives statistics.

"""
Dashboard Service

Read-only. Each call takes a fresh snapshot through the Ledger Store and
hands it to services.statistics. A failed read is logged and degrades to
an empty or zeroed result instead of an error, so the dashboard can always
render "no data".
"""

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from . import statistics
from .ledger_store import SqlLedgerStore
from stocksnap.time_utils import local_date, local_start_of_day_utc, utcnow


def _tz_name() -> str:
    return current_app.config["STATS_TIMEZONE"]


def today_local() -> date:
    return local_date(utcnow(), _tz_name())


def _degraded(store: SqlLedgerStore, what: str) -> None:
    current_app.logger.warning("Dashboard read failed (%s); returning no data", what, exc_info=True)
    store.session.rollback()


def low_stock(limit: int = 5, *, store: SqlLedgerStore | None = None) -> list:
    store = store or SqlLedgerStore()
    try:
        products = store.list_products("stock_quantity")
    except SQLAlchemyError:
        _degraded(store, "low_stock")
        return []
    return statistics.low_stock(products, limit)


def top_sellers(
    limit: int = 5,
    sample_size: int | None = None,
    *,
    store: SqlLedgerStore | None = None,
) -> list[dict]:
    """Ranking over the `sample_size` most recent sales (not all-time)."""
    store = store or SqlLedgerStore()
    if sample_size is None:
        sample_size = current_app.config["TOP_SELLERS_SAMPLE_SIZE"]
    if sample_size <= 0:
        return []
    try:
        sales = store.list_sales(limit=sample_size)
    except SQLAlchemyError:
        _degraded(store, "top_sellers")
        return []
    return statistics.top_sellers(sales, limit)


def sales_stats(
    days: int = 7,
    today: date | None = None,
    *,
    store: SqlLedgerStore | None = None,
) -> list[dict]:
    store = store or SqlLedgerStore()
    tz_name = _tz_name()
    today = today or today_local()

    # validates days before touching the store
    first_day = statistics.day_range(days, today)[0]
    since = local_start_of_day_utc(first_day, tz_name)
    try:
        sales = store.list_sales(since=since)
    except SQLAlchemyError:
        _degraded(store, "sales_stats")
        sales = []
    return statistics.sales_stats(sales, days, today, tz_name)


def summary(*, today: date | None = None, store: SqlLedgerStore | None = None) -> dict:
    """Headline figures for the dashboard cards."""
    store = store or SqlLedgerStore()
    today = today or today_local()

    week = sales_stats(6, today, store=store)
    today_total = week[-1]["total"] if week else 0.0

    try:
        since = local_start_of_day_utc(today, _tz_name())
        today_count = len(store.list_sales(since=since))
        products = store.list_products()
        result = {
            "total_products": store.count_products(),
            "total_sales": store.count_sales(),
            "total_customers": store.count_customers(),
            "total_revenue": store.sum_sales_total(),
            "low_stock_count": sum(1 for p in products if p.is_low_stock),
            "today_sales_count": today_count,
        }
    except SQLAlchemyError:
        _degraded(store, "summary")
        result = {
            "total_products": 0,
            "total_sales": 0,
            "total_customers": 0,
            "total_revenue": 0.0,
            "low_stock_count": 0,
            "today_sales_count": 0,
        }

    result["today_revenue"] = today_total
    result["weekly_revenue"] = sum(bucket["total"] for bucket in week)
    result["date"] = today.isoformat()
    return result
