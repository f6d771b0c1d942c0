"""
Dashboard service tests: snapshots read through the ledger store.
"""

from datetime import date, datetime

import pytest
from sqlalchemy.exc import SQLAlchemyError

from stocksnap.extensions import db
from stocksnap.services import dashboard_service, sales_service
from stocksnap.services.ledger_store import SqlLedgerStore


TODAY = date(2026, 3, 10)


def _sell(seller, product, quantity, when=None):
    sale = sales_service.record_sale([{"product_id": product.id, "quantity": quantity}], "cash", seller.id)
    if when is not None:
        sale.created_at = when
        db.session.commit()
    return sale


class TestLowStock:
    def test_reads_active_catalog(self, product_a, product_b, product_factory):
        empty = product_factory("Empty Shelf", 3.0, stock=0, threshold=1)

        result = dashboard_service.low_stock(5)

        # product_a (20 on hand, threshold 5) is fine
        assert [p.id for p in result] == [empty.id, product_b.id]

    def test_degrades_to_empty_on_read_failure(self, monkeypatch, product_b):
        def broken(self, *args, **kwargs):
            raise SQLAlchemyError("connection lost")

        monkeypatch.setattr(SqlLedgerStore, "list_products", broken)
        assert dashboard_service.low_stock(5) == []


class TestTopSellers:
    def test_window_is_most_recent_sales(self, product_a, product_b, seller):
        _sell(seller, product_a, 5)
        _sell(seller, product_b, 1)
        _sell(seller, product_b, 1)

        # only the two most recent sales are scanned
        assert dashboard_service.top_sellers(5, sample_size=2) == [
            {"product_id": product_b.id, "product_name": "Product B", "count": 2},
        ]
        assert dashboard_service.top_sellers(5)[0]["product_id"] == product_a.id

    def test_non_positive_sample(self, product_a, seller):
        _sell(seller, product_a, 1)
        assert dashboard_service.top_sellers(5, sample_size=0) == []


class TestSalesStats:
    def test_buckets_by_calendar_day(self, product_a, seller):
        _sell(seller, product_a, 10, when=datetime(2026, 3, 9, 18, 0))   # 100 + 10 tax
        _sell(seller, product_a, 1, when=datetime(2026, 3, 1, 18, 0))    # outside window

        result = dashboard_service.sales_stats(2, TODAY)

        assert [b["date"] for b in result] == ["2026-03-08", "2026-03-09", "2026-03-10"]
        assert [b["total"] for b in result] == pytest.approx([0.0, 110.0, 0.0])

    def test_negative_days(self, db_session):
        with pytest.raises(ValueError):
            dashboard_service.sales_stats(-1, TODAY)

    def test_degrades_to_zero_buckets(self, monkeypatch, db_session):
        def broken(self, *args, **kwargs):
            raise SQLAlchemyError("connection lost")

        monkeypatch.setattr(SqlLedgerStore, "list_sales", broken)
        result = dashboard_service.sales_stats(2, TODAY)
        assert [b["total"] for b in result] == [0.0, 0.0, 0.0]


class TestSummary:
    def test_headline_figures(self, product_a, product_b, seller):
        _sell(seller, product_a, 2, when=datetime(2026, 3, 10, 9, 0))   # 22.0
        _sell(seller, product_b, 1, when=datetime(2026, 3, 5, 9, 0))    # 5.5
        _sell(seller, product_b, 1, when=datetime(2026, 2, 1, 9, 0))    # 5.5, older than a week

        summary = dashboard_service.summary(today=TODAY)

        assert summary["date"] == "2026-03-10"
        assert summary["total_products"] == 2
        assert summary["total_sales"] == 3
        assert summary["total_customers"] == 0
        assert summary["total_revenue"] == pytest.approx(33.0)
        assert summary["low_stock_count"] == 1
        assert summary["today_sales_count"] == 1
        assert summary["today_revenue"] == pytest.approx(22.0)
        assert summary["weekly_revenue"] == pytest.approx(27.5)

    def test_empty_shop(self, db_session):
        summary = dashboard_service.summary(today=TODAY)
        assert summary["total_sales"] == 0
        assert summary["total_revenue"] == 0.0
        assert summary["weekly_revenue"] == 0.0
