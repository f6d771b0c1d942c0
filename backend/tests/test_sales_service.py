"""
Sale recorder tests.

Verifies:
- catalog pricing, tax and discount arithmetic
- one "out" movement per line, citing the sale id
- atomic mode rolls everything back on failure
- stepwise mode keeps the sale and raises ConsistencyWarning
"""

import pytest
from sqlalchemy.exc import OperationalError

from stocksnap.errors import (
    ConsistencyWarning,
    CustomerNotFound,
    EmptyCart,
    InsufficientStock,
    InvalidQuantity,
    ProductNotFound,
    SaleNotFound,
    ValidationError,
)
from stocksnap.extensions import db
from stocksnap.models import Product, Sale, StockMovement
from stocksnap.services import catalog_service, customer_service, sales_service


def _stock(product_id):
    return db.session.get(Product, product_id).stock_quantity


def _sale_movements(sale_id):
    return (
        db.session.query(StockMovement)
        .filter_by(sale_id=sale_id)
        .order_by(StockMovement.sale_line)
        .all()
    )


def _fail_on_line(monkeypatch, line_number, error=None):
    """Make the stock step fail for one sale line, as a concurrent writer would."""
    real_apply = sales_service.apply_stock_change

    def flaky_apply(*args, **kwargs):
        if kwargs.get("sale_line") == line_number:
            raise error or InsufficientStock("Insufficient stock", details={"sale_line": line_number})
        return real_apply(*args, **kwargs)

    monkeypatch.setattr(sales_service, "apply_stock_change", flaky_apply)


# =============================================================================
# TOTALS
# =============================================================================


class TestTotals:
    def test_compute_totals(self):
        lines = [{"total": 20.0}, {"total": 5.0}]
        totals = sales_service.compute_totals(lines, discount=0.0, tax_rate=0.10)
        assert totals == pytest.approx({"subtotal": 25.0, "discount": 0.0, "tax": 2.5, "total": 27.5})

    def test_discount_reduces_total_not_tax(self):
        totals = sales_service.compute_totals([{"total": 100.0}], discount=10.0, tax_rate=0.10)
        assert totals["tax"] == pytest.approx(10.0)
        assert totals["total"] == pytest.approx(100.0)

    def test_discount_cannot_exceed_subtotal(self):
        with pytest.raises(ValidationError):
            sales_service.compute_totals([{"total": 5.0}], discount=6.0, tax_rate=0.10)


# =============================================================================
# RECORD SALE (atomic, default)
# =============================================================================


class TestRecordSale:
    def test_two_line_sale(self, product_a, product_b, seller):
        sale = sales_service.record_sale(
            [
                {"product_id": product_a.id, "quantity": 2},
                {"product_id": product_b.id, "quantity": 1},
            ],
            "cash",
            seller.id,
        )

        assert sale.subtotal == pytest.approx(25.0)
        assert sale.tax == pytest.approx(2.5)
        assert sale.total == pytest.approx(27.5)
        assert sale.seller_id == seller.id
        assert [item.line_number for item in sale.items] == [1, 2]
        assert [item.unit_price for item in sale.items] == [10.0, 5.0]
        assert sales_service.sale_totals_consistent(sale)

        assert _stock(product_a.id) == 18
        assert _stock(product_b.id) == 2

        movements = _sale_movements(sale.id)
        assert [(m.product_id, m.type, m.quantity) for m in movements] == [
            (product_a.id, "out", 2),
            (product_b.id, "out", 1),
        ]
        assert {m.reason for m in movements} == {f"Sale ({sale.id})"}
        assert {m.performed_by for m in movements} == {seller.id}

    def test_price_comes_from_catalog(self, product_a, seller):
        sale = sales_service.record_sale(
            [{"product_id": product_a.id, "quantity": 1, "unit_price": 0.01}],
            "card",
            seller.id,
        )
        assert sale.items[0].unit_price == 10.0

    def test_name_snapshot(self, product_a, seller):
        sale = sales_service.record_sale([{"product_id": product_a.id, "quantity": 1}], "cash", seller.id)
        catalog_service.update_product(product_a.id, {"name": "Renamed"})

        assert sales_service.get_sale(sale.id).items[0].product_name == "Product A"

    def test_discount(self, product_a, seller):
        sale = sales_service.record_sale(
            [{"product_id": product_a.id, "quantity": 3}],
            "cash",
            seller.id,
            discount=5,
        )
        assert sale.subtotal == pytest.approx(30.0)
        assert sale.total == pytest.approx(30.0 - 5.0 + 3.0)
        assert sales_service.sale_totals_consistent(sale)

    def test_customer_snapshot(self, product_a, seller):
        customer = customer_service.create_customer({"name": "Ada Customer"})
        sale = sales_service.record_sale(
            [{"product_id": product_a.id, "quantity": 1}],
            "cash",
            seller.id,
            customer_id=customer.id,
        )
        assert sale.customer_id == customer.id
        assert sale.customer_name == "Ada Customer"

    def test_walk_in_customer_name(self, product_a, seller):
        sale = sales_service.record_sale(
            [{"product_id": product_a.id, "quantity": 1}],
            "cash",
            seller.id,
            customer_name="  Walk-in  ",
        )
        assert sale.customer_id is None
        assert sale.customer_name == "Walk-in"

    def test_repeated_product_lines_checked_together(self, product_b, seller):
        with pytest.raises(InsufficientStock) as exc_info:
            sales_service.record_sale(
                [
                    {"product_id": product_b.id, "quantity": 2},
                    {"product_id": product_b.id, "quantity": 2},
                ],
                "cash",
                seller.id,
            )

        assert exc_info.value.details["items"] == [
            {"product_id": product_b.id, "requested_quantity": 4, "on_hand": 3},
        ]
        assert db.session.query(Sale).count() == 0
        assert _stock(product_b.id) == 3


class TestRecordSaleValidation:
    def test_empty_cart(self, seller):
        with pytest.raises(EmptyCart):
            sales_service.record_sale([], "cash", seller.id)

    @pytest.mark.parametrize("quantity", [0, -2, 1.5, None])
    def test_bad_quantity(self, product_a, seller, quantity):
        with pytest.raises(InvalidQuantity):
            sales_service.record_sale([{"product_id": product_a.id, "quantity": quantity}], "cash", seller.id)

    def test_unknown_payment_method(self, product_a, seller):
        with pytest.raises(ValidationError):
            sales_service.record_sale([{"product_id": product_a.id, "quantity": 1}], "barter", seller.id)

    def test_negative_discount(self, product_a, seller):
        with pytest.raises(ValidationError):
            sales_service.record_sale(
                [{"product_id": product_a.id, "quantity": 1}], "cash", seller.id, discount=-1,
            )

    def test_unknown_product(self, db_session, seller):
        with pytest.raises(ProductNotFound):
            sales_service.record_sale([{"product_id": 777_777, "quantity": 1}], "cash", seller.id)

    def test_unknown_customer(self, product_a, seller):
        with pytest.raises(CustomerNotFound):
            sales_service.record_sale(
                [{"product_id": product_a.id, "quantity": 1}], "cash", seller.id, customer_id=555,
            )
        assert db.session.query(Sale).count() == 0


# =============================================================================
# COMMIT MODES
# =============================================================================


class TestAtomicMode:
    def test_failing_line_rolls_back_whole_sale(self, monkeypatch, product_a, product_b, seller):
        _fail_on_line(monkeypatch, 2)

        with pytest.raises(InsufficientStock):
            sales_service.record_sale(
                [
                    {"product_id": product_a.id, "quantity": 2},
                    {"product_id": product_b.id, "quantity": 1},
                ],
                "cash",
                seller.id,
            )

        assert db.session.query(Sale).count() == 0
        assert db.session.query(StockMovement).filter(StockMovement.sale_id.isnot(None)).count() == 0
        assert _stock(product_a.id) == 20
        assert _stock(product_b.id) == 3


class TestStepwiseMode:
    @pytest.fixture(autouse=True)
    def stepwise(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "SALE_COMMIT_MODE", "stepwise")

    def test_success_matches_atomic(self, product_a, product_b, seller):
        sale = sales_service.record_sale(
            [
                {"product_id": product_a.id, "quantity": 2},
                {"product_id": product_b.id, "quantity": 1},
            ],
            "cash",
            seller.id,
        )
        assert sale.total == pytest.approx(27.5)
        assert len(_sale_movements(sale.id)) == 2
        assert _stock(product_a.id) == 18

    def test_failing_line_keeps_sale_and_warns(self, monkeypatch, product_a, product_b, seller):
        _fail_on_line(monkeypatch, 2)

        with pytest.raises(ConsistencyWarning) as exc_info:
            sales_service.record_sale(
                [
                    {"product_id": product_a.id, "quantity": 2},
                    {"product_id": product_b.id, "quantity": 1},
                ],
                "cash",
                seller.id,
            )

        warning = exc_info.value
        assert warning.line == 2
        assert isinstance(warning.cause, InsufficientStock)
        assert warning.details["sale_id"] == warning.sale.id
        assert warning.details["failed_line"] == 2

        # sale and first line stand
        assert db.session.get(Sale, warning.sale.id) is not None
        assert [m.sale_line for m in _sale_movements(warning.sale.id)] == [1]
        assert _stock(product_a.id) == 18
        assert _stock(product_b.id) == 3

    def test_database_error_on_line_keeps_sale_and_warns(self, monkeypatch, product_a, product_b, seller):
        locked = OperationalError("UPDATE products", {}, Exception("database is locked"))
        _fail_on_line(monkeypatch, 2, error=locked)

        with pytest.raises(ConsistencyWarning) as exc_info:
            sales_service.record_sale(
                [
                    {"product_id": product_a.id, "quantity": 2},
                    {"product_id": product_b.id, "quantity": 1},
                ],
                "cash",
                seller.id,
            )

        warning = exc_info.value
        assert warning.cause is locked
        assert warning.details["failed_line"] == 2
        assert warning.details["cause"] == {"error": "Database error", "type": "OperationalError"}

        assert db.session.query(Sale).count() == 1
        assert [m.sale_line for m in _sale_movements(warning.sale.id)] == [1]
        assert _stock(product_a.id) == 18
        assert _stock(product_b.id) == 3


# =============================================================================
# QUERIES
# =============================================================================


class TestSaleQueries:
    def test_list_sales_newest_first(self, product_a, seller):
        first = sales_service.record_sale([{"product_id": product_a.id, "quantity": 1}], "cash", seller.id)
        second = sales_service.record_sale([{"product_id": product_a.id, "quantity": 1}], "card", seller.id)

        assert [s.id for s in sales_service.list_sales()] == [second.id, first.id]
        assert [s.id for s in sales_service.list_sales(limit=1)] == [second.id]

    def test_list_sales_negative_limit(self, product_a, seller):
        sales_service.record_sale([{"product_id": product_a.id, "quantity": 1}], "cash", seller.id)
        with pytest.raises(ValidationError):
            sales_service.list_sales(limit=-1)

    def test_get_unknown_sale(self, db_session):
        with pytest.raises(SaleNotFound):
            sales_service.get_sale(31337)
