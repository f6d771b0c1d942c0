"""
Sales Service - records multi-line sales and applies their stock effects.

Pricing:
- unit_price comes from the catalog at call time, never from the caller.
- subtotal = sum(quantity * unit_price)
- tax = subtotal * SALES_TAX_RATE
- total = subtotal - discount + tax

Commit modes (SALE_COMMIT_MODE):
- atomic: the sale row and every line's "out" movement share one
  transaction. Any failure rolls the whole sale back.
- stepwise: the sale is committed first so movement reasons can cite its
  id, then each line is committed on its own. A failing line stops the
  remaining lines and raises ConsistencyWarning; nothing is rolled back.
"""

from __future__ import annotations

from datetime import datetime
from numbers import Real

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import (
    ConsistencyWarning,
    CustomerNotFound,
    EmptyCart,
    InsufficientStock,
    InvalidQuantity,
    ProductNotFound,
    SaleNotFound,
    StockSnapError,
    ValidationError,
)
from ..models import Sale
from ..models.ledger import MOVEMENT_OUT
from ..models.sales import PAYMENT_METHODS
from .concurrency import run_with_retry
from .ledger_store import SqlLedgerStore
from .stock_service import apply_stock_change


TOTALS_TOLERANCE = 1e-6


def sale_reason(sale_id: int) -> str:
    return f"Sale ({sale_id})"


def _validate_items(items) -> list[dict]:
    if not items:
        raise EmptyCart()

    cleaned = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError("Each item must be an object", details={"line": index})
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        if product_id is None:
            raise ValidationError("product_id is required", details={"line": index})
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantity(
                "Quantity must be a positive integer",
                details={"line": index, "quantity": quantity},
            )
        cleaned.append({"product_id": product_id, "quantity": quantity})
    return cleaned


def _validate_discount(discount) -> float:
    if isinstance(discount, bool) or not isinstance(discount, Real):
        raise ValidationError("discount must be a number")
    if discount < 0:
        raise ValidationError("discount cannot be negative")
    return float(discount)


def _price_lines(store: SqlLedgerStore, items: list[dict]) -> list[dict]:
    """Resolve catalog prices and name snapshots for every line."""
    lines = []
    for item in items:
        product = store.get_product(item["product_id"])
        if product is None or not product.is_active:
            raise ProductNotFound(item["product_id"])
        if product.price is None or product.price <= 0:
            raise ValidationError(
                "Product has no valid price",
                details={"product_id": product.id},
            )
        lines.append({
            "product_id": product.id,
            "product_name": product.name,
            "quantity": item["quantity"],
            "unit_price": product.price,
            "total": item["quantity"] * product.price,
        })
    return lines


def _validate_on_hand(store: SqlLedgerStore, lines: list[dict]) -> None:
    product_totals: dict[int, int] = {}
    for line in lines:
        product_totals[line["product_id"]] = product_totals.get(line["product_id"], 0) + line["quantity"]

    insufficient = []
    for product_id, qty in product_totals.items():
        on_hand = store.get_product(product_id).stock_quantity
        if on_hand < qty:
            insufficient.append({
                "product_id": product_id,
                "requested_quantity": qty,
                "on_hand": on_hand,
            })

    if insufficient:
        raise InsufficientStock(
            "Insufficient stock to record sale",
            details={"items": insufficient},
        )


def _resolve_customer(store: SqlLedgerStore, customer_id, customer_name):
    if customer_id is None:
        name = customer_name.strip() if isinstance(customer_name, str) else None
        return None, name or None
    customer = store.get_customer(customer_id)
    if customer is None:
        raise CustomerNotFound(customer_id)
    return customer.id, customer.name


def compute_totals(lines: list[dict], *, discount: float, tax_rate: float) -> dict:
    subtotal = sum(line["total"] for line in lines)
    if discount > subtotal:
        raise ValidationError(
            "discount cannot exceed subtotal",
            details={"discount": discount, "subtotal": subtotal},
        )
    tax = subtotal * tax_rate
    return {
        "subtotal": subtotal,
        "discount": discount,
        "tax": tax,
        "total": subtotal - discount + tax,
    }


def _build_sale(store, items, *, payment_method, seller_id, customer_id, customer_name,
                discount, receipt_url) -> Sale:
    lines = _price_lines(store, items)
    _validate_on_hand(store, lines)
    totals = compute_totals(
        lines,
        discount=discount,
        tax_rate=current_app.config["SALES_TAX_RATE"],
    )
    resolved_customer_id, resolved_customer_name = _resolve_customer(store, customer_id, customer_name)

    sale_id = store.insert_sale({
        "items": lines,
        **totals,
        "payment_method": payment_method,
        "customer_id": resolved_customer_id,
        "customer_name": resolved_customer_name,
        "seller_id": seller_id,
        "receipt_url": receipt_url,
    })
    return store.get_sale(sale_id)


def _apply_line(sale: Sale, item, *, seller_id: int, commit: bool, store: SqlLedgerStore):
    return apply_stock_change(
        item.product_id,
        item.quantity,
        MOVEMENT_OUT,
        sale_reason(sale.id),
        seller_id,
        sale_id=sale.id,
        sale_line=item.line_number,
        commit=commit,
        store=store,
    )


def record_sale(
    items,
    payment_method: str,
    seller_id: int,
    *,
    customer_id: int | None = None,
    customer_name: str | None = None,
    discount: float = 0.0,
    receipt_url: str | None = None,
    store: SqlLedgerStore | None = None,
) -> Sale:
    """
    Validate, price and persist a sale, then decrement stock once per line.

    Raises EmptyCart, InvalidQuantity, ValidationError, ProductNotFound,
    CustomerNotFound or InsufficientStock. In stepwise mode a failure after
    the sale was persisted raises ConsistencyWarning instead.
    """
    items = _validate_items(items)
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {payment_method}",
            details={"allowed": list(PAYMENT_METHODS)},
        )
    if seller_id is None:
        raise ValidationError("seller_id is required")
    discount = _validate_discount(discount)

    store = store or SqlLedgerStore()
    build_kwargs = dict(
        payment_method=payment_method,
        seller_id=seller_id,
        customer_id=customer_id,
        customer_name=customer_name,
        discount=discount,
        receipt_url=receipt_url,
    )

    if current_app.config["SALE_COMMIT_MODE"] == "stepwise":
        return _record_sale_stepwise(store, items, build_kwargs)

    def _op():
        sale = _build_sale(store, items, **build_kwargs)
        for item in sale.items:
            _apply_line(sale, item, seller_id=seller_id, commit=False, store=store)
        store.session.commit()
        return sale

    try:
        sale = run_with_retry(_op)
    except StockSnapError:
        store.session.rollback()
        raise

    current_app.logger.info(
        "Sale recorded: id=%s lines=%s total=%.2f seller=%s",
        sale.id, len(sale.items), sale.total, seller_id,
    )
    return sale


def _record_sale_stepwise(store: SqlLedgerStore, items, build_kwargs) -> Sale:
    def _persist():
        sale = _build_sale(store, items, **build_kwargs)
        store.session.commit()
        return sale

    try:
        sale = run_with_retry(_persist)
    except StockSnapError:
        store.session.rollback()
        raise

    current_app.logger.info("Sale persisted: id=%s total=%.2f", sale.id, sale.total)

    for item in sale.items:
        line_number = item.line_number
        try:
            _apply_line(sale, item, seller_id=build_kwargs["seller_id"], commit=True, store=store)
        except (StockSnapError, SQLAlchemyError) as exc:
            store.session.rollback()
            current_app.logger.warning(
                "Sale %s recorded but stock update failed on line %s: %s",
                sale.id, line_number, exc,
            )
            raise ConsistencyWarning(
                f"Sale {sale.id} was recorded but its stock could not be fully updated",
                sale=sale,
                cause=exc,
                line=line_number,
            ) from exc

    return sale


def sale_totals_consistent(sale: Sale, tolerance: float = TOTALS_TOLERANCE) -> bool:
    """Check the line, subtotal and total relations of a persisted sale."""
    for item in sale.items:
        if abs(item.total - item.quantity * item.unit_price) > tolerance:
            return False
    if abs(sum(item.total for item in sale.items) - sale.subtotal) > tolerance:
        return False
    return abs(sale.subtotal - sale.discount + sale.tax - sale.total) <= tolerance


def get_sale(sale_id: int, *, store: SqlLedgerStore | None = None) -> Sale:
    store = store or SqlLedgerStore()
    sale = store.get_sale(sale_id)
    if sale is None:
        raise SaleNotFound(sale_id)
    return sale


def list_sales(
    *,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int | None = None,
    store: SqlLedgerStore | None = None,
) -> list[Sale]:
    store = store or SqlLedgerStore()
    return store.list_sales(since=since, until=until, limit=limit)
