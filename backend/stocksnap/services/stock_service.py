# Overview: Service-layer operations for stock; the single writer of Product.stock_quantity.

"""
StockSnap Stock Invariants (authoritative)

Choke point:
- Product.stock_quantity changes ONLY through apply_stock_change().
- Every successful call writes exactly one StockMovement row.

Movement kinds:
- in:         new = current + quantity      (quantity > 0)
- out:        new = current - quantity      (quantity > 0, never below zero)
- adjustment: new = quantity                (quantity >= 0, absolute level)
The raw (type, quantity) pair is resolved to a tagged StockChange before
anything is computed, so callers never mix a delta with a level.

Atomicity:
- Product update and movement insert are committed in ONE transaction.
- The product row is locked (FOR UPDATE) and carries an optimistic
  version_id, so a concurrent writer either waits or fails with
  StaleDataError and the whole unit is retried.
- commit=False hands the transaction to an outer unit of work (sales).

Idempotency:
- adjustment is naturally idempotent (absolute level).
- in/out are not, except for sale lines: (sale_id, sale_line) is unique and
  re-applying the same line returns the movement already recorded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from flask import current_app

from ..errors import (
    ConflictError,
    InsufficientStock,
    InvalidQuantity,
    InvalidReason,
    ProductNotFound,
    StockSnapError,
    ValidationError,
)
from ..models import StockMovement
from ..models.ledger import MOVEMENT_ADJUSTMENT, MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_TYPES
from stocksnap.time_utils import utcnow
from .concurrency import run_with_retry
from .ledger_store import SqlLedgerStore


@dataclass(frozen=True)
class Delta:
    """Relative change; negative for outbound stock."""
    amount: int


@dataclass(frozen=True)
class SetLevel:
    """Absolute stock level (count correction)."""
    level: int


StockChange = Union[Delta, SetLevel]


def validate_movement_type(movement_type: str) -> str:
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(
            f"Invalid movement type: {movement_type}",
            details={"allowed": list(MOVEMENT_TYPES)},
        )
    return movement_type


def validate_quantity(quantity, movement_type: str) -> int:
    # bool is an int subclass; True is not a quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity("Quantity must be an integer", details={"quantity": quantity})
    if movement_type == MOVEMENT_ADJUSTMENT:
        if quantity < 0:
            raise InvalidQuantity("Adjusted stock level cannot be negative", details={"quantity": quantity})
    elif quantity <= 0:
        raise InvalidQuantity("Quantity must be greater than zero", details={"quantity": quantity})
    return quantity


def validate_reason(reason) -> str:
    if not isinstance(reason, str) or not reason.strip():
        raise InvalidReason("A reason is required for every stock movement")
    return reason.strip()


def resolve_change(movement_type: str, quantity: int) -> StockChange:
    if movement_type == MOVEMENT_IN:
        return Delta(quantity)
    if movement_type == MOVEMENT_OUT:
        return Delta(-quantity)
    return SetLevel(quantity)


def next_stock_level(current: int, change: StockChange, *, product_id=None) -> int:
    """Stock level after `change`; an outbound delta may never overdraw."""
    if isinstance(change, SetLevel):
        return change.level

    new_level = current + change.amount
    if new_level < 0:
        raise InsufficientStock(
            "Insufficient stock",
            details={
                "product_id": product_id,
                "requested_quantity": -change.amount,
                "on_hand": current,
            },
        )
    return new_level


def _apply_stock_change_inner(
    store: SqlLedgerStore,
    *,
    product_id: int,
    quantity: int,
    movement_type: str,
    reason: str,
    performed_by: int,
    sale_id: int | None = None,
    sale_line: int | None = None,
) -> StockMovement:
    """Core mutation without retry or commit."""
    if sale_id is not None and sale_line is not None:
        existing = store.find_sale_line_movement(sale_id, sale_line)
        if existing is not None:
            if existing.product_id != product_id or existing.type != movement_type:
                raise ConflictError(
                    "Sale line already applied to a different movement",
                    details={"sale_id": sale_id, "sale_line": sale_line},
                )
            return existing

    product = store.get_product(product_id, lock=True)
    if product is None or not product.is_active:
        raise ProductNotFound(product_id)

    # snapshot before the write
    product_name = product.name
    previous = product.stock_quantity

    change = resolve_change(movement_type, quantity)
    new_level = next_stock_level(previous, change, product_id=product_id)

    now = utcnow()
    store.update_product(product_id, {"stock_quantity": new_level, "updated_at": now})

    movement_id = store.insert_movement({
        "product_id": product_id,
        "product_name": product_name,
        "type": movement_type,
        "quantity": quantity,
        "reason": reason,
        "previous_quantity": previous,
        "new_quantity": new_level,
        "performed_by": performed_by,
        "sale_id": sale_id,
        "sale_line": sale_line,
        "created_at": now,
    })
    return store.get_movement(movement_id)


def apply_stock_change(
    product_id: int,
    quantity: int,
    movement_type: str,
    reason: str,
    performed_by: int,
    *,
    sale_id: int | None = None,
    sale_line: int | None = None,
    commit: bool = True,
    store: SqlLedgerStore | None = None,
) -> StockMovement:
    """
    Apply one stock change and record its movement.

    Raises ProductNotFound, InsufficientStock, InvalidQuantity, InvalidReason
    or ValidationError. Nothing is written when an error is raised (with
    commit=False the caller decides what to roll back).
    """
    movement_type = validate_movement_type(movement_type)
    quantity = validate_quantity(quantity, movement_type)
    reason = validate_reason(reason)
    if performed_by is None:
        raise ValidationError("performed_by is required")

    store = store or SqlLedgerStore()

    def _op():
        movement = _apply_stock_change_inner(
            store,
            product_id=product_id,
            quantity=quantity,
            movement_type=movement_type,
            reason=reason,
            performed_by=performed_by,
            sale_id=sale_id,
            sale_line=sale_line,
        )
        if commit:
            store.session.commit()
        return movement

    if not commit:
        return _op()

    try:
        movement = run_with_retry(_op)
    except StockSnapError:
        store.session.rollback()
        raise

    current_app.logger.info(
        "Stock change applied: product=%s type=%s quantity=%s %s -> %s by user=%s",
        product_id,
        movement_type,
        quantity,
        movement.previous_quantity,
        movement.new_quantity,
        performed_by,
    )
    return movement


def list_movements(
    product_id: int | None = None,
    movement_type: str | None = None,
    limit: int = 200,
    *,
    store: SqlLedgerStore | None = None,
) -> list[StockMovement]:
    """Movement history, newest first (history screen tabs filter by type)."""
    if movement_type is not None:
        validate_movement_type(movement_type)
    store = store or SqlLedgerStore()
    if product_id is not None and store.get_product(product_id) is None:
        raise ProductNotFound(product_id)
    return store.list_movements(product_id, movement_type=movement_type, limit=limit)
