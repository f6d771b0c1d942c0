# Overview: Data-access boundary for the ledger (products, sales, stock movements).

"""
StockSnap Ledger Store

The services talk to persistence only through the LedgerStore interface.
SqlLedgerStore is the production implementation over the Flask-SQLAlchemy
session.

Transactions:
- insert_* and update_product only flush, so generated ids are available
  immediately. Committing is the caller's unit of work.
- Reads return ORM rows attached to the current session.

Ordering:
- list_products: ascending by the requested sort key, then id
- list_sales / list_movements: newest first (created_at desc, id desc)
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Mapping, Protocol

from sqlalchemy import func

from ..extensions import db
from ..errors import ProductNotFound, ValidationError
from ..models import Customer, Product, Sale, SaleItem, StockMovement
from .concurrency import lock_for_update


PRODUCT_SORT_KEYS = {
    "name": Product.name,
    "sku": Product.sku,
    "stock_quantity": Product.stock_quantity,
    "price": Product.price,
    "category": Product.category,
    "created_at": Product.created_at,
    "updated_at": Product.updated_at,
}

PRODUCT_PATCHABLE_FIELDS = {
    "name", "description", "sku", "barcode", "category",
    "price", "cost_price", "low_stock_threshold", "image_url",
    "is_active", "stock_quantity", "updated_at",
}


def _limited(query, limit: int | None):
    if limit is None:
        return query
    if limit < 0:
        raise ValidationError("limit cannot be negative", details={"limit": limit})
    return query.limit(limit)


class LedgerStore(Protocol):
    def get_product(self, product_id: int, *, lock: bool = False) -> Product | None: ...

    def list_products(self, sort_key: str = "name", *, include_inactive: bool = False) -> list[Product]: ...

    def update_product(self, product_id: int, patch: Mapping) -> None: ...

    def insert_movement(self, record: Mapping) -> int: ...

    def insert_sale(self, record: Mapping) -> int: ...

    def list_sales(
        self,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[Sale]: ...

    def list_movements(
        self,
        product_id: int | None = None,
        *,
        movement_type: str | None = None,
        limit: int | None = None,
    ) -> list[StockMovement]: ...


class SqlLedgerStore:
    """LedgerStore over the application's SQLAlchemy session."""

    def __init__(self, session=None):
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    # --- products -------------------------------------------------------

    def get_product(self, product_id: int, *, lock: bool = False) -> Product | None:
        query = self.session.query(Product).filter_by(id=product_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def find_product_by_barcode(self, barcode: str) -> Product | None:
        return self.session.query(Product).filter_by(barcode=barcode, is_active=True).first()

    def find_product_by_sku(self, sku: str) -> Product | None:
        return self.session.query(Product).filter_by(sku=sku).first()

    def list_products(self, sort_key: str = "name", *, include_inactive: bool = False) -> list[Product]:
        column = PRODUCT_SORT_KEYS.get(sort_key)
        if column is None:
            raise ValidationError(
                f"Unsupported sort key: {sort_key}",
                details={"allowed": sorted(PRODUCT_SORT_KEYS)},
            )
        query = self.session.query(Product)
        if not include_inactive:
            query = query.filter(Product.is_active.is_(True))
        return query.order_by(column.asc(), Product.id.asc()).all()

    def count_products(self) -> int:
        return self.session.query(Product).filter(Product.is_active.is_(True)).count()

    def update_product(self, product_id: int, patch: Mapping) -> None:
        product = self.get_product(product_id)
        if product is None:
            raise ProductNotFound(product_id)
        for key, value in patch.items():
            if key not in PRODUCT_PATCHABLE_FIELDS:
                raise ValidationError(f"Field not allowed: {key}")
            setattr(product, key, value)
        self.session.flush()

    # --- movements ------------------------------------------------------

    def insert_movement(self, record: Mapping) -> int:
        movement = StockMovement(**record)
        self.session.add(movement)
        self.session.flush()
        return movement.id

    def get_movement(self, movement_id: int) -> StockMovement | None:
        return self.session.get(StockMovement, movement_id)

    def find_sale_line_movement(self, sale_id: int, sale_line: int) -> StockMovement | None:
        return self.session.query(StockMovement).filter_by(
            sale_id=sale_id,
            sale_line=sale_line,
        ).first()

    def list_movements(
        self,
        product_id: int | None = None,
        *,
        movement_type: str | None = None,
        limit: int | None = None,
    ) -> list[StockMovement]:
        query = self.session.query(StockMovement)
        if product_id is not None:
            query = query.filter(StockMovement.product_id == product_id)
        if movement_type is not None:
            query = query.filter(StockMovement.type == movement_type)
        query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        return _limited(query, limit).all()

    # --- sales ----------------------------------------------------------

    def insert_sale(self, record: Mapping) -> int:
        record = dict(record)
        items: Iterable[Mapping] = record.pop("items", ())
        sale = Sale(**record)
        sale.items = [
            SaleItem(line_number=i + 1, **item)
            for i, item in enumerate(items)
        ]
        self.session.add(sale)
        self.session.flush()
        return sale.id

    def get_sale(self, sale_id: int) -> Sale | None:
        return self.session.get(Sale, sale_id)

    def list_sales(
        self,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = None,
    ) -> list[Sale]:
        query = self.session.query(Sale)
        if since is not None:
            query = query.filter(Sale.created_at >= since)
        if until is not None:
            query = query.filter(Sale.created_at <= until)
        query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
        return _limited(query, limit).all()

    def count_sales(self) -> int:
        return self.session.query(Sale).count()

    def sum_sales_total(self) -> float:
        total = self.session.query(func.coalesce(func.sum(Sale.total), 0.0)).scalar()
        return float(total or 0.0)

    # --- customers ------------------------------------------------------

    def get_customer(self, customer_id: int) -> Customer | None:
        return self.session.get(Customer, customer_id)

    def count_customers(self) -> int:
        return self.session.query(Customer).count()
