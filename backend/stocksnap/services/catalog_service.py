# backend/stocksnap/services/catalog_service.py
"""
Catalog Service - product master data.

stock_quantity is deliberately absent from PRODUCT_MUTABLE_FIELDS: a new
product starts at zero and any opening stock is booked through the stock
service as an "in" movement, so the movement log explains every unit.
"""
from __future__ import annotations

import re

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, ProductNotFound, StockSnapError, ValidationError
from ..models import Product
from ..models.ledger import MOVEMENT_IN
from ..validation import enforce_rules_product
from stocksnap.time_utils import utcnow
from .concurrency import run_with_retry
from .ledger_store import SqlLedgerStore
from .stock_service import apply_stock_change

PRODUCT_MUTABLE_FIELDS = {
    "sku", "barcode", "name", "description", "category",
    "price", "cost_price", "low_stock_threshold", "image_url",
}

INITIAL_STOCK_REASON = "Initial stock"


def format_sku(text: str) -> str:
    """Drop punctuation, join words with '-', upper-case."""
    cleaned = re.sub(r"[^\w\s]", "", text or "").strip()
    return re.sub(r"\s+", "-", cleaned).upper()


def _ensure_unique(store: SqlLedgerStore, *, sku=None, barcode=None, exclude_id=None) -> None:
    if sku is not None:
        other = store.find_product_by_sku(sku)
        if other is not None and other.id != exclude_id:
            raise ConflictError("SKU already exists", details={"sku": sku})
    if barcode is not None:
        other = store.session.query(Product).filter_by(barcode=barcode).first()
        if other is not None and other.id != exclude_id:
            raise ConflictError("Barcode already in use", details={"barcode": barcode})


def create_product(
    patch: dict,
    actor_id: int,
    *,
    initial_stock: int = 0,
    store: SqlLedgerStore | None = None,
) -> Product:
    """
    Create a product from a validated patch.

    An sku is derived from the name when none is given. Opening stock is
    applied in the same transaction as the insert.
    """
    store = store or SqlLedgerStore()
    data = {k: v for k, v in patch.items() if k in PRODUCT_MUTABLE_FIELDS}

    if not data.get("sku"):
        data["sku"] = format_sku(data.get("name", ""))
        if not data["sku"]:
            raise ValidationError("sku could not be derived from name")
    data.setdefault("low_stock_threshold", current_app.config["DEFAULT_LOW_STOCK_THRESHOLD"])
    data.setdefault("cost_price", 0.0)
    enforce_rules_product({"price": None, **data})

    if isinstance(initial_stock, bool) or not isinstance(initial_stock, int) or initial_stock < 0:
        raise ValidationError("initial_stock must be a non-negative integer")

    _ensure_unique(store, sku=data["sku"], barcode=data.get("barcode"))

    now = utcnow()
    product = Product(
        **data,
        stock_quantity=0,
        created_by=actor_id,
        created_at=now,
        updated_at=now,
    )

    try:
        store.session.add(product)
        store.session.flush()
        if initial_stock > 0:
            apply_stock_change(
                product.id,
                initial_stock,
                MOVEMENT_IN,
                INITIAL_STOCK_REASON,
                actor_id,
                commit=False,
                store=store,
            )
        store.session.commit()
    except IntegrityError:
        store.session.rollback()
        raise ConflictError("SKU or barcode already exists")
    except StockSnapError:
        store.session.rollback()
        raise

    current_app.logger.info("Product created: id=%s sku=%s", product.id, product.sku)
    return product


def get_product(product_id: int, *, include_inactive: bool = False, store: SqlLedgerStore | None = None) -> Product:
    store = store or SqlLedgerStore()
    product = store.get_product(product_id)
    if product is None or (not product.is_active and not include_inactive):
        raise ProductNotFound(product_id)
    return product


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    sort: str = "name",
    store: SqlLedgerStore | None = None,
) -> list[Product]:
    """
    Active products, ordered by `sort`.

    search: case-insensitive substring of name, sku or barcode.
    """
    store = store or SqlLedgerStore()
    products = store.list_products(sort)

    if category:
        products = [p for p in products if (p.category or "").lower() == category.lower()]

    if search:
        needle = search.strip().lower()
        products = [
            p for p in products
            if needle in p.name.lower()
            or needle in p.sku.lower()
            or (p.barcode and needle in p.barcode.lower())
        ]
    return products


def update_product(product_id: int, patch: dict, *, store: SqlLedgerStore | None = None) -> Product:
    store = store or SqlLedgerStore()

    if "stock_quantity" in patch:
        raise ValidationError("stock_quantity can only change through stock movements")

    unknown = set(patch) - PRODUCT_MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    enforce_rules_product(patch)

    def _op():
        product = get_product(product_id, store=store)
        _ensure_unique(
            store,
            sku=patch.get("sku"),
            barcode=patch.get("barcode"),
            exclude_id=product.id,
        )
        store.update_product(product.id, {**patch, "updated_at": utcnow()})
        store.session.commit()
        return product

    try:
        return run_with_retry(_op)
    except IntegrityError:
        store.session.rollback()
        raise ConflictError("SKU or barcode already exists")
    except StockSnapError:
        store.session.rollback()
        raise


def delete_product(product_id: int, *, store: SqlLedgerStore | None = None) -> Product:
    """
    Remove a product from the catalog (soft delete).

    The barcode is released so it can be linked to another product. Sales
    and movements keep their product_name snapshots.
    """
    store = store or SqlLedgerStore()

    def _op():
        product = get_product(product_id, store=store)
        store.update_product(product.id, {
            "is_active": False,
            "barcode": None,
            "updated_at": utcnow(),
        })
        store.session.commit()
        return product

    product = run_with_retry(_op)
    current_app.logger.info("Product deleted: id=%s sku=%s", product.id, product.sku)
    return product


def find_by_barcode(code: str, *, store: SqlLedgerStore | None = None) -> Product | None:
    """Scanner lookup; None when no active product carries the code."""
    code = (code or "").strip()
    if not code:
        return None
    store = store or SqlLedgerStore()
    return store.find_product_by_barcode(code)


def link_barcode(product_id: int, code: str, *, store: SqlLedgerStore | None = None) -> Product:
    """Attach a scanned code to a product; a code can belong to one product only."""
    code = (code or "").strip()
    if not code:
        raise ValidationError("barcode is required")
    return update_product(product_id, {"barcode": code}, store=store)
