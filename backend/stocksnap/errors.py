# Overview: Typed error taxonomy shared by services and routes.

"""
StockSnap error taxonomy.

Every ledger-mutating operation fails fast with one of these. Routes map
``status_code`` to the HTTP response and return ``{"error", "details"}``.
"""

from __future__ import annotations


class StockSnapError(Exception):
    """Base class for service errors."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class NotFound(StockSnapError):
    status_code = 404


class ProductNotFound(NotFound):
    def __init__(self, product_id, details: dict | None = None):
        super().__init__("Product not found", {"product_id": product_id, **(details or {})})
        self.product_id = product_id


class SaleNotFound(NotFound):
    def __init__(self, sale_id):
        super().__init__("Sale not found", {"sale_id": sale_id})


class CustomerNotFound(NotFound):
    def __init__(self, customer_id):
        super().__init__("Customer not found", {"customer_id": customer_id})


class ValidationError(StockSnapError, ValueError):
    """400-level input problem."""


class InvalidQuantity(ValidationError):
    pass


class InvalidReason(ValidationError):
    pass


class EmptyCart(ValidationError):
    def __init__(self):
        super().__init__("Cannot record a sale with no items")


class ConflictError(StockSnapError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    status_code = 409


class InsufficientStock(StockSnapError):
    status_code = 409


class ConsistencyWarning(StockSnapError):
    """
    A sale was persisted but applying its stock effects failed part way.

    Non-fatal: the sale stands, the movements already written stand.
    ``cause`` is the error raised by the failing line: a StockSnapError or
    a database error.
    """
    status_code = 409

    def __init__(self, message: str, *, sale, cause: Exception, line: int):
        details = {
            "sale_id": sale.id,
            "failed_line": line,
            "cause": (
                cause.to_dict() if isinstance(cause, StockSnapError)
                else {"error": "Database error", "type": type(cause).__name__}
            ),
        }
        super().__init__(message, details)
        self.sale = sale
        self.cause = cause
        self.line = line


class AuthError(StockSnapError):
    status_code = 401
