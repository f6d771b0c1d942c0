from __future__ import annotations

from ..extensions import db
from stocksnap.time_utils import utcnow, to_utc_z


PAYMENT_METHODS = ("cash", "card", "transfer", "other")


class Sale(db.Model):
    """
    Recorded sale. Immutable once created: there is no update or void path.

    Totals:
    - item.total = item.quantity * item.unit_price
    - subtotal = sum(item.total)
    - total = subtotal - discount + tax
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    subtotal = db.Column(db.Float, nullable=False)
    discount = db.Column(db.Float, nullable=False, default=0.0)
    tax = db.Column(db.Float, nullable=False, default=0.0)
    total = db.Column(db.Float, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    receipt_url = db.Column(db.String(1024), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    items = db.relationship(
        "SaleItem",
        backref="sale",
        order_by="SaleItem.line_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Sale id={self.id} total={self.total} items={len(self.items)}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "items": [item.to_dict() for item in self.items],
            "subtotal": self.subtotal,
            "discount": self.discount,
            "tax": self.tax,
            "total": self.total,
            "payment_method": self.payment_method,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "seller_id": self.seller_id,
            "receipt_url": self.receipt_url,
            "created_at": to_utc_z(self.created_at),
        }


class SaleItem(db.Model):
    """One line of a sale. product_name and unit_price are snapshots."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_number", name="uq_sale_items_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Float, nullable=False)
    total = db.Column(db.Float, nullable=False)

    def to_dict(self) -> dict:
        return {
            "line_number": self.line_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total": self.total,
        }
