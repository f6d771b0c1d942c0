from __future__ import annotations

from ..extensions import db
from stocksnap.time_utils import utcnow, to_utc_z


MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT)


class StockMovement(db.Model):
    """
    Append-only record of one change to a product's stock level.

    QUANTITY SEMANTICS:
    - in / out: quantity is the magnitude of the change
    - adjustment: quantity is the new absolute stock level
    previous_quantity / new_quantity are always recorded, so `delta`
    is the signed change for every type. Prefer it over `quantity`
    when summing movements.

    product_name is a snapshot taken before the change and is never
    refreshed when the product is renamed or deleted.

    (sale_id, sale_line) is unique: a sale line decrements stock at most once.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "sale_line", name="uq_movements_sale_line"),
        db.Index("ix_movements_product_created", "product_id", "created_at"),
        db.Index("ix_movements_type_created", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)

    type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    performed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    sale_line = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    @property
    def delta(self) -> int:
        return self.new_quantity - self.previous_quantity

    def __repr__(self) -> str:
        return f"<StockMovement id={self.id} product_id={self.product_id} type={self.type} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "type": self.type,
            "quantity": self.quantity,
            "delta": self.delta,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "reason": self.reason,
            "performed_by": self.performed_by,
            "sale_id": self.sale_id,
            "sale_line": self.sale_line,
            "created_at": to_utc_z(self.created_at),
        }
