from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

ADJUSTMENT_TYPES = ("manual", "correction")


class StockAdjustment(db.Model):
    """
    Manual stock adjustment header.

    Append-only: rows are never updated or deleted. client_request_id is the
    idempotency key; the unique constraint is what turns a replayed submission
    into a no-op.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.UniqueConstraint("client_request_id", name="uq_stock_adjustments_client_request_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_request_id = db.Column(db.String(64), nullable=False)
    adjustment_type = db.Column(db.String(16), nullable=False, default="manual")
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    remarks = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    details = db.relationship(
        "StockAdjustmentDetail",
        backref="adjustment",
        lazy=True,
        order_by="StockAdjustmentDetail.id",
    )

    @property
    def net_quantity(self) -> int:
        return sum(int(d.quantity or 0) for d in self.details)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_request_id": self.client_request_id,
            "adjustment_type": self.adjustment_type,
            "transaction_date": to_utc_z(self.transaction_date),
            "remarks": self.remarks,
            "created_at": to_utc_z(self.created_at),
            "details": [d.to_dict() for d in self.details],
            "net_quantity": self.net_quantity,
        }


class StockAdjustmentDetail(db.Model):
    __tablename__ = "stock_adjustment_details"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    adjustment_id = db.Column(db.Integer, db.ForeignKey("stock_adjustments.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    # Signed: positive adds stock, negative removes it
    quantity = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "adjustment_id": self.adjustment_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
        }
