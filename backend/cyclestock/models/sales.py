from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

SALE_STATUS_COMPLETED = "Completed"
SALE_STATUS_VOIDED = "Voided"


class Sale(db.Model):
    """
    Point-of-sale header. Voided sales are kept for audit but do not deduct stock.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_date", "status", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    payment_method_code = db.Column(db.String(32), db.ForeignKey("payment_methods.code"), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    cashier = db.relationship("Employee", foreign_keys=[cashier_id])
    payment_method = db.relationship("PaymentMethod")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_date": to_utc_z(self.sale_date),
            "cashier_id": self.cashier_id,
            "payment_method_code": self.payment_method_code,
            "customer_name": self.customer_name,
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class SaleDetail(db.Model):
    __tablename__ = "sale_details"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    quantity_sold = db.Column(db.Integer, nullable=False)
    # Price snapshot at sale time, in cents
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    sale = db.relationship("Sale", backref=db.backref("lines", lazy=True, order_by="SaleDetail.id"))

    @property
    def line_total_cents(self) -> int:
        return int(self.quantity_sold or 0) * int(self.unit_price_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity_sold": self.quantity_sold,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
