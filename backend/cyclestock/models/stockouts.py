from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Stockout(db.Model):
    """
    Stock removal header (damage, shrinkage, internal use).

    Two representations exist in the wild: header-only stockouts carry
    product_id/quantity_removed themselves, others carry StockoutDetail lines.
    """
    __tablename__ = "stockouts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    stockout_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=True)
    sale_attendant = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    manager = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)

    # Header-level fallback representation
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    quantity_removed = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stockout_date": to_utc_z(self.stockout_date),
            "reason": self.reason,
            "sale_attendant": self.sale_attendant,
            "manager": self.manager,
            "product_id": self.product_id,
            "quantity_removed": self.quantity_removed,
            "created_at": to_utc_z(self.created_at),
        }


class StockoutDetail(db.Model):
    __tablename__ = "stockout_details"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    stockout_id = db.Column(db.Integer, db.ForeignKey("stockouts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    quantity_removed = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stockout_id": self.stockout_id,
            "product_id": self.product_id,
            "quantity_removed": self.quantity_removed,
        }
