from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

SUPPLY_STATUS_PENDING = "Pending"
SUPPLY_STATUS_RECEIVED = "Received"


class Supply(db.Model):
    """
    Supply receipt header (purchase order once Received).

    Only Received supplies add stock. A Pending supply is an open purchase
    order created from the reorder flow.
    """
    __tablename__ = "supplies"
    __table_args__ = (
        db.Index("ix_supplies_status_date", "status", "supply_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    supply_date = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    status = db.Column(db.String(16), nullable=False, default=SUPPLY_STATUS_RECEIVED)
    received_by = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    remarks = db.Column(db.String(255), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("supplies", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "supply_date": to_utc_z(self.supply_date),
            "status": self.status,
            "received_by": self.received_by,
            "remarks": self.remarks,
            "created_at": to_utc_z(self.created_at),
        }


class SupplyDetail(db.Model):
    __tablename__ = "supply_details"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    supply_id = db.Column(db.Integer, db.ForeignKey("supplies.id"), nullable=True, index=True)
    # Nullable: historical rows imported without a product are kept but ignored
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    quantity_supplied = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supply_id": self.supply_id,
            "product_id": self.product_id,
            "quantity_supplied": self.quantity_supplied,
            "unit_cost_cents": self.unit_cost_cents,
            "created_at": to_utc_z(self.created_at),
        }
