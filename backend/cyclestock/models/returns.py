from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ReturnAndReplacement(db.Model):
    """
    Return / replacement request for one sold line.

    LIFECYCLE:
    1. PEND: created at the counter
    2. APPR: manager approved, no stock effect yet
    3. POST: posted; returned units go back on hand and the replacement
       (if any) leaves stock
    4. REJ: rejected (from PEND or APPR)

    POST and REJ are terminal. post_request_id records the idempotency key of
    the posting call.
    """
    __tablename__ = "return_and_replacements"
    __table_args__ = (
        db.UniqueConstraint("post_request_id", name="uq_returns_post_request_id"),
        db.Index("ix_returns_status_date", "return_status", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_detail_id = db.Column(db.Integer, db.ForeignKey("sale_details.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    replacement_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    return_status = db.Column(db.String(8), nullable=False, default="PEND", index=True)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)
    remarks = db.Column(db.String(255), nullable=True)

    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    posted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(255), nullable=True)
    post_request_id = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale_detail = db.relationship("SaleDetail", backref=db.backref("returns", lazy=True))
    replacement_product = db.relationship("Product", foreign_keys=[replacement_product_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def return_id(self) -> int:
        return self.id

    def to_dict(self) -> dict:
        return {
            "return_id": self.id,
            "sale_detail_id": self.sale_detail_id,
            "quantity": self.quantity,
            "replacement_product_id": self.replacement_product_id,
            "return_status": self.return_status,
            "transaction_date": to_utc_z(self.transaction_date),
            "remarks": self.remarks,
            "approved_at": to_utc_z(self.approved_at),
            "posted_at": to_utc_z(self.posted_at),
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "post_request_id": self.post_request_id,
            "version_id": self.version_id,
        }
