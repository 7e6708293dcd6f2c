from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Category(db.Model):
    __tablename__ = "categories"

    code = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(120), nullable=False)

    def to_dict(self) -> dict:
        return {"code": self.code, "name": self.name}


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact = db.Column(db.String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "contact": self.contact}


class Employee(db.Model):
    """Shop staff. Referenced by sales (cashier) and stockouts (attendant/manager)."""
    __tablename__ = "employees"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(120), nullable=False)
    middle_name = db.Column(db.String(120), nullable=True)
    last_name = db.Column(db.String(120), nullable=False)

    @property
    def display_name(self) -> str:
        middle = (self.middle_name or "").strip()
        initial = f"{middle[0].upper()}. " if middle else ""
        return f"{self.first_name} {initial}{self.last_name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "middle_name": self.middle_name,
            "last_name": self.last_name,
            "display_name": self.display_name,
        }


class PaymentMethod(db.Model):
    __tablename__ = "payment_methods"

    code = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(120), nullable=False)

    def to_dict(self) -> dict:
        return {"code": self.code, "name": self.name}


class Product(db.Model):
    """
    Product master data, referenced (not owned) by the stock engine.

    There is deliberately no quantity column: stock is always derived from the
    movement streams. reorder_level may be NULL, in which case the configured
    DEFAULT_REORDER_LEVEL applies.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_category_active", "category_code", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    category_code = db.Column(db.String(32), db.ForeignKey("categories.code"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category_code": self.category_code,
            "supplier_id": self.supplier_id,
            "price_cents": self.price_cents,
            "reorder_level": self.reorder_level,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
