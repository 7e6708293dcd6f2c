# Overview: Low-stock detection, alert lists, supplier mapping and purchase-order pre-fill.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from ..config import setting
from ..errors import NotFoundError, ValidationError
from ..models.supplies import SUPPLY_STATUS_PENDING, SUPPLY_STATUS_RECEIVED
from ..time_utils import normalize_datetime, utcnow
from .sources import TransactionStore
from .stock_service import project, project_many

logger = logging.getLogger(__name__)


class StockStatus(str, Enum):
    OUT = "OUT"
    LOW = "LOW"
    IN = "IN"

    @property
    def label(self) -> str:
        return {
            StockStatus.OUT: "Out of Stock",
            StockStatus.LOW: "Low Stock",
            StockStatus.IN: "In Stock",
        }[self]


def classify(stock: int, reorder_level: int) -> StockStatus:
    """
    OUT when stock <= 0 (whatever the reorder level), LOW when
    0 < stock <= reorder_level, IN otherwise. Hitting the line is LOW.
    """
    if reorder_level is None or reorder_level < 0:
        raise ValidationError("reorder_level must be a non-negative integer")
    if stock <= 0:
        return StockStatus.OUT
    if stock <= reorder_level:
        return StockStatus.LOW
    return StockStatus.IN


def priority(stock: int, reorder_level: int) -> str | None:
    """Alert urgency: high at or below half the reorder level (min 1), medium otherwise."""
    if classify(stock, reorder_level) is StockStatus.IN:
        return None
    if stock <= max(1, reorder_level // 2):
        return "high"
    return "medium"


def effective_reorder_level(product) -> int:
    if product.reorder_level is None:
        return int(setting("DEFAULT_REORDER_LEVEL", 3))
    return int(product.reorder_level)


def classify_stock(product_id: int, *, store: TransactionStore | None = None) -> dict:
    store = store or TransactionStore()
    product = store.get_product(product_id)
    stock = project(product_id, store=store)
    reorder_level = effective_reorder_level(product)
    status = classify(stock, reorder_level)
    return {
        "product_id": product.id,
        "stock": stock,
        "reorder_level": reorder_level,
        "status": status.value,
        "label": status.label,
        "priority": priority(stock, reorder_level),
    }


# =============================================================================
# SUPPLIER MAPPING
# =============================================================================

@dataclass(frozen=True)
class SupplierMapping:
    product_id: int
    supplier_id: int
    supplier_name: str | None
    supply_id: int | None
    last_supplied_at: object = None


def supplier_mapping(product_id: int, *, store: TransactionStore | None = None) -> SupplierMapping | None:
    """
    Supplier of the product's most recent received supply (by supply_date,
    ties to the higher supply id). Falls back to the product's own default
    supplier. Recomputed on every call.
    """
    store = store or TransactionStore()
    product = store.get_product(product_id)

    supply_ids = {line.supply_id for line in store.list_all_supply_lines(product_id=product_id)}
    latest = None
    for supply in store.list_supplies(status=SUPPLY_STATUS_RECEIVED):
        if supply.id not in supply_ids or supply.supplier_id is None or supply.supply_date is None:
            continue
        key = (supply.supply_date, supply.id)
        if latest is None or key > (latest.supply_date, latest.id):
            latest = supply

    if latest is not None:
        supplier = store.get_supplier(latest.supplier_id)
        return SupplierMapping(
            product_id=product_id,
            supplier_id=latest.supplier_id,
            supplier_name=supplier.name if supplier else None,
            supply_id=latest.id,
            last_supplied_at=latest.supply_date,
        )

    if product.supplier_id is not None:
        supplier = store.get_supplier(product.supplier_id)
        return SupplierMapping(
            product_id=product_id,
            supplier_id=product.supplier_id,
            supplier_name=supplier.name if supplier else None,
            supply_id=None,
        )
    return None


# =============================================================================
# ALERTS
# =============================================================================

def low_stock_alerts(*, limit: int | None = None, store: TransactionStore | None = None) -> list[dict]:
    """
    Active products that are OUT or LOW, ascending by stock (ties by id),
    truncated to limit.
    """
    store = store or TransactionStore()
    if limit is None:
        limit = int(setting("LOW_STOCK_ALERT_LIMIT", 10))
    if limit < 0:
        raise ValidationError("limit must be non-negative")

    products = store.list_products()
    stock_by_product = project_many([p.id for p in products], store=store)

    candidates = []
    for product in products:
        stock = stock_by_product[product.id]
        reorder_level = effective_reorder_level(product)
        status = classify(stock, reorder_level)
        if status is StockStatus.IN:
            continue
        candidates.append((stock, product.id, product, reorder_level, status))

    candidates.sort(key=lambda row: (row[0], row[1]))

    alerts = []
    for stock, _, product, reorder_level, status in candidates[:limit]:
        mapping = supplier_mapping(product.id, store=store)
        alerts.append(
            {
                "product_id": product.id,
                "sku": product.sku,
                "name": product.name,
                "category_code": product.category_code,
                "stock": stock,
                "reorder_level": reorder_level,
                "status": status.value,
                "priority": priority(stock, reorder_level),
                "reorder_available": mapping is not None,
            }
        )
    return alerts


# =============================================================================
# REORDER
# =============================================================================

def _parse_date(value, name: str):
    try:
        return normalize_datetime(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def suggested_quantity(stock: int, reorder_level: int) -> int:
    """Bring stock back to twice the reorder line; always at least one unit."""
    return max(1, 2 * reorder_level - max(stock, 0))


def reorder_draft(product_id: int, *, store: TransactionStore | None = None) -> dict:
    """Pre-filled purchase order for the product's mapped supplier."""
    store = store or TransactionStore()
    product = store.get_product(product_id)
    mapping = supplier_mapping(product_id, store=store)
    if mapping is None:
        raise NotFoundError(f"No supplier mapping for product {product_id}")

    stock = project(product_id, store=store)
    reorder_level = effective_reorder_level(product)
    return {
        "product_id": product.id,
        "product_name": product.name,
        "supplier_id": mapping.supplier_id,
        "supplier_name": mapping.supplier_name,
        "current_stock": stock,
        "reorder_level": reorder_level,
        "suggested_quantity": suggested_quantity(stock, reorder_level),
    }


def create_purchase_order(
    product_id: int,
    *,
    quantity: int | None = None,
    supplier_id: int | None = None,
    supply_date=None,
    remarks: str | None = None,
    store: TransactionStore | None = None,
):
    """
    Open a Pending supply pre-filled from the reorder draft. It adds no stock
    until received.
    """
    store = store or TransactionStore()
    draft = reorder_draft(product_id, store=store) if supplier_id is None or quantity is None else None

    if supplier_id is None:
        supplier_id = draft["supplier_id"]
    elif store.get_supplier(supplier_id) is None:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    if quantity is None:
        quantity = draft["suggested_quantity"]
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be greater than 0")
    store.get_product(product_id)

    supply = store.create_supply(
        supplier_id=supplier_id,
        supply_date=_parse_date(supply_date, "supply_date") or utcnow(),
        status=SUPPLY_STATUS_PENDING,
        lines=[{"product_id": product_id, "quantity": quantity}],
        remarks=remarks or "Reorder",
    )
    logger.info("Purchase order %s opened for product %s (%s units)", supply.id, product_id, quantity)
    return supply


def receive_supply(supply_id: int, *, received_at=None, store: TransactionStore | None = None):
    """Mark a Pending supply as Received; its lines count as stock from then on."""
    store = store or TransactionStore()
    supply = store.get_supply(supply_id)
    if supply is None:
        raise NotFoundError(f"Supply {supply_id} not found")
    if supply.status == SUPPLY_STATUS_RECEIVED:
        raise ValidationError(f"Supply {supply_id} is already received")

    received_dt = _parse_date(received_at, "received_at") or utcnow()
    tolerance = timedelta(minutes=int(setting("FUTURE_TOLERANCE_MINUTES", 2)))
    if received_dt > utcnow() + tolerance:
        raise ValidationError("received_at cannot be in the future")

    supply = store.mark_supply_received(supply, received_at=received_dt)
    logger.info("Supply %s received", supply_id)
    return supply
