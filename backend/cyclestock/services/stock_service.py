# Overview: Quantity-on-hand projection; folds normalized movements into a single integer per product.

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from ..errors import ValidationError
from ..time_utils import normalize_datetime, to_utc_z
from .movement_service import collect_movements
from .normalizer import MovementEntry
from .sources import TransactionStore

logger = logging.getLogger(__name__)
"""
Quantity-on-hand invariants (authoritative):

- QOH is never stored. It is SUM(quantity) over a product's movement entries.
- No entries means QOH = 0.
- The projection is NOT clamped: a negative result (more sold/removed than
  ever received) is returned as-is so it can be investigated. Only
  available() clamps, for user-facing "available stock".
- as_of is inclusive: occurred_at <= as_of.
"""


def fold_quantity(entries: Iterable[MovementEntry]) -> int:
    """Sum of signed quantities; independent of iteration order."""
    total = 0
    for entry in entries:
        total += entry.quantity
    return total


def fold_by_product(entries: Iterable[MovementEntry]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for entry in entries:
        totals[entry.product_id] = totals.get(entry.product_id, 0) + entry.quantity
    return totals


def project(product_id: int, *, as_of=None, store: TransactionStore | None = None) -> int:
    """
    Derived QOH for one product.

    Raises NotFoundError when the product does not exist.
    """
    store = store or TransactionStore()
    store.get_product(product_id)

    try:
        as_of_dt = normalize_datetime(as_of)
    except ValueError:
        raise ValidationError("as_of must be an ISO-8601 datetime")

    entries = collect_movements(product_id=product_id, store=store)
    if as_of_dt is not None:
        entries = [e for e in entries if e.occurred_at <= as_of_dt]
    return fold_quantity(entries)


def project_many(product_ids: Iterable[int] | None = None, *, store: TransactionStore | None = None) -> dict[int, int]:
    """
    QOH for many products from a single pass over every stream.

    With product_ids=None every active product is included. Products without
    movements map to 0.
    """
    store = store or TransactionStore()
    if product_ids is None:
        product_ids = [p.id for p in store.list_products()]
    totals = fold_by_product(collect_movements(store=store))
    return {pid: totals.get(pid, 0) for pid in product_ids}


def project_as_of(product_id: int, as_of, *, store: TransactionStore | None = None) -> int:
    """QOH counting only entries with occurred_at <= as_of."""
    if as_of is None:
        raise ValidationError("as_of is required")
    return project(product_id, as_of=as_of, store=store)


def available(product_id: int, *, store: TransactionStore | None = None) -> int:
    """Display clamp for user-facing available stock."""
    return max(project(product_id, store=store), 0)


def compare_with_store(product_id: int, *, store: TransactionStore | None = None) -> dict:
    """
    Compare the derived QOH with the store's precomputed convenience figure.

    The derived value stays authoritative; drift is reported, never corrected.
    """
    store = store or TransactionStore()
    derived = project(product_id, store=store)
    precomputed = store.get_quantity_on_hand(product_id)
    drift = precomputed - derived
    if drift:
        logger.warning(
            "QOH drift for product %s: derived=%s precomputed=%s", product_id, derived, precomputed
        )
    return {
        "product_id": product_id,
        "derived_qoh": derived,
        "precomputed_qoh": precomputed,
        "drift": drift,
    }


def get_stock_summary(product_id: int, *, as_of: datetime | str | None = None, store: TransactionStore | None = None) -> dict:
    from .reorder_service import classify, effective_reorder_level, priority

    store = store or TransactionStore()
    product = store.get_product(product_id)
    qoh = project(product_id, as_of=as_of, store=store)
    as_of_dt = normalize_datetime(as_of)
    reorder_level = effective_reorder_level(product)
    status = classify(qoh, reorder_level)
    return {
        "product_id": product.id,
        "sku": product.sku,
        "name": product.name,
        "as_of": to_utc_z(as_of_dt) if as_of_dt else None,
        "quantity_on_hand": qoh,
        "available": max(qoh, 0),
        "reorder_level": reorder_level,
        "status": status.value,
        "label": status.label,
        "priority": priority(qoh, reorder_level),
    }
