# Overview: Converts raw supply/sale/stockout/adjustment/return records into signed MovementEntry values.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from ..models.sales import SALE_STATUS_VOIDED
from ..models.supplies import SUPPLY_STATUS_RECEIVED
from ..time_utils import normalize_datetime, to_utc_z

logger = logging.getLogger(__name__)
"""
Movement sign convention (authoritative):

- SUPPLY      +quantity_supplied, one entry per supply line
- SALE        -quantity_sold, one entry per sale line
- STOCKOUT    -quantity_removed, one entry per stockout line, or one entry
              synthesized from the header when the stockout has no lines
- ADJUSTMENT  quantity verbatim (already signed), one entry per detail line
- RETURN      only for POST records: +quantity for the returned product and,
              when a replacement was requested, -quantity for the replacement

Everything here is pure. Malformed records (no product reference, bad
quantity, unresolvable sale line) are dropped with a warning so projections
and reports stay usable on partially broken history.
"""


class MovementKind(str, Enum):
    SUPPLY = "SUPPLY"
    SALE = "SALE"
    STOCKOUT = "STOCKOUT"
    ADJUSTMENT = "ADJUSTMENT"
    RETURN = "RETURN"


# Source order used to break occurred_at ties
KIND_ORDER = {
    MovementKind.SUPPLY: 0,
    MovementKind.SALE: 1,
    MovementKind.STOCKOUT: 2,
    MovementKind.ADJUSTMENT: 3,
    MovementKind.RETURN: 4,
}

REF_PREFIX = {
    MovementKind.SUPPLY: "SUP",
    MovementKind.SALE: "SALE",
    MovementKind.STOCKOUT: "SO",
    MovementKind.ADJUSTMENT: "ADJ",
    MovementKind.RETURN: "RET",
}


@dataclass(frozen=True)
class MovementEntry:
    product_id: int
    quantity: int
    kind: MovementKind
    occurred_at: datetime
    source_ref: str
    remarks: Optional[str] = None
    record_id: Optional[int] = None
    line_id: Optional[int] = None
    role: str = "main"

    @property
    def entry_key(self) -> str:
        """Stable identity of this entry across reads."""
        return f"{self.kind.value}:{self.record_id or 0}:{self.line_id or 0}:{self.role}"

    def to_dict(self) -> dict:
        return {
            "entry_key": self.entry_key,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "kind": self.kind.value,
            "occurred_at": to_utc_z(self.occurred_at),
            "source_ref": self.source_ref,
            "remarks": self.remarks,
            "record_id": self.record_id,
            "line_id": self.line_id,
        }


def source_ref(kind: MovementKind, record_id: int | None) -> str:
    if record_id is None:
        return f"{REF_PREFIX[kind]}-UNKNOWN"
    return f"{REF_PREFIX[kind]}-{str(record_id).zfill(6)}"


def _positive_quantity(value, *, kind: MovementKind, ref: str) -> int | None:
    if value is None or isinstance(value, bool):
        logger.warning("Dropping %s line on %s: missing quantity", kind.value, ref)
        return None
    qty = int(value)
    if qty < 0:
        logger.warning("Dropping %s line on %s: negative quantity %s", kind.value, ref, qty)
        return None
    if qty == 0:
        logger.debug("Skipping zero-quantity %s line on %s", kind.value, ref)
        return None
    return qty


def _has_product(product_id, *, kind: MovementKind, ref: str) -> bool:
    if product_id is None:
        logger.warning("Dropping %s record %s: missing product reference", kind.value, ref)
        return False
    return True


def normalize_supply(supply, lines: Iterable) -> list[MovementEntry]:
    """
    One positive entry per supply line.

    supply may be None when the header cannot be resolved; each line then
    falls back to its own created_at timestamp.
    """
    if supply is not None and getattr(supply, "status", SUPPLY_STATUS_RECEIVED) != SUPPLY_STATUS_RECEIVED:
        return []

    entries = []
    for line in lines:
        record_id = supply.id if supply is not None else getattr(line, "supply_id", None)
        ref = source_ref(MovementKind.SUPPLY, record_id)
        if not _has_product(line.product_id, kind=MovementKind.SUPPLY, ref=ref):
            continue
        qty = _positive_quantity(line.quantity_supplied, kind=MovementKind.SUPPLY, ref=ref)
        if qty is None:
            continue

        occurred_at = normalize_datetime(getattr(supply, "supply_date", None)) if supply is not None else None
        if occurred_at is None:
            logger.debug("Supply header for line %s unresolved; using line timestamp", line.id)
            occurred_at = normalize_datetime(getattr(line, "created_at", None))
        if occurred_at is None:
            logger.warning("Dropping SUPPLY line %s on %s: no usable timestamp", line.id, ref)
            continue

        entries.append(
            MovementEntry(
                product_id=int(line.product_id),
                quantity=qty,
                kind=MovementKind.SUPPLY,
                occurred_at=occurred_at,
                source_ref=ref,
                remarks=getattr(supply, "remarks", None) if supply is not None else None,
                record_id=record_id,
                line_id=line.id,
            )
        )
    return entries


def normalize_sale(sale, lines: Iterable) -> list[MovementEntry]:
    """One negative entry per sale line; voided sales emit nothing."""
    if getattr(sale, "status", None) == SALE_STATUS_VOIDED:
        return []

    ref = source_ref(MovementKind.SALE, sale.id)
    occurred_at = normalize_datetime(sale.sale_date)
    if occurred_at is None:
        logger.warning("Dropping SALE record %s: missing sale_date", ref)
        return []

    entries = []
    for line in lines:
        if not _has_product(line.product_id, kind=MovementKind.SALE, ref=ref):
            continue
        qty = _positive_quantity(line.quantity_sold, kind=MovementKind.SALE, ref=ref)
        if qty is None:
            continue
        entries.append(
            MovementEntry(
                product_id=int(line.product_id),
                quantity=-qty,
                kind=MovementKind.SALE,
                occurred_at=occurred_at,
                source_ref=ref,
                remarks=getattr(sale, "notes", None),
                record_id=sale.id,
                line_id=line.id,
            )
        )
    return entries


def normalize_stockout(stockout, lines: Iterable) -> list[MovementEntry]:
    """
    One negative entry per stockout line. A stockout without lines is read
    from its header product_id/quantity_removed.
    """
    ref = source_ref(MovementKind.STOCKOUT, stockout.id)
    occurred_at = normalize_datetime(stockout.stockout_date)
    if occurred_at is None:
        logger.warning("Dropping STOCKOUT record %s: missing stockout_date", ref)
        return []

    lines = list(lines)
    if not lines:
        if not _has_product(stockout.product_id, kind=MovementKind.STOCKOUT, ref=ref):
            return []
        qty = _positive_quantity(stockout.quantity_removed, kind=MovementKind.STOCKOUT, ref=ref)
        if qty is None:
            return []
        return [
            MovementEntry(
                product_id=int(stockout.product_id),
                quantity=-qty,
                kind=MovementKind.STOCKOUT,
                occurred_at=occurred_at,
                source_ref=ref,
                remarks=stockout.reason,
                record_id=stockout.id,
                role="header",
            )
        ]

    entries = []
    for line in lines:
        if not _has_product(line.product_id, kind=MovementKind.STOCKOUT, ref=ref):
            continue
        qty = _positive_quantity(line.quantity_removed, kind=MovementKind.STOCKOUT, ref=ref)
        if qty is None:
            continue
        entries.append(
            MovementEntry(
                product_id=int(line.product_id),
                quantity=-qty,
                kind=MovementKind.STOCKOUT,
                occurred_at=occurred_at,
                source_ref=ref,
                remarks=stockout.reason,
                record_id=stockout.id,
                line_id=line.id,
            )
        )
    return entries


def normalize_adjustment(adjustment, details: Iterable | None = None) -> list[MovementEntry]:
    """One entry per detail line, quantity taken verbatim."""
    if details is None:
        details = adjustment.details
    ref = source_ref(MovementKind.ADJUSTMENT, adjustment.id)
    occurred_at = normalize_datetime(adjustment.transaction_date)
    if occurred_at is None:
        logger.warning("Dropping ADJUSTMENT record %s: missing transaction_date", ref)
        return []

    entries = []
    for detail in details:
        if not _has_product(detail.product_id, kind=MovementKind.ADJUSTMENT, ref=ref):
            continue
        if detail.quantity is None:
            logger.warning("Dropping ADJUSTMENT line %s on %s: missing quantity", detail.id, ref)
            continue
        qty = int(detail.quantity)
        if qty == 0:
            continue
        entries.append(
            MovementEntry(
                product_id=int(detail.product_id),
                quantity=qty,
                kind=MovementKind.ADJUSTMENT,
                occurred_at=occurred_at,
                source_ref=ref,
                remarks=adjustment.remarks,
                record_id=adjustment.id,
                line_id=detail.id,
            )
        )
    return entries


def normalize_return(record, sale_detail) -> list[MovementEntry]:
    """
    Posted returns only. The returned product comes from the original sale
    line; a replacement, when requested, leaves stock in the same quantity.
    """
    if record.return_status != "POST":
        return []

    ref = source_ref(MovementKind.RETURN, record.id)
    if sale_detail is None:
        logger.warning("Dropping RETURN record %s: sale detail %s not found", ref, record.sale_detail_id)
        return []
    if not _has_product(sale_detail.product_id, kind=MovementKind.RETURN, ref=ref):
        return []
    qty = _positive_quantity(record.quantity, kind=MovementKind.RETURN, ref=ref)
    if qty is None:
        return []

    occurred_at = normalize_datetime(record.posted_at) or normalize_datetime(record.transaction_date)
    if occurred_at is None:
        logger.warning("Dropping RETURN record %s: no usable timestamp", ref)
        return []

    entries = [
        MovementEntry(
            product_id=int(sale_detail.product_id),
            quantity=qty,
            kind=MovementKind.RETURN,
            occurred_at=occurred_at,
            source_ref=ref,
            remarks=record.remarks,
            record_id=record.id,
            line_id=sale_detail.id,
            role="returned",
        )
    ]
    if record.replacement_product_id is not None:
        entries.append(
            MovementEntry(
                product_id=int(record.replacement_product_id),
                quantity=-qty,
                kind=MovementKind.RETURN,
                occurred_at=occurred_at,
                source_ref=ref,
                remarks=record.remarks,
                record_id=record.id,
                line_id=sale_detail.id,
                role="replacement",
            )
        )
    return entries
