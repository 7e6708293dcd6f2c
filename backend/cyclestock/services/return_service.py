"""
Return / replacement workflow.

WHY: A customer brings back part of a sale, sometimes taking a different
product in exchange. Nothing moves stock until a manager has approved the
request and it is posted; only then does the record show up in the movement
stream (+ returned units, - replacement units).

LIFECYCLE:
1. create_return / submit_return (PEND)
2. approve_return (PEND -> APPR) or reject_return (PEND/APPR -> REJ)
3. post_return (APPR -> POST) with an idempotency key

RULES:
- Transitions come from TRANSITIONS only; no skipping, POST and REJ terminal.
- Re-posting an already POST record with the same key is a duplicate, not an
  error. Any other illegal call raises InvalidStateError and emits nothing.
- Units claimed by non-rejected returns never exceed the sold quantity.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum

from ..config import setting
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models.sales import SALE_STATUS_VOIDED
from ..time_utils import normalize_datetime, utcnow
from .sources import TransactionStore

logger = logging.getLogger(__name__)


class ReturnStatus(str, Enum):
    PENDING = "PEND"
    APPROVED = "APPR"
    POSTED = "POST"
    REJECTED = "REJ"


TRANSITIONS = {
    ReturnStatus.PENDING: frozenset({ReturnStatus.APPROVED, ReturnStatus.REJECTED}),
    ReturnStatus.APPROVED: frozenset({ReturnStatus.POSTED, ReturnStatus.REJECTED}),
    ReturnStatus.POSTED: frozenset(),
    ReturnStatus.REJECTED: frozenset(),
}


def can_transition(current, target) -> bool:
    return ReturnStatus(target) in TRANSITIONS[ReturnStatus(current)]


def require_transition(record, target) -> None:
    target = ReturnStatus(target)
    if not can_transition(record.return_status, target):
        raise InvalidStateError(
            f"Cannot move return {record.id} to {target.value}. "
            f"Return {record.id} has status: {record.return_status}"
        )


@dataclass(frozen=True)
class ReturnPostResult:
    record: object
    duplicate: bool = False

    def to_dict(self) -> dict:
        payload = self.record.to_dict()
        payload["duplicate"] = self.duplicate
        return payload


def _load(store: TransactionStore, return_id: int, *, lock: bool = False):
    record = store.get_return(return_id, lock=lock)
    if record is None:
        raise NotFoundError(f"Return {return_id} not found")
    return record


def _positive_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    if value <= 0:
        raise ValidationError(f"{name} must be greater than 0")
    return value


# =============================================================================
# CREATION
# =============================================================================

def _check_returnable(store: TransactionStore, sale_detail_id: int, quantity: int):
    """Raise unless quantity units of the sale line can still be returned."""
    sale_detail = store.get_sale_detail(sale_detail_id)
    if sale_detail is None:
        raise NotFoundError(f"Sale line {sale_detail_id} not found")
    sale = store.get_sale(sale_detail.sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_detail.sale_id} not found")
    if sale.status == SALE_STATUS_VOIDED:
        raise ValidationError(f"Sale {sale.id} is voided")

    claimed = store.quantity_claimed(sale_detail_id, excluding_status=ReturnStatus.REJECTED.value)
    returnable = int(sale_detail.quantity_sold or 0) - claimed
    if quantity > returnable:
        raise ValidationError(
            f"Cannot return {quantity} units. Original quantity: {sale_detail.quantity_sold}, "
            f"already returned: {claimed}, available: {max(returnable, 0)}"
        )
    return sale_detail


def create_return(
    sale_detail_id: int,
    quantity: int,
    *,
    replacement_product_id: int | None = None,
    remarks: str | None = None,
    transaction_date=None,
    store: TransactionStore | None = None,
):
    """
    Create a PEND return for one sold line.

    Raises:
        NotFoundError: sale line or replacement product does not exist
        ValidationError: quantity is not positive, or exceeds what is still
            returnable on that line
    """
    store = store or TransactionStore()
    quantity = _positive_int(quantity, "quantity")

    _check_returnable(store, sale_detail_id, quantity)
    if replacement_product_id is not None:
        store.get_product(replacement_product_id)

    try:
        transaction_dt = normalize_datetime(transaction_date) or utcnow()
    except ValueError:
        raise ValidationError("transaction_date must be an ISO-8601 datetime")

    record = store.create_return(
        sale_detail_id=sale_detail_id,
        quantity=quantity,
        replacement_product_id=replacement_product_id,
        return_status=ReturnStatus.PENDING.value,
        transaction_date=transaction_dt,
        remarks=remarks,
    )
    logger.info("Return %s created for sale line %s (%s units)", record.id, sale_detail_id, quantity)
    return record


def submit_return(
    sale_id: int,
    lines: list[dict],
    *,
    replacement_product_id: int | None = None,
    reason: str = "",
    auto_post: bool = False,
    store: TransactionStore | None = None,
) -> list:
    """
    Counter flow: one PEND return per sold line with quantity > 0.

    lines: [{"sale_detail_id": int, "quantity": int}]. Quantities for the same
    sale line are summed, and every total is checked against what is still
    returnable before anything is written. All records are created in one
    commit, so a rejected request leaves no returns behind. With auto_post each
    record is then approved and posted under its own fresh key.
    """
    store = store or TransactionStore()
    sale = store.get_sale(sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    if not isinstance(lines, list):
        raise ValidationError("lines must be a list")

    sale_line_ids = {line.id for line in store.list_sale_lines(sale_id)}
    wanted: dict[int, int] = {}
    for line in lines:
        if not isinstance(line, dict):
            raise ValidationError("each line must be an object")
        quantity = line.get("quantity") or 0
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise ValidationError("quantity must be a non-negative integer")
        if quantity == 0:
            continue
        sale_detail_id = line.get("sale_detail_id")
        if sale_detail_id not in sale_line_ids:
            raise ValidationError(f"Sale line {sale_detail_id} does not belong to sale {sale_id}")
        wanted[sale_detail_id] = wanted.get(sale_detail_id, 0) + quantity

    if not wanted:
        raise ValidationError("Select at least one item to return")

    if replacement_product_id is not None:
        store.get_product(replacement_product_id)
    for sale_detail_id, quantity in wanted.items():
        _check_returnable(store, sale_detail_id, quantity)

    remarks = f"Sale #{sale_id} • {reason}" if reason else f"Sale #{sale_id}"
    transaction_dt = utcnow()
    records = store.create_returns(
        [
            {
                "sale_detail_id": sale_detail_id,
                "quantity": quantity,
                "replacement_product_id": replacement_product_id,
                "return_status": ReturnStatus.PENDING.value,
                "transaction_date": transaction_dt,
                "remarks": remarks,
            }
            for sale_detail_id, quantity in wanted.items()
        ]
    )
    logger.info("Sale %s: %s return(s) created", sale_id, len(records))

    if auto_post:
        posted = []
        for record in records:
            approve_return(record.id, store=store)
            posted.append(post_return(record.id, str(uuid.uuid4()), store=store).record)
        records = posted
    return records


# =============================================================================
# TRANSITIONS
# =============================================================================

def approve_return(return_id: int, *, store: TransactionStore | None = None):
    store = store or TransactionStore()
    record = _load(store, return_id, lock=True)
    require_transition(record, ReturnStatus.APPROVED)

    record.return_status = ReturnStatus.APPROVED.value
    record.approved_at = utcnow()
    store.save_return(record)
    logger.info("Return %s approved", return_id)
    return record


def post_return(return_id: int, idempotency_key: str, *, store: TransactionStore | None = None) -> ReturnPostResult:
    """
    APPR -> POST. From the next read on, the record contributes its RETURN
    movements.

    Calling again with the key that posted it returns the record flagged as a
    duplicate. A different key on a POST record is an InvalidStateError.
    """
    store = store or TransactionStore()
    if not isinstance(idempotency_key, str) or not idempotency_key.strip():
        raise ValidationError("idempotency_key is required")
    idempotency_key = idempotency_key.strip()
    if len(idempotency_key) > 64:
        raise ValidationError("idempotency_key must be at most 64 characters")

    record = _load(store, return_id, lock=True)
    if record.return_status == ReturnStatus.POSTED.value and record.post_request_id == idempotency_key:
        logger.info("Return %s already posted with key %s", return_id, idempotency_key)
        return ReturnPostResult(record=record, duplicate=True)

    require_transition(record, ReturnStatus.POSTED)

    record.return_status = ReturnStatus.POSTED.value
    record.posted_at = utcnow()
    record.post_request_id = idempotency_key
    store.save_return(record)
    logger.info("Return %s posted", return_id)
    return ReturnPostResult(record=record)


def reject_return(return_id: int, reason: str | None = None, *, store: TransactionStore | None = None):
    store = store or TransactionStore()
    record = _load(store, return_id, lock=True)
    require_transition(record, ReturnStatus.REJECTED)

    record.return_status = ReturnStatus.REJECTED.value
    record.rejected_at = utcnow()
    record.rejection_reason = reason
    store.save_return(record)
    logger.info("Return %s rejected", return_id)
    return record


# =============================================================================
# QUERIES
# =============================================================================

def get_return(return_id: int, *, store: TransactionStore | None = None):
    store = store or TransactionStore()
    return _load(store, return_id)


def list_returns(
    *,
    status: str | None = None,
    query: str | None = None,
    start=None,
    end=None,
    page: int = 1,
    page_size: int = 20,
    store: TransactionStore | None = None,
) -> dict:
    """
    Newest first (transaction_date, then id). start is inclusive, end
    exclusive. query matches remarks (case-insensitive) or the exact id.
    """
    store = store or TransactionStore()
    if status is not None:
        try:
            status = ReturnStatus(status).value
        except ValueError:
            raise ValidationError(f"Unknown return status: {status}")
    if page < 1 or page_size < 1:
        raise ValidationError("page and page_size must be positive")
    page_size = min(page_size, int(setting("MAX_PAGE_SIZE", 100)))
    try:
        start_dt = normalize_datetime(start)
        end_dt = normalize_datetime(end)
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 datetimes")

    records = store.list_returns(status=status)
    if start_dt is not None:
        records = [r for r in records if r.transaction_date >= start_dt]
    if end_dt is not None:
        records = [r for r in records if r.transaction_date < end_dt]
    if query:
        needle = query.strip().lower()
        records = [
            r for r in records
            if needle in (r.remarks or "").lower() or needle == str(r.id)
        ]

    records.sort(key=lambda r: (r.transaction_date, r.id), reverse=True)
    total = len(records)
    offset = (page - 1) * page_size
    return {
        "page": page,
        "page_size": page_size,
        "total": total,
        "returns": [r.to_dict() for r in records[offset:offset + page_size]],
    }
