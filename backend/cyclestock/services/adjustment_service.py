"""
Idempotent stock adjustment posting.

WHY: An adjustment is the only way a user changes stock by hand, and the
"Apply" click may be retried by the transport after a timeout. Each logical
user action therefore carries one client_request_id, generated once and
reused only for retries of that same action. The store refuses a second
row with an id it has already seen; we turn that refusal into a
DuplicateIgnored result so a retry is a success, not an error.

RULES:
- At least one detail line, every product must exist.
- The net delta (sum of detail quantities) must be non-zero: a zero-sum edit
  is rejected with NoOpError ("No changes detected").
- Unless ALLOW_NEGATIVE_STOCK is set, no detail may push projected QOH below 0.
- Exactly one StockAdjustment row per successful post; nothing is mutated.
- No retry loop here. Upstream failures propagate with the server message.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Optional

from ..config import setting
from ..errors import ConflictError, NoOpError, ValidationError
from ..models.adjustments import ADJUSTMENT_TYPES
from ..time_utils import normalize_datetime, utcnow
from .sources import TransactionStore
from .stock_service import project

logger = logging.getLogger(__name__)


def new_client_request_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class AdjustmentLine:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class AdjustmentRequest:
    client_request_id: str
    details: tuple
    adjustment_type: str = "manual"
    transaction_date: Optional[datetime] = None
    remarks: str = ""

    @property
    def net_delta(self) -> int:
        return sum(d.quantity for d in self.details)

    @classmethod
    def from_payload(cls, payload: dict) -> "AdjustmentRequest":
        """Build a request from a JSON body, validating shapes (not business rules)."""
        client_request_id = payload.get("client_request_id")
        if not isinstance(client_request_id, str) or not client_request_id.strip():
            raise ValidationError("client_request_id is required")

        raw_details = payload.get("details")
        if not isinstance(raw_details, list):
            raise ValidationError("details must be a list")

        details = []
        for raw in raw_details:
            if not isinstance(raw, dict):
                raise ValidationError("each detail must be an object")
            details.append(
                AdjustmentLine(
                    product_id=_require_int(raw.get("product_id"), "product_id"),
                    quantity=_require_int(raw.get("quantity"), "quantity"),
                )
            )

        try:
            transaction_date = normalize_datetime(payload.get("transaction_date"))
        except ValueError:
            raise ValidationError("transaction_date must be an ISO-8601 datetime")

        return cls(
            client_request_id=client_request_id.strip(),
            details=tuple(details),
            adjustment_type=payload.get("adjustment_type") or "manual",
            transaction_date=transaction_date,
            remarks=payload.get("remarks") or "",
        )


@dataclass(frozen=True)
class PostedAdjustment:
    adjustment: object
    net_delta: int
    duplicate: bool = False

    def to_dict(self) -> dict:
        return {
            "result": "posted",
            "duplicate": False,
            "net_delta": self.net_delta,
            "adjustment": self.adjustment.to_dict(),
        }


@dataclass(frozen=True)
class DuplicateIgnored:
    client_request_id: str
    adjustment: object
    duplicate: bool = True

    def to_dict(self) -> dict:
        return {
            "result": "duplicate_ignored",
            "duplicate": True,
            "client_request_id": self.client_request_id,
            "adjustment": self.adjustment.to_dict() if self.adjustment is not None else None,
        }


def _require_int(value, name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationError(f"{name} must be an integer")


def validate_request(request: AdjustmentRequest, *, store: TransactionStore) -> datetime:
    """Business-rule validation. Returns the effective transaction date."""
    if request.adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError(f"adjustment_type must be one of: {', '.join(ADJUSTMENT_TYPES)}")
    if not request.details:
        raise ValidationError("At least one adjustment line is required")

    for detail in request.details:
        if isinstance(detail.quantity, bool) or not isinstance(detail.quantity, int):
            raise ValidationError("quantity must be an integer")
        store.get_product(detail.product_id)

    if request.net_delta == 0:
        raise NoOpError()

    transaction_date = request.transaction_date or utcnow()
    tolerance = timedelta(minutes=int(setting("FUTURE_TOLERANCE_MINUTES", 2)))
    if transaction_date > utcnow() + tolerance:
        raise ValidationError("transaction_date cannot be in the future")

    if not setting("ALLOW_NEGATIVE_STOCK", False):
        per_product: dict[int, int] = {}
        for detail in request.details:
            per_product[detail.product_id] = per_product.get(detail.product_id, 0) + detail.quantity
        for product_id, delta in per_product.items():
            if delta < 0 and project(product_id, store=store) + delta < 0:
                raise ValidationError("Adjustment exceeds current stock. Cannot reduce below zero.")

    return transaction_date


def post_adjustment(request: AdjustmentRequest, *, store: TransactionStore | None = None):
    """
    Post one ADJUSTMENT for request.client_request_id.

    Returns PostedAdjustment on first success, DuplicateIgnored when the id
    has already been applied (whether detected up front or by the store's
    unique constraint).
    """
    store = store or TransactionStore()

    existing = store.find_adjustment_by_request_id(request.client_request_id)
    if existing is not None:
        logger.info("Adjustment request %s already applied as %s", request.client_request_id, existing.id)
        return DuplicateIgnored(client_request_id=request.client_request_id, adjustment=existing)

    transaction_date = validate_request(request, store=store)
    # Zero lines carry no movement
    request = replace(
        request,
        details=tuple(d for d in request.details if d.quantity != 0),
        transaction_date=transaction_date,
    )

    try:
        adjustment = store.create_adjustment(request)
    except ConflictError:
        logger.info("Adjustment request %s raced a duplicate; treating as applied", request.client_request_id)
        existing = store.find_adjustment_by_request_id(request.client_request_id)
        return DuplicateIgnored(client_request_id=request.client_request_id, adjustment=existing)

    logger.info(
        "Posted adjustment %s (request %s, net %+d)",
        adjustment.id,
        request.client_request_id,
        request.net_delta,
    )
    return PostedAdjustment(adjustment=adjustment, net_delta=request.net_delta)


def submit_adjustment(
    product_id: int,
    net_delta: int,
    remarks: str = "",
    *,
    client_request_id: str | None = None,
    adjustment_type: str = "manual",
    transaction_date=None,
    store: TransactionStore | None = None,
):
    """Single-product convenience over post_adjustment."""
    try:
        transaction_date = normalize_datetime(transaction_date)
    except ValueError:
        raise ValidationError("transaction_date must be an ISO-8601 datetime")

    request = AdjustmentRequest(
        client_request_id=client_request_id or new_client_request_id(),
        details=(AdjustmentLine(product_id=product_id, quantity=net_delta),),
        adjustment_type=adjustment_type,
        transaction_date=transaction_date,
        remarks=remarks,
    )
    return post_adjustment(request, store=store)


@dataclass
class AdjustmentIntent:
    """
    One logical user action ("Apply" click).

    The id is generated once and reused by every retry of this intent; a new
    user action must start a new AdjustmentIntent.
    """
    product_id: int
    net_delta: int
    remarks: str = ""
    adjustment_type: str = "manual"
    client_request_id: str = field(default_factory=new_client_request_id)
    result: object = None

    def submit(self, *, store: TransactionStore | None = None):
        self.result = submit_adjustment(
            self.product_id,
            self.net_delta,
            self.remarks,
            client_request_id=self.client_request_id,
            adjustment_type=self.adjustment_type,
            store=store,
        )
        return self.result


def list_adjustments(
    *,
    product_id: int | None = None,
    page: int = 1,
    page_size: int = 20,
    store: TransactionStore | None = None,
) -> dict:
    store = store or TransactionStore()
    if page < 1 or page_size < 1:
        raise ValidationError("page and page_size must be positive")
    page_size = min(page_size, int(setting("MAX_PAGE_SIZE", 100)))
    if product_id is not None:
        store.get_product(product_id)

    rows = store.list_adjustments(product_id=product_id, page=page, page_size=page_size)
    total = store.count_adjustments(product_id=product_id)
    return {
        "page": page,
        "page_size": page_size,
        "total": total,
        "adjustments": [a.to_dict() for a in rows],
    }
