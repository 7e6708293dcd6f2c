# Overview: Per-product movement history with running balances, grouped movement views, and edit-in-place net deltas.

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable

from ..config import setting
from ..errors import NoOpError, ValidationError
from ..time_utils import normalize_datetime, to_utc_z
from .adjustment_service import AdjustmentIntent
from .movement_service import collect_movements, sort_newest_first, sort_oldest_first
from .normalizer import MovementEntry
from .sources import TransactionStore

logger = logging.getLogger(__name__)
"""
History invariants:

- Order is total and repeatable: occurred_at, ties in source order
  (SUPPLY, SALE, STOCKOUT, ADJUSTMENT, RETURN, then record/line id).
  Newest-first is the exact reverse, so the same query gives the same pages.
- balance_after on a row is the QOH right after that entry, computed over the
  product's whole history (not just the page).
- Past entries are never rewritten. An edit becomes one new ADJUSTMENT for
  the net delta.
"""


@dataclass(frozen=True)
class HistoryRow:
    entry: MovementEntry
    balance_after: int

    def to_dict(self) -> dict:
        payload = self.entry.to_dict()
        payload["balance_after"] = self.balance_after
        return payload


@dataclass(frozen=True)
class HistoryPage:
    product_id: int
    rows: tuple
    page: int
    page_size: int
    total: int

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total / self.page_size))

    @property
    def entries(self) -> list[MovementEntry]:
        return [row.entry for row in self.rows]

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "page": self.page,
            "page_size": self.page_size,
            "total": self.total,
            "total_pages": self.total_pages,
            "rows": [row.to_dict() for row in self.rows],
        }


def with_running_balance(entries: Iterable[MovementEntry]) -> list[HistoryRow]:
    """Oldest-first rows, each carrying the balance after it."""
    rows = []
    balance = 0
    for entry in sort_oldest_first(list(entries)):
        balance += entry.quantity
        rows.append(HistoryRow(entry=entry, balance_after=balance))
    return rows


def history(
    product_id: int,
    page: int = 1,
    page_size: int | None = None,
    *,
    store: TransactionStore | None = None,
) -> HistoryPage:
    """
    One newest-first page of a product's movements.

    page is 1-based. Pages past the end come back empty rather than failing.
    page_size is clamped to MAX_PAGE_SIZE, like the other listings.
    """
    store = store or TransactionStore()
    if page_size is None:
        page_size = int(setting("HISTORY_PAGE_SIZE", 5))
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise ValidationError("page must be a positive integer")
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1:
        raise ValidationError("page_size must be a positive integer")
    page_size = min(page_size, int(setting("MAX_PAGE_SIZE", 100)))

    store.get_product(product_id)
    rows = list(reversed(with_running_balance(collect_movements(product_id=product_id, store=store))))

    offset = (page - 1) * page_size
    return HistoryPage(
        product_id=product_id,
        rows=tuple(rows[offset:offset + page_size]),
        page=page,
        page_size=page_size,
        total=len(rows),
    )


def _window(start, end):
    try:
        start_dt = normalize_datetime(start)
        end_dt = normalize_datetime(end)
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 datetimes")
    if start_dt is not None and end_dt is not None and end_dt <= start_dt:
        raise ValidationError("end must be after start")
    return start_dt, end_dt


def movements_between(start, end, *, store: TransactionStore | None = None) -> list[MovementEntry]:
    """Every product's entries with start <= occurred_at < end, oldest first."""
    start_dt, end_dt = _window(start, end)
    return sort_oldest_first(collect_movements(start=start_dt, end=end_dt, store=store))


def grouped_movements(start=None, end=None, *, store: TransactionStore | None = None) -> list[dict]:
    """
    One group per source record (a supply, a stockout, an adjustment...),
    newest first, each listing its lines and their net quantity.
    """
    start_dt, end_dt = _window(start, end)
    entries = collect_movements(start=start_dt, end=end_dt, store=store)

    groups: dict[str, dict] = {}
    for entry in sort_newest_first(entries):
        group = groups.get(entry.source_ref)
        if group is None:
            group = groups[entry.source_ref] = {
                "source_ref": entry.source_ref,
                "kind": entry.kind.value,
                "occurred_at": to_utc_z(entry.occurred_at),
                "remarks": entry.remarks,
                "lines": [],
                "net_quantity": 0,
            }
        group["lines"].append({"product_id": entry.product_id, "quantity": entry.quantity})
        group["net_quantity"] += entry.quantity

    result = list(groups.values())
    for group in result:
        group["line_count"] = len(group["lines"])
    return result


# =============================================================================
# EDIT IN PLACE
# =============================================================================

def compute_net_delta(originals: dict[str, int], edits: dict[str, int]) -> int:
    """
    Sum(edited) - Sum(original) over the edited rows only.

    Both maps are keyed by entry_key. Editing a row that is not among the
    originals is a ValidationError.
    """
    delta = 0
    for key, new_quantity in edits.items():
        if key not in originals:
            raise ValidationError(f"Unknown movement {key}")
        if isinstance(new_quantity, bool) or not isinstance(new_quantity, int):
            raise ValidationError("quantity must be an integer")
        delta += new_quantity - originals[key]
    return delta


class HistoryEditBuffer:
    """
    Edits made across history pages for one product, applied as one
    correcting ADJUSTMENT.

    The pending AdjustmentIntent survives a failed apply() so a retry reuses
    its client_request_id; it is dropped after a success or reset().
    """

    def __init__(self, product_id: int, *, store: TransactionStore | None = None):
        self.product_id = product_id
        self.store = store
        self.originals: dict[str, int] = {}
        self.edits: dict[str, int] = {}
        self._intent: AdjustmentIntent | None = None

    def track(self, rows) -> None:
        """Remember original quantities for rows as pages are viewed."""
        for row in rows:
            entry = row.entry if isinstance(row, HistoryRow) else row
            if entry.product_id != self.product_id:
                continue
            self.originals.setdefault(entry.entry_key, entry.quantity)

    def edit(self, entry_key: str, quantity: int) -> None:
        if entry_key not in self.originals:
            raise ValidationError(f"Unknown movement {entry_key}")
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError("quantity must be an integer")
        if quantity == self.originals[entry_key]:
            self.edits.pop(entry_key, None)
        else:
            self.edits[entry_key] = quantity

    @property
    def net_delta(self) -> int:
        return compute_net_delta(self.originals, self.edits)

    @property
    def has_changes(self) -> bool:
        return self.net_delta != 0

    def reset(self) -> None:
        self.edits.clear()
        self._intent = None

    def apply(self, remarks: str = "Stock movement correction"):
        delta = self.net_delta
        if delta == 0:
            raise NoOpError()

        # A changed delta is a different action and needs its own id
        if self._intent is None or self._intent.net_delta != delta:
            self._intent = AdjustmentIntent(
                product_id=self.product_id,
                net_delta=delta,
                remarks=remarks,
                adjustment_type="correction",
            )

        result = self._intent.submit(store=self.store)
        logger.info(
            "Applied history edits for product %s as request %s (net %+d)",
            self.product_id,
            self._intent.client_request_id,
            delta,
        )
        self.reset()
        return result
