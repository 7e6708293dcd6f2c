# Overview: Reads every raw stream through the source adapters and normalizes it into MovementEntry lists.

from __future__ import annotations

from collections import defaultdict
from datetime import datetime

from .normalizer import (
    MovementEntry,
    normalize_adjustment,
    normalize_return,
    normalize_sale,
    normalize_stockout,
    normalize_supply,
)
from .sources import TransactionStore


def _supply_entries(store: TransactionStore, product_id: int | None) -> list[MovementEntry]:
    lines_by_supply = defaultdict(list)
    for line in store.list_all_supply_lines(product_id=product_id):
        lines_by_supply[line.supply_id].append(line)

    headers = {s.id: s for s in store.list_supplies()}
    entries = []
    for supply_id in sorted(lines_by_supply, key=lambda sid: (sid is None, sid or 0)):
        entries.extend(normalize_supply(headers.get(supply_id), lines_by_supply[supply_id]))
    return entries


def _sale_entries(
    store: TransactionStore,
    product_id: int | None,
    start: datetime | None,
    end: datetime | None,
) -> list[MovementEntry]:
    lines_by_sale = defaultdict(list)
    for line in store.list_all_sale_lines(product_id=product_id):
        lines_by_sale[line.sale_id].append(line)

    entries = []
    for sale in store.list_sales(start=start, end=end):
        lines = lines_by_sale.get(sale.id)
        if lines:
            entries.extend(normalize_sale(sale, lines))
    return entries


def _stockout_entries(store: TransactionStore) -> list[MovementEntry]:
    lines_by_stockout = defaultdict(list)
    for line in store.list_all_stockout_lines():
        lines_by_stockout[line.stockout_id].append(line)

    entries = []
    for stockout in store.list_stockouts():
        entries.extend(normalize_stockout(stockout, lines_by_stockout.get(stockout.id, [])))
    return entries


def _adjustment_entries(store: TransactionStore, product_id: int | None) -> list[MovementEntry]:
    entries = []
    for adjustment in store.list_adjustments(product_id=product_id):
        entries.extend(normalize_adjustment(adjustment))
    return entries


def _return_entries(store: TransactionStore) -> list[MovementEntry]:
    entries = []
    for record in store.list_returns(status="POST"):
        entries.extend(normalize_return(record, store.get_sale_detail(record.sale_detail_id)))
    return entries


def collect_movements(
    *,
    product_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    store: TransactionStore | None = None,
) -> list[MovementEntry]:
    """
    All movement entries, optionally for one product and/or inside
    start <= occurred_at < end.

    Returned in source order (SUPPLY, SALE, STOCKOUT, ADJUSTMENT, RETURN;
    each by record then line id). Callers that need time order sort stably on
    top of this, so ties keep this order.
    """
    store = store or TransactionStore()

    entries: list[MovementEntry] = []
    entries.extend(_supply_entries(store, product_id))
    entries.extend(_sale_entries(store, product_id, start, end))
    entries.extend(_stockout_entries(store))
    entries.extend(_adjustment_entries(store, product_id))
    entries.extend(_return_entries(store))

    if product_id is not None:
        entries = [e for e in entries if e.product_id == product_id]
    if start is not None:
        entries = [e for e in entries if e.occurred_at >= start]
    if end is not None:
        entries = [e for e in entries if e.occurred_at < end]
    return entries


def sort_oldest_first(entries: list[MovementEntry]) -> list[MovementEntry]:
    """Stable: entries sharing occurred_at keep their source order."""
    return sorted(entries, key=lambda e: e.occurred_at)


def sort_newest_first(entries: list[MovementEntry]) -> list[MovementEntry]:
    """
    Exact reverse of sort_oldest_first, so among entries sharing occurred_at
    the later-inserted one is listed first and running balances line up.
    """
    return list(reversed(sort_oldest_first(entries)))
