# Overview: Calendar-bucketed aggregation of sales and movement facts, period comparisons and dashboard KPIs.

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from ..errors import ValidationError
from ..time_utils import normalize_datetime, to_utc_z, utcnow
from .history_service import grouped_movements, movements_between
from .normalizer import MovementKind, source_ref
from .sources import TransactionStore


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""
    pass


BUCKETINGS = ("hourly", "daily", "weekly", "monthly")
DIMENSIONS = ("none", "category", "staff", "payment_method")
METRICS = ("sales", "movements")
NAMED_RANGES = (
    "today",
    "yesterday",
    "last7days",
    "last30days",
    "thisMonth",
    "lastMonth",
    "thisYear",
    "lastYear",
)
DEFAULT_RANGE = "last7days"


@dataclass(frozen=True)
class Fact:
    """One reportable amount: a sale line (cents) or a movement (units)."""
    occurred_at: datetime
    amount: int
    source_ref: str
    product_id: Optional[int] = None
    quantity: int = 0
    category: Optional[str] = None
    staff: Optional[str] = None
    payment_method: Optional[str] = None

    def group_for(self, dimension: str) -> Optional[str]:
        if dimension == "none":
            return None
        return getattr(self, dimension) or "Unassigned"


@dataclass(frozen=True)
class AggregateRow:
    label: str
    bucket_start: datetime
    group: Optional[str]
    sum: int
    count: int
    running_total: int

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "bucket_start": to_utc_z(self.bucket_start),
            "group": self.group,
            "sum": self.sum,
            "count": self.count,
            "running_total": self.running_total,
        }


# =============================================================================
# CALENDAR
# =============================================================================

def _require_choice(value: str, choices: tuple, name: str) -> str:
    if value not in choices:
        raise ReportError(f"{name} must be one of: {', '.join(choices)}")
    return value


def bucket_start(dt: datetime, bucketing: str) -> datetime:
    """Calendar floor: hour, midnight, ISO week (Monday), first of month."""
    _require_choice(bucketing, BUCKETINGS, "bucketing")
    if bucketing == "hourly":
        return dt.replace(minute=0, second=0, microsecond=0)
    midnight = dt.replace(hour=0, minute=0, second=0, microsecond=0)
    if bucketing == "daily":
        return midnight
    if bucketing == "weekly":
        return midnight - timedelta(days=midnight.weekday())
    return midnight.replace(day=1)


def next_bucket(start: datetime, bucketing: str) -> datetime:
    if bucketing == "hourly":
        return start + timedelta(hours=1)
    if bucketing == "daily":
        return start + timedelta(days=1)
    if bucketing == "weekly":
        return start + timedelta(weeks=1)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


def bucket_label(start: datetime, bucketing: str) -> str:
    if bucketing == "hourly":
        return start.strftime("%Y-%m-%d %H:00")
    if bucketing == "daily":
        return start.strftime("%Y-%m-%d")
    if bucketing == "weekly":
        year, week, _ = start.isocalendar()
        return f"{year}-W{week:02d}"
    return start.strftime("%Y-%m")


# =============================================================================
# AGGREGATION
# =============================================================================

def aggregate(
    facts: Iterable[Fact],
    bucketing: str = "daily",
    dimension: str = "none",
    fill_range: tuple[datetime, datetime] | None = None,
) -> list[AggregateRow]:
    """
    Sum and count facts per calendar bucket (and group, when a dimension is
    given). Rows are ordered by bucket start then group; count is the number
    of distinct source references; running_total accumulates sum in row order.

    fill_range=(start, end) adds zero rows for empty buckets in [start, end)
    when dimension is "none".
    """
    _require_choice(bucketing, BUCKETINGS, "bucketing")
    _require_choice(dimension, DIMENSIONS, "dimension")

    sums: dict[tuple, int] = defaultdict(int)
    refs: dict[tuple, set] = defaultdict(set)
    for fact in facts:
        key = (bucket_start(fact.occurred_at, bucketing), fact.group_for(dimension))
        sums[key] += fact.amount
        refs[key].add(fact.source_ref)

    if fill_range is not None and dimension == "none":
        start, end = fill_range
        if start is not None and end is not None:
            cursor = bucket_start(start, bucketing)
            while cursor < end:
                sums.setdefault((cursor, None), 0)
                cursor = next_bucket(cursor, bucketing)

    rows = []
    running = 0
    for key in sorted(sums, key=lambda k: (k[0], k[1] or "")):
        running += sums[key]
        rows.append(
            AggregateRow(
                label=bucket_label(key[0], bucketing),
                bucket_start=key[0],
                group=key[1],
                sum=sums[key],
                count=len(refs.get(key, ())),
                running_total=running,
            )
        )
    return rows


def previous_window(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    """Window of the same length immediately before [start, end)."""
    if end <= start:
        raise ReportError("end must be after start")
    return start - (end - start), start


def percent_change(current, previous) -> float:
    if not previous:
        return 0.0 if not current else 100.0
    return round((current - previous) / abs(previous) * 100, 2)


def resolve_range(date_range=None, now: datetime | None = None) -> tuple[datetime, datetime]:
    """
    Named dashboard range or {"start", "end"} to a [start, end) pair.

    Named ranges end at the start of tomorrow unless they are closed periods
    (yesterday, lastMonth, lastYear).
    """
    now = now or utcnow()
    if isinstance(date_range, dict):
        try:
            start = normalize_datetime(date_range.get("start"))
            end = normalize_datetime(date_range.get("end"))
        except ValueError:
            raise ReportError("start/end must be ISO-8601 datetimes")
        if start is None or end is None:
            raise ReportError("start and end are both required")
        if end <= start:
            raise ReportError("end must be after start")
        return start, end

    name = date_range or DEFAULT_RANGE
    _require_choice(name, NAMED_RANGES, "range")

    today = datetime.combine(now.date(), datetime.min.time())
    tomorrow = today + timedelta(days=1)
    this_month = today.replace(day=1)
    this_year = today.replace(month=1, day=1)

    if name == "today":
        return today, tomorrow
    if name == "yesterday":
        return today - timedelta(days=1), today
    if name == "last7days":
        return today - timedelta(days=6), tomorrow
    if name == "last30days":
        return today - timedelta(days=29), tomorrow
    if name == "thisMonth":
        return this_month, tomorrow
    if name == "lastMonth":
        last_month = (this_month - timedelta(days=1)).replace(day=1)
        return last_month, this_month
    if name == "thisYear":
        return this_year, tomorrow
    return this_year.replace(year=this_year.year - 1), this_year


# =============================================================================
# FACT SOURCES
# =============================================================================

def _staff_label(labels: dict, cashier_id) -> str | None:
    if cashier_id is None:
        return None
    return labels["staff"].get(cashier_id) or f"Employee #{cashier_id}"


def sale_facts(start: datetime, end: datetime, *, store: TransactionStore | None = None) -> list[Fact]:
    """One fact per line of every non-voided sale in [start, end); amount in cents."""
    store = store or TransactionStore()
    labels = store.catalog_labels()
    categories = {p.id: p.category_code for p in store.list_products(active_only=False)}

    facts = []
    for sale in store.list_sales(start=start, end=end):
        ref = source_ref(MovementKind.SALE, sale.id)
        method = sale.payment_method_code
        for line in store.list_sale_lines(sale.id):
            category_code = categories.get(line.product_id)
            facts.append(
                Fact(
                    occurred_at=normalize_datetime(sale.sale_date),
                    amount=line.line_total_cents,
                    source_ref=ref,
                    product_id=line.product_id,
                    quantity=int(line.quantity_sold or 0),
                    category=labels["category"].get(category_code, category_code),
                    staff=_staff_label(labels, sale.cashier_id),
                    payment_method=labels["payment_method"].get(method, method) if method else None,
                )
            )
    return facts


def movement_facts(start: datetime, end: datetime, *, store: TransactionStore | None = None) -> list[Fact]:
    """One fact per movement entry in [start, end); amount is the signed quantity."""
    store = store or TransactionStore()
    labels = store.catalog_labels()
    categories = {p.id: p.category_code for p in store.list_products(active_only=False)}

    facts = []
    for entry in movements_between(start, end, store=store):
        category_code = categories.get(entry.product_id)
        facts.append(
            Fact(
                occurred_at=entry.occurred_at,
                amount=entry.quantity,
                source_ref=entry.source_ref,
                product_id=entry.product_id,
                quantity=entry.quantity,
                category=labels["category"].get(category_code, category_code),
            )
        )
    return facts


def _facts_for(metric: str, start: datetime, end: datetime, store: TransactionStore) -> list[Fact]:
    _require_choice(metric, METRICS, "metric")
    if metric == "sales":
        return sale_facts(start, end, store=store)
    return movement_facts(start, end, store=store)


# =============================================================================
# REPORTS
# =============================================================================

def get_aggregate_report(
    *,
    date_range=None,
    bucketing: str = "daily",
    dimension: str = "none",
    metric: str = "sales",
    now: datetime | None = None,
    store: TransactionStore | None = None,
) -> dict:
    store = store or TransactionStore()
    _require_choice(bucketing, BUCKETINGS, "bucketing")
    _require_choice(dimension, DIMENSIONS, "dimension")
    start, end = resolve_range(date_range, now)
    prev_start, prev_end = previous_window(start, end)

    facts = _facts_for(metric, start, end, store)
    previous = _facts_for(metric, prev_start, prev_end, store)

    rows = aggregate(facts, bucketing, dimension, fill_range=(start, end))
    total = sum(f.amount for f in facts)
    previous_total = sum(f.amount for f in previous)
    return {
        "metric": metric,
        "bucketing": bucketing,
        "dimension": dimension,
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "rows": [row.to_dict() for row in rows],
        "total": total,
        "count": len({f.source_ref for f in facts}),
        "previous_start": to_utc_z(prev_start),
        "previous_end": to_utc_z(prev_end),
        "previous_total": previous_total,
        "percent_change": percent_change(total, previous_total),
    }


def _kpi_values(facts: list[Fact]) -> dict:
    total_sales = sum(f.amount for f in facts)
    transactions = len({f.source_ref for f in facts})
    return {
        "total_sales_cents": total_sales,
        "transactions": transactions,
        "average_order_cents": round(total_sales / transactions) if transactions else 0,
        "products_sold": len({f.product_id for f in facts if f.product_id is not None}),
    }


def sales_kpis(date_range=None, *, now: datetime | None = None, store: TransactionStore | None = None) -> dict:
    """Total sales, transactions, average order and distinct products, each vs the previous window."""
    store = store or TransactionStore()
    start, end = resolve_range(date_range, now)
    prev_start, prev_end = previous_window(start, end)

    current = _kpi_values(sale_facts(start, end, store=store))
    previous = _kpi_values(sale_facts(prev_start, prev_end, store=store))
    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "kpis": [
            {
                "key": key,
                "value": current[key],
                "previous": previous[key],
                "change": percent_change(current[key], previous[key]),
            }
            for key in ("total_sales_cents", "transactions", "average_order_cents", "products_sold")
        ],
    }


def best_sellers(
    date_range=None,
    limit: int = 5,
    *,
    now: datetime | None = None,
    store: TransactionStore | None = None,
) -> list[dict]:
    """Products by units sold (ties: higher revenue, then product id)."""
    store = store or TransactionStore()
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ReportError("limit must be a positive integer")
    start, end = resolve_range(date_range, now)

    units: Counter = Counter()
    revenue: Counter = Counter()
    for fact in sale_facts(start, end, store=store):
        if fact.product_id is None:
            continue
        units[fact.product_id] += fact.quantity
        revenue[fact.product_id] += fact.amount

    names = {p.id: p.name for p in store.list_products(active_only=False)}
    ranked = sorted(units, key=lambda pid: (-units[pid], -revenue[pid], pid))[:limit]
    return [
        {
            "product_id": pid,
            "name": names.get(pid),
            "units_sold": units[pid],
            "revenue_cents": revenue[pid],
        }
        for pid in ranked
    ]


def peak_hours(date_range=None, *, now: datetime | None = None, store: TransactionStore | None = None) -> dict:
    """Hour-of-day histogram of sales (UTC), with the busiest hour by revenue."""
    store = store or TransactionStore()
    start, end = resolve_range(date_range, now)

    revenue = [0] * 24
    refs = [set() for _ in range(24)]
    for fact in sale_facts(start, end, store=store):
        revenue[fact.occurred_at.hour] += fact.amount
        refs[fact.occurred_at.hour].add(fact.source_ref)

    hours = [
        {"hour": hour, "sales_cents": revenue[hour], "transactions": len(refs[hour])}
        for hour in range(24)
    ]
    busiest = max(hours, key=lambda h: (h["sales_cents"], h["transactions"], -h["hour"]))
    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "hours": hours,
        "peak_hour": busiest["hour"] if busiest["sales_cents"] or busiest["transactions"] else None,
    }


def stock_movement_report(date_range=None, *, now: datetime | None = None, store: TransactionStore | None = None) -> dict:
    start, end = resolve_range(date_range, now)
    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "movements": grouped_movements(start, end, store=store),
    }
