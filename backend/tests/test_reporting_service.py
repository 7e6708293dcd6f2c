# Overview: Pytest coverage for bucketed aggregation, date ranges and dashboard reports.

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from cyclestock.services import reporting_service
from cyclestock.services.reporting_service import (
    Fact,
    ReportError,
    aggregate,
    bucket_label,
    bucket_start,
    percent_change,
    previous_window,
    resolve_range,
)


NOW = datetime(2024, 3, 13, 15, 30)  # a Wednesday


def _fact(when, amount, ref, **kwargs):
    return Fact(occurred_at=when, amount=amount, source_ref=ref, **kwargs)


class TestBuckets:

    def test_weekly_starts_on_monday(self):
        sunday = datetime(2024, 3, 17, 23, 59)

        assert bucket_start(sunday, "weekly") == datetime(2024, 3, 11)
        assert bucket_label(datetime(2024, 3, 11), "weekly") == "2024-W11"

    def test_monthly_and_hourly(self):
        assert bucket_start(datetime(2024, 2, 29, 18, 45), "monthly") == datetime(2024, 2, 1)
        assert bucket_start(datetime(2024, 2, 29, 18, 45), "hourly") == datetime(2024, 2, 29, 18)
        assert bucket_label(datetime(2024, 2, 29, 18), "hourly") == "2024-02-29 18:00"

    def test_unknown_bucketing(self):
        with pytest.raises(ReportError):
            bucket_start(NOW, "fortnightly")


class TestAggregate:

    def test_daily_buckets_ascending(self):
        facts = [
            _fact(datetime(2024, 1, 2, 10), 50, "SALE-000002"),
            _fact(datetime(2024, 1, 1, 9), 60, "SALE-000001"),
            _fact(datetime(2024, 1, 1, 17), 40, "SALE-000001"),
        ]

        rows = aggregate(facts, "daily")

        assert [(r.label, r.sum, r.count) for r in rows] == [
            ("2024-01-01", 100, 1),
            ("2024-01-02", 50, 1),
        ]
        assert [r.running_total for r in rows] == [100, 150]

    def test_monthly_boundary(self):
        facts = [
            _fact(datetime(2024, 1, 31, 23, 59), 10, "A"),
            _fact(datetime(2024, 2, 1, 0, 0), 20, "B"),
        ]

        assert [(r.label, r.sum) for r in aggregate(facts, "monthly")] == [("2024-01", 10), ("2024-02", 20)]

    def test_dimension_groups_and_unassigned(self):
        when = datetime(2024, 1, 1, 9)
        facts = [
            _fact(when, 10, "A", category="Mountain Bikes"),
            _fact(when, 5, "B", category="Accessories"),
            _fact(when, 1, "C"),
        ]

        rows = aggregate(facts, "daily", "category")

        assert [(r.group, r.sum) for r in rows] == [
            ("Accessories", 5),
            ("Mountain Bikes", 10),
            ("Unassigned", 1),
        ]

    def test_fill_range_adds_empty_buckets(self):
        facts = [_fact(datetime(2024, 1, 2, 9), 7, "A")]

        rows = aggregate(facts, "daily", fill_range=(datetime(2024, 1, 1), datetime(2024, 1, 4)))

        assert [(r.label, r.sum, r.count) for r in rows] == [
            ("2024-01-01", 0, 0),
            ("2024-01-02", 7, 1),
            ("2024-01-03", 0, 0),
        ]

    def test_no_facts(self):
        assert aggregate([], "weekly") == []

    def test_unknown_dimension(self):
        with pytest.raises(ReportError):
            aggregate([], "daily", "region")


class TestComparison:

    @pytest.mark.parametrize("current,previous,expected", [
        (150, 100, 50.0),
        (50, 100, -50.0),
        (150, 0, 100.0),
        (0, 0, 0.0),
        (0, 40, -100.0),
    ])
    def test_percent_change(self, current, previous, expected):
        assert percent_change(current, previous) == expected

    def test_previous_window_has_same_length(self):
        assert previous_window(datetime(2024, 1, 8), datetime(2024, 1, 15)) == (
            datetime(2024, 1, 1), datetime(2024, 1, 8)
        )

    def test_previous_window_rejects_empty(self):
        with pytest.raises(ReportError):
            previous_window(datetime(2024, 1, 8), datetime(2024, 1, 8))


class TestResolveRange:

    @pytest.mark.parametrize("name,expected", [
        ("today", (datetime(2024, 3, 13), datetime(2024, 3, 14))),
        ("yesterday", (datetime(2024, 3, 12), datetime(2024, 3, 13))),
        ("last7days", (datetime(2024, 3, 7), datetime(2024, 3, 14))),
        ("last30days", (datetime(2024, 2, 13), datetime(2024, 3, 14))),
        ("thisMonth", (datetime(2024, 3, 1), datetime(2024, 3, 14))),
        ("lastMonth", (datetime(2024, 2, 1), datetime(2024, 3, 1))),
        ("thisYear", (datetime(2024, 1, 1), datetime(2024, 3, 14))),
        ("lastYear", (datetime(2023, 1, 1), datetime(2024, 1, 1))),
    ])
    def test_named(self, name, expected):
        assert resolve_range(name, now=NOW) == expected

    def test_default_is_last_seven_days(self):
        assert resolve_range(None, now=NOW) == resolve_range("last7days", now=NOW)

    def test_explicit_window(self):
        assert resolve_range({"start": "2024-01-01", "end": "2024-01-02T00:00:00Z"}) == (
            datetime(2024, 1, 1), datetime(2024, 1, 2)
        )

    @pytest.mark.parametrize("date_range", [
        "fortnight",
        {"start": "2024-01-02", "end": "2024-01-01"},
        {"start": "2024-01-02"},
        {"start": "soon", "end": "2024-01-01"},
    ])
    def test_invalid(self, date_range):
        with pytest.raises(ReportError):
            resolve_range(date_range, now=NOW)


class TestSalesReports:

    @pytest.fixture
    def shop(self, catalog, cashier, make_product, sell):
        bike = make_product(name="Ridge 29er", category_code="MTB", price_cents=50000)
        bell = make_product(name="Bell", category_code="ACC", price_cents=1500)
        sell([(bike, 1), (bell, 2)], when=datetime(2024, 3, 12, 10), cashier=cashier, payment_method_code="CARD")
        sell(bell, 3, when=datetime(2024, 3, 13, 14), payment_method_code="CASH")
        # Previous window
        sell(bell, 1, when=datetime(2024, 3, 5, 9))
        return bike, bell

    def test_aggregate_daily(self, shop):
        report = reporting_service.get_aggregate_report(
            date_range={"start": "2024-03-12", "end": "2024-03-14"}, bucketing="daily", now=NOW
        )

        assert [(r["label"], r["sum"], r["count"]) for r in report["rows"]] == [
            ("2024-03-12", 53000, 1),
            ("2024-03-13", 4500, 1),
        ]
        assert report["total"] == 57500
        assert report["count"] == 2
        assert report["previous_total"] == 0
        assert report["percent_change"] == 100.0

    def test_aggregate_by_staff_and_payment_method(self, shop):
        window = {"start": "2024-03-12", "end": "2024-03-14"}

        by_staff = reporting_service.get_aggregate_report(date_range=window, dimension="staff")
        by_method = reporting_service.get_aggregate_report(date_range=window, dimension="payment_method")

        assert {(r["group"], r["sum"]) for r in by_staff["rows"]} == {("Dana L. Cruz", 53000), ("Unassigned", 4500)}
        assert {(r["group"], r["sum"]) for r in by_method["rows"]} == {("Card", 53000), ("Cash", 4500)}

    def test_aggregate_movements(self, product, receive, sell):
        receive(product, 10, when=datetime(2024, 3, 12, 9))
        sell(product, 4, when=datetime(2024, 3, 12, 11))

        report = reporting_service.get_aggregate_report(
            date_range={"start": "2024-03-12", "end": "2024-03-13"}, metric="movements"
        )

        [row] = report["rows"]
        assert row["sum"] == 6
        assert row["count"] == 2

    def test_unknown_metric(self, db_session):
        with pytest.raises(ReportError):
            reporting_service.get_aggregate_report(metric="profit", now=NOW)

    def test_kpis(self, shop):
        result = reporting_service.sales_kpis("last7days", now=NOW)
        kpis = {k["key"]: k for k in result["kpis"]}

        assert result["start"] == "2024-03-07T00:00:00Z"
        assert kpis["total_sales_cents"]["value"] == 57500
        assert kpis["transactions"]["value"] == 2
        assert kpis["average_order_cents"]["value"] == 28750
        assert kpis["products_sold"]["value"] == 2
        assert kpis["total_sales_cents"]["previous"] == 1500
        assert kpis["transactions"]["previous"] == 1
        assert kpis["transactions"]["change"] == 100.0

    def test_best_sellers(self, shop):
        bike, bell = shop

        rows = reporting_service.best_sellers("last7days", now=NOW)

        assert [(r["product_id"], r["units_sold"]) for r in rows] == [(bell.id, 5), (bike.id, 1)]
        assert rows[0]["revenue_cents"] == 7500
        assert rows[1]["name"] == "Ridge 29er"

    def test_best_sellers_limit(self, shop):
        with pytest.raises(ReportError):
            reporting_service.best_sellers(limit=0, now=NOW)

    def test_peak_hours(self, shop):
        result = reporting_service.peak_hours("last7days", now=NOW)

        assert len(result["hours"]) == 24
        assert result["hours"][10]["sales_cents"] == 53000
        assert result["hours"][14]["transactions"] == 1
        assert result["peak_hour"] == 10

    def test_peak_hours_without_sales(self, db_session):
        assert reporting_service.peak_hours("today", now=NOW)["peak_hour"] is None


def test_stock_movement_report(product, receive):
    receive(product, 3, when=datetime(2024, 3, 13, 8))

    report = reporting_service.stock_movement_report("today", now=NOW)

    [group] = report["movements"]
    assert group["kind"] == "SUPPLY"
    assert group["net_quantity"] == 3
    assert report["start"] == "2024-03-13T00:00:00Z"


class _SaleStore:
    """Read side serving sales whose timestamps come back timezone-aware."""

    def __init__(self, sales):
        self.sales = sales

    def catalog_labels(self):
        return {"category": {}, "staff": {}, "payment_method": {}}

    def list_products(self, active_only=True):
        return [SimpleNamespace(id=1, category_code=None)]

    def list_sales(self, start=None, end=None):
        return self.sales

    def list_sale_lines(self, sale_id):
        return [SimpleNamespace(product_id=1, quantity_sold=1, line_total_cents=500)]


def test_sale_facts_normalize_aware_timestamps():
    plus_two = timezone(timedelta(hours=2))
    store = _SaleStore([
        SimpleNamespace(id=1, sale_date=datetime(2024, 1, 1, 12, tzinfo=plus_two),
                        payment_method_code=None, cashier_id=None),
        SimpleNamespace(id=2, sale_date=datetime(2024, 1, 1, 11),
                        payment_method_code=None, cashier_id=None),
    ])

    facts = reporting_service.sale_facts(datetime(2024, 1, 1), datetime(2024, 1, 2), store=store)

    assert [f.occurred_at for f in facts] == [datetime(2024, 1, 1, 10), datetime(2024, 1, 1, 11)]
    assert all(f.occurred_at.tzinfo is None for f in facts)
    assert [(r.label, r.sum) for r in aggregate(facts, "hourly")] == [
        ("2024-01-01 10:00", 500),
        ("2024-01-01 11:00", 500),
    ]
