# Overview: Pytest coverage for quantity-on-hand projection.

import random
from datetime import datetime

import pytest
from cyclestock.errors import NotFoundError, ValidationError
from cyclestock.models.sales import SALE_STATUS_VOIDED
from cyclestock.models.supplies import SUPPLY_STATUS_PENDING
from cyclestock.services import stock_service
from cyclestock.services.movement_service import collect_movements


class TestProject:

    def test_no_movements_is_zero(self, product):
        assert stock_service.project(product.id) == 0

    def test_sum_of_all_streams(self, product, receive, sell, stockout):
        receive(product, 20)
        sell(product, 4)
        stockout(product, 1)
        stockout(product, 2, header_only=True)

        assert stock_service.project(product.id) == 13

    def test_pending_supplies_and_voided_sales_do_not_count(self, product, receive, sell):
        receive(product, 10)
        receive(product, 50, status=SUPPLY_STATUS_PENDING)
        sell(product, 3, status=SALE_STATUS_VOIDED)

        assert stock_service.project(product.id) == 10

    def test_negative_result_is_not_clamped(self, product, receive, sell):
        receive(product, 2)
        sell(product, 5)

        assert stock_service.project(product.id) == -3
        assert stock_service.available(product.id) == 0

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.project(999999)

    def test_fold_is_order_independent(self, product, receive, sell, stockout):
        receive(product, 20)
        sell(product, 7)
        stockout(product, 2)
        entries = collect_movements(product_id=product.id)

        shuffled = list(entries)
        random.Random(4).shuffle(shuffled)

        assert stock_service.fold_quantity(shuffled) == stock_service.fold_quantity(entries) == 11

    def test_as_of_is_inclusive(self, product, receive, sell):
        receive(product, 10, when=datetime(2024, 1, 1, 9))
        sell(product, 4, when=datetime(2024, 1, 2, 12))

        assert stock_service.project_as_of(product.id, datetime(2024, 1, 2, 11, 59)) == 10
        assert stock_service.project_as_of(product.id, datetime(2024, 1, 2, 12)) == 6
        assert stock_service.project_as_of(product.id, "2024-01-02T12:00:00Z") == 6

    def test_bad_as_of(self, product):
        with pytest.raises(ValidationError):
            stock_service.project(product.id, as_of="not-a-date")


class TestProjectMany:

    def test_maps_every_requested_product(self, make_product, receive, sell):
        a = make_product(name="A")
        b = make_product(name="B")
        idle = make_product(name="Idle")
        receive([(a, 5), (b, 3)])
        sell(b, 1)

        assert stock_service.project_many([a.id, b.id, idle.id]) == {a.id: 5, b.id: 2, idle.id: 0}

    def test_defaults_to_active_products(self, make_product, receive):
        active = make_product(name="Active")
        retired = make_product(name="Retired", is_active=False)
        receive([(active, 1), (retired, 1)])

        assert set(stock_service.project_many()) == {active.id}


def test_compare_with_store_reports_no_drift(product, receive, sell, stockout):
    receive(product, 12)
    sell(product, 5)
    stockout(product, 1)

    report = stock_service.compare_with_store(product.id)

    assert report["derived_qoh"] == 6
    assert report["precomputed_qoh"] == 6
    assert report["drift"] == 0


def test_stock_summary(product, receive, sell):
    receive(product, 20)
    sell(product, 16)

    summary = stock_service.get_stock_summary(product.id)

    assert summary["quantity_on_hand"] == 4
    assert summary["available"] == 4
    assert summary["status"] == "LOW"
