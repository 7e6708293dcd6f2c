# Overview: Pytest coverage for movement history pages, grouped views and history edits.

from datetime import datetime

import pytest
from cyclestock.errors import NoOpError, NotFoundError, ValidationError
from cyclestock.models import StockAdjustment
from cyclestock.services import history_service, stock_service
from cyclestock.services.history_service import HistoryEditBuffer, compute_net_delta


@pytest.fixture
def busy_product(product, receive, sell, stockout):
    receive(product, 10, when=datetime(2024, 1, 1, 9))
    sell(product, 3, when=datetime(2024, 1, 2, 12))
    stockout(product, 1, when=datetime(2024, 1, 3, 8))
    return product


class TestHistory:

    def test_newest_first_with_running_balance(self, busy_product):
        page = history_service.history(busy_product.id, page=1, page_size=10)

        assert [row.entry.kind.value for row in page.rows] == ["STOCKOUT", "SALE", "SUPPLY"]
        assert [row.entry.quantity for row in page.rows] == [-1, -3, 10]
        assert [row.balance_after for row in page.rows] == [6, 7, 10]
        assert page.rows[0].balance_after == stock_service.project(busy_product.id)

    def test_balances_cover_whole_history_not_just_page(self, busy_product):
        page = history_service.history(busy_product.id, page=2, page_size=2)

        [row] = page.rows
        assert row.entry.kind.value == "SUPPLY"
        assert row.balance_after == 10
        assert page.total == 3
        assert page.total_pages == 2

    def test_page_past_end_is_empty(self, busy_product):
        page = history_service.history(busy_product.id, page=5, page_size=2)

        assert page.rows == ()
        assert page.total == 3

    def test_same_timestamp_breaks_ties_by_source(self, product, receive, sell):
        when = datetime(2024, 1, 1, 9)
        receive(product, 5, when=when)
        sell(product, 2, when=when)

        page = history_service.history(product.id, page_size=10)

        # Oldest first is SUPPLY then SALE, so newest first is the reverse
        assert [row.entry.kind.value for row in page.rows] == ["SALE", "SUPPLY"]
        assert [row.balance_after for row in page.rows] == [3, 5]

    def test_default_page_size_from_config(self, app, busy_product, monkeypatch):
        monkeypatch.setitem(app.config, "HISTORY_PAGE_SIZE", 2)

        page = history_service.history(busy_product.id)

        assert page.page_size == 2
        assert len(page.rows) == 2

    @pytest.mark.parametrize("page,page_size", [(0, 5), (1, 0), (1, -3)])
    def test_bad_paging(self, product, page, page_size):
        with pytest.raises(ValidationError):
            history_service.history(product.id, page=page, page_size=page_size)

    def test_page_size_is_clamped(self, app, busy_product, monkeypatch):
        monkeypatch.setitem(app.config, "MAX_PAGE_SIZE", 2)

        page = history_service.history(busy_product.id, page_size=1000)

        assert page.page_size == 2
        assert len(page.rows) == 2
        assert page.total_pages == 2

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            history_service.history(999999)

    def test_to_dict(self, busy_product):
        payload = history_service.history(busy_product.id, page_size=1).to_dict()

        assert payload["total_pages"] == 3
        assert payload["rows"][0]["balance_after"] == 6
        assert payload["rows"][0]["occurred_at"] == "2024-01-03T08:00:00Z"


class TestGroupedMovements:

    def test_one_group_per_source_record(self, make_product, receive, sell):
        a = make_product(name="Tube")
        b = make_product(name="Tire")
        receive([(a, 4), (b, 6)], when=datetime(2024, 1, 1, 9))
        sell(a, 1, when=datetime(2024, 1, 2, 9))

        groups = history_service.grouped_movements()

        assert [g["kind"] for g in groups] == ["SALE", "SUPPLY"]
        supply = groups[1]
        assert supply["line_count"] == 2
        assert supply["net_quantity"] == 10
        assert {line["product_id"] for line in supply["lines"]} == {a.id, b.id}

    def test_window(self, busy_product):
        groups = history_service.grouped_movements("2024-01-02", "2024-01-03")

        assert [g["kind"] for g in groups] == ["SALE"]

    def test_bad_window(self, db_session):
        with pytest.raises(ValidationError):
            history_service.grouped_movements("2024-01-03", "2024-01-02")


class TestComputeNetDelta:

    def test_only_edited_rows_count(self):
        assert compute_net_delta({"a": 10, "b": -3, "c": 5}, {"a": 12}) == 2

    def test_edits_can_cancel_out(self):
        assert compute_net_delta({"a": 10, "b": -3}, {"a": 8, "b": -1}) == 0

    def test_unknown_row(self):
        with pytest.raises(ValidationError):
            compute_net_delta({"a": 1}, {"z": 2})


class TestHistoryEditBuffer:

    def test_apply_posts_one_correction(self, db_session, busy_product):
        buffer = HistoryEditBuffer(busy_product.id)
        rows = history_service.history(busy_product.id, page_size=10).rows
        buffer.track(rows)
        stockout_row, sale_row, _ = rows

        buffer.edit(stockout_row.entry.entry_key, -3)
        buffer.edit(sale_row.entry.entry_key, -2)
        result = buffer.apply()

        assert result.net_delta == -1
        assert db_session.query(StockAdjustment).count() == 1
        assert result.adjustment.adjustment_type == "correction"
        assert stock_service.project(busy_product.id) == 5
        assert buffer.has_changes is False

    def test_reverting_an_edit_removes_it(self, busy_product):
        buffer = HistoryEditBuffer(busy_product.id)
        buffer.track(history_service.history(busy_product.id, page_size=10).rows)
        key = next(iter(buffer.originals))

        buffer.edit(key, 99)
        buffer.edit(key, buffer.originals[key])

        assert buffer.edits == {}
        with pytest.raises(NoOpError):
            buffer.apply()

    def test_retry_after_failure_reuses_request_id(self, app, db_session, busy_product, monkeypatch):
        buffer = HistoryEditBuffer(busy_product.id)
        rows = history_service.history(busy_product.id, page_size=10).rows
        buffer.track(rows)
        supply_row = rows[-1]
        buffer.edit(supply_row.entry.entry_key, 2)

        with pytest.raises(ValidationError, match="exceeds current stock"):
            buffer.apply()
        pending_id = buffer._intent.client_request_id

        monkeypatch.setitem(app.config, "ALLOW_NEGATIVE_STOCK", True)
        result = buffer.apply()

        assert result.adjustment.client_request_id == pending_id
        assert stock_service.project(busy_product.id) == -2

    def test_edit_untracked_row(self, product):
        with pytest.raises(ValidationError):
            HistoryEditBuffer(product.id).edit("SALE:1:1:main", 3)
