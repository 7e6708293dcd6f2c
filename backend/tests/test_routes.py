# Overview: HTTP-level tests for the JSON API (status codes and payload shapes).

from datetime import datetime


class TestHealth:

    def test_ok(self, client):
        res = client.get("/api/health")

        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "ok"
        assert body["checks"]["database"]["status"] == "healthy"


class TestStockRoutes:

    def test_stock_summary(self, client, product, receive, sell):
        receive(product, 20)
        sell(product, 16)

        res = client.get(f"/api/stock/{product.id}")

        assert res.status_code == 200
        body = res.get_json()
        assert body["quantity_on_hand"] == 4
        assert body["status"] == "LOW"
        assert body["label"] == "Low Stock"

    def test_stock_as_of(self, client, product, receive, sell):
        receive(product, 20, when=datetime(2024, 1, 1, 9))
        sell(product, 18, when=datetime(2024, 1, 2, 12))

        body = client.get(f"/api/stock/{product.id}?as_of=2024-01-01T12:00:00Z").get_json()

        assert body["quantity_on_hand"] == 20
        assert body["status"] == "IN"
        assert body["label"] == "In Stock"
        assert body["priority"] is None

        current = client.get(f"/api/stock/{product.id}").get_json()
        assert current["status"] == "LOW"
        assert current["label"] == "Low Stock"
        assert current["priority"] == "high"

    def test_unknown_product_is_404(self, client):
        res = client.get("/api/stock/999999")

        assert res.status_code == 404
        assert "not found" in res.get_json()["error"]

    def test_bad_as_of_is_400(self, client, product):
        res = client.get(f"/api/stock/{product.id}?as_of=yesterday-ish")

        assert res.status_code == 400

    def test_history(self, client, product, receive, sell):
        receive(product, 10)
        sell(product, 3)

        res = client.get(f"/api/stock/{product.id}/history?page=1&page_size=1")

        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 2
        [row] = body["rows"]
        assert row["kind"] == "SALE"
        assert row["balance_after"] == 7

    def test_history_bad_page(self, client, product):
        res = client.get(f"/api/stock/{product.id}/history?page=0")

        assert res.status_code == 400

    def test_alerts(self, client, make_product, receive):
        low = make_product(name="Chain", reorder_level=5)
        receive(low, 2)

        res = client.get("/api/stock/alerts")

        assert res.status_code == 200
        body = res.get_json()
        assert body["count"] == 1
        assert body["alerts"][0]["product_id"] == low.id

    def test_reorder_then_receive(self, client, make_product, supplier):
        product = make_product(reorder_level=5, supplier=supplier)

        draft = client.get(f"/api/stock/{product.id}/reorder").get_json()
        assert draft["suggested_quantity"] == 10

        res = client.post(f"/api/stock/{product.id}/reorder", json={"quantity": 4})
        assert res.status_code == 201
        supply_id = res.get_json()["supply"]["id"]

        res = client.post(f"/api/supplies/{supply_id}/receive", json={})
        assert res.status_code == 200
        assert client.get(f"/api/stock/{product.id}").get_json()["quantity_on_hand"] == 4


class TestAdjustmentRoutes:

    def test_post_then_duplicate(self, client, product, receive):
        receive(product, 10)
        payload = {"client_request_id": "req-42", "product_id": product.id, "net_delta": -2, "remarks": "Damaged"}

        first = client.post("/api/adjustments", json=payload)
        second = client.post("/api/adjustments", json=payload)

        assert first.status_code == 201
        assert first.get_json()["result"] == "posted"
        assert second.status_code == 200
        assert second.get_json()["result"] == "duplicate_ignored"
        assert client.get(f"/api/stock/{product.id}").get_json()["quantity_on_hand"] == 8

        listing = client.get(f"/api/adjustments?product_id={product.id}").get_json()
        assert listing["total"] == 1

    def test_zero_delta_is_400(self, client, product):
        res = client.post("/api/adjustments", json={"client_request_id": "req-0", "product_id": product.id, "net_delta": 0})

        assert res.status_code == 400
        assert res.get_json()["error"] == "No changes detected"

    def test_missing_request_id_is_400(self, client, product):
        res = client.post("/api/adjustments", json={"product_id": product.id, "net_delta": 1})

        assert res.status_code == 400

    def test_details_payload(self, client, make_product):
        a = make_product(name="A")
        b = make_product(name="B")

        res = client.post("/api/adjustments", json={
            "client_request_id": "req-multi",
            "details": [{"product_id": a.id, "quantity": 3}, {"product_id": b.id, "quantity": 1}],
        })

        assert res.status_code == 201
        assert res.get_json()["net_delta"] == 4


class TestReturnRoutes:

    def test_full_flow(self, client, product, receive, sell):
        receive(product, 10)
        sale = sell(product, 3)
        line_id = sale.lines[0].id

        res = client.post("/api/returns", json={"sale_detail_id": line_id, "quantity": 2})
        assert res.status_code == 201
        return_id = res.get_json()["return"]["return_id"]

        early = client.post(f"/api/returns/{return_id}/post", json={"idempotency_key": "k1"})
        assert early.status_code == 409

        assert client.post(f"/api/returns/{return_id}/approve").status_code == 200

        posted = client.post(f"/api/returns/{return_id}/post", json={"idempotency_key": "k1"})
        assert posted.status_code == 200
        assert posted.get_json()["duplicate"] is False

        again = client.post(f"/api/returns/{return_id}/post", json={"idempotency_key": "k1"})
        assert again.status_code == 200
        assert again.get_json()["duplicate"] is True

        assert client.get(f"/api/stock/{product.id}").get_json()["quantity_on_hand"] == 9
        assert client.get(f"/api/returns/{return_id}").get_json()["return"]["return_status"] == "POST"

    def test_counter_flow(self, client, product, receive, sell):
        receive(product, 10)
        sale = sell(product, 2)

        res = client.post("/api/returns", json={
            "sale_id": sale.id,
            "lines": [{"sale_detail_id": sale.lines[0].id, "quantity": 1}],
            "reason": "Wrong size",
        })

        assert res.status_code == 201
        [record] = res.get_json()["returns"]
        assert record["remarks"] == f"Sale #{sale.id} • Wrong size"

        listing = client.get("/api/returns?status=PEND&q=wrong").get_json()
        assert listing["total"] == 1

    def test_reject(self, client, product, receive, sell):
        receive(product, 10)
        sale = sell(product, 1)
        return_id = client.post(
            "/api/returns", json={"sale_detail_id": sale.lines[0].id, "quantity": 1}
        ).get_json()["return"]["return_id"]

        res = client.post(f"/api/returns/{return_id}/reject", json={"reason": "Worn"})

        assert res.status_code == 200
        assert res.get_json()["return"]["rejection_reason"] == "Worn"

    def test_missing_fields_is_400(self, client):
        assert client.post("/api/returns", json={}).status_code == 400

    def test_unknown_return_is_404(self, client):
        assert client.get("/api/returns/999999").status_code == 404


class TestReportRoutes:

    def test_aggregate(self, client, product, sell):
        sell(product, 2, when=datetime(2024, 1, 1, 9), unit_price_cents=500)

        res = client.get("/api/reports/aggregate?start=2024-01-01&end=2024-01-02&bucketing=daily")

        assert res.status_code == 200
        body = res.get_json()
        assert body["total"] == 1000
        assert body["rows"][0]["label"] == "2024-01-01"

    def test_bad_bucketing_is_400(self, client):
        res = client.get("/api/reports/aggregate?bucketing=fortnightly")

        assert res.status_code == 400

    def test_other_reports_respond(self, client):
        for path in ("kpis", "best-sellers", "peak-hours", "stock-movements"):
            res = client.get(f"/api/reports/{path}?range=today")
            assert res.status_code == 200, path
