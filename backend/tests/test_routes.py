"""
HTTP route tests.

Verifies:
- Report payload envelope (report, filters, lookups)
- Invalid filters return 400 with per-field errors
- Document routes map missing rows to 404 and stage conflicts to 409
- Unknown routes and unexpected failures return JSON errors
"""

from datetime import datetime

import pytest

from backoffice.services import sales_report_service
from conftest import make_sale, set_stock


# =============================================================================
# REPORT ENDPOINTS
# =============================================================================


class TestReportEnvelope:

    def test_daily_report(self, client, store, water):
        make_sale(store, [(water, 2, 100)], when=datetime(2026, 1, 5, 10))

        resp = client.get("/api/reports/sales/daily?report_date=2026-01-05")
        assert resp.status_code == 200

        body = resp.get_json()
        assert set(body) == {"report", "filters", "lookups"}
        assert body["filters"] == {"report_date": "2026-01-05", "store_id": None}
        assert body["report"]["total_sales_amount"] == 200
        assert body["lookups"]["stores"] == [{"id": store.id, "name": "Main Street"}]

    @pytest.mark.parametrize("path", [
        "/api/reports/sales/summary?group_by=week",
        "/api/reports/sales/by-item?group_by=item_category",
        "/api/reports/sales/payment-methods",
        "/api/reports/sales/eod-summary",
        "/api/reports/inventory/stock-on-hand",
        "/api/reports/inventory/valuation",
        "/api/reports/inventory/movement-history",
        "/api/reports/inventory/reorder-level",
        "/api/reports/inventory/expiring-items",
        "/api/reports/inventory/slow-moving",
        "/api/reports/inventory/product-list?search=water",
        "/api/reports/procurement/purchase-orders",
        "/api/reports/procurement/supplier-performance",
        "/api/reports/procurement/item-purchases",
        "/api/reports/procurement/spend-analysis?group_by=category",
    ])
    def test_reports_answer_on_empty_database(self, client, db_session, path):
        resp = client.get(path)
        assert resp.status_code == 200, resp.get_json()
        assert "empty_message" in resp.get_json()["report"]

    def test_selection_reports_wait_for_a_choice(self, client, db_session):
        for path in ("/api/reports/sales/cashier-session", "/api/reports/sales/customer-history"):
            resp = client.get(path)
            assert resp.status_code == 200
            assert resp.get_json()["report"] is None

    def test_purchase_order_lookups(self, client, db_session):
        body = client.get("/api/reports/procurement/purchase-orders").get_json()
        stages = {s["value"]: s["terminal"] for s in body["lookups"]["stages"]}
        assert stages == {
            "DRAFT": False,
            "CHECKED": False,
            "APPROVED": False,
            "COMPLETED": True,
            "CANCELLED": True,
        }

    def test_reorder_level_route(self, client, store, water):
        set_stock(store, water, 8)
        body = client.get("/api/reports/inventory/reorder-level").get_json()
        rows = body["report"]["low_stock_items"]
        assert len(rows) == 1
        assert (rows[0]["product_name"], rows[0]["current_quantity"], rows[0]["reorder_level"], rows[0]["shortfall"]) == (
            "Mineral Water", 8, 10, 2,
        )

    def test_slow_moving_defaults_echoed(self, client, store, water):
        set_stock(store, water, 3)
        body = client.get("/api/reports/inventory/slow-moving").get_json()
        assert body["filters"]["period_days"] == 90
        assert body["filters"]["max_sales_qty"] == 5
        assert [i["product_name"] for i in body["report"]["slow_moving_items"]] == ["Mineral Water"]


class TestFilterErrors:

    def test_invalid_filters(self, client, db_session):
        resp = client.get("/api/reports/sales/summary?start_date=2026-02-01&end_date=2026-01-01&group_by=year")
        assert resp.status_code == 400

        body = resp.get_json()
        assert body["error"] == "Validation failed"
        assert set(body["errors"]) == {"end_date", "group_by"}

    def test_unknown_store(self, client, db_session):
        resp = client.get("/api/reports/inventory/valuation?store_id=42")
        assert resp.status_code == 400
        assert resp.get_json()["errors"]["store_id"] == "store_id selected store does not exist"

    @pytest.mark.parametrize("path,field", [
        ("/api/reports/inventory/slow-moving?period_days=1000000000", "period_days"),
        ("/api/reports/inventory/expiring-items?days_to_expiry=1000000000", "days_to_expiry"),
        ("/api/reports/inventory/stock-on-hand?store_id=99999999999999999999", "store_id"),
        ("/api/reports/inventory/movement-history?page=99999999999999999999", "page"),
        ("/api/reports/procurement/purchase-orders?page=100001", "page"),
        ("/api/reports/sales/summary?start_date=0001-01-01&end_date=9999-12-31", "start_date"),
        ("/api/reports/sales/summary?start_date=1900-01-01&end_date=2999-12-31", "end_date"),
    ])
    def test_extreme_values_are_field_errors(self, client, db_session, path, field):
        resp = client.get(path)
        assert resp.status_code == 400
        assert field in resp.get_json()["errors"]

    def test_slow_moving_minimum_period(self, client, db_session):
        resp = client.get("/api/reports/inventory/slow-moving?period_days=3")
        assert resp.status_code == 400
        assert "period_days" in resp.get_json()["errors"]


class TestCustomReport:

    def test_options(self, client, db_session):
        body = client.get("/api/reports/sales/custom").get_json()
        assert "columns" in body["report"]["options"]
        assert set(body["lookups"]) == {"customers", "users", "stores", "products", "categories"}

    def test_run(self, client, store, water):
        make_sale(store, [(water, 2, 100)], when=datetime(2026, 1, 5, 10), receipt_no="R1")

        resp = client.post("/api/reports/sales/custom", json={
            "start_date": "2026-01-01",
            "end_date": "2026-01-31",
            "group_by": ["product"],
            "aggregations": ["total_revenue"],
            "report_title": "January",
        })
        assert resp.status_code == 200

        body = resp.get_json()
        assert body["report"]["report_title"] == "January"
        assert body["report"]["results"] == [
            {"product_id": water.id, "item_name": "Mineral Water", "total_revenue": 200},
        ]
        assert body["filters"]["group_by"] == ["product"]

    def test_invalid_payload(self, client, db_session):
        resp = client.post("/api/reports/sales/custom", json={
            "columns": ["secret"],
            "conditions": [{"field": "store_id", "operator": "=", "value": ""}],
        })
        assert resp.status_code == 400
        assert resp.get_json()["errors"] == {
            "columns": "columns contains unsupported values: secret",
            "conditions.0": "conditions.0.value is required",
        }


# =============================================================================
# DOCUMENT ENDPOINTS
# =============================================================================


class TestPurchaseRoutes:

    def test_lifecycle(self, client, supplier, water):
        resp = client.post("/api/purchases", json={
            "supplier_id": supplier.id,
            "items": [{"product_id": water.id, "quantity": 3, "price_cents": 40}],
        })
        assert resp.status_code == 201
        purchase = resp.get_json()["purchase"]
        assert purchase["total_cents"] == 120
        assert purchase["stage"] == "DRAFT"
        assert resp.get_json()["actions"] == ["check", "cancel"]

        pid = purchase["id"]
        assert client.post(f"/api/purchases/{pid}/check").status_code == 200
        assert client.post(f"/api/purchases/{pid}/complete").status_code == 409
        assert client.delete(f"/api/purchases/{pid}").status_code == 409

        resp = client.get(f"/api/purchases/{pid}")
        assert resp.get_json()["purchase"]["stage"] == "CHECKED"
        assert resp.get_json()["actions"] == ["approve", "cancel"]

    def test_missing_purchase(self, client, db_session):
        resp = client.get("/api/purchases/999")
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Purchase 999 not found"

        assert client.get("/api/purchases/99999999999999999999").status_code == 404
        assert client.get("/api/adjustments/99999999999999999999").status_code == 404

    def test_body_must_be_object(self, client, db_session):
        resp = client.post("/api/purchases", data="nope", content_type="text/plain")
        assert resp.status_code == 400


class TestAdjustmentRoutes:

    def test_approve_posts_stock(self, client, store, water):
        set_stock(store, water, 5)
        resp = client.post("/api/adjustments", json={
            "store_id": store.id,
            "reason": "Recount",
            "items": [{"product_id": water.id, "quantity_delta": 2}],
        })
        assert resp.status_code == 201
        aid = resp.get_json()["adjustment"]["id"]

        client.post(f"/api/adjustments/{aid}/check")
        resp = client.post(f"/api/adjustments/{aid}/approve")
        assert resp.status_code == 200
        assert resp.get_json()["adjustment"]["posted_at"] is not None

        body = client.get("/api/reports/inventory/stock-on-hand").get_json()
        assert body["report"]["stock_on_hand"][0]["current_quantity"] == 7

    def test_unknown_action(self, client, store, water):
        resp = client.post("/api/adjustments", json={
            "store_id": store.id,
            "reason": "Recount",
            "items": [{"product_id": water.id, "quantity_delta": 1}],
        })
        aid = resp.get_json()["adjustment"]["id"]
        resp = client.post(f"/api/adjustments/{aid}/publish")
        assert resp.status_code == 409


# =============================================================================
# SYSTEM
# =============================================================================


class TestSystem:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["checks"]["database"]["status"] == "healthy"

    def test_unknown_route_is_json(self, client, db_session):
        resp = client.get("/api/reports/sales/nothing-here")
        assert resp.status_code == 404
        assert "error" in resp.get_json()

    def test_unexpected_error_is_a_generic_500(self, client, db_session, monkeypatch):
        def boom(**_kwargs):
            raise RuntimeError("database exploded")

        monkeypatch.setattr(sales_report_service, "daily_report", boom)
        resp = client.get("/api/reports/sales/daily")
        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error"}
