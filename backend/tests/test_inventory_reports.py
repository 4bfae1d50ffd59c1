"""
Inventory report tests.

Verifies:
- Stock on hand and valuation read the stock balances
- Reorder report boundary (on hand equal to the level is included)
- Slow-moving report includes stocked products that never sold
- Movement history pagination and filters
- Product list search and its CSV export
"""

from datetime import date, datetime, timedelta

import pytest

from backoffice.extensions import db
from backoffice.models import ExpiryBatch, Product, TransactionType
from backoffice.services import inventory_report_service, inventory_service
from backoffice.services.inventory_report_service import OK_SHORTFALL, reorder_shortfall
from backoffice.services.presentation import EMPTY_MESSAGE
from backoffice.time_utils import today
from conftest import at, make_sale, set_stock


# =============================================================================
# STOCK ON HAND / VALUATION
# =============================================================================


class TestStockOnHand:

    def test_sums_over_stores(self, db_session, store, other_store, water, bread):
        set_stock(store, water, 5)
        set_stock(other_store, water, 7)
        set_stock(store, bread, 0)

        report = inventory_report_service.stock_on_hand_report()
        assert [(i["product_name"], i["current_quantity"]) for i in report["stock_on_hand"]] == [
            ("Mineral Water", 12),
        ]
        assert report["total_value_cents"] == 12 * 40
        assert report["selected_store_name"] == "All Stores"

    def test_store_filter(self, db_session, store, other_store, water):
        set_stock(store, water, 5)
        set_stock(other_store, water, 7)

        report = inventory_report_service.stock_on_hand_report(store_id=other_store.id)
        assert report["stock_on_hand"][0]["current_quantity"] == 7
        assert report["selected_store_name"] == "Harbour Mall"

    def test_valuation(self, db_session, store, water, bread):
        set_stock(store, water, 10)
        set_stock(store, bread, 3)

        report = inventory_report_service.valuation_report(store_id=store.id)
        assert [(i["product_name"], i["item_total_value_cents"]) for i in report["valued_items"]] == [
            ("Mineral Water", 400),
            ("White Bread", 270),
        ]
        assert report["total_inventory_value_cents"] == 670

    def test_empty(self, db_session):
        report = inventory_report_service.valuation_report()
        assert report["valued_items"] == []
        assert report["total_inventory_value_cents"] == 0
        assert report["empty_message"] == EMPTY_MESSAGE


# =============================================================================
# REORDER LEVEL
# =============================================================================


class TestReorderLevel:

    @pytest.mark.parametrize("level,on_hand,expected", [(10, 8, 2), (10, 10, 0), (10, 12, OK_SHORTFALL), (5, 0, 5)])
    def test_shortfall(self, level, on_hand, expected):
        assert reorder_shortfall(level, on_hand) == expected

    def test_rows_per_store_at_or_below_level(self, db_session, store, other_store, water, bread):
        set_stock(store, water, 8)
        set_stock(other_store, water, 10)
        set_stock(store, bread, 0)  # no reorder level

        report = inventory_report_service.reorder_level_report()
        rows = [(i["store_name"], i["current_quantity"], i["shortfall"]) for i in report["low_stock_items"]]
        assert rows == [("Harbour Mall", 10, 0), ("Main Street", 8, 2)]

    def test_out_of_stock_is_included(self, db_session, store, water):
        set_stock(store, water, 0)
        report = inventory_report_service.reorder_level_report(store_id=store.id)
        assert report["low_stock_items"][0]["shortfall"] == 10

    def test_above_level_is_excluded(self, db_session, store, water):
        set_stock(store, water, 11)
        report = inventory_report_service.reorder_level_report()
        assert report["low_stock_items"] == []
        assert report["empty_message"] == EMPTY_MESSAGE


# =============================================================================
# SLOW MOVING
# =============================================================================


class TestSlowMoving:

    def test_never_sold_product_qualifies(self, db_session, store, water, bread):
        set_stock(store, water, 20)
        set_stock(store, bread, 4)
        make_sale(store, [(water, 30, 100)], when=at(-3))

        report = inventory_report_service.slow_moving_report(period_days=30, max_sales_qty=5)
        items = report["slow_moving_items"]
        assert [i["product_name"] for i in items] == ["White Bread"]
        assert items[0]["quantity_sold_in_period"] == 0
        assert items[0]["last_sale_date"] is None
        assert report["period_start"] == (today() - timedelta(days=30)).isoformat()

    def test_threshold_is_inclusive(self, db_session, store, water):
        set_stock(store, water, 20)
        make_sale(store, [(water, 5, 100)], when=at(-2))

        items = inventory_report_service.slow_moving_report(period_days=30, max_sales_qty=5)["slow_moving_items"]
        assert [(i["product_name"], i["quantity_sold_in_period"]) for i in items] == [("Mineral Water", 5)]
        assert items[0]["last_sale_date"] == (today() - timedelta(days=2)).isoformat()

    def test_old_and_voided_sales_do_not_count(self, db_session, store, water):
        set_stock(store, water, 20)
        make_sale(store, [(water, 50, 100)], when=at(-60))
        make_sale(store, [(water, 50, 100)], when=at(-1), voided=True)

        items = inventory_report_service.slow_moving_report(period_days=30, max_sales_qty=5)["slow_moving_items"]
        assert items[0]["quantity_sold_in_period"] == 0
        # Last sale date looks at all time, voided sales excluded
        assert items[0]["last_sale_date"] == (today() - timedelta(days=60)).isoformat()

    def test_products_without_stock_are_skipped(self, db_session, store, water):
        set_stock(store, water, 0)
        report = inventory_report_service.slow_moving_report(period_days=30, max_sales_qty=5)
        assert report["slow_moving_items"] == []

    def test_filter_defaults_come_from_config(self, app, db_session):
        values = inventory_report_service.slow_moving_filters().validate({})
        assert values == {"store_id": None, "period_days": 90, "max_sales_qty": 5}


# =============================================================================
# MOVEMENTS / EXPIRY / PRODUCT LIST
# =============================================================================


class TestMovementHistory:

    def test_paginated_newest_first(self, db_session, store, water, monkeypatch):
        monkeypatch.setattr(inventory_report_service, "MOVEMENT_PAGE_SIZE", 2)
        for offset in (-3, -2, -1):
            inventory_service.apply_stock_movement(
                store_id=store.id,
                product_id=water.id,
                quantity_delta=5,
                trans_type=TransactionType.RECEIVE,
                transacted_at=at(offset),
            )
        db.session.commit()

        first = inventory_report_service.movement_history_report(
            start_date=today() - timedelta(days=7), end_date=today(), page=1
        )["movements"]
        assert first["pagination"]["total"] == 3
        assert first["pagination"]["total_pages"] == 2
        assert first["pagination"]["has_next"] is True
        assert [m["transacted_at"][:10] for m in first["items"]] == [
            (today() - timedelta(days=1)).isoformat(),
            (today() - timedelta(days=2)).isoformat(),
        ]

        second = inventory_report_service.movement_history_report(
            start_date=today() - timedelta(days=7), end_date=today(), page=2
        )["movements"]
        assert second["count"] == 1
        assert second["pagination"]["has_prev"] is True

    def test_type_filter(self, db_session, store, water):
        inventory_service.apply_stock_movement(
            store_id=store.id, product_id=water.id, quantity_delta=5, trans_type=TransactionType.RECEIVE
        )
        inventory_service.apply_stock_movement(
            store_id=store.id, product_id=water.id, quantity_delta=-2, trans_type=TransactionType.ADJUSTMENT
        )
        db.session.commit()

        report = inventory_report_service.movement_history_report(
            start_date=today(), end_date=today(), transtype="ADJUSTMENT"
        )
        items = report["movements"]["items"]
        assert [(m["trans_type"], m["quantity_out"]) for m in items] == [("ADJUSTMENT", 2)]


class TestExpiringItems:

    def test_window(self, db_session, store, water):
        db.session.add_all([
            ExpiryBatch(store_id=store.id, product_id=water.id, expiry_date=today() + timedelta(days=3), quantity=4),
            ExpiryBatch(store_id=store.id, product_id=water.id, expiry_date=today() + timedelta(days=40), quantity=4),
            ExpiryBatch(store_id=store.id, product_id=water.id, expiry_date=today() - timedelta(days=1), quantity=4),
            ExpiryBatch(store_id=store.id, product_id=water.id, expiry_date=today() + timedelta(days=5), quantity=0),
        ])
        db.session.commit()

        report = inventory_report_service.expiring_items_report(days_to_expiry=30)
        assert [i["days_until_expiry"] for i in report["expiring_items"]] == [3]
        assert report["expiry_threshold"] == (today() + timedelta(days=30)).isoformat()


class TestProductList:

    def test_search_and_category(self, db_session, water, bread, beverages):
        db.session.add(Product(name="Sparkling", display_name="Sparkling Water 1L", cost_price_cents=50))
        db.session.commit()

        found = inventory_report_service.product_list_report(search="water")["products"]
        assert [p["name"] for p in found["items"]] == ["Mineral Water", "Sparkling"]

        in_category = inventory_report_service.product_list_report(category_id=beverages.id)["products"]
        assert [p["name"] for p in in_category["items"]] == ["Mineral Water"]
        assert in_category["items"][0]["category_name"] == "Beverages"

    def test_csv_export(self, db_session, water, bread, beverages):
        lines = inventory_report_service.product_list_csv().splitlines()
        assert lines[0] == "id,name,display_name,category_name,cost_price_cents,price_cents,reorder_level,has_expiry,is_active"
        assert lines[1:] == [
            f"{water.id},Mineral Water,,Beverages,40,100,10,False,True",
            f"{bread.id},White Bread,,,90,150,,False,True",
        ]

        filtered = inventory_report_service.product_list_csv(category_id=beverages.id).splitlines()
        assert len(filtered) == 2

    def test_csv_route(self, client, water):
        resp = client.get("/api/reports/inventory/product-list.csv?search=water")
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert "attachment" in resp.headers["Content-Disposition"]
        assert resp.get_data(as_text=True).splitlines()[1].startswith(f"{water.id},Mineral Water,")

        assert client.get("/api/reports/inventory/product-list.csv?category_id=999").status_code == 400
