"""
Sales report tests.

Verifies:
- Revenue totals ignore voided sales in every report
- Group percentages add up to 100 and use the right denominator
- Payment breakdowns skip refunded collections and idle payment types
- Cashier and customer reports wait for a selection
"""

from datetime import date, datetime

import pytest

from backoffice.services import inventory_report_service, sales_report_service
from backoffice.services.presentation import EMPTY_MESSAGE
from conftest import make_collection, make_sale, set_stock


JAN_5 = date(2026, 1, 5)


@pytest.fixture
def day_of_sales(db_session, store, other_store, water, bread, cashier, customer):
    """Three live sales and one voided sale on 2026-01-05."""
    return [
        make_sale(store, [(water, 2, 100), (bread, 1, 150)], when=datetime(2026, 1, 5, 9), user=cashier, receipt_no="R1"),
        make_sale(store, [(water, 1, 100)], when=datetime(2026, 1, 5, 10), customer=customer, discount=20, receipt_no="R2"),
        make_sale(other_store, [(bread, 2, 150)], when=datetime(2026, 1, 5, 11), receipt_no="R3"),
        make_sale(store, [(water, 10, 100)], when=datetime(2026, 1, 5, 12), voided=True, receipt_no="RV"),
    ]


# =============================================================================
# DAILY
# =============================================================================


class TestDailyReport:

    def test_totals_ignore_voided_sales(self, day_of_sales):
        report = sales_report_service.daily_report(report_date=JAN_5)

        assert report["report_date_formatted"] == "January 05, 2026"
        assert report["total_sales_amount"] == 350 + 100 + 300
        assert report["number_of_transactions"] == 3
        assert report["total_discount"] == 20
        assert [s["receipt_no"] for s in report["detailed_sales"]] == ["R1", "R2", "R3"]
        assert report["empty_message"] is None

    def test_items_and_groups(self, day_of_sales):
        report = sales_report_service.daily_report(report_date=JAN_5)

        items = {i["item_name"]: i for i in report["aggregated_items"]}
        assert items["Mineral Water"]["total_quantity"] == 3
        assert items["Mineral Water"]["total_amount"] == 300
        assert items["White Bread"]["item_group"] == "Uncategorized"
        assert items["White Bread"]["total_amount"] == 450

        groups = {g["name"]: g["total_amount"] for g in report["sales_by_item_group"]}
        assert groups == {"Beverages": 300, "Uncategorized": 450}
        assert sum(groups.values()) == report["total_sales_amount"]

    def test_store_filter(self, day_of_sales, other_store):
        report = sales_report_service.daily_report(report_date=JAN_5, store_id=other_store.id)
        assert report["total_sales_amount"] == 300
        assert [s["receipt_no"] for s in report["detailed_sales"]] == ["R3"]

    def test_customer_name_in_details(self, day_of_sales):
        report = sales_report_service.daily_report(report_date=JAN_5)
        names = [s["customer_name"] for s in report["detailed_sales"]]
        assert names == ["N/A", "Efua Owusu", "N/A"]

    def test_empty_day(self, db_session):
        report = sales_report_service.daily_report(report_date=JAN_5)
        assert report["total_sales_amount"] == 0
        assert report["number_of_transactions"] == 0
        assert report["detailed_sales"] == []
        assert report["empty_message"] == EMPTY_MESSAGE


# =============================================================================
# SUMMARY
# =============================================================================


class TestSummaryReport:

    def test_day_grouping_fills_every_day(self, day_of_sales):
        report = sales_report_service.summary_report(
            start_date=date(2026, 1, 4), end_date=date(2026, 1, 6), group_by="day"
        )

        assert report["report_title"] == "Sales Summary (Jan 04, 2026 - Jan 06, 2026)"
        assert [g["group_key"] for g in report["grouped_sales_data"]] == ["2026-01-04", "2026-01-05", "2026-01-06"]
        assert report["chart_data"] == [0, 750, 0]
        assert report["chart_labels"] == ["Jan 04", "Jan 05", "Jan 06"]
        assert report["grouped_sales_data"][1]["transactions"] == 3
        assert report["total_sales_amount"] == 750

    def test_product_grouping(self, day_of_sales):
        report = sales_report_service.summary_report(
            start_date=JAN_5, end_date=JAN_5, group_by="product"
        )
        assert report["grouped_data_title"] == "Sales by Product"
        assert [(g["period_label"], g["total_sales"]) for g in report["grouped_sales_data"]] == [
            ("Mineral Water", 300),
            ("White Bread", 450),
        ]

    def test_month_grouping(self, day_of_sales):
        report = sales_report_service.summary_report(
            start_date=date(2026, 1, 1), end_date=date(2026, 1, 31), group_by="month"
        )
        assert [(g["period_label"], g["total_sales"]) for g in report["grouped_sales_data"]] == [("Jan 2026", 750)]

    def test_nothing_sold(self, db_session):
        report = sales_report_service.summary_report(start_date=JAN_5, end_date=JAN_5, group_by="day")
        assert report["chart_data"] == [0]
        assert report["empty_message"] == EMPTY_MESSAGE


# =============================================================================
# BY ITEM
# =============================================================================


class TestByItemReport:

    def test_percentages_sum_to_100(self, day_of_sales):
        report = sales_report_service.by_item_report(start_date=JAN_5, end_date=JAN_5)

        results = report["results"]
        assert report["overall_total_sales_for_period"] == 750
        assert sum(r["total_sales_amount"] for r in results) == 750
        assert sum(r["percentage_of_total_sales"] for r in results) == pytest.approx(100, abs=0.02)

        water = next(r for r in results if r["name"] == "Mineral Water")
        assert water["percentage_of_total_sales"] == 40.0
        assert water["average_price"] == 100.0

    def test_category_grouping_has_no_average_price(self, day_of_sales):
        report = sales_report_service.by_item_report(
            start_date=JAN_5, end_date=JAN_5, group_by="item_category"
        )
        assert report["report_title"] == "Sales by Item Category"
        assert {r["name"]: r["average_price"] for r in report["results"]} == {
            "Beverages": None,
            "Uncategorized": None,
        }

    def test_product_filter_narrows_denominator(self, day_of_sales, water):
        report = sales_report_service.by_item_report(
            start_date=JAN_5, end_date=JAN_5, product_id=water.id
        )
        assert report["overall_total_sales_for_period"] == 300
        assert [r["percentage_of_total_sales"] for r in report["results"]] == [100.0]

    def test_category_filter(self, day_of_sales, beverages):
        report = sales_report_service.by_item_report(
            start_date=JAN_5, end_date=JAN_5, category_id=beverages.id
        )
        assert [r["name"] for r in report["results"]] == ["Mineral Water"]

    def test_empty_period(self, db_session):
        report = sales_report_service.by_item_report(start_date=JAN_5, end_date=JAN_5)
        assert report["results"] == []
        assert report["overall_total_sales_for_period"] == 0
        assert report["empty_message"] == EMPTY_MESSAGE


# =============================================================================
# PAYMENTS
# =============================================================================


class TestPaymentBreakdown:

    def test_breakdown(self, db_session, store, cashier, cash, card):
        when = datetime(2026, 1, 5, 10)
        make_collection([(cash, 500), (card, 250)], store=store, user=cashier, when=when)
        make_collection([(cash, 100)], store=store, when=when)
        make_collection([(card, 0), (cash, 40)], store=store, when=when)
        make_collection([(cash, 999)], store=store, when=when, refunded=True)

        report = sales_report_service.payment_methods_report(start_date=JAN_5, end_date=JAN_5)
        assert report["payment_summary"] == [
            {"payment_type_id": card.id, "payment_type_name": "Card", "total_amount_collected": 250, "transaction_count": 1},
            {"payment_type_id": cash.id, "payment_type_name": "Cash", "total_amount_collected": 640, "transaction_count": 3},
        ]
        assert report["overall_total_collected"] == 890
        assert report["store_name"] == "All Stores"
        assert report["cashier_name"] == "All Cashiers"

    def test_cashier_filter(self, db_session, store, cashier, cash):
        when = datetime(2026, 1, 5, 10)
        make_collection([(cash, 500)], store=store, user=cashier, when=when)
        make_collection([(cash, 100)], store=store, when=when)

        report = sales_report_service.payment_methods_report(
            start_date=JAN_5, end_date=JAN_5, user_id=cashier.id
        )
        assert report["overall_total_collected"] == 500
        assert report["cashier_name"] == "Ama Mensah"

    def test_no_payment_types_configured(self, db_session):
        assert sales_report_service.payment_breakdown(datetime(2026, 1, 1), datetime(2026, 1, 31)) == []


# =============================================================================
# CASHIER / CUSTOMER / END OF DAY
# =============================================================================


class TestCashierSession:

    def test_requires_a_cashier(self, db_session):
        assert sales_report_service.cashier_session_report(
            user_id=None, start_date=JAN_5, end_date=JAN_5
        ) is None

    def test_cashier_totals(self, day_of_sales, cashier, cash):
        make_collection([(cash, 350)], user=cashier, when=datetime(2026, 1, 5, 9))
        report = sales_report_service.cashier_session_report(
            user_id=cashier.id, start_date=JAN_5, end_date=JAN_5
        )
        assert report["cashier_name"] == "Ama Mensah"
        assert report["total_gross_sales"] == 350
        assert report["total_net_sales"] == 350
        assert report["number_of_transactions"] == 1
        assert report["detailed_transactions"][0]["items_count"] == 3
        assert [p["total_amount_collected"] for p in report["payments_by_type"]] == [350]


class TestCustomerHistory:

    def test_requires_a_customer(self, db_session):
        assert sales_report_service.customer_history_report(
            customer_id=None, start_date=JAN_5, end_date=JAN_5
        ) is None

    def test_history(self, day_of_sales, customer):
        report = sales_report_service.customer_history_report(
            customer_id=customer.id, start_date=JAN_5, end_date=JAN_5
        )
        assert report["customer_details"]["name"] == "Efua Owusu"
        assert report["number_of_transactions"] == 1
        assert report["total_amount_spent"] == 80
        assert report["total_discount_received"] == 20
        assert report["sales_history"][0]["items_summary"] == "Mineral Water (Qty: 1)"


class TestEndOfDay:

    def test_expected_cash(self, day_of_sales, store, cash, card):
        make_collection([(cash, 300), (card, 50)], store=store, when=datetime(2026, 1, 5, 9))
        make_collection([(cash, 80)], store=store, when=datetime(2026, 1, 5, 10))

        report = sales_report_service.eod_summary_report(report_date=JAN_5, store_id=store.id)
        assert report["store_name"] == "Main Street"
        assert report["total_gross_sales"] == 450
        assert report["total_discounts"] == 20
        assert report["total_net_sales"] == 430
        assert report["number_of_transactions"] == 2
        assert report["cash_collected_sales"] == 380
        assert report["expected_cash_in_drawer"] == 380
        assert report["overall_total_collected"] == 430

    def test_empty_day(self, db_session):
        report = sales_report_service.eod_summary_report(report_date=JAN_5)
        assert report["cash_collected_sales"] == 0
        assert report["empty_message"] == EMPTY_MESSAGE


# =============================================================================
# REPEATABILITY
# =============================================================================


class TestReportsAreReadOnly:

    def test_rerunning_reports_gives_identical_payloads(self, day_of_sales, store, water, bread):
        set_stock(store, water, 3)
        set_stock(store, bread, 40)

        def run_all():
            _custom, custom_filters = sales_report_service.custom_report({
                "start_date": "2026-01-01",
                "end_date": "2026-01-31",
                "group_by": ["product"],
                "aggregations": ["total_revenue", "total_quantity"],
            })
            return {
                "summary": sales_report_service.summary_report(start_date=JAN_5, end_date=JAN_5, group_by="product"),
                "by_item": sales_report_service.by_item_report(start_date=JAN_5, end_date=JAN_5),
                "slow_moving": inventory_report_service.slow_moving_report(),
                "custom": _custom,
                "custom_filters": custom_filters,
            }

        first = run_all()
        second = run_all()

        assert first == second
        assert first["summary"]["total_sales_amount"] == 750
        assert first["custom"]["results"]
