"""
Sales query assembly tests.

Verifies:
- Voided sales never reach an aggregate
- Joins are added on demand and always in the same order
- Period buckets for day, week and month
- Paid amounts are shared across items without double counting
"""

from datetime import datetime

import pytest

from backoffice.models import Product, Sale
from backoffice.services.report_query import (
    Aggregate,
    JOIN_ORDER,
    SalesGrouping,
    SalesItemQuery,
    format_day_label,
    format_month_label,
    format_week_label,
    item_revenue_total,
    non_voided_sales,
    sales_header_totals,
)
from conftest import make_sale


class TestJoins:

    def test_joins_follow_fixed_order(self, app):
        q = SalesItemQuery().require("cashier", "customer", "category")
        assert q.joins == ("product", "category", "customer", "cashier")
        assert q.joins == JOIN_ORDER

    def test_category_pulls_in_product(self, app):
        assert SalesItemQuery().require("category").joins == ("product", "category")

    def test_same_request_builds_same_sql(self, app):
        first = SalesItemQuery().require("customer", "product").aggregate(Aggregate.TOTAL_REVENUE)
        second = SalesItemQuery().require("product", "customer").aggregate(Aggregate.TOTAL_REVENUE)
        assert str(first.query()) == str(second.query())

    def test_unknown_join_is_rejected(self, app):
        with pytest.raises(ValueError):
            SalesItemQuery().require("suppliers")

    def test_query_needs_columns(self, app):
        with pytest.raises(ValueError):
            SalesItemQuery().query()


class TestVoidedSales:

    def test_voided_sales_are_excluded(self, db_session, store, water):
        make_sale(store, [(water, 2, 100)], when=datetime(2026, 1, 5, 10))
        make_sale(store, [(water, 5, 100)], when=datetime(2026, 1, 5, 11), voided=True)

        start, end = datetime(2026, 1, 1), datetime(2026, 1, 31, 23, 59, 59)
        assert item_revenue_total(start=start, end=end) == 200

        header = sales_header_totals(non_voided_sales(start=start, end=end))
        assert header["transaction_count"] == 1
        assert header["total_due"] == 200

    def test_scope_filters(self, db_session, store, other_store, water, cashier):
        make_sale(store, [(water, 1, 100)], when=datetime(2026, 1, 5, 10), user=cashier)
        make_sale(other_store, [(water, 3, 100)], when=datetime(2026, 1, 5, 10))

        assert item_revenue_total(store_id=store.id) == 100
        assert item_revenue_total(store_id=other_store.id) == 300
        assert item_revenue_total(user_id=cashier.id) == 100
        assert item_revenue_total() == 400


class TestPeriodGrouping:

    @pytest.fixture
    def sales(self, db_session, store, water):
        # Monday 2026-01-05, Sunday 2026-01-11, Monday 2026-01-12, 2026-02-02
        for when in (
            datetime(2026, 1, 5, 9),
            datetime(2026, 1, 11, 18),
            datetime(2026, 1, 12, 8),
            datetime(2026, 2, 2, 12),
        ):
            make_sale(store, [(water, 1, 100)], when=when)

    def _keys(self, grouping):
        rows = SalesItemQuery().grouped(grouping).aggregate(Aggregate.TOTAL_REVENUE).all()
        return [(str(row.group_key), int(row.total_revenue)) for row in rows]

    def test_day(self, sales):
        assert self._keys(SalesGrouping.DAY) == [
            ("2026-01-05", 100),
            ("2026-01-11", 100),
            ("2026-01-12", 100),
            ("2026-02-02", 100),
        ]

    def test_week_starts_on_monday(self, sales):
        assert self._keys(SalesGrouping.WEEK) == [
            ("2026-01-05", 200),
            ("2026-01-12", 100),
            ("2026-02-02", 100),
        ]

    def test_month(self, sales):
        assert self._keys(SalesGrouping.MONTH) == [("2026-01", 300), ("2026-02", 100)]

    def test_labels(self):
        assert format_day_label("2026-01-05") == "Mon, Jan 05, 2026"
        assert format_week_label("2026-01-07") == "Week of Jan 05, 2026"
        assert format_month_label("2026-02") == "Feb 2026"


class TestAggregates:

    def test_transaction_count_is_distinct(self, db_session, store, water, bread):
        make_sale(store, [(water, 1, 100), (bread, 2, 150)])
        row = SalesItemQuery().aggregate(Aggregate.TRANSACTION_COUNT, Aggregate.TOTAL_QUANTITY).one()
        assert row.transaction_count == 1
        assert row.total_quantity == 3

    def test_paid_share_sums_to_sale_paid(self, db_session, store, water, bread):
        # due 400, paid 300 -> water share 100 * 300/400, bread share 300 * 300/400
        make_sale(store, [(water, 1, 100), (bread, 2, 150)], discount=100)

        rows = (
            SalesItemQuery()
            .grouped(SalesGrouping.PRODUCT)
            .aggregate(Aggregate.TOTAL_PAID_SUM)
            .all()
        )
        shares = {row.group_name: round(row.total_paid_sum, 2) for row in rows}
        assert shares == {"Mineral Water": 75.0, "White Bread": 225.0}
        assert round(sum(shares.values()), 2) == 300.0

    def test_category_grouping_labels_uncategorized(self, db_session, store, water, bread):
        make_sale(store, [(water, 1, 100), (bread, 1, 150)])
        rows = (
            SalesItemQuery()
            .grouped(SalesGrouping.ITEM_CATEGORY)
            .aggregate(Aggregate.TOTAL_REVENUE)
            .all()
        )
        assert [(row.group_name, int(row.total_revenue)) for row in rows] == [
            ("Beverages", 100),
            ("Uncategorized", 150),
        ]

    def test_where_with_requires_adds_join(self, db_session, store, water, bread):
        make_sale(store, [(water, 1, 100), (bread, 1, 150)])
        q = SalesItemQuery().aggregate(Aggregate.TOTAL_REVENUE)
        q.where(Product.category_id.is_(None), requires=("product",))
        assert q.joins == ("product",)
        assert q.one().total_revenue == 150

    def test_header_totals_on_empty_scope(self, db_session):
        header = sales_header_totals(non_voided_sales(store_id=999))
        assert header == {"transaction_count": 0, "total_discount": 0, "total_due": 0, "total_paid": 0}

    def test_non_voided_sales_is_a_sale_query(self, db_session, store, water):
        sale = make_sale(store, [(water, 1, 100)])
        assert non_voided_sales().all() == [db_session.get(Sale, sale.id)]
