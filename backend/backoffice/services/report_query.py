# Overview: Query assembly for sales reports; joins, groupings and aggregates from closed allow-lists.

"""
Sales report query assembly.

SalesItemQuery starts from sale items of non-voided sales and adds further
tables only when a column, filter or grouping asks for them. Joins are always
emitted in the same order (sale -> sale item -> product -> category, then
customer and cashier), so two reports asking for the same data build the
same SQL.

Groupings and aggregates are closed enumerations. Nothing here accepts a
caller-supplied SQL expression.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable

from sqlalchemy import Float, cast, func

from backoffice.extensions import db
from backoffice.models import Customer, Product, ProductCategory, Sale, SaleItem, User
from backoffice.time_utils import start_of_week


UNCATEGORIZED = "Uncategorized"


class SalesGrouping(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    PRODUCT = "product"
    ITEM_CATEGORY = "item_category"

    @property
    def is_period(self) -> bool:
        return self in (SalesGrouping.DAY, SalesGrouping.WEEK, SalesGrouping.MONTH)

    @property
    def title(self) -> str:
        return "Sales by " + self.value.replace("_", " ").title()


class Aggregate(str, Enum):
    TOTAL_REVENUE = "total_revenue"
    TOTAL_QUANTITY = "total_quantity"
    TRANSACTION_COUNT = "transaction_count"
    TOTAL_PAID_SUM = "total_paid_sum"

    @property
    def label(self) -> str:
        return AGGREGATE_LABELS[self]


AGGREGATE_LABELS = {
    Aggregate.TOTAL_REVENUE: "Total Revenue",
    Aggregate.TOTAL_QUANTITY: "Total Quantity",
    Aggregate.TRANSACTION_COUNT: "Transaction Count",
    Aggregate.TOTAL_PAID_SUM: "Total Paid",
}


def revenue_expression():
    return SaleItem.quantity * SaleItem.price_cents


def category_name_expression():
    return func.coalesce(ProductCategory.name, UNCATEGORIZED)


def aggregate_column(aggregate: Aggregate):
    """Labelled SQL expression for one allow-listed aggregate."""
    if aggregate is Aggregate.TOTAL_REVENUE:
        expr = func.coalesce(func.sum(revenue_expression()), 0)
    elif aggregate is Aggregate.TOTAL_QUANTITY:
        expr = func.coalesce(func.sum(SaleItem.quantity), 0)
    elif aggregate is Aggregate.TRANSACTION_COUNT:
        expr = func.count(func.distinct(Sale.id))
    elif aggregate is Aggregate.TOTAL_PAID_SUM:
        # Each item carries its revenue share of the sale's paid amount, so the
        # sum is correct under any grouping and never counts a sale twice.
        share = cast(revenue_expression() * Sale.total_paid_cents, Float) / func.nullif(Sale.total_due_cents, 0)
        expr = func.coalesce(func.sum(share), 0)
    else:
        raise ValueError(f"Unsupported aggregate: {aggregate!r}")
    return expr.label(aggregate.value)


# ---------------------------------------------------------------------------
# Period bucketing
# ---------------------------------------------------------------------------

def period_expression(grouping: SalesGrouping, column=None):
    """
    Truncate a timestamp to its period start, as text:
    day -> YYYY-MM-DD, week -> YYYY-MM-DD of the Monday, month -> YYYY-MM.
    """
    column = Sale.transacted_at if column is None else column
    dialect = db.engine.dialect.name

    if dialect == "postgresql":
        if grouping is SalesGrouping.DAY:
            return func.to_char(column, "YYYY-MM-DD")
        if grouping is SalesGrouping.WEEK:
            return func.to_char(func.date_trunc("week", column), "YYYY-MM-DD")
        if grouping is SalesGrouping.MONTH:
            return func.to_char(column, "YYYY-MM")
    else:
        if grouping is SalesGrouping.DAY:
            return func.strftime("%Y-%m-%d", column)
        if grouping is SalesGrouping.WEEK:
            return func.strftime("%Y-%m-%d", column, "weekday 0", "-6 days")
        if grouping is SalesGrouping.MONTH:
            return func.strftime("%Y-%m", column)

    raise ValueError(f"{grouping.value} is not a period grouping")


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def format_day_label(value: Any) -> str:
    return _as_date(value).strftime("%a, %b %d, %Y")


def format_week_label(value: Any) -> str:
    return "Week of " + start_of_week(_as_date(value)).strftime("%b %d, %Y")


def format_month_label(value: Any) -> str:
    text = str(value)
    year, month = int(text[:4]), int(text[5:7])
    return date(year, month, 1).strftime("%b %Y")


@dataclass(frozen=True)
class GroupingRule:
    """How one grouping key turns into SQL and into a human label."""
    grouping: SalesGrouping
    requires: tuple[str, ...]
    columns: Callable[[], list]
    group_by: Callable[[], list]
    order_by: Callable[[], list]
    label: Callable[[Any], str]


def _period_grouping(grouping: SalesGrouping, label: Callable[[Any], str]) -> GroupingRule:
    return GroupingRule(
        grouping=grouping,
        requires=(),
        columns=lambda: [period_expression(grouping).label("group_key")],
        group_by=lambda: ["group_key"],
        order_by=lambda: ["group_key"],
        label=lambda row: label(row.group_key),
    )


GROUPINGS: dict[SalesGrouping, GroupingRule] = {
    SalesGrouping.DAY: _period_grouping(SalesGrouping.DAY, format_day_label),
    SalesGrouping.WEEK: _period_grouping(SalesGrouping.WEEK, format_week_label),
    SalesGrouping.MONTH: _period_grouping(SalesGrouping.MONTH, format_month_label),
    SalesGrouping.PRODUCT: GroupingRule(
        grouping=SalesGrouping.PRODUCT,
        requires=("product",),
        columns=lambda: [
            Product.id.label("group_key"),
            Product.name.label("group_name"),
        ],
        group_by=lambda: [Product.id, Product.name],
        order_by=lambda: [Product.name.asc(), Product.id.asc()],
        label=lambda row: row.group_name,
    ),
    SalesGrouping.ITEM_CATEGORY: GroupingRule(
        grouping=SalesGrouping.ITEM_CATEGORY,
        requires=("category",),
        columns=lambda: [
            ProductCategory.id.label("group_key"),
            category_name_expression().label("group_name"),
        ],
        group_by=lambda: [ProductCategory.id, ProductCategory.name],
        order_by=lambda: [category_name_expression().asc(), ProductCategory.id.asc()],
        label=lambda row: row.group_name,
    ),
}


# ---------------------------------------------------------------------------
# Query builder
# ---------------------------------------------------------------------------

JOIN_ORDER = ("product", "category", "customer", "cashier")

_JOINS = {
    "product": lambda q: q.join(Product, SaleItem.product_id == Product.id),
    "category": lambda q: q.outerjoin(ProductCategory, Product.category_id == ProductCategory.id),
    "customer": lambda q: q.outerjoin(Customer, Sale.customer_id == Customer.id),
    "cashier": lambda q: q.outerjoin(User, Sale.user_id == User.id),
}

_JOIN_DEPENDENCIES = {"category": ("product",)}


class SalesItemQuery:
    """
    Aggregated or detail query over sale items of non-voided sales.

    Usage:
        q = SalesItemQuery(start=..., end=..., store_id=...)
        q.grouped(SalesGrouping.PRODUCT).aggregate(Aggregate.TOTAL_REVENUE)
        rows = q.all()
    """

    def __init__(
        self,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        store_id: int | None = None,
    ):
        self._joins: set[str] = set()
        self._columns: list = []
        self._criteria: list = [Sale.is_voided.is_(False)]
        self._group_by: list = []
        self._order_by: list = []

        if start is not None:
            self._criteria.append(Sale.transacted_at >= start)
        if end is not None:
            self._criteria.append(Sale.transacted_at <= end)
        if store_id is not None:
            self._criteria.append(Sale.store_id == store_id)

    @property
    def joins(self) -> tuple[str, ...]:
        """Joined tables beyond sale/sale item, in emission order."""
        return tuple(name for name in JOIN_ORDER if name in self._joins)

    def require(self, *tables: str) -> "SalesItemQuery":
        for table in tables:
            if table not in _JOINS:
                raise ValueError(f"Unknown join: {table}")
            for dependency in _JOIN_DEPENDENCIES.get(table, ()):
                self._joins.add(dependency)
            self._joins.add(table)
        return self

    def select(self, *columns, requires: tuple[str, ...] = ()) -> "SalesItemQuery":
        self.require(*requires)
        self._columns.extend(columns)
        return self

    def where(self, *criteria, requires: tuple[str, ...] = ()) -> "SalesItemQuery":
        self.require(*requires)
        self._criteria.extend(criteria)
        return self

    def group_by(self, *columns, requires: tuple[str, ...] = ()) -> "SalesItemQuery":
        self.require(*requires)
        self._group_by.extend(columns)
        return self

    def order_by(self, *columns, requires: tuple[str, ...] = ()) -> "SalesItemQuery":
        self.require(*requires)
        self._order_by.extend(columns)
        return self

    def aggregate(self, *aggregates: Aggregate) -> "SalesItemQuery":
        self._columns.extend(aggregate_column(a) for a in aggregates)
        return self

    def grouped(self, grouping: SalesGrouping) -> "SalesItemQuery":
        rule = GROUPINGS[grouping]
        self.require(*rule.requires)
        self._columns.extend(rule.columns())
        self._group_by.extend(rule.group_by())
        self._order_by.extend(rule.order_by())
        return self

    def query(self):
        if not self._columns:
            raise ValueError("SalesItemQuery needs at least one column")

        q = db.session.query(*self._columns).select_from(SaleItem).join(Sale, SaleItem.sale_id == Sale.id)
        for name in self.joins:
            q = _JOINS[name](q)
        q = q.filter(*self._criteria)
        if self._group_by:
            q = q.group_by(*self._group_by)
        if self._order_by:
            q = q.order_by(*self._order_by)
        return q

    def all(self) -> list:
        return self.query().all()

    def one(self):
        return self.query().one()


def item_revenue_total(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    store_id: int | None = None,
    user_id: int | None = None,
    customer_id: int | None = None,
) -> int:
    """Sum of quantity x price over non-voided sale items in scope."""
    q = SalesItemQuery(start=start, end=end, store_id=store_id).aggregate(Aggregate.TOTAL_REVENUE)
    if user_id is not None:
        q.where(Sale.user_id == user_id)
    if customer_id is not None:
        q.where(Sale.customer_id == customer_id)
    return int(q.one().total_revenue or 0)


def non_voided_sales(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    store_id: int | None = None,
    user_id: int | None = None,
    customer_id: int | None = None,
):
    """Header-level query over sales that count towards revenue."""
    query = db.session.query(Sale).filter(Sale.is_voided.is_(False))
    if start is not None:
        query = query.filter(Sale.transacted_at >= start)
    if end is not None:
        query = query.filter(Sale.transacted_at <= end)
    if store_id is not None:
        query = query.filter(Sale.store_id == store_id)
    if user_id is not None:
        query = query.filter(Sale.user_id == user_id)
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    return query


def sales_header_totals(query) -> dict:
    """Count, discount, due and paid totals for a non_voided_sales() query."""
    row = query.with_entities(
        func.count(Sale.id).label("transaction_count"),
        func.coalesce(func.sum(Sale.discount_cents), 0).label("total_discount"),
        func.coalesce(func.sum(Sale.total_due_cents), 0).label("total_due"),
        func.coalesce(func.sum(Sale.total_paid_cents), 0).label("total_paid"),
    ).order_by(None).one()
    return {
        "transaction_count": int(row.transaction_count or 0),
        "total_discount": int(row.total_discount or 0),
        "total_due": int(row.total_due or 0),
        "total_paid": int(row.total_paid or 0),
    }
