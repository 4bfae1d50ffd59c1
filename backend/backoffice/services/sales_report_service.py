# Overview: Service-layer operations for sales reports; encapsulates aggregation and database work.

from __future__ import annotations

from datetime import date, datetime
from itertools import groupby

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.orm import joinedload, selectinload

from backoffice.extensions import db
from backoffice.models import (
    Collection,
    CollectionLine,
    Customer,
    PaymentType,
    Product,
    ProductCategory,
    Sale,
    SaleItem,
    Store,
    User,
)
from backoffice.services.presentation import EMPTY_MESSAGE, as_int, percentage_of, with_empty_state
from backoffice.services.report_builder import CustomReportDefinition, available_options, run_custom_report
from backoffice.services.report_query import (
    GROUPINGS,
    Aggregate,
    SalesGrouping,
    SalesItemQuery,
    category_name_expression,
    format_day_label,
    item_revenue_total,
    non_voided_sales,
    sales_header_totals,
)
from backoffice.time_utils import day_bounds, iter_days, to_utc_z, today
from backoffice.validation import (
    ChoiceField,
    DateField,
    FilterSet,
    ReferenceField,
    first_of_this_month,
    last_of_this_month,
    months_ago,
)


CASH_PAYMENT_TYPE = "Cash"


DAILY_FILTERS = FilterSet(
    DateField("report_date", default=today),
    ReferenceField("store_id", Store, "store"),
)

SUMMARY_FILTERS = FilterSet(
    DateField("start_date", default=first_of_this_month),
    DateField("end_date", default=last_of_this_month),
    ChoiceField("group_by", SalesGrouping, default=SalesGrouping.DAY.value),
    ReferenceField("store_id", Store, "store"),
    date_ranges=[("start_date", "end_date")],
)

BY_ITEM_FILTERS = FilterSet(
    DateField("start_date", default=first_of_this_month),
    DateField("end_date", default=last_of_this_month),
    ChoiceField(
        "group_by",
        (SalesGrouping.PRODUCT.value, SalesGrouping.ITEM_CATEGORY.value),
        default=SalesGrouping.PRODUCT.value,
    ),
    ReferenceField("store_id", Store, "store"),
    ReferenceField("product_id", Product, "product"),
    ReferenceField("category_id", ProductCategory, "category"),
    date_ranges=[("start_date", "end_date")],
)

CASHIER_SESSION_FILTERS = FilterSet(
    ReferenceField("user_id", User, "cashier"),
    ReferenceField("store_id", Store, "store"),
    DateField("start_date", default=today),
    DateField("end_date", default=today),
    date_ranges=[("start_date", "end_date")],
)

PAYMENT_METHOD_FILTERS = FilterSet(
    DateField("start_date", default=first_of_this_month),
    DateField("end_date", default=last_of_this_month),
    ReferenceField("store_id", Store, "store"),
    ReferenceField("user_id", User, "cashier"),
    date_ranges=[("start_date", "end_date")],
)

CUSTOMER_HISTORY_FILTERS = FilterSet(
    ReferenceField("customer_id", Customer, "customer"),
    DateField("start_date", default=months_ago(12)),
    DateField("end_date", default=today),
    date_ranges=[("start_date", "end_date")],
)

EOD_FILTERS = FilterSet(
    DateField("report_date", default=today),
    ReferenceField("store_id", Store, "store"),
    ReferenceField("user_id", User, "cashier"),
)


def _long_date(d: date | datetime) -> str:
    return d.strftime("%B %d, %Y")


def _short_date(d: date | datetime) -> str:
    return d.strftime("%b %d, %Y")


def _store_name(store_id: int | None) -> str:
    if store_id is None:
        return "All Stores"
    store = db.session.get(Store, store_id)
    return store.name if store else "N/A"


def _cashier_name(user_id: int | None) -> str:
    if user_id is None:
        return "All Cashiers"
    user = db.session.get(User, user_id)
    return user.name if user else "N/A"


def _detailed_sales(query, *, newest_first: bool = False) -> list[Sale]:
    order = (Sale.transacted_at.desc(), Sale.id.desc()) if newest_first else (Sale.transacted_at.asc(), Sale.id.asc())
    return query.options(
        joinedload(Sale.customer),
        selectinload(Sale.items).joinedload(SaleItem.product),
    ).order_by(*order).all()


def _items_count(sale: Sale) -> int:
    return sum(item.quantity for item in sale.items)


# ---------------------------------------------------------------------------
# Payment breakdown
# ---------------------------------------------------------------------------

def payment_breakdown(
    start: datetime,
    end: datetime,
    *,
    user_id: int | None = None,
    store_id: int | None = None,
) -> list[dict]:
    """
    Collected amount per payment type over non-refunded collections.

    transaction_count counts collections with a positive amount for that
    type. Types that collected nothing are left out.
    """
    if db.session.query(PaymentType.id).first() is None:
        current_app.logger.warning("Payment breakdown requested but no payment types are configured")
        return []

    total = func.coalesce(func.sum(CollectionLine.amount_cents), 0)
    paid_collections = func.count(func.distinct(case((CollectionLine.amount_cents > 0, Collection.id))))

    query = (
        db.session.query(
            PaymentType.id.label("payment_type_id"),
            PaymentType.name.label("payment_type_name"),
            total.label("total_amount_collected"),
            paid_collections.label("transaction_count"),
        )
        .join(CollectionLine, CollectionLine.payment_type_id == PaymentType.id)
        .join(Collection, CollectionLine.collection_id == Collection.id)
        .filter(
            Collection.is_refunded.is_(False),
            Collection.transacted_at >= start,
            Collection.transacted_at <= end,
        )
    )
    if user_id is not None:
        query = query.filter(Collection.user_id == user_id)
    if store_id is not None:
        query = query.filter(Collection.store_id == store_id)

    rows = query.group_by(PaymentType.id, PaymentType.name).order_by(
        PaymentType.name.asc(), PaymentType.id.asc()
    ).all()

    return [
        {
            "payment_type_id": row.payment_type_id,
            "payment_type_name": row.payment_type_name,
            "total_amount_collected": as_int(row.total_amount_collected),
            "transaction_count": as_int(row.transaction_count),
        }
        for row in rows
        if as_int(row.total_amount_collected) > 0
    ]


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def daily_report(*, report_date: date, store_id: int | None = None) -> dict:
    start, end = day_bounds(report_date)
    sales = non_voided_sales(start=start, end=end, store_id=store_id)
    header = sales_header_totals(sales)

    item_rows = (
        SalesItemQuery(start=start, end=end, store_id=store_id)
        .select(
            Product.id.label("item_id"),
            Product.name.label("item_name"),
            category_name_expression().label("item_group"),
            requires=("category",),
        )
        .aggregate(Aggregate.TOTAL_QUANTITY, Aggregate.TOTAL_REVENUE)
        .group_by(Product.id, Product.name, ProductCategory.name)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    aggregated_items = [
        {
            "item_id": row.item_id,
            "item_name": row.item_name,
            "item_group": row.item_group,
            "total_quantity": as_int(row.total_quantity),
            "total_amount": as_int(row.total_revenue),
        }
        for row in item_rows
    ]

    sales_by_item_group = []
    by_group = sorted(aggregated_items, key=lambda r: r["item_group"])
    for name, members in groupby(by_group, key=lambda r: r["item_group"]):
        members = list(members)
        sales_by_item_group.append({
            "name": name,
            "total_quantity": sum(r["total_quantity"] for r in members),
            "total_amount": sum(r["total_amount"] for r in members),
        })

    detailed_sales = [
        {
            "id": sale.id,
            "receipt_no": sale.receipt_no,
            "invoice_no": sale.invoice_no,
            "transacted_at": to_utc_z(sale.transacted_at),
            "customer_name": sale.customer.display_name if sale.customer else "N/A",
            "total_due": sale.total_due_cents,
            "total_paid": sale.total_paid_cents,
            "items_summary": sale.items_summary,
        }
        for sale in _detailed_sales(sales)
    ]

    report = {
        "report_date_formatted": _long_date(report_date),
        "total_sales_amount": sum(r["total_amount"] for r in aggregated_items),
        "number_of_transactions": header["transaction_count"],
        "total_discount": header["total_discount"],
        "aggregated_items": aggregated_items,
        "sales_by_item_group": sales_by_item_group,
        "detailed_sales": detailed_sales,
    }
    return with_empty_state(report, "detailed_sales")


def summary_report(
    *,
    start_date: date,
    end_date: date,
    group_by: str = SalesGrouping.DAY.value,
    store_id: int | None = None,
) -> dict:
    grouping = SalesGrouping(group_by)
    start, end = day_bounds(start_date, end_date)

    header = sales_header_totals(non_voided_sales(start=start, end=end, store_id=store_id))
    total_sales = item_revenue_total(start=start, end=end, store_id=store_id)

    rows = (
        SalesItemQuery(start=start, end=end, store_id=store_id)
        .grouped(grouping)
        .aggregate(Aggregate.TOTAL_REVENUE, Aggregate.TOTAL_QUANTITY, Aggregate.TRANSACTION_COUNT)
        .all()
    )
    label = GROUPINGS[grouping].label

    grouped = []
    chart_labels = []
    if grouping is SalesGrouping.DAY:
        by_day = {str(row.group_key): row for row in rows}
        for day in iter_days(start_date, end_date):
            row = by_day.get(day.isoformat())
            grouped.append({
                "group_key": day.isoformat(),
                "period_label": format_day_label(day),
                "total_sales": as_int(row.total_revenue) if row else 0,
                "total_quantity": as_int(row.total_quantity) if row else 0,
                "transactions": as_int(row.transaction_count) if row else 0,
            })
            chart_labels.append(day.strftime("%b %d"))
    else:
        for row in rows:
            grouped.append({
                "group_key": row.group_key,
                "period_label": label(row),
                "total_sales": as_int(row.total_revenue),
                "total_quantity": as_int(row.total_quantity),
                "transactions": as_int(row.transaction_count),
            })
            chart_labels.append(label(row))

    report = {
        "report_title": f"Sales Summary ({_short_date(start_date)} - {_short_date(end_date)})",
        "group_by_selected": grouping.value,
        "total_sales_amount": total_sales,
        "number_of_transactions": header["transaction_count"],
        "total_discount": header["total_discount"],
        "grouped_data_title": grouping.title,
        "grouped_sales_data": grouped,
        "chart_labels": chart_labels,
        "chart_data": [r["total_sales"] for r in grouped],
    }
    # A day-grouped report always has rows; it is empty when nothing sold.
    report["empty_message"] = None if header["transaction_count"] else EMPTY_MESSAGE
    return report


def by_item_report(
    *,
    start_date: date,
    end_date: date,
    group_by: str = SalesGrouping.PRODUCT.value,
    store_id: int | None = None,
    product_id: int | None = None,
    category_id: int | None = None,
) -> dict:
    grouping = SalesGrouping(group_by)
    start, end = day_bounds(start_date, end_date)

    q = (
        SalesItemQuery(start=start, end=end, store_id=store_id)
        .grouped(grouping)
        .aggregate(Aggregate.TOTAL_QUANTITY, Aggregate.TOTAL_REVENUE)
    )

    narrowed = False
    # The product filter only makes sense when rows are products.
    if product_id is not None and grouping is SalesGrouping.PRODUCT:
        q.where(SaleItem.product_id == product_id)
        narrowed = True
    if category_id is not None:
        q.where(Product.category_id == category_id, requires=("product",))
        narrowed = True

    rows = q.all()
    label = GROUPINGS[grouping].label

    if narrowed:
        overall_total = sum(as_int(row.total_revenue) for row in rows)
    else:
        overall_total = item_revenue_total(start=start, end=end, store_id=store_id)

    results = []
    for row in rows:
        quantity = as_int(row.total_quantity)
        amount = as_int(row.total_revenue)
        average_price = None
        if grouping is SalesGrouping.PRODUCT:
            average_price = round(amount / quantity, 2) if quantity > 0 else 0
        results.append({
            "id": row.group_key,
            "name": label(row),
            "total_quantity_sold": quantity,
            "total_sales_amount": amount,
            "average_price": average_price,
            "percentage_of_total_sales": percentage_of(amount, overall_total),
        })

    report = {
        "report_title": "Sales by " + ("Product/Service" if grouping is SalesGrouping.PRODUCT else "Item Category"),
        "start_date_formatted": _long_date(start_date),
        "end_date_formatted": _long_date(end_date),
        "group_by_selected": grouping.value,
        "results": results,
        "overall_total_sales_for_period": overall_total,
    }
    return with_empty_state(report, "results")


def cashier_session_report(
    *,
    user_id: int | None,
    start_date: date,
    end_date: date,
    store_id: int | None = None,
) -> dict | None:
    """Sales and collections of one cashier. None until a cashier is chosen."""
    if user_id is None:
        return None

    cashier = db.session.get(User, user_id)
    start, end = day_bounds(start_date, end_date)
    sales = non_voided_sales(start=start, end=end, store_id=store_id, user_id=user_id)
    header = sales_header_totals(sales)

    transactions = [
        {
            "id": sale.id,
            "receipt_no": sale.receipt_no,
            "transacted_at": to_utc_z(sale.transacted_at),
            "customer_name": sale.customer.display_name if sale.customer else "N/A",
            "total_due": sale.total_due_cents,
            "discount": sale.discount_cents,
            "total_paid": sale.total_paid_cents,
            "items_count": _items_count(sale),
        }
        for sale in _detailed_sales(sales)
    ]

    report = {
        "cashier_name": cashier.name,
        "store_name": _store_name(store_id),
        "start_date_formatted": _long_date(start_date),
        "end_date_formatted": _long_date(end_date),
        "total_gross_sales": header["total_due"],
        "total_discounts": header["total_discount"],
        "total_net_sales": header["total_due"] - header["total_discount"],
        "number_of_transactions": header["transaction_count"],
        "payments_by_type": payment_breakdown(start, end, user_id=user_id, store_id=store_id),
        "detailed_transactions": transactions,
    }
    return with_empty_state(report, "detailed_transactions")


def payment_methods_report(
    *,
    start_date: date,
    end_date: date,
    store_id: int | None = None,
    user_id: int | None = None,
) -> dict:
    start, end = day_bounds(start_date, end_date)
    summary = payment_breakdown(start, end, user_id=user_id, store_id=store_id)

    report = {
        "report_title": "Payment Methods Summary",
        "start_date_formatted": _long_date(start_date),
        "end_date_formatted": _long_date(end_date),
        "store_name": _store_name(store_id),
        "cashier_name": _cashier_name(user_id),
        "payment_summary": summary,
        "overall_total_collected": sum(r["total_amount_collected"] for r in summary),
    }
    return with_empty_state(report, "payment_summary")


def customer_history_report(
    *,
    customer_id: int | None,
    start_date: date,
    end_date: date,
) -> dict | None:
    """Purchase history of one customer, newest first. None until a customer is chosen."""
    if customer_id is None:
        return None

    customer = db.session.get(Customer, customer_id)
    start, end = day_bounds(start_date, end_date)
    sales = non_voided_sales(start=start, end=end, customer_id=customer_id)
    header = sales_header_totals(sales)

    history = []
    for sale in _detailed_sales(sales, newest_first=True):
        history.append({
            "id": sale.id,
            "transacted_at": to_utc_z(sale.transacted_at),
            "receipt_no": sale.receipt_no,
            "invoice_no": sale.invoice_no,
            "total_due": sale.total_due_cents,
            "discount": sale.discount_cents,
            "total_paid": sale.total_paid_cents,
            "items_count": _items_count(sale),
            "items_summary": "; ".join(
                f"{item.product.name if item.product else 'Unknown Item'} (Qty: {item.quantity})"
                for item in sale.items
            ),
            "items": [item.to_dict() for item in sale.items],
        })

    report = {
        "customer_details": customer.to_dict(),
        "start_date_formatted": _long_date(start_date),
        "end_date_formatted": _long_date(end_date),
        "total_amount_spent": header["total_paid"],
        "number_of_transactions": header["transaction_count"],
        "total_discount_received": header["total_discount"],
        "sales_history": history,
    }
    return with_empty_state(report, "sales_history")


def eod_summary_report(
    *,
    report_date: date,
    store_id: int | None = None,
    user_id: int | None = None,
) -> dict:
    start, end = day_bounds(report_date)
    header = sales_header_totals(non_voided_sales(start=start, end=end, store_id=store_id, user_id=user_id))
    breakdown = payment_breakdown(start, end, user_id=user_id, store_id=store_id)

    cash_collected = next(
        (r["total_amount_collected"] for r in breakdown if r["payment_type_name"] == CASH_PAYMENT_TYPE),
        0,
    )
    opening_float = 0
    cash_payouts = 0

    return {
        "report_title": "End of Day Report",
        "report_date_formatted": _long_date(report_date),
        "store_name": _store_name(store_id),
        "cashier_name": _cashier_name(user_id),
        "total_gross_sales": header["total_due"],
        "total_discounts": header["total_discount"],
        "total_net_sales": header["total_due"] - header["total_discount"],
        "number_of_transactions": header["transaction_count"],
        "payment_method_summary": breakdown,
        "overall_total_collected": sum(r["total_amount_collected"] for r in breakdown),
        "total_paid_from_sales": header["total_paid"],
        "cash_collected_sales": cash_collected,
        "opening_float": opening_float,
        "cash_payouts": cash_payouts,
        "expected_cash_in_drawer": opening_float + cash_collected - cash_payouts,
        "empty_message": None if header["transaction_count"] or breakdown else EMPTY_MESSAGE,
    }


def custom_report(payload) -> tuple[dict, dict]:
    """Run a custom report from a JSON payload. Returns (report, normalized filters)."""
    definition = CustomReportDefinition.from_payload(payload)
    report = with_empty_state(run_custom_report(definition), "results")
    filters = {
        "start_date": definition.start_date.isoformat(),
        "end_date": definition.end_date.isoformat(),
        "columns": list(definition.columns),
        "conditions": [
            {"field": c.field, "operator": c.operator.value, "value": list(c.value) if isinstance(c.value, tuple) else c.value}
            for c in definition.conditions
        ],
        "group_by": [g.value for g in definition.group_by],
        "aggregations": [a.value for a in definition.aggregations],
        "report_title": definition.report_title,
    }
    return report, filters


def custom_report_options() -> dict:
    return available_options()
