# Overview: Service-layer operations for inventory reports; stock snapshots, movements and slow movers.

"""
Inventory reports.

On-hand quantities always come from StockBalance (one row per store and
product). Without a store filter they are summed over all stores. The
product transaction log is only read by the movement history.
"""

from __future__ import annotations

import csv
import io
from datetime import timedelta

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.orm import joinedload

from backoffice.extensions import db
from backoffice.models import (
    ExpiryBatch,
    Product,
    ProductCategory,
    ProductTransaction,
    Sale,
    SaleItem,
    StockBalance,
    Store,
)
from backoffice.services.presentation import as_int, paginate, with_empty_state
from backoffice.time_utils import day_bounds, start_of_day, to_iso_date, today
from backoffice.validation import (
    MAX_PAGE,
    MAX_RANGE_DAYS,
    DateField,
    FilterSet,
    IntField,
    ReferenceField,
    StringField,
    days_ago,
)


MOVEMENT_PAGE_SIZE = 50
PRODUCT_LIST_PAGE_SIZE = 50
OK_SHORTFALL = "OK"


STOCK_ON_HAND_FILTERS = FilterSet(
    ReferenceField("store_id", Store, "store"),
    ReferenceField("category_id", ProductCategory, "category"),
    ReferenceField("product_id", Product, "product"),
)

VALUATION_FILTERS = FilterSet(
    ReferenceField("store_id", Store, "store"),
)

MOVEMENT_FILTERS = FilterSet(
    ReferenceField("store_id", Store, "store"),
    ReferenceField("product_id", Product, "product"),
    DateField("start_date", default=days_ago(30)),
    DateField("end_date", default=today),
    StringField("transtype", max_length=32),
    IntField("page", default=1, min_value=1, max_value=MAX_PAGE),
    date_ranges=[("start_date", "end_date")],
)

REORDER_FILTERS = FilterSet(
    ReferenceField("store_id", Store, "store"),
    ReferenceField("category_id", ProductCategory, "category"),
)

EXPIRING_FILTERS = FilterSet(
    ReferenceField("store_id", Store, "store"),
    ReferenceField("product_id", Product, "product"),
    IntField("days_to_expiry", default=30, min_value=0, max_value=MAX_RANGE_DAYS),
)

PRODUCT_LIST_FILTERS = FilterSet(
    ReferenceField("category_id", ProductCategory, "category"),
    StringField("search", max_length=255),
    IntField("page", default=1, min_value=1, max_value=MAX_PAGE),
)

PRODUCT_EXPORT_FILTERS = FilterSet(
    ReferenceField("category_id", ProductCategory, "category"),
    StringField("search", max_length=255),
)

PRODUCT_EXPORT_COLUMNS = (
    "id",
    "name",
    "display_name",
    "category_name",
    "cost_price_cents",
    "price_cents",
    "reorder_level",
    "has_expiry",
    "is_active",
)


def slow_moving_filters() -> FilterSet:
    """Defaults come from app config, so the filter set is built per request."""
    return FilterSet(
        ReferenceField("store_id", Store, "store"),
        IntField(
            "period_days",
            default=current_app.config["SLOW_MOVING_PERIOD_DAYS"],
            min_value=7,
            max_value=MAX_RANGE_DAYS,
        ),
        IntField("max_sales_qty", default=current_app.config["SLOW_MOVING_MAX_QTY"], min_value=0),
    )


def _store_name(store_id: int | None) -> str:
    if store_id is None:
        return "All Stores"
    store = db.session.get(Store, store_id)
    return store.name if store else "N/A"


def reorder_shortfall(reorder_level: int, on_hand: int) -> int | str:
    """reorder_level - on_hand, or "OK" when stock is above the level."""
    shortfall = reorder_level - on_hand
    return OK_SHORTFALL if shortfall < 0 else shortfall


def _stocked_products(store_id: int | None):
    """Per-product on-hand query (summed over stores unless store_id is given)."""
    on_hand = func.sum(StockBalance.quantity)
    query = (
        db.session.query(
            Product.id.label("product_id"),
            Product.name.label("product_name"),
            Product.cost_price_cents.label("cost_price_cents"),
            ProductCategory.name.label("category_name"),
            on_hand.label("current_quantity"),
        )
        .join(StockBalance, StockBalance.product_id == Product.id)
        .outerjoin(ProductCategory, Product.category_id == ProductCategory.id)
    )
    if store_id is not None:
        query = query.filter(StockBalance.store_id == store_id)
    return query, on_hand


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def stock_on_hand_report(
    *,
    store_id: int | None = None,
    category_id: int | None = None,
    product_id: int | None = None,
) -> dict:
    query, on_hand = _stocked_products(store_id)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if product_id is not None:
        query = query.filter(Product.id == product_id)

    rows = (
        query.group_by(Product.id, Product.name, Product.cost_price_cents, ProductCategory.name)
        .having(on_hand > 0)
        .order_by(ProductCategory.name.asc(), Product.name.asc(), Product.id.asc())
        .all()
    )

    items = []
    for row in rows:
        quantity = as_int(row.current_quantity)
        items.append({
            "product_id": row.product_id,
            "product_name": row.product_name,
            "category_name": row.category_name,
            "current_quantity": quantity,
            "cost_price_cents": row.cost_price_cents,
            "value_cents": quantity * (row.cost_price_cents or 0),
        })

    report = {
        "selected_store_name": _store_name(store_id),
        "stock_on_hand": items,
        "total_value_cents": sum(i["value_cents"] for i in items),
    }
    return with_empty_state(report, "stock_on_hand")


def valuation_report(*, store_id: int | None = None) -> dict:
    query, on_hand = _stocked_products(store_id)
    rows = (
        query.group_by(Product.id, Product.name, Product.cost_price_cents, ProductCategory.name)
        .having(on_hand > 0)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )

    items = []
    for row in rows:
        quantity = as_int(row.current_quantity)
        items.append({
            "product_id": row.product_id,
            "product_name": row.product_name,
            "cost_price_cents": row.cost_price_cents,
            "quantity": quantity,
            "item_total_value_cents": quantity * (row.cost_price_cents or 0),
        })

    report = {
        "selected_store_name": _store_name(store_id),
        "valued_items": items,
        "total_inventory_value_cents": sum(i["item_total_value_cents"] for i in items),
    }
    return with_empty_state(report, "valued_items")


def movement_history_report(
    *,
    start_date,
    end_date,
    store_id: int | None = None,
    product_id: int | None = None,
    transtype: str | None = None,
    page: int = 1,
) -> dict:
    start, end = day_bounds(start_date, end_date)
    query = (
        db.session.query(ProductTransaction)
        .options(joinedload(ProductTransaction.product), joinedload(ProductTransaction.store))
        .filter(ProductTransaction.transacted_at >= start, ProductTransaction.transacted_at <= end)
    )
    if store_id is not None:
        query = query.filter(ProductTransaction.store_id == store_id)
    if product_id is not None:
        query = query.filter(ProductTransaction.product_id == product_id)
    if transtype:
        query = query.filter(ProductTransaction.trans_type == transtype)

    query = query.order_by(ProductTransaction.transacted_at.desc(), ProductTransaction.id.desc())
    report = {
        "movements": paginate(query, page=page, per_page=MOVEMENT_PAGE_SIZE, serialize=lambda tx: tx.to_dict()),
    }
    return with_empty_state(report, "movements")


def reorder_level_report(*, store_id: int | None = None, category_id: int | None = None) -> dict:
    """
    One row per (store, product) stock balance whose product has a reorder
    level and whose on-hand quantity is at or below it. Out-of-stock
    balances are included.
    """
    query = (
        db.session.query(
            StockBalance.id.label("balance_id"),
            Store.id.label("store_id"),
            Store.name.label("store_name"),
            Product.id.label("product_id"),
            Product.name.label("product_name"),
            ProductCategory.name.label("category_name"),
            StockBalance.quantity.label("current_quantity"),
            Product.reorder_level.label("reorder_level"),
        )
        .join(Product, StockBalance.product_id == Product.id)
        .join(Store, StockBalance.store_id == Store.id)
        .outerjoin(ProductCategory, Product.category_id == ProductCategory.id)
        .filter(
            Product.reorder_level.isnot(None),
            StockBalance.quantity <= Product.reorder_level,
        )
    )
    if store_id is not None:
        query = query.filter(StockBalance.store_id == store_id)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)

    rows = query.order_by(Product.name.asc(), Store.name.asc(), StockBalance.id.asc()).all()

    items = [
        {
            "store_id": row.store_id,
            "store_name": row.store_name,
            "product_id": row.product_id,
            "product_name": row.product_name,
            "category_name": row.category_name,
            "current_quantity": row.current_quantity,
            "reorder_level": row.reorder_level,
            "shortfall": reorder_shortfall(row.reorder_level, row.current_quantity),
        }
        for row in rows
    ]

    report = {
        "selected_store_name": _store_name(store_id),
        "low_stock_items": items,
    }
    return with_empty_state(report, "low_stock_items")


def expiring_items_report(
    *,
    store_id: int | None = None,
    product_id: int | None = None,
    days_to_expiry: int = 30,
) -> dict:
    current = today()
    threshold = current + timedelta(days=days_to_expiry)

    query = (
        db.session.query(ExpiryBatch)
        .options(joinedload(ExpiryBatch.product), joinedload(ExpiryBatch.store))
        .filter(
            ExpiryBatch.quantity > 0,
            ExpiryBatch.expiry_date >= current,
            ExpiryBatch.expiry_date <= threshold,
        )
    )
    if store_id is not None:
        query = query.filter(ExpiryBatch.store_id == store_id)
    if product_id is not None:
        query = query.filter(ExpiryBatch.product_id == product_id)

    batches = query.order_by(ExpiryBatch.expiry_date.asc(), ExpiryBatch.id.asc()).all()

    items = [
        {
            "id": batch.id,
            "store_id": batch.store_id,
            "store_name": batch.store.name if batch.store else None,
            "product_id": batch.product_id,
            "product_name": batch.product.name if batch.product else None,
            "expiry_date": to_iso_date(batch.expiry_date),
            "days_until_expiry": (batch.expiry_date - current).days,
            "quantity": batch.quantity,
        }
        for batch in batches
    ]

    report = {
        "days_to_expiry_applied": days_to_expiry,
        "expiry_threshold": to_iso_date(threshold),
        "expiring_items": items,
    }
    return with_empty_state(report, "expiring_items")


def slow_moving_report(
    *,
    store_id: int | None = None,
    period_days: int = 90,
    max_sales_qty: int = 5,
) -> dict:
    """
    Stocked products that sold at most max_sales_qty units in the trailing
    period_days. A product with stock and no sales at all always qualifies.
    """
    date_limit = start_of_day(today() - timedelta(days=period_days))

    on_hand = func.sum(StockBalance.quantity)
    stock = db.session.query(
        StockBalance.product_id.label("product_id"),
        on_hand.label("current_stock"),
    )
    if store_id is not None:
        stock = stock.filter(StockBalance.store_id == store_id)
    stock = stock.group_by(StockBalance.product_id).having(on_hand > 0).subquery()

    sold = (
        db.session.query(
            SaleItem.product_id.label("product_id"),
            func.sum(SaleItem.quantity).label("total_sold"),
        )
        .join(Sale, SaleItem.sale_id == Sale.id)
        .filter(Sale.is_voided.is_(False), Sale.transacted_at >= date_limit)
    )
    if store_id is not None:
        sold = sold.filter(Sale.store_id == store_id)
    sold = sold.group_by(SaleItem.product_id).subquery()

    sold_qty = func.coalesce(sold.c.total_sold, 0)
    rows = (
        db.session.query(
            Product.id.label("product_id"),
            Product.name.label("product_name"),
            stock.c.current_stock,
            sold_qty.label("quantity_sold_in_period"),
        )
        .join(stock, stock.c.product_id == Product.id)
        .outerjoin(sold, sold.c.product_id == Product.id)
        .filter(sold_qty <= max_sales_qty)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )

    last_sales = _last_sale_dates([row.product_id for row in rows], store_id)

    items = [
        {
            "product_id": row.product_id,
            "product_name": row.product_name,
            "current_stock": as_int(row.current_stock),
            "quantity_sold_in_period": as_int(row.quantity_sold_in_period),
            "last_sale_date": last_sales.get(row.product_id),
        }
        for row in rows
    ]

    report = {
        "selected_store_name": _store_name(store_id),
        "period_start": to_iso_date(date_limit.date()),
        "slow_moving_items": items,
    }
    return with_empty_state(report, "slow_moving_items")


def _last_sale_dates(product_ids: list[int], store_id: int | None) -> dict[int, str]:
    """Latest non-voided sale date per product, over all time."""
    if not product_ids:
        return {}

    last_sold = func.max(Sale.transacted_at)
    query = (
        db.session.query(SaleItem.product_id, last_sold.label("last_sold_at"))
        .join(Sale, SaleItem.sale_id == Sale.id)
        .filter(Sale.is_voided.is_(False), SaleItem.product_id.in_(product_ids))
    )
    if store_id is not None:
        query = query.filter(Sale.store_id == store_id)

    result = {}
    for product_id, last_sold_at in query.group_by(SaleItem.product_id).all():
        if last_sold_at is not None:
            result[product_id] = to_iso_date(last_sold_at.date())
    return result


def _product_query(category_id: int | None, search: str | None):
    query = db.session.query(Product).options(joinedload(Product.category))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.display_name.ilike(pattern)))
    return query.order_by(Product.name.asc(), Product.id.asc())


def product_list_report(
    *,
    category_id: int | None = None,
    search: str | None = None,
    page: int = 1,
) -> dict:
    query = _product_query(category_id, search)
    report = {
        "products": paginate(query, page=page, per_page=PRODUCT_LIST_PAGE_SIZE, serialize=lambda p: p.to_dict()),
    }
    return with_empty_state(report, "products")


def product_list_csv(*, category_id: int | None = None, search: str | None = None) -> str:
    """Every product matching the filters as CSV text, header row first."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=PRODUCT_EXPORT_COLUMNS, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for product in _product_query(category_id, search):
        writer.writerow(product.to_dict())
    return buffer.getvalue()
