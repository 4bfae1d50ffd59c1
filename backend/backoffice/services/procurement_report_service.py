# Overview: Service-layer operations for procurement reports; purchase orders, suppliers and spend.

from __future__ import annotations

from sqlalchemy import and_, func
from sqlalchemy.orm import contains_eager, joinedload, selectinload

from backoffice.extensions import db
from backoffice.models import (
    COMMITTED_STAGES,
    DocumentStage,
    Product,
    ProductCategory,
    Purchase,
    PurchaseItem,
    Store,
    Supplier,
)
from backoffice.models.parties import person_or_company_name
from backoffice.services.presentation import as_int, paginate, percentage_of, with_empty_state
from backoffice.services.report_query import UNCATEGORIZED
from backoffice.time_utils import day_bounds, to_utc_z, today
from backoffice.validation import (
    MAX_PAGE,
    ChoiceField,
    DateField,
    FilterSet,
    IntField,
    ReferenceField,
    months_ago,
)


PAGE_SIZE = 25
SPEND_GROUPINGS = ("supplier", "category", "product")

# Sorted so the IN list renders identically every time
_COMMITTED = sorted(stage.value for stage in COMMITTED_STAGES)


PURCHASE_ORDER_FILTERS = FilterSet(
    DateField("start_date", default=months_ago(1)),
    DateField("end_date", default=today),
    ReferenceField("supplier_id", Supplier, "supplier"),
    ReferenceField("store_id", Store, "store"),
    ChoiceField("stage", DocumentStage),
    IntField("page", default=1, min_value=1, max_value=MAX_PAGE),
    date_ranges=[("start_date", "end_date")],
)

SUPPLIER_PERFORMANCE_FILTERS = FilterSet(
    DateField("start_date", default=months_ago(3)),
    DateField("end_date", default=today),
    ReferenceField("supplier_id", Supplier, "supplier"),
    IntField("page", default=1, min_value=1, max_value=MAX_PAGE),
    date_ranges=[("start_date", "end_date")],
)

ITEM_PURCHASE_FILTERS = FilterSet(
    DateField("start_date", default=months_ago(3)),
    DateField("end_date", default=today),
    ReferenceField("product_id", Product, "product"),
    ReferenceField("supplier_id", Supplier, "supplier"),
    IntField("page", default=1, min_value=1, max_value=MAX_PAGE),
    date_ranges=[("start_date", "end_date")],
)

SPEND_FILTERS = FilterSet(
    DateField("start_date", default=months_ago(6)),
    DateField("end_date", default=today),
    ReferenceField("supplier_id", Supplier, "supplier"),
    ReferenceField("category_id", ProductCategory, "category"),
    ChoiceField("group_by", SPEND_GROUPINGS, default="supplier"),
    date_ranges=[("start_date", "end_date")],
)


def _serialize_purchase(purchase: Purchase) -> dict:
    return {
        "id": purchase.id,
        "transacted_at": to_utc_z(purchase.transacted_at),
        "supplier_id": purchase.supplier_id,
        "supplier_name": purchase.supplier.display_name if purchase.supplier else None,
        "store_id": purchase.store_id,
        "store_name": purchase.store.name if purchase.store else None,
        "stage": purchase.stage,
        "stage_label": purchase.stage_enum.label,
        "total_cents": purchase.total_cents,
        "item_count": len(purchase.items),
    }


def purchase_order_history_report(
    *,
    start_date,
    end_date,
    supplier_id: int | None = None,
    store_id: int | None = None,
    stage: str | None = None,
    page: int = 1,
) -> dict:
    start, end = day_bounds(start_date, end_date)
    query = (
        db.session.query(Purchase)
        .options(
            joinedload(Purchase.supplier),
            joinedload(Purchase.store),
            selectinload(Purchase.items),
        )
        .filter(Purchase.transacted_at >= start, Purchase.transacted_at <= end)
    )
    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)
    if store_id is not None:
        query = query.filter(Purchase.store_id == store_id)
    if stage:
        query = query.filter(Purchase.stage == stage)

    query = query.order_by(Purchase.transacted_at.desc(), Purchase.id.desc())
    report = {
        "purchase_orders": paginate(query, page=page, per_page=PAGE_SIZE, serialize=_serialize_purchase),
    }
    return with_empty_state(report, "purchase_orders")


def supplier_performance_report(
    *,
    start_date,
    end_date,
    supplier_id: int | None = None,
    page: int = 1,
) -> dict:
    """Committed purchase orders per supplier; suppliers without orders show zero."""
    start, end = day_bounds(start_date, end_date)

    po_count = func.count(Purchase.id)
    po_total = func.coalesce(func.sum(Purchase.total_cents), 0)
    query = (
        db.session.query(
            Supplier,
            po_count.label("purchase_orders_count"),
            po_total.label("purchase_orders_total_cents"),
        )
        .outerjoin(
            Purchase,
            and_(
                Purchase.supplier_id == Supplier.id,
                Purchase.transacted_at >= start,
                Purchase.transacted_at <= end,
                Purchase.stage.in_(_COMMITTED),
            ),
        )
    )
    if supplier_id is not None:
        query = query.filter(Supplier.id == supplier_id)

    query = query.group_by(Supplier.id).order_by(po_count.desc(), Supplier.id.asc())

    def serialize(row) -> dict:
        supplier, count, total = row
        return {
            "supplier_id": supplier.id,
            "supplier_name": supplier.display_name,
            "purchase_orders_count": as_int(count),
            "purchase_orders_total_cents": as_int(total),
        }

    report = {
        "suppliers_performance": paginate(query, page=page, per_page=PAGE_SIZE, serialize=serialize),
    }
    return with_empty_state(report, "suppliers_performance")


def item_purchase_history_report(
    *,
    start_date,
    end_date,
    product_id: int | None = None,
    supplier_id: int | None = None,
    page: int = 1,
) -> dict:
    start, end = day_bounds(start_date, end_date)
    query = (
        db.session.query(PurchaseItem)
        .join(Purchase, PurchaseItem.purchase_id == Purchase.id)
        .options(
            contains_eager(PurchaseItem.purchase).joinedload(Purchase.supplier),
            joinedload(PurchaseItem.product),
        )
        .filter(
            Purchase.transacted_at >= start,
            Purchase.transacted_at <= end,
            Purchase.stage.in_(_COMMITTED),
        )
    )
    if product_id is not None:
        query = query.filter(PurchaseItem.product_id == product_id)
    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)

    query = query.order_by(Purchase.transacted_at.desc(), Purchase.id.desc(), PurchaseItem.id.asc())

    def serialize(item: PurchaseItem) -> dict:
        purchase = item.purchase
        return {
            "id": item.id,
            "purchase_id": purchase.id,
            "transacted_at": to_utc_z(purchase.transacted_at),
            "stage": purchase.stage,
            "supplier_name": purchase.supplier.display_name if purchase.supplier else None,
            "product_id": item.product_id,
            "product_name": item.product.name if item.product else None,
            "quantity": item.quantity,
            "price_cents": item.price_cents,
            "subtotal_cents": item.subtotal_cents,
        }

    report = {
        "item_history": paginate(query, page=page, per_page=PAGE_SIZE, serialize=serialize),
    }
    return with_empty_state(report, "item_history")


def spend_analysis_report(
    *,
    start_date,
    end_date,
    supplier_id: int | None = None,
    category_id: int | None = None,
    group_by: str = "supplier",
) -> dict:
    start, end = day_bounds(start_date, end_date)
    total_spend = func.coalesce(func.sum(PurchaseItem.quantity * PurchaseItem.price_cents), 0)

    if group_by == "supplier":
        entity_columns = (
            Supplier.id.label("entity_id"),
            Supplier.company_name.label("company_name"),
            Supplier.first_name.label("first_name"),
            Supplier.surname.label("surname"),
        )
        group_columns = (Supplier.id, Supplier.company_name, Supplier.first_name, Supplier.surname)
    elif group_by == "category":
        entity_columns = (
            ProductCategory.id.label("entity_id"),
            func.coalesce(ProductCategory.name, UNCATEGORIZED).label("entity_name"),
        )
        group_columns = (ProductCategory.id, ProductCategory.name)
    else:
        entity_columns = (Product.id.label("entity_id"), Product.name.label("entity_name"))
        group_columns = (Product.id, Product.name)

    query = (
        db.session.query(*entity_columns, total_spend.label("total_spend"))
        .select_from(PurchaseItem)
        .join(Purchase, PurchaseItem.purchase_id == Purchase.id)
        .join(Product, PurchaseItem.product_id == Product.id)
        .filter(
            Purchase.transacted_at >= start,
            Purchase.transacted_at <= end,
            Purchase.stage.in_(_COMMITTED),
        )
    )
    if group_by == "supplier":
        query = query.join(Supplier, Purchase.supplier_id == Supplier.id)
    elif group_by == "category":
        query = query.outerjoin(ProductCategory, Product.category_id == ProductCategory.id)

    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)

    rows = query.group_by(*group_columns).order_by(total_spend.desc(), group_columns[0].asc()).all()

    overall = sum(as_int(row.total_spend) for row in rows)
    items = []
    for row in rows:
        if group_by == "supplier":
            name = person_or_company_name(row.company_name, row.first_name, row.surname)
        else:
            name = row.entity_name
        spend = as_int(row.total_spend)
        items.append({
            "entity_id": row.entity_id,
            "entity_name": name,
            "total_spend_cents": spend,
            "share_of_spend": percentage_of(spend, overall),
        })

    report = {
        "group_by_selected": group_by,
        "spend_analysis": items,
        "overall_spend_cents": overall,
    }
    return with_empty_state(report, "spend_analysis")
