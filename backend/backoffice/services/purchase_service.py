# Overview: Service-layer operations for purchase orders; create, edit, stage transitions and delete.

from __future__ import annotations

from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Product, Purchase, PurchaseItem, Store, Supplier, User
from backoffice.services import lifecycle_service
from backoffice.services.errors import NotFoundError
from backoffice.time_utils import parse_iso_date, start_of_day
from backoffice.validation import (
    MAX_INT,
    FieldError,
    ValidationError,
    parse_int,
    require_fields,
    validate_line_items,
)


def get_purchase(purchase_id: int) -> Purchase:
    if purchase_id > MAX_INT:
        raise NotFoundError(f"Purchase {purchase_id} not found")
    purchase = (
        db.session.query(Purchase)
        .options(selectinload(Purchase.items))
        .filter(Purchase.id == purchase_id)
        .one_or_none()
    )
    if purchase is None:
        raise NotFoundError(f"Purchase {purchase_id} not found")
    return purchase


def _reference_id(payload: dict, key: str, model, label: str, required: bool) -> int | None:
    raw = payload.get(key)
    if raw is None or raw == "":
        if required:
            raise ValidationError(f"{key} is required")
        return None
    try:
        value = parse_int(raw)
    except FieldError as exc:
        raise ValidationError(f"{key} {exc}")
    if db.session.get(model, value) is None:
        raise ValidationError(f"{label} {value} not found")
    return value


def _build_items(raw_items) -> list[PurchaseItem]:
    lines = validate_line_items(raw_items)
    items = []
    for line in lines:
        if db.session.get(Product, line["product_id"]) is None:
            raise ValidationError(f"Product {line['product_id']} not found")
        items.append(PurchaseItem(**line))
    return items


def _transacted_at(payload: dict):
    raw = payload.get("transacted_on")
    if not raw:
        return None
    try:
        return start_of_day(parse_iso_date(raw))
    except ValueError:
        raise ValidationError("transacted_on must be a date in YYYY-MM-DD format")


def create_purchase(payload: dict) -> Purchase:
    """Create a DRAFT purchase order with its items in one transaction."""
    require_fields(payload, "supplier_id", "items")
    try:
        purchase = Purchase(
            supplier_id=_reference_id(payload, "supplier_id", Supplier, "Supplier", required=True),
            store_id=_reference_id(payload, "store_id", Store, "Store", required=False),
            remarks=payload.get("remarks"),
            user_id=_reference_id(payload, "user_id", User, "User", required=False),
        )
        transacted_at = _transacted_at(payload)
        if transacted_at is not None:
            purchase.transacted_at = transacted_at
        purchase.items = _build_items(payload.get("items"))
        db.session.add(purchase)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return purchase


def update_purchase(purchase_id: int, payload: dict) -> Purchase:
    """Edit header fields and, when `items` is given, replace all items."""
    purchase = get_purchase(purchase_id)
    lifecycle_service.require_editable(purchase)

    try:
        if "supplier_id" in payload:
            purchase.supplier_id = _reference_id(payload, "supplier_id", Supplier, "Supplier", required=True)
        if "store_id" in payload:
            purchase.store_id = _reference_id(payload, "store_id", Store, "Store", required=False)
        if "remarks" in payload:
            purchase.remarks = payload.get("remarks")
        transacted_at = _transacted_at(payload)
        if transacted_at is not None:
            purchase.transacted_at = transacted_at
        if "items" in payload:
            purchase.items = _build_items(payload.get("items"))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return purchase


def transition_purchase(purchase_id: int, action: str) -> Purchase:
    purchase = get_purchase(purchase_id)
    try:
        lifecycle_service.transition(purchase, action)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return purchase


def delete_purchase(purchase_id: int) -> None:
    purchase = get_purchase(purchase_id)
    lifecycle_service.require_deletable(purchase)
    try:
        db.session.delete(purchase)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
