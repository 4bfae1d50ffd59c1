# Overview: Service-layer operations for physical inventory counts; committing resets balances to the counted stock.

"""
Physical inventory (stock count) documents.

A count lists what was found on the shelves of one store. While it is DRAFT
or CHECKED it can be edited; committing it does the following in one
database transaction:

- replaces the expiry batches of every counted product with the counted batches
- posts the difference between the live balance and the counted quantity as an
  ADJUSTMENT movement referenced PI-{id}, leaving the balance at the count
- records a snapshot of the previous and counted quantity per product
"""

from __future__ import annotations

from datetime import date

from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import (
    DocumentStage,
    ExpiryBatch,
    PhysicalInventory,
    PhysicalInventoryItem,
    PhysicalStockSnapshot,
    Product,
    Store,
    TransactionType,
    User,
)
from backoffice.services import inventory_service, lifecycle_service
from backoffice.services.errors import NotFoundError
from backoffice.services.presentation import paginate
from backoffice.time_utils import parse_iso_date, utcnow
from backoffice.validation import (
    MAX_DATE,
    MAX_INT,
    MAX_LINE_QUANTITY,
    MAX_PAGE,
    MAX_PRICE_CENTS,
    MIN_DATE,
    ChoiceField,
    FieldError,
    FilterSet,
    IntField,
    ReferenceField,
    ValidationError,
    parse_int,
    require_fields,
)


PAGE_SIZE = 25
MAX_DESCRIPTION_LENGTH = 255
MAX_BATCH_NO_LENGTH = 64
DEFAULT_DESCRIPTION = "Physical inventory count"

LIST_FILTERS = FilterSet(
    ReferenceField("store_id", Store, "store"),
    ChoiceField("stage", DocumentStage),
    IntField("page", default=1, min_value=1, max_value=MAX_PAGE),
)


def get_count(count_id: int) -> PhysicalInventory:
    if count_id > MAX_INT:
        raise NotFoundError(f"Physical inventory {count_id} not found")
    count = (
        db.session.query(PhysicalInventory)
        .options(selectinload(PhysicalInventory.items), selectinload(PhysicalInventory.snapshots))
        .filter(PhysicalInventory.id == count_id)
        .one_or_none()
    )
    if count is None:
        raise NotFoundError(f"Physical inventory {count_id} not found")
    return count


def list_counts(*, store_id: int | None = None, stage: str | None = None, page: int = 1) -> dict:
    """Newest counts first. Without a stage filter only open (editable) counts are listed."""
    query = db.session.query(PhysicalInventory)
    if store_id is not None:
        query = query.filter(PhysicalInventory.store_id == store_id)
    if stage is not None:
        query = query.filter(PhysicalInventory.stage == stage)
    else:
        query = query.filter(PhysicalInventory.stage.in_([DocumentStage.DRAFT.value, DocumentStage.CHECKED.value]))
    query = query.order_by(PhysicalInventory.counted_at.desc(), PhysicalInventory.id.desc())

    def _summary(count: PhysicalInventory) -> dict:
        data = count.to_dict()
        data["item_count"] = len(data.pop("items"))
        data.pop("snapshots")
        return data

    return paginate(query, page=page, per_page=PAGE_SIZE, serialize=_summary)


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------

def _store_id(payload: dict) -> int:
    try:
        store_id = parse_int(payload.get("store_id"))
    except FieldError as exc:
        raise ValidationError(f"store_id {exc}")
    if db.session.get(Store, store_id) is None:
        raise ValidationError(f"Store {store_id} not found")
    return store_id


def _user_id(payload: dict) -> int | None:
    raw = payload.get("user_id")
    if raw is None or raw == "":
        return None
    try:
        user_id = parse_int(raw)
    except FieldError as exc:
        raise ValidationError(f"user_id {exc}")
    if db.session.get(User, user_id) is None:
        raise ValidationError(f"User {user_id} not found")
    return user_id


def _description(payload: dict) -> str | None:
    description = str(payload.get("description") or "").strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"description may not be longer than {MAX_DESCRIPTION_LENGTH} characters")
    return description or None


def _quantity(item: dict, key: str, index: int, default: int | None = None) -> int:
    raw = item.get(key)
    if raw is None and default is not None:
        return default
    try:
        value = parse_int(raw)
    except FieldError as exc:
        raise ValidationError(f"items[{index}].{key} {exc}")
    if value < 0:
        raise ValidationError(f"items[{index}].{key} must be >= 0")
    if value > MAX_LINE_QUANTITY:
        raise ValidationError(f"items[{index}].{key} may not exceed {MAX_LINE_QUANTITY}")
    return value


def _expiry_date(item: dict, index: int) -> date | None:
    raw = item.get("expiry_date")
    if raw is None or raw == "":
        return None
    try:
        value = parse_iso_date(str(raw))
    except ValueError:
        raise ValidationError(f"items[{index}].expiry_date must be a date in YYYY-MM-DD format")
    if not MIN_DATE <= value <= MAX_DATE:
        raise ValidationError(f"items[{index}].expiry_date is out of range")
    return value


def _build_items(raw_items, store_id: int) -> list[PhysicalInventoryItem]:
    """
    Parse count lines. expected_quantity defaults to the live balance on the
    first line of each product and to zero on further lines for it.
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    items = []
    seen: set[int] = set()
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        try:
            product_id = parse_int(raw.get("product_id"))
        except FieldError as exc:
            raise ValidationError(f"items[{index}].product_id {exc}")
        if db.session.get(Product, product_id) is None:
            raise ValidationError(f"Product {product_id} not found")

        on_hand = 0 if product_id in seen else inventory_service.get_quantity_on_hand(store_id, product_id)
        seen.add(product_id)

        price_cents = _quantity(raw, "price_cents", index, default=0)
        if price_cents > MAX_PRICE_CENTS:
            raise ValidationError(f"items[{index}].price_cents may not exceed {MAX_PRICE_CENTS}")
        batch_no = str(raw.get("batch_no") or "").strip() or None
        if batch_no and len(batch_no) > MAX_BATCH_NO_LENGTH:
            raise ValidationError(f"items[{index}].batch_no may not be longer than {MAX_BATCH_NO_LENGTH} characters")

        items.append(PhysicalInventoryItem(
            product_id=product_id,
            counted_quantity=_quantity(raw, "counted_quantity", index),
            expected_quantity=_quantity(raw, "expected_quantity", index, default=on_hand),
            price_cents=price_cents,
            expiry_date=_expiry_date(raw, index),
            batch_no=batch_no,
        ))
    return items


# ---------------------------------------------------------------------------
# Write paths
# ---------------------------------------------------------------------------

def create_count(payload: dict) -> PhysicalInventory:
    require_fields(payload, "store_id", "items")
    try:
        store_id = _store_id(payload)
        count = PhysicalInventory(
            store_id=store_id,
            description=_description(payload),
            user_id=_user_id(payload),
        )
        count.items = _build_items(payload.get("items"), store_id)
        db.session.add(count)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return count


def update_count(count_id: int, payload: dict) -> PhysicalInventory:
    count = get_count(count_id)
    lifecycle_service.require_editable(count)

    try:
        if "store_id" in payload:
            count.store_id = _store_id(payload)
        if "description" in payload:
            count.description = _description(payload)
        if "items" in payload:
            count.items = _build_items(payload.get("items"), count.store_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return count


def _commit(count: PhysicalInventory) -> None:
    committed_at = utcnow()

    counted: dict[int, int] = {}
    prices: dict[int, int] = {}
    batches: dict[tuple[int, date], int] = {}
    for item in count.items:
        counted[item.product_id] = counted.get(item.product_id, 0) + item.counted_quantity
        prices[item.product_id] = item.price_cents
        if item.expiry_date and item.counted_quantity > 0:
            key = (item.product_id, item.expiry_date)
            batches[key] = batches.get(key, 0) + item.counted_quantity

    db.session.query(ExpiryBatch).filter(
        ExpiryBatch.store_id == count.store_id,
        ExpiryBatch.product_id.in_(list(counted)),
    ).delete(synchronize_session="fetch")
    for (product_id, expiry_date), quantity in batches.items():
        db.session.add(ExpiryBatch(
            store_id=count.store_id,
            product_id=product_id,
            expiry_date=expiry_date,
            quantity=quantity,
        ))

    for product_id, quantity in counted.items():
        previous = inventory_service.get_quantity_on_hand(count.store_id, product_id)
        if quantity != previous:
            inventory_service.apply_stock_movement(
                store_id=count.store_id,
                product_id=product_id,
                quantity_delta=quantity - previous,
                trans_type=TransactionType.ADJUSTMENT,
                unit_price_cents=prices[product_id],
                reference=f"PI-{count.id}",
                description=count.description or DEFAULT_DESCRIPTION,
                user_id=count.user_id,
                transacted_at=committed_at,
            )
        count.snapshots.append(PhysicalStockSnapshot(
            store_id=count.store_id,
            product_id=product_id,
            counted_at=committed_at,
            previous_quantity=previous,
            quantity=quantity,
        ))

    count.committed_at = committed_at


def transition_count(count_id: int, action: str) -> PhysicalInventory:
    """Apply check, cancel or commit. Commit posts the count in the same transaction."""
    count = get_count(count_id)
    try:
        target = lifecycle_service.transition(count, action, lifecycle_service.COUNT_TRANSITIONS)
        if target is DocumentStage.COMPLETED:
            _commit(count)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return count


def delete_count(count_id: int) -> None:
    count = get_count(count_id)
    lifecycle_service.require_deletable(count)
    try:
        db.session.delete(count)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
