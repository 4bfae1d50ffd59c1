# Overview: Service-layer operations for stock adjustments; approval posts balances and the movement log.

from __future__ import annotations

from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import DocumentStage, Product, StockAdjustment, StockAdjustmentItem, Store, TransactionType, User
from backoffice.services import inventory_service, lifecycle_service
from backoffice.services.errors import NotFoundError
from backoffice.time_utils import utcnow
from backoffice.validation import (
    MAX_INT,
    FieldError,
    ValidationError,
    parse_int,
    require_fields,
    validate_line_items,
)


MAX_REASON_LENGTH = 128


def get_adjustment(adjustment_id: int) -> StockAdjustment:
    if adjustment_id > MAX_INT:
        raise NotFoundError(f"Stock adjustment {adjustment_id} not found")
    adjustment = (
        db.session.query(StockAdjustment)
        .options(selectinload(StockAdjustment.items))
        .filter(StockAdjustment.id == adjustment_id)
        .one_or_none()
    )
    if adjustment is None:
        raise NotFoundError(f"Stock adjustment {adjustment_id} not found")
    return adjustment


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


def _reason(payload: dict) -> str:
    reason = str(payload.get("reason") or "").strip()
    if not reason:
        raise ValidationError("reason is required")
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(f"reason may not be longer than {MAX_REASON_LENGTH} characters")
    return reason


def _build_items(raw_items) -> list[StockAdjustmentItem]:
    lines = validate_line_items(raw_items, quantity_key="quantity_delta", allow_negative=True)
    items = []
    for line in lines:
        if db.session.get(Product, line["product_id"]) is None:
            raise ValidationError(f"Product {line['product_id']} not found")
        items.append(StockAdjustmentItem(**line))
    return items


def create_adjustment(payload: dict) -> StockAdjustment:
    """Create a DRAFT adjustment; stock is untouched until it is approved."""
    require_fields(payload, "store_id", "reason", "items")
    try:
        adjustment = StockAdjustment(
            store_id=_store_id(payload),
            reason=_reason(payload),
            remarks=payload.get("remarks"),
            user_id=_user_id(payload),
        )
        adjustment.items = _build_items(payload.get("items"))
        db.session.add(adjustment)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return adjustment


def update_adjustment(adjustment_id: int, payload: dict) -> StockAdjustment:
    adjustment = get_adjustment(adjustment_id)
    lifecycle_service.require_editable(adjustment)

    try:
        if "store_id" in payload:
            adjustment.store_id = _store_id(payload)
        if "reason" in payload:
            adjustment.reason = _reason(payload)
        if "remarks" in payload:
            adjustment.remarks = payload.get("remarks")
        if "items" in payload:
            adjustment.items = _build_items(payload.get("items"))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return adjustment


def _check_net_stock(adjustment: StockAdjustment) -> None:
    """Reject the adjustment when any product's net delta would leave its balance negative."""
    net: dict[int, int] = {}
    for item in adjustment.items:
        net[item.product_id] = net.get(item.product_id, 0) + item.quantity_delta
    for product_id, delta in net.items():
        on_hand = inventory_service.get_quantity_on_hand(adjustment.store_id, product_id)
        if on_hand + delta < 0:
            raise ValidationError(
                f"adjustment would make on-hand negative for product {product_id} "
                f"in store {adjustment.store_id}"
            )


def _post(adjustment: StockAdjustment) -> None:
    _check_net_stock(adjustment)
    # Increases go first so no intermediate balance dips below the final one
    for item in sorted(adjustment.items, key=lambda i: i.quantity_delta, reverse=True):
        inventory_service.apply_stock_movement(
            store_id=adjustment.store_id,
            product_id=item.product_id,
            quantity_delta=item.quantity_delta,
            trans_type=TransactionType.ADJUSTMENT,
            unit_price_cents=item.price_cents,
            reference=f"ADJ-{adjustment.id}",
            description=adjustment.reason,
            user_id=adjustment.user_id,
        )
    adjustment.posted_at = utcnow()


def transition_adjustment(adjustment_id: int, action: str) -> StockAdjustment:
    """
    Apply a named stage action. Approving posts every item to the stock
    balances and the movement log in the same transaction as the stage change.
    """
    adjustment = get_adjustment(adjustment_id)
    try:
        target = lifecycle_service.transition(adjustment, action)
        if target is DocumentStage.APPROVED:
            _post(adjustment)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return adjustment


def delete_adjustment(adjustment_id: int) -> None:
    adjustment = get_adjustment(adjustment_id)
    lifecycle_service.require_deletable(adjustment)
    try:
        db.session.delete(adjustment)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
