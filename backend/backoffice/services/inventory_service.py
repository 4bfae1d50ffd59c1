# Overview: Service-layer operations for stock balances; applies movements and appends the transaction log.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import ProductTransaction, StockBalance, TransactionType
from backoffice.time_utils import utcnow
from backoffice.validation import ValidationError


def get_quantity_on_hand(store_id: int, product_id: int) -> int:
    quantity = (
        db.session.query(StockBalance.quantity)
        .filter_by(store_id=store_id, product_id=product_id)
        .scalar()
    )
    return int(quantity or 0)


def _get_or_create_balance(store_id: int, product_id: int) -> StockBalance:
    balance = (
        db.session.query(StockBalance)
        .filter_by(store_id=store_id, product_id=product_id)
        .one_or_none()
    )
    if balance is None:
        balance = StockBalance(store_id=store_id, product_id=product_id, quantity=0)
        db.session.add(balance)
    return balance


def apply_stock_movement(
    *,
    store_id: int,
    product_id: int,
    quantity_delta: int,
    trans_type: TransactionType,
    unit_price_cents: int | None = None,
    reference: str | None = None,
    description: str | None = None,
    user_id: int | None = None,
    transacted_at: datetime | None = None,
) -> ProductTransaction:
    """Change a stock balance and log the movement. No commit.

    The balance is the on-hand source of truth; the log row is written once
    and never touched again.
    """
    if quantity_delta == 0:
        raise ValidationError("quantity_delta must be non-zero")

    balance = _get_or_create_balance(store_id, product_id)
    current = balance.quantity or 0
    if current + quantity_delta < 0:
        raise ValidationError(
            f"movement would make on-hand negative for product {product_id} in store {store_id}"
        )
    balance.quantity = current + quantity_delta

    tx = ProductTransaction(
        store_id=store_id,
        product_id=product_id,
        transacted_at=transacted_at or utcnow(),
        trans_type=TransactionType(trans_type).value,
        quantity_in=quantity_delta if quantity_delta > 0 else 0,
        quantity_out=-quantity_delta if quantity_delta < 0 else 0,
        unit_price_cents=unit_price_cents,
        reference=reference,
        description=description,
        user_id=user_id,
    )
    db.session.add(tx)
    db.session.flush()
    return tx
