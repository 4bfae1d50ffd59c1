"""
Session hooks that keep derived document totals honest.

- Sale.total_due_cents, Purchase.total_cents and StockAdjustment.total_cents
  are recomputed from their items whenever the document or one of its items
  is new, dirty or deleted in a flush.
- ProductTransaction rows are append-only.
"""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import Session

from .inventory import ProductTransaction, StockAdjustment, StockAdjustmentItem
from .procurement import Purchase, PurchaseItem
from .sales import Sale, SaleItem


# item class -> name of the relationship pointing back at its document
_ITEM_PARENTS = {
    SaleItem: "sale",
    PurchaseItem: "purchase",
    StockAdjustmentItem: "adjustment",
}
_DOCUMENTS = (Sale, Purchase, StockAdjustment)


class ImmutableRecordError(RuntimeError):
    """Raised when code tries to change an append-only record."""


@event.listens_for(Session, "before_flush")
def _recalculate_document_totals(session, flush_context, instances):
    touched = []
    for obj in list(session.new) + list(session.dirty) + list(session.deleted):
        if isinstance(obj, _DOCUMENTS):
            document = obj
        elif type(obj) in _ITEM_PARENTS:
            document = getattr(obj, _ITEM_PARENTS[type(obj)])
        else:
            continue
        if document is None or document in session.deleted:
            continue
        if not any(document is seen for seen in touched):
            touched.append(document)

    for document in touched:
        document.recalculate_total(skip=session.deleted)


@event.listens_for(ProductTransaction, "before_update")
def _reject_transaction_update(mapper, connection, target):
    raise ImmutableRecordError(f"Product transaction {target.id} is immutable")


@event.listens_for(ProductTransaction, "before_delete")
def _reject_transaction_delete(mapper, connection, target):
    raise ImmutableRecordError(f"Product transaction {target.id} cannot be deleted")
