from __future__ import annotations

from ..extensions import db
from .enums import DocumentStage, EDITABLE_STAGES
from backoffice.time_utils import to_utc_z, utcnow


class Purchase(db.Model):
    """
    Purchase order raised against a supplier.

    total_cents is recomputed from the items whenever the order or any of
    its items is flushed.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_stage_transacted", "stage", "transacted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    transacted_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    stage = db.Column(db.String(16), nullable=False, default=DocumentStage.DRAFT.value)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    remarks = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy=True))
    store = db.relationship("Store")
    items = db.relationship(
        "PurchaseItem",
        back_populates="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseItem.id",
    )

    @property
    def stage_enum(self) -> DocumentStage:
        return DocumentStage(self.stage)

    @property
    def is_editable(self) -> bool:
        return self.stage_enum in EDITABLE_STAGES

    def recalculate_total(self, skip=()) -> int:
        self.total_cents = sum(item.subtotal_cents for item in self.items if item not in skip)
        return self.total_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.display_name if self.supplier else None,
            "store_id": self.store_id,
            "transacted_at": to_utc_z(self.transacted_at),
            "stage": self.stage,
            "total_cents": self.total_cents,
            "remarks": self.remarks,
            "items": [item.to_dict() for item in self.items],
        }


class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)

    purchase = db.relationship("Purchase", back_populates="items")
    product = db.relationship("Product")

    @property
    def subtotal_cents(self) -> int:
        return (self.quantity or 0) * (self.price_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "subtotal_cents": self.subtotal_cents,
        }
