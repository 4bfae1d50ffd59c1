from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Point-of-sale receipt.

    total_due_cents always equals the sum of item subtotals (kept in sync on
    flush, see models/totals.py). Voided sales stay in the table for audit but
    are excluded from every revenue aggregation.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_voided_transacted", "is_voided", "transacted_at"),
        db.Index("ix_sales_store_transacted", "store_id", "transacted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    transacted_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    receipt_no = db.Column(db.String(64), nullable=True)
    invoice_no = db.Column(db.String(64), nullable=True)

    # All amounts in cents
    total_due_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_paid_cents = db.Column(db.Integer, nullable=False, default=0)

    # Void audit trail
    is_voided = db.Column(db.Boolean, nullable=False, default=False)
    voided_at = db.Column(db.DateTime, nullable=True)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    store = db.relationship("Store")
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    cashier = db.relationship("User", foreign_keys=[user_id])
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )

    def recalculate_total(self, skip=()) -> int:
        self.total_due_cents = sum(item.subtotal_cents for item in self.items if item not in skip)
        return self.total_due_cents

    @property
    def items_summary(self) -> str:
        return ", ".join(
            f"{item.product.name if item.product else 'Unknown Item'} (Qty: {item.quantity})"
            for item in self.items
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "transacted_at": to_utc_z(self.transacted_at),
            "receipt_no": self.receipt_no,
            "invoice_no": self.invoice_no,
            "total_due_cents": self.total_due_cents,
            "discount_cents": self.discount_cents,
            "total_paid_cents": self.total_paid_cents,
            "is_voided": self.is_voided,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
        }


class SaleItem(db.Model):
    """Line on a sale; price_cents is the unit price at time of sale."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.Index("ix_sale_items_product_sale", "product_id", "sale_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    @property
    def subtotal_cents(self) -> int:
        return (self.quantity or 0) * (self.price_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.product.name if self.product else "Unknown Item",
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class PaymentType(db.Model):
    """Runtime-configured tender type (Cash, Card, Mobile Money, ...)."""
    __tablename__ = "payment_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "is_active": self.is_active}


class Collection(db.Model):
    """
    Receipt-level money collection.

    One CollectionLine per tender used, so any number of payment types can be
    configured without schema changes.
    """
    __tablename__ = "collections"
    __table_args__ = (
        db.Index("ix_collections_refunded_transacted", "is_refunded", "transacted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    transacted_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    receipt_no = db.Column(db.String(64), nullable=True)

    is_refunded = db.Column(db.Boolean, nullable=False, default=False)
    refunded_at = db.Column(db.DateTime, nullable=True)

    lines = db.relationship(
        "CollectionLine",
        back_populates="collection",
        cascade="all, delete-orphan",
        order_by="CollectionLine.id",
    )

    @property
    def total_cents(self) -> int:
        return sum(line.amount_cents for line in self.lines)


class CollectionLine(db.Model):
    __tablename__ = "collection_lines"
    __table_args__ = (
        db.UniqueConstraint("collection_id", "payment_type_id", name="uq_collection_lines_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    collection_id = db.Column(db.Integer, db.ForeignKey("collections.id"), nullable=False, index=True)
    payment_type_id = db.Column(db.Integer, db.ForeignKey("payment_types.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False, default=0)

    collection = db.relationship("Collection", back_populates="lines")
    payment_type = db.relationship("PaymentType")
