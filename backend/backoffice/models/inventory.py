from __future__ import annotations

from ..extensions import db
from .enums import DocumentStage, EDITABLE_STAGES
from backoffice.time_utils import to_utc_z, utcnow


class StockBalance(db.Model):
    """
    Current on-hand quantity per (store, product).

    This snapshot is the source of truth for on-hand quantities; it is
    never rebuilt by replaying ProductTransaction rows.
    """
    __tablename__ = "stock_balances"
    __table_args__ = (
        db.UniqueConstraint("store_id", "product_id", name="uq_stock_balances_store_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    store = db.relationship("Store")
    product = db.relationship("Product")


class ProductTransaction(db.Model):
    """
    Append-only stock movement log.

    Rows are written once and never mutated; models/totals.py rejects
    updates and deletes of persisted rows.
    """
    __tablename__ = "product_transactions"
    __table_args__ = (
        db.Index("ix_prodtx_store_product_transacted", "store_id", "product_id", "transacted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    transacted_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    trans_type = db.Column(db.String(32), nullable=False, index=True)

    quantity_in = db.Column(db.Integer, nullable=False, default=0)
    quantity_out = db.Column(db.Integer, nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=True)

    reference = db.Column(db.String(64), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    store = db.relationship("Store")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "store_name": self.store.name if self.store else None,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "transacted_at": to_utc_z(self.transacted_at),
            "trans_type": self.trans_type,
            "quantity_in": self.quantity_in,
            "quantity_out": self.quantity_out,
            "unit_price_cents": self.unit_price_cents,
            "reference": self.reference,
            "description": self.description,
        }


class ExpiryBatch(db.Model):
    """Remaining quantity of a product at a store for one expiry date."""
    __tablename__ = "expiry_batches"
    __table_args__ = (
        db.UniqueConstraint("store_id", "product_id", "expiry_date", name="uq_expiry_batches_store_product_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    expiry_date = db.Column(db.Date, nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    store = db.relationship("Store")
    product = db.relationship("Product")


class StockAdjustment(db.Model):
    """
    Manual stock correction document.

    Lines carry a signed quantity_delta. Stock balances only change when the
    adjustment is approved (see services/adjustment_service.py).
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    reason = db.Column(db.String(128), nullable=False)
    stage = db.Column(db.String(16), nullable=False, default=DocumentStage.DRAFT.value, index=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    remarks = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    transacted_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    posted_at = db.Column(db.DateTime, nullable=True)

    store = db.relationship("Store")
    items = db.relationship(
        "StockAdjustmentItem",
        back_populates="adjustment",
        cascade="all, delete-orphan",
        order_by="StockAdjustmentItem.id",
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
            "store_id": self.store_id,
            "reason": self.reason,
            "stage": self.stage,
            "total_cents": self.total_cents,
            "remarks": self.remarks,
            "transacted_at": to_utc_z(self.transacted_at),
            "posted_at": to_utc_z(self.posted_at) if self.posted_at else None,
            "items": [item.to_dict() for item in self.items],
        }


class StockAdjustmentItem(db.Model):
    __tablename__ = "stock_adjustment_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    adjustment_id = db.Column(db.Integer, db.ForeignKey("stock_adjustments.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    adjustment = db.relationship("StockAdjustment", back_populates="items")
    product = db.relationship("Product")

    @property
    def subtotal_cents(self) -> int:
        return abs(self.quantity_delta or 0) * (self.price_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity_delta": self.quantity_delta,
            "price_cents": self.price_cents,
            "subtotal_cents": self.subtotal_cents,
        }


class PhysicalInventory(db.Model):
    """
    Stock count for one store.

    Lines record what was counted. Committing the count resets the store's
    balances and expiry batches for the counted products to the counted
    quantities (see services/physical_inventory_service.py).
    """
    __tablename__ = "physical_inventories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=True)
    stage = db.Column(db.String(16), nullable=False, default=DocumentStage.DRAFT.value, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    counted_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    committed_at = db.Column(db.DateTime, nullable=True)

    store = db.relationship("Store")
    items = db.relationship(
        "PhysicalInventoryItem",
        back_populates="physical_inventory",
        cascade="all, delete-orphan",
        order_by="PhysicalInventoryItem.id",
    )
    snapshots = db.relationship(
        "PhysicalStockSnapshot",
        back_populates="physical_inventory",
        cascade="all, delete-orphan",
        order_by="PhysicalStockSnapshot.product_id",
    )

    @property
    def stage_enum(self) -> DocumentStage:
        return DocumentStage(self.stage)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "store_name": self.store.name if self.store else None,
            "description": self.description,
            "stage": self.stage,
            "counted_at": to_utc_z(self.counted_at),
            "committed_at": to_utc_z(self.committed_at) if self.committed_at else None,
            "items": [item.to_dict() for item in self.items],
            "snapshots": [snapshot.to_dict() for snapshot in self.snapshots],
        }


class PhysicalInventoryItem(db.Model):
    __tablename__ = "physical_inventory_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    physical_inventory_id = db.Column(
        db.Integer, db.ForeignKey("physical_inventories.id"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    counted_quantity = db.Column(db.Integer, nullable=False, default=0)
    # On-hand quantity the counter was shown; informational only
    expected_quantity = db.Column(db.Integer, nullable=False, default=0)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    expiry_date = db.Column(db.Date, nullable=True)
    batch_no = db.Column(db.String(64), nullable=True)

    physical_inventory = db.relationship("PhysicalInventory", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "counted_quantity": self.counted_quantity,
            "expected_quantity": self.expected_quantity,
            "variance": self.counted_quantity - self.expected_quantity,
            "price_cents": self.price_cents,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "batch_no": self.batch_no,
        }


class PhysicalStockSnapshot(db.Model):
    """Per-product result of a committed count: the balance before and the counted quantity."""
    __tablename__ = "physical_stock_snapshots"
    __table_args__ = (
        db.UniqueConstraint("physical_inventory_id", "product_id", name="uq_physical_snapshots_count_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    physical_inventory_id = db.Column(
        db.Integer, db.ForeignKey("physical_inventories.id"), nullable=False, index=True
    )
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    counted_at = db.Column(db.DateTime, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    physical_inventory = db.relationship("PhysicalInventory", back_populates="snapshots")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "counted_at": to_utc_z(self.counted_at),
            "previous_quantity": self.previous_quantity,
            "quantity": self.quantity,
        }
