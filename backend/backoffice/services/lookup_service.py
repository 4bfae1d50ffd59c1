# Overview: Dropdown lookups (stores, categories, products, ...) attached to report payloads.

from __future__ import annotations

from backoffice.extensions import db
from backoffice.models import (
    Customer,
    PaymentType,
    Product,
    ProductCategory,
    ProductTransaction,
    Store,
    Supplier,
    User,
    DocumentStage,
    TERMINAL_STAGES,
)


def stores() -> list[dict]:
    rows = db.session.query(Store.id, Store.name).order_by(Store.name.asc(), Store.id.asc()).all()
    return [{"id": r.id, "name": r.name} for r in rows]


def categories() -> list[dict]:
    rows = db.session.query(ProductCategory.id, ProductCategory.name).order_by(
        ProductCategory.name.asc(), ProductCategory.id.asc()
    ).all()
    return [{"id": r.id, "name": r.name} for r in rows]


def products() -> list[dict]:
    rows = db.session.query(Product.id, Product.name).order_by(Product.name.asc(), Product.id.asc()).all()
    return [{"id": r.id, "name": r.name} for r in rows]


def users() -> list[dict]:
    rows = db.session.query(User.id, User.name).order_by(User.name.asc(), User.id.asc()).all()
    return [{"id": r.id, "name": r.name} for r in rows]


def customers() -> list[dict]:
    rows = db.session.query(Customer).order_by(
        Customer.company_name.asc(), Customer.first_name.asc(), Customer.id.asc()
    ).all()
    return [{"id": c.id, "display_name": c.display_name} for c in rows]


def suppliers() -> list[dict]:
    rows = db.session.query(Supplier).order_by(
        Supplier.company_name.asc(), Supplier.first_name.asc(), Supplier.id.asc()
    ).all()
    return [{"id": s.id, "display_name": s.display_name} for s in rows]


def payment_types(active_only: bool = True) -> list[dict]:
    query = db.session.query(PaymentType)
    if active_only:
        query = query.filter(PaymentType.is_active.is_(True))
    return [p.to_dict() for p in query.order_by(PaymentType.name.asc(), PaymentType.id.asc())]


def transaction_types() -> list[str]:
    rows = db.session.query(ProductTransaction.trans_type).distinct().order_by(
        ProductTransaction.trans_type.asc()
    ).all()
    return [r.trans_type for r in rows]


def stages() -> list[dict]:
    return [{"value": s.value, "label": s.label, "terminal": s in TERMINAL_STAGES} for s in DocumentStage]


_LOOKUPS = {
    "stores": stores,
    "categories": categories,
    "products": products,
    "users": users,
    "customers": customers,
    "suppliers": suppliers,
    "payment_types": payment_types,
    "transaction_types": transaction_types,
    "stages": stages,
}


def lookups(*names: str) -> dict:
    """Build the lookups block of a report payload, e.g. lookups("stores", "users")."""
    return {name: _LOOKUPS[name]() for name in names}
