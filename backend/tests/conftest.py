"""
Pytest fixtures for back-office backend tests.

Provides an in-memory database, the test client, reference data fixtures
and small builders for sales, collections, stock and purchases.
"""

from datetime import datetime, timedelta

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import (
    Collection,
    CollectionLine,
    Customer,
    PaymentType,
    Product,
    ProductCategory,
    Purchase,
    PurchaseItem,
    Sale,
    SaleItem,
    StockBalance,
    Store,
    Supplier,
    User,
)
from backoffice.time_utils import today


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SLOW_MOVING_PERIOD_DAYS': 90,
        'SLOW_MOVING_MAX_QTY': 5,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def store(db_session):
    store = Store(name="Main Street", code="MAIN")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def other_store(db_session):
    store = Store(name="Harbour Mall", code="HARB")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def cashier(db_session):
    user = User(name="Ama Mensah")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(customer_type="individual", first_name="Efua", surname="Owusu")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(company_name="Fresh Foods Ltd")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def beverages(db_session):
    category = ProductCategory(name="Beverages")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def water(db_session, beverages):
    product = Product(
        category_id=beverages.id,
        name="Mineral Water",
        cost_price_cents=40,
        price_cents=100,
        reorder_level=10,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def bread(db_session):
    """Product without a category."""
    product = Product(name="White Bread", cost_price_cents=90, price_cents=150)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def cash(db_session):
    payment_type = PaymentType(name="Cash")
    db_session.add(payment_type)
    db_session.commit()
    return payment_type


@pytest.fixture(scope='function')
def card(db_session):
    payment_type = PaymentType(name="Card")
    db_session.add(payment_type)
    db_session.commit()
    return payment_type


def at(day_offset: int = 0, hour: int = 12) -> datetime:
    """Naive UTC timestamp `day_offset` days from today at `hour`:00."""
    d = today() + timedelta(days=day_offset)
    return datetime(d.year, d.month, d.day, hour, 0, 0)


def make_sale(store, items, *, when=None, user=None, customer=None, discount=0, paid=None, voided=False, receipt_no=None):
    """
    Create a sale. `items` is a list of (product, quantity, price_cents).
    total_paid defaults to total_due - discount.
    """
    sale = Sale(
        store_id=store.id,
        user_id=user.id if user else None,
        customer_id=customer.id if customer else None,
        transacted_at=when or at(),
        receipt_no=receipt_no,
        discount_cents=discount,
        is_voided=voided,
    )
    sale.items = [SaleItem(product_id=p.id, quantity=q, price_cents=price) for p, q, price in items]
    db.session.add(sale)
    db.session.flush()
    sale.total_paid_cents = sale.total_due_cents - discount if paid is None else paid
    db.session.commit()
    return sale


def make_collection(lines, *, store=None, user=None, when=None, refunded=False, sale=None):
    """Create a collection. `lines` is a list of (payment_type, amount_cents)."""
    collection = Collection(
        store_id=store.id if store else None,
        user_id=user.id if user else None,
        sale_id=sale.id if sale else None,
        transacted_at=when or at(),
        is_refunded=refunded,
    )
    collection.lines = [
        CollectionLine(payment_type_id=pt.id, amount_cents=amount) for pt, amount in lines
    ]
    db.session.add(collection)
    db.session.commit()
    return collection


def set_stock(store, product, quantity):
    balance = StockBalance(store_id=store.id, product_id=product.id, quantity=quantity)
    db.session.add(balance)
    db.session.commit()
    return balance


def make_purchase(supplier, items, *, stage="CHECKED", when=None, store=None):
    """Create a purchase directly in `stage`. `items` is a list of (product, quantity, price_cents)."""
    purchase = Purchase(
        supplier_id=supplier.id,
        store_id=store.id if store else None,
        transacted_at=when or at(),
        stage=stage,
    )
    purchase.items = [PurchaseItem(product_id=p.id, quantity=q, price_cents=price) for p, q, price in items]
    db.session.add(purchase)
    db.session.commit()
    return purchase
