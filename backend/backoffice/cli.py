# Overview: Flask CLI commands for schema bootstrap, demo data and reference data inspection.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# - python -m flask backoffice init-db
#   Create all tables that do not exist yet.
# - python -m flask backoffice reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask backoffice seed-demo [--days 30]
#   Load stores, products, users, payment types, sales and stock for trying the reports.
# - python -m flask backoffice payment-types [--add "Mobile Money"]
#   List configured payment types, optionally adding one.

import random
from datetime import timedelta

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import (
    Collection,
    CollectionLine,
    Customer,
    ExpiryBatch,
    PaymentType,
    Product,
    ProductCategory,
    Sale,
    SaleItem,
    Store,
    Supplier,
    TransactionType,
    User,
)
from .services import inventory_service
from .time_utils import today, utcnow


DEMO_PAYMENT_TYPES = ("Cash", "Card", "Mobile Money")
RESTOCK_QUANTITY = 48

DEMO_PRODUCTS = (
    # (category, name, cost_cents, price_cents, reorder_level)
    ("Beverages", "Mineral Water 500ml", 40, 80, 24),
    ("Beverages", "Orange Juice 1L", 150, 260, 12),
    ("Bakery", "White Bread", 90, 150, 10),
    ("Bakery", "Croissant", 60, 120, None),
    ("Household", "Dish Soap", 210, 350, 6),
    ("Household", "Paper Towels", 180, 300, 8),
    (None, "Gift Card Sleeve", 5, 20, None),
)


@click.group('backoffice')
def backoffice_group():
    """Back-office schema and demo data commands."""


@backoffice_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (existing tables are left untouched)."""
    db.create_all()
    click.echo("OK  Tables created")


@backoffice_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("OK  Database reset complete")


@backoffice_group.command('seed-demo')
@click.option('--days', default=30, show_default=True, type=int, help='Days of sales history to generate')
@click.option('--seed', default=42, show_default=True, type=int, help='Random seed for repeatable data')
@with_appcontext
def seed_demo(days, seed):
    """Load a small, repeatable demo data set."""
    if db.session.query(Store).count():
        raise click.ClickException("Database already has stores; run reset-db first")

    rng = random.Random(seed)
    try:
        stores = [Store(name="Main Street", code="MAIN"), Store(name="Harbour Mall", code="HARB")]
        users = [User(name="Ama Mensah"), User(name="Kofi Boateng")]
        customers = [
            Customer(customer_type="individual", first_name="Efua", surname="Owusu"),
            Customer(customer_type="company", company_name="Sunrise Catering"),
        ]
        suppliers = [Supplier(company_name="Fresh Foods Ltd"), Supplier(first_name="Yaw", surname="Asante")]
        payment_types = [PaymentType(name=name) for name in DEMO_PAYMENT_TYPES]
        db.session.add_all(stores + users + customers + suppliers + payment_types)

        categories = {}
        products = []
        for category_name, name, cost, price, reorder_level in DEMO_PRODUCTS:
            category = None
            if category_name:
                category = categories.get(category_name)
                if category is None:
                    category = categories[category_name] = ProductCategory(name=category_name)
            products.append(Product(
                category=category,
                name=name,
                cost_price_cents=cost,
                price_cents=price,
                reorder_level=reorder_level,
                has_expiry=category_name == "Bakery",
            ))
        db.session.add_all(products)
        db.session.flush()

        for store in stores:
            for product in products:
                inventory_service.apply_stock_movement(
                    store_id=store.id,
                    product_id=product.id,
                    quantity_delta=rng.randint(5, 60),
                    trans_type=TransactionType.RECEIVE,
                    unit_price_cents=product.cost_price_cents,
                    reference="OPENING",
                    description="Opening stock",
                )
                if product.has_expiry:
                    db.session.add(ExpiryBatch(
                        store_id=store.id,
                        product_id=product.id,
                        expiry_date=today() + timedelta(days=rng.randint(1, 45)),
                        quantity=rng.randint(1, 5),
                    ))

        # The last product never sells so the slow-moving report has something to show
        sellable = products[:-1]
        sale_count = 0
        for day_offset in range(days):
            day_start = utcnow().replace(hour=9, minute=0, second=0, microsecond=0) - timedelta(days=day_offset)
            for _ in range(rng.randint(2, 6)):
                store = rng.choice(stores)
                user = rng.choice(users)
                sale = Sale(
                    store_id=store.id,
                    user_id=user.id,
                    customer_id=rng.choice([None, None, customers[0].id, customers[1].id]),
                    transacted_at=day_start + timedelta(minutes=rng.randint(0, 600)),
                )
                sale.items = [
                    SaleItem(product_id=product.id, quantity=rng.randint(1, 4), price_cents=product.price_cents)
                    for product in rng.sample(sellable, rng.randint(1, 3))
                ]
                db.session.add(sale)
                db.session.flush()

                for item in sale.items:
                    on_hand = inventory_service.get_quantity_on_hand(store.id, item.product_id)
                    if on_hand < item.quantity:
                        inventory_service.apply_stock_movement(
                            store_id=store.id,
                            product_id=item.product_id,
                            quantity_delta=RESTOCK_QUANTITY,
                            trans_type=TransactionType.RECEIVE,
                            reference="RESTOCK",
                            description="Demo restock",
                            transacted_at=sale.transacted_at,
                        )
                    inventory_service.apply_stock_movement(
                        store_id=store.id,
                        product_id=item.product_id,
                        quantity_delta=-item.quantity,
                        trans_type=TransactionType.SALE,
                        unit_price_cents=item.price_cents,
                        reference=f"SALE-{sale.id}",
                        user_id=user.id,
                        transacted_at=sale.transacted_at,
                    )

                sale_count += 1
                sale.receipt_no = f"R{sale.id:06d}"
                sale.discount_cents = rng.choice([0, 0, 0, 50])
                sale.total_paid_cents = sale.total_due_cents - sale.discount_cents

                collection = Collection(
                    store_id=store.id,
                    user_id=user.id,
                    customer_id=sale.customer_id,
                    sale_id=sale.id,
                    transacted_at=sale.transacted_at,
                    receipt_no=sale.receipt_no,
                )
                collection.lines = [
                    CollectionLine(payment_type=rng.choice(payment_types), amount_cents=sale.total_paid_cents)
                ]
                db.session.add(collection)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    click.echo(f"OK  Seeded {len(stores)} stores, {len(products)} products and {sale_count} sales")


@backoffice_group.command('payment-types')
@click.option('--add', 'new_name', default=None, help='Add a payment type with this name')
@with_appcontext
def payment_types(new_name):
    """List payment types, optionally adding one."""
    if new_name:
        name = new_name.strip()
        if not name:
            raise click.BadParameter("name must not be blank", param_hint="--add")
        if db.session.query(PaymentType).filter_by(name=name).first():
            raise click.ClickException(f"Payment type {name!r} already exists")
        db.session.add(PaymentType(name=name))
        db.session.commit()
        click.echo(f"OK  Added payment type {name!r}")

    for payment_type in db.session.query(PaymentType).order_by(PaymentType.name, PaymentType.id):
        status = "active" if payment_type.is_active else "inactive"
        click.echo(f"{payment_type.id:>4}  {payment_type.name:<24} {status}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(backoffice_group)
