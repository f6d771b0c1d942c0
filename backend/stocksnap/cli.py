# Overview: Flask CLI command groups for bootstrap, users and demo data.

# backend/stocksnap/cli.py
# Commands Legend (run from the backend directory):
# - flask --app stocksnap system init-db
#   Create all tables (idempotent).
# - flask --app stocksnap system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - flask --app stocksnap users create --email admin@stocksnap.local --name Admin --password "Password123" --role admin
#   Create a user (prompts if options are omitted).
# - flask --app stocksnap users list
# - flask --app stocksnap demo seed --days-history 14
#   Sample catalog, stock movements and back-dated sales for the dashboard.

import random
from datetime import timedelta

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import StockSnapError
from .extensions import db
from .models import User, Sale, StockMovement
from .models.auth import ROLES, ROLE_ADMIN
from .services.auth_service import create_user
from .services import catalog_service, sales_service
from .time_utils import utcnow


@click.group('system')
def system_group():
    """Database bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@system_group.command('reset-db')
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

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', 'display_name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(email, display_name, password, role):
    """Create a user account."""
    try:
        user = create_user(
            email=email,
            password=password,
            display_name=display_name,
            role=role,
            bcrypt_rounds=current_app.config["BCRYPT_ROUNDS"],
        )
    except StockSnapError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id).all()
    click.echo(f"{'ID':<5} {'Email':<30} {'Name':<20} {'Role':<8} Active")
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<30} {user.display_name:<20} {user.role:<8} {active_str}")


DEMO_PRODUCTS = [
    # name, category, price, cost, threshold, initial stock
    ("Espresso Beans 1kg", "Coffee", 24.90, 14.00, 5, 40),
    ("Filter Papers x100", "Accessories", 4.50, 1.20, 20, 15),
    ("Ceramic Mug", "Tableware", 9.00, 3.10, 10, 8),
    ("Oat Milk 1L", "Dairy", 2.80, 1.40, 12, 60),
    ("Hand Grinder", "Equipment", 59.00, 31.00, 2, 3),
    ("Green Tea 50g", "Tea", 6.40, 2.90, 6, 0),
]


@click.group('demo')
def demo_group():
    """Demo data commands."""


@demo_group.command('seed')
@click.option('--days-history', type=int, default=14, show_default=True, help='How far back sales should go')
@click.option('--sales', 'sale_count', type=int, default=40, show_default=True, help='Number of sales to record')
@click.option('--password', default='Password123', show_default=True, help='Password for the seeded admin')
@click.option('--seed', 'rng_seed', type=int, default=7, show_default=True, help='Random seed')
@with_appcontext
def seed_demo(days_history, sale_count, password, rng_seed):
    """
    Seed a small shop so a fresh environment has a populated dashboard.

    Sales go through the normal sale path and are then back-dated,
    together with their movements, to spread them over the history window.
    """
    if days_history < 1:
        raise click.ClickException("--days-history must be >= 1")

    rng = random.Random(rng_seed)

    admin = db.session.query(User).filter_by(role=ROLE_ADMIN).first()
    if admin is None:
        admin = create_user(
            email="admin@stocksnap.local",
            password=password,
            display_name="Admin",
            role=ROLE_ADMIN,
            bcrypt_rounds=current_app.config["BCRYPT_ROUNDS"],
        )
        click.echo(f"Created admin: {admin.email}")

    products = []
    for name, category, price, cost, threshold, initial in DEMO_PRODUCTS:
        sku = catalog_service.format_sku(name)
        existing = catalog_service.list_products(search=sku)
        if existing:
            products.append(existing[0])
            continue
        products.append(catalog_service.create_product(
            {
                "name": name,
                "sku": sku,
                "category": category,
                "price": price,
                "cost_price": cost,
                "low_stock_threshold": threshold,
            },
            admin.id,
            initial_stock=initial,
        ))
    click.echo(f"Catalog ready: {len(products)} products")

    recorded = 0
    now = utcnow()
    for _ in range(sale_count):
        in_stock = [p for p in products if p.stock_quantity > 0]
        if not in_stock:
            break
        picks = rng.sample(in_stock, k=min(len(in_stock), rng.randint(1, 3)))
        items = [
            {"product_id": p.id, "quantity": rng.randint(1, min(3, p.stock_quantity))}
            for p in picks
        ]
        try:
            sale = sales_service.record_sale(
                items,
                rng.choice(["cash", "card", "transfer"]),
                admin.id,
            )
        except StockSnapError as e:
            click.echo(f"WARN  Skipped a sale: {e.message}")
            continue

        # demo history only
        when = now - timedelta(days=rng.randint(0, days_history), minutes=rng.randint(0, 600))
        sale.created_at = when
        db.session.query(StockMovement).filter_by(sale_id=sale.id).update({"created_at": when})
        db.session.commit()
        recorded += 1

    click.echo(f"PASS Recorded {recorded} sales ({db.session.query(Sale).count()} total)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(demo_group)
