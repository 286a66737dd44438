# Overview: Flask CLI command groups for bootstrap, catalog seeding and ledger audits.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--admin-email admin@storefront.local]
#   Create all tables and seed an admin account (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --email a@b.c --password "Password123!" --role Customer
#
# Catalog / inventory:
# - python -m flask catalog add-product --sku SKU-1 --name "Widget" --price-cents 1999 --stock 10 --critical 2
# - python -m flask inventory low-stock
# - python -m flask inventory restock 1 25
#
# Ledger audit:
# - python -m flask orders verify [ORDER_ID]
#   Check order totals against items and Purchase rows (all orders if omitted).

import click
from flask.cli import with_appcontext
from sqlalchemy import select

from .extensions import db
from .errors import StorefrontError
from .models import Order, User
from .models.auth import ROLE_ADMIN, VALID_ROLES
from .services import auth_service, inventory_service, order_service


DEFAULT_ADMIN_PASSWORD = "Password123!"


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@storefront.local', help='Email for the seeded admin')
@click.option('--admin-password', default=DEFAULT_ADMIN_PASSWORD, help='Password for the seeded admin')
@with_appcontext
def init_system(admin_email, admin_password):
    """
    Create tables and seed an admin account.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing storefront...")

    db.create_all()
    click.echo("PASS Tables ready")

    if auth_service.get_user_by_email(db.session, admin_email) is not None:
        click.echo(f"PASS Admin {admin_email} already exists")
        return

    try:
        user = auth_service.create_user(db.session, admin_email, admin_password, role=ROLE_ADMIN)
    except StorefrontError as e:
        raise click.ClickException(f"Failed to create admin: {e.message}")

    click.echo(f"PASS Created admin {user.email} (ID: {user.id})")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate every table."""
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and creation."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.scalars(select(User).order_by(User.id)).all()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.email:<40} {user.role:<15} {status}")


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(VALID_ROLES), default=VALID_ROLES[0], show_default=True)
@with_appcontext
def create_user_cli(email, password, role):
    """
    Create a user.

    Password requirements: 8+ chars, uppercase, lowercase, digit, special char.
    """
    try:
        user = auth_service.create_user(db.session, email, password, role=role)
    except StorefrontError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created user: {user.email} with role '{user.role}' (ID: {user.id})")


# =============================================================================
# CATALOG / INVENTORY
# =============================================================================

@click.group('catalog')
def catalog_group():
    """Catalog seeding."""


@catalog_group.command('add-product')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price-cents', type=int, required=True)
@click.option('--stock', type=int, default=0, show_default=True)
@click.option('--critical', 'critical_stock_level', type=int, default=0, show_default=True)
@with_appcontext
def add_product(sku, name, price_cents, stock, critical_stock_level):
    try:
        product = inventory_service.create_product(
            db.session, sku, name, price_cents, stock=stock, critical_stock_level=critical_stock_level
        )
    except StorefrontError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created product {product.sku} (ID: {product.id}) stock={product.stock}")


@click.group('inventory')
def inventory_group():
    """Stock inspection and receipts."""


@inventory_group.command('low-stock')
@with_appcontext
def low_stock():
    products = inventory_service.list_low_stock(db.session)
    if not products:
        click.echo("PASS No products below critical stock")
        return
    for product in products:
        click.echo(
            f"WARN {product.sku:<16} stock={product.stock:<5} critical={product.critical_stock_level}"
        )


@inventory_group.command('restock')
@click.argument('product_id', type=int)
@click.argument('quantity', type=int)
@with_appcontext
def restock(product_id, quantity):
    try:
        product = inventory_service.restock(db.session, product_id, quantity)
    except StorefrontError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS {product.sku} stock now {product.stock}")


# =============================================================================
# ORDERS
# =============================================================================

@click.group('orders')
def orders_group():
    """Order ledger audits."""


@orders_group.command('verify')
@click.argument('order_id', type=int, required=False)
@with_appcontext
def verify_orders(order_id):
    """Exit non-zero if any order disagrees with its items or Purchase row."""
    if order_id is not None:
        order_ids = [order_id]
    else:
        order_ids = db.session.scalars(select(Order.id).order_by(Order.id)).all()

    failures = 0
    for oid in order_ids:
        try:
            report = order_service.verify_ledger_consistency(db.session, oid)
        except StorefrontError as e:
            raise click.ClickException(e.message)

        if report["consistent"]:
            click.echo(f"PASS Order {oid}")
        else:
            failures += 1
            click.echo(f"FAIL Order {oid}: {'; '.join(report['problems'])}")

    click.echo(f"Checked {len(order_ids)} orders, {failures} inconsistent")
    if failures:
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(orders_group)
