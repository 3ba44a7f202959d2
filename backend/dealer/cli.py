# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/dealer/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent; existing tables are left alone).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed
#   Create a demo customer and seller if they do not exist yet.
#
# Stock maintenance:
# - python -m flask stock storage
#   Show media storage usage against the budget.
# - python -m flask stock recompute-sizes
#   Re-estimate the encoded media size of every live stock item.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Customer, User
from .services import quota_service, stock_service


DEMO_SELLER_EMAIL = "seller@dealer.local"
DEMO_CUSTOMER_DOCUMENT = "00000000000"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating tables...")
    db.create_all()
    click.echo("PASS Database initialized.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed' for demo data.")


@system_group.command('seed')
@with_appcontext
def seed():
    """Create a demo seller and customer (idempotent)."""
    seller = db.session.query(User).filter_by(email=DEMO_SELLER_EMAIL).first()
    if seller is None:
        seller = User(name="Demo Seller", email=DEMO_SELLER_EMAIL, role="seller", is_active=True)
        db.session.add(seller)
        db.session.commit()
        click.echo(f"PASS Created seller: {seller.name} (ID: {seller.id})")
    else:
        click.echo(f"PASS Using existing seller: {seller.name} (ID: {seller.id})")

    customer = db.session.query(Customer).filter_by(document=DEMO_CUSTOMER_DOCUMENT).first()
    if customer is None:
        customer = Customer(name="Demo Customer", document=DEMO_CUSTOMER_DOCUMENT)
        db.session.add(customer)
        db.session.commit()
        click.echo(f"PASS Created customer: {customer.name} (ID: {customer.id})")
    else:
        click.echo(f"PASS Using existing customer: {customer.name} (ID: {customer.id})")


@click.group('stock')
def stock_group():
    """Stock inspection and maintenance commands."""


@stock_group.command('storage')
@with_appcontext
def storage():
    """Show media storage usage."""
    info = quota_service.storage_info()
    click.echo(
        f"Used: {info['total_used_gb']:.2f}GB of {info['budget_gb']:.2f}GB "
        f"({info['percentage_used']:.2f}%)"
    )
    click.echo(f"Available: {info['available_gb']:.2f}GB ({info['available_bytes']} bytes)")


@stock_group.command('recompute-sizes')
@with_appcontext
def recompute_sizes():
    """Re-estimate total_encoded_bytes for all live stock items."""
    changed, total = stock_service.recompute_sizes()
    click.echo(f"PASS {changed} stock item(s) updated; {total} bytes in use.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
