# Overview: Flask CLI command groups for bootstrap and ledger inspection.

# backend/ledgerdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to ledgerdesk (PowerShell: $env:FLASK_APP="ledgerdesk").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, default currency, admin and attendant users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger inspection:
# - python -m flask ledger reconcile [--product-id 3]
#   Compare each product's stock_qty with the sum of its movements.
# - python -m flask ledger movements [--product-id 3] [--limit 20]
#   Print recent inventory movements, newest first.
# - python -m flask ledger next-number
#   Preview the next invoice number for today (does not allocate it).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Currency, User
from .models.catalog import USER_ROLES
from .services import ledger_service
from .services.sequence_service import peek_next_invoice_number


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--currency', 'currency_code', default='USD', help='Default currency code')
@with_appcontext
def init_system(currency_code):
    """
    Initialize the database schema and default records.

    Creates:
    - All tables
    - A default currency (if no currency exists)
    - Users: admin (role admin), attendant (role attendant)
    """
    click.echo("START Initializing LedgerDesk...")

    db.create_all()
    click.echo("PASS Schema ready")

    currency = db.session.query(Currency).first()
    if not currency:
        currency = Currency(code=currency_code.upper(), symbol="$", name=currency_code.upper())
        db.session.add(currency)
        db.session.commit()
        click.echo(f"PASS Created default currency: {currency.code} (ID: {currency.id})")
    else:
        click.echo(f"PASS Using existing currency: {currency.code} (ID: {currency.id})")

    for role in USER_ROLES:
        username = role
        existing = db.session.query(User).filter_by(username=username).first()
        if existing:
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        user = User(username=username, role=role, is_active=True)
        db.session.add(user)
        db.session.commit()
        click.echo(f"PASS Created user: {username} (ID: {user.id}) with role '{role}'")

    click.echo("DONE LedgerDesk initialized")


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
    click.echo("BUILD Recreating schema...")
    db.create_all()
    click.echo("PASS Database reset complete")


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection commands."""


@ledger_group.command('reconcile')
@click.option('--product-id', type=int, default=None, help='Check a single product')
@with_appcontext
def reconcile(product_id):
    """Compare stock_qty with the movement log. Exits 1 on any mismatch."""
    if product_id is not None:
        row = ledger_service.reconcile_product(product_id)
        if row is None:
            raise click.ClickException(f"Product {product_id} not found")
        rows = [] if row["consistent"] else [row]
    else:
        rows = ledger_service.reconcile_all()

    if not rows:
        click.echo("PASS Stock ledger is consistent")
        return

    for row in rows:
        click.echo(
            f"FAIL Product {row['product_id']} ({row['name']}): "
            f"stock_qty={row['stock_qty']} ledger={row['ledger_qty']} diff={row['difference']:+d}"
        )
    raise SystemExit(1)


@ledger_group.command('movements')
@click.option('--product-id', type=int, default=None, help='Filter by product')
@click.option('--limit', type=int, default=20, help='Maximum rows')
@with_appcontext
def movements(product_id, limit):
    """Print recent inventory movements."""
    rows = ledger_service.list_movements(product_id=product_id, limit=limit)
    if not rows:
        click.echo("No movements recorded")
        return
    for m in rows:
        ref = f" {m.reference_type}#{m.reference_id}" if m.reference_type else ""
        click.echo(
            f"{m.id:>6}  {m.created_at}  product={m.product_id:<5} "
            f"{m.movement_type:<10} {m.quantity:+d}{ref}"
        )


@ledger_group.command('next-number')
@with_appcontext
def next_number():
    """Preview the next invoice number for today."""
    click.echo(peek_next_invoice_number())


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
