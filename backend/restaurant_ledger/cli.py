# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/restaurant_ledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Ledger bootstrap/inspection:
# - python -m flask ledger init-restaurant --name "Main Street Bistro" --code "MSB"
#   Create a restaurant and seed its default chart of accounts.
# - python -m flask ledger seed-accounts --restaurant-id 1
#   Idempotently (re)seed the default chart of accounts.
# - python -m flask ledger add-product --restaurant-id 1 --sku FLOUR --name "Flour 1kg" --unit-cost-cents 250
#   Add a catalog product (dev/test; the catalog is normally external).
# - python -m flask ledger statement --restaurant-id 1 [--start 2026-01-01T00:00:00Z] [--end ...]
#   Print the income statement for a period.
# - python -m flask ledger stock --restaurant-id 1 --sku FLOUR
#   Print quantity on hand and any open reconciliation session.
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, Restaurant
from .services import catalog_service, ledger_service, reconciliation_service, statement_service, stock_service
from .services.tenant_service import TenantAccessError, create_restaurant, require_restaurant


def _cents(value: int) -> str:
    sign = "-" if value < 0 else ""
    value = abs(value)
    return f"{sign}{value // 100}.{value % 100:02d}"


@click.group('ledger')
def ledger_group():
    """Restaurant ledger commands."""
    pass


@ledger_group.command('init-restaurant')
@click.option('--name', required=True, help='Restaurant name')
@click.option('--code', default=None, help='Short code (unique)')
@with_appcontext
def init_restaurant(name, code):
    """Create a restaurant and seed its default chart of accounts."""
    if code and db.session.query(Restaurant).filter_by(code=code).first():
        click.echo(f"FAIL Restaurant with code '{code}' already exists")
        return

    restaurant = create_restaurant(name, code)
    db.session.commit()
    accounts = ledger_service.ensure_default_accounts(restaurant.id)

    click.echo(f"PASS Created restaurant: {restaurant.name} (ID: {restaurant.id}, Code: {restaurant.code or '-'})")
    click.echo(f"PASS Chart of accounts ready: {len(accounts)} accounts")


@ledger_group.command('seed-accounts')
@click.option('--restaurant-id', type=int, required=True, help='Restaurant ID')
@with_appcontext
def seed_accounts(restaurant_id):
    """Seed the default chart of accounts (idempotent)."""
    try:
        accounts = ledger_service.ensure_default_accounts(restaurant_id)
    except TenantAccessError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo("\n" + "="*60)
    click.echo(f"{'Code':<8} {'Name':<34} {'Type':<16}")
    click.echo("="*60)
    for account in sorted(accounts.values(), key=lambda a: a.code):
        click.echo(f"{account.code:<8} {account.name:<34} {account.account_type:<16}")
    click.echo("="*60 + "\n")


@ledger_group.command('add-product')
@click.option('--restaurant-id', type=int, required=True, help='Restaurant ID')
@click.option('--sku', required=True, help='SKU (unique within restaurant)')
@click.option('--name', required=True, help='Product name')
@click.option('--unit-cost-cents', type=int, default=0, help='Unit cost in cents')
@with_appcontext
def add_product(restaurant_id, sku, name, unit_cost_cents):
    try:
        require_restaurant(restaurant_id)
    except TenantAccessError as e:
        click.echo(f"FAIL {e}")
        return
    if unit_cost_cents < 0:
        click.echo("FAIL Unit cost cannot be negative")
        return
    if db.session.query(Product).filter_by(restaurant_id=restaurant_id, sku=sku).first():
        click.echo(f"FAIL Product with SKU '{sku}' already exists")
        return

    product = Product(restaurant_id=restaurant_id, sku=sku, name=name, unit_cost_cents=unit_cost_cents)
    db.session.add(product)
    db.session.commit()
    click.echo(f"PASS Created product: {product.sku} (ID: {product.id}, cost {_cents(unit_cost_cents)})")


@ledger_group.command('statement')
@click.option('--restaurant-id', type=int, required=True, help='Restaurant ID')
@click.option('--start', default=None, help='Period start (ISO-8601, inclusive)')
@click.option('--end', default=None, help='Period end (ISO-8601, inclusive)')
@with_appcontext
def statement(restaurant_id, start, end):
    """Print the income statement."""
    try:
        s = statement_service.compile_income_statement(restaurant_id, start, end)
    except (statement_service.StatementError, TenantAccessError) as e:
        click.echo(f"FAIL {e}")
        return

    revenue = s["revenue"]
    period = f"{s['period']['start'] or 'beginning'} .. {s['period']['end'] or 'now'}"

    click.echo("\n" + "="*60)
    click.echo(f"INCOME STATEMENT  restaurant {restaurant_id}  {period}")
    click.echo("="*60)
    click.echo(f"{'Gross Revenue':<40} {_cents(revenue['gross_revenue_cents']):>18}")
    click.echo(f"{'  less Sales Tax Payable':<40} {_cents(revenue['sales_tax_payable_cents']):>18}")
    click.echo(f"{'  less Tips Payable':<40} {_cents(revenue['tips_payable_cents']):>18}")
    if revenue["other_deductions_cents"]:
        click.echo(f"{'  less Other Deductions':<40} {_cents(revenue['other_deductions_cents']):>18}")
    click.echo(f"{'Net Sales Revenue':<40} {_cents(revenue['net_sales_revenue_cents']):>18}")
    click.echo(f"{'Cost of Goods Sold':<40} {_cents(s['cogs']['total_cents']):>18}")
    click.echo(f"{'Gross Profit':<40} {_cents(s['gross_profit_cents']):>18}")
    click.echo(f"{'Operating Expenses':<40} {_cents(s['expenses']['total_cents']):>18}")
    click.echo("-"*60)
    click.echo(f"{'Net Income':<40} {_cents(s['net_income_cents']):>18}")
    click.echo("="*60 + "\n")


@ledger_group.command('stock')
@click.option('--restaurant-id', type=int, required=True, help='Restaurant ID')
@click.option('--sku', required=True, help='Product SKU')
@with_appcontext
def stock(restaurant_id, sku):
    """Print quantity on hand for a product."""
    try:
        product = catalog_service.get_product(restaurant_id, sku)
    except catalog_service.CatalogError as e:
        click.echo(f"FAIL {e}")
        return

    qty = stock_service.current_quantity(restaurant_id, product.id)
    state = reconciliation_service.product_state(restaurant_id, product.id)
    click.echo(f"{product.sku} ({product.name}): {qty} on hand [{state}]")


@click.group('system')
def system_group():
    """System maintenance commands."""
    pass


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation prompt')
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

    click.echo("PASS Database reset complete. Run 'python -m flask ledger init-restaurant' to initialize.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
    app.cli.add_command(system_group)
