# Overview: Flask CLI command groups for bootstrap and stock inspection.

# backend/cyclestock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Load a small bike-shop catalog with supplies, sales and a stockout.
#
# Stock inspection:
# - python -m flask stock qoh 1
#   Derived quantity on hand for a product (and drift vs the SQL aggregate).
# - python -m flask stock alerts --limit 10
#   Low / out-of-stock products, lowest stock first.
# - python -m flask stock history 1 --page 1 --page-size 5
#   Newest-first movements with running balance.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .errors import StockEngineError
from .extensions import db
from .models import (
    Category,
    Employee,
    PaymentMethod,
    Product,
    Sale,
    SaleDetail,
    Stockout,
    StockoutDetail,
    Supplier,
    Supply,
    SupplyDetail,
)
from .services import history_service, reorder_service, stock_service
from .time_utils import to_utc_z, utcnow


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' to load demo data.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Load demo catalog and transactions (skips if products already exist)."""
    if db.session.query(Product).count():
        click.echo("SKIP  Products already present; nothing seeded.")
        return

    now = utcnow()

    db.session.add_all([
        Category(code="MTB", name="Mountain Bikes"),
        Category(code="ROAD", name="Road Bikes"),
        Category(code="ACC", name="Accessories"),
        PaymentMethod(code="CASH", name="Cash"),
        PaymentMethod(code="CARD", name="Card"),
    ])
    supplier = Supplier(name="Trailhead Distribution", contact="orders@trailhead.example")
    cashier = Employee(first_name="Dana", middle_name="Lee", last_name="Cruz")
    db.session.add_all([supplier, cashier])
    db.session.flush()

    products = [
        Product(sku="MTB-001", name="Ridge 29er", category_code="MTB", supplier_id=supplier.id,
                price_cents=89900, reorder_level=3),
        Product(sku="ROAD-001", name="Aero 105", category_code="ROAD", supplier_id=supplier.id,
                price_cents=129900, reorder_level=2),
        Product(sku="ACC-001", name="Trail Helmet", category_code="ACC", supplier_id=supplier.id,
                price_cents=4900, reorder_level=5),
        Product(sku="ACC-002", name="Bottle Cage", category_code="ACC", price_cents=900),
    ]
    db.session.add_all(products)
    db.session.flush()

    supply = Supply(supplier_id=supplier.id, supply_date=now - timedelta(days=10),
                    remarks="Opening stock", received_by=cashier.id)
    db.session.add(supply)
    db.session.flush()
    for product, quantity in zip(products, (8, 4, 12, 20)):
        db.session.add(SupplyDetail(supply_id=supply.id, product_id=product.id,
                                    quantity_supplied=quantity, unit_cost_cents=product.price_cents // 2))

    for days_ago, lines in ((5, ((0, 2), (2, 3))), (2, ((1, 3), (2, 4), (3, 1)))):
        sale = Sale(sale_date=now - timedelta(days=days_ago), cashier_id=cashier.id,
                    payment_method_code="CARD")
        db.session.add(sale)
        db.session.flush()
        for index, quantity in lines:
            db.session.add(SaleDetail(sale_id=sale.id, product_id=products[index].id,
                                      quantity_sold=quantity, unit_price_cents=products[index].price_cents))

    stockout = Stockout(stockout_date=now - timedelta(days=1), reason="Damaged in storage",
                        sale_attendant=cashier.id)
    db.session.add(stockout)
    db.session.flush()
    db.session.add(StockoutDetail(stockout_id=stockout.id, product_id=products[2].id, quantity_removed=1))

    db.session.commit()
    click.echo(f"PASS Seeded {len(products)} products with supplies, sales and a stockout.")


@click.group('stock')
def stock_group():
    """Stock inspection commands."""


@stock_group.command('qoh')
@click.argument('product_id', type=int)
@with_appcontext
def stock_qoh(product_id):
    """Show derived quantity on hand for a product."""
    try:
        report = stock_service.compare_with_store(product_id)
        status = reorder_service.classify_stock(product_id)
    except StockEngineError as e:
        raise click.ClickException(e.message)

    click.echo(f"Product {product_id}: QOH {report['derived_qoh']} ({status['label']})")
    if report["drift"]:
        click.echo(f"WARN  SQL aggregate reports {report['precomputed_qoh']} (drift {report['drift']:+d})")


@stock_group.command('alerts')
@click.option('--limit', type=int, default=None, help='Maximum number of alerts')
@with_appcontext
def stock_alerts(limit):
    """List low and out-of-stock products."""
    try:
        alerts = reorder_service.low_stock_alerts(limit=limit)
    except StockEngineError as e:
        raise click.ClickException(e.message)

    if not alerts:
        click.echo("All items are well stocked")
        return
    for alert in alerts:
        reorder = "reorder" if alert["reorder_available"] else "no supplier"
        click.echo(
            f"{alert['sku']:<12} {alert['name']:<30} stock={alert['stock']:<5} "
            f"reorder_level={alert['reorder_level']:<4} {alert['status']:<4} {alert['priority']:<7} {reorder}"
        )


@stock_group.command('history')
@click.argument('product_id', type=int)
@click.option('--page', type=int, default=1)
@click.option('--page-size', type=int, default=None)
@with_appcontext
def stock_history(product_id, page, page_size):
    """Show movement history for a product, newest first."""
    try:
        result = history_service.history(product_id, page=page, page_size=page_size)
    except StockEngineError as e:
        raise click.ClickException(e.message)

    click.echo(f"Page {result.page}/{result.total_pages} ({result.total} movements)")
    for row in result.rows:
        entry = row.entry
        click.echo(
            f"{to_utc_z(entry.occurred_at)}  {entry.source_ref:<12} {entry.kind.value:<10} "
            f"{entry.quantity:+6d}  balance={row.balance_after}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
