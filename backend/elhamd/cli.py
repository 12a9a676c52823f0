# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/elhamd/cli.py
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
#   Create a demo branch, customer, parts, vehicles, invoices and an expense.
#
# Finance:
# - python -m flask finance overview --period month [--branch-id 1]
#   Print revenue, expenses, profit and trends for a period.
# - python -m flask finance integrity-check [--fix]
#   Report (and optionally repair) drift in invoice totals, paid amounts and stock status.
#
# Inventory:
# - python -m flask inventory low-stock
#   List parts at or below their minimum stock level.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Customer, InventoryItem, Vehicle
from .services import (
    integrity_service,
    inventory_service,
    invoice_service,
    ledger_service,
    payment_service,
    reporting_service,
)
from .time_utils import utcnow


def _money(cents: int) -> str:
    return f"{cents / 100:,.2f}"


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

    click.echo("PASS Database reset complete")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Create a small demo data set through the services."""
    if db.session.query(Branch).filter_by(code="CAI").first():
        click.echo("SKIP Demo data already present")
        return

    branch = Branch(name="Elhamd Cairo Showroom", code="CAI", currency="EGP")
    customer = Customer(name="Ahmed Hassan", email="ahmed@example.com", phone="+20 100 000 0000")
    filter_part = InventoryItem(
        name="Oil filter",
        part_number="OF-1001",
        category="Filters",
        quantity=40,
        min_stock_level=10,
        unit_price_cents=25000,
    )
    brake_part = InventoryItem(
        name="Brake pads (front)",
        part_number="BP-2001",
        category="Brakes",
        quantity=6,
        min_stock_level=5,
        unit_price_cents=180000,
    )
    for part in (filter_part, brake_part):
        inventory_service.set_quantity(part, part.quantity)
    db.session.add_all([branch, customer, filter_part, brake_part])
    db.session.flush()

    vehicle = Vehicle(
        make="Tata",
        model="Nexon",
        year=2025,
        vin="MAT000000DEMO0001",
        price_cents=95000000,
        branch_id=branch.id,
    )
    db.session.add(vehicle)
    db.session.commit()
    click.echo(f"PASS Created branch {branch.code}, customer {customer.name}, 2 parts, 1 vehicle")

    service_invoice = invoice_service.create_invoice({
        "customer_id": customer.id,
        "branch_id": branch.id,
        "invoice_type": "SERVICE",
        "status": "SENT",
        "items": [
            {"description": "Periodic maintenance", "quantity": 1, "unit_price_cents": 150000, "tax_rate": 14},
            {
                "description": "Oil filter",
                "quantity": 1,
                "unit_price_cents": filter_part.unit_price_cents,
                "tax_rate": 14,
                "metadata": {"itemType": "PART", "inventoryItemId": filter_part.id},
            },
        ],
    })
    payment_service.process_payment(
        invoice_id=service_invoice.id,
        amount_cents=service_invoice.total_cents,
        payment_method=payment_service.METHOD_CASH,
    )
    invoice_service.change_invoice_status(service_invoice.id, "PAID", notes="Paid at counter")
    click.echo(f"PASS Created paid service invoice {service_invoice.invoice_number}")

    sale_invoice = invoice_service.create_invoice({
        "customer_id": customer.id,
        "branch_id": branch.id,
        "invoice_type": "SALE",
        "status": "DRAFT",
        "due_date": (utcnow() + timedelta(days=14)).isoformat(),
        "items": [
            {
                "description": "Tata Nexon 2025",
                "quantity": 1,
                "unit_price_cents": vehicle.price_cents,
                "metadata": {"itemType": "VEHICLE", "vehicleId": vehicle.id},
            },
        ],
    })
    click.echo(f"PASS Created draft vehicle invoice {sale_invoice.invoice_number} (vehicle reserved)")

    ledger_service.create_entry(
        type=ledger_service.TYPE_EXPENSE,
        category="RENT",
        amount_cents=2500000,
        date=utcnow(),
        description="Showroom rent",
        payment_method="BANK_TRANSFER",
        branch_id=branch.id,
    )
    click.echo("PASS Recorded demo expense")


@click.group('finance')
def finance_group():
    """Financial reporting and reconciliation commands."""


@finance_group.command('overview')
@click.option('--period', default='month', type=click.Choice(list(reporting_service.PERIODS)))
@click.option('--branch-id', type=int, default=None)
@with_appcontext
def finance_overview(period, branch_id):
    """Print the financial overview for a period."""
    report = reporting_service.financial_overview(period=period, branch_id=branch_id)
    window = report["period"]
    click.echo(f"Period: {window['name']} ({window['start']} .. {window['end']})")
    click.echo(f"Revenue:     {_money(report['revenue_cents'])}  ({report['trends']['revenue']:+.2f}%)")
    click.echo(f"Expenses:    {_money(report['expenses_cents'])}  ({report['trends']['expenses']:+.2f}%)")
    click.echo(f"Net profit:  {_money(report['net_profit_cents'])}  ({report['trends']['net_profit']:+.2f}%)")
    click.echo(f"Margin:      {report['profit_margin'] * 100:.2f}%")
    if report["revenue_by_category"]:
        click.echo("Revenue by category:")
        for bucket in report["revenue_by_category"]:
            click.echo(f"  {bucket['category']:<28} {_money(bucket['amount_cents']):>16}  x{bucket['count']}")


@finance_group.command('integrity-check')
@click.option('--fix', is_flag=True, help='Repair mismatches that can be repaired')
@with_appcontext
def finance_integrity_check(fix):
    """Check invoices, payments and inventory for drift."""
    result = integrity_service.run_integrity_check(fix=fix)
    for section in ("invoices", "payments", "inventory"):
        issues = result[section]["issues"]
        click.echo(f"{section}: {len(issues)} issue(s), {result[section]['fixed']} fixed")
        for issue in issues:
            details = ", ".join(f"{k}={v}" for k, v in issue.items() if k != "type")
            click.echo(f"  {issue['type']}: {details}")

    if result["healthy"]:
        click.echo("PASS No integrity issues found")
    elif not fix:
        click.echo("WARN Issues found; re-run with --fix to repair")


@click.group('inventory')
def inventory_group():
    """Parts inventory inspection commands."""


@inventory_group.command('low-stock')
@with_appcontext
def inventory_low_stock():
    """List parts that need reordering."""
    items = inventory_service.list_low_stock()
    if not items:
        click.echo("PASS No parts at or below minimum stock")
        return
    for item in items:
        click.echo(
            f"{item.part_number:<12} {item.name:<32} qty={item.quantity:<5} "
            f"min={item.min_stock_level:<5} {item.status}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(finance_group)
    app.cli.add_command(inventory_group)
