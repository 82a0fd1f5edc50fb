# Overview: Flask CLI command groups for schema setup, reconciliation, summaries, devices and restocks.

# backend/stockrecon/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Reconciliation:
# - python -m flask reconcile sweep [--limit 500]
#   Run the scheduled sweep now, across all tenants.
# - python -m flask reconcile run --store-id S1 [--company-id C1] [--limit 200]
#   Scoped on-demand sweep.
# - python -m flask reconcile pending --store-id S1
#   List pending tracking entries.
#
# Product summaries:
# - python -m flask summaries rebuild
#   Recompute every product summary from the batch ledger.
# - python -m flask summaries show P1
#
# Devices:
# - python -m flask devices register --device-id POS-01 --prefix INV --start 0 --end 999999
# - python -m flask devices usage POS-01
#
# Inventory:
# - python -m flask inventory receive --product-id P1 --batch-id B-2026-001 --quantity 50 --unit-price-cents 1999

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import TRACKING_PENDING
from .services import inventory_service, invoice_service, reconciliation_service, summary_service
from .services.invoice_service import SeriesNotFound
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """Schema commands."""


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


@click.group('reconcile')
def reconcile_group():
    """Reconciliation sweep commands."""


def _echo_sweep(result):
    click.echo(
        f"PASS processed={result.processed} reconciled={result.reconciled} partial={result.partial} "
        f"no_inventory={result.no_inventory} skipped={result.skipped} failed={result.failed} "
        f"deferred={result.deferred}"
    )


@reconcile_group.command('sweep')
@click.option('--limit', type=int, default=None, help='Max entries (default RECONCILE_DEFAULT_LIMIT)')
@with_appcontext
def sweep_cli(limit):
    """Run the daily all-tenant sweep now."""
    if limit is None:
        limit = current_app.config["RECONCILE_DEFAULT_LIMIT"]
    click.echo(f"START Reconciling up to {limit} pending entries...")
    try:
        result = reconciliation_service.reconcile_pending(limit=limit)
    except ValidationError as e:
        raise click.UsageError(str(e))
    _echo_sweep(result)


@reconcile_group.command('run')
@click.option('--company-id', default=None, help='Tenant scope')
@click.option('--store-id', default=None, help='Store scope')
@click.option('--limit', type=int, default=None, help='Max entries (default RECONCILE_ON_DEMAND_LIMIT)')
@with_appcontext
def run_cli(company_id, store_id, limit):
    """
    Scoped on-demand sweep.

    Example:
        flask reconcile run --store-id S1
    """
    try:
        result = reconciliation_service.reconcile_on_demand(
            company_id=company_id, store_id=store_id, limit=limit
        )
    except ValidationError as e:
        raise click.UsageError(str(e))
    _echo_sweep(result)


@reconcile_group.command('pending')
@click.option('--company-id', default=None)
@click.option('--store-id', default=None)
@click.option('--limit', type=int, default=50)
@with_appcontext
def pending_cli(company_id, store_id, limit):
    """List pending tracking entries, newest first."""
    entries = reconciliation_service.list_tracking_entries(
        company_id=company_id, store_id=store_id, status=TRACKING_PENDING, limit=limit
    )
    if not entries:
        click.echo("No pending entries.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<8} {'Store':<12} {'Order':<20} {'Product':<20} {'Qty':<6} {'Created'}")
    click.echo("="*90)
    for e in entries:
        click.echo(
            f"{e.id:<8} {e.store_id:<12} {e.order_id:<20} {e.product_id:<20} {e.quantity:<6} {e.created_at}"
        )
    click.echo("="*90 + "\n")


@click.group('summaries')
def summaries_group():
    """Product summary commands."""


@summaries_group.command('rebuild')
@with_appcontext
def rebuild_cli():
    """Recompute every product summary from the batch ledger."""
    count = summary_service.rebuild_all()
    click.echo(f"PASS Rebuilt {count} product summaries")


@summaries_group.command('show')
@click.argument('product_id')
@with_appcontext
def show_summary_cli(product_id):
    summary = summary_service.get_summary(product_id)
    if summary is None:
        click.echo(f"FAIL No summary for product {product_id}")
        return
    data = summary.to_dict()
    click.echo(
        f"{data['product_id']}: stock={data['total_stock']} "
        f"price_cents={data['selling_price_cents']} updated={data['last_updated']}"
    )


@click.group('devices')
def devices_group():
    """Device invoice series commands."""


@devices_group.command('register')
@click.option('--device-id', required=True)
@click.option('--prefix', required=True)
@click.option('--start', type=int, required=True)
@click.option('--end', type=int, required=True)
@click.option('--company-id', default=None)
@click.option('--store-id', default=None)
@with_appcontext
def register_device_cli(device_id, prefix, start, end, company_id, store_id):
    """Assign an invoice number series to a device."""
    try:
        series = invoice_service.register_series(
            device_id=device_id,
            prefix=prefix,
            start=start,
            end=end,
            company_id=company_id,
            store_id=store_id,
        )
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Registered {series.device_id}: {series.prefix} {series.series_start}..{series.series_end}")


@devices_group.command('usage')
@click.argument('device_id')
@with_appcontext
def usage_cli(device_id):
    try:
        usage = invoice_service.invoice_usage(device_id)
    except SeriesNotFound as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(
        f"{usage['device_id']}: current={usage['current']} range={usage['start']}..{usage['end']} "
        f"remaining={usage['remaining']} used={usage['percent_used']}%"
    )


@click.group('inventory')
def inventory_group():
    """Batch ledger commands."""


@inventory_group.command('receive')
@click.option('--product-id', required=True)
@click.option('--batch-id', required=True)
@click.option('--quantity', type=click.IntRange(min=1), required=True)
@click.option('--unit-price-cents', type=click.IntRange(min=0), required=True)
@click.option('--received-at', default=None, help='ISO-8601; defaults to now')
@click.option('--company-id', default=None)
@click.option('--store-id', default=None)
@with_appcontext
def receive_cli(product_id, batch_id, quantity, unit_price_cents, received_at, company_id, store_id):
    """Receive a new batch (restock)."""
    try:
        batch = inventory_service.receive_batch(
            product_id=product_id,
            batch_id=batch_id,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            received_at=received_at,
            company_id=company_id,
            store_id=store_id,
        )
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Received {batch.batch_id}: {batch.quantity} x {batch.unit_price_cents} cents")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(reconcile_group)
    app.cli.add_command(summaries_group)
    app.cli.add_command(devices_group)
    app.cli.add_command(inventory_group)
