# Overview: Flask CLI command groups for bootstrap, sync outbox inspection and ledger reminders.

# backend/kasir/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and inserts missing default settings.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Sync outbox:
# - python -m flask sync pending [--limit 50]
#   List queued mutations not yet delivered.
# - python -m flask sync mark-sent 1 2 3
#   Mark outbox rows as delivered.
#
# Ledger:
# - python -m flask ledger due-soon [--days 3]
#   List debit entries due within the window (overdue included).

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import ledger_service, settings_service, sync_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the POS database.

    Creates:
    - All tables (if missing)
    - Default settings (donation rounding off, point system off)
    """
    click.echo("START Initializing Kasir...")
    db.create_all()
    created = settings_service.ensure_default_settings()
    click.echo(f"PASS Default settings inserted: {created}")
    click.echo("DONE Kasir initialized.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('sync')
def sync_group():
    """Sync outbox inspection."""


@sync_group.command('pending')
@click.option('--limit', type=int, default=None, help='Max rows to show')
@with_appcontext
def list_pending_sync(limit):
    """List outbox rows waiting for delivery."""
    items = sync_service.list_pending(limit)
    if not items:
        click.echo("No pending sync actions.")
        return
    for item in items:
        payload = json.dumps(item.payload, default=str)
        if len(payload) > 80:
            payload = payload[:77] + "..."
        click.echo(f"{item.id:>6}  {item.action:<20} {payload}")
    click.echo(f"\nTotal: {len(items)}")


@sync_group.command('mark-sent')
@click.argument('item_ids', nargs=-1, type=int, required=True)
@with_appcontext
def mark_sent(item_ids):
    """Mark outbox rows as delivered."""
    count = sync_service.mark_sent(list(item_ids))
    click.echo(f"PASS Marked {count} row(s) as sent")


@click.group('ledger')
def ledger_group():
    """Debt ledger commands."""


@ledger_group.command('due-soon')
@click.option('--days', type=int, default=None, help='Window in days (default: KASIR_DUE_SOON_DAYS)')
@with_appcontext
def due_soon(days):
    """List debit entries due within the window."""
    entries = ledger_service.list_due_soon(days)
    if not entries:
        click.echo("No debts due soon.")
        return
    for entry in entries:
        click.echo(
            f"{entry['dueDate']}  {entry['contactName']:<24} "
            f"{entry['amount']:>12,.0f}  {entry['description']}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sync_group)
    app.cli.add_command(ledger_group)
