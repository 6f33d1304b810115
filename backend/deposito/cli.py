# Overview: Flask CLI command groups for bootstrap, inspection, and till closing.

# backend/deposito/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stock inspection:
# - python -m flask stock audit [--product-id 1]
#   Compare cached stock with a replay of the movement ledger.
#
# Till inspection/closing:
# - python -m flask registers status
#   Show the open session with its expected cash.
# - python -m flask registers close --counted-cents 14850 --employee-id gestor-1
#   Close the open session with the counted cash.

import sys

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import EngineError
from .extensions import db
from .money import Money
from .services import reconciliation_service, register_service


def _fmt(amount) -> str:
    return amount.format(current_app.config.get("CURRENCY_SYMBOL", "R$"))


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Existing data is left untouched."""
    db.create_all()
    click.echo("PASS Database schema is up to date")


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


@click.group('stock')
def stock_group():
    """Stock ledger inspection commands."""


@stock_group.command('audit')
@click.option('--product-id', type=int, default=None, help='Audit a single product')
@with_appcontext
def stock_audit(product_id):
    """
    Replay the movement ledger and compare with cached stock.

    Exit code 1 when any product is inconsistent.
    """
    if product_id is not None:
        try:
            audits = [reconciliation_service.stock_audit(product_id)]
        except EngineError as e:
            click.echo(f"FAIL {e.message}")
            sys.exit(1)
        mismatches = [a for a in audits if not a.consistent]
    else:
        mismatches = reconciliation_service.stock_audit_all()

    if not mismatches:
        click.echo("PASS Stock projection matches the movement ledger")
        return

    for audit in mismatches:
        click.echo(
            f"FAIL product {audit.product_id}: cached {audit.cached_quantity}, "
            f"replayed {audit.replayed_quantity}"
        )
    sys.exit(1)


@click.group('registers')
def registers_group():
    """Till session inspection commands."""


@registers_group.command('status')
@with_appcontext
def registers_status():
    """Show the currently open session, if any."""
    session = register_service.get_open_session()
    if session is None:
        click.echo("No open register session")
        return

    summary = reconciliation_service.cash_summary(session.id)
    click.echo(f"Session {session.id} opened by {session.employee_id} at {session.opened_at}")
    click.echo(f"  Initial:  {_fmt(summary.initial_amount)}")
    click.echo(f"  Sales:    {_fmt(summary.sales_total)}")
    click.echo(f"  Cash in:  {_fmt(summary.cash_in_total)}")
    click.echo(f"  Cash out: {_fmt(summary.cash_out_total)}")
    click.echo(f"  Expected: {_fmt(summary.expected_amount)}")


@registers_group.command('close')
@click.option('--counted-cents', type=int, required=True, help='Counted cash in cents')
@click.option('--employee-id', default='cli', help='Employee closing the session')
@click.option('--notes', default=None, help='Closing notes')
@with_appcontext
def registers_close(counted_cents, employee_id, notes):
    """Close the open session with the counted cash."""
    session = register_service.get_open_session()
    if session is None:
        click.echo("FAIL No open register session")
        sys.exit(1)

    try:
        closed = register_service.close_session(
            session_id=session.id,
            counted_amount=Money(counted_cents),
            employee_id=employee_id,
            notes=notes,
        )
    except EngineError as e:
        click.echo(f"FAIL {e.message}")
        sys.exit(1)

    click.echo(f"PASS Session {closed.id} closed")
    click.echo(f"  Expected: {_fmt(closed.expected_amount)}")
    click.echo(f"  Counted:  {_fmt(closed.final_amount)}")
    click.echo(f"  Variance: {_fmt(closed.variance)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(registers_group)
