# Overview: Flask CLI command groups for bootstrap, inspection, and cash drawer operations.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "backoffice:create_app".
# - Use: python -m flask <group> <command> [options]
#
# Ledger bootstrap/inspection:
# - python -m flask ledger init-db
#   Create all tables on an empty database (use "flask db upgrade" for managed schemas).
# - python -m flask ledger seed-customer --first-name Ana --last-name Rojas
#   Create a credit customer row for receivable names.
# - python -m flask ledger sequences
#   Show the next document number per entry type.
#
# Cash sessions:
# - python -m flask sessions list --status OPEN --limit 20
#   List recent cash sessions with optional filters.
# - python -m flask sessions open --pos POS-1 --user u-1 --amount 10000
#   Open a cash session at a point of sale.
# - python -m flask sessions close SESSION_ID --user u-1 --amount 15000
#   Close a session with the counted cash.

import click
from flask.cli import with_appcontext

from . import actions
from .extensions import db
from .models import CashSession, CashSessionStatus, Customer, EntryType
from .services import cash_session_service
from .services.document_service import peek_next_document_number


@click.group('ledger')
def ledger_group():
    """Ledger bootstrap and inspection commands."""


@ledger_group.command('init-db')
@with_appcontext
def init_db():
    """Create every ledger table that does not exist yet."""
    db.create_all()
    click.echo("PASS Ledger tables created")


@ledger_group.command('seed-customer')
@click.option('--first-name', default=None)
@click.option('--last-name', default=None)
@click.option('--business-name', default=None)
@click.option('--id', 'customer_id', default=None, help='Explicit customer id')
@with_appcontext
def seed_customer(first_name, last_name, business_name, customer_id):
    """
    Create a customer.

    Example:
        flask ledger seed-customer --business-name "Ferreteria Sur"
    """
    if not any([first_name, last_name, business_name]):
        raise click.UsageError("Give at least one of --first-name, --last-name, --business-name")
    customer = Customer(first_name=first_name, last_name=last_name, business_name=business_name)
    if customer_id:
        customer.id = customer_id
    db.session.add(customer)
    db.session.commit()
    click.echo(f"PASS Created customer {customer.display_name} (ID: {customer.id})")


@ledger_group.command('sequences')
@with_appcontext
def show_sequences():
    """Show the number the next confirmation of each type would receive."""
    for entry_type in EntryType.ALL:
        click.echo(f"{entry_type:<20} {peek_next_document_number(entry_type)}")


@click.group('sessions')
def sessions_group():
    """Cash session inspection and drawer commands."""


@sessions_group.command('list')
@click.option('--pos', 'point_of_sale_id', default=None, help='Filter by point of sale')
@click.option('--status', type=click.Choice(list(CashSessionStatus.ALL)), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_sessions_cli(point_of_sale_id, status, limit):
    """
    List cash sessions, newest first.

    Example:
        flask sessions list
        flask sessions list --status OPEN
    """
    query = db.session.query(CashSession)
    if point_of_sale_id:
        query = query.filter_by(point_of_sale_id=point_of_sale_id)
    if status:
        query = query.filter_by(status=status)

    sessions = query.order_by(CashSession.opened_at.desc()).limit(limit).all()
    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "=" * 110)
    click.echo(f"{'ID':<38} {'POS':<12} {'Status':<11} {'Opened':<20} {'Expected':>12} {'Difference':>12}")
    click.echo("=" * 110)
    for session in sessions:
        data = session.to_dict()
        if session.status == CashSessionStatus.OPEN:
            expected = cash_session_service.summarize(session.id).to_dict()["expected_balance"]
        else:
            expected = data["expected_amount"]
        click.echo(
            f"{session.id:<38} {session.point_of_sale_id:<12} {session.status:<11} "
            f"{data['opened_at']:<20} {expected or '-':>12} {data['difference'] or '-':>12}"
        )
    click.echo("=" * 110 + "\n")


@sessions_group.command('open')
@click.option('--pos', 'point_of_sale_id', required=True, help='Point of sale id')
@click.option('--user', 'user_id', required=True, help='Opening user id')
@click.option('--amount', 'opening_amount', required=True, help='Opening cash')
@click.option('--notes', default=None)
@with_appcontext
def open_session_cli(point_of_sale_id, user_id, opening_amount, notes):
    """Open a cash session at a point of sale."""
    result = actions.open_cash_session(
        point_of_sale_id=point_of_sale_id,
        user_id=user_id,
        opening_amount=opening_amount,
        notes=notes,
    )
    if not result.success:
        raise click.ClickException(result.error)
    click.echo(f"PASS Opened session {result.data['id']} at {point_of_sale_id}")


@sessions_group.command('close')
@click.argument('session_id')
@click.option('--user', 'user_id', required=True, help='Closing user id')
@click.option('--amount', 'closing_amount', required=True, help='Counted cash')
@click.option('--notes', default=None)
@with_appcontext
def close_session_cli(session_id, user_id, closing_amount, notes):
    """Close a cash session and print its difference."""
    result = actions.close_cash_session(
        session_id, user_id=user_id, closing_amount=closing_amount, notes=notes
    )
    if not result.success:
        raise click.ClickException(result.error)
    click.echo(
        f"PASS Closed session {session_id}: expected {result.data['expected_amount']}, "
        f"counted {result.data['closing_amount']}, difference {result.data['difference']}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
    app.cli.add_command(sessions_group)
