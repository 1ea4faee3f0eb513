# Overview: Flask CLI command groups for provisioning and maintenance.

# backend/farmdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Accounts:
# - python -m flask accounts list
#   List business accounts with their member count.
# - python -m flask accounts create --name "Green Acres"
#   Create a business account and its default invoicing settings.
# - python -m flask accounts add-member --account-id 1 --external-id google-oauth2|123 --email a@b.my --role owner
#   Link an identity-provider user to an account (creates the user row if needed).
# - python -m flask accounts issue-token --external-id google-oauth2|123
#   Print a fresh bearer token for that user (used by the login bridge and for local testing).
#
# Invoices:
# - python -m flask invoices reset-numbering --account-id 1
#   Restart numbering at 1 and drop the reuse pool; refused while invoices exist.
#
# Sales:
# - python -m flask sales backfill-group-ids [--account-id 1] [--dry-run]
#   Copy legacy [GROUP:<id>] note tags into sales.group_id.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import AccountMember, BusinessAccount, User
from .services import invoice_number_service, sale_group_service, session_service


@click.group('accounts')
def accounts_group():
    """Business account and membership commands."""


@accounts_group.command('list')
@with_appcontext
def list_accounts_cli():
    """List business accounts."""
    accounts = db.session.query(BusinessAccount).order_by(BusinessAccount.id.asc()).all()
    if not accounts:
        click.echo("No accounts found.")
        return
    for account in accounts:
        status = "active" if account.is_active else "inactive"
        click.echo(f"{account.id:>4}  {account.name}  ({status}, {len(account.members)} member(s))")


@accounts_group.command('create')
@click.option('--name', required=True, help='Business name')
@with_appcontext
def create_account_cli(name):
    """Create a new business account."""
    account = BusinessAccount(name=name, is_active=True)
    db.session.add(account)
    db.session.flush()
    invoice_number_service.ensure_settings(account.id)
    db.session.commit()

    click.echo(f"PASS Created account: {account.name} (ID: {account.id})")


@accounts_group.command('add-member')
@click.option('--account-id', type=int, required=True, help='Business account ID')
@click.option('--external-id', required=True, help='Identity provider subject')
@click.option('--email', required=True, help='Email address')
@click.option('--display-name', default=None, help='Display name')
@click.option('--role', type=click.Choice(['owner', 'member']), default='member', show_default=True)
@with_appcontext
def add_member_cli(account_id, external_id, email, display_name, role):
    """Attach a user to a business account."""
    account = db.session.query(BusinessAccount).filter_by(id=account_id).first()
    if not account:
        click.echo(f"FAIL Account ID {account_id} not found")
        return

    user = db.session.query(User).filter_by(external_id=external_id).first()
    if not user:
        user = User(external_id=external_id, email=email, display_name=display_name, is_active=True)
        db.session.add(user)
        db.session.flush()

    membership = db.session.query(AccountMember).filter_by(user_id=user.id).first()
    if membership and membership.account_id != account_id:
        click.echo(f"FAIL User already belongs to account ID {membership.account_id}")
        return
    if membership:
        membership.role = role
    else:
        db.session.add(AccountMember(account_id=account_id, user_id=user.id, role=role))
    db.session.commit()

    click.echo(f"PASS {email} is now {role} of {account.name} (user ID: {user.id})")


@accounts_group.command('issue-token')
@click.option('--external-id', required=True, help='Identity provider subject')
@with_appcontext
def issue_token_cli(external_id):
    """Issue a bearer token for a user."""
    user = db.session.query(User).filter_by(external_id=external_id).first()
    if not user:
        click.echo(f"FAIL No user with external id {external_id}")
        return
    try:
        session, token = session_service.create_session(user.id)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Token for {user.email} (account ID {session.account_id}), expires {session.expires_at}:")
    click.echo(token)


@click.group('invoices')
def invoices_group():
    """Invoice numbering maintenance."""


@invoices_group.command('reset-numbering')
@click.option('--account-id', type=int, required=True, help='Business account ID')
@with_appcontext
def reset_numbering_cli(account_id):
    """Restart invoice numbering at 1 when the account has no invoices."""
    if invoice_number_service.reset_if_empty(account_id):
        click.echo(f"PASS Invoice numbering reset for account ID {account_id}")
    else:
        click.echo(f"FAIL Account ID {account_id} still has invoices; numbering unchanged")


@click.group('sales')
def sales_group():
    """Sales maintenance."""


@sales_group.command('backfill-group-ids')
@click.option('--account-id', type=int, default=None, help='Limit to one account')
@click.option('--dry-run', is_flag=True, help='Report without writing')
@with_appcontext
def backfill_group_ids_cli(account_id, dry_run):
    """Copy [GROUP:<id>] tags from notes into sales.group_id."""
    count = sale_group_service.backfill_group_ids(account_id, dry_run=dry_run)
    verb = "Would update" if dry_run else "Updated"
    click.echo(f"PASS {verb} {count} sale(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(accounts_group)
    app.cli.add_command(invoices_group)
    app.cli.add_command(sales_group)
