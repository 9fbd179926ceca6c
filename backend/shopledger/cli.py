# Overview: Flask CLI command groups for bootstrap, user administration and ledger checks.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Create tables, the settings row and default admin/personnel users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username ayse --password "secret123" --role PERSONNEL
#
# Ledger:
# - python -m flask ledger reconcile [--fix]
#   Compare cached customer balances with their balance events.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .permissions import ROLES, ROLE_ADMIN, ROLE_PERSONNEL
from .services import customer_service, settings_service
from .services.auth_service import create_user, PasswordValidationError
from .validation import ValidationError

DEFAULT_PASSWORD = "Password123"

DEFAULT_USERS = [
    ("admin", "Administrator", ROLE_ADMIN),
    ("personnel", "Sales Personnel", ROLE_PERSONNEL),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Idempotent bootstrap: tables, default settings and default users.

    Default users: admin / personnel, password "Password123".
    Change passwords immediately in production!
    """
    click.echo("START Initializing shopledger...")
    db.create_all()
    settings_service.get_settings()
    click.echo("PASS Tables and settings ready")

    for username, display_name, role in DEFAULT_USERS:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(username, DEFAULT_PASSWORD, display_name=display_name, role=role)
            click.echo(f"PASS Created user: {username} ({role})")
        except (PasswordValidationError, ValidationError) as e:
            click.echo(f"FAIL Failed to create user '{username}': {e}")

    click.echo(f"DONE Default password for new users: {DEFAULT_PASSWORD}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User administration commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.username.asc()).all()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.role:<10} {status}")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--display-name', default=None)
@click.option('--role', type=click.Choice(ROLES), default=ROLE_PERSONNEL, show_default=True)
@with_appcontext
def create_user_command(username, password, display_name, role):
    try:
        user = create_user(username, password, display_name=display_name, role=role)
    except (PasswordValidationError, ValidationError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {user.role})")


@click.group('ledger')
def ledger_group():
    """Customer balance ledger checks."""


@ledger_group.command('reconcile')
@click.option('--fix', is_flag=True, help='Reset drifting balances to the ledger sum')
@with_appcontext
def reconcile(fix):
    drifts = customer_service.reconcile_balances(fix=fix)
    if not drifts:
        click.echo("PASS All customer balances match their balance events")
        return
    for drift in drifts:
        click.echo(
            f"DRIFT customer {drift.customer_id} ({drift.customer_name}): "
            f"cached={drift.cached_cents} ledger={drift.ledger_cents} drift={drift.drift_cents}"
        )
    if fix:
        click.echo(f"FIXED {len(drifts)} customer balance(s)")
    else:
        raise SystemExit(1)


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
