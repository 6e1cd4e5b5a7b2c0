# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create tables and the bootstrap administrator (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all accounts with their capability flags.
# - python -m flask users create --username clerk --password "Password123!" --inventory
#   Create an account (prompts if options are omitted).
#
# Ledger maintenance:
# - python -m flask ledger reconcile
#   Report balances that drifted from their movement log.
# - python -m flask ledger reconcile --fix
#   Rebuild drifted balances from the movement log.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import ConflictError, ValidationError
from .extensions import db
from .services.auth_service import create_user
from .services.ledger_service import get_ledger
from .storage import get_store


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create tables and the bootstrap administrator.

    The administrator's username and password come from
    BOOTSTRAP_ADMIN_USERNAME / BOOTSTRAP_ADMIN_PASSWORD.

    SECURITY: Change the password immediately in production!
    """
    from . import init_schema

    click.echo("START Initializing stockledger...")
    admin = init_schema(current_app)
    if admin is not None:
        click.echo(f"PASS Created administrator: {admin.username}")
    else:
        click.echo("PASS Administrator already present")
    click.echo("DONE System ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if get_store().name != "sql":
        click.echo("FAIL reset-db only applies to the relational store")
        return

    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all accounts with their capabilities."""
    users = get_store().list_users()
    if not users:
        click.echo("No users found")
        return

    click.echo(f"{'ID':<5} {'Username':<24} Capabilities")
    click.echo("-" * 70)
    for user in users:
        click.echo(f"{user.id:<5} {user.username:<24} {', '.join(user.capabilities()) or '-'}")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--admin', is_flag=True, help='Grant ADMINISTER (implies everything)')
@click.option('--products', is_flag=True, help='Grant DEFINE_PRODUCTS')
@click.option('--reports', is_flag=True, help='Grant VIEW_REPORTS')
@click.option('--inventory', is_flag=True, help='Grant MANAGE_INVENTORY')
@with_appcontext
def create_user_cli(username, password, admin, products, reports, inventory):
    """
    Create a new account.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase, lowercase, digit, and special character
    """
    try:
        user = create_user(
            get_store(),
            username=username,
            password=password,
            is_admin=admin,
            can_add_product=products,
            can_view_reports=reports,
            can_manage_inventory=inventory,
        )
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created user: {user.username} (ID: {user.id})")
    click.echo(f"     Capabilities: {', '.join(user.capabilities()) or '-'}")


# =============================================================================
# LEDGER MAINTENANCE COMMANDS
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Ledger consistency commands."""


@ledger_group.command('reconcile')
@click.option('--fix', is_flag=True, help='Rebuild drifted balances from their movements')
@with_appcontext
def reconcile(fix):
    """Compare every balance with the sum of its movements."""
    ledger = get_ledger()
    drift = ledger.check_balances()

    if not drift:
        click.echo("PASS All balances match their movement logs")
        return

    for entry in drift:
        click.echo(
            f"DRIFT product {entry['product_id']} ({entry['product_name']}): "
            f"quantity {entry['actual_quantity']} != {entry['expected_quantity']}, "
            f"value {entry['actual_total_value']} != {entry['expected_total_value']}"
        )

    if not fix:
        click.echo(f"FAIL {len(drift)} balance(s) drifted; rerun with --fix to rebuild")
        raise SystemExit(1)

    for entry in drift:
        ledger.rebuild_balance(entry["product_id"])
    click.echo(f"PASS Rebuilt {len(drift)} balance(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
