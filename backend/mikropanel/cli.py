# Overview: Flask CLI command groups for bootstrap, billing routines, and maintenance.

# backend/mikropanel/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--owner owner --password "..."]
#   Idempotent bootstrap: creates tables, default zones and (optionally) the first owner.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username ana --password "..." --role tech
#   Create a user (prompts if options are omitted).
# - python -m flask users set-role ana admin
#   Change a user's role.
# - python -m flask users permissions [--role tech] [--category BILLING]
#   List permissions (optionally filtered by role or category).
#
# Billing routines (cron):
# - python -m flask billing auto-close [--date 2025-05-05]
#   Cycle-day routine: save the closing, then archive and reset adjustments.
# - python -m flask billing reconcile-expenses
#   Recreate missing expense adjustments and remove orphaned ones.
# - python -m flask billing force-collection [--month 2025-05]
#   Rebuild the month's collection batch from current clients and tariffs.
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired or revoked sessions older than the retention window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .permissions import PermissionCategory, get_all_permission_codes, get_permission_definition, get_role_permissions
from .services.auth_service import create_user, validate_role, PasswordValidationError
from .services import closing_service, collection_service, expense_service, session_service, zone_service
from .time_utils import parse_iso_date, utcnow
from .validation import ValidationError, ConflictError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--owner', 'owner_username', default=None, help='Create this owner account if missing')
@click.option('--password', default=None, help='Owner password (prompted when --owner is given)')
@with_appcontext
def init_system(owner_username, password):
    """
    Initialize MikroPanel: tables, default zones and, optionally, the first owner.

    Safe to run repeatedly; existing zones and users are left untouched.
    """
    click.echo("START Initializing MikroPanel...")

    db.create_all()
    click.echo("PASS Tables ready")

    created = zone_service.seed_default_zones()
    db.session.commit()
    click.echo(f"PASS Default zones: {created} created")

    if owner_username:
        if db.session.query(User).filter_by(username=owner_username.strip().lower()).first():
            click.echo(f"PASS Owner '{owner_username}' already exists")
        else:
            if not password:
                password = click.prompt('Owner password', hide_input=True, confirmation_prompt=True)
            try:
                create_user(username=owner_username, password=password, role="owner")
                db.session.commit()
                click.echo(f"PASS Created owner: {owner_username}")
            except (ValidationError, ConflictError) as e:
                db.session.rollback()
                click.echo(f"FAIL Could not create owner: {str(e)}")

    click.echo("DONE MikroPanel initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables (deletes all data)."""
    if not yes:
        click.confirm('This will DELETE ALL DATA. Continue?', abort=True)

    db.drop_all()
    db.create_all()
    zone_service.seed_default_zones()
    db.session.commit()
    click.echo("PASS Database reset; default zones seeded")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users with role and active status."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found. Run 'python -m flask users create' first.")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.role:<8} {status}")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['owner', 'admin', 'tech', 'envios', 'viewer']), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, password, role):
    """Create a new user; the password is hashed with bcrypt."""
    try:
        create_user(username=username, password=password, role=role)
        db.session.commit()
        click.echo(f"PASS Created user: {username} with role '{role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")

    except PasswordValidationError as e:
        db.session.rollback()
        click.echo(f"FAIL Password validation failed: {str(e)}")
    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('set-role')
@click.argument('username')
@click.argument('role')
@with_appcontext
def set_role_cli(username, role):
    """Change a user's role (operator override, no owner check)."""
    user = db.session.query(User).filter_by(username=username.strip().lower()).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return
    try:
        user.role = validate_role(role)
    except ValidationError as e:
        click.echo(f"FAIL {str(e)}")
        return
    user.updated_at = utcnow()
    db.session.commit()
    click.echo(f"PASS {user.username} is now '{user.role}'")


@users_group.command('permissions')
@click.option('--role', type=click.Choice(['owner', 'admin', 'tech', 'envios', 'viewer']), default=None,
              help='Only permissions granted to this role')
@click.option('--category', default=None, help='Only permissions in this category (e.g. BILLING)')
def list_permissions_cli(role, category):
    """List permission codes with their category and description."""
    codes = get_all_permission_codes()
    if role:
        granted = get_role_permissions(role)
        codes = [c for c in codes if c in granted]
    if category:
        category = category.strip().upper()
        known = {v for k, v in vars(PermissionCategory).items() if not k.startswith('_')}
        if category not in known:
            click.echo(f"FAIL Unknown category '{category}' (known: {', '.join(sorted(known))})")
            return
        codes = [c for c in codes if get_permission_definition(c)["category"] == category]

    for code in codes:
        perm = get_permission_definition(code)
        click.echo(f"{perm['category']:<10} {perm['code']:<24} {perm['description']}")
    click.echo(f"\n{len(codes)} permission(s)")


@click.group('billing')
def billing_group():
    """Monthly billing routines meant to run from cron."""


@billing_group.command('auto-close')
@click.option('--date', 'on_date', default=None, help='Run as if today were this ISO date')
@with_appcontext
def auto_close_cli(on_date):
    """
    Cycle-day routine.

    On the billing cycle day: save the month's closing once, then archive and
    reset its adjustments once. Any other day is a no-op.
    """
    today = parse_iso_date(on_date) if on_date else None
    result = closing_service.auto_close(today)
    db.session.commit()
    if not result["saved"] and not result["reset"]:
        click.echo(f"SKIP Nothing to do for {result['year_month']}")
        return
    if result["saved"]:
        click.echo(f"PASS Saved closing for {result['year_month']}")
    if result["reset"]:
        click.echo(f"PASS Archived and reset adjustments for {result['year_month']}")


@billing_group.command('reconcile-expenses')
@with_appcontext
def reconcile_expenses_cli():
    """Recreate missing expense adjustments and remove orphaned ones."""
    result = expense_service.reconcile_expense_adjustments()
    db.session.commit()
    click.echo(f"PASS Expense adjustments: {result['created']} created, {result['removed']} removed")


@billing_group.command('force-collection')
@click.option('--month', 'year_month', default=None, help='YYYY-MM (default: current month)')
@with_appcontext
def force_collection_cli(year_month):
    """Rebuild a month's collection batch and open it to collectors."""
    try:
        batch = collection_service.get_or_build_batch(year_month, force=True, actor="system")
        db.session.commit()
    except ValidationError as e:
        db.session.rollback()
        click.echo(f"FAIL {str(e)}")
        return
    click.echo(f"PASS Rebuilt collection {batch.year_month}: {len(batch.items)} items")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """Delete expired or revoked sessions older than the retention window."""
    deleted = session_service.cleanup_expired_sessions(retention_days)
    click.echo(f"PASS Deleted {deleted} sessions")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(billing_group)
    app.cli.add_command(maintenance_group)
