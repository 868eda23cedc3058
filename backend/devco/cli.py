# Overview: Flask CLI command groups for bootstrap, inspection, sync and maintenance.

# backend/devco/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated databases).
# - python -m flask system init-roles
#   Create the default roles (Super Admin, Admin, Manager, Staff, Viewer).
#
# Users:
# - python -m flask users create --email admin@devco.local --password "Password123" --role "Super Admin"
# - python -m flask users list
#
# Permissions:
# - python -m flask perms check admin@devco.local employees view [--field hourly_rate_site]
# - python -m flask perms audit [--user-id 3] [--limit 20]
#
# QuickBooks:
# - python -m flask qbo sync [--project-id 123]
#
# Maintenance:
# - python -m flask maintenance cleanup-webhook-logs --retention-days 30

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import DevcoError
from .extensions import db
from .models import User
from .services import maintenance_service, qbo_sync_service, role_service
from .services.auth_service import create_user
from .services.permission_service import PermissionChecker, get_user_permissions, is_super_admin


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('init-roles')
@with_appcontext
def init_roles():
    """Create default roles. Idempotent."""
    created = role_service.seed_default_roles()
    click.echo(f"PASS Created {created} default role(s)")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', prompt=True, help='Role name, or "Super Admin"')
@click.option('--first-name', default=None)
@click.option('--last-name', default=None)
@click.option('--department', default=None)
@with_appcontext
def create_user_cli(email, password, role, first_name, last_name, department):
    """
    Create a new employee account.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter, one lowercase letter and one digit
    """
    if not is_super_admin(role) and not role_service.find_role(role):
        click.echo(f"FAIL Role '{role}' not found")
        return

    try:
        user = create_user(
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            department=department,
        )
        role_service.assign_role(user.id, role, changed_by="cli")
    except DevcoError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {e.message}")
        return

    click.echo(f"PASS Created user: {user.email} with role '{user.app_role}' (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role, department and active status."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Role':<18} {'Department':<20} {'Active'}")
    click.echo("=" * 90)
    for user in users:
        click.echo(
            f"{user.id:<5} {user.email:<35} {(user.app_role or '-'):<18} "
            f"{(user.department or '-'):<20} {'Yes' if user.is_active else 'No'}"
        )
    click.echo("=" * 90)


# =============================================================================
# PERMISSIONS
# =============================================================================

@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('check')
@click.argument('email')
@click.argument('module')
@click.argument('action')
@click.option('--field', 'field_key', default=None, help='Field key to check')
@with_appcontext
def check_permission_cli(email, module, action, field_key):
    """Check whether a user may perform an action on a module."""
    user = db.session.query(User).filter(db.func.lower(User.email) == email.lower()).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return

    checker = PermissionChecker(user, get_user_permissions(user))
    decision = checker.decide(module, action, field_key)
    target = f"{module}.{action}" + (f" [{field_key}]" if field_key else "")

    if decision.allowed:
        click.echo(f"PASS {email} ({user.app_role}) may {target} with scope '{decision.scope}'")
    else:
        click.echo(f"FAIL {email} ({user.app_role}) may not {target}")
    if decision.restricted_fields:
        click.echo(f"     Restricted fields: {', '.join(sorted(decision.restricted_fields))}")
    if is_super_admin(user.app_role):
        click.echo("     Super Admin bypasses all checks")


@perms_group.command('audit')
@click.option('--user-id', type=int, default=None)
@click.option('--target-type', type=click.Choice(['role', 'user_override', 'user_role']), default=None)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def audit_cli(user_id, target_type, limit):
    """Show recent permission changes."""
    entries = role_service.list_audit_logs(target_type=target_type, user_id=user_id, limit=limit)
    if not entries:
        click.echo("No audit entries found.")
        return
    for e in entries:
        scope = f" {e.module}.{e.action}" if e.module else ""
        click.echo(
            f"{e.created_at}  {e.change_type:<7} {e.target_type}:{e.target_id}{scope}"
            f"  by {e.changed_by or '-'}"
        )


# =============================================================================
# QUICKBOOKS
# =============================================================================

@click.group('qbo')
def qbo_group():
    """QuickBooks sync commands."""


@qbo_group.command('sync')
@click.option('--project-id', default=None, help='Sync one project with its transactions')
@with_appcontext
def qbo_sync_cli(project_id):
    """Sync one project, or the metadata of every project."""
    try:
        if project_id:
            project = qbo_sync_service.sync_project_to_db(project_id)
            click.echo(
                f"PASS Synced {project.project_id} ({project.project}): "
                f"{len(project.transactions or [])} transactions"
            )
        else:
            summary = qbo_sync_service.sync_all_projects()
            click.echo(f"PASS Synced {summary['synced']} of {summary['total']} projects ({summary['failed']} failed)")
    except DevcoError as e:
        current_app.logger.warning("CLI sync failed: %s", e.message)
        click.echo(f"FAIL {e.message}")


# =============================================================================
# MAINTENANCE
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-webhook-logs')
@click.option('--retention-days', type=int, default=None, help='Defaults to WEBHOOK_LOG_RETENTION_DAYS')
@with_appcontext
def cleanup_webhook_logs_cli(retention_days):
    """Delete webhook delivery logs older than the retention window."""
    retention_days = retention_days or current_app.config["WEBHOOK_LOG_RETENTION_DAYS"]
    deleted = maintenance_service.cleanup_webhook_logs(retention_days=retention_days)
    click.echo(f"Deleted {deleted} webhook logs older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(qbo_group)
    app.cli.add_command(maintenance_group)
