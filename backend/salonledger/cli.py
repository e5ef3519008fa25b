# Overview: Flask CLI command groups for bootstrap and maintenance.

# backend/salonledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--tenant "Salon Name"] [--tenant-code SALON]
#   Idempotent bootstrap: creates the tables, a default tenant, a main branch and an owner login.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - python -m flask tenants list
# - python -m flask tenants create --name "Studio Bela" --code "BELA"
# - python -m flask tenants add-branch --tenant-id 1 --name "Centro" --code "CTR" --timezone "America/Sao_Paulo"
#
# Users:
# - python -m flask users create --tenant-id 1 --username ana --password "..." --role staff --branch-id 1
#
# Maintenance:
# - python -m flask appointments auto-complete [--tenant-id 1]
#   Complete confirmed appointments of today whose service time has passed (run from cron).
# - python -m flask sessions cleanup --older-than-days 30
#   Delete expired or revoked sessions.

import click
from flask.cli import with_appcontext
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import LedgerError
from .extensions import db
from .models import Branch, Tenant, User
from .models.auth import ROLES, ROLE_OWNER
from .services.appointment_service import auto_complete_elapsed
from .services.auth_service import create_user
from .services.session_service import cleanup_expired_sessions


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--tenant', 'tenant_name', default='Default Salon', help='Tenant name')
@click.option('--tenant-code', default='DEFAULT', help='Tenant code used at login')
@click.option('--owner-username', default='owner', show_default=True)
@click.option('--owner-password', default='ChangeMe123!', show_default=True)
@with_appcontext
def init_system(tenant_name, tenant_code, owner_username, owner_password):
    """
    Create tables, a default tenant with a main branch, and an owner login.

    SECURITY: Change the owner password immediately in production!
    """
    click.echo("START Initializing SalonLedger...")
    db.create_all()

    tenant = db.session.query(Tenant).filter_by(code=tenant_code).first()
    if not tenant:
        tenant = Tenant(name=tenant_name, code=tenant_code, is_active=True)
        db.session.add(tenant)
        db.session.commit()
        click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")
    else:
        click.echo(f"PASS Using existing tenant: {tenant.name} (ID: {tenant.id})")

    branch = db.session.query(Branch).filter_by(tenant_id=tenant.id).first()
    if not branch:
        branch = Branch(tenant_id=tenant.id, name="Main", code="MAIN")
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    owner = db.session.query(User).filter_by(tenant_id=tenant.id, username=owner_username).first()
    if not owner:
        owner = create_user(tenant.id, owner_username, owner_password, role=ROLE_OWNER)
        click.echo(f"PASS Created owner login: {owner.username}")
    else:
        click.echo(f"PASS Owner login exists: {owner.username}")

    click.echo("DONE")


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


@click.group('tenants')
def tenants_group():
    """Tenant and branch management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    tenants = db.session.query(Tenant).all()
    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Branches'}")
    click.echo("="*72)
    for tenant in tenants:
        branch_count = db.session.query(Branch).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.code or '-':<15} {active_str:<8} {branch_count}")
    click.echo("="*72 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', required=True, help='Short code (unique), used at login')
@with_appcontext
def create_tenant_cli(name, code):
    existing = db.session.query(Tenant).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Tenant with code '{code}' already exists")
        return

    tenant = Tenant(name=name, code=code, is_active=True)
    db.session.add(tenant)
    db.session.commit()
    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")


@tenants_group.command('add-branch')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--name', required=True, help='Branch name')
@click.option('--code', help='Branch code (unique within tenant)')
@click.option('--timezone', 'tz_name', default='UTC', show_default=True, help='IANA timezone')
@with_appcontext
def add_branch_cli(tenant_id, name, code, tz_name):
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if not tenant:
        click.echo(f"FAIL Tenant ID {tenant_id} not found")
        return

    try:
        ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        click.echo(f"FAIL Unknown timezone '{tz_name}'")
        return

    existing = db.session.query(Branch).filter_by(tenant_id=tenant_id, name=name).first()
    if existing:
        click.echo(f"FAIL Branch '{name}' already exists in this tenant")
        return

    branch = Branch(tenant_id=tenant_id, name=name, code=code, timezone=tz_name)
    db.session.add(branch)
    db.session.commit()
    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}) in tenant '{tenant.name}'")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--branch-id', type=int, default=None, help='Assigned branch (owners usually have none)')
@click.option('--email', default=None)
@with_appcontext
def create_user_cli(tenant_id, username, password, role, branch_id, email):
    try:
        user = create_user(tenant_id, username, password, role=role, branch_id=branch_id, email=email)
    except LedgerError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}, role: {user.role})")


@click.group('appointments')
def appointments_group():
    """Appointment maintenance commands."""


@appointments_group.command('auto-complete')
@click.option('--tenant-id', type=int, default=None, help='Limit to one tenant')
@with_appcontext
def auto_complete_cli(tenant_id):
    completed = auto_complete_elapsed(tenant_id=tenant_id)
    click.echo(f"Completed {len(completed)} appointment(s).")


@click.group('sessions')
def sessions_group():
    """Session maintenance commands."""


@sessions_group.command('cleanup')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(older_than_days):
    deleted = cleanup_expired_sessions(older_than_days=older_than_days)
    click.echo(f"Deleted {deleted} expired or revoked session(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(users_group)
    app.cli.add_command(appointments_group)
    app.cli.add_command(sessions_group)
