# Overview: Flask CLI command groups for bootstrap, roster setup, baselines and plans.

# backend/pms/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "pms:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-employee-id HQ-001]
#   Idempotent bootstrap: creates tables, the HQ admin and prints a bearer token.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Roster:
# - python -m flask org add-region --code NR --name "Northern Region"
# - python -m flask org add-area --code NR-A1 --name "Area 1" --region-id 1
# - python -m flask org add-branch --code ATOTE --name "Atote" --area-id 1
# - python -m flask org branches
# - python -m flask staff add --employee-id E100 --name "Abebe" --role "Staff" --position "MSO II" --branch-id 1
# - python -m flask staff list [--branch-id 1]
# - python -m flask staff issue-token --employee-id E100
#   Open a session and print its bearer token (login is handled upstream).
# - python -m flask staff revoke-token <token> [--reason "Left branch"]
#
# Baselines and plans:
# - python -m flask baselines import balances.xlsx --period 2025-H2 --date 2025-06-30
# - python -m flask baselines activate 2025-H2
# - python -m flask baselines periods
# - python -m flask plans upload plans.csv

from pathlib import Path

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Staff
from .positions import Role, position_to_display, role_to_display
from .services import baseline_service, org_service, plan_service, session_service
from .uploads import parse_file
from .validation import PMSError


class _LocalFile:
    """Just enough of an uploaded file for uploads.parse_file."""

    def __init__(self, path: Path):
        self.filename = path.name
        self.stream = path.open("rb")

    def close(self):
        self.stream.close()


def _read_rows(path: str) -> list:
    local = _LocalFile(Path(path))
    try:
        return parse_file(local)
    finally:
        local.close()


def _fail(error: PMSError):
    db.session.rollback()
    raise click.ClickException(f"{error.kind}: {error.message}")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-employee-id', default='HQ-001', help='Employee ID of the HQ admin')
@click.option('--admin-name', default='HQ Administrator', help='Name of the HQ admin')
@with_appcontext
def init_system(admin_employee_id, admin_name):
    """Create tables and the HQ admin (if missing), then issue an admin token."""
    click.echo("START Initializing PMS...")
    db.create_all()

    admin = db.session.query(Staff).filter_by(employee_id=admin_employee_id).first()
    if not admin:
        try:
            admin = org_service.create_staff(employee_id=admin_employee_id, name=admin_name, role=Role.ADMIN)
        except PMSError as e:
            _fail(e)
        click.echo(f"PASS Created admin {admin.name} (ID: {admin.id})")
    else:
        click.echo(f"PASS Using existing admin {admin.name} (ID: {admin.id})")

    _session, token = session_service.create_session(admin.id, user_agent="cli")
    click.echo(f"\nAdmin bearer token (shown once):\n{token}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DANGER: Drop all tables and recreate schema."""
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('org')
def org_group():
    """Regions, areas and branches."""


@org_group.command('add-region')
@click.option('--code', required=True)
@click.option('--name', required=True)
@with_appcontext
def add_region(code, name):
    try:
        region = org_service.create_region(code=code, name=name)
    except PMSError as e:
        _fail(e)
    click.echo(f"PASS Created region {region.code} (ID: {region.id})")


@org_group.command('add-area')
@click.option('--code', required=True)
@click.option('--name', required=True)
@click.option('--region-id', type=int, required=True)
@with_appcontext
def add_area(code, name, region_id):
    try:
        area = org_service.create_area(code=code, name=name, region_id=region_id)
    except PMSError as e:
        _fail(e)
    click.echo(f"PASS Created area {area.code} (ID: {area.id})")


@org_group.command('add-branch')
@click.option('--code', required=True)
@click.option('--name', required=True)
@click.option('--area-id', type=int)
@click.option('--region-id', type=int)
@with_appcontext
def add_branch(code, name, area_id, region_id):
    try:
        branch = org_service.create_branch(code=code, name=name, area_id=area_id, region_id=region_id)
    except PMSError as e:
        _fail(e)
    click.echo(f"PASS Created branch {branch.code} (ID: {branch.id})")


@org_group.command('branches')
@with_appcontext
def list_branches():
    branches = org_service.list_branches()
    if not branches:
        click.echo("No branches.")
        return
    for branch in branches:
        click.echo(f"{branch.id:>4}  {branch.code:<12} {branch.name}")


@click.group('staff')
def staff_group():
    """Roster members and their sessions."""


@staff_group.command('add')
@click.option('--employee-id', required=True)
@click.option('--name', required=True)
@click.option('--role', required=True, help='e.g. "Branch Manager", "Line Manager", "Staff"')
@click.option('--position', help='e.g. "Accountant", "MSO II"')
@click.option('--branch-id', type=int)
@click.option('--area-id', type=int)
@click.option('--email')
@with_appcontext
def add_staff(employee_id, name, role, position, branch_id, area_id, email):
    try:
        staff = org_service.create_staff(
            employee_id=employee_id,
            name=name,
            role=role,
            position=position,
            branch_id=branch_id,
            area_id=area_id,
            email=email,
        )
    except PMSError as e:
        _fail(e)
    click.echo(f"PASS Added {staff.name} (ID: {staff.id})")


@staff_group.command('list')
@click.option('--branch-id', type=int)
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive staff')
@with_appcontext
def list_staff(branch_id, include_inactive):
    for staff in org_service.list_staff(branch_id=branch_id, active_only=not include_inactive):
        position = position_to_display(staff.position) or "-"
        state = "active" if staff.is_active else "inactive"
        click.echo(f"{staff.id:>4}  {staff.employee_id:<10} {staff.name:<28} {role_to_display(staff.role):<18} {position:<16} {state}")


@staff_group.command('issue-token')
@click.option('--employee-id', required=True)
@with_appcontext
def issue_token(employee_id):
    staff = db.session.query(Staff).filter_by(employee_id=employee_id).first()
    if not staff:
        raise click.ClickException(f"Staff {employee_id} not found")
    try:
        _session, token = session_service.create_session(staff.id, user_agent="cli")
    except PMSError as e:
        _fail(e)
    click.echo(token)


@staff_group.command('revoke-token')
@click.argument('token')
@click.option('--reason', default='Revoked by operator')
@with_appcontext
def revoke_token(token, reason):
    if not session_service.revoke_session(token, reason):
        raise click.ClickException("No live session for that token")
    click.echo("PASS Session revoked")


@click.group('baselines')
def baselines_group():
    """Baseline balance imports and the active period."""


@baselines_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--period', 'baseline_period', required=True)
@click.option('--date', 'baseline_date', help='Snapshot date (YYYY-MM-DD)')
@click.option('--no-activate', is_flag=True, help='Import without making the period active')
@with_appcontext
def import_baselines(path, baseline_period, baseline_date, no_activate):
    try:
        result = baseline_service.import_baselines(
            _read_rows(path),
            baseline_period=baseline_period,
            baseline_date=baseline_date,
            make_active=not no_activate,
        )
    except PMSError as e:
        _fail(e)
    click.echo(
        f"PASS {result['processed']} rows: {result['created']} created, "
        f"{result['updated']} updated, {len(result['errors'])} errors"
    )
    for error in result["errors"][:20]:
        click.echo(f"  row {error['row']}: {'; '.join(error['errors'])}")


@baselines_group.command('activate')
@click.argument('baseline_period')
@with_appcontext
def activate_baseline(baseline_period):
    try:
        result = baseline_service.activate_period(baseline_period)
    except PMSError as e:
        _fail(e)
    click.echo(f"PASS {result['baseline_period']} active ({result['activated_accounts']} accounts)")


@baselines_group.command('periods')
@with_appcontext
def list_baseline_periods():
    for period in baseline_service.list_periods():
        marker = "*" if period["is_active"] else " "
        click.echo(f"{marker} {period['baseline_period']:<12} {period['account_count']:>7} accounts  {period['baseline_date']}")


@click.group('plans')
def plans_group():
    """Plan uploads and cascades."""


@plans_group.command('upload')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def upload_plans(path):
    try:
        result = plan_service.upload_plans(_read_rows(path))
    except PMSError as e:
        _fail(e)
    click.echo(f"PASS {result['created']} of {result['processed']} plans created")
    for error in result["errors"][:20]:
        click.echo(f"  row {error['row']}: {'; '.join(error['errors'])}")


@plans_group.command('recascade')
@click.argument('plan_id', type=int)
@with_appcontext
def recascade(plan_id):
    try:
        staff_plans = plan_service.recascade_plan(plan_id)
    except PMSError as e:
        _fail(e)
    click.echo(f"PASS Plan {plan_id} cascaded to {len(staff_plans)} staff")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(org_group)
    app.cli.add_command(staff_group)
    app.cli.add_command(baselines_group)
    app.cli.add_command(plans_group)
