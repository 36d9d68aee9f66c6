# Overview: Flask CLI command groups for bootstrap, payroll runs, and rotation jobs.

# backend/guildhall/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and seeds default configuration values.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Members:
# - python -m flask members list [--role INTERN]
# - python -m flask members create --username alice --role MEMBER [--email alice@example.org]
# - python -m flask members deactivate --user-id 7
#
# Points:
# - python -m flask points add --user-id 3 --category TASK_COMPLETION --amount 8 [--deduct]
#
# Payroll (monthly cron: allocate after month end, archive after review):
# - python -m flask payroll allocate [--period 2024-05] [--actor-id 1]
# - python -m flask payroll report
# - python -m flask payroll archive [--actor-id 1] --yes
#
# Rotation (daily/weekly cron):
# - python -m flask rotation evaluate [--period 2024-05]
# - python -m flask rotation mark-dismissal [--as-of 2024-06]
# - python -m flask rotation swap --intern-id 7 --member-id 3 [--actor alice]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import MembershipRole
from .services import (
    allocation_batch_service,
    allocation_service,
    config_service,
    member_service,
    points_service,
    role_change_service,
    rotation_service,
)
from .validation import ConsistencyError, NotFoundError

# ValidationError, ConfigurationError and ConcurrencyError are ValueErrors
SERVICE_ERRORS = (ValueError, NotFoundError)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create missing tables and seed default configuration values."""
    click.echo("START Initializing guildhall...")
    db.create_all()
    added = config_service.seed_defaults()
    click.echo(f"PASS Seeded {added} configuration values")
    for key, item in config_service.get_all().items():
        click.echo(f"   {key:<32} {item['value']!s:<12} ({item['source']})")
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


# =============================================================================
# MEMBERS
# =============================================================================

@click.group('members')
def members_group():
    """Member roster commands."""


@members_group.command('list')
@click.option('--role', default=None, help='Filter by role (e.g. INTERN, MEMBER)')
@with_appcontext
def list_members_cli(role):
    """List members with role and dismissal flag."""
    try:
        members = member_service.list_members(role)
    except ValueError as e:
        raise click.ClickException(str(e))

    if not members:
        click.echo("No members found.")
        return

    click.echo("\n" + "=" * 70)
    click.echo(f"{'ID':<5} {'Username':<24} {'Role':<14} {'Seat':<6} {'Pending dismissal'}")
    click.echo("=" * 70)
    for m in members:
        seat = "Yes" if m.holds_formal_seat else "-"
        pending = "Yes" if m.pending_dismissal else "-"
        click.echo(f"{m.id:<5} {m.username:<24} {m.role:<14} {seat:<6} {pending}")
    click.echo("=" * 70)
    click.echo(f"Formal seats: {member_service.count_formal_seats()} / "
               f"{config_service.allocation_settings().seat_count}\n")


@members_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', default=None, help='Email address')
@click.option('--role', default=MembershipRole.APPLICANT.value,
              type=click.Choice([r.value for r in MembershipRole], case_sensitive=False))
@with_appcontext
def create_member_cli(username, email, role):
    """Add a member to the roster."""
    try:
        user = member_service.create_member(username=username, email=email, role=role)
    except SERVICE_ERRORS as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created member {user.username} (ID: {user.id}, role {user.role})")


@members_group.command('deactivate')
@click.option('--user-id', required=True, type=int)
@with_appcontext
def deactivate_member_cli(user_id):
    """Take a non-seat member off the active roster."""
    try:
        user = member_service.deactivate_member(user_id)
    except SERVICE_ERRORS as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Deactivated member {user.username} (ID: {user.id})")


# =============================================================================
# POINTS
# =============================================================================

@click.group('points')
def points_group():
    """Points ledger commands."""


@points_group.command('add')
@click.option('--user-id', required=True, type=int)
@click.option('--category', required=True,
              type=click.Choice(sorted(points_service.CATEGORY_RULES), case_sensitive=False))
@click.option('--amount', required=True, type=int)
@click.option('--description', default=None)
@click.option('--deduct', is_flag=True, help='Record as a deduction')
@with_appcontext
def add_points_cli(user_id, category, amount, description, deduct):
    """Append an award (or deduction) to the ledger."""
    op = points_service.deduct_points if deduct else points_service.add_points
    try:
        entry = op(user_id=user_id, category=category, amount=amount, description=description)
    except SERVICE_ERRORS as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Entry {entry.id}: user {user_id} {entry.category} {entry.amount:+d} "
               f"(total {points_service.get_points_total(user_id)})")


# =============================================================================
# PAYROLL
# =============================================================================

@click.group('payroll')
def payroll_group():
    """Compensation allocation commands."""


@payroll_group.command('allocate')
@click.option('--period', default=None, help='YYYY-MM (defaults to the current month)')
@click.option('--actor-id', default=None, type=int)
@with_appcontext
def allocate_cli(period, actor_id):
    """Run the allocation engine for a period."""
    try:
        records = allocation_service.allocate(period=period, actor_id=actor_id)
    except (ConsistencyError, *SERVICE_ERRORS) as e:
        raise click.ClickException(str(e))

    click.echo(f"{'User':<6} {'Points':>8} {'Units':>8}")
    for r in records:
        click.echo(f"{r.user_id:<6} {r.total_points:>8} {r.amount_units:>8}")
    click.echo(f"PASS Allocated {sum(r.amount_units for r in records)} units to {len(records)} seats")


@payroll_group.command('report')
@with_appcontext
def report_cli():
    """Summarize the open allocation records."""
    try:
        report = allocation_service.generate_report()
    except NotFoundError as e:
        click.echo(str(e))
        return

    click.echo(f"Budget: {report['budget_total']}  Allocated: {report['allocated_total']}  "
               f"Remaining: {report['remaining_amount']}")
    for d in report["details"]:
        click.echo(f"  {d['username']:<24} {d['role']:<12} {d['period']} "
                   f"points {d['total_points']:>5}  units {d['amount_units']:>5}")


@payroll_group.command('archive')
@click.option('--actor-id', default=None, type=int)
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def archive_cli(actor_id, yes):
    """Freeze every open allocation record. Cannot be undone."""
    if not yes:
        click.confirm("WARN Archiving cannot be undone. Continue?", abort=True)
    count = allocation_batch_service.archive(actor_id=actor_id)
    click.echo(f"PASS Archived {count} records")


# =============================================================================
# ROTATION
# =============================================================================

@click.group('rotation')
def rotation_group():
    """Member rotation commands."""


@rotation_group.command('evaluate')
@click.option('--period', default=None, help='YYYY-MM used for promotion eligibility')
@with_appcontext
def evaluate_cli(period):
    """Show promotion-eligible interns and demotion candidates."""
    try:
        summary = rotation_service.evaluate(period)
    except SERVICE_ERRORS as e:
        raise click.ClickException(str(e))

    click.echo(f"Period {summary['period']}")
    click.echo("Promotion eligible: " + (", ".join(u["username"] for u in summary["promotion_eligible"]) or "-"))
    click.echo("Demotion candidates: " + (", ".join(u["username"] for u in summary["demotion_candidates"]) or "-"))
    click.echo("Review triggered" if summary["triggered"] else "Review not triggered")


@rotation_group.command('mark-dismissal')
@click.option('--as-of', default=None, help='YYYY-MM; the preceding months are checked')
@with_appcontext
def mark_dismissal_cli(as_of):
    """Flag interns below the dismissal threshold."""
    try:
        marked = rotation_service.mark_dismissal_candidates(as_of)
    except SERVICE_ERRORS as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Marked {len(marked)} interns pending dismissal")
    for u in marked:
        click.echo(f"   {u.id:<5} {u.username}")


@rotation_group.command('swap')
@click.option('--intern-id', required=True, type=int)
@click.option('--member-id', required=True, type=int)
@click.option('--actor', default=None, help='Recorded on the role change history')
@with_appcontext
def swap_cli(intern_id, member_id, actor):
    """Promote an intern into a formal seat held by member-id."""
    try:
        role_change_service.execute_swap(intern_id, member_id, actor=actor)
    except (ConsistencyError, *SERVICE_ERRORS) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS User {intern_id} promoted, user {member_id} moved to intern")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(members_group)
    app.cli.add_command(points_group)
    app.cli.add_command(payroll_group)
    app.cli.add_command(rotation_group)
