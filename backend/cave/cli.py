# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/cave/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (use "flask db upgrade" for migrated deployments).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with admin and active flags.
# - python -m flask users create --username admin --email admin@cave.local --password "Password123!" --admin
#   Create a user (prompts if options are omitted).
#
# Cave operations:
# - python -m flask cave events
#   List events with their windows and limits.
# - python -m flask cave create-event --title "Friday Night" --start "2024-06-01 18:00:00" --end "2024-06-01 23:00:00" --time-limit 30
#   Create an event (times are UTC).
# - python -m flask cave create-ticket --event-id 2 --code VIP-1 [--owner-id 5] [--expiry "2024-06-01 23:00:00"]
#   Issue a ticket for a ticketed event; --owner-id makes it personal.
# - python -m flask cave stats
#   Print the operator rollup.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.events import EVENT_KINDS, ALLOWED_PAY_OPTIONS
from .services.auth_service import create_user, PasswordValidationError
from .services import event_service, ticket_service, stats_service
from .services.errors import CaveError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--admin', 'is_admin', is_flag=True, help='Grant Cave operator access')
@with_appcontext
def create_user_cli(username, email, password, is_admin):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            is_admin=is_admin,
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    role = "admin" if user.is_admin else "visitor"
    click.echo(f"PASS Created user: {username} ({email}) as {role} (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Admin':<7} {'Active'}")
    click.echo("="*80)

    for user in users:
        admin_str = "Yes" if user.is_admin else "No"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {admin_str:<7} {active_str}")

    click.echo("="*80 + "\n")


@click.group('cave')
def cave_group():
    """Cave event, ticket and stats commands."""


@cave_group.command('events')
@with_appcontext
def list_events_cli():
    """List events with their windows and limits."""
    events = event_service.list_events()

    if not events:
        click.echo("No events found.")
        return

    click.echo("\n" + "="*110)
    click.echo(
        f"{'ID':<5} {'Title':<25} {'Kind':<10} {'Start':<20} {'End':<20} "
        f"{'Limit':<6} {'Visits':<7} {'Active'}"
    )
    click.echo("="*110)

    for event in events:
        active_str = "Yes" if event.is_active else "No"
        click.echo(
            f"{event.id:<5} {event.title[:25]:<25} {event.kind:<10} "
            f"{event.start_time:%Y-%m-%d %H:%M}{'':<4} {event.end_time:%Y-%m-%d %H:%M}{'':<4} "
            f"{event.user_time_limit:<6} {event.max_participations_per_user:<7} {active_str}"
        )

    click.echo("="*110 + "\n")


@cave_group.command('create-event')
@click.option('--title', required=True, help='Event title')
@click.option('--start', 'start_time', type=click.DateTime(), required=True, help='Window start (UTC)')
@click.option('--end', 'end_time', type=click.DateTime(), required=True, help='Window end (UTC)')
@click.option('--time-limit', 'user_time_limit', type=int, required=True, help='Minutes per session')
@click.option('--kind', type=click.Choice(EVENT_KINDS), default='scheduled', show_default=True)
@click.option('--visits', 'max_participations_per_user', type=int, default=1, show_default=True,
              help='Sessions each user may open for this event')
@click.option('--max-concurrent', type=int, default=1, show_default=True)
@click.option('--purchase-cap', type=int, default=0, show_default=True)
@click.option('--allowed-pay', type=click.Choice(ALLOWED_PAY_OPTIONS), default='both', show_default=True)
@click.option('--description', default=None)
@with_appcontext
def create_event_cli(**options):
    """Create a Cave event."""
    try:
        event = event_service.create_event(**options)
    except CaveError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Created event: {event.title} (ID: {event.id}, kind: {event.kind})")


@cave_group.command('create-ticket')
@click.option('--event-id', type=int, required=True, help='Ticketed event ID')
@click.option('--code', required=True, help='Ticket code (unique)')
@click.option('--owner-id', 'owner_user_id', type=int, default=None,
              help='Make the ticket personal to this user')
@click.option('--expiry', type=click.DateTime(), default=None, help='Expiry (UTC)')
@click.option('--max-use', type=int, default=1, show_default=True)
@with_appcontext
def create_ticket_cli(event_id, code, owner_user_id, expiry, max_use):
    """Issue a ticket for a ticketed event."""
    try:
        ticket = ticket_service.create_ticket(
            event_id=event_id,
            code=code,
            is_personal=owner_user_id is not None,
            owner_user_id=owner_user_id,
            expiry=expiry,
            max_use=max_use,
        )
    except CaveError as e:
        click.echo(f"FAIL {e.message}")
        return

    kind = f"personal (owner {ticket.owner_user_id})" if ticket.is_personal else "shared"
    click.echo(f"PASS Issued {kind} ticket {ticket.code} for event {ticket.event_id}")


@cave_group.command('stats')
@with_appcontext
def stats_cli():
    """Print the operator rollup."""
    stats = stats_service.get_cave_stats()
    for key, value in stats.to_dict().items():
        click.echo(f"{key:<18} {value}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(cave_group)
