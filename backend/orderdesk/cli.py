# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/orderdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Scheduling:
# - python -m flask schedule seed-config [--force]
#   Write the starter delivery configuration (skipped if one exists, unless --force).
# - python -m flask schedule show --mode DELIVERY --days 7
#   Print the resolved availability for the next N days.
# - python -m flask schedule release-expired
#   Give back draft slot holds whose hold time has lapsed.
#
# Catalog:
# - python -m flask catalog seed
#   Insert the sample catalog (existing products are left untouched).
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import availability_service, catalog_service, delivery_config_service, reservation_service
from .services.errors import OrderDeskError


@click.group('schedule')
def schedule_group():
    """Delivery configuration and availability commands."""


@schedule_group.command('seed-config')
@click.option('--force', is_flag=True, help='Overwrite an existing configuration')
@with_appcontext
def seed_config(force):
    """Save the starter delivery configuration."""
    try:
        existing = delivery_config_service.load_delivery_config()
    except OrderDeskError:
        existing = None

    if existing is not None and not force:
        click.echo(f"SKIP Delivery config already exists (version {existing.version}). Use --force to overwrite.")
        return

    config = delivery_config_service.save_delivery_config(
        delivery_config_service.default_config_payload(), actor="cli"
    )
    click.echo(f"PASS Delivery config saved (version {config.version}, timezone {config.timezone})")


@schedule_group.command('show')
@click.option('--mode', default='DELIVERY', type=click.Choice(['DELIVERY', 'PICKUP'], case_sensitive=False))
@click.option('--days', default=7, type=click.IntRange(1, availability_service.MAX_RANGE_DAYS))
@with_appcontext
def show_schedule(mode, days):
    """Print resolved availability."""
    try:
        result = availability_service.get_availability(None, days, mode)
    except OrderDeskError as e:
        raise click.ClickException(e.message)

    if not result:
        click.echo(f"{mode.upper()} is disabled.")
        return

    for day in result:
        state = "OPEN  " if day.open else "CLOSED"
        reason = f" ({day.reason})" if day.reason else ""
        click.echo(f"{day.date.isoformat()} {state} {day.daily_booked}/{day.daily_capacity}{reason}")
        for slot in day.slots:
            flag = "+" if slot.enabled else "-"
            click.echo(f"    {flag} {slot.id:<12} {slot.booked}/{slot.capacity}  {slot.label}")


@schedule_group.command('release-expired')
@with_appcontext
def release_expired():
    """Release lapsed draft holds."""
    released = reservation_service.release_expired_holds()
    click.echo(f"PASS Released {released} expired hold(s)")


@click.group('catalog')
def catalog_group():
    """Catalog bootstrap commands."""


@catalog_group.command('seed')
@with_appcontext
def seed_catalog():
    """Insert the sample catalog."""
    created = catalog_service.seed_catalog(catalog_service.SAMPLE_CATALOG)
    db.session.commit()
    click.echo(f"PASS Catalog seeded: {created} product(s) created")


@click.group('system')
def system_group():
    """System maintenance commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask schedule seed-config' to configure scheduling.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(schedule_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(system_group)
