# Overview: Flask CLI command groups for venue setup and inspection.

# backend/seatclock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# Venue setup:
# - python -m flask venue init-db
#   Create all tables (use migrations for existing databases).
# - python -m flask venue create-store --name "Shibuya" --code SBY --timezone Asia/Tokyo --tax-rate 10
# - python -m flask venue create-seat-type --store-id 1 --name "Counter" --price 1000 --unit-minutes 30
# - python -m flask venue create-table --store-id 1 --name "T1" --seat-type-id 1
# - python -m flask venue create-cast --store-id 1 --name "Aoi" --fee 3000
#
# Inspection:
# - python -m flask sessions list-open [--store-id 1]
#   Open sessions with clock state and current charge.
# - python -m flask checkouts history --store-id 1 [--start 2026-10-01] [--end 2026-11-01]
# - python -m flask checkouts report daily-summary --store-id 1 [--start-date 2026-10-01] [--end-date 2026-10-31]
#   Kinds: cast-sales, treated-drinks, daily-summary, hourly-sales (--start-date is the day), menu-sales.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Cast, SeatType, Store, Table
from .services import report_service
from .services.archive_service import checkout_history
from .services.charge_service import ChargeAccumulator
from .services.errors import BillingError
from .services.session_service import SessionController
from .services.tax_service import percent_to_bps
from .time_utils import parse_iso_datetime, utcnow, to_utc_z


@click.group('venue')
def venue_group():
    """Venue setup: stores, seat types, tables and casts."""


@venue_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@venue_group.command('create-store')
@click.option('--name', required=True, help='Store name')
@click.option('--code', help='Short code (unique)')
@click.option('--timezone', 'tz_name', default='UTC', help='IANA timezone for POS timestamps')
@click.option('--tax-rate', type=str, default=None, help='Inclusive tax rate in percent (e.g. 10 or 8.25)')
@click.option('--pos-enabled', is_flag=True, help='Register checkouts with the POS provider')
@with_appcontext
def create_store_cli(name, code, tz_name, tax_rate, pos_enabled):
    if code and db.session.query(Store).filter_by(code=code).first():
        click.echo(f"FAIL Store with code '{code}' already exists")
        return

    try:
        tax_rate_bps = percent_to_bps(tax_rate) if tax_rate is not None else None
    except (ValueError, ArithmeticError) as e:
        raise click.BadParameter(str(e), param_hint='--tax-rate')

    store = Store(name=name, code=code, timezone=tz_name, tax_rate_bps=tax_rate_bps, pos_enabled=pos_enabled)
    db.session.add(store)
    db.session.commit()
    click.echo(f"PASS Created store: {store.name} (ID: {store.id})")


@venue_group.command('create-seat-type')
@click.option('--store-id', type=int, required=True, help='Store ID')
@click.option('--name', required=True, help='Display name')
@click.option('--price', type=click.IntRange(min=0), required=True, help='Price per time unit (minor units)')
@click.option('--unit-minutes', type=click.IntRange(min=1), default=30, show_default=True, help='Minutes per billing unit')
@with_appcontext
def create_seat_type_cli(store_id, name, price, unit_minutes):
    if db.session.get(Store, store_id) is None:
        click.echo(f"FAIL Store {store_id} not found")
        return

    seat_type = SeatType(store_id=store_id, display_name=name, price_per_unit=price, time_unit_minutes=unit_minutes)
    db.session.add(seat_type)
    db.session.commit()
    click.echo(f"PASS Created seat type: {seat_type.display_name} (ID: {seat_type.id})")


@venue_group.command('create-table')
@click.option('--store-id', type=int, required=True, help='Store ID')
@click.option('--name', required=True, help='Table name (unique within store)')
@click.option('--seat-type-id', type=int, required=True, help='Seat type ID')
@with_appcontext
def create_table_cli(store_id, name, seat_type_id):
    seat_type = db.session.get(SeatType, seat_type_id)
    if seat_type is None or seat_type.store_id != store_id:
        click.echo(f"FAIL Seat type {seat_type_id} not found in store {store_id}")
        return
    if db.session.query(Table).filter_by(store_id=store_id, name=name).first():
        click.echo(f"FAIL Table '{name}' already exists in store {store_id}")
        return

    table = Table(store_id=store_id, name=name, seat_type_id=seat_type_id)
    db.session.add(table)
    db.session.commit()
    click.echo(f"PASS Created table: {table.name} (ID: {table.id})")


@venue_group.command('create-cast')
@click.option('--store-id', type=int, required=True, help='Store ID')
@click.option('--name', required=True, help='Display name')
@click.option('--fee', type=click.IntRange(min=0), default=0, show_default=True, help='Nomination fee (minor units)')
@with_appcontext
def create_cast_cli(store_id, name, fee):
    if db.session.get(Store, store_id) is None:
        click.echo(f"FAIL Store {store_id} not found")
        return

    cast = Cast(store_id=store_id, display_name=name, nomination_fee=fee, is_active=True)
    db.session.add(cast)
    db.session.commit()
    click.echo(f"PASS Created cast: {cast.display_name} (ID: {cast.id})")


@click.group('sessions')
def sessions_group():
    """Open session inspection."""


@sessions_group.command('list-open')
@click.option('--store-id', type=int, help='Filter by store ID')
@with_appcontext
def list_open_sessions(store_id):
    """List open sessions with their current charge."""
    sessions = SessionController(db.session).open_sessions(store_id)
    if not sessions:
        click.echo("No open sessions.")
        return

    accumulator = ChargeAccumulator(db.session)
    now = utcnow()

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'Table':<10} {'State':<12} {'Guests':<8} {'Seated at':<22} {'Charge'}")
    click.echo("="*80)
    for table_session in sessions:
        try:
            charge = str(accumulator.current_charge(table_session, now))
        except BillingError as e:
            charge = f"ERROR ({e})"
        table_name = table_session.table.name if table_session.table else table_session.table_id
        click.echo(
            f"{table_session.id:<6} {table_name:<10} {table_session.clock_state:<12} "
            f"{table_session.guest_count:<8} {to_utc_z(table_session.start_at):<22} {charge}"
        )
    click.echo("="*80 + "\n")


@click.group('checkouts')
def checkouts_group():
    """Archived checkout reporting."""


@checkouts_group.command('history')
@click.option('--store-id', type=int, required=True, help='Store ID')
@click.option('--start', help='ISO-8601 start (inclusive)')
@click.option('--end', help='ISO-8601 end (exclusive)')
@with_appcontext
def checkout_history_cli(store_id, start, end):
    try:
        start_at = parse_iso_datetime(start)
        end_at = parse_iso_datetime(end)
    except ValueError as e:
        raise click.BadParameter(str(e))

    rows = checkout_history(db.session, store_id, start_at, end_at)
    if not rows:
        click.echo("No checkouts found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<6} {'Checkout at':<22} {'Table':<10} {'Stay':<6} {'Charge':<8} {'Orders':<8} {'Nom.':<8} {'Total'}")
    click.echo("="*90)
    for row in rows:
        click.echo(
            f"{row.id:<6} {to_utc_z(row.checkout_at):<22} {row.table_name or '-':<10} {row.stay_minutes:<6} "
            f"{row.charge_amount:<8} {row.order_amount:<8} {row.nomination_fee:<8} {row.total_amount}"
        )
    click.echo("="*90)
    click.echo(f"{len(rows)} checkouts, total {sum(r.total_amount for r in rows)}\n")


REPORTS = ('cast-sales', 'treated-drinks', 'daily-summary', 'hourly-sales', 'menu-sales')


@checkouts_group.command('report')
@click.argument('kind', type=click.Choice(REPORTS))
@click.option('--store-id', type=int, required=True, help='Store ID')
@click.option('--start-date', type=click.DateTime(formats=['%Y-%m-%d']), help='First store-local day (inclusive)')
@click.option('--end-date', type=click.DateTime(formats=['%Y-%m-%d']), help='Last store-local day (inclusive)')
@click.option('--cast-id', type=int, help='Restrict cast reports to one cast')
@click.option('--interval', type=click.Choice(['30', '60']), default='60', show_default=True, help='Hourly slot size in minutes')
@with_appcontext
def checkout_report_cli(kind, store_id, start_date, end_date, cast_id, interval):
    """Print an archived-checkout report as JSON."""
    start = start_date.date() if start_date else None
    end = end_date.date() if end_date else None
    try:
        if kind == 'cast-sales':
            report = report_service.cast_sales(db.session, store_id=store_id, start_date=start, end_date=end, cast_id=cast_id)
        elif kind == 'treated-drinks':
            report = report_service.treated_drinks(db.session, store_id=store_id, start_date=start, end_date=end, cast_id=cast_id)
        elif kind == 'daily-summary':
            report = report_service.daily_summary(db.session, store_id=store_id, start_date=start, end_date=end)
        elif kind == 'hourly-sales':
            report = report_service.hourly_sales(db.session, store_id=store_id, day=start, interval_minutes=int(interval))
        else:
            report = report_service.menu_sales(db.session, store_id=store_id, start_date=start, end_date=end)
    except BillingError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(json.dumps(report, indent=2, ensure_ascii=False))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(venue_group)
    app.cli.add_command(sessions_group)
    app.cli.add_command(checkouts_group)
