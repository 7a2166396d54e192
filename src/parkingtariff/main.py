import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import click
from pydantic import ValidationError

from .client import ApiError, ParkingApiClient
from .config import Config
from .formatters import format_price
from .models import PriceException, PriceSource, WeeklyPriceRule
from .occupancy import OccupancyAggregator
from .tariff.history import VehicleHistoryReport
from .tariff.resolver import TariffScheduleResolver
from .tariff.valuation import SessionValuationEstimator
from .utils.time_utils import TimeZoneNormalizer


# Helper for unified logging and console output
def log_echo(message, nl=True):
    """Log message to file and echo to console"""
    logging.info(message.strip())
    click.echo(message, nl=nl)


def setup_logging(config):
    """
    File logging at the configured level. User-facing output goes through
    log_echo, so no console handler is installed.
    """
    log_config = config.logging
    log_file = log_config.file or "parkingtariff.log"
    log_level = getattr(logging, log_config.level.upper(), logging.INFO)

    logger = logging.getLogger()
    logger.setLevel(log_level)

    # clear existing handlers
    logger.handlers = []

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    logger.addHandler(file_handler)


def parse_now(at):
    """The one place the clock is read; the engine gets `now` passed in."""
    if at:
        try:
            return TimeZoneNormalizer.parse_instant(at)
        except ValueError:
            raise click.BadParameter(f"Not an ISO-8601 instant: {at}", param_hint="--at")
    return datetime.now(timezone.utc)


def make_resolver(config: Config) -> TariffScheduleResolver:
    return TariffScheduleResolver(
        offset_hours=config.facility.utc_offset_hours,
        currency_symbol=config.facility.currency_symbol,
    )


def make_aggregator(config: Config) -> OccupancyAggregator:
    return OccupancyAggregator(
        warning_threshold=config.occupancy.warning_threshold,
        critical_threshold=config.occupancy.critical_threshold,
    )


def company_option(f):
    return click.option('--company', 'company_id', help='Facility (company) ID')(f)


def resolve_company(config, company_id):
    company_id = company_id or config.facility.company_id
    if not company_id:
        raise click.UsageError("No company given. Use --company or set facility.company_id")
    return company_id


def schedule_records(data, key):
    """A list from the schedule file; null or any other shape counts as empty"""
    items = data.get(key) or []
    return items if isinstance(items, list) else []


def fail(ctx, action, error):
    """Report an API failure or an unreadable API payload and exit 1"""
    if isinstance(error, ApiError):
        message = error.message
    else:
        logging.error(f"{action}: unexpected payload: {error}")
        message = "Unexpected response from server."
    log_echo(f"{action}: {message}")
    ctx.exit(1)


def echo_price_table(resolver, rules, exceptions, now):
    resolved = resolver.resolve(rules, exceptions, now)
    log_echo(f"Current price: {resolver.describe(resolved, resolver.exceptions_for_date(exceptions, now))}")

    if not rules:
        log_echo("No weekly prices registered")
        return

    log_echo(f"{'DAY':<10} {'HOURS (UTC-3)':<15} {'PRICE':<12} {'TYPE':<9} STATUS")
    log_echo("-" * 56)
    for row in resolver.build_price_table(rules, exceptions, now):
        kind = "Discount" if row.rule.is_discount else ""
        status = "Current" if row.is_active else ""
        log_echo(f"{row.day_label:<10} {row.hour_range:<15} {row.price_text:<12} {kind:<9} {status}")


@click.group()
@click.option('--config', 'config_path', type=click.Path(path_type=Path), help='Path to config.yaml')
@click.pass_context
def cli(ctx, config_path):
    """Parking tariff and occupancy tool"""
    ctx.ensure_object(dict)

    config = Config.load(config_path)
    setup_logging(config)
    ctx.obj['config'] = config

    logging.info(f"Command executed: {' '.join(sys.argv)}")


@cli.command()
@company_option
@click.option('--at', help='Instant to price (ISO-8601, default now)')
@click.pass_context
def price(ctx, company_id, at):
    """Show the current price and the weekly price table"""
    config = ctx.obj['config']
    company_id = resolve_company(config, company_id)
    now = parse_now(at)

    async def _price():
        async with ParkingApiClient(config) as client:
            return await client.get_company(company_id)

    try:
        facility = asyncio.run(_price())
    except (ApiError, ValidationError) as e:
        fail(ctx, "Could not load prices", e)

    log_echo(facility.name)
    echo_price_table(make_resolver(config), facility.parking_prices, facility.parking_exceptions, now)


@cli.command()
@click.argument('schedule_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--at', help='Instant to price (ISO-8601, default now)')
@click.pass_context
def quote(ctx, schedule_file, at):
    """Resolve the price from a local JSON schedule file"""
    config = ctx.obj['config']
    now = parse_now(at)

    try:
        with open(schedule_file) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Not valid JSON: {e}", param_hint="SCHEDULE_FILE")
    if not isinstance(data, dict):
        raise click.BadParameter("Expected a JSON object with parking_prices", param_hint="SCHEDULE_FILE")

    rules = []
    for item in schedule_records(data, 'parking_prices'):
        try:
            rules.append(WeeklyPriceRule.model_validate(item))
        except ValidationError as e:
            logging.warning(f"Skipping invalid price in {schedule_file}: {e}")

    exceptions = []
    for item in schedule_records(data, 'parking_exceptions'):
        try:
            exceptions.append(PriceException.model_validate(item))
        except ValidationError as e:
            logging.warning(f"Skipping invalid exception in {schedule_file}: {e}")

    echo_price_table(make_resolver(config), rules, exceptions, now)

    active_count = data.get('active_count')
    if isinstance(data.get('total_spots'), int):
        snapshot = make_aggregator(config).aggregate(
            data['total_spots'], active_count if isinstance(active_count, int) else 0)
        log_echo(f"Occupancy: {snapshot.active}/{snapshot.capacity} ({snapshot.percentage}%, {snapshot.severity.value})")


@cli.command()
@company_option
@click.option('--limit', type=int, default=50, help='Maximum sessions to fetch')
@click.pass_context
def sessions(ctx, company_id, limit):
    """List vehicles currently parked, with running estimates"""
    config = ctx.obj['config']
    company_id = resolve_company(config, company_id)
    now = parse_now(None)

    async def _sessions():
        async with ParkingApiClient(config) as client:
            facility = await client.get_company(company_id)
            page = await client.list_active_sessions(company_id, limit=limit)
            return facility, page

    try:
        facility, page = asyncio.run(_sessions())
    except (ApiError, ValidationError) as e:
        fail(ctx, "Could not load active vehicles", e)

    snapshot = make_aggregator(config).aggregate(facility.total_spots, page.total or len(page.data))
    log_echo(f"{facility.name}: {snapshot.active}/{snapshot.capacity} occupied, "
             f"{snapshot.available} available ({snapshot.percentage}%, {snapshot.severity.value})")

    if not page.data:
        log_echo("No active vehicles")
        return

    symbol = config.facility.currency_symbol
    log_echo(f"{'PLATE':<10} {'ENTRANCE':<18} {'ELAPSED':<12} {'RATE':<12} ESTIMATE")
    log_echo("-" * 66)
    for session in page.data:
        valuation = SessionValuationEstimator.value_session(session, now)
        entrance = TimeZoneNormalizer.format_local(session.entrance_date, offset_hours=config.facility.utc_offset_hours)
        rate = format_price(session.hourly_rate, symbol)
        log_echo(f"{session.plate or session.vehicle_id:<10} {entrance:<18} {valuation.elapsed.human_text:<12} "
                 f"{rate:<12} {format_price(valuation.price_cents, symbol)}")


@cli.command(name='exit')
@company_option
@click.option('--plate', required=True, help='License plate')
@click.option('--at', help='Exit instant (ISO-8601, default: server time)')
@click.pass_context
def exit_(ctx, company_id, plate, at):
    """Register a vehicle exit and show the amount charged"""
    config = ctx.obj['config']
    company_id = resolve_company(config, company_id)
    ended_at = parse_now(at) if at else None

    async def _exit():
        async with ParkingApiClient(config) as client:
            return await client.register_exit(company_id, plate.upper().strip(), ended_at)

    try:
        session = asyncio.run(_exit())
    except (ApiError, ValidationError) as e:
        fail(ctx, "Exit failed", e)

    # Closed session: total and duration come straight from the server
    valuation = SessionValuationEstimator.value_session(session, session.ended_at or parse_now(None))
    offset = config.facility.utc_offset_hours
    symbol = config.facility.currency_symbol
    log_echo(f"Exit registered for {session.plate}")
    log_echo(f"  Entrance:    {TimeZoneNormalizer.format_local(session.entrance_date, offset_hours=offset)}")
    if session.ended_at:
        log_echo(f"  Exit:        {TimeZoneNormalizer.format_local(session.ended_at, offset_hours=offset)}")
    log_echo(f"  Time parked: {valuation.elapsed.human_text}")
    log_echo(f"  Hourly rate: {format_price(session.hourly_rate, symbol)}")
    label = "Estimated" if valuation.is_estimate else "Total"
    log_echo(f"  {label + ':':<12} {format_price(valuation.price_cents, symbol)}")


@cli.command()
@company_option
@click.option('--plate', required=True, help='License plate')
@click.option('--at', help='Instant to check the price at (ISO-8601, default now)')
@click.pass_context
def entrance(ctx, company_id, plate, at):
    """Register a vehicle entrance, refused while no hourly price applies"""
    config = ctx.obj['config']
    company_id = resolve_company(config, company_id)
    plate = plate.upper().strip()
    now = parse_now(at)
    resolver = make_resolver(config)

    async def _entrance():
        async with ParkingApiClient(config) as client:
            facility = await client.get_company(company_id)
            resolved = resolver.resolve(facility.parking_prices, facility.parking_exceptions, now)
            if resolved.source != PriceSource.NONE:
                await client.register_entrance(company_id, plate)
            return resolved

    try:
        resolved = asyncio.run(_entrance())
    except (ApiError, ValidationError) as e:
        fail(ctx, "Entrance failed", e)

    if resolved.source == PriceSource.NONE:
        logging.warning(f"Entrance of {plate} refused at {company_id}: no price in effect")
        log_echo("Cannot register entrance: no hourly price is defined for this facility right now. "
                 "Define a price before registering entrances.")
        ctx.exit(1)

    log_echo(f"Entrance registered for {plate}")
    log_echo(f"  Price in effect: {resolver.describe(resolved)}")


@cli.command()
@company_option
@click.option('--skip', type=int, default=0, help='Records to skip')
@click.option('--limit', type=int, default=50, help='Maximum records to fetch')
@click.pass_context
def history(ctx, company_id, skip, limit):
    """Entrance/exit report with revenue and most frequent vehicles"""
    config = ctx.obj['config']
    company_id = resolve_company(config, company_id)
    now = parse_now(None)

    async def _history():
        async with ParkingApiClient(config) as client:
            return await client.list_history(company_id, skip=skip, limit=limit)

    try:
        page = asyncio.run(_history())
    except (ApiError, ValidationError) as e:
        fail(ctx, "Could not load vehicle history", e)

    if not page.data:
        log_echo("No vehicle history")
        return

    report = VehicleHistoryReport()
    stats = report.statistics(page.data, now)
    offset = config.facility.utc_offset_hours
    symbol = config.facility.currency_symbol

    log_echo(f"Records {page.skip + 1}-{page.skip + len(page.data)} of {page.total}")
    log_echo(f"Entries: {stats.total_entries}  Exits: {stats.total_exits}  "
             f"Revenue: {format_price(stats.revenue_cents, symbol)}")
    if stats.estimated_cents:
        log_echo(f"Running estimate (not charged yet): {format_price(stats.estimated_cents, symbol)}")

    log_echo(f"{'PLATE':<10} {'ENTRANCE':<18} {'EXIT':<18} {'TIME':<10} AMOUNT")
    log_echo("-" * 72)
    for record, valuation in report.value_records(page.data, now):
        entered = TimeZoneNormalizer.format_local(record.entrance_date, offset_hours=offset)
        left = TimeZoneNormalizer.format_local(record.ended_at, offset_hours=offset) if record.ended_at else "parked"
        amount = format_price(valuation.price_cents, symbol)
        if valuation.is_estimate:
            amount += " (est.)"
        log_echo(f"{record.plate or record.vehicle_id:<10} {entered:<18} {left:<18} "
                 f"{valuation.elapsed.human_text:<10} {amount}")

    log_echo("Most frequent vehicles:")
    for vehicle in stats.most_frequent:
        visits = "visit" if vehicle.count == 1 else "visits"
        log_echo(f"  {vehicle.plate or vehicle.vehicle_id:<10} {vehicle.count} {visits}")


if __name__ == '__main__':
    cli()
