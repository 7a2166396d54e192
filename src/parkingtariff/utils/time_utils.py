from datetime import date, datetime, time, timedelta, timezone
from typing import Union

from ..models import LocalMoment

# Facility jurisdiction has no daylight saving
FACILITY_UTC_OFFSET_HOURS = -3

Instant = Union[datetime, str]


class TimeZoneNormalizer:
    """Conversions between stored UTC instants and facility-local civil time.

    Every conversion uses a fixed offset (UTC-3 unless told otherwise), so the
    result never depends on the timezone of the machine running it.
    """

    @staticmethod
    def facility_tz(offset_hours: int = FACILITY_UTC_OFFSET_HOURS) -> timezone:
        return timezone(timedelta(hours=offset_hours))

    @staticmethod
    def parse_instant(value: Instant) -> datetime:
        """Parse an ISO-8601 string (or datetime) into an aware UTC datetime.
        Naive values are taken as UTC, which is how the API stores them."""
        if isinstance(value, str):
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @staticmethod
    def iso_week_day(js_week_day: int) -> int:
        """Sunday=0 numbering to Monday=0 numbering."""
        return (js_week_day + 6) % 7

    @staticmethod
    def to_facility_local(instant: Instant, offset_hours: int = FACILITY_UTC_OFFSET_HOURS) -> LocalMoment:
        local = TimeZoneNormalizer.parse_instant(instant).astimezone(TimeZoneNormalizer.facility_tz(offset_hours))
        return LocalMoment(
            date=local.date(),
            hour=local.hour,
            minute=local.minute,
            week_day=local.weekday(),  # 0=Mon, 6=Sun
        )

    @staticmethod
    def parse_local_time(value: Union[time, int, str]) -> time:
        """Accepts a time, a bare hour, or 'HH:MM[:SS]'."""
        if isinstance(value, time):
            return value
        if isinstance(value, int):
            return time(value, 0)
        return time.fromisoformat(value.strip())

    @staticmethod
    def to_utc(local_date: Union[date, str], local_time: Union[time, int, str] = 0,
               offset_hours: int = FACILITY_UTC_OFFSET_HOURS) -> datetime:
        """Facility-local date and time of day to an aware UTC datetime."""
        if isinstance(local_date, str):
            local_date = date.fromisoformat(local_date.strip())
        local = datetime.combine(
            local_date,
            TimeZoneNormalizer.parse_local_time(local_time),
            tzinfo=TimeZoneNormalizer.facility_tz(offset_hours),
        )
        return local.astimezone(timezone.utc)

    @staticmethod
    def local_date_to_utc_date(local_date: Union[date, str],
                               offset_hours: int = FACILITY_UTC_OFFSET_HOURS) -> date:
        """UTC calendar date of local midnight on `local_date`."""
        return TimeZoneNormalizer.to_utc(local_date, 0, offset_hours).date()

    @staticmethod
    def utc_date_to_local_date(utc_date: Union[date, str],
                               offset_hours: int = FACILITY_UTC_OFFSET_HOURS) -> date:
        """Local calendar date of UTC midnight on `utc_date`."""
        if isinstance(utc_date, str):
            utc_date = date.fromisoformat(utc_date.strip())
        midnight = datetime.combine(utc_date, time(0, 0), tzinfo=timezone.utc)
        return midnight.astimezone(TimeZoneNormalizer.facility_tz(offset_hours)).date()

    @staticmethod
    def format_local(instant: Instant, include_time: bool = True,
                     offset_hours: int = FACILITY_UTC_OFFSET_HOURS) -> str:
        local = TimeZoneNormalizer.parse_instant(instant).astimezone(TimeZoneNormalizer.facility_tz(offset_hours))
        if include_time:
            return local.strftime("%d/%m/%Y %H:%M")
        return local.strftime("%d/%m/%Y")
