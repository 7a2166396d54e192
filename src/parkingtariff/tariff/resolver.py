import logging
from typing import List, Optional, Sequence

from ..formatters import day_label, format_hour_range, format_price
from ..models import (
    LocalMoment,
    PriceException,
    PriceSource,
    PriceTableRow,
    ResolvedPrice,
    WeeklyPriceRule,
)
from ..utils.time_utils import FACILITY_UTC_OFFSET_HOURS, Instant, TimeZoneNormalizer

logger = logging.getLogger(__name__)


def _covers_hour(record, hour: int) -> bool:
    """Inclusive [start_hour, end_hour] check.

    Anything that cannot be compared (missing fields, wrong types), has an
    empty or out-of-day range, or a negative price simply does not match.
    """
    try:
        start = record.start_hour
        end = record.end_hour
        if not (0 <= start < end <= 23) or record.price_cents < 0:
            logger.debug(f"Skipping malformed price record {start}-{end} @ {record.price_cents}")
            return False
        return start <= hour <= end
    except (AttributeError, TypeError) as e:
        logger.debug(f"Skipping malformed price record {record!r}: {e}")
        return False


def _rule_matches(rule: WeeklyPriceRule, moment: LocalMoment) -> bool:
    if getattr(rule, "week_day", None) != moment.week_day:
        return False
    return _covers_hour(rule, moment.hour)


def _exception_matches(exception: PriceException, moment: LocalMoment) -> bool:
    if getattr(exception, "exception_date", None) != moment.date:
        return False
    return _covers_hour(exception, moment.hour)


class TariffScheduleResolver:
    """Works out which hourly price is in effect at a given instant.

    Date-specific exceptions win over the weekly schedule. When several
    records overlap, the first one in input order is used.
    """

    def __init__(self, offset_hours: int = FACILITY_UTC_OFFSET_HOURS, currency_symbol: str = "R$"):
        self.offset_hours = offset_hours
        self.currency_symbol = currency_symbol

    def local_moment(self, now: Instant) -> LocalMoment:
        return TimeZoneNormalizer.to_facility_local(now, self.offset_hours)

    def resolve(self, rules: Optional[Sequence[WeeklyPriceRule]],
                exceptions: Optional[Sequence[PriceException]],
                now: Instant) -> ResolvedPrice:
        moment = self.local_moment(now)

        for exception in exceptions or []:
            if _exception_matches(exception, moment):
                logger.debug(f"Exception price {exception.price_cents} applies at {moment.date} {moment.hour}h")
                return ResolvedPrice(
                    price_cents=exception.price_cents,
                    source=PriceSource.EXCEPTION,
                    exception_description=exception.description,
                )

        for rule in rules or []:
            if _rule_matches(rule, moment):
                logger.debug(f"Regular price {rule.price_cents} applies on day {moment.week_day} {moment.hour}h")
                return ResolvedPrice(price_cents=rule.price_cents, source=PriceSource.REGULAR, matched_rule=rule)

        return ResolvedPrice(source=PriceSource.NONE)

    def is_row_active(self, rule: WeeklyPriceRule, resolved: ResolvedPrice, now: Instant) -> bool:
        """A weekly row is highlighted only while it is the price in effect.
        An active exception suppresses the row underneath it, and of several
        overlapping rows only the one that was picked lights up."""
        if resolved.source != PriceSource.REGULAR:
            return False
        if resolved.matched_rule is not None:
            return resolved.matched_rule is rule
        return _rule_matches(rule, self.local_moment(now))

    @staticmethod
    def sort_schedule(rules: Sequence[WeeklyPriceRule]) -> List[WeeklyPriceRule]:
        return sorted(rules, key=lambda r: (r.week_day, r.start_hour))

    def exceptions_for_date(self, exceptions: Optional[Sequence[PriceException]],
                            now: Instant) -> List[PriceException]:
        today = self.local_moment(now).date
        return [e for e in exceptions or [] if getattr(e, "exception_date", None) == today]

    def build_price_table(self, rules: Sequence[WeeklyPriceRule],
                          exceptions: Optional[Sequence[PriceException]],
                          now: Instant) -> List[PriceTableRow]:
        resolved = self.resolve(rules, exceptions, now)
        rows = []
        previous_day = None
        for rule in self.sort_schedule(rules):
            rows.append(PriceTableRow(
                rule=rule,
                day_label=day_label(rule.week_day) if rule.week_day != previous_day else "",
                hour_range=format_hour_range(rule.start_hour, rule.end_hour),
                price_text=format_price(rule.price_cents, self.currency_symbol),
                is_active=self.is_row_active(rule, resolved, now),
            ))
            previous_day = rule.week_day
        return rows

    def describe(self, resolved: ResolvedPrice,
                 exceptions_today: Optional[Sequence[PriceException]] = None) -> str:
        if resolved.source == PriceSource.NONE:
            if exceptions_today:
                return "No price defined for this hour. Today's prices come from exceptions."
            return "No price defined for this facility right now."

        text = f"{format_price(resolved.price_cents, self.currency_symbol)}/hour"
        if resolved.source == PriceSource.EXCEPTION:
            text += " (exception price"
            if resolved.exception_description:
                text += f": {resolved.exception_description}"
            text += ")"
        return text
