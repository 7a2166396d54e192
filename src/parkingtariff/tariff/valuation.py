import logging
from datetime import datetime, timedelta
from typing import Optional

from ..models import ElapsedTime, SessionValuation, VehicleSession
from ..utils.rounding import round_half_up
from ..utils.time_utils import Instant, TimeZoneNormalizer

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3_600_000
MS_PER_MINUTE = 60_000


def _elapsed_ms(start: Instant, end: Instant) -> int:
    diff = TimeZoneNormalizer.parse_instant(end) - TimeZoneNormalizer.parse_instant(start)
    # Entrance stamped in the future (client clock skew) counts as zero
    return max(0, diff // timedelta(milliseconds=1))


def format_elapsed(hours: int, minutes: int) -> str:
    if hours == 0:
        return f"{minutes}min"
    if minutes == 0:
        return f"{hours}h"
    return f"{hours}h {minutes}min"


class SessionValuationEstimator:
    """Elapsed time and running cost of a parking session.

    Everything here is an estimate for display; the total charged at exit
    comes from the server. The current time is always passed in.
    """

    @staticmethod
    def estimate_elapsed(entrance: Instant, now: Instant) -> ElapsedTime:
        diff = _elapsed_ms(entrance, now)
        hours = diff // MS_PER_HOUR
        minutes = (diff % MS_PER_HOUR) // MS_PER_MINUTE
        return ElapsedTime(hours=hours, minutes=minutes, human_text=format_elapsed(hours, minutes))

    @staticmethod
    def estimate_current_cost(entrance: Instant, hourly_rate_cents: Optional[int], now: Instant) -> int:
        """Linear proration over wall-clock hours, not whole-hour buckets."""
        if not hourly_rate_cents:
            return 0
        return round_half_up(_elapsed_ms(entrance, now) * hourly_rate_cents / MS_PER_HOUR)

    @staticmethod
    def value_session(session: VehicleSession, now: datetime) -> SessionValuation:
        # Closed sessions carry the authoritative total; no estimating
        if session.ended_at is not None and session.total_price_cents is not None:
            return SessionValuation(
                elapsed=SessionValuationEstimator.estimate_elapsed(session.entrance_date, session.ended_at),
                price_cents=session.total_price_cents,
                hourly_rate=session.hourly_rate or 0,
                is_estimate=False,
            )

        if session.ended_at is not None:
            logger.debug(f"Session {session.vehicle_id} ended without a total, estimating up to exit")
            now = session.ended_at

        rate = session.hourly_rate or 0
        return SessionValuation(
            elapsed=SessionValuationEstimator.estimate_elapsed(session.entrance_date, now),
            price_cents=SessionValuationEstimator.estimate_current_cost(session.entrance_date, rate, now),
            hourly_rate=rate,
            is_estimate=True,
        )
