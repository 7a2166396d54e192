import logging
from datetime import datetime
from typing import Dict, List, Sequence, Tuple

from ..models import FrequentVehicle, HistoryStatistics, SessionValuation, VehicleSession
from .valuation import SessionValuationEstimator

logger = logging.getLogger(__name__)

MOST_FREQUENT_LIMIT = 5


class VehicleHistoryReport:
    """Summary figures for a page of the company's entrance/exit records.

    Every record is valued through SessionValuationEstimator, so closed
    sessions contribute the server's total and the rest a running estimate.
    """

    def __init__(self, most_frequent_limit: int = MOST_FREQUENT_LIMIT):
        self.most_frequent_limit = most_frequent_limit

    @staticmethod
    def value_records(records: Sequence[VehicleSession], now: datetime) -> List[Tuple[VehicleSession, SessionValuation]]:
        return [(record, SessionValuationEstimator.value_session(record, now)) for record in records]

    def most_frequent(self, records: Sequence[VehicleSession]) -> List[FrequentVehicle]:
        counts: Dict[str, FrequentVehicle] = {}
        for record in records:
            seen = counts.get(record.vehicle_id)
            if seen is None:
                counts[record.vehicle_id] = FrequentVehicle(vehicle_id=record.vehicle_id, plate=record.plate, count=1)
            else:
                seen.count += 1
                seen.plate = record.plate or seen.plate

        # sorted() is stable: ties keep first-seen order
        ranked = sorted(counts.values(), key=lambda v: v.count, reverse=True)
        return ranked[:self.most_frequent_limit]

    def statistics(self, records: Sequence[VehicleSession], now: datetime) -> HistoryStatistics:
        stats = HistoryStatistics(most_frequent=self.most_frequent(records))
        for record, valuation in self.value_records(records, now):
            if record.is_open:
                stats.total_entries += 1
            else:
                stats.total_exits += 1

            if valuation.is_estimate:
                stats.estimated_cents += valuation.price_cents
            else:
                stats.revenue_cents += valuation.price_cents

        logger.debug(f"History of {len(records)} records: {stats.total_entries} in, {stats.total_exits} out")
        return stats
