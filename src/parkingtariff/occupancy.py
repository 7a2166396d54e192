from .models import OccupancySnapshot, Severity
from .utils.rounding import round_half_up


class OccupancyAggregator:
    def __init__(self, warning_threshold: int = 70, critical_threshold: int = 90):
        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold

    def severity(self, percentage: int) -> Severity:
        if percentage >= self.critical_threshold:
            return Severity.CRITICAL
        if percentage >= self.warning_threshold:
            return Severity.WARNING
        return Severity.NORMAL

    def aggregate(self, capacity: int, active_count: int) -> OccupancySnapshot:
        """Utilization of a facility with `capacity` spots and `active_count` open sessions.
        A facility without spots reports 0%."""
        capacity = max(0, capacity)
        active_count = max(0, active_count)
        percentage = round_half_up(active_count * 100 / capacity) if capacity > 0 else 0
        return OccupancySnapshot(
            capacity=capacity,
            active=active_count,
            available=max(0, capacity - active_count),
            percentage=percentage,
            severity=self.severity(percentage),
        )
