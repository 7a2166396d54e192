from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WeeklyPriceRule(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # Days of week: 0=Mon, 6=Sun
    week_day: int
    start_hour: int
    end_hour: int  # last covered hour, inclusive
    price_cents: int
    is_discount: bool = False


class PriceException(BaseModel):
    model_config = ConfigDict(extra="ignore")

    exception_date: date  # facility-local calendar date
    start_hour: int
    end_hour: int
    price_cents: int
    is_discount: bool = False
    description: Optional[str] = None


class PriceSource(str, Enum):
    REGULAR = "regular"
    EXCEPTION = "exception"
    NONE = "none"


class ResolvedPrice(BaseModel):
    price_cents: Optional[int] = None
    source: PriceSource = PriceSource.NONE
    exception_description: Optional[str] = None
    # The weekly rule that supplied a regular price
    matched_rule: Optional[WeeklyPriceRule] = Field(default=None, exclude=True, repr=False)


class VehicleSession(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    vehicle_id: str
    company_id: str
    entrance_date: datetime
    ended_at: Optional[datetime] = None
    hourly_rate: Optional[int] = None  # cents, snapshot at entrance
    # The exit endpoint calls it total_price
    total_price_cents: Optional[int] = Field(default=None, alias="total_price")
    plate: Optional[str] = None

    @field_validator("entrance_date", "ended_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is None:
            return v
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def is_open(self) -> bool:
        return self.ended_at is None


class ActiveSessionPage(BaseModel):
    skip: int = 0
    limit: int = 10
    total: int = 0
    data: List[VehicleSession] = []


class VehicleHistoryPage(ActiveSessionPage):
    """A page of the company report: open and closed sessions alike."""


class FrequentVehicle(BaseModel):
    vehicle_id: str
    plate: Optional[str] = None
    count: int


class HistoryStatistics(BaseModel):
    total_entries: int = 0  # still parked
    total_exits: int = 0
    revenue_cents: int = 0  # server totals of closed sessions
    estimated_cents: int = 0  # running estimates of the rest
    most_frequent: List[FrequentVehicle] = []


class Facility(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    total_spots: int = 0
    parking_prices: List[WeeklyPriceRule] = []
    parking_exceptions: List[PriceException] = []


class LocalMoment(BaseModel):
    date: date
    hour: int
    minute: int = 0
    week_day: int


class ElapsedTime(BaseModel):
    hours: int
    minutes: int
    human_text: str


class SessionValuation(BaseModel):
    elapsed: ElapsedTime
    price_cents: int
    hourly_rate: int
    is_estimate: bool


class Severity(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class OccupancySnapshot(BaseModel):
    capacity: int
    active: int
    available: int
    percentage: int
    severity: Severity = Severity.NORMAL


class PriceTableRow(BaseModel):
    rule: WeeklyPriceRule
    day_label: str  # blank when the previous row is the same day
    hour_range: str
    price_text: str
    is_active: bool = False
