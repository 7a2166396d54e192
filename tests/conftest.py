import pytest
from datetime import date, datetime, timezone

from parkingtariff.config import Config, ApiConfig, FacilityConfig
from parkingtariff.models import PriceException, WeeklyPriceRule


# 2025-01-15 is a Wednesday; 15:00 UTC is 12:00 at the facility (UTC-3)
WEDNESDAY_NOON_LOCAL = datetime(2025, 1, 15, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def wednesday_noon():
    return WEDNESDAY_NOON_LOCAL


@pytest.fixture
def weekly_rules():
    return [
        WeeklyPriceRule(week_day=0, start_hour=8, end_hour=18, price_cents=400),   # Mon
        WeeklyPriceRule(week_day=2, start_hour=8, end_hour=18, price_cents=500),   # Wed
        WeeklyPriceRule(week_day=2, start_hour=19, end_hour=23, price_cents=250, is_discount=True),
        WeeklyPriceRule(week_day=6, start_hour=0, end_hour=23, price_cents=300),   # Sun
    ]


@pytest.fixture
def promo_exception():
    return PriceException(
        exception_date=date(2025, 1, 15),
        start_hour=10,
        end_hour=14,
        price_cents=300,
        description="Promo",
    )


@pytest.fixture
def config():
    return Config(
        api=ApiConfig(base_url="https://api.test", token="secret-token"),
        facility=FacilityConfig(company_id="company-1"),
    )
