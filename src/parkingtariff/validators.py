"""Validation of price records at the point where a manager creates them.

The resolver trusts what it is given; this is where bad ranges are refused.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class PriceRuleCreate(BaseModel):
    week_day: int = Field(ge=0, le=6)
    start_hour: int = Field(ge=0, le=23)
    end_hour: int = Field(ge=0, le=23)
    price_cents: int = Field(ge=0)
    is_discount: bool = False

    @model_validator(mode="after")
    def check_hour_order(self):
        if self.start_hour >= self.end_hour:
            raise ValueError("start_hour must be lower than end_hour")
        return self


class PriceExceptionCreate(BaseModel):
    exception_date: date
    start_hour: int = Field(ge=0, le=23)
    end_hour: int = Field(ge=0, le=23)
    price_cents: int = Field(ge=0)
    is_discount: bool = False
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("exception_date", mode="before")
    @classmethod
    def require_iso_date(cls, v):
        # Only YYYY-MM-DD, no datetimes sneaking in
        if isinstance(v, str) and (len(v) != 10 or v[4] != "-" or v[7] != "-"):
            raise ValueError("exception_date must be YYYY-MM-DD")
        return v

    @model_validator(mode="after")
    def check_hour_order(self):
        if self.start_hour >= self.end_hour:
            raise ValueError("start_hour must be lower than end_hour")
        return self
