"""
Pydantic schemas for exchange rates.
"""
from pydantic import BaseModel, Field
from datetime import date as dt_date, datetime
from decimal import Decimal
from app.schemas.balance import Money


class ExchangeRateSet(BaseModel):
    """Manually set a rate: 1 unit of currency = rate_to_base base currency."""
    date: dt_date
    currency: str = Field(min_length=3, max_length=3)
    rate_to_base: Decimal = Field(gt=0)


class ExchangeRateResponse(BaseModel):
    """Schema for exchange rate response."""
    id: int
    trip_id: int
    date: dt_date
    currency: str
    rate_to_base: Money
    source: str
    updated_at: datetime

    class Config:
        from_attributes = True
