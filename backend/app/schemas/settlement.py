"""
Pydantic schemas for persisted settlements and payments.
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from app.models.settlement import SettlementStatus
from app.schemas.balance import Money


class PaymentCreate(BaseModel):
    """Schema for recording a payment (amount in trip's base currency)."""
    amount: Decimal = Field(gt=0)
    paid_at: Optional[datetime] = None  # Defaults to now
    payment_method: Optional[str] = Field(default=None, max_length=50)
    payment_reference: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = None


class PaymentUpdate(BaseModel):
    """Schema for editing a payment."""
    amount: Optional[Decimal] = Field(default=None, gt=0)
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = Field(default=None, max_length=50)
    payment_reference: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    """Schema for payment response."""
    id: int
    settlement_id: int
    amount: Money
    paid_at: datetime
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    recorded_by_id: int
    created_at: datetime

    class Config:
        from_attributes = True


class SettlementResponse(BaseModel):
    """Schema for a persisted settlement with payment totals."""
    id: int
    trip_id: int
    from_user_id: int
    from_user_name: str
    to_user_id: int
    to_user_name: str
    amount: Money  # Trip's base currency
    status: SettlementStatus
    notes: Optional[str] = None
    total_paid: Money
    remaining_amount: Money
    payments: List[PaymentResponse] = []
    created_at: datetime


class PaymentResult(BaseModel):
    """Payment together with the settlement state it produced."""
    payment: PaymentResponse
    settlement: SettlementResponse
