"""
Pydantic schemas for Spend and SpendAssignment entities.
"""
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import date as dt_date, datetime
from decimal import Decimal
from app.models.spend import SpendStatus, SplitType
from app.schemas.balance import Money


class AssignmentInput(BaseModel):
    """
    One assignee of a spend.

    EXACT: split_value is the share in the spend's currency.
    PERCENT: split_value is a percentage of the spend amount.
    EQUAL: split_value is ignored; EQUAL assignees divide what is left.
    """
    user_id: int
    split_type: SplitType = SplitType.EQUAL
    split_value: Optional[Decimal] = Field(default=None, ge=0)


class AssignmentsReplace(BaseModel):
    """Schema for replacing all assignments of a spend."""
    assignments: List[AssignmentInput]


def _upper_currency(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip().upper()
    if len(v) != 3 or not v.isalpha():
        raise ValueError("currency must be a 3-letter ISO code")
    return v


class SpendCreate(BaseModel):
    """Schema for spend creation."""
    description: Optional[str] = None
    date: Optional[dt_date] = None  # Defaults to today
    amount: Decimal = Field(gt=0)
    currency: Optional[str] = None  # Defaults to the trip's base currency
    fx_rate: Optional[Decimal] = Field(default=None, gt=0)  # Looked up when omitted
    paid_by_id: Optional[int] = None  # Defaults to the current user
    assignments: List[AssignmentInput] = []

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return _upper_currency(v)


class SpendUpdate(BaseModel):
    """Schema for spend update. Only OPEN spends can be edited."""
    description: Optional[str] = None
    date: Optional[dt_date] = None
    amount: Optional[Decimal] = Field(default=None, gt=0)
    currency: Optional[str] = None
    fx_rate: Optional[Decimal] = Field(default=None, gt=0)
    paid_by_id: Optional[int] = None

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return _upper_currency(v)


class SpendClose(BaseModel):
    """Close even when assignments do not cover 100% of the spend."""
    force: bool = False


class SpendAssignmentResponse(BaseModel):
    """Schema for spend assignment response."""
    id: int
    user_id: Optional[int]
    user_name: str = ""
    share_amount: Money
    normalized_share_amount: Optional[Money] = None
    split_type: SplitType
    split_value: Optional[Money] = None


class SpendResponse(BaseModel):
    """Schema for spend response."""
    id: int
    trip_id: int
    paid_by_id: Optional[int]
    paid_by_name: str = ""
    description: Optional[str] = None
    date: dt_date
    amount: Money
    currency: str
    fx_rate: Optional[Money] = None
    normalized_amount: Optional[Money] = None
    base_currency: str
    status: SpendStatus
    assignments: List[SpendAssignmentResponse] = []
    assigned_total: Money  # Sum of normalized shares
    percent_assigned: float
    is_fully_assigned: bool
    created_at: datetime
    updated_at: datetime
