"""
Pydantic schemas for Trip entity.
"""
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import date, datetime
from app.models.trip import MemberRole


class TripCreate(BaseModel):
    """Schema for trip creation."""
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    base_currency: Optional[str] = None  # Defaults to DEFAULT_BASE_CURRENCY

    @field_validator("base_currency")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError("base_currency must be a 3-letter ISO code")
        return v


class TripResponse(BaseModel):
    """Schema for trip response."""
    id: int
    name: str
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    base_currency: str
    created_by_id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TripMemberResponse(BaseModel):
    """Schema for trip member response."""
    user_id: int
    username: str
    display_name: Optional[str] = None
    role: MemberRole


class TripDetailResponse(TripResponse):
    """Schema for detailed trip response with members."""
    members: List[TripMemberResponse] = []


class MemberAdd(BaseModel):
    """Schema for adding a member by username."""
    username: str
    role: MemberRole = MemberRole.MEMBER
