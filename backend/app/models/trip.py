"""
Trip and membership models.
"""
from sqlalchemy import Column, String, Date, Text, DateTime, Enum as SQLEnum, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from app.db.base import BaseModel
import enum


class MemberRole(str, enum.Enum):
    """Role of a user within a trip."""
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


ORGANIZER_ROLES = (MemberRole.OWNER, MemberRole.ADMIN)


class Trip(BaseModel):
    """Trip model representing a group travel event."""
    __tablename__ = "trips"
    
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True, index=True)
    end_date = Column(Date, nullable=True, index=True)
    base_currency = Column(String(3), nullable=False, default="USD")  # All balances are expressed in this currency
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    
    # Relationships
    members = relationship("TripMember", back_populates="trip", cascade="all, delete-orphan")
    spends = relationship("Spend", back_populates="trip", cascade="all, delete-orphan")
    exchange_rates = relationship("ExchangeRate", back_populates="trip", cascade="all, delete-orphan")
    settlements = relationship("Settlement", back_populates="trip", cascade="all, delete-orphan")


class TripMember(BaseModel):
    """Junction table for Trip and User with the member's role."""
    __tablename__ = "trip_members"
    
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(SQLEnum(MemberRole), default=MemberRole.MEMBER, nullable=False)
    
    # Relationships
    trip = relationship("Trip", back_populates="members")
    user = relationship("User", back_populates="memberships")
    
    __table_args__ = (
        UniqueConstraint("trip_id", "user_id", name="uq_trip_member"),
    )
    
    @property
    def is_organizer(self) -> bool:
        return self.role in ORGANIZER_ROLES
