"""
Spend model for tracking shared expenses.
"""
from sqlalchemy import Column, String, Numeric, Date, DateTime, ForeignKey, Integer, Text, Enum as SQLEnum
from sqlalchemy.orm import relationship
from app.db.base import BaseModel
import enum


class SpendStatus(str, enum.Enum):
    """Closed spends are locked against edits but still count toward balances."""
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class SplitType(str, enum.Enum):
    """How an assignment's share was derived."""
    EXACT = "EXACT"
    PERCENT = "PERCENT"
    EQUAL = "EQUAL"


class Spend(BaseModel):
    """A single expense paid by one trip member."""
    __tablename__ = "spends"
    
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    paid_by_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    description = Column(Text, nullable=True)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(15, 4), nullable=False)  # In the spend's own currency
    currency = Column(String(3), nullable=False)
    fx_rate = Column(Numeric(18, 8), nullable=True)  # 1 unit of currency = fx_rate base currency
    normalized_amount = Column(Numeric(15, 4), nullable=True)  # round(amount * fx_rate) in trip's base currency
    status = Column(SQLEnum(SpendStatus), default=SpendStatus.OPEN, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    
    # Relationships
    trip = relationship("Trip", back_populates="spends")
    paid_by = relationship("User", foreign_keys=[paid_by_id], back_populates="spends_paid")
    assignments = relationship(
        "SpendAssignment",
        back_populates="spend",
        cascade="all, delete-orphan",
        order_by="SpendAssignment.user_id"
    )


class SpendAssignment(BaseModel):
    """The share of a spend owed by one user."""
    __tablename__ = "spend_assignments"
    
    spend_id = Column(Integer, ForeignKey("spends.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    share_amount = Column(Numeric(15, 4), nullable=False)  # In the spend's currency
    normalized_share_amount = Column(Numeric(15, 4), nullable=True)  # In trip's base currency
    split_type = Column(SQLEnum(SplitType), default=SplitType.EXACT, nullable=False)
    split_value = Column(Numeric(15, 4), nullable=True)
    
    # Relationships
    spend = relationship("Spend", back_populates="assignments")
    user = relationship("User", back_populates="assignments")
