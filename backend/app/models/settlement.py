"""
Persisted settlement plans and the payments recorded against them.
"""
from sqlalchemy import Column, String, Text, Numeric, DateTime, ForeignKey, Integer, Enum as SQLEnum
from sqlalchemy.orm import relationship
from app.db.base import BaseModel
import enum


class SettlementStatus(str, enum.Enum):
    """Payment progress of a settlement."""
    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    VERIFIED = "VERIFIED"


class Settlement(BaseModel):
    """A transfer from the minimal settlement plan, stored so payments can be tracked."""
    __tablename__ = "settlements"
    
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    from_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    to_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 4), nullable=False)  # In trip's base currency
    status = Column(SQLEnum(SettlementStatus), default=SettlementStatus.PENDING, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    
    # Relationships
    trip = relationship("Trip", back_populates="settlements")
    from_user = relationship("User", foreign_keys=[from_user_id])
    to_user = relationship("User", foreign_keys=[to_user_id])
    payments = relationship(
        "Payment",
        back_populates="settlement",
        cascade="all, delete-orphan",
        order_by=lambda: Payment.paid_at.desc()
    )


class Payment(BaseModel):
    """Money actually transferred towards a settlement."""
    __tablename__ = "payments"
    
    settlement_id = Column(Integer, ForeignKey("settlements.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 4), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=False)
    payment_method = Column(String(50), nullable=True)  # e.g. Cash, Venmo, Bank Transfer
    payment_reference = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)
    recorded_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    
    # Relationships
    settlement = relationship("Settlement", back_populates="payments")
    recorded_by = relationship("User", foreign_keys=[recorded_by_id])
