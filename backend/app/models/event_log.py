"""
Audit trail of state transitions.
"""
from sqlalchemy import Column, String, ForeignKey, Integer, JSON, Enum as SQLEnum
from app.db.base import BaseModel
import enum


class EventType(str, enum.Enum):
    """Kinds of recorded state transitions."""
    TRIP_CREATED = "TRIP_CREATED"
    TRIP_DELETED = "TRIP_DELETED"
    MEMBER_ADDED = "MEMBER_ADDED"
    MEMBER_REMOVED = "MEMBER_REMOVED"
    SPEND_CREATED = "SPEND_CREATED"
    SPEND_UPDATED = "SPEND_UPDATED"
    SPEND_CLOSED = "SPEND_CLOSED"
    SPEND_DELETED = "SPEND_DELETED"
    ASSIGNMENTS_REPLACED = "ASSIGNMENTS_REPLACED"
    SETTLEMENT_CREATED = "SETTLEMENT_CREATED"
    SETTLEMENT_UPDATED = "SETTLEMENT_UPDATED"
    PAYMENT_RECORDED = "PAYMENT_RECORDED"


class EventLog(BaseModel):
    """One row per state transition, written in the same transaction as the change."""
    __tablename__ = "event_logs"
    
    entity = Column(String(50), nullable=False, index=True)
    entity_id = Column(Integer, nullable=False, index=True)
    event_type = Column(SQLEnum(EventType), nullable=False)
    by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=True, index=True)
    payload = Column(JSON, nullable=True)
