"""Models package - Import all models for SQLAlchemy registration."""
from app.models.user import User
from app.models.trip import Trip, TripMember, MemberRole, ORGANIZER_ROLES
from app.models.spend import Spend, SpendAssignment, SpendStatus, SplitType
from app.models.exchange_rate import ExchangeRate
from app.models.settlement import Settlement, Payment, SettlementStatus
from app.models.event_log import EventLog, EventType

__all__ = [
    "User",
    "Trip",
    "TripMember",
    "MemberRole",
    "ORGANIZER_ROLES",
    "Spend",
    "SpendAssignment",
    "SpendStatus",
    "SplitType",
    "ExchangeRate",
    "Settlement",
    "Payment",
    "SettlementStatus",
    "EventLog",
    "EventType",
]
