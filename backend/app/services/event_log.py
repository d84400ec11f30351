"""
Event log helpers. Every state transition writes one EventLog row.
"""
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from app.models.event_log import EventLog, EventType


def log_event(
    db: Session,
    entity: str,
    entity_id: int,
    event_type: EventType,
    by_user_id: int,
    trip_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None
) -> EventLog:
    """
    Add an event row to the current transaction.

    Nothing is committed here: the event lands together with the change it
    describes, or not at all.
    """
    event = EventLog(
        entity=entity,
        entity_id=entity_id,
        event_type=event_type,
        by_user_id=by_user_id,
        trip_id=trip_id,
        payload=payload
    )
    db.add(event)
    return event


def get_event_logs(entity: str, entity_id: int, db: Session) -> List[EventLog]:
    """Events for one entity, newest first."""
    return db.query(EventLog).filter(
        EventLog.entity == entity,
        EventLog.entity_id == entity_id
    ).order_by(EventLog.created_at.desc(), EventLog.id.desc()).all()
