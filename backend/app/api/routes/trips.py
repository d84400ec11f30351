"""
Trip management routes.
"""
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session, selectinload
from typing import List
from app.core.config import settings
from app.db.session import get_db
from app.models.event_log import EventType
from app.models.user import User
from app.models.trip import Trip, TripMember, MemberRole
from app.schemas.trip import TripCreate, TripResponse, TripDetailResponse, TripMemberResponse, MemberAdd
from app.services.event_log import log_event
from app.api.dependencies import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trips", tags=["trips"])


def check_trip_access(trip_id: int, user_id: int, db: Session) -> TripMember:
    """Return the user's membership of a live trip, or raise 404/403."""
    trip = db.query(Trip).filter(Trip.id == trip_id, Trip.deleted_at.is_(None)).first()
    if not trip:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Trip not found"
        )

    member = db.query(TripMember).filter(
        TripMember.trip_id == trip_id,
        TripMember.user_id == user_id
    ).first()

    if not member:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have access to this trip"
        )

    return member


def require_trip_organizer(trip_id: int, user_id: int, db: Session) -> TripMember:
    """Like check_trip_access, but only OWNER and ADMIN members pass."""
    member = check_trip_access(trip_id, user_id, db)
    if not member.is_organizer:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only trip organizers can do this"
        )
    return member


def _member_response(member: TripMember) -> TripMemberResponse:
    return TripMemberResponse(
        user_id=member.user_id,
        username=member.user.username,
        display_name=member.user.display_name,
        role=member.role
    )


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    trip_data: TripCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a new trip. The creator becomes its OWNER."""
    if trip_data.start_date and trip_data.end_date and trip_data.end_date < trip_data.start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="end_date must not be before start_date"
        )

    new_trip = Trip(
        name=trip_data.name,
        description=trip_data.description,
        start_date=trip_data.start_date,
        end_date=trip_data.end_date,
        base_currency=trip_data.base_currency or settings.DEFAULT_BASE_CURRENCY,
        created_by_id=current_user.id
    )
    db.add(new_trip)
    db.flush()

    db.add(TripMember(trip_id=new_trip.id, user_id=current_user.id, role=MemberRole.OWNER))
    log_event(db, "Trip", new_trip.id, EventType.TRIP_CREATED, current_user.id, new_trip.id, {
        "name": new_trip.name,
        "baseCurrency": new_trip.base_currency,
    })
    db.commit()
    db.refresh(new_trip)

    return new_trip


@router.get("", response_model=List[TripResponse])
async def list_trips(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List all trips the current user belongs to."""
    return db.query(Trip).join(TripMember).filter(
        TripMember.user_id == current_user.id,
        Trip.deleted_at.is_(None)
    ).order_by(Trip.created_at.desc()).all()


@router.get("/{trip_id}", response_model=TripDetailResponse)
async def get_trip(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get trip details with members."""
    check_trip_access(trip_id, current_user.id, db)

    trip = db.query(Trip).options(
        selectinload(Trip.members).selectinload(TripMember.user)
    ).filter(Trip.id == trip_id).first()

    return TripDetailResponse(
        **TripResponse.model_validate(trip).model_dump(),
        members=[_member_response(m) for m in sorted(trip.members, key=lambda m: m.user_id)]
    )


@router.delete("/{trip_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_trip(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Soft-delete a trip. Only its OWNER may do this."""
    member = check_trip_access(trip_id, current_user.id, db)
    if member.role != MemberRole.OWNER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the trip owner can delete the trip"
        )

    member.trip.deleted_at = datetime.now(timezone.utc)
    log_event(db, "Trip", trip_id, EventType.TRIP_DELETED, current_user.id, trip_id)
    db.commit()
    logger.info(f"Trip {trip_id} deleted by user {current_user.id}")


@router.post("/{trip_id}/members", response_model=TripMemberResponse, status_code=status.HTTP_201_CREATED)
async def add_member(
    trip_id: int,
    invite: MemberAdd,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Add a user to the trip by username."""
    require_trip_organizer(trip_id, current_user.id, db)

    if invite.role == MemberRole.OWNER:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A trip has exactly one owner"
        )

    user = db.query(User).filter(User.username == invite.username, User.deleted_at.is_(None)).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    existing = db.query(TripMember).filter(
        TripMember.trip_id == trip_id,
        TripMember.user_id == user.id
    ).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is already a member"
        )

    member = TripMember(trip_id=trip_id, user_id=user.id, role=invite.role)
    db.add(member)
    db.flush()
    log_event(db, "TripMember", member.id, EventType.MEMBER_ADDED, current_user.id, trip_id, {
        "userId": user.id,
        "role": invite.role.value,
    })
    db.commit()
    db.refresh(member)

    return _member_response(member)


@router.delete("/{trip_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    trip_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Remove a member. Members may leave; organizers may remove others."""
    if user_id != current_user.id:
        require_trip_organizer(trip_id, current_user.id, db)
    else:
        check_trip_access(trip_id, current_user.id, db)

    member = db.query(TripMember).filter(
        TripMember.trip_id == trip_id,
        TripMember.user_id == user_id
    ).first()
    if not member:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Member not found"
        )
    if member.role == MemberRole.OWNER:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The trip owner cannot be removed"
        )

    log_event(db, "TripMember", member.id, EventType.MEMBER_REMOVED, current_user.id, trip_id, {
        "userId": user_id,
    })
    db.delete(member)
    db.commit()
