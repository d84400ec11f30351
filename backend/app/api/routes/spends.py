"""
Spend management routes.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from app.db.session import get_db
from app.models.user import User
from app.models.spend import Spend
from app.schemas.spend import (
    SpendCreate, SpendUpdate, SpendClose, SpendResponse,
    SpendAssignmentResponse, AssignmentsReplace
)
from app.services import spend_service
from app.api.dependencies import get_current_user
from app.api.routes.trips import check_trip_access

router = APIRouter(tags=["spends"])


def build_spend_response(spend: Spend) -> SpendResponse:
    """Flatten a spend with its payer and assignments into the response schema."""
    summary = spend_service.assignment_summary(spend)
    return SpendResponse(
        id=spend.id,
        trip_id=spend.trip_id,
        paid_by_id=spend.paid_by_id,
        paid_by_name=spend.paid_by.name if spend.paid_by else "",
        description=spend.description,
        date=spend.date,
        amount=spend.amount,
        currency=spend.currency,
        fx_rate=spend.fx_rate,
        normalized_amount=spend.normalized_amount,
        base_currency=spend.trip.base_currency,
        status=spend.status,
        assignments=[
            SpendAssignmentResponse(
                id=a.id,
                user_id=a.user_id,
                user_name=a.user.name if a.user else "",
                share_amount=a.share_amount,
                normalized_share_amount=a.normalized_share_amount,
                split_type=a.split_type,
                split_value=a.split_value
            )
            for a in spend.assignments
        ],
        assigned_total=summary["assigned_total"],
        percent_assigned=float(summary["percent_assigned"]),
        is_fully_assigned=summary["is_fully_assigned"],
        created_at=spend.created_at,
        updated_at=spend.updated_at
    )


def _accessible_spend(spend_id: int, user_id: int, db: Session) -> Spend:
    spend = spend_service.get_spend(spend_id, db)
    check_trip_access(spend.trip_id, user_id, db)
    return spend


@router.get("/trips/{trip_id}/spends", response_model=List[SpendResponse])
async def list_spends(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the trip's spends, newest first."""
    check_trip_access(trip_id, current_user.id, db)
    return [build_spend_response(s) for s in spend_service.list_trip_spends(trip_id, db)]


@router.post("/trips/{trip_id}/spends", response_model=SpendResponse, status_code=status.HTTP_201_CREATED)
async def create_spend(
    trip_id: int,
    spend_data: SpendCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a spend, optionally with assignments."""
    check_trip_access(trip_id, current_user.id, db)
    spend = spend_service.create_spend(trip_id, spend_data, current_user.id, db)
    return build_spend_response(spend)


@router.get("/spends/{spend_id}", response_model=SpendResponse)
async def get_spend(
    spend_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get one spend."""
    return build_spend_response(_accessible_spend(spend_id, current_user.id, db))


@router.patch("/spends/{spend_id}", response_model=SpendResponse)
async def update_spend(
    spend_id: int,
    spend_data: SpendUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Edit an open spend."""
    _accessible_spend(spend_id, current_user.id, db)
    spend = spend_service.update_spend(spend_id, spend_data, current_user.id, db)
    return build_spend_response(spend)


@router.delete("/spends/{spend_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_spend(
    spend_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Soft-delete an open spend."""
    _accessible_spend(spend_id, current_user.id, db)
    spend_service.delete_spend(spend_id, current_user.id, db)


@router.put("/spends/{spend_id}/assignments", response_model=SpendResponse)
async def replace_assignments(
    spend_id: int,
    payload: AssignmentsReplace,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Replace all assignments of an open spend."""
    _accessible_spend(spend_id, current_user.id, db)
    spend = spend_service.replace_assignments(spend_id, payload.assignments, current_user.id, db)
    return build_spend_response(spend)


@router.post("/spends/{spend_id}/close", response_model=SpendResponse)
async def close_spend(
    spend_id: int,
    payload: Optional[SpendClose] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Lock a spend against edits."""
    _accessible_spend(spend_id, current_user.id, db)
    spend = spend_service.close_spend(spend_id, current_user.id, db, force=bool(payload and payload.force))
    return build_spend_response(spend)


@router.post("/spends/{spend_id}/reopen", response_model=SpendResponse)
async def reopen_spend(
    spend_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Unlock a closed spend."""
    _accessible_spend(spend_id, current_user.id, db)
    spend = spend_service.reopen_spend(spend_id, current_user.id, db)
    return build_spend_response(spend)
