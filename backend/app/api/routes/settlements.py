"""
Settlement plan and payment routes.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from app.core.currency import to_decimal
from app.db.session import get_db
from app.models.user import User
from app.models.settlement import Settlement
from app.schemas.settlement import (
    PaymentCreate, PaymentUpdate, PaymentResponse, PaymentResult, SettlementResponse
)
from app.services import settlement_service
from app.api.dependencies import get_current_user
from app.api.routes.trips import check_trip_access, require_trip_organizer

router = APIRouter(tags=["settlements"])


def build_settlement_response(settlement: Settlement) -> SettlementResponse:
    paid = settlement_service.total_paid(settlement)
    return SettlementResponse(
        id=settlement.id,
        trip_id=settlement.trip_id,
        from_user_id=settlement.from_user_id,
        from_user_name=settlement.from_user.name,
        to_user_id=settlement.to_user_id,
        to_user_name=settlement.to_user.name,
        amount=settlement.amount,
        status=settlement.status,
        notes=settlement.notes,
        total_paid=paid,
        remaining_amount=to_decimal(settlement.amount) - paid,
        payments=[PaymentResponse.model_validate(p) for p in settlement.payments],
        created_at=settlement.created_at
    )


@router.post(
    "/trips/{trip_id}/settlements",
    response_model=List[SettlementResponse],
    status_code=status.HTTP_201_CREATED
)
async def create_settlement_plan(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Store the current minimal settlement plan so payments can be tracked."""
    require_trip_organizer(trip_id, current_user.id, db)
    settlements = settlement_service.persist_settlement_plan(trip_id, current_user.id, db)
    return [build_settlement_response(s) for s in settlements]


@router.get("/trips/{trip_id}/settlements", response_model=List[SettlementResponse])
async def list_settlements(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Persisted settlements with their payments."""
    check_trip_access(trip_id, current_user.id, db)
    return [build_settlement_response(s) for s in settlement_service.list_trip_settlements(trip_id, db)]


@router.post(
    "/settlements/{settlement_id}/payments",
    response_model=PaymentResult,
    status_code=status.HTTP_201_CREATED
)
async def record_payment(
    settlement_id: int,
    payment_data: PaymentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Record a payment. Only the receiver or a trip organizer may do this."""
    settlement = settlement_service.get_settlement(settlement_id, db)
    member = check_trip_access(settlement.trip_id, current_user.id, db)

    if settlement.to_user_id != current_user.id and not member.is_organizer:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the payment receiver or trip organizer can record this payment"
        )

    payment = settlement_service.record_payment(
        settlement_id,
        payment_data.amount,
        current_user.id,
        db,
        paid_at=payment_data.paid_at,
        payment_method=payment_data.payment_method,
        payment_reference=payment_data.payment_reference,
        notes=payment_data.notes
    )
    return PaymentResult(
        payment=PaymentResponse.model_validate(payment),
        settlement=build_settlement_response(settlement_service.get_settlement(settlement_id, db))
    )


def _check_payment_editor(settlement_id: int, payment_id: int, user_id: int, db: Session) -> None:
    """Recorder, receiver or organizer may change a payment."""
    settlement = settlement_service.get_settlement(settlement_id, db)
    member = check_trip_access(settlement.trip_id, user_id, db)
    payment = settlement_service.get_payment(settlement_id, payment_id, db)

    if payment.recorded_by_id != user_id and settlement.to_user_id != user_id and not member.is_organizer:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the payment recorder, receiver, or trip organizer can change this payment"
        )


@router.patch("/settlements/{settlement_id}/payments/{payment_id}", response_model=PaymentResult)
async def update_payment(
    settlement_id: int,
    payment_id: int,
    payment_data: PaymentUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Edit a payment."""
    _check_payment_editor(settlement_id, payment_id, current_user.id, db)
    payment = settlement_service.update_payment(
        settlement_id,
        payment_id,
        current_user.id,
        db,
        amount=payment_data.amount,
        paid_at=payment_data.paid_at,
        payment_method=payment_data.payment_method,
        payment_reference=payment_data.payment_reference,
        notes=payment_data.notes
    )
    return PaymentResult(
        payment=PaymentResponse.model_validate(payment),
        settlement=build_settlement_response(settlement_service.get_settlement(settlement_id, db))
    )


@router.delete("/settlements/{settlement_id}/payments/{payment_id}", response_model=SettlementResponse)
async def delete_payment(
    settlement_id: int,
    payment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete a payment; returns the settlement with its recomputed status."""
    _check_payment_editor(settlement_id, payment_id, current_user.id, db)
    settlement = settlement_service.delete_payment(settlement_id, payment_id, current_user.id, db)
    return build_settlement_response(settlement)
