"""
Settlement service: persisted settlement plans and payment tracking.

A plan is a snapshot of the minimal transfers computed by the balance engine,
stored so members can record payments against each transfer.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.orm import Session, selectinload
from app.core.currency import to_decimal
from app.core.exceptions import InvalidOperationError, NotFoundError
from app.models.event_log import EventType
from app.models.settlement import Settlement, Payment, SettlementStatus
from app.services.balance_service import calculate_trip_balances
from app.services.event_log import log_event

logger = logging.getLogger(__name__)

# Slack allowed when comparing paid totals to a settlement amount
PAYMENT_TOLERANCE = Decimal("0.01")


def total_paid(settlement: Settlement) -> Decimal:
    return sum((to_decimal(p.amount) for p in settlement.payments), Decimal(0))


def status_for(amount: Decimal, paid: Decimal) -> SettlementStatus:
    """Settlement status implied by how much has been paid so far."""
    remaining = amount - paid
    if remaining <= PAYMENT_TOLERANCE:
        return SettlementStatus.PAID
    if paid > PAYMENT_TOLERANCE:
        return SettlementStatus.PARTIALLY_PAID
    return SettlementStatus.PENDING


def get_settlement(settlement_id: int, db: Session) -> Settlement:
    settlement = db.query(Settlement).options(
        selectinload(Settlement.payments),
        selectinload(Settlement.from_user),
        selectinload(Settlement.to_user)
    ).filter(Settlement.id == settlement_id, Settlement.deleted_at.is_(None)).first()
    if not settlement:
        raise NotFoundError("Settlement not found")
    return settlement


def list_trip_settlements(trip_id: int, db: Session) -> List[Settlement]:
    """Non-deleted settlements of a trip, open ones first."""
    settlements = db.query(Settlement).options(
        selectinload(Settlement.payments).selectinload(Payment.recorded_by),
        selectinload(Settlement.from_user),
        selectinload(Settlement.to_user)
    ).filter(
        Settlement.trip_id == trip_id,
        Settlement.deleted_at.is_(None)
    ).order_by(Settlement.created_at.desc(), Settlement.id).all()

    order = list(SettlementStatus)
    return sorted(settlements, key=lambda s: order.index(s.status))


def persist_settlement_plan(trip_id: int, user_id: int, db: Session) -> List[Settlement]:
    """
    Store the current minimal settlement plan.

    PENDING settlements from an earlier plan are replaced; settlements that
    already have payments are kept as they are.
    """
    summary = calculate_trip_balances(trip_id, db)

    stale = db.query(Settlement).filter(
        Settlement.trip_id == trip_id,
        Settlement.status == SettlementStatus.PENDING
    ).all()
    for settlement in stale:
        db.delete(settlement)
    db.flush()

    created = []
    for transfer in summary.settlements:
        notes = None
        if transfer.oldest_debt_date:
            notes = f"Debt since {transfer.oldest_debt_date.isoformat()}"
        settlement = Settlement(
            trip_id=trip_id,
            from_user_id=transfer.from_user_id,
            to_user_id=transfer.to_user_id,
            amount=transfer.amount,
            status=SettlementStatus.PENDING,
            notes=notes
        )
        db.add(settlement)
        created.append(settlement)
    db.flush()

    for settlement in created:
        log_event(db, "Settlement", settlement.id, EventType.SETTLEMENT_CREATED, user_id, trip_id, {
            "fromUserId": settlement.from_user_id,
            "toUserId": settlement.to_user_id,
            "amount": str(settlement.amount),
        })
    db.commit()
    logger.info(f"Persisted {len(created)} settlement(s) for trip {trip_id}")
    return list_trip_settlements(trip_id, db)


def record_payment(
    settlement_id: int,
    amount: Decimal,
    recorded_by_id: int,
    db: Session,
    paid_at: Optional[datetime] = None,
    payment_method: Optional[str] = None,
    payment_reference: Optional[str] = None,
    notes: Optional[str] = None
) -> Payment:
    """Record a payment towards a settlement and update its status."""
    settlement = get_settlement(settlement_id, db)
    settlement_amount = to_decimal(settlement.amount)
    already_paid = total_paid(settlement)
    new_total = already_paid + amount

    if amount <= 0:
        raise InvalidOperationError("Payment amount must be positive")
    if new_total > settlement_amount + PAYMENT_TOLERANCE:
        raise InvalidOperationError("Payment would exceed settlement amount")

    payment = Payment(
        settlement_id=settlement.id,
        amount=amount,
        paid_at=paid_at or datetime.now(timezone.utc),
        payment_method=payment_method,
        payment_reference=payment_reference,
        notes=notes,
        recorded_by_id=recorded_by_id
    )
    db.add(payment)
    settlement.status = status_for(settlement_amount, new_total)
    db.flush()

    log_event(db, "Payment", payment.id, EventType.PAYMENT_RECORDED, recorded_by_id, settlement.trip_id, {
        "settlementId": settlement.id,
        "amount": str(amount),
        "newTotalPaid": str(new_total),
        "remainingAmount": str(settlement_amount - new_total),
        "settlementStatus": settlement.status.value,
    })
    db.commit()
    db.refresh(payment)
    return payment


def get_payment(settlement_id: int, payment_id: int, db: Session) -> Payment:
    payment = db.query(Payment).filter(Payment.id == payment_id).first()
    if not payment or payment.settlement_id != settlement_id:
        raise NotFoundError("Payment not found")
    return payment


def update_payment(
    settlement_id: int,
    payment_id: int,
    user_id: int,
    db: Session,
    amount: Optional[Decimal] = None,
    paid_at: Optional[datetime] = None,
    payment_method: Optional[str] = None,
    payment_reference: Optional[str] = None,
    notes: Optional[str] = None
) -> Payment:
    """Edit a payment and recompute the settlement's status."""
    settlement = get_settlement(settlement_id, db)
    payment = get_payment(settlement_id, payment_id, db)
    old_amount = to_decimal(payment.amount)
    new_amount = amount if amount is not None else old_amount
    if new_amount <= 0:
        raise InvalidOperationError("Payment amount must be positive")

    settlement_amount = to_decimal(settlement.amount)
    new_total = total_paid(settlement) - old_amount + new_amount
    if new_total > settlement_amount + PAYMENT_TOLERANCE:
        raise InvalidOperationError("Updated payment would exceed settlement amount")

    payment.amount = new_amount
    if paid_at is not None:
        payment.paid_at = paid_at
    if payment_method is not None:
        payment.payment_method = payment_method
    if payment_reference is not None:
        payment.payment_reference = payment_reference
    if notes is not None:
        payment.notes = notes
    settlement.status = status_for(settlement_amount, new_total)

    log_event(db, "Payment", payment.id, EventType.SETTLEMENT_UPDATED, user_id, settlement.trip_id, {
        "settlementId": settlement.id,
        "amount": str(new_amount),
        "oldAmount": str(old_amount),
    })
    db.commit()
    db.refresh(payment)
    return payment


def delete_payment(settlement_id: int, payment_id: int, user_id: int, db: Session) -> Settlement:
    """Remove a payment and recompute the settlement's status."""
    settlement = get_settlement(settlement_id, db)
    payment = get_payment(settlement_id, payment_id, db)
    payment_amount = to_decimal(payment.amount)
    new_total = total_paid(settlement) - payment_amount

    settlement.payments.remove(payment)
    settlement.status = status_for(to_decimal(settlement.amount), new_total)

    log_event(db, "Payment", payment_id, EventType.SETTLEMENT_UPDATED, user_id, settlement.trip_id, {
        "settlementId": settlement.id,
        "amount": str(payment_amount),
        "deleted": True,
    })
    db.commit()
    return get_settlement(settlement_id, db)
