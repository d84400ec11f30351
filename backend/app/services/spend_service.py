"""
Spend service: the write path for spends and their assignments.

Keeps the invariants the balance engine relies on:
``normalized_amount == round(amount * fx_rate)`` in the trip's base currency,
and the normalized shares of a fully assigned spend add up to exactly its
normalized amount.
"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional
from sqlalchemy.orm import Session, selectinload
from app.core.currency import allocate, quantize_amount, to_decimal
from app.core.exceptions import InvalidOperationError, NotFoundError
from app.models.event_log import EventType
from app.models.spend import Spend, SpendAssignment, SpendStatus, SplitType
from app.models.trip import Trip, TripMember
from app.schemas.spend import AssignmentInput, SpendCreate, SpendUpdate
from app.services.event_log import log_event
from app.services.fx_service import get_exchange_rate, normalize_amount

logger = logging.getLogger(__name__)

# Percentage points a closed spend may be off from 100% assigned
CLOSE_TOLERANCE_PERCENT = Decimal("0.01")


def get_spend(spend_id: int, db: Session) -> Spend:
    """Load a non-deleted spend with payer and assignments."""
    spend = db.query(Spend).options(
        selectinload(Spend.paid_by),
        selectinload(Spend.assignments).selectinload(SpendAssignment.user)
    ).filter(Spend.id == spend_id, Spend.deleted_at.is_(None)).first()
    if not spend:
        raise NotFoundError("Spend not found")
    return spend


def list_trip_spends(trip_id: int, db: Session) -> List[Spend]:
    """Non-deleted spends of a trip, newest first."""
    return db.query(Spend).options(
        selectinload(Spend.paid_by),
        selectinload(Spend.assignments).selectinload(SpendAssignment.user)
    ).filter(
        Spend.trip_id == trip_id,
        Spend.deleted_at.is_(None)
    ).order_by(Spend.date.desc(), Spend.id.desc()).all()


def _member_ids(trip_id: int, db: Session) -> set:
    rows = db.query(TripMember.user_id).filter(TripMember.trip_id == trip_id).all()
    return {row[0] for row in rows}


def _ensure_member(user_id: int, member_ids: set) -> None:
    if user_id not in member_ids:
        raise InvalidOperationError(f"User {user_id} is not a member of this trip")


def _ensure_open(spend: Spend) -> None:
    if spend.status == SpendStatus.CLOSED:
        raise InvalidOperationError("Spend is closed. Reopen it before editing.")


def _ensure_billable(amount: Decimal, currency: str) -> None:
    if quantize_amount(amount, currency) <= 0:
        raise InvalidOperationError(f"Amount {amount} rounds to zero in {currency}")


def resolve_shares(amount: Decimal, entries: List[AssignmentInput], currency: str) -> List[Decimal]:
    """
    Turn assignment inputs into share amounts in the spend's currency.

    EXACT shares are taken as given, PERCENT shares are allocated from
    ``amount``, and EQUAL assignees divide whatever remains. The shares may
    total less than ``amount`` (partially assigned) but never more.
    """
    shares: List[Optional[Decimal]] = [None] * len(entries)

    for i, entry in enumerate(entries):
        if entry.split_type == SplitType.EXACT:
            if entry.split_value is None:
                raise InvalidOperationError("EXACT assignments need a split_value")
            shares[i] = quantize_amount(entry.split_value, currency)

    percent_idx = [i for i, e in enumerate(entries) if e.split_type == SplitType.PERCENT]
    if percent_idx:
        percents = []
        for i in percent_idx:
            if entries[i].split_value is None:
                raise InvalidOperationError("PERCENT assignments need a split_value")
            percents.append(to_decimal(entries[i].split_value))
        percent_total = sum(percents, Decimal(0))
        if percent_total > 100:
            raise InvalidOperationError(f"Percentages total {percent_total}%, more than 100%")
        for i, part in zip(percent_idx, allocate(amount * percent_total / 100, percents, currency)):
            shares[i] = part

    fixed_total = sum((s for s in shares if s is not None), Decimal(0))
    remainder = quantize_amount(amount, currency) - fixed_total
    if remainder < 0:
        raise InvalidOperationError(
            f"Assignments total {fixed_total} {currency}, more than the spend amount {amount}"
        )

    equal_idx = [i for i, e in enumerate(entries) if e.split_type == SplitType.EQUAL]
    for i, part in zip(equal_idx, allocate(remainder, [1] * len(equal_idx), currency)):
        shares[i] = part

    return shares


def _apply_assignments(spend: Spend, entries: List[AssignmentInput], base_currency: str, db: Session) -> None:
    """Replace spend.assignments with rows resolved from entries."""
    user_ids = [e.user_id for e in entries]
    if len(set(user_ids)) != len(user_ids):
        raise InvalidOperationError("Each user can only be assigned once per spend")

    member_ids = _member_ids(spend.trip_id, db)
    for user_id in user_ids:
        _ensure_member(user_id, member_ids)

    amount = to_decimal(spend.amount)
    shares = resolve_shares(amount, entries, spend.currency)

    # Normalized shares come from the normalized amount, not share * rate,
    # so a fully assigned spend sums exactly
    assigned = sum(shares, Decimal(0))
    normalized_total = to_decimal(spend.normalized_amount) * assigned / amount
    normalized_shares = allocate(normalized_total, shares, base_currency)

    spend.assignments.clear()
    db.flush()
    for entry, share, normalized_share in zip(entries, shares, normalized_shares):
        spend.assignments.append(SpendAssignment(
            user_id=entry.user_id,
            share_amount=share,
            normalized_share_amount=normalized_share,
            split_type=entry.split_type,
            split_value=entry.split_value
        ))


def assignment_summary(spend: Spend) -> Dict[str, object]:
    """Assigned total (base currency), percent of the spend assigned and whether it is complete."""
    assigned = sum(
        (to_decimal(a.normalized_share_amount) for a in spend.assignments if a.normalized_share_amount is not None),
        Decimal(0)
    )
    normalized = to_decimal(spend.normalized_amount) if spend.normalized_amount is not None else Decimal(0)
    percent = (assigned / normalized * 100) if normalized > 0 else Decimal(0)
    percent = percent.quantize(Decimal("0.01"))
    return {
        "assigned_total": assigned,
        "percent_assigned": percent,
        "is_fully_assigned": normalized > 0 and abs(percent - 100) <= CLOSE_TOLERANCE_PERCENT,
    }


def create_spend(trip_id: int, data: SpendCreate, user_id: int, db: Session) -> Spend:
    """Create a spend, normalize it to the trip's base currency and assign it."""
    trip = db.query(Trip).filter(Trip.id == trip_id, Trip.deleted_at.is_(None)).first()
    if not trip:
        raise NotFoundError("Trip not found")

    payer_id = data.paid_by_id or user_id
    _ensure_member(payer_id, _member_ids(trip_id, db))

    spend_date = data.date or date.today()
    currency = data.currency or trip.base_currency
    _ensure_billable(data.amount, currency)
    fx_rate = data.fx_rate if data.fx_rate is not None else get_exchange_rate(trip_id, spend_date, currency, db)

    spend = Spend(
        trip_id=trip_id,
        paid_by_id=payer_id,
        description=data.description,
        date=spend_date,
        amount=quantize_amount(data.amount, currency),
        currency=currency,
        fx_rate=fx_rate,
        normalized_amount=normalize_amount(data.amount, fx_rate, trip.base_currency),
        status=SpendStatus.OPEN
    )
    db.add(spend)
    db.flush()

    if data.assignments:
        _apply_assignments(spend, data.assignments, trip.base_currency, db)

    log_event(db, "Spend", spend.id, EventType.SPEND_CREATED, user_id, trip_id, {
        "amount": str(spend.amount),
        "currency": currency,
        "normalizedAmount": str(spend.normalized_amount),
        "assignees": [a.user_id for a in data.assignments],
    })
    db.commit()
    logger.info(f"Spend {spend.id} created in trip {trip_id}: {spend.amount} {currency}")
    return get_spend(spend.id, db)


def update_spend(spend_id: int, data: SpendUpdate, user_id: int, db: Session) -> Spend:
    """
    Edit an open spend. Changing amount, currency or fx rate renormalizes the
    spend and re-resolves its existing assignments against the new amount.
    Moving the spend to another date without an explicit fx rate looks the
    rate up again for the new date.
    """
    spend = get_spend(spend_id, db)
    _ensure_open(spend)
    base_currency = spend.trip.base_currency
    changes = data.model_dump(exclude_unset=True)

    if "paid_by_id" in changes and data.paid_by_id is not None:
        _ensure_member(data.paid_by_id, _member_ids(spend.trip_id, db))
        spend.paid_by_id = data.paid_by_id
    if "description" in changes:
        spend.description = data.description
    date_changed = data.date is not None and data.date != spend.date
    if date_changed:
        spend.date = data.date

    money_changed = date_changed or any(changes.get(k) is not None for k in ("amount", "currency", "fx_rate"))
    if money_changed:
        currency = data.currency or spend.currency
        amount = data.amount if data.amount is not None else to_decimal(spend.amount)
        _ensure_billable(amount, currency)
        if data.fx_rate is not None:
            fx_rate = data.fx_rate
        elif currency != spend.currency or date_changed:
            fx_rate = get_exchange_rate(spend.trip_id, spend.date, currency, db)
        else:
            fx_rate = to_decimal(spend.fx_rate)

        spend.currency = currency
        spend.fx_rate = fx_rate
        spend.amount = quantize_amount(amount, currency)
        spend.normalized_amount = normalize_amount(amount, fx_rate, base_currency)

        entries = [
            AssignmentInput(user_id=a.user_id, split_type=a.split_type, split_value=a.split_value)
            for a in spend.assignments
        ]
        if entries:
            _apply_assignments(spend, entries, base_currency, db)

    log_event(db, "Spend", spend.id, EventType.SPEND_UPDATED, user_id, spend.trip_id, {
        key: str(value) for key, value in changes.items()
    })
    db.commit()
    return get_spend(spend.id, db)


def replace_assignments(spend_id: int, entries: List[AssignmentInput], user_id: int, db: Session) -> Spend:
    """Replace every assignment of an open spend."""
    spend = get_spend(spend_id, db)
    _ensure_open(spend)
    _apply_assignments(spend, entries, spend.trip.base_currency, db)
    log_event(db, "Spend", spend.id, EventType.ASSIGNMENTS_REPLACED, user_id, spend.trip_id, {
        "assignees": [e.user_id for e in entries],
    })
    db.commit()
    return get_spend(spend.id, db)


def close_spend(spend_id: int, user_id: int, db: Session, force: bool = False) -> Spend:
    """Lock a spend. Requires 100% assignment unless forced."""
    spend = get_spend(spend_id, db)
    if spend.status == SpendStatus.CLOSED:
        raise InvalidOperationError("Spend is already closed")

    summary = assignment_summary(spend)
    if not force and not summary["is_fully_assigned"]:
        raise InvalidOperationError(
            f"Cannot close: assignments total {summary['percent_assigned']}%, must be 100%. "
            "Use force=true to override."
        )

    spend.status = SpendStatus.CLOSED
    log_event(db, "Spend", spend.id, EventType.SPEND_CLOSED, user_id, spend.trip_id, {
        "assignmentPercentage": str(summary["percent_assigned"]),
        "forced": force,
    })
    db.commit()
    return get_spend(spend.id, db)


def reopen_spend(spend_id: int, user_id: int, db: Session) -> Spend:
    """Make a closed spend editable again."""
    spend = get_spend(spend_id, db)
    if spend.status != SpendStatus.CLOSED:
        raise InvalidOperationError("Spend is not closed")

    spend.status = SpendStatus.OPEN
    log_event(db, "Spend", spend.id, EventType.SPEND_UPDATED, user_id, spend.trip_id, {"action": "reopened"})
    db.commit()
    return get_spend(spend.id, db)


def delete_spend(spend_id: int, user_id: int, db: Session) -> None:
    """Soft-delete a spend. It stops counting toward balances immediately."""
    spend = get_spend(spend_id, db)
    _ensure_open(spend)
    spend.deleted_at = datetime.now(timezone.utc)
    log_event(db, "Spend", spend.id, EventType.SPEND_DELETED, user_id, spend.trip_id, {
        "description": spend.description,
        "amount": str(spend.amount),
    })
    db.commit()
    logger.info(f"Spend {spend.id} deleted by user {user_id}")
