"""
Balance and settlement engine.

Aggregates every non-deleted spend of a trip into per-user net balances in the
trip's base currency, then proposes a minimal set of transfers that brings all
balances to zero.

Data is read once (trip + spends with assignments eagerly loaded); everything
after that is a pure, deterministic in-memory reduction with no writes.
"""
import heapq
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple
from sqlalchemy.orm import Session, selectinload
from app.core.currency import minor_unit, quantize_amount, settlement_tolerance, to_decimal
from app.core.exceptions import DataIntegrityWarning, NotFoundError
from app.models.spend import Spend, SpendAssignment
from app.models.trip import Trip
from app.schemas.balance import (
    BalanceSummary, PersonBalance, SettlementTransfer,
    UserBalance, LedgerEntry, DebtLedger
)

logger = logging.getLogger(__name__)


class NetBalance:
    """Running totals for one user."""
    def __init__(self, user_id: int, user_name: str = ""):
        self.user_id = user_id
        self.user_name = user_name
        self.total_paid = Decimal(0)
        self.total_owed = Decimal(0)

    @property
    def net(self) -> Decimal:
        return self.total_paid - self.total_owed


class Transfer:
    """Represents a single transfer between users."""
    def __init__(self, from_user_id: int, to_user_id: int, amount: Decimal):
        self.from_user_id = from_user_id
        self.to_user_id = to_user_id
        self.amount = amount

    def __repr__(self) -> str:
        return f"Transfer({self.from_user_id} -> {self.to_user_id}: {self.amount})"


class BalanceSheet:
    """
    Net balances accumulated from a snapshot of spends.

    ``debt_ages`` maps (debtor_id, creditor_id) to the date of the oldest
    spend in which the debtor holds a positive share of the creditor's spend.
    """
    def __init__(self, base_currency: str):
        self.base_currency = base_currency
        self.entries: Dict[int, NetBalance] = {}
        self.debt_ages: Dict[Tuple[int, int], date] = {}
        self.total_spent = Decimal(0)
        self.skipped_records = 0

    def _entry(self, user_id: int, user) -> NetBalance:
        entry = self.entries.get(user_id)
        if entry is None:
            entry = NetBalance(user_id, user.name if user is not None else "")
            self.entries[user_id] = entry
        return entry

    def net_balances(self) -> Dict[int, Decimal]:
        return {user_id: entry.net for user_id, entry in self.entries.items()}

    def add_spend(self, spend: Spend) -> None:
        """Credit the payer and debit every valid assignee."""
        check_spend(spend, self.base_currency)
        normalized = to_decimal(spend.normalized_amount)
        payer = self._entry(spend.paid_by_id, spend.paid_by)
        payer.total_paid += normalized
        self.total_spent += normalized

        for assignment in spend.assignments:
            try:
                check_assignment(assignment)
            except DataIntegrityWarning as warning:
                logger.warning(f"Skipping assignment {assignment.id} of spend {spend.id}: {warning}")
                self.skipped_records += 1
                continue

            share = to_decimal(assignment.normalized_share_amount)
            self._entry(assignment.user_id, assignment.user).total_owed += share

            if assignment.user_id != spend.paid_by_id and share > 0:
                key = (assignment.user_id, spend.paid_by_id)
                oldest = self.debt_ages.get(key)
                if oldest is None or spend.date < oldest:
                    self.debt_ages[key] = spend.date


def check_spend(spend: Spend, base_currency: str) -> None:
    """Raise DataIntegrityWarning if a spend cannot take part in balances."""
    if spend.paid_by_id is None:
        raise DataIntegrityWarning("spend has no payer")
    if spend.paid_by is not None and spend.paid_by.deleted_at is not None:
        raise DataIntegrityWarning(f"payer {spend.paid_by_id} is deleted")
    if spend.normalized_amount is None:
        raise DataIntegrityWarning("spend has no normalized amount")
    if spend.fx_rate is None and (spend.currency or "").upper() != base_currency.upper():
        raise DataIntegrityWarning(f"no fx rate from {spend.currency} to {base_currency}")


def check_assignment(assignment: SpendAssignment) -> None:
    """Raise DataIntegrityWarning if an assignment cannot take part in balances."""
    if assignment.user_id is None:
        raise DataIntegrityWarning("assignment has no user")
    if assignment.user is not None and assignment.user.deleted_at is not None:
        raise DataIntegrityWarning(f"assignee {assignment.user_id} is deleted")
    if assignment.normalized_share_amount is None:
        raise DataIntegrityWarning("assignment has no normalized share amount")


def accumulate_net_balances(spends: Iterable[Spend], base_currency: str) -> BalanceSheet:
    """
    Build a BalanceSheet from spends, skipping (and logging) malformed records.

    Soft-deleted spends are ignored. Shares that do not add up to the spend's
    normalized amount are not corrected: the residue stays in the payer's and
    assignees' balances as computed.
    """
    sheet = BalanceSheet(base_currency)
    for spend in spends:
        if spend.deleted_at is not None:
            continue
        try:
            sheet.add_spend(spend)
        except DataIntegrityWarning as warning:
            logger.warning(f"Skipping spend {spend.id}: {warning}")
            sheet.skipped_records += 1
    return sheet


def round_balances(balances: Dict[int, Decimal], currency: str) -> Dict[int, Decimal]:
    """
    Round every balance to the currency's minor unit while keeping their sum
    equal to the rounded sum of the unrounded balances.

    Rounding each balance on its own can drift by a few minor units (5.004,
    5.004 and -10.008 become 5.00, 5.00 and -10.01). The drift is pushed back
    one unit at a time onto the balances whose rounding moved them furthest
    the other way, lower user id first.
    """
    unit = minor_unit(currency)
    rounded = {user_id: quantize_amount(balance, currency) for user_id, balance in balances.items()}
    target = quantize_amount(sum(balances.values(), Decimal(0)), currency)
    drift = int((target - sum(rounded.values(), Decimal(0))) / unit)
    if drift:
        sign = 1 if drift > 0 else -1
        order = sorted(balances, key=lambda uid: (sign * (rounded[uid] - balances[uid]), uid))
        for user_id in order[:abs(drift)]:
            rounded[user_id] += sign * unit
    return rounded


def minimize_transfers(balances: Dict[int, Decimal], currency: str) -> List[Transfer]:
    """
    Greedy largest-first matching of debtors to creditors.

    Each round pairs the largest remaining creditor with the largest remaining
    debtor (ties go to the lower user id) and transfers the smaller of the two
    amounts, rounded to the currency's minor unit. Anyone left within half a
    minor unit of zero is settled.
    """
    tolerance = settlement_tolerance(currency)

    # Min-heaps: negated credit, and the (already negative) debt
    creditors = [(-balance, user_id) for user_id, balance in balances.items() if balance > tolerance]
    debtors = [(balance, user_id) for user_id, balance in balances.items() if balance < -tolerance]
    heapq.heapify(creditors)
    heapq.heapify(debtors)

    transfers = []
    while creditors and debtors:
        neg_credit, creditor_id = heapq.heappop(creditors)
        neg_debt, debtor_id = heapq.heappop(debtors)
        credit, debt = -neg_credit, -neg_debt

        amount = quantize_amount(min(credit, debt), currency)
        transfers.append(Transfer(debtor_id, creditor_id, amount))

        credit -= amount
        debt -= amount
        if credit > tolerance:
            heapq.heappush(creditors, (-credit, creditor_id))
        if debt > tolerance:
            heapq.heappush(debtors, (-debt, debtor_id))

    return transfers


def summarize(trip: Trip, spends: Iterable[Spend]) -> BalanceSummary:
    """Compute the full balance summary for already-loaded spends."""
    currency = trip.base_currency
    sheet = accumulate_net_balances(spends, currency)
    nets = round_balances(sheet.net_balances(), currency)
    transfers = minimize_transfers(nets, currency)

    balances = [
        PersonBalance(
            user_id=entry.user_id,
            user_name=entry.user_name,
            total_paid=quantize_amount(entry.total_paid, currency),
            total_owed=quantize_amount(entry.total_owed, currency),
            net_balance=nets[entry.user_id],
        )
        for entry in sorted(sheet.entries.values(), key=lambda e: e.user_id)
    ]

    settlements = []
    for index, transfer in enumerate(transfers, start=1):
        settlements.append(SettlementTransfer(
            id=f"{trip.id}-{index}",
            from_user_id=transfer.from_user_id,
            from_user_name=sheet.entries[transfer.from_user_id].user_name,
            to_user_id=transfer.to_user_id,
            to_user_name=sheet.entries[transfer.to_user_id].user_name,
            amount=transfer.amount,
            oldest_debt_date=sheet.debt_ages.get((transfer.from_user_id, transfer.to_user_id)),
        ))

    if sheet.skipped_records:
        logger.info(f"Trip {trip.id}: {sheet.skipped_records} record(s) skipped in balance calculation")

    return BalanceSummary(
        trip_id=trip.id,
        base_currency=currency,
        calculated_at=datetime.now(timezone.utc),
        total_spent=quantize_amount(sheet.total_spent, currency),
        balances=balances,
        settlements=settlements,
        skipped_records=sheet.skipped_records,
    )


def get_active_trip(trip_id: int, db: Session) -> Trip:
    """Load a non-deleted trip or raise NotFoundError."""
    trip = db.query(Trip).filter(Trip.id == trip_id, Trip.deleted_at.is_(None)).first()
    if not trip:
        raise NotFoundError("Trip not found")
    return trip


def load_trip_spends(trip_id: int, db: Session) -> List[Spend]:
    """All non-deleted spends of a trip, oldest first, with payers and assignments in one round trip each."""
    return db.query(Spend).options(
        selectinload(Spend.paid_by),
        selectinload(Spend.assignments).selectinload(SpendAssignment.user)
    ).filter(
        Spend.trip_id == trip_id,
        Spend.deleted_at.is_(None)
    ).order_by(Spend.date, Spend.id).all()


def calculate_trip_balances(trip_id: int, db: Session) -> BalanceSummary:
    """
    Calculate per-user balances and the minimal settlement plan for a trip.

    OPEN and CLOSED spends both count. Does not check membership; callers
    must authorize first.
    """
    trip = get_active_trip(trip_id, db)
    spends = load_trip_spends(trip_id, db)
    return summarize(trip, spends)


def calculate_user_balance(trip_id: int, user_id: int, db: Session) -> UserBalance:
    """How much a single user owes and is owed in a trip."""
    trip = get_active_trip(trip_id, db)
    currency = trip.base_currency
    owes = Decimal(0)
    is_owed = Decimal(0)

    for spend in load_trip_spends(trip_id, db):
        try:
            check_spend(spend, currency)
        except DataIntegrityWarning:
            continue
        own_share = Decimal(0)
        for assignment in spend.assignments:
            if assignment.user_id != user_id:
                continue
            try:
                check_assignment(assignment)
            except DataIntegrityWarning:
                continue
            own_share += to_decimal(assignment.normalized_share_amount)

        if spend.paid_by_id == user_id:
            is_owed += to_decimal(spend.normalized_amount) - own_share
        else:
            owes += own_share

    return UserBalance(
        trip_id=trip.id,
        user_id=user_id,
        base_currency=currency,
        owes=quantize_amount(owes, currency),
        is_owed=quantize_amount(is_owed, currency),
        net_balance=quantize_amount(is_owed - owes, currency),
    )


def build_debt_ledger(trip_id: int, db: Session) -> DebtLedger:
    """
    Every individual debt (assignee owes payer for one spend), oldest first.

    Unlike the settlement plan nothing is netted, so this is the view to use
    when an exact audit trail matters.
    """
    trip = get_active_trip(trip_id, db)
    currency = trip.base_currency
    entries = []

    for spend in load_trip_spends(trip_id, db):
        try:
            check_spend(spend, currency)
        except DataIntegrityWarning:
            continue
        for assignment in spend.assignments:
            if assignment.user_id == spend.paid_by_id:
                continue
            try:
                check_assignment(assignment)
            except DataIntegrityWarning:
                continue
            share = to_decimal(assignment.normalized_share_amount)
            if share <= 0:
                continue
            entries.append(LedgerEntry(
                spend_id=spend.id,
                date=spend.date,
                description=spend.description,
                from_user_id=assignment.user_id,
                from_user_name=_name(assignment.user),
                to_user_id=spend.paid_by_id,
                to_user_name=_name(spend.paid_by),
                amount=quantize_amount(share, currency),
            ))

    return DebtLedger(trip_id=trip.id, base_currency=currency, entries=entries)


def _name(user) -> str:
    return user.name if user is not None else ""
