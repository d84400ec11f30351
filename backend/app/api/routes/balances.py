"""
Balance and settlement-plan routes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.models.user import User
from app.schemas.balance import BalanceSummary, UserBalance, DebtLedger
from app.services import balance_service
from app.api.dependencies import get_current_user
from app.api.routes.trips import check_trip_access

router = APIRouter(prefix="/trips", tags=["balances"])


@router.get("/{trip_id}/balances", response_model=BalanceSummary)
async def get_trip_balances(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Per-person balances and the minimal settlement plan, with debt age."""
    check_trip_access(trip_id, current_user.id, db)
    return balance_service.calculate_trip_balances(trip_id, db)


@router.get("/{trip_id}/balances/me", response_model=UserBalance)
async def get_my_balance(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """What the current user owes and is owed in this trip."""
    check_trip_access(trip_id, current_user.id, db)
    return balance_service.calculate_user_balance(trip_id, current_user.id, db)


@router.get("/{trip_id}/ledger", response_model=DebtLedger)
async def get_debt_ledger(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Every individual debt, without netting."""
    check_trip_access(trip_id, current_user.id, db)
    return balance_service.build_debt_ledger(trip_id, db)
