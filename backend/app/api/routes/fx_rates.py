"""
Exchange rate routes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from app.db.session import get_db
from app.models.user import User
from app.models.exchange_rate import ExchangeRate
from app.schemas.exchange_rate import ExchangeRateSet, ExchangeRateResponse
from app.services.fx_service import set_exchange_rate
from app.api.dependencies import get_current_user
from app.api.routes.trips import check_trip_access, require_trip_organizer

router = APIRouter(prefix="/trips", tags=["fx-rates"])


@router.get("/{trip_id}/fx-rates", response_model=List[ExchangeRateResponse])
async def list_exchange_rates(
    trip_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Rates cached or set for this trip, newest date first."""
    check_trip_access(trip_id, current_user.id, db)
    return db.query(ExchangeRate).filter(
        ExchangeRate.trip_id == trip_id
    ).order_by(ExchangeRate.date.desc(), ExchangeRate.currency).all()


@router.put("/{trip_id}/fx-rates", response_model=ExchangeRateResponse)
async def put_exchange_rate(
    trip_id: int,
    rate_data: ExchangeRateSet,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Set the rate used for new spends in a currency on a date."""
    require_trip_organizer(trip_id, current_user.id, db)
    return set_exchange_rate(trip_id, rate_data.date, rate_data.currency, rate_data.rate_to_base, db)
