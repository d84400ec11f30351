"""
Foreign exchange service for currency conversion.
"""
from sqlalchemy.orm import Session
from datetime import date
from decimal import Decimal, InvalidOperation
from app.models.exchange_rate import ExchangeRate
from app.models.trip import Trip
from app.core.config import settings
from app.core.currency import quantize_amount, to_decimal
from app.core.exceptions import FxRateUnavailableError, InvalidOperationError, NotFoundError
import httpx
import logging

logger = logging.getLogger(__name__)


def normalize_amount(amount: Decimal, fx_rate: Decimal, base_currency: str) -> Decimal:
    """
    Convert an amount to the base currency: round(amount * fx_rate).

    Rounded to the base currency's minor unit, so applying it to an already
    normalized amount with rate 1 returns the same value.
    """
    return quantize_amount(to_decimal(amount) * to_decimal(fx_rate), base_currency)


def get_trip_base_currency(trip_id: int, db: Session) -> str:
    trip = db.query(Trip).filter(Trip.id == trip_id, Trip.deleted_at.is_(None)).first()
    if not trip:
        raise NotFoundError("Trip not found")
    return trip.base_currency.upper()


def get_exchange_rate(
    trip_id: int,
    target_date: date,
    currency: str,
    db: Session
) -> Decimal:
    """
    Get exchange rate for a currency on a specific date.
    Returns rate to trip's base currency (1 unit of currency = rate base_currency).

    Cached rates for the trip are used first; otherwise the rate is fetched
    and cached (not committed: the caller's transaction owns the write).
    """
    base_currency = get_trip_base_currency(trip_id, db)
    currency_upper = currency.upper()

    if currency_upper == base_currency:
        return Decimal(1)

    rate = db.query(ExchangeRate).filter(
        ExchangeRate.trip_id == trip_id,
        ExchangeRate.date == target_date,
        ExchangeRate.currency == currency_upper
    ).first()

    if rate:
        return to_decimal(rate.rate_to_base)

    rate_value = fetch_exchange_rate_from_api(target_date, currency_upper, base_currency)
    db.add(ExchangeRate(
        trip_id=trip_id,
        date=target_date,
        currency=currency_upper,
        rate_to_base=rate_value,
        source="api"
    ))
    db.flush()
    return rate_value


def set_exchange_rate(
    trip_id: int,
    target_date: date,
    currency: str,
    rate_to_base: Decimal,
    db: Session
) -> ExchangeRate:
    """Store a manually entered rate, replacing any cached one for that day."""
    base_currency = get_trip_base_currency(trip_id, db)
    currency_upper = currency.upper()
    if currency_upper == base_currency:
        raise InvalidOperationError(f"{currency_upper} is the trip's base currency")
    if rate_to_base <= 0:
        raise InvalidOperationError("Exchange rate must be positive")

    rate = db.query(ExchangeRate).filter(
        ExchangeRate.trip_id == trip_id,
        ExchangeRate.date == target_date,
        ExchangeRate.currency == currency_upper
    ).first()
    if rate:
        rate.rate_to_base = rate_to_base
        rate.source = "manual"
    else:
        rate = ExchangeRate(
            trip_id=trip_id,
            date=target_date,
            currency=currency_upper,
            rate_to_base=rate_to_base,
            source="manual"
        )
        db.add(rate)
    db.commit()
    db.refresh(rate)
    logger.info(f"Manual rate for trip {trip_id}: {currency_upper} = {rate_to_base} {base_currency} on {target_date}")
    return rate


def fetch_exchange_rate_from_api(target_date: date, currency: str, base_currency: str) -> Decimal:
    """
    Fetch exchange rate from ExchangeRate-API v6.
    Returns rate to base currency (1 unit of currency = rate base_currency).

    Uses /latest/{currency} for today's date and
    /history/{currency}/{year}/{month}/{day} for past dates.
    """
    currency_upper = currency.upper()
    base_currency_upper = base_currency.upper()

    if currency_upper == base_currency_upper:
        return Decimal(1)

    if not settings.FX_API_KEY:
        logger.error("FX_API_KEY is not configured. Please set it in .env file.")
        raise FxRateUnavailableError(f"No exchange rate for {currency_upper} and FX_API_KEY is not configured")

    if target_date >= date.today():
        api_url = f"{settings.FX_API_URL}/{settings.FX_API_KEY}/latest/{currency_upper}"
        logger.info(f"Fetching latest exchange rate from ExchangeRate-API for {currency_upper}")
    else:
        api_url = (
            f"{settings.FX_API_URL}/{settings.FX_API_KEY}/history/{currency_upper}/"
            f"{target_date.year}/{target_date.month}/{target_date.day}"
        )
        logger.info(f"Fetching historical exchange rate from ExchangeRate-API for {currency_upper} on {target_date}")

    try:
        response = httpx.get(api_url, timeout=settings.FX_TIMEOUT_SECONDS)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as e:
        logger.error(f"HTTP error with ExchangeRate-API: {e.response.status_code} - {e.response.text}")
        raise FxRateUnavailableError(f"ExchangeRate-API HTTP error: {e.response.status_code}") from e
    except httpx.HTTPError as e:
        logger.error(f"HTTP error with ExchangeRate-API: {e}")
        raise FxRateUnavailableError(f"ExchangeRate-API network error: {e}") from e

    if settings.DEBUG:
        logger.debug(f"ExchangeRate-API response: {data}")

    if data.get("result") != "success":
        error_msg = data.get("error-type", "Unknown error")
        logger.error(f"ExchangeRate-API returned error: {error_msg}")
        raise FxRateUnavailableError(f"ExchangeRate-API error: {error_msg}")

    # Rates are quoted with the requested currency as base: {"KRW": 1350.2, ...}
    base_rate = data.get("conversion_rates", {}).get(base_currency_upper)
    if base_rate is None:
        logger.error(f"{base_currency_upper} not found in conversion_rates")
        raise FxRateUnavailableError(f"{base_currency_upper} rate not available in API response")

    try:
        rate = Decimal(str(base_rate))
    except InvalidOperation as e:
        raise FxRateUnavailableError(f"Invalid exchange rate: {base_rate}") from e
    if rate <= 0:
        logger.error(f"Invalid rate: {rate}")
        raise FxRateUnavailableError(f"Invalid exchange rate: {rate}")

    logger.info(f"Fetched rate from ExchangeRate-API: {currency_upper} = {rate} {base_currency_upper}")
    return rate
