"""
Tests for exchange rate lookup, caching and the ExchangeRate-API client.
"""
from datetime import date, timedelta
from decimal import Decimal
import httpx
import pytest
from app.core.config import settings
from app.core.exceptions import FxRateUnavailableError, InvalidOperationError
from app.models.exchange_rate import ExchangeRate
from app.services import fx_service


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            request = httpx.Request("GET", "https://example.test")
            raise httpx.HTTPStatusError(
                "error", request=request, response=httpx.Response(self.status_code, request=request)
            )

    def json(self):
        return self.payload


@pytest.fixture
def api_calls(monkeypatch):
    """Route httpx.get to a canned ExchangeRate-API response and record the URLs."""
    calls = []
    monkeypatch.setattr(settings, "FX_API_KEY", "test-key")

    def fake_get(url, timeout=None):
        calls.append(url)
        return FakeResponse({"result": "success", "conversion_rates": {"USD": 1.0842, "EUR": 1}})

    monkeypatch.setattr(fx_service.httpx, "get", fake_get)
    return calls


def test_base_currency_rate_is_one(db, make_user, make_trip):
    """Test that the trip's own currency needs no lookup."""
    trip = make_trip(make_user("alice"))
    assert fx_service.get_exchange_rate(trip.id, date(2024, 1, 1), "usd", db) == Decimal(1)


def test_rate_fetched_once_then_cached(db, make_user, make_trip, api_calls):
    """Test that a fetched rate is stored and reused."""
    trip = make_trip(make_user("alice"))
    rate = fx_service.get_exchange_rate(trip.id, date(2024, 1, 15), "EUR", db)
    db.commit()
    assert rate == Decimal("1.0842")
    assert api_calls == [f"{settings.FX_API_URL}/test-key/history/EUR/2024/1/15"]

    again = fx_service.get_exchange_rate(trip.id, date(2024, 1, 15), "EUR", db)
    assert again == Decimal("1.0842")
    assert len(api_calls) == 1
    cached = db.query(ExchangeRate).filter(ExchangeRate.trip_id == trip.id).one()
    assert cached.source == "api"


def test_latest_endpoint_for_today(api_calls):
    """Test that today's rate uses the latest endpoint."""
    fx_service.fetch_exchange_rate_from_api(date.today(), "eur", "usd")
    assert api_calls[0].endswith("/latest/EUR")


def test_api_error_result(monkeypatch):
    """Test that an API error payload raises FxRateUnavailableError."""
    monkeypatch.setattr(settings, "FX_API_KEY", "test-key")
    monkeypatch.setattr(
        fx_service.httpx, "get",
        lambda url, timeout=None: FakeResponse({"result": "error", "error-type": "invalid-key"})
    )
    with pytest.raises(FxRateUnavailableError):
        fx_service.fetch_exchange_rate_from_api(date.today() - timedelta(days=3), "EUR", "USD")


def test_api_http_error(monkeypatch):
    """Test that HTTP failures raise FxRateUnavailableError."""
    monkeypatch.setattr(settings, "FX_API_KEY", "test-key")
    monkeypatch.setattr(fx_service.httpx, "get", lambda url, timeout=None: FakeResponse({}, status_code=503))
    with pytest.raises(FxRateUnavailableError):
        fx_service.fetch_exchange_rate_from_api(date.today(), "EUR", "USD")


def test_missing_api_key(monkeypatch):
    """Test that no API key means no rate."""
    monkeypatch.setattr(settings, "FX_API_KEY", "")
    with pytest.raises(FxRateUnavailableError):
        fx_service.fetch_exchange_rate_from_api(date.today(), "EUR", "USD")


def test_manual_rate_overrides_cached(db, make_user, make_trip, api_calls):
    """Test that a manual rate replaces the fetched one."""
    trip = make_trip(make_user("alice"))
    fx_service.get_exchange_rate(trip.id, date(2024, 1, 15), "EUR", db)
    db.commit()

    rate = fx_service.set_exchange_rate(trip.id, date(2024, 1, 15), "EUR", Decimal("1.1"), db)
    assert rate.source == "manual"
    assert fx_service.get_exchange_rate(trip.id, date(2024, 1, 15), "EUR", db) == Decimal("1.1")


def test_manual_rate_for_base_currency_rejected(db, make_user, make_trip):
    """Test that the base currency cannot get a rate."""
    trip = make_trip(make_user("alice"))
    with pytest.raises(InvalidOperationError):
        fx_service.set_exchange_rate(trip.id, date(2024, 1, 15), "USD", Decimal("2"), db)
