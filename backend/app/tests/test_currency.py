"""
Tests for currency precision, rounding and allocation.
"""
from decimal import Decimal
import pytest
from app.core.currency import (
    allocate, currency_precision, minor_unit, quantize_amount, settlement_tolerance, to_decimal
)
from app.services.fx_service import normalize_amount


@pytest.mark.parametrize("code,digits", [("USD", 2), ("eur", 2), ("JPY", 0), ("KRW", 0), ("KWD", 3)])
def test_currency_precision(code, digits):
    """Test ISO minor-unit digits."""
    assert currency_precision(code) == digits


def test_tolerance_is_half_a_minor_unit():
    """Test settlement tolerance per currency."""
    assert settlement_tolerance("USD") == Decimal("0.005")
    assert settlement_tolerance("JPY") == Decimal("0.5")
    assert minor_unit("BHD") == Decimal("0.001")


def test_quantize_rounds_half_away_from_zero():
    """Test ROUND_HALF_UP behaviour on both signs."""
    assert quantize_amount(Decimal("2.345"), "USD") == Decimal("2.35")
    assert quantize_amount(Decimal("-2.345"), "USD") == Decimal("-2.35")
    assert quantize_amount(Decimal("1234.5"), "JPY") == Decimal("1235")


def test_to_decimal_drops_float_noise():
    """Test float coercion goes through str."""
    assert to_decimal(0.1) == Decimal("0.1")


def test_allocate_sums_exactly():
    """Test that 100 split three ways keeps every cent."""
    parts = allocate(Decimal("100"), [1, 1, 1], "USD")
    assert parts == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]
    assert sum(parts) == Decimal("100.00")


def test_allocate_proportional_weights():
    """Test allocation by uneven weights."""
    parts = allocate(Decimal("10"), [Decimal("1"), Decimal("2")], "USD")
    assert parts == [Decimal("3.33"), Decimal("6.67")]


def test_allocate_zero_weights():
    """Test that zero weights give zero parts."""
    assert allocate(Decimal("10"), [0, 0], "USD") == [Decimal("0.00"), Decimal("0.00")]
    assert allocate(Decimal("10"), [], "USD") == []


def test_normalize_amount_is_idempotent():
    """Test that normalizing a normalized amount at rate 1 changes nothing."""
    once = normalize_amount(Decimal("10.00"), Decimal("1.10"), "USD")
    assert once == Decimal("11.00")
    assert normalize_amount(once, Decimal("1"), "USD") == once


def test_normalize_amount_to_zero_decimal_currency():
    """Test normalization into a currency without minor units."""
    assert normalize_amount(Decimal("12.34"), Decimal("1350.5"), "KRW") == Decimal("16665")
