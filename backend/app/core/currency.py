"""
Currency precision and rounding helpers.

All money math goes through ``Decimal`` and rounds half away from zero
(``ROUND_HALF_UP``) to the currency's ISO 4217 minor unit.
"""
from decimal import Decimal, ROUND_HALF_UP, ROUND_DOWN
from typing import List, Sequence, Union

Number = Union[Decimal, int, str]

# Currencies whose minor unit is not 2 digits
ZERO_DECIMAL_CURRENCIES = {
    "BIF", "CLP", "DJF", "GNF", "ISK", "JPY", "KMF", "KRW", "PYG",
    "RWF", "UGX", "UYI", "VND", "VUV", "XAF", "XOF", "XPF",
}
THREE_DECIMAL_CURRENCIES = {"BHD", "IQD", "JOD", "KWD", "LYD", "OMR", "TND"}


def currency_precision(currency: str) -> int:
    """Number of minor-unit digits for a currency code."""
    code = (currency or "").upper()
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def minor_unit(currency: str) -> Decimal:
    """Smallest representable amount, e.g. Decimal('0.01') for USD."""
    return Decimal(1).scaleb(-currency_precision(currency))


def to_decimal(value: Number) -> Decimal:
    """Coerce ints, strings and Decimals; floats go through str() to drop binary noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_amount(value: Number, currency: str) -> Decimal:
    """Round to the currency's minor unit, half away from zero."""
    return to_decimal(value).quantize(minor_unit(currency), rounding=ROUND_HALF_UP)


def settlement_tolerance(currency: str) -> Decimal:
    """Half a minor unit: balances this close to zero count as settled."""
    return minor_unit(currency) / 2


def allocate(total: Number, weights: Sequence[Number], currency: str) -> List[Decimal]:
    """
    Split ``total`` proportionally to ``weights`` so the parts sum exactly to
    the rounded total.

    Each part is first truncated to the minor unit; the leftover units go to
    the parts with the largest truncated remainder (earlier index wins ties).
    """
    total = quantize_amount(total, currency)
    weights = [to_decimal(w) for w in weights]
    weight_sum = sum(weights, Decimal(0))
    if not weights:
        return []
    if weight_sum == 0:
        return [Decimal(0).quantize(minor_unit(currency)) for _ in weights]

    unit = minor_unit(currency)
    raw = [total * w / weight_sum for w in weights]
    parts = [r.quantize(unit, rounding=ROUND_DOWN) for r in raw]
    leftover_units = int((total - sum(parts, Decimal(0))) / unit)
    order = sorted(range(len(raw)), key=lambda i: (-(raw[i] - parts[i]), i))
    for i in order[:leftover_units]:
        parts[i] += unit
    return parts
