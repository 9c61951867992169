"""
Money conversion helpers.

Balances and amounts are stored as integer minor units (paise)
so that arithmetic never drifts. Decimals only exist at the edges.
"""

from decimal import Decimal, InvalidOperation

from upi_ledger.errors import InvalidAmount

MINOR_UNITS = 100
CURRENCY_SYMBOL = "₹"


def to_minor_units(amount: Decimal, allow_zero: bool = False) -> int:
    """
    Convert a positive decimal amount into minor units.

    Rejects non-finite values, negative values, zero unless
    allow_zero is set, and values with more precision than one
    minor unit.
    """
    try:
        amount = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount()

    if not amount.is_finite() or amount < 0:
        raise InvalidAmount()
    if amount == 0 and not allow_zero:
        raise InvalidAmount()

    scaled = amount * MINOR_UNITS
    if scaled != scaled.to_integral_value():
        raise InvalidAmount("Amount cannot have more than 2 decimal places")

    return int(scaled)


def from_minor_units(value: int) -> Decimal:
    return (Decimal(value) / MINOR_UNITS).quantize(Decimal("0.01"))


def format_amount(value: int) -> str:
    """Render minor units the way the app shows them, e.g. ₹80 or ₹12.50."""
    amount = from_minor_units(value)
    if amount == amount.to_integral_value():
        return f"{CURRENCY_SYMBOL}{int(amount)}"
    return f"{CURRENCY_SYMBOL}{amount}"
