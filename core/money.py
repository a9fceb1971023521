"""
Monetary arithmetic for invoices.

Every derived amount in the ledger and builder goes through these functions
so that rounding is identical at every call site. Amounts are Decimal with
two places; rounding is half-up and happens only where tax is computed or a
currency conversion is applied.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def round_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Coerce an exact input amount to a 2-place Decimal.

    Raises ValueError if the value is not a number or carries more than two
    decimal places. Floats are rejected; parse amounts from strings.
    """
    if isinstance(value, float):
        raise ValueError("Monetary amounts must not be floats")
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Invalid monetary amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    if amount != amount.quantize(CENT):
        raise ValueError(f"Amount {value} has more than two decimal places")
    return amount.quantize(CENT)


def compute_tax(subtotal: Decimal, tax_rate_percent: int) -> Decimal:
    """Tax on a subtotal: round(subtotal * rate / 100, 2)."""
    return round_money(subtotal * Decimal(tax_rate_percent) / Decimal(100))


def compute_total(subtotal: Decimal, tax_amount: Decimal) -> Decimal:
    """Total is the exact sum of its parts; never re-rounded."""
    return subtotal + tax_amount


def compute_balance(total_amount: Decimal, paid_amount: Decimal) -> Decimal:
    """Outstanding balance, floored at zero."""
    return max(ZERO, total_amount - paid_amount)


def convert(amount: Decimal, exchange_rate: Decimal) -> Decimal:
    """Convert from the ledger currency using a stored rate."""
    return round_money(amount * exchange_rate)


def sum_money(amounts: Iterable[Decimal]) -> Decimal:
    """Sum amounts, returning 0.00 for an empty iterable."""
    return sum(amounts, ZERO)
