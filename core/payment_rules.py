"""
Payment detail rules shared by the office and field capture paths.

Both the Payment Recorder and the Trip Payment Recorder accept the same
methods, so the reference/instrument checks live here once.
"""

from decimal import Decimal

from core.errors import (
    InstrumentRequiredError,
    InvalidAmountError,
    ReferenceRequiredError,
    ValidationError,
)
from core.models import BankInstrument, EWalletInstrument, PaymentMethod
from core.money import to_money

# Method -> instrument type it must carry. Methods not listed take none.
REQUIRED_INSTRUMENTS = {
    PaymentMethod.BANK_TRANSFER: BankInstrument,
    PaymentMethod.E_WALLET: EWalletInstrument,
}


def parse_method(method: PaymentMethod | str) -> PaymentMethod:
    """Coerce a method name, raising ValidationError for unknown ones."""
    try:
        return PaymentMethod(method)
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError(f"Unknown payment method '{method}'. Use one of: {allowed}")


def parse_amount(amount: Decimal | int | str) -> Decimal:
    """Validate a positive payment amount with at most two decimal places."""
    try:
        value = to_money(amount)
    except ValueError as e:
        raise InvalidAmountError(str(e))
    if value <= 0:
        raise InvalidAmountError(f"Payment amount must be positive, got {value}")
    return value


def validate_payment_details(
    method: PaymentMethod,
    reference: str | None,
    instrument: BankInstrument | EWalletInstrument | None,
) -> str | None:
    """
    Check reference and instrument against the payment method.

    Args:
        method: Payment method
        reference: Bank/wallet/cheque reference; required unless cash
        instrument: BankInstrument or EWalletInstrument where the method needs one

    Returns:
        The stripped reference, or None for cash without one

    Raises:
        ReferenceRequiredError: Non-cash method with no reference
        InstrumentRequiredError: Missing or mismatched instrument
    """
    reference = reference.strip() if reference else None
    if method.requires_reference and not reference:
        raise ReferenceRequiredError(
            f"Reference number is required for {method.value.replace('_', ' ')} payments"
        )

    expected = REQUIRED_INSTRUMENTS.get(method)
    if expected is None:
        if instrument is not None:
            raise InstrumentRequiredError(
                f"{method.value} payments do not take {instrument.kind} details"
            )
    elif not isinstance(instrument, expected):
        label = "bank account" if expected is BankInstrument else "e-wallet provider and number"
        raise InstrumentRequiredError(f"{method.value} payments require {label} details")

    return reference
