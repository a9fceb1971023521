"""
Typed exceptions for the billing core.

Every error is returned to the immediate caller for correction; nothing in
this package retries or swallows them. All derive from ValueError so plain
callers can treat them as bad input, and each carries a machine-readable
code that the API surfaces unchanged.

Families:
- ValidationError: missing or malformed input
- NotFoundError: referenced invoice/payment/trip/credit note does not exist
- StateError: operation not allowed in the current status
- BusinessRuleError: input is well-formed but breaks a monetary rule
"""


class BillingError(ValueError):
    """Base class for billing errors."""

    code = "BILLING_ERROR"


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(BillingError):
    """Input is missing or invalid."""

    code = "VALIDATION_ERROR"


class MissingSourceError(ValidationError):
    """Invoice source has no orders, or no usable customer/subtotal."""

    code = "MISSING_SOURCE"


class UnknownOrderError(ValidationError):
    """Referenced delivery order is not known to the order registry."""

    code = "UNKNOWN_ORDER"

    def __init__(self, order_ids: list[str]):
        self.order_ids = order_ids
        super().__init__(f"Unknown order(s): {', '.join(order_ids)}")


class MixedCustomerError(ValidationError):
    """Orders on one invoice must belong to a single customer."""

    code = "MIXED_CUSTOMERS"


class UnsupportedTaxRateError(ValidationError):
    """Tax rate is not one of the recognised rates."""

    code = "UNSUPPORTED_TAX_RATE"


class ExchangeRateRequiredError(ValidationError):
    """Foreign-currency invoice built without an exchange rate."""

    code = "EXCHANGE_RATE_REQUIRED"


class InvalidAmountError(ValidationError):
    """Payment amount is zero, negative or has too many decimal places."""

    code = "INVALID_AMOUNT"


class ReferenceRequiredError(ValidationError):
    """Non-cash payment recorded without a reference number."""

    code = "REFERENCE_REQUIRED"


class InstrumentRequiredError(ValidationError):
    """Method-specific bank or e-wallet details are missing or mismatched."""

    code = "INSTRUMENT_REQUIRED"


# =============================================================================
# NOT FOUND
# =============================================================================


class NotFoundError(BillingError):
    """Referenced entity does not exist."""

    code = "NOT_FOUND"


class InvoiceNotFoundError(NotFoundError):
    code = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_number: str):
        self.invoice_number = invoice_number
        super().__init__(f"Invoice {invoice_number} not found")


class PaymentNotFoundError(NotFoundError):
    code = "PAYMENT_NOT_FOUND"


class TripNotFoundError(NotFoundError):
    code = "TRIP_NOT_FOUND"


class CreditNoteNotFoundError(NotFoundError):
    code = "CREDIT_NOTE_NOT_FOUND"


# =============================================================================
# STATE
# =============================================================================


class StateError(BillingError):
    """Operation is not allowed in the entity's current status."""

    code = "INVALID_STATE"


class InvalidTransitionError(StateError):
    """Requested status transition is not in the invoice state machine."""

    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, invoice_number: str, current: str, action: str):
        self.invoice_number = invoice_number
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} invoice {invoice_number} in status '{current}'")


class CancellationBlockedError(StateError):
    """Invoice has payments applied; reverse them before cancelling."""

    code = "CANCELLATION_BLOCKED"


class CreditNoteDecidedError(StateError):
    """Credit note was already approved or rejected."""

    code = "CREDIT_NOTE_ALREADY_DECIDED"


# =============================================================================
# BUSINESS RULES
# =============================================================================


class BusinessRuleError(BillingError):
    """Well-formed request that violates a monetary rule."""

    code = "BUSINESS_RULE_VIOLATION"


class OverpaymentError(BusinessRuleError):
    """Payment would exceed the outstanding balance."""

    code = "OVERPAYMENT"


class DuplicateBillingError(BusinessRuleError):
    """Order is already billed on a live invoice."""

    code = "DUPLICATE_BILLING"


class DuplicateTripPaymentError(BusinessRuleError):
    """Driver already recorded the payment for this trip."""

    code = "DUPLICATE_TRIP_PAYMENT"


class PaymentAlreadyReversedError(BusinessRuleError):
    """Payment event already has a compensating reversal."""

    code = "PAYMENT_ALREADY_REVERSED"


class CreditExceedsBalanceError(BusinessRuleError):
    """Credit note is larger than the invoice's outstanding balance."""

    code = "CREDIT_EXCEEDS_BALANCE"
