"""Core domain models."""

from core.models.fields import Money
from core.models.order import BillableOrder, CustomerRecord, CustomerType
from core.models.invoice import (
    Invoice, InvoiceStatus, InvoiceSourceType, InvoiceAmounts, DraftInvoice,
    InvoiceTerms, InvoiceSource, OrderSource, CustomerSource,
)
from core.models.payment import (
    PaymentEvent, PaymentMethod, PaymentSource, PaymentInstrument,
    BankInstrument, EWalletInstrument, EWalletProvider,
)
from core.models.trip import (
    TripPaymentCreate, TripPaymentRecord, TripSettlement, ReconciliationStatus,
)
from core.models.reconciliation import ReconciliationResult, ReconciliationWarning, WarningCode
from core.models.reminder import PaymentReminder
from core.models.credit_note import CreditNote, CreditNoteCreate, CreditNoteStatus

__all__ = [
    "Money",
    # Registry facts
    "BillableOrder", "CustomerRecord", "CustomerType",
    # Invoice
    "Invoice", "InvoiceStatus", "InvoiceSourceType", "InvoiceAmounts", "DraftInvoice",
    "InvoiceTerms", "InvoiceSource", "OrderSource", "CustomerSource",
    # Payment
    "PaymentEvent", "PaymentMethod", "PaymentSource", "PaymentInstrument",
    "BankInstrument", "EWalletInstrument", "EWalletProvider",
    # Trip
    "TripPaymentCreate", "TripPaymentRecord", "TripSettlement", "ReconciliationStatus",
    # Reconciliation
    "ReconciliationResult", "ReconciliationWarning", "WarningCode",
    # Reminder
    "PaymentReminder",
    # Credit note
    "CreditNote", "CreditNoteCreate", "CreditNoteStatus",
]
