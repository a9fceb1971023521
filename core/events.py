"""
Domain events for billing.

Immutable event objects that represent state changes in the billing domain.
Events decouple the ledger from its side effects: persistence, customer
emails and automatic reconciliation all react to events without the ledger
knowing who is listening.

Event Categories:
- InvoiceEvent: invoice lifecycle (commit, send, payment applied, paid,
  overdue, reopened, cancelled, reminder, credited)
- PaymentEvent*: payment log (recorded, reversed)
- TripEvent: field side (payment captured, completed, reconciled)
- CreditNoteEvent: credit notes (issued, approved, rejected)
- AuditRecorded: audit trail entries on their way to storage

Events carry the full domain object so handlers don't need to re-fetch
state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class BillingEvent:
    """Base class for all billing domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(BillingEvent):
    """Events related to invoice lifecycle. Every one carries the new state."""
    invoice: Any = None  # Invoice; Any avoids a models import cycle

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceEvent":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoiceCommitted(InvoiceEvent):
    """Draft invoice entered the ledger."""


@dataclass(frozen=True)
class InvoiceSent(InvoiceEvent):
    """Invoice was issued to the customer."""


@dataclass(frozen=True)
class InvoicePaymentApplied(InvoiceEvent):
    """A payment or reversal changed the balance without reaching zero."""


@dataclass(frozen=True)
class InvoicePaid(InvoiceEvent):
    """Invoice balance reached zero."""


@dataclass(frozen=True)
class InvoiceOverdue(InvoiceEvent):
    """Due date passed with a balance outstanding."""


@dataclass(frozen=True)
class InvoiceReopened(InvoiceEvent):
    """A reversal gave a paid invoice a balance again."""


@dataclass(frozen=True)
class InvoiceCancelled(InvoiceEvent):
    """Invoice was cancelled before any payment."""


@dataclass(frozen=True)
class InvoiceReminderRecorded(InvoiceEvent):
    """A payment reminder was sent for the invoice."""


@dataclass(frozen=True)
class InvoiceCredited(InvoiceEvent):
    """An approved credit note reduced the balance without reaching zero."""


INVOICE_EVENT_TYPES: tuple[type[InvoiceEvent], ...] = (
    InvoiceCommitted,
    InvoiceSent,
    InvoicePaymentApplied,
    InvoicePaid,
    InvoiceOverdue,
    InvoiceReopened,
    InvoiceCancelled,
    InvoiceReminderRecorded,
    InvoiceCredited,
)


# =============================================================================
# PAYMENT EVENTS
# =============================================================================


@dataclass(frozen=True)
class PaymentLogEvent(BillingEvent):
    """Events related to the payment log."""
    payment: Any = None  # PaymentEvent


@dataclass(frozen=True)
class PaymentRecorded(PaymentLogEvent):
    """A payment was appended and applied to its invoice."""

    @classmethod
    def create(cls, payment: Any) -> "PaymentRecorded":
        return cls(payment=payment)


@dataclass(frozen=True)
class PaymentReversed(PaymentLogEvent):
    """A compensating event was appended for an earlier payment."""
    original: Any = None

    @classmethod
    def create(cls, payment: Any, original: Any) -> "PaymentReversed":
        return cls(payment=payment, original=original)


# =============================================================================
# TRIP EVENTS
# =============================================================================


@dataclass(frozen=True)
class TripEvent(BillingEvent):
    """Events related to driver trips."""
    settlement: Any = None  # TripSettlement


@dataclass(frozen=True)
class TripPaymentCaptured(TripEvent):
    """Driver recorded the payment for a trip."""

    @classmethod
    def create(cls, settlement: Any) -> "TripPaymentCaptured":
        return cls(settlement=settlement)


@dataclass(frozen=True)
class TripStatusUpdated(TripEvent):
    """Driver marked the trip done on their side."""

    @classmethod
    def create(cls, settlement: Any) -> "TripStatusUpdated":
        return cls(settlement=settlement)


@dataclass(frozen=True)
class TripCompleted(TripEvent):
    """Both the trip status update and its payment are in."""

    @classmethod
    def create(cls, settlement: Any) -> "TripCompleted":
        return cls(settlement=settlement)


@dataclass(frozen=True)
class TripReconciled(TripEvent):
    """Reconciliation applied a trip payment, fully or in part."""
    result: Any = None  # ReconciliationResult

    @classmethod
    def create(cls, settlement: Any, result: Any) -> "TripReconciled":
        return cls(settlement=settlement, result=result)


@dataclass(frozen=True)
class TripUnreconciled(TripEvent):
    """Reconciliation found nothing to apply the trip payment to."""
    result: Any = None

    @classmethod
    def create(cls, settlement: Any, result: Any) -> "TripUnreconciled":
        return cls(settlement=settlement, result=result)


# =============================================================================
# CREDIT NOTE EVENTS
# =============================================================================


@dataclass(frozen=True)
class CreditNoteEvent(BillingEvent):
    """Events related to credit notes. Every one carries the note's new state."""
    note: Any = None  # CreditNote

    @classmethod
    def create(cls, note: Any) -> "CreditNoteEvent":
        return cls(note=note)


@dataclass(frozen=True)
class CreditNoteIssued(CreditNoteEvent):
    """A credit note was raised and awaits approval."""


@dataclass(frozen=True)
class CreditNoteApproved(CreditNoteEvent):
    """A credit note was approved and applied to its invoice."""


@dataclass(frozen=True)
class CreditNoteRejected(CreditNoteEvent):
    """A credit note was rejected; its invoice is unchanged."""


# =============================================================================
# AUDIT EVENTS
# =============================================================================


@dataclass(frozen=True)
class AuditRecorded(BillingEvent):
    """An audit entry was appended. Lets storage follow the audit trail."""
    entry: Any = None  # AuditEntry

    @classmethod
    def create(cls, entry: Any) -> "AuditRecorded":
        return cls(entry=entry)
