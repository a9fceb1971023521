"""
Handlers that write ledger changes to PostgreSQL.

Every invoice event carries the invoice's full new state, so one upsert per
event keeps the invoices table current. Payment and trip records are
append-only and are inserted once. Audit entries reach storage through
AuditRecorded, so they are written after the change's locks are released
like everything else.
"""

from typing import Callable

from core.events import (
    INVOICE_EVENT_TYPES,
    AuditRecorded,
    CreditNoteApproved,
    CreditNoteEvent,
    CreditNoteIssued,
    CreditNoteRejected,
    InvoiceEvent,
    PaymentLogEvent,
    PaymentRecorded,
    PaymentReversed,
    TripEvent,
    TripCompleted,
    TripPaymentCaptured,
    TripReconciled,
    TripStatusUpdated,
    TripUnreconciled,
)


def handle_invoice_changed(repository) -> Callable:
    """Factory for a handler that upserts the invoice on any invoice event."""

    def handler(event: InvoiceEvent):
        repository.save_invoice(event.invoice)

    return handler


def handle_payment_logged(repository) -> Callable:
    """Factory for a handler that inserts recorded and reversing payment events."""

    def handler(event: PaymentLogEvent):
        repository.save_payment_event(event.payment)

    return handler


def handle_trip_changed(repository) -> Callable:
    """Factory for a handler that upserts trip settlement state."""

    def handler(event: TripEvent):
        repository.save_trip(event.settlement)

    return handler


def handle_credit_note_changed(repository) -> Callable:
    """Factory for a handler that stores a credit note and its decision."""

    def handler(event: CreditNoteEvent):
        repository.save_credit_note(event.note)

    return handler


def handle_audit_recorded(repository) -> Callable:
    def handler(event: AuditRecorded):
        repository.save_audit_entry(event.entry)

    return handler


def register_persistence(event_bus, repository) -> None:
    """Subscribe the repository to every event that changes durable state."""
    event_bus.subscribe_many(INVOICE_EVENT_TYPES, handle_invoice_changed(repository))
    event_bus.subscribe_many((PaymentRecorded, PaymentReversed), handle_payment_logged(repository))
    event_bus.subscribe_many(
        (TripPaymentCaptured, TripStatusUpdated, TripCompleted, TripReconciled, TripUnreconciled),
        handle_trip_changed(repository),
    )
    event_bus.subscribe_many(
        (CreditNoteIssued, CreditNoteApproved, CreditNoteRejected),
        handle_credit_note_changed(repository),
    )
    event_bus.subscribe(AuditRecorded, handle_audit_recorded(repository))
