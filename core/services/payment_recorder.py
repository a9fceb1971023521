"""
Payment recorder.

Office-side payment capture. Validates method details, applies the amount to
the ledger and appends an immutable PaymentEvent. Applying and appending
happen under the invoice's lock, so the ledger and the payment log can never
disagree. Handlers see the resulting events once that lock is released.
Reversals append a negative compensating event; nothing is ever edited or
removed from the log.
"""

import logging
import threading
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable
from uuid import UUID, uuid4

from core.audit import AuditAction, AuditLogger
from core.errors import (
    InvalidAmountError,
    OverpaymentError,
    InvalidTransitionError,
    PaymentAlreadyReversedError,
    PaymentNotFoundError,
)
from core.event_bus import EventBus
from core.events import PaymentRecorded, PaymentReversed
from core.models import PaymentEvent, PaymentInstrument, PaymentMethod, PaymentSource
from core.payment_rules import parse_amount, parse_method, validate_payment_details
from core.services.invoice_ledger import InvoiceLedger
from utils.actor_context import peek_current_actor_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class PaymentRecorder:
    """Records payments against invoices and keeps the payment log."""

    def __init__(
        self,
        ledger: InvoiceLedger,
        audit: AuditLogger,
        event_bus: EventBus,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.ledger = ledger
        self.audit = audit
        self.event_bus = event_bus
        self.clock = clock

        self._events: list[PaymentEvent] = []
        self._by_id: dict[UUID, PaymentEvent] = {}
        self._reversed: dict[UUID, UUID] = {}  # original id -> reversal id
        # Guards the log; always taken after an invoice lock, never before
        self._lock = threading.Lock()

    def _append(self, event: PaymentEvent) -> None:
        with self._lock:
            self._events.append(event)
            self._by_id[event.id] = event
            if event.reverses_event_id is not None:
                self._reversed[event.reverses_event_id] = event.id

    def record_payment(
        self,
        invoice_number: str,
        method: PaymentMethod | str,
        amount: Decimal | int | str,
        reference: str | None = None,
        instrument: PaymentInstrument | None = None,
        *,
        paid_on: date | None = None,
        trip_id: str | None = None,
        source: PaymentSource = PaymentSource.OFFICE,
    ) -> PaymentEvent:
        """
        Record a payment against an invoice.

        Args:
            invoice_number: Invoice being paid
            method: Payment method
            amount: Positive amount, at most two decimal places
            reference: Reference number; required for every method except cash
            instrument: BankInstrument for bank transfers, EWalletInstrument for e-wallets
            paid_on: Date the money was received (defaults to today)
            trip_id: Field trip the payment was collected on
            source: OFFICE or FIELD

        Returns:
            The appended PaymentEvent

        Raises:
            InvalidAmountError: Amount not positive or too precise
            ReferenceRequiredError: Non-cash payment without reference
            InstrumentRequiredError: Missing or mismatched instrument
            InvoiceNotFoundError: Unknown invoice number
            InvalidTransitionError: Invoice is a draft or cancelled
            OverpaymentError: Amount exceeds the outstanding balance, which is
                0.00 on a PAID invoice
        """
        method = parse_method(method)
        amount = parse_amount(amount)
        reference = validate_payment_details(method, reference, instrument)

        with self.event_bus.deferred():
            event = self._apply_new_payment(
                invoice_number, method, amount, reference, instrument, paid_on, trip_id, source
            )

            self.audit.log_change(
                entity_type="payment",
                entity_id=event.id,
                action=AuditAction.CREATE,
                changes={"created": event.model_dump(mode="json")},
            )

            logger.info(
                "Recorded %s payment of %s on %s%s",
                method.value, amount, invoice_number, f" (trip {trip_id})" if trip_id else "",
            )
            self.event_bus.publish(PaymentRecorded.create(event))

        return event

    def _apply_new_payment(
        self,
        invoice_number: str,
        method: PaymentMethod,
        amount: Decimal,
        reference: str | None,
        instrument: PaymentInstrument | None,
        paid_on: date | None,
        trip_id: str | None,
        source: PaymentSource,
    ) -> PaymentEvent:
        with self.ledger.locked(invoice_number):
            invoice = self.ledger.require(invoice_number)
            if not (invoice.is_open or invoice.is_paid):
                raise InvalidTransitionError(
                    invoice_number, invoice.status.value, "record payment on"
                )
            if amount > invoice.balance_amount:
                raise OverpaymentError(
                    f"Payment of {amount} exceeds balance {invoice.balance_amount} "
                    f"on invoice {invoice_number}"
                )

            event = PaymentEvent(
                id=uuid4(),
                invoice_number=invoice_number,
                amount=amount,
                method=method,
                paid_on=paid_on or self.clock().date(),
                reference_number=reference,
                instrument=instrument,
                source=source,
                trip_id=trip_id,
                recorded_at=self.clock(),
                recorded_by=peek_current_actor_id(),
            )
            self.ledger.apply_payment(invoice_number, amount, event.id)
            self._append(event)

        return event

    def reverse_payment(self, event_id: UUID, reason: str | None = None) -> PaymentEvent:
        """
        Append a compensating event that cancels an earlier payment.

        Args:
            event_id: Payment to reverse
            reason: Why, for the audit trail

        Returns:
            The negative compensating PaymentEvent

        Raises:
            PaymentNotFoundError: Unknown event id
            InvalidAmountError: Event is itself a reversal
            PaymentAlreadyReversedError: Event was already reversed
        """
        original = self.get(event_id)
        if original is None:
            raise PaymentNotFoundError(f"Payment {event_id} not found")
        if original.is_reversal:
            raise InvalidAmountError(f"Payment {event_id} is a reversal and cannot be reversed")

        with self.event_bus.deferred():
            with self.ledger.locked(original.invoice_number):
                with self._lock:
                    if event_id in self._reversed:
                        raise PaymentAlreadyReversedError(
                            f"Payment {event_id} was already reversed by {self._reversed[event_id]}"
                        )

                reversal = original.model_copy(
                    update={
                        "id": uuid4(),
                        "amount": -original.amount,
                        "paid_on": self.clock().date(),
                        "reverses_event_id": original.id,
                        "reason": reason,
                        "recorded_at": self.clock(),
                        "recorded_by": peek_current_actor_id(),
                    }
                )
                self.ledger.apply_payment(original.invoice_number, reversal.amount, reversal.id)
                self._append(reversal)

            self.audit.log_change(
                entity_type="payment",
                entity_id=reversal.id,
                action=AuditAction.CREATE,
                changes={"created": reversal.model_dump(mode="json")},
            )

            logger.info(
                "Reversed payment %s (%s) on %s", original.id, original.amount, original.invoice_number
            )
            self.event_bus.publish(PaymentReversed.create(reversal, original))

        return reversal

    def get(self, event_id: UUID) -> PaymentEvent | None:
        """Payment event by id, or None."""
        with self._lock:
            return self._by_id.get(event_id)

    def is_reversed(self, event_id: UUID) -> bool:
        with self._lock:
            return event_id in self._reversed

    def list_for_invoice(self, invoice_number: str) -> list[PaymentEvent]:
        """Payment log of one invoice in recording order."""
        with self._lock:
            return [e for e in self._events if e.invoice_number == invoice_number]

    def list_for_trip(self, trip_id: str) -> list[PaymentEvent]:
        """Payments applied from a field trip, reversals excluded."""
        with self._lock:
            return [e for e in self._events if e.trip_id == trip_id and not e.is_reversal]

    def list_events(
        self,
        method: PaymentMethod | None = None,
        since: date | None = None,
    ) -> list[PaymentEvent]:
        """
        Full payment log, optionally filtered.

        Args:
            method: Only events of this method
            since: Only events paid on or after this date

        Returns:
            Events in recording order
        """
        with self._lock:
            events = list(self._events)

        if method is not None:
            events = [e for e in events if e.method == method]
        if since is not None:
            events = [e for e in events if e.paid_on >= since]
        return events

    def restore(self, events: Iterable[PaymentEvent]) -> int:
        """Load the payment log from durable storage, in recording order."""
        count = 0
        for event in events:
            self._append(event)
            count += 1
        logger.info("Restored %d payment event(s)", count)
        return count
