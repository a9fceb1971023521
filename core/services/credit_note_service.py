"""
Credit note service.

Credit notes correct what a customer owes on an issued invoice. A note is
raised as pending approval; approving it applies the amount to the invoice
through the ledger, rejecting it leaves the invoice alone. Notes are never
edited after a decision.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Iterable

from core.audit import AuditAction, AuditLogger, compute_changes
from core.errors import CreditNoteDecidedError, CreditNoteNotFoundError, InvalidTransitionError
from core.event_bus import EventBus
from core.events import CreditNoteApproved, CreditNoteIssued, CreditNoteRejected
from core.models import CreditNote, CreditNoteCreate, CreditNoteStatus
from core.services.invoice_ledger import InvoiceLedger
from utils.actor_context import peek_current_actor_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

CREDIT_NOTE_PREFIX = "CN"


class CreditNoteService:
    """Raises, approves and rejects credit notes."""

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

        self._notes: dict[str, CreditNote] = {}
        self._lock = threading.RLock()

    def _generate_number(self, on: datetime) -> str:
        """CN-YYYY-NNNN, NNNN restarting each year. Caller holds the lock."""
        prefix = f"{CREDIT_NOTE_PREFIX}-{on.year}-"
        sequence = 0
        for number in self._notes:
            if number.startswith(prefix):
                try:
                    sequence = max(sequence, int(number[len(prefix):]))
                except ValueError:
                    continue
        return f"{prefix}{sequence + 1:04d}"

    def issue_credit_note(self, data: CreditNoteCreate) -> CreditNote:
        """
        Raise a credit note against an issued invoice.

        The balance is checked again on approval, since payments may land
        in between.

        Raises:
            InvoiceNotFoundError: Unknown invoice number
            InvalidTransitionError: Invoice is not SENT or OVERDUE
        """
        invoice = self.ledger.require(data.invoice_number)
        if not invoice.is_open:
            raise InvalidTransitionError(invoice.invoice_number, invoice.status.value, "credit")

        now = self.clock()
        with self.event_bus.deferred():
            with self._lock:
                note = CreditNote(
                    credit_note_number=self._generate_number(now),
                    invoice_number=invoice.invoice_number,
                    amount=data.amount,
                    reason=data.reason,
                    created_at=now,
                    created_by=peek_current_actor_id(),
                )
                self._notes[note.credit_note_number] = note

            self.audit.log_change(
                entity_type="credit_note",
                entity_id=note.credit_note_number,
                action=AuditAction.CREATE,
                changes={"created": note.model_dump(mode="json")},
            )
            logger.info(
                "Credit note %s raised on %s for %s", note.credit_note_number, note.invoice_number, note.amount
            )
            self.event_bus.publish(CreditNoteIssued.create(note))

        return note

    def _decide(self, number: str, status: CreditNoteStatus, note_text: str | None) -> CreditNote:
        """Record a decision on a pending note. Caller holds the lock."""
        current = self.require(number)
        if not current.is_pending:
            raise CreditNoteDecidedError(f"Credit note {number} is already {current.status.value}")

        updated = current.model_copy(
            update={
                "status": status,
                "decided_at": self.clock(),
                "decided_by": peek_current_actor_id(),
                "decision_note": note_text,
            }
        )
        self._notes[number] = updated
        self.audit.log_change(
            entity_type="credit_note",
            entity_id=number,
            action=AuditAction.TRANSITION,
            changes=compute_changes(current.model_dump(mode="json"), updated.model_dump(mode="json")),
        )
        return updated

    def approve(self, number: str, note: str | None = None) -> CreditNote:
        """
        Approve a pending credit note and apply it to its invoice.

        Raises:
            CreditNoteNotFoundError: Unknown credit note
            CreditNoteDecidedError: Note was already approved or rejected
            InvalidTransitionError: Invoice is no longer SENT or OVERDUE
            CreditExceedsBalanceError: Credit is larger than the current balance
        """
        with self.event_bus.deferred():
            with self._lock:
                current = self.require(number)
                if not current.is_pending:
                    raise CreditNoteDecidedError(f"Credit note {number} is already {current.status.value}")
                # Ledger errors leave the note pending
                self.ledger.apply_credit(current.invoice_number, current.amount, number)
                updated = self._decide(number, CreditNoteStatus.APPROVED, note)

            logger.info("Credit note %s approved", number)
            self.event_bus.publish(CreditNoteApproved.create(updated))

        return updated

    def reject(self, number: str, note: str | None = None) -> CreditNote:
        """
        Reject a pending credit note.

        Raises:
            CreditNoteNotFoundError: Unknown credit note
            CreditNoteDecidedError: Note was already approved or rejected
        """
        with self.event_bus.deferred():
            with self._lock:
                updated = self._decide(number, CreditNoteStatus.REJECTED, note)

            logger.info("Credit note %s rejected", number)
            self.event_bus.publish(CreditNoteRejected.create(updated))

        return updated

    def get(self, number: str) -> CreditNote | None:
        with self._lock:
            return self._notes.get(number)

    def require(self, number: str) -> CreditNote:
        note = self.get(number)
        if note is None:
            raise CreditNoteNotFoundError(f"Credit note {number} not found")
        return note

    def list_notes(
        self,
        invoice_number: str | None = None,
        status: CreditNoteStatus | None = None,
    ) -> list[CreditNote]:
        """Credit notes in number order, optionally by invoice and status."""
        with self._lock:
            notes = sorted(self._notes.values(), key=lambda n: n.credit_note_number)
        if invoice_number is not None:
            notes = [n for n in notes if n.invoice_number == invoice_number]
        if status is not None:
            notes = [n for n in notes if n.status == status]
        return notes

    def list_for_invoice(self, invoice_number: str) -> list[CreditNote]:
        return self.list_notes(invoice_number=invoice_number)

    def restore(self, notes: Iterable[CreditNote]) -> int:
        """Load credit notes from durable storage. Not audited or published."""
        count = 0
        with self._lock:
            for note in notes:
                self._notes[note.credit_note_number] = note
                count += 1
        logger.info("Restored %d credit note(s)", count)
        return count
