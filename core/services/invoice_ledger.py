"""
Invoice ledger.

The single authoritative store of invoices and their status. Every mutation
goes through this service, runs under the invoice's lock, writes an audit
entry and publishes a domain event. Invoices are frozen models; a change
replaces the stored instance via model_copy.

State machine:
    draft -> sent -> paid | overdue | cancelled
    overdue -> paid | sent (partial cure) | cancelled
    paid -> sent (only when a reversal gives it a balance again)

Side effects of a mutation (audit storage, event handlers) are released only
after the invoice lock is; see EventBus.deferred.
"""

import logging
import threading
from contextlib import ExitStack, contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterable, Iterator
from uuid import UUID

from core.audit import AuditAction, AuditLogger, compute_changes
from core.config import BillingConfig
from core.errors import (
    CancellationBlockedError,
    CreditExceedsBalanceError,
    DuplicateBillingError,
    InvalidAmountError,
    InvalidTransitionError,
    InvoiceNotFoundError,
    OverpaymentError,
)
from core.event_bus import EventBus
from core.events import (
    InvoiceCancelled,
    InvoiceCommitted,
    InvoiceCredited,
    InvoiceOverdue,
    InvoicePaid,
    InvoicePaymentApplied,
    InvoiceReminderRecorded,
    InvoiceReopened,
    InvoiceSent,
)
from core.models import DraftInvoice, Invoice, InvoiceStatus
from core.money import ZERO
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

# Fields that change on most transitions but carry no business meaning in the audit trail
_AUDIT_EXCLUDE = {"updated_at", "applied_event_ids", "applied_credit_notes", "version"}


class InvoiceLedger:
    """Authoritative invoice store and status state machine."""

    def __init__(
        self,
        audit: AuditLogger,
        event_bus: EventBus,
        config: BillingConfig | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.audit = audit
        self.event_bus = event_bus
        self.config = config or BillingConfig()
        self.clock = clock

        self._invoices: dict[str, Invoice] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._order_index: dict[str, list[str]] = {}
        # Guards the three dicts above; never held while waiting on an invoice lock
        self._registry_lock = threading.Lock()

    # =========================================================================
    # LOCKING
    # =========================================================================

    def _lock_for(self, invoice_number: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(invoice_number)
        if lock is None:
            raise InvoiceNotFoundError(invoice_number)
        return lock

    @contextmanager
    def locked(self, invoice_number: str) -> Iterator[None]:
        """
        Hold one invoice's lock.

        Re-entrant, so a caller holding it can still call ledger mutations.

        Raises:
            InvoiceNotFoundError: Unknown invoice number
        """
        lock = self._lock_for(invoice_number)
        with lock:
            yield

    @contextmanager
    def locked_many(self, invoice_numbers: Iterable[str]) -> Iterator[None]:
        """
        Hold several invoice locks, acquired in (due_date, invoice_number) order.

        Every multi-invoice caller uses this ordering, so two callers can never
        wait on each other's locks.
        """
        invoices = [self.require(n) for n in set(invoice_numbers)]
        invoices.sort(key=lambda inv: (inv.due_date, inv.invoice_number))

        with ExitStack() as stack:
            for invoice in invoices:
                stack.enter_context(self._lock_for(invoice.invoice_number))
            yield

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, invoice_number: str) -> Invoice | None:
        """Invoice by number, or None."""
        with self._registry_lock:
            return self._invoices.get(invoice_number)

    def require(self, invoice_number: str) -> Invoice:
        """
        Invoice by number.

        Raises:
            InvoiceNotFoundError: Unknown invoice number
        """
        invoice = self.get(invoice_number)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_number)
        return invoice

    def list_invoices(
        self,
        status: InvoiceStatus | None = None,
        customer_id: str | None = None,
    ) -> list[Invoice]:
        """
        List invoices, optionally filtered.

        Args:
            status: Only invoices in this status
            customer_id: Only invoices for this customer

        Returns:
            Matching invoices ordered by invoice number
        """
        with self._registry_lock:
            invoices = list(self._invoices.values())

        if status is not None:
            invoices = [i for i in invoices if i.status == status]
        if customer_id is not None:
            invoices = [i for i in invoices if i.customer_id == customer_id]

        return sorted(invoices, key=lambda i: i.invoice_number)

    def find_by_order(self, order_id: str) -> list[Invoice]:
        """All invoices that bill a delivery order, cancelled ones included."""
        with self._registry_lock:
            numbers = list(self._order_index.get(order_id, ()))
            return [self._invoices[n] for n in numbers]

    def open_invoices_for_orders(self, order_ids: Iterable[str]) -> list[Invoice]:
        """
        Sent or overdue invoices with a balance that bill any of the orders.

        Returns:
            Invoices in (due_date, invoice_number) order
        """
        seen: dict[str, Invoice] = {}
        for order_id in order_ids:
            for invoice in self.find_by_order(order_id):
                if invoice.is_open and invoice.balance_amount > 0:
                    seen[invoice.invoice_number] = invoice
        return sorted(seen.values(), key=lambda i: (i.due_date, i.invoice_number))

    # =========================================================================
    # NUMBERING
    # =========================================================================

    def _generate_invoice_number(self, on: datetime) -> str:
        """
        Next invoice number for the month. Caller holds the registry lock.

        Format: INV-YYYYMM-NNNN where NNNN restarts at 0001 each month.
        """
        prefix = f"{self.config.invoice_number_prefix}-{on.strftime('%Y%m')}-"

        sequence = 0
        for number in self._invoices:
            if not number.startswith(prefix):
                continue
            try:
                sequence = max(sequence, int(number[len(prefix):]))
            except ValueError:
                continue

        return f"{prefix}{sequence + 1:04d}"

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def _store(self, invoice: Invoice) -> None:
        with self._registry_lock:
            self._invoices[invoice.invoice_number] = invoice

    def _replace(self, current: Invoice, changes: dict) -> Invoice:
        """Store a changed copy of an invoice and audit it. Caller holds the invoice lock."""
        updated = current.model_copy(update={**changes, "version": current.version + 1})
        self._store(updated)

        audit_changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json"),
            exclude_fields=_AUDIT_EXCLUDE,
        )
        action = AuditAction.TRANSITION if current.status != updated.status else AuditAction.UPDATE
        self.audit.log_change(
            entity_type="invoice",
            entity_id=updated.invoice_number,
            action=action,
            changes=audit_changes,
        )
        return updated

    def commit(self, draft: DraftInvoice) -> Invoice:
        """
        Enter a draft into the ledger and assign its number.

        Args:
            draft: Builder output

        Returns:
            Invoice in DRAFT status

        Raises:
            DuplicateBillingError: An order is already on a live invoice
        """
        now = self.clock()

        with self.event_bus.deferred():
            with self._registry_lock:
                for order_id in draft.order_ids:
                    for number in self._order_index.get(order_id, ()):
                        if self._invoices[number].status != InvoiceStatus.CANCELLED:
                            raise DuplicateBillingError(
                                f"Order {order_id} is already billed on invoice {number}"
                            )

                invoice = Invoice(
                    invoice_number=self._generate_invoice_number(now),
                    source_type=draft.source_type,
                    customer_id=draft.customer_id,
                    order_ids=draft.order_ids,
                    status=InvoiceStatus.DRAFT,
                    subtotal=draft.subtotal,
                    tax_rate_percent=draft.tax_rate_percent,
                    currency=draft.currency,
                    exchange_rate=draft.exchange_rate,
                    original_currency=draft.original_currency,
                    issue_date=draft.issue_date,
                    payment_terms_days=draft.payment_terms_days,
                    due_date=draft.due_date,
                    notes=draft.notes,
                    created_at=now,
                    updated_at=now,
                    version=1,
                )

                self._invoices[invoice.invoice_number] = invoice
                self._locks[invoice.invoice_number] = threading.RLock()
                for order_id in invoice.order_ids:
                    self._order_index.setdefault(order_id, []).append(invoice.invoice_number)

            self.audit.log_change(
                entity_type="invoice",
                entity_id=invoice.invoice_number,
                action=AuditAction.CREATE,
                changes={"created": invoice.model_dump(mode="json")},
            )

        logger.info(
            "Committed invoice %s for %s: %s %s",
            invoice.invoice_number, invoice.customer_id, invoice.total_amount, invoice.currency,
        )
        self.event_bus.publish(InvoiceCommitted.create(invoice))

        return invoice

    def send(self, invoice_number: str) -> Invoice:
        """
        Issue a draft invoice.

        A zero-total invoice has nothing to collect and settles straight to PAID.

        Raises:
            InvoiceNotFoundError: Unknown invoice number
            InvalidTransitionError: Invoice is not a draft
        """
        with self.event_bus.deferred(), self.locked(invoice_number):
            current = self.require(invoice_number)
            if current.status != InvoiceStatus.DRAFT:
                raise InvalidTransitionError(invoice_number, current.status.value, "send")

            now = self.clock()
            changes = {"status": InvoiceStatus.SENT, "sent_at": now, "updated_at": now}
            if current.total_amount == ZERO:
                changes.update(status=InvoiceStatus.PAID, paid_at=now)
            updated = self._replace(current, changes)

        logger.info("Invoice %s sent (%s)", invoice_number, updated.status.value)
        self.event_bus.publish(InvoiceSent.create(updated))
        if updated.is_paid:
            self.event_bus.publish(InvoicePaid.create(updated))

        return updated

    def apply_payment(self, invoice_number: str, amount: Decimal, event_id: UUID) -> Invoice:
        """
        Apply a payment (positive) or compensating reversal (negative).

        Args:
            invoice_number: Invoice to apply to
            amount: Signed amount
            event_id: Payment event id; an id already applied is ignored

        Returns:
            Updated invoice. PAID when the balance reaches zero, otherwise SENT;
            a reversal on an OVERDUE invoice leaves it OVERDUE.

        Raises:
            InvoiceNotFoundError: Unknown invoice number
            InvalidAmountError: Zero amount, or reversal larger than paid
            InvalidTransitionError: Invoice cannot take this amount in its status
            OverpaymentError: Amount exceeds the balance, which is 0.00 on a PAID invoice
        """
        with self.event_bus.deferred(), self.locked(invoice_number):
            current = self.require(invoice_number)
            if event_id in current.applied_event_ids:
                logger.debug("Event %s already applied to %s", event_id, invoice_number)
                return current

            if amount == 0:
                raise InvalidAmountError("Payment amount must not be zero")

            paid = current.paid_amount + amount
            if amount > 0:
                if not (current.is_open or current.is_paid):
                    raise InvalidTransitionError(
                        invoice_number, current.status.value, "apply payment to"
                    )
                if amount > current.balance_amount:
                    raise OverpaymentError(
                        f"Payment of {amount} exceeds balance {current.balance_amount} "
                        f"on invoice {invoice_number}"
                    )
            else:
                if not (current.is_open or current.is_paid):
                    raise InvalidTransitionError(
                        invoice_number, current.status.value, "reverse payment on"
                    )
                if paid < 0:
                    raise InvalidAmountError(
                        f"Reversal of {-amount} exceeds paid amount {current.paid_amount} "
                        f"on invoice {invoice_number}"
                    )

            now = self.clock()
            changes = {
                "paid_amount": paid,
                "applied_event_ids": current.applied_event_ids + (event_id,),
                "updated_at": now,
            }
            if paid + current.credited_amount == current.total_amount:
                changes.update(status=InvoiceStatus.PAID, paid_at=now)
            elif amount > 0 or current.is_paid:
                changes.update(status=InvoiceStatus.SENT, paid_at=None)
            updated = self._replace(current, changes)

        if updated.is_paid:
            logger.info("Invoice %s paid in full", invoice_number)
            event = InvoicePaid.create(updated)
        elif current.is_paid:
            logger.info("Invoice %s reopened with balance %s", invoice_number, updated.balance_amount)
            event = InvoiceReopened.create(updated)
        else:
            event = InvoicePaymentApplied.create(updated)
        self.event_bus.publish(event)

        return updated

    def apply_credit(self, invoice_number: str, amount: Decimal, credit_note_number: str) -> Invoice:
        """
        Reduce an issued invoice's balance by an approved credit note.

        The subtotal and tax stay as issued; the credit is held in
        credited_amount. A credit that clears the balance settles the invoice.

        Args:
            invoice_number: Invoice being credited
            amount: Positive credit amount
            credit_note_number: Note being applied; a note already applied is ignored

        Raises:
            InvoiceNotFoundError: Unknown invoice number
            InvalidAmountError: Amount not positive
            InvalidTransitionError: Invoice is not SENT or OVERDUE
            CreditExceedsBalanceError: Credit is larger than the balance
        """
        with self.event_bus.deferred(), self.locked(invoice_number):
            current = self.require(invoice_number)
            if credit_note_number in current.applied_credit_notes:
                return current

            if amount <= 0:
                raise InvalidAmountError("Credit amount must be positive")
            if not current.is_open:
                raise InvalidTransitionError(invoice_number, current.status.value, "credit")
            if amount > current.balance_amount:
                raise CreditExceedsBalanceError(
                    f"Credit of {amount} exceeds balance {current.balance_amount} "
                    f"on invoice {invoice_number}"
                )

            now = self.clock()
            changes = {
                "credited_amount": current.credited_amount + amount,
                "applied_credit_notes": current.applied_credit_notes + (credit_note_number,),
                "updated_at": now,
            }
            if amount == current.balance_amount:
                changes.update(status=InvoiceStatus.PAID, paid_at=now)
            updated = self._replace(current, changes)

        logger.info("Invoice %s credited %s by %s", invoice_number, amount, credit_note_number)
        if updated.is_paid:
            self.event_bus.publish(InvoicePaid.create(updated))
        else:
            self.event_bus.publish(InvoiceCredited.create(updated))

        return updated

    def mark_overdue(self, invoice_number: str, as_of: date | None = None) -> Invoice:
        """
        Move a SENT invoice past its due date with a balance to OVERDUE.

        Any other invoice is returned unchanged, so the call is idempotent.

        Args:
            invoice_number: Invoice to check
            as_of: Reference date (defaults to today)

        Raises:
            InvoiceNotFoundError: Unknown invoice number
        """
        as_of = as_of or self.clock().date()

        with self.event_bus.deferred(), self.locked(invoice_number):
            current = self.require(invoice_number)
            if not (
                current.status == InvoiceStatus.SENT
                and current.due_date < as_of
                and current.balance_amount > 0
            ):
                return current

            updated = self._replace(
                current, {"status": InvoiceStatus.OVERDUE, "updated_at": self.clock()}
            )

        logger.info("Invoice %s overdue since %s", invoice_number, updated.due_date)
        self.event_bus.publish(InvoiceOverdue.create(updated))

        return updated

    def sweep_overdue(self, as_of: date | None = None) -> list[Invoice]:
        """
        Mark every sent invoice that is past due.

        Returns:
            Invoices that became OVERDUE in this sweep
        """
        marked = []
        for invoice in self.list_invoices(status=InvoiceStatus.SENT):
            updated = self.mark_overdue(invoice.invoice_number, as_of)
            if updated.status == InvoiceStatus.OVERDUE:
                marked.append(updated)

        if marked:
            logger.info("Overdue sweep marked %d invoice(s)", len(marked))
        return marked

    def cancel(self, invoice_number: str, reason: str | None = None) -> Invoice:
        """
        Cancel an invoice that has no payments.

        Cancelling an already cancelled invoice returns it unchanged. Its orders
        become billable again.

        Raises:
            InvoiceNotFoundError: Unknown invoice number
            CancellationBlockedError: Payments are applied; reverse them first
            InvalidTransitionError: Invoice was settled without payments
                (zero total, or fully credited)
        """
        with self.event_bus.deferred(), self.locked(invoice_number):
            current = self.require(invoice_number)
            if current.status == InvoiceStatus.CANCELLED:
                return current
            if current.paid_amount > 0:
                raise CancellationBlockedError(
                    f"Invoice {invoice_number} has {current.paid_amount} paid; "
                    "reverse the payments before cancelling"
                )
            if current.is_paid:
                raise InvalidTransitionError(invoice_number, current.status.value, "cancel")

            now = self.clock()
            updated = self._replace(
                current,
                {
                    "status": InvoiceStatus.CANCELLED,
                    "cancellation_reason": reason,
                    "cancelled_at": now,
                    "updated_at": now,
                },
            )

        logger.info("Invoice %s cancelled", invoice_number)
        self.event_bus.publish(InvoiceCancelled.create(updated))

        return updated

    def record_reminder(self, invoice_number: str, sent_on: date | None = None) -> Invoice:
        """
        Note that a payment reminder went out.

        Raises:
            InvoiceNotFoundError: Unknown invoice number
            InvalidTransitionError: Invoice is not SENT or OVERDUE
        """
        with self.event_bus.deferred(), self.locked(invoice_number):
            current = self.require(invoice_number)
            if not current.is_open:
                raise InvalidTransitionError(invoice_number, current.status.value, "remind")

            updated = self._replace(
                current,
                {
                    "last_reminder_date": sent_on or self.clock().date(),
                    "reminders_sent": current.reminders_sent + 1,
                    "updated_at": self.clock(),
                },
            )

        self.event_bus.publish(InvoiceReminderRecorded.create(updated))

        return updated

    def restore(self, invoices: Iterable[Invoice]) -> int:
        """
        Load invoices from durable storage.

        Neither audited nor published; the invoices already went through both
        when they were first written.

        Returns:
            Number of invoices loaded
        """
        count = 0
        with self._registry_lock:
            for invoice in invoices:
                self._invoices[invoice.invoice_number] = invoice
                self._locks.setdefault(invoice.invoice_number, threading.RLock())
                for order_id in invoice.order_ids:
                    numbers = self._order_index.setdefault(order_id, [])
                    if invoice.invoice_number not in numbers:
                        numbers.append(invoice.invoice_number)
                count += 1

        logger.info("Restored %d invoice(s)", count)
        return count
