"""
Payment reminder scheduling and dispatch.

Each issued invoice has four reminder levels keyed off its due date. The
first two are courtesy notices before the due date; levels from
escalation_level onward are escalated collection notices.
"""

import logging
from datetime import date, datetime
from typing import Callable

from core.config import BillingConfig
from core.models import Invoice, InvoiceStatus, PaymentReminder
from core.services.invoice_ledger import InvoiceLedger
from utils.timezone import add_days, now_utc

logger = logging.getLogger(__name__)


class ReminderService:
    """Works out which reminders are due and sends them."""

    def __init__(
        self,
        ledger: InvoiceLedger,
        config: BillingConfig | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.ledger = ledger
        self.config = config or BillingConfig()
        self.clock = clock

    def schedule_for(self, invoice: Invoice) -> list[PaymentReminder]:
        """Full reminder schedule for an invoice, level 1 first."""
        return [
            PaymentReminder(
                invoice_number=invoice.invoice_number,
                level=level,
                scheduled_for=add_days(invoice.due_date, offset),
                escalated=level >= self.config.escalation_level,
            )
            for level, offset in enumerate(self.config.reminder_offsets_days, start=1)
        ]

    def next_due(self, invoice: Invoice, as_of: date | None = None) -> PaymentReminder | None:
        """
        The next unsent reminder whose date has come.

        Levels go out one at a time, at most one per day, so an invoice that
        fell behind the schedule catches up over several runs.

        Returns:
            PaymentReminder, or None if nothing is due
        """
        as_of = as_of or self.clock().date()

        if not invoice.is_open or invoice.balance_amount <= 0:
            return None
        if invoice.last_reminder_date == as_of:
            return None

        schedule = self.schedule_for(invoice)
        if invoice.reminders_sent >= len(schedule):
            return None

        reminder = schedule[invoice.reminders_sent]
        return reminder if reminder.scheduled_for <= as_of else None

    def send_due_reminders(
        self,
        email_client,
        customer_email_lookup: Callable[[str], str | None],
        as_of: date | None = None,
    ) -> dict[str, int]:
        """
        Send every reminder that is due.

        Args:
            email_client: EmailGatewayClient (anything with send_invoice_reminder)
            customer_email_lookup: customer_id -> email address, or None
            as_of: Reference date (defaults to today)

        Returns:
            {"sent": n, "failed": n, "skipped": n}; skipped counts invoices
            whose customer has no email address
        """
        as_of = as_of or self.clock().date()
        counts = {"sent": 0, "failed": 0, "skipped": 0}

        open_invoices = self.ledger.list_invoices(status=InvoiceStatus.SENT)
        open_invoices += self.ledger.list_invoices(status=InvoiceStatus.OVERDUE)

        for invoice in open_invoices:
            reminder = self.next_due(invoice, as_of)
            if reminder is None:
                continue

            email = customer_email_lookup(invoice.customer_id)
            if not email:
                logger.warning(
                    "No email for customer %s, reminder %d for %s skipped",
                    invoice.customer_id, reminder.level, invoice.invoice_number,
                )
                counts["skipped"] += 1
                continue

            if email_client.send_invoice_reminder(
                to=email,
                invoice=invoice,
                level=reminder.level,
                escalated=reminder.escalated,
            ):
                self.ledger.record_reminder(invoice.invoice_number, as_of)
                counts["sent"] += 1
            else:
                counts["failed"] += 1

        logger.info(
            "Reminders for %s: %d sent, %d failed, %d skipped",
            as_of, counts["sent"], counts["failed"], counts["skipped"],
        )
        return counts
