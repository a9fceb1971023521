"""Read-only billing reports for the admin dashboard."""

from collections import defaultdict
from datetime import date
from decimal import Decimal

from core.models import InvoiceStatus
from core.money import ZERO
from core.services.invoice_ledger import InvoiceLedger
from core.services.payment_recorder import PaymentRecorder


class ReportAggregator:
    """Aggregates ledger and payment log figures. Never mutates either."""

    def __init__(self, ledger: InvoiceLedger, payments: PaymentRecorder):
        self.ledger = ledger
        self.payments = payments

    def invoice_summary(self) -> dict:
        """
        Invoice counts and totals per status.

        Returns:
            {"by_status": {status: {"count", "total"}}, "invoice_count",
            "outstanding_total", "collected_total", "credited_total"}
        """
        by_status = {s.value: {"count": 0, "total": ZERO} for s in InvoiceStatus}
        outstanding = ZERO
        collected = ZERO
        credited = ZERO

        for invoice in self.ledger.list_invoices():
            bucket = by_status[invoice.status.value]
            bucket["count"] += 1
            bucket["total"] += invoice.total_amount
            collected += invoice.paid_amount
            credited += invoice.credited_amount
            if invoice.is_open:
                outstanding += invoice.balance_amount

        return {
            "by_status": by_status,
            "invoice_count": sum(b["count"] for b in by_status.values()),
            "outstanding_total": outstanding,
            "collected_total": collected,
            "credited_total": credited,
        }

    def payments_by_method(self, since: date | None = None) -> dict[str, Decimal]:
        """Net amount per payment method; reversals count against their method."""
        totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for event in self.payments.list_events(since=since):
            totals[event.method.value] += event.amount
        return dict(totals)

    def outstanding_by_customer(self) -> list[dict]:
        """Open balance per customer, largest first."""
        balances: dict[str, Decimal] = defaultdict(lambda: ZERO)
        counts: dict[str, int] = defaultdict(int)

        for invoice in self.ledger.list_invoices():
            if invoice.is_open and invoice.balance_amount > 0:
                balances[invoice.customer_id] += invoice.balance_amount
                counts[invoice.customer_id] += 1

        rows = [
            {"customer_id": cid, "outstanding": amount, "open_invoices": counts[cid]}
            for cid, amount in balances.items()
        ]
        return sorted(rows, key=lambda r: (-r["outstanding"], r["customer_id"]))
