"""Tests for ReportAggregator."""

from datetime import date
from decimal import Decimal

import pytest


@pytest.fixture
def reports(services):
    return services["reports"]


@pytest.fixture
def populated(issue_invoice, payments, ledger):
    """One paid, one partly paid, one overdue, one cancelled invoice."""
    paid = issue_invoice("DO-1002")
    payments.record_payment(paid.invoice_number, "cash", "400.00", paid_on=date(2025, 3, 2))

    partial = issue_invoice("DO-1001", tax_rate_percent=6, payment_terms_days=60)
    event = payments.record_payment(partial.invoice_number, "cheque", "1000.00", "CHQ-1", paid_on=date(2025, 3, 5))
    payments.reverse_payment(event.id)
    payments.record_payment(partial.invoice_number, "cheque", "961.00", "CHQ-2", paid_on=date(2025, 3, 6))

    overdue = issue_invoice("DO-1003")
    ledger.mark_overdue(overdue.invoice_number, date(2025, 4, 1))

    cancelled = issue_invoice("DO-1004")
    ledger.cancel(cancelled.invoice_number)


class TestInvoiceSummary:

    def test_empty_ledger(self, reports):
        summary = reports.invoice_summary()
        assert summary["invoice_count"] == 0
        assert summary["outstanding_total"] == Decimal("0.00")
        assert summary["by_status"]["paid"] == {"count": 0, "total": Decimal("0.00")}

    def test_counts_and_totals(self, reports, populated):
        summary = reports.invoice_summary()

        assert summary["invoice_count"] == 4
        assert summary["by_status"]["paid"] == {"count": 1, "total": Decimal("400.00")}
        assert summary["by_status"]["sent"] == {"count": 1, "total": Decimal("1961.00")}
        assert summary["by_status"]["overdue"]["count"] == 1
        assert summary["by_status"]["cancelled"] == {"count": 1, "total": Decimal("99.99")}
        assert summary["outstanding_total"] == Decimal("1250.00")
        assert summary["collected_total"] == Decimal("1361.00")
        assert summary["credited_total"] == Decimal("0.00")

    def test_credits_reduce_outstanding_not_collected(self, reports, services, issue_invoice):
        invoice = issue_invoice("DO-1002")
        services["ledger"].apply_credit(invoice.invoice_number, Decimal("40.00"), "CN-2025-0001")

        summary = reports.invoice_summary()

        assert summary["outstanding_total"] == Decimal("360.00")
        assert summary["collected_total"] == Decimal("0.00")
        assert summary["credited_total"] == Decimal("40.00")


class TestPaymentsByMethod:

    def test_reversals_net_out(self, reports, populated):
        assert reports.payments_by_method() == {
            "cash": Decimal("400.00"),
            "cheque": Decimal("961.00"),
        }

    def test_since(self, reports, populated):
        # The reversal is dated on the clock's day, 2025-03-01
        assert reports.payments_by_method(since=date(2025, 3, 3)) == {"cheque": Decimal("1961.00")}


class TestOutstandingByCustomer:

    def test_largest_first(self, reports, populated):
        assert reports.outstanding_by_customer() == [
            {"customer_id": "CUST-001", "outstanding": Decimal("1000.00"), "open_invoices": 1},
            {"customer_id": "CUST-002", "outstanding": Decimal("250.00"), "open_invoices": 1},
        ]
