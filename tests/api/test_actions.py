"""Tests for POST /api/actions unified mutation endpoint."""

from uuid import uuid4

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from core.wiring import build_services


BANK = {"kind": "bank", "bank_name": "Maybank", "account_number": "5140-1234-5678"}


def _error(response):
    return response.status_code, response.json()["error"]["code"]


# =============================================================================
# ENVELOPE VALIDATION
# =============================================================================


class TestActionsValidation:

    def test_missing_domain_returns_422(self, client):
        response = client.post("/api/actions", json={"action": "create", "data": {}})
        assert response.status_code == 422

    def test_unknown_domain_returns_400(self, act):
        response = act("customer", "create")
        assert _error(response) == (400, "UNKNOWN_DOMAIN")
        assert "invoice" in response.json()["error"]["message"]

    def test_unknown_action_returns_400(self, act):
        assert _error(act("invoice", "delete", {"invoice_number": "x"})) == (400, "ACTION_NOT_ALLOWED")

    def test_missing_field(self, act):
        response = act("invoice", "send", {})
        assert _error(response) == (400, "VALIDATION_ERROR")
        assert "'invoice_number' is required" in response.json()["error"]["message"]

    def test_request_id_in_meta(self, client):
        response = client.post(
            "/api/actions",
            json={"domain": "nope", "action": "x", "data": {}},
            headers={"X-Request-ID": "req-abc"},
        )
        assert response.json()["meta"]["request_id"] == "req-abc"


# =============================================================================
# INVOICE
# =============================================================================


class TestInvoiceActions:

    def test_preview_does_not_commit(self, act, ledger):
        response = act("invoice", "preview", {
            "source": {"type": "orders", "order_ids": ["DO-1001", "DO-1002"]},
            "terms": {"tax_rate_percent": 6},
        })

        data = response.json()["data"]
        assert response.status_code == 200
        assert data["subtotal"] == "2250.00"
        assert data["tax_amount"] == "135.00"
        assert data["total_amount"] == "2385.00"
        assert ledger.list_invoices() == []

    def test_create_draft(self, act):
        response = act("invoice", "create", {"source": {"type": "orders", "order_ids": ["DO-1002"]}})

        data = response.json()["data"]
        assert data["invoice_number"] == "INV-202503-0001"
        assert data["status"] == "draft"
        assert data["due_date"] == "2025-03-31"

    def test_create_and_send(self, sent_invoice):
        assert sent_invoice["status"] == "sent"
        assert sent_invoice["balance_amount"] == "1961.00"

    def test_customer_source(self, act):
        response = act("invoice", "create", {
            "source": {"type": "customer", "customer_id": "CUST-002", "manual_subtotal": "120.00"},
            "terms": {"payment_terms_days": 14},
        })

        data = response.json()["data"]
        assert data["source_type"] == "customer"
        assert data["due_date"] == "2025-03-15"

    def test_bad_source_type(self, act):
        response = act("invoice", "create", {"source": {"type": "quote"}})
        assert _error(response) == (400, "VALIDATION_ERROR")

    def test_unknown_order(self, act):
        response = act("invoice", "create", {"source": {"type": "orders", "order_ids": ["DO-9999"]}})
        assert _error(response) == (400, "UNKNOWN_ORDER")

    def test_unsupported_tax_rate(self, act):
        response = act("invoice", "preview", {
            "source": {"type": "orders", "order_ids": ["DO-1002"]},
            "terms": {"tax_rate_percent": 8},
        })
        assert _error(response) == (400, "UNSUPPORTED_TAX_RATE")

    def test_malformed_terms(self, act):
        response = act("invoice", "preview", {
            "source": {"type": "orders", "order_ids": ["DO-1002"]},
            "terms": {"payment_terms_days": -1},
        })
        assert _error(response) == (400, "VALIDATION_ERROR")

    def test_duplicate_billing(self, act, sent_invoice):
        response = act("invoice", "create", {"source": {"type": "orders", "order_ids": ["DO-1001"]}})
        assert _error(response) == (422, "DUPLICATE_BILLING")

    def test_send_twice_conflicts(self, act, sent_invoice):
        response = act("invoice", "send", {"invoice_number": sent_invoice["invoice_number"]})
        assert _error(response) == (409, "INVALID_STATUS_TRANSITION")

    def test_send_unknown(self, act):
        assert _error(act("invoice", "send", {"invoice_number": "INV-209901-0001"})) == (404, "INVOICE_NOT_FOUND")

    def test_cancel(self, act, sent_invoice):
        response = act("invoice", "cancel", {
            "invoice_number": sent_invoice["invoice_number"], "reason": "Wrong customer",
        })

        data = response.json()["data"]
        assert data["status"] == "cancelled"
        assert data["cancellation_reason"] == "Wrong customer"

    def test_cancel_blocked_by_payment(self, act, sent_invoice):
        act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "cash", "amount": "10.00",
        })
        response = act("invoice", "cancel", {"invoice_number": sent_invoice["invoice_number"]})
        assert _error(response) == (409, "CANCELLATION_BLOCKED")

    def test_cancel_blocked_on_fully_paid_invoice(self, act, sent_invoice):
        act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "cash", "amount": "1961.00",
        })
        response = act("invoice", "cancel", {"invoice_number": sent_invoice["invoice_number"]})
        assert _error(response) == (409, "CANCELLATION_BLOCKED")

    def test_mark_overdue(self, act, sent_invoice):
        response = act("invoice", "mark_overdue", {
            "invoice_number": sent_invoice["invoice_number"], "as_of": "2025-04-01",
        })
        assert response.json()["data"]["status"] == "overdue"

    def test_sweep_overdue(self, act, sent_invoice):
        response = act("invoice", "sweep_overdue", {"as_of": "2025-04-01"})
        assert [i["invoice_number"] for i in response.json()["data"]] == [sent_invoice["invoice_number"]]

    def test_bad_date(self, act):
        assert _error(act("invoice", "sweep_overdue", {"as_of": "01/04/2025"})) == (400, "INVALID_REQUEST")


# =============================================================================
# PAYMENT
# =============================================================================


class TestPaymentActions:

    def test_partial_bank_transfer(self, act, sent_invoice, ledger, clerk_id):
        response = act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"],
            "method": "bank_transfer",
            "amount": "1200.00",
            "reference_number": "TRX-88120",
            "instrument": BANK,
            "paid_on": "2025-03-05",
        })

        data = response.json()["data"]
        assert response.status_code == 200
        assert data["amount"] == "1200.00"
        assert data["instrument"]["bank_name"] == "Maybank"
        assert data["recorded_by"] == str(clerk_id)
        assert ledger.require(sent_invoice["invoice_number"]).balance_amount == 761

    def test_overpayment_rejected(self, act, sent_invoice):
        act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "cash", "amount": "1200.00",
        })
        response = act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "cash", "amount": "2000.00",
        })
        assert _error(response) == (422, "OVERPAYMENT")

    def test_payment_on_paid_invoice_is_overpayment(self, act, sent_invoice):
        act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "cash", "amount": "1961.00",
        })
        response = act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "cash", "amount": "1.00",
        })
        assert _error(response) == (422, "OVERPAYMENT")

    def test_numeric_amount_accepted(self, act, sent_invoice):
        response = act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "cash", "amount": 25,
        })
        assert response.json()["data"]["amount"] == "25.00"

    def test_reference_required(self, act, sent_invoice):
        response = act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "cheque", "amount": "10.00",
        })
        assert _error(response) == (400, "REFERENCE_REQUIRED")

    def test_instrument_required(self, act, sent_invoice):
        response = act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "bank_transfer",
            "amount": "10.00", "reference_number": "T-1",
        })
        assert _error(response) == (400, "INSTRUMENT_REQUIRED")

    def test_bad_instrument_kind(self, act, sent_invoice):
        response = act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "bank_transfer",
            "amount": "10.00", "reference_number": "T-1", "instrument": {"kind": "card"},
        })
        assert _error(response) == (400, "VALIDATION_ERROR")

    def test_draft_invoice_conflicts(self, act):
        draft = act("invoice", "create", {"source": {"type": "orders", "order_ids": ["DO-1002"]}}).json()["data"]
        response = act("payment", "record", {
            "invoice_number": draft["invoice_number"], "method": "cash", "amount": "10.00",
        })
        assert _error(response) == (409, "INVALID_STATUS_TRANSITION")

    def test_full_payment_sends_receipt(self, act, sent_invoice, email_client):
        act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "cash", "amount": "1961.00",
        })
        email_client.send_payment_receipt.assert_called_once()

    def test_reverse(self, act, sent_invoice, ledger):
        event = act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "cash", "amount": "1961.00",
        }).json()["data"]

        response = act("payment", "reverse", {"event_id": event["id"], "reason": "Bounced"})

        data = response.json()["data"]
        assert data["amount"] == "-1961.00"
        assert data["reverses_event_id"] == event["id"]
        assert ledger.require(sent_invoice["invoice_number"]).status.value == "sent"

    def test_reverse_requires_staff(self, act, sent_invoice, anonymous_client):
        event = act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "cash", "amount": "5.00",
        }).json()["data"]

        response = act("payment", "reverse", {"event_id": event["id"]}, via=anonymous_client)

        assert _error(response) == (400, "VALIDATION_ERROR")
        assert "X-Staff-ID" in response.json()["error"]["message"]

    def test_reverse_twice(self, act, sent_invoice):
        event = act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "cash", "amount": "5.00",
        }).json()["data"]
        act("payment", "reverse", {"event_id": event["id"]})

        assert _error(act("payment", "reverse", {"event_id": event["id"]})) == (422, "PAYMENT_ALREADY_REVERSED")

    def test_reverse_unknown(self, act):
        assert _error(act("payment", "reverse", {"event_id": str(uuid4())})) == (404, "PAYMENT_NOT_FOUND")

    def test_reverse_bad_id(self, act):
        assert _error(act("payment", "reverse", {"event_id": "abc"})) == (400, "INVALID_REQUEST")


# =============================================================================
# TRIP AND RECONCILIATION
# =============================================================================


@pytest.fixture
def trip_invoice(act):
    return act("invoice", "create", {
        "source": {"type": "orders", "order_ids": ["DO-1003"]}, "send": True,
    }).json()["data"]


class TestTripActions:

    def test_record_and_auto_reconcile(self, act, trip_invoice, ledger, trips):
        response = act("trip", "record_payment", {
            "trip_id": "TRIP-501", "driver_id": "DRV-07", "order_ids": ["DO-1003"],
            "method": "cash", "amount": 300, "receipt_requested": True,
        })

        assert response.status_code == 200
        assert response.json()["data"]["receipt_number"] == "RCPT-TRIP-501"
        assert ledger.require(trip_invoice["invoice_number"]).status.value == "paid"
        assert trips.require("TRIP-501").unreconciled_amount == 50

    def test_duplicate_trip_payment(self, act):
        payload = {"trip_id": "TRIP-9", "driver_id": "DRV-1", "order_ids": ["DO-1004"],
                   "method": "cash", "amount": "99.99"}
        act("trip", "record_payment", payload)
        assert _error(act("trip", "record_payment", payload)) == (422, "DUPLICATE_TRIP_PAYMENT")

    def test_invalid_trip_payload(self, act):
        response = act("trip", "record_payment", {"trip_id": "TRIP-9", "method": "cash"})
        assert _error(response) == (400, "VALIDATION_ERROR")

    def test_status_update(self, act):
        response = act("trip", "status_update", {"trip_id": "TRIP-10"})
        data = response.json()["data"]
        assert data["status_updated_at"] is not None
        assert data["completed_at"] is None


class TestReconciliationActions:

    def test_reconcile_returns_stored_result(self, act, trip_invoice):
        act("trip", "record_payment", {
            "trip_id": "TRIP-501", "driver_id": "DRV-07", "order_ids": ["DO-1003"],
            "method": "cash", "amount": "300.00",
        })

        data = act("reconciliation", "reconcile", {"trip_id": "TRIP-501"}).json()["data"]

        assert data["status"] == "partially_reconciled"
        assert data["applied_amount"] == "250.00"
        assert data["unreconciled_amount"] == "50.00"
        assert data["warning"]["code"] == "amount_exceeds_balance"

    def test_reconcile_pending_after_send(self, act):
        draft = act("invoice", "create", {"source": {"type": "orders", "order_ids": ["DO-1003"]}}).json()["data"]
        act("trip", "record_payment", {
            "trip_id": "TRIP-502", "driver_id": "DRV-07", "order_ids": ["DO-1003"],
            "method": "cash", "amount": "250.00",
        })
        act("invoice", "send", {"invoice_number": draft["invoice_number"]})

        data = act("reconciliation", "reconcile_pending").json()["data"]

        assert [r["status"] for r in data] == ["reconciled"]

    def test_unknown_trip(self, act):
        assert _error(act("reconciliation", "reconcile", {"trip_id": "TRIP-404"})) == (404, "TRIP_NOT_FOUND")


# =============================================================================
# CREDIT NOTES
# =============================================================================


class TestCreditNoteActions:

    def _issue(self, act, invoice_number, amount="61.00"):
        return act("credit_note", "issue", {
            "invoice_number": invoice_number, "amount": amount, "reason": "Bin swapped late",
        })

    def test_issue_returns_pending_note(self, act, sent_invoice):
        response = self._issue(act, sent_invoice["invoice_number"])

        data = response.json()["data"]
        assert response.status_code == 200
        assert data["credit_note_number"] == "CN-2025-0001"
        assert data["status"] == "pending_approval"
        assert data["amount"] == "61.00"

    def test_numeric_amount_accepted(self, act, sent_invoice):
        response = self._issue(act, sent_invoice["invoice_number"], amount=61)
        assert response.json()["data"]["amount"] == "61.00"

    def test_approve_reduces_balance(self, act, sent_invoice, ledger):
        note = self._issue(act, sent_invoice["invoice_number"]).json()["data"]

        response = act("credit_note", "approve", {"credit_note_number": note["credit_note_number"]})

        assert response.json()["data"]["status"] == "approved"
        invoice = ledger.require(sent_invoice["invoice_number"])
        assert invoice.balance_amount == invoice.total_amount - invoice.credited_amount

    def test_reject(self, act, sent_invoice, ledger):
        note = self._issue(act, sent_invoice["invoice_number"]).json()["data"]

        response = act("credit_note", "reject", {
            "credit_note_number": note["credit_note_number"], "note": "Not our fault",
        })

        assert response.json()["data"]["decision_note"] == "Not our fault"
        assert ledger.require(sent_invoice["invoice_number"]).credited_amount == 0

    def test_decisions_require_staff(self, act, sent_invoice, anonymous_client):
        note = self._issue(act, sent_invoice["invoice_number"]).json()["data"]

        response = act(
            "credit_note", "approve", {"credit_note_number": note["credit_note_number"]}, via=anonymous_client
        )

        assert _error(response) == (400, "VALIDATION_ERROR")

    def test_second_decision_conflicts(self, act, sent_invoice):
        note = self._issue(act, sent_invoice["invoice_number"]).json()["data"]
        act("credit_note", "reject", {"credit_note_number": note["credit_note_number"]})

        response = act("credit_note", "approve", {"credit_note_number": note["credit_note_number"]})

        assert _error(response) == (409, "CREDIT_NOTE_ALREADY_DECIDED")

    def test_credit_above_balance(self, act, sent_invoice):
        note = self._issue(act, sent_invoice["invoice_number"], amount="1961.00").json()["data"]
        act("payment", "record", {
            "invoice_number": sent_invoice["invoice_number"], "method": "cash", "amount": "100.00",
        })

        response = act("credit_note", "approve", {"credit_note_number": note["credit_note_number"]})

        assert _error(response) == (422, "CREDIT_EXCEEDS_BALANCE")

    def test_unknown_note(self, act):
        response = act("credit_note", "approve", {"credit_note_number": "CN-2025-0404"})
        assert _error(response) == (404, "CREDIT_NOTE_NOT_FOUND")

    def test_missing_reason(self, act, sent_invoice):
        response = act("credit_note", "issue", {"invoice_number": sent_invoice["invoice_number"], "amount": "5"})
        assert _error(response) == (400, "VALIDATION_ERROR")


# =============================================================================
# REMINDERS
# =============================================================================


class TestReminderActions:

    def test_send_due(self, act, sent_invoice, email_client):
        response = act("reminder", "send_due", {"as_of": "2025-03-24"})

        assert response.json()["data"] == {"sent": 1, "failed": 0, "skipped": 0}
        assert email_client.send_invoice_reminder.call_args.kwargs["level"] == 1

    def test_without_email_gateway(self, registry, clock):
        client = TestClient(create_app(build_services(registry, clock=clock)), raise_server_exceptions=False)
        response = client.post("/api/actions", json={"domain": "reminder", "action": "send_due", "data": {}})

        assert _error(response) == (400, "VALIDATION_ERROR")
