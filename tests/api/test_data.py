"""Tests for GET /api/data unified read endpoint."""

import pytest


def _get(client, **params):
    return client.get("/api/data", params=params)


@pytest.fixture
def paid_invoice(act):
    """DO-1002 (400.00) paid in two cash instalments."""
    invoice = act("invoice", "create", {
        "source": {"type": "orders", "order_ids": ["DO-1002"]}, "send": True,
    }).json()["data"]
    for amount, day in (("150.00", "2025-03-02"), ("250.00", "2025-03-09")):
        act("payment", "record", {
            "invoice_number": invoice["invoice_number"], "method": "cash",
            "amount": amount, "paid_on": day,
        })
    return invoice


class TestDataValidation:

    def test_type_required(self, client):
        response = client.get("/api/data")
        assert response.status_code == 400
        assert "'type'" in response.json()["error"]["message"]

    def test_unknown_type(self, client):
        response = _get(client, type="tickets")
        assert response.status_code == 400
        assert "invoices" in response.json()["error"]["message"]

    def test_limit_bounds(self, client):
        assert _get(client, type="invoices", limit=0).status_code == 422


class TestInvoices:

    def test_list(self, client, sent_invoice, paid_invoice):
        data = _get(client, type="invoices").json()["data"]
        assert [i["invoice_number"] for i in data] == ["INV-202503-0001", "INV-202503-0002"]

    def test_filter_by_status(self, client, sent_invoice, paid_invoice):
        data = _get(client, type="invoices", status="paid").json()["data"]
        assert [i["invoice_number"] for i in data] == [paid_invoice["invoice_number"]]

    def test_unknown_status(self, client):
        response = _get(client, type="invoices", status="void")
        assert response.status_code == 400
        assert "draft" in response.json()["error"]["message"]

    def test_filter_by_customer(self, client, sent_invoice, act):
        act("invoice", "create", {"source": {"type": "orders", "order_ids": ["DO-1003"]}})
        data = _get(client, type="invoices", customer_id="CUST-002").json()["data"]
        assert [i["customer_id"] for i in data] == ["CUST-002"]

    def test_by_order(self, client, sent_invoice):
        data = _get(client, type="invoices", order_id="DO-1001").json()["data"]
        assert [i["invoice_number"] for i in data] == [sent_invoice["invoice_number"]]

    def test_by_id_with_includes(self, client, paid_invoice):
        data = _get(client, type="invoices", id=paid_invoice["invoice_number"],
                    include="payments,reminders").json()["data"]

        assert data["status"] == "paid"
        assert [p["amount"] for p in data["payments"]] == ["150.00", "250.00"]
        assert [r["level"] for r in data["reminders"]] == [1, 2, 3, 4]

    def test_by_id_not_found(self, client):
        response = _get(client, type="invoices", id="INV-209901-0001")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "INVOICE_NOT_FOUND"


class TestPayments:

    def test_list_for_invoice(self, client, paid_invoice):
        data = _get(client, type="payments", invoice_number=paid_invoice["invoice_number"]).json()["data"]
        assert len(data) == 2

    def test_since_and_method(self, client, paid_invoice):
        data = _get(client, type="payments", method="cash", since="2025-03-05").json()["data"]
        assert [p["amount"] for p in data] == ["250.00"]

    def test_by_id(self, client, paid_invoice):
        first = _get(client, type="payments").json()["data"][0]
        data = _get(client, type="payments", id=first["id"]).json()["data"]
        assert data == first

    def test_bad_id(self, client):
        response = _get(client, type="payments", id="not-a-uuid")
        assert response.status_code == 400

    def test_unknown_id(self, client):
        response = _get(client, type="payments", id="00000000-0000-0000-0000-00000000abcd")
        assert response.json()["error"]["code"] == "PAYMENT_NOT_FOUND"


class TestTrips:

    @pytest.fixture
    def unmatched_trip(self, act):
        act("trip", "record_payment", {
            "trip_id": "TRIP-600", "driver_id": "DRV-2", "order_ids": ["DO-1004"],
            "method": "cash", "amount": "99.99",
        })

    def test_list_and_unreconciled(self, client, unmatched_trip):
        assert [t["trip_id"] for t in _get(client, type="trips").json()["data"]] == ["TRIP-600"]

        data = _get(client, type="trips", filter="unreconciled").json()["data"]
        assert data[0]["reconciliation_status"] == "unreconciled"
        assert data[0]["unreconciled_amount"] == "99.99"

    def test_by_id(self, client, unmatched_trip):
        data = _get(client, type="trips", id="TRIP-600").json()["data"]
        assert data["record"]["driver_id"] == "DRV-2"

    def test_unknown_trip(self, client):
        assert _get(client, type="trips", id="TRIP-404").status_code == 404

    def test_bad_filter(self, client):
        assert _get(client, type="trips", filter="all").status_code == 400


class TestCreditNotes:

    @pytest.fixture
    def credit_note(self, act, sent_invoice):
        return act("credit_note", "issue", {
            "invoice_number": sent_invoice["invoice_number"], "amount": "61.00", "reason": "Late swap",
        }).json()["data"]

    def test_list_and_filter(self, client, act, credit_note, sent_invoice):
        act("credit_note", "approve", {"credit_note_number": credit_note["credit_note_number"]})

        listed = _get(client, type="credit_notes", invoice_number=sent_invoice["invoice_number"]).json()["data"]
        approved = _get(client, type="credit_notes", status="approved").json()["data"]
        pending = _get(client, type="credit_notes", status="pending_approval").json()["data"]

        assert [n["credit_note_number"] for n in listed] == ["CN-2025-0001"]
        assert len(approved) == 1
        assert pending == []

    def test_by_id(self, client, credit_note):
        data = _get(client, type="credit_notes", id=credit_note["credit_note_number"]).json()["data"]
        assert data["reason"] == "Late swap"

    def test_unknown_id(self, client):
        response = _get(client, type="credit_notes", id="CN-2025-0404")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CREDIT_NOTE_NOT_FOUND"

    def test_unknown_status(self, client):
        assert _get(client, type="credit_notes", status="maybe").status_code == 400

    def test_included_with_invoice(self, client, credit_note, sent_invoice):
        data = _get(client, type="invoices", id=sent_invoice["invoice_number"],
                    include="credit_notes").json()["data"]
        assert [n["credit_note_number"] for n in data["credit_notes"]] == ["CN-2025-0001"]


class TestReports:

    def test_report_required(self, client):
        assert _get(client, type="reports").status_code == 400

    def test_summary(self, client, sent_invoice, paid_invoice):
        data = _get(client, type="reports", report="summary").json()["data"]

        assert data["invoice_count"] == 2
        assert data["by_status"]["paid"] == {"count": 1, "total": "400.00"}
        assert data["outstanding_total"] == "1961.00"
        assert data["collected_total"] == "400.00"
        assert data["credited_total"] == "0.00"

    def test_payments_by_method(self, client, paid_invoice):
        data = _get(client, type="reports", report="payments_by_method").json()["data"]
        assert data == {"cash": "400.00"}

    def test_outstanding_by_customer(self, client, sent_invoice):
        data = _get(client, type="reports", report="outstanding_by_customer").json()["data"]
        assert data == [{"customer_id": "CUST-001", "outstanding": "1961.00", "open_invoices": 1}]


class TestAudit:

    def test_history_with_actor(self, client, sent_invoice, clerk_id):
        data = _get(client, type="audit", entity_type="invoice", id=sent_invoice["invoice_number"]).json()["data"]

        assert [e["action"] for e in data] == ["transition", "create"]
        assert all(e["actor_id"] == str(clerk_id) for e in data)

    def test_requires_entity(self, client):
        assert _get(client, type="audit", entity_type="invoice").status_code == 400
