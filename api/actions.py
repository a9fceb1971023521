"""POST /api/actions: unified mutation endpoint."""

from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response, ErrorCodes
from core.errors import ValidationError
from core.models import (
    InvoiceTerms,
    OrderSource,
    CustomerSource,
    BankInstrument,
    EWalletInstrument,
    TripPaymentCreate,
    CreditNoteCreate,
)
from core.wiring import customer_email_lookup
from utils.actor_context import get_current_actor_id
from utils.timezone import parse_date


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


class UnknownActionError(ValidationError):
    code = ErrorCodes.ACTION_NOT_ALLOWED


class UnknownDomainError(ValidationError):
    code = ErrorCodes.UNKNOWN_DOMAIN


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "invoice": InvoiceHandler(services["builder"], services["ledger"]),
        "payment": PaymentHandler(services["payments"]),
        "trip": TripHandler(services["trips"]),
        "reconciliation": ReconciliationHandler(services["reconciliation"]),
        "reminder": ReminderHandler(services["reminders"], services["email"], services["registry"]),
        "credit_note": CreditNoteHandler(services["credit_notes"]),
    }

    @router.post("/actions")
    async def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise UnknownDomainError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise UnknownActionError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}")
        result = method(dict(body.data))
        return success_response(result, request.state.request_id).model_dump(mode="json")

    return router


def _require(data: dict, key: str):
    if data.get(key) in (None, ""):
        raise ValidationError(f"'{key}' is required")
    return data[key]


def _require_staff(what: str) -> None:
    try:
        get_current_actor_id()
    except RuntimeError:
        raise ValidationError(f"{what} must be made by a staff member (X-Staff-ID)")


def _instrument(data: dict):
    raw = data.get("instrument")
    if raw is None:
        return None
    if raw.get("kind") == "bank":
        return BankInstrument(**raw)
    if raw.get("kind") == "e_wallet":
        return EWalletInstrument(**raw)
    raise ValidationError("instrument.kind must be 'bank' or 'e_wallet'")


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class InvoiceHandler:
    ALLOWED_ACTIONS = {"preview", "create", "send", "cancel", "mark_overdue", "sweep_overdue"}

    def __init__(self, builder, ledger):
        self.builder = builder
        self.ledger = ledger

    def _build(self, data: dict):
        source_data = _require(data, "source")
        if source_data.get("type") == "orders":
            source = OrderSource(**source_data)
        elif source_data.get("type") == "customer":
            source = CustomerSource(**source_data)
        else:
            raise ValidationError("source.type must be 'orders' or 'customer'")
        return self.builder.build_invoice(source, InvoiceTerms(**data.get("terms", {})))

    def _handle_preview(self, data: dict):
        return self._build(data).model_dump(mode="json")

    def _handle_create(self, data: dict):
        invoice = self.ledger.commit(self._build(data))
        if data.get("send"):
            invoice = self.ledger.send(invoice.invoice_number)
        return invoice.model_dump(mode="json")

    def _handle_send(self, data: dict):
        return self.ledger.send(_require(data, "invoice_number")).model_dump(mode="json")

    def _handle_cancel(self, data: dict):
        invoice = self.ledger.cancel(_require(data, "invoice_number"), data.get("reason"))
        return invoice.model_dump(mode="json")

    def _handle_mark_overdue(self, data: dict):
        as_of = parse_date(data["as_of"]) if data.get("as_of") else None
        return self.ledger.mark_overdue(_require(data, "invoice_number"), as_of).model_dump(mode="json")

    def _handle_sweep_overdue(self, data: dict):
        as_of = parse_date(data["as_of"]) if data.get("as_of") else None
        return [i.model_dump(mode="json") for i in self.ledger.sweep_overdue(as_of)]


class PaymentHandler:
    ALLOWED_ACTIONS = {"record", "reverse"}

    def __init__(self, recorder):
        self.recorder = recorder

    def _handle_record(self, data: dict):
        event = self.recorder.record_payment(
            _require(data, "invoice_number"),
            _require(data, "method"),
            str(_require(data, "amount")),
            data.get("reference_number"),
            _instrument(data),
            paid_on=parse_date(data["paid_on"]) if data.get("paid_on") else None,
        )
        return event.model_dump(mode="json")

    def _handle_reverse(self, data: dict):
        _require_staff("Reversals")
        event = self.recorder.reverse_payment(UUID(_require(data, "event_id")), data.get("reason"))
        return event.model_dump(mode="json")


class TripHandler:
    ALLOWED_ACTIONS = {"record_payment", "status_update"}

    def __init__(self, trips):
        self.trips = trips

    def _handle_record_payment(self, data: dict):
        if "amount" in data:
            data["amount"] = str(data["amount"])
        record = self.trips.record_trip_payment(TripPaymentCreate(**data))
        return record.model_dump(mode="json")

    def _handle_status_update(self, data: dict):
        settlement = self.trips.mark_status_updated(_require(data, "trip_id"))
        return settlement.model_dump(mode="json")


class ReconciliationHandler:
    ALLOWED_ACTIONS = {"reconcile", "reconcile_pending"}

    def __init__(self, engine):
        self.engine = engine

    def _handle_reconcile(self, data: dict):
        return self.engine.reconcile(_require(data, "trip_id")).model_dump(mode="json")

    def _handle_reconcile_pending(self, data: dict):
        return [r.model_dump(mode="json") for r in self.engine.reconcile_pending()]


class ReminderHandler:
    ALLOWED_ACTIONS = {"send_due"}

    def __init__(self, reminders, email_client, registry):
        self.reminders = reminders
        self.email_client = email_client
        self.lookup = customer_email_lookup(registry)

    def _handle_send_due(self, data: dict):
        if self.email_client is None:
            raise ValidationError("Email gateway is not configured")
        as_of = parse_date(data["as_of"]) if data.get("as_of") else None
        return self.reminders.send_due_reminders(self.email_client, self.lookup, as_of)


class CreditNoteHandler:
    ALLOWED_ACTIONS = {"issue", "approve", "reject"}

    def __init__(self, credit_notes):
        self.credit_notes = credit_notes

    def _handle_issue(self, data: dict):
        if "amount" in data:
            data["amount"] = str(data["amount"])
        note = self.credit_notes.issue_credit_note(CreditNoteCreate(**data))
        return note.model_dump(mode="json")

    def _handle_approve(self, data: dict):
        _require_staff("Credit note approvals")
        note = self.credit_notes.approve(_require(data, "credit_note_number"), data.get("note"))
        return note.model_dump(mode="json")

    def _handle_reject(self, data: dict):
        _require_staff("Credit note rejections")
        note = self.credit_notes.reject(_require(data, "credit_note_number"), data.get("note"))
        return note.model_dump(mode="json")
