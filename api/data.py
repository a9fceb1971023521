"""GET /api/data: unified read endpoint."""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.base import success_response
from core.errors import InvoiceNotFoundError, PaymentNotFoundError, ValidationError
from core.models import CreditNoteStatus, InvoiceStatus, PaymentMethod
from utils.timezone import parse_date


VALID_TYPES = {"invoices", "payments", "trips", "credit_notes", "reports", "audit"}
VALID_REPORTS = {"summary", "payments_by_method", "outstanding_by_customer"}


def _enum(enum_cls, value: str | None, name: str):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"Unknown {name} '{value}'. Valid: {allowed}")


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    ledger = services["ledger"]
    payments = services["payments"]
    trips = services["trips"]
    reminders = services["reminders"]
    reports = services["reports"]
    audit = services["audit"]
    credit_notes = services["credit_notes"]

    @router.get("/data")
    async def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        status: str | None = Query(None),
        customer_id: str | None = Query(None),
        order_id: str | None = Query(None),
        invoice_number: str | None = Query(None),
        method: str | None = Query(None),
        since: str | None = Query(None),
        include: str | None = Query(None),
        filter: str | None = Query(None),
        report: str | None = Query(None),
        entity_type: str | None = Query(None),
        limit: int = Query(100, ge=1, le=1000),
    ):
        if type is None:
            raise ValidationError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValidationError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        includes = set(include.split(",")) if include else set()
        request_id = request.state.request_id

        if type == "invoices":
            data = _handle_invoices(
                ledger, payments, reminders, credit_notes,
                id, status, customer_id, order_id, includes, limit,
            )
        elif type == "payments":
            data = _handle_payments(payments, id, invoice_number, method, since, limit)
        elif type == "trips":
            data = _handle_trips(trips, id, filter)
        elif type == "credit_notes":
            data = _handle_credit_notes(credit_notes, id, invoice_number, status)
        elif type == "reports":
            data = _handle_reports(reports, report, since)
        else:
            data = _handle_audit(audit, entity_type, id, limit)

        return success_response(data, request_id).model_dump(mode="json")

    return router


def _handle_invoices(
    ledger, payments, reminders, credit_notes, id, status, customer_id, order_id, includes, limit
):
    if id:
        invoice = ledger.get(id)
        if invoice is None:
            raise InvoiceNotFoundError(id)

        data = invoice.model_dump(mode="json")
        if "payments" in includes:
            data["payments"] = [p.model_dump(mode="json") for p in payments.list_for_invoice(id)]
        if "reminders" in includes:
            data["reminders"] = [r.model_dump(mode="json") for r in reminders.schedule_for(invoice)]
        if "credit_notes" in includes:
            data["credit_notes"] = [n.model_dump(mode="json") for n in credit_notes.list_for_invoice(id)]
        return data

    if order_id:
        invoices = ledger.find_by_order(order_id)
    else:
        invoices = ledger.list_invoices(
            status=_enum(InvoiceStatus, status, "status"),
            customer_id=customer_id,
        )

    return [i.model_dump(mode="json") for i in invoices[:limit]]


def _handle_payments(payments, id, invoice_number, method, since, limit):
    if id:
        try:
            event = payments.get(UUID(id))
        except ValueError:
            raise ValidationError(f"Payment id must be a UUID, got '{id}'")
        if event is None:
            raise PaymentNotFoundError(f"Payment {id} not found")
        return event.model_dump(mode="json")

    if invoice_number:
        events = payments.list_for_invoice(invoice_number)
    else:
        events = payments.list_events(
            method=_enum(PaymentMethod, method, "method"),
            since=parse_date(since) if since else None,
        )

    return [e.model_dump(mode="json") for e in events[-limit:]]


def _handle_trips(trips, id, filter):
    if id:
        return trips.require(id).model_dump(mode="json")

    if filter == "unreconciled":
        settlements = trips.list_unreconciled()
    elif filter is None:
        settlements = trips.list_settlements()
    else:
        raise ValidationError("'trips' filter must be 'unreconciled' or omitted")

    return [s.model_dump(mode="json") for s in settlements]


def _handle_credit_notes(credit_notes, id, invoice_number, status):
    if id:
        return credit_notes.require(id).model_dump(mode="json")

    notes = credit_notes.list_notes(
        invoice_number=invoice_number,
        status=_enum(CreditNoteStatus, status, "credit note status"),
    )
    return [n.model_dump(mode="json") for n in notes]


def _handle_reports(reports, report, since):
    if report not in VALID_REPORTS:
        raise ValidationError(
            f"'reports' type requires 'report' parameter: {', '.join(sorted(VALID_REPORTS))}"
        )

    if report == "summary":
        data = reports.invoice_summary()
        data["by_status"] = {
            k: {"count": v["count"], "total": str(v["total"])} for k, v in data["by_status"].items()
        }
        data["outstanding_total"] = str(data["outstanding_total"])
        data["collected_total"] = str(data["collected_total"])
        data["credited_total"] = str(data["credited_total"])
        return data

    if report == "payments_by_method":
        totals = reports.payments_by_method(since=parse_date(since) if since else None)
        return {method: str(amount) for method, amount in totals.items()}

    return [
        {**row, "outstanding": str(row["outstanding"])}
        for row in reports.outstanding_by_customer()
    ]


def _handle_audit(audit, entity_type, id, limit):
    if not entity_type or not id:
        raise ValidationError("'audit' type requires 'entity_type' and 'id' parameters")
    return [e.model_dump(mode="json") for e in audit.get_entity_history(entity_type, id)[:limit]]
