"""
Durable storage for the billing ledger.

The in-memory services are authoritative while the process runs; this
repository mirrors their state into PostgreSQL as events arrive and reloads
it on startup. Writes are idempotent (upserts, or inserts that ignore
duplicates), so replaying an event is harmless. Invoices and trips carry a
version counter, and an upsert never replaces a row with an older version.
"""

import logging

from clients.postgres_client import PostgresClient
from core.audit import AuditEntry
from core.models import CreditNote, Invoice, PaymentEvent, TripSettlement

logger = logging.getLogger(__name__)

_INVOICE_COLUMNS = (
    "invoice_number", "source_type", "customer_id", "order_ids", "status",
    "subtotal", "tax_rate_percent", "tax_amount", "total_amount", "paid_amount", "credited_amount",
    "currency", "exchange_rate", "original_currency",
    "issue_date", "payment_terms_days", "due_date",
    "last_reminder_date", "reminders_sent", "applied_event_ids", "applied_credit_notes",
    "notes", "cancellation_reason",
    "sent_at", "paid_at", "cancelled_at", "created_at", "updated_at", "version",
)

# Stored as Postgres arrays; psycopg2 adapts lists, not tuples, to ARRAY
_ARRAY_COLUMNS = ("order_ids", "applied_event_ids", "applied_credit_notes")

_CREDIT_NOTE_COLUMNS = (
    "credit_note_number", "invoice_number", "amount", "reason", "status",
    "created_at", "created_by", "decided_at", "decided_by", "decision_note",
)

_PAYMENT_COLUMNS = (
    "id", "invoice_number", "amount", "method", "paid_on", "reference_number",
    "instrument", "source", "trip_id", "reverses_event_id", "reason",
    "recorded_at", "recorded_by",
)


def _placeholders(columns: tuple[str, ...]) -> str:
    return ", ".join(["%s"] * len(columns))


class InvoiceRepository:
    """Reads and writes billing state through PostgresClient."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    # =========================================================================
    # WRITES
    # =========================================================================

    def save_invoice(self, invoice: Invoice) -> None:
        """Insert or replace an invoice row unless the stored row is newer."""
        updates = ", ".join(
            f"{col} = EXCLUDED.{col}" for col in _INVOICE_COLUMNS if col != "invoice_number"
        )
        data = invoice.model_dump(mode="python")
        for col in _ARRAY_COLUMNS:
            data[col] = [str(value) for value in data[col]]

        self.postgres.execute(
            f"""
            INSERT INTO invoices ({", ".join(_INVOICE_COLUMNS)})
            VALUES ({_placeholders(_INVOICE_COLUMNS)})
            ON CONFLICT (invoice_number) DO UPDATE SET {updates}
            WHERE invoices.version <= EXCLUDED.version
            """,
            tuple(data[col] for col in _INVOICE_COLUMNS),
        )
        logger.debug(
            "Saved invoice %s (%s, v%d)", invoice.invoice_number, invoice.status.value, invoice.version
        )

    def save_payment_event(self, event: PaymentEvent) -> None:
        """Append a payment event. Already stored events are left alone."""
        data = event.model_dump(mode="python")
        data["instrument"] = event.instrument.model_dump(mode="json") if event.instrument else None

        self.postgres.execute(
            f"""
            INSERT INTO payment_events ({", ".join(_PAYMENT_COLUMNS)})
            VALUES ({_placeholders(_PAYMENT_COLUMNS)})
            ON CONFLICT (id) DO NOTHING
            """,
            tuple(data[col] for col in _PAYMENT_COLUMNS),
        )

    def save_trip(self, settlement: TripSettlement) -> None:
        """Insert or replace a trip's settlement state unless the stored row is newer."""
        record = settlement.record.model_dump(mode="json") if settlement.record else None

        self.postgres.execute(
            """
            INSERT INTO trip_payments (
                trip_id, record, status_updated_at, payment_recorded,
                reconciliation_status, unreconciled_amount, completed_at, version
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (trip_id) DO UPDATE SET
                record = EXCLUDED.record,
                status_updated_at = EXCLUDED.status_updated_at,
                payment_recorded = EXCLUDED.payment_recorded,
                reconciliation_status = EXCLUDED.reconciliation_status,
                unreconciled_amount = EXCLUDED.unreconciled_amount,
                completed_at = EXCLUDED.completed_at,
                version = EXCLUDED.version
            WHERE trip_payments.version <= EXCLUDED.version
            """,
            (
                settlement.trip_id,
                record,
                settlement.status_updated_at,
                settlement.payment_recorded,
                settlement.reconciliation_status,
                settlement.unreconciled_amount,
                settlement.completed_at,
                settlement.version,
            ),
        )

    def save_credit_note(self, note: CreditNote) -> None:
        """Insert a credit note, or store its decision."""
        data = note.model_dump(mode="python")

        self.postgres.execute(
            f"""
            INSERT INTO credit_notes ({", ".join(_CREDIT_NOTE_COLUMNS)})
            VALUES ({_placeholders(_CREDIT_NOTE_COLUMNS)})
            ON CONFLICT (credit_note_number) DO UPDATE SET
                status = EXCLUDED.status,
                decided_at = EXCLUDED.decided_at,
                decided_by = EXCLUDED.decided_by,
                decision_note = EXCLUDED.decision_note
            WHERE credit_notes.status = 'pending_approval'
            """,
            tuple(data[col] for col in _CREDIT_NOTE_COLUMNS),
        )

    def save_audit_entry(self, entry: AuditEntry) -> None:
        """Audit sink: persist one audit entry."""
        self.postgres.execute(
            """
            INSERT INTO audit_log (id, actor_id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO NOTHING
            """,
            (
                entry.id,
                entry.actor_id,
                entry.entity_type,
                entry.entity_id,
                entry.action,
                entry.changes,
                entry.created_at,
            ),
        )

    # =========================================================================
    # READS
    # =========================================================================

    def load_invoices(self) -> list[Invoice]:
        """All stored invoices, by invoice number."""
        rows = self.postgres.execute("SELECT * FROM invoices ORDER BY invoice_number")
        return [Invoice.model_validate(row) for row in rows]

    def load_invoice(self, invoice_number: str) -> Invoice | None:
        """One stored invoice, or None."""
        row = self.postgres.execute_single(
            "SELECT * FROM invoices WHERE invoice_number = %s", (invoice_number,)
        )
        return Invoice.model_validate(row) if row else None

    def load_payment_events(self) -> list[PaymentEvent]:
        """The payment log in recording order."""
        rows = self.postgres.execute("SELECT * FROM payment_events ORDER BY seq")
        return [PaymentEvent.model_validate(row) for row in rows]

    def load_trips(self) -> list[TripSettlement]:
        """All stored trip settlements."""
        rows = self.postgres.execute("SELECT * FROM trip_payments ORDER BY trip_id")
        return [TripSettlement.model_validate(row) for row in rows]

    def load_credit_notes(self) -> list[CreditNote]:
        """All stored credit notes, by number."""
        rows = self.postgres.execute("SELECT * FROM credit_notes ORDER BY credit_note_number")
        return [CreditNote.model_validate(row) for row in rows]
