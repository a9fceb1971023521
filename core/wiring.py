"""
Assembles the billing services and subscribes the event handlers.

The API and tests both take the resulting dict, keyed by the names the action
and data routers look up.
"""

import logging
from datetime import datetime
from typing import Callable

from core.audit import AuditLogger
from core.config import BillingConfig
from core.event_bus import EventBus
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url, get_email_config
from core.events import AuditRecorded, InvoicePaid, TripPaymentCaptured
from core.handlers.invoice_payment_handler import handle_invoice_paid
from core.handlers.persistence_handler import register_persistence
from core.handlers.trip_payment_handler import handle_trip_payment_captured
from core.registry import OrderRegistry
from core.repository import InvoiceRepository
from core.services.credit_note_service import CreditNoteService
from core.services.invoice_builder import InvoiceBuilder
from core.services.invoice_ledger import InvoiceLedger
from core.services.payment_recorder import PaymentRecorder
from core.services.reconciliation_engine import ReconciliationEngine
from core.services.reminder_service import ReminderService
from core.services.report_aggregator import ReportAggregator
from core.services.trip_payment_recorder import TripPaymentRecorder
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def build_services(
    registry: OrderRegistry,
    config: BillingConfig | None = None,
    clock: Callable[[], datetime] = now_utc,
    repository: InvoiceRepository | None = None,
    email_client=None,
    auto_reconcile: bool = True,
) -> dict:
    """
    Build and wire every billing service.

    Args:
        registry: Order/customer registry
        config: Billing configuration (defaults apply when omitted)
        clock: Source of "now" shared by all services
        repository: When given, state is reloaded from it and every change
            is written back through event handlers
        email_client: When given, customers get receipts on full payment
        auto_reconcile: Reconcile trip payments as soon as drivers record them

    Returns:
        Dict of services keyed by name
    """
    config = config or BillingConfig()
    event_bus = EventBus()
    # Audit storage goes through the bus so it waits for locks like other writes
    audit = AuditLogger(
        sink=(lambda entry: event_bus.publish(AuditRecorded.create(entry))) if repository else None
    )

    ledger = InvoiceLedger(audit, event_bus, config, clock)
    payments = PaymentRecorder(ledger, audit, event_bus, clock)
    trips = TripPaymentRecorder(audit, event_bus, clock)
    reconciliation = ReconciliationEngine(ledger, payments, trips, event_bus, clock)
    credit_notes = CreditNoteService(ledger, audit, event_bus, clock)

    services = {
        "config": config,
        "event_bus": event_bus,
        "audit": audit,
        "registry": registry,
        "builder": InvoiceBuilder(registry, config, clock),
        "ledger": ledger,
        "payments": payments,
        "trips": trips,
        "reconciliation": reconciliation,
        "credit_notes": credit_notes,
        "reminders": ReminderService(ledger, config, clock),
        "reports": ReportAggregator(ledger, payments),
        "email": email_client,
    }

    if repository is not None:
        ledger.restore(repository.load_invoices())
        payments.restore(repository.load_payment_events())
        trips.restore(repository.load_trips())
        credit_notes.restore(repository.load_credit_notes())
        register_persistence(event_bus, repository)

    if email_client is not None:
        event_bus.subscribe(InvoicePaid, handle_invoice_paid(email_client, customer_email_lookup(registry)))

    if auto_reconcile:
        event_bus.subscribe(TripPaymentCaptured, handle_trip_payment_captured(reconciliation))

    logger.info("Billing services ready (%s)", config.default_currency)
    return services


def build_services_from_vault(
    registry: OrderRegistry,
    config: BillingConfig | None = None,
    clock: Callable[[], datetime] = now_utc,
    auto_reconcile: bool = True,
) -> dict:
    """
    Build the services against the production database and email gateway.

    Connection details come from Vault (see clients.vault_client).
    """
    repository = InvoiceRepository(PostgresClient(get_database_url()))
    email_client = EmailGatewayClient(**get_email_config())
    logger.info("Using Vault-configured database and email gateway")
    return build_services(
        registry,
        config=config,
        clock=clock,
        repository=repository,
        email_client=email_client,
        auto_reconcile=auto_reconcile,
    )


def customer_email_lookup(registry: OrderRegistry) -> Callable[[str], str | None]:
    """customer_id -> email address, via the registry."""

    def lookup(customer_id: str) -> str | None:
        customer = registry.get_customer(customer_id)
        return customer.email if customer else None

    return lookup
