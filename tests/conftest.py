"""Shared test fixtures for the billing test suite."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID
from pathlib import Path

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
from clients.vault_client import reset_vault_client
reset_vault_client()

from core.models import BillableOrder, CustomerRecord, CustomerType
from core.registry import InMemoryOrderRegistry
from core.wiring import build_services
from utils.actor_context import actor_context, clear_current_actor_id


# =============================================================================
# TEST ACTOR CONSTANTS
# =============================================================================

# Office clerk - records and reverses payments
CLERK_ID = UUID("00000000-0000-0000-0000-000000000001")

# Second staff member - for attribution tests
MANAGER_ID = UUID("00000000-0000-0000-0000-000000000002")

# 2025-03-01 09:00 UTC; invoices issued "today" fall due 2025-03-31
START = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# ACTOR CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_actor_context():
    """Ensure clean actor context before and after each test."""
    clear_current_actor_id()
    yield
    clear_current_actor_id()


@pytest.fixture
def clerk_id() -> UUID:
    return CLERK_ID


@pytest.fixture
def manager_id() -> UUID:
    return MANAGER_ID


@pytest.fixture
def as_clerk(clerk_id):
    """Run the test as the office clerk."""
    with actor_context(clerk_id):
        yield clerk_id


# =============================================================================
# CLOCK
# =============================================================================


class FixedClock:
    """Settable clock shared by every service under test."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int = 0, hours: int = 0) -> None:
        self.now += timedelta(days=days, hours=hours)

    def today(self):
        return self.now.date()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


# =============================================================================
# REGISTRY
# =============================================================================


@pytest.fixture
def registry() -> InMemoryOrderRegistry:
    """Two customers and their delivery orders."""
    return InMemoryOrderRegistry(
        orders=[
            BillableOrder(order_id="DO-1001", customer_id="CUST-001", amount=Decimal("1850.00"),
                          service_date=START.date(), description="6-yard bin, 7 days"),
            BillableOrder(order_id="DO-1002", customer_id="CUST-001", amount=Decimal("400.00"),
                          service_date=START.date(), description="Extra pickup"),
            BillableOrder(order_id="DO-1003", customer_id="CUST-002", amount=Decimal("250.00"),
                          service_date=START.date(), description="3-yard bin, 3 days"),
            BillableOrder(order_id="DO-1004", customer_id="CUST-001", amount=Decimal("99.99"),
                          service_date=START.date(), description="Overweight surcharge"),
        ],
        customers=[
            CustomerRecord(customer_id="CUST-001", name="Acme Builders Sdn Bhd",
                           customer_type=CustomerType.CORPORATE, email="accounts@acme.test"),
            CustomerRecord(customer_id="CUST-002", name="Tan Ah Kow",
                           customer_type=CustomerType.INDIVIDUAL),
        ],
    )


# =============================================================================
# SERVICES
# =============================================================================


@pytest.fixture
def services(registry, clock):
    """Fully wired in-memory services; trips are reconciled on capture."""
    return build_services(registry, clock=clock)


@pytest.fixture
def manual_services(registry, clock):
    """Wired services without automatic trip reconciliation."""
    return build_services(registry, clock=clock, auto_reconcile=False)


@pytest.fixture
def event_bus(services):
    return services["event_bus"]


@pytest.fixture
def audit(services):
    return services["audit"]


@pytest.fixture
def builder(services):
    return services["builder"]


@pytest.fixture
def ledger(services):
    return services["ledger"]


@pytest.fixture
def payments(services):
    return services["payments"]


@pytest.fixture
def trips(services):
    return services["trips"]


@pytest.fixture
def reconciliation(services):
    return services["reconciliation"]


@pytest.fixture
def issue_invoice(builder, ledger):
    """Build, commit and send an invoice for the given orders."""
    from core.models import InvoiceTerms, OrderSource

    def _issue(*order_ids, tax_rate_percent=0, send=True, **terms):
        draft = builder.build_invoice(
            OrderSource(order_ids=list(order_ids)),
            InvoiceTerms(tax_rate_percent=tax_rate_percent, **terms),
        )
        invoice = ledger.commit(draft)
        return ledger.send(invoice.invoice_number) if send else invoice

    return _issue
