"""Field-side trip payment models.

Drivers capture payments against a trip, possibly while offline. The record
is bound to the trip's orders, not to an invoice; reconciliation links them
later.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from core.models.fields import Money
from core.models.payment import PaymentInstrument, PaymentMethod


class ReconciliationStatus(str, Enum):
    """How much of a trip payment has reached the ledger."""

    PENDING = "pending"
    RECONCILED = "reconciled"
    PARTIALLY_RECONCILED = "partially_reconciled"
    UNRECONCILED = "unreconciled"


class TripPaymentCreate(BaseModel):
    """Data a driver submits when collecting payment for a trip."""

    trip_id: str = Field(..., min_length=1)
    driver_id: str = Field(..., min_length=1)
    order_ids: list[str] = Field(..., min_length=1)
    method: PaymentMethod
    amount: Money = Field(..., gt=Decimal("0"))
    reference_number: str | None = Field(None, max_length=100)
    instrument: PaymentInstrument | None = None
    receipt_requested: bool = False
    collected_at: datetime | None = None


class TripPaymentRecord(BaseModel):
    """Immutable field payment, one per trip."""

    trip_id: str
    driver_id: str
    order_ids: tuple[str, ...]
    method: PaymentMethod
    amount: Money
    reference_number: str | None = None
    instrument: PaymentInstrument | None = None
    receipt_requested: bool = False
    receipt_number: str | None = None
    collected_at: datetime
    recorded_at: datetime

    model_config = {"frozen": True, "from_attributes": True}


class TripSettlement(BaseModel):
    """Per-trip join of the driver's status update, payment and reconciliation."""

    trip_id: str
    record: TripPaymentRecord | None = None
    status_updated_at: datetime | None = None
    payment_recorded: bool = False
    reconciliation_status: ReconciliationStatus = ReconciliationStatus.PENDING
    unreconciled_amount: Money = Decimal("0.00")
    completed_at: datetime | None = None
    # Bumped on every change; storage keeps the highest version
    version: int = 0

    model_config = {"frozen": True}

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def needs_review(self) -> bool:
        """Whether some of the collected amount is not on any invoice."""
        return self.reconciliation_status in (
            ReconciliationStatus.UNRECONCILED,
            ReconciliationStatus.PARTIALLY_RECONCILED,
        )
