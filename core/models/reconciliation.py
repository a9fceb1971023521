"""Reconciliation result models.

Unmatched field payments are an expected operational outcome, so they are
reported as a warning on the result rather than raised.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, computed_field

from core.money import sum_money
from core.models.fields import Money
from core.models.payment import PaymentEvent
from core.models.trip import ReconciliationStatus


class WarningCode(str, Enum):
    NO_MATCHING_INVOICE = "no_matching_invoice"
    AMOUNT_EXCEEDS_BALANCE = "amount_exceeds_balance"


class ReconciliationWarning(BaseModel):
    """Amount left for manual review and why."""

    code: WarningCode
    message: str
    amount: Money

    model_config = {"frozen": True}


class ReconciliationResult(BaseModel):
    """Outcome of reconciling one trip payment."""

    trip_id: str
    status: ReconciliationStatus
    applied: list[PaymentEvent] = Field(default_factory=list)
    unreconciled_amount: Money = Decimal("0.00")
    warning: ReconciliationWarning | None = None
    reconciled_at: datetime

    @computed_field
    @property
    def applied_amount(self) -> Decimal:
        return sum_money(event.amount for event in self.applied)
