"""Invoice domain models.

Amounts are Decimal with two places. tax_amount, total_amount and
balance_amount are computed from their inputs on every access and are never
stored independently of them. The balance is what remains of the total after
payments and approved credit notes, floored at zero.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, Field, computed_field, model_validator

from core.money import ZERO, compute_balance, compute_tax, compute_total
from core.models.fields import Money
from core.models.order import BillableOrder


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class InvoiceSourceType(str, Enum):
    """Where an invoice's subtotal came from."""

    ORDERS = "orders"
    CUSTOMER = "customer"


class OrderSource(BaseModel):
    """Bill one or more delivery orders."""

    type: Literal["orders"] = "orders"
    order_ids: list[str] = Field(default_factory=list)


class CustomerSource(BaseModel):
    """Bill a customer directly with a manually entered subtotal."""

    type: Literal["customer"] = "customer"
    customer_id: str
    manual_subtotal: Decimal | None = None


InvoiceSource = Annotated[OrderSource | CustomerSource, Field(discriminator="type")]


class InvoiceTerms(BaseModel):
    """Commercial terms applied when building an invoice."""

    tax_rate_percent: int = 0
    payment_terms_days: int | None = Field(None, ge=0, le=365)
    currency: str | None = Field(None, min_length=3, max_length=3)
    exchange_rate: Decimal | None = Field(None, gt=Decimal("0"))
    issue_date: date | None = None
    notes: str | None = Field(None, max_length=2000)


class InvoiceAmounts(BaseModel):
    """Subtotal and tax rate, with the derived tax and total."""

    subtotal: Money = Field(..., ge=Decimal("0"))
    tax_rate_percent: int = Field(..., ge=0, le=100)

    @computed_field
    @property
    def tax_amount(self) -> Decimal:
        return compute_tax(self.subtotal, self.tax_rate_percent)

    @computed_field
    @property
    def total_amount(self) -> Decimal:
        return compute_total(self.subtotal, self.tax_amount)


class DraftInvoice(InvoiceAmounts):
    """Builder output. Has no number or status until committed to the ledger."""

    source_type: InvoiceSourceType
    customer_id: str
    order_ids: tuple[str, ...] = ()
    lines: tuple[BillableOrder, ...] = ()
    currency: str
    exchange_rate: Decimal | None = None
    original_currency: str | None = None
    issue_date: date
    payment_terms_days: int = Field(..., ge=0)
    due_date: date
    notes: str | None = None

    model_config = {"frozen": True}


class Invoice(InvoiceAmounts):
    """Full invoice entity as held by the ledger."""

    invoice_number: str
    source_type: InvoiceSourceType
    customer_id: str
    order_ids: tuple[str, ...] = ()
    status: InvoiceStatus
    paid_amount: Money = ZERO
    credited_amount: Money = ZERO
    currency: str
    exchange_rate: Decimal | None = None
    original_currency: str | None = None
    issue_date: date
    payment_terms_days: int
    due_date: date
    last_reminder_date: date | None = None
    reminders_sent: int = 0
    applied_event_ids: tuple[UUID, ...] = ()
    applied_credit_notes: tuple[str, ...] = ()
    notes: str | None = None
    cancellation_reason: str | None = None
    sent_at: datetime | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    # Bumped on every ledger change; storage keeps the highest version
    version: int = 0

    model_config = {"frozen": True, "from_attributes": True}

    @model_validator(mode="after")
    def check_paid_within_total(self) -> "Invoice":
        """Paid plus credited must stay within [0, total]."""
        settled = self.paid_amount + self.credited_amount
        if self.paid_amount < 0 or self.credited_amount < 0 or settled > self.total_amount:
            raise ValueError(
                f"paid_amount {self.paid_amount} plus credited_amount {self.credited_amount} "
                f"must be within 0..{self.total_amount}"
            )
        return self

    @computed_field
    @property
    def balance_amount(self) -> Decimal:
        return compute_balance(self.total_amount, self.paid_amount + self.credited_amount)

    @property
    def is_open(self) -> bool:
        """Whether the invoice is issued and can still take payments."""
        return self.status in (InvoiceStatus.SENT, InvoiceStatus.OVERDUE)

    @property
    def is_paid(self) -> bool:
        """Whether invoice is fully paid."""
        return self.status == InvoiceStatus.PAID
