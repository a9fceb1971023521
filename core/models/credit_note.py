"""Credit note models.

A credit note reduces what a customer owes on an issued invoice without
touching the invoice's subtotal. It is raised as pending, and only an
approved note changes the ledger.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.fields import Money


class CreditNoteStatus(str, Enum):
    """Approval state of a credit note."""

    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class CreditNoteCreate(BaseModel):
    """Data needed to raise a credit note."""

    invoice_number: str = Field(..., min_length=1)
    amount: Money = Field(..., gt=Decimal("0"))
    reason: str = Field(..., min_length=1, max_length=500)


class CreditNote(BaseModel):
    """Immutable credit note document; decisions replace it via model_copy."""

    credit_note_number: str
    invoice_number: str
    amount: Money
    reason: str
    status: CreditNoteStatus = CreditNoteStatus.PENDING_APPROVAL
    created_at: datetime
    created_by: UUID | None = None
    decided_at: datetime | None = None
    decided_by: UUID | None = None
    decision_note: str | None = None

    model_config = {"frozen": True, "from_attributes": True}

    @property
    def is_pending(self) -> bool:
        return self.status == CreditNoteStatus.PENDING_APPROVAL
