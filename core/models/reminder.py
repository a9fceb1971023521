"""Payment reminder models."""

from datetime import date

from pydantic import BaseModel, Field


class PaymentReminder(BaseModel):
    """One step of an invoice's reminder schedule."""

    invoice_number: str
    level: int = Field(..., ge=1)
    scheduled_for: date
    escalated: bool = False

    model_config = {"frozen": True}
