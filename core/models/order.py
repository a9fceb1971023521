"""Billable facts supplied by the delivery-order and customer registries.

The billing core reads these but never mutates them.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from core.models.fields import Money


class CustomerType(str, Enum):
    """Customer segment, used for reporting and invoice templates."""

    CORPORATE = "corporate"
    INDIVIDUAL = "individual"
    GOVERNMENT = "government"


class CustomerRecord(BaseModel):
    """Customer as known to the customer registry."""

    customer_id: str = Field(..., min_length=1)
    name: str
    customer_type: CustomerType = CustomerType.INDIVIDUAL
    email: str | None = None
    phone: str | None = None

    model_config = {"frozen": True}


class BillableOrder(BaseModel):
    """A completed delivery order that can be billed."""

    order_id: str = Field(..., min_length=1)
    customer_id: str = Field(..., min_length=1)
    amount: Money = Field(..., ge=Decimal("0"))
    service_date: date
    description: str | None = Field(None, max_length=500)

    model_config = {"frozen": True}
