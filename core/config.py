"""Billing configuration."""

from pydantic import BaseModel, Field


class BillingConfig(BaseModel):
    """
    Billing configuration.

    Defaults match the Malaysian operation the console was built for:
    ringgit ledger, GST-style rates, 30-day terms.
    """

    # Currency
    default_currency: str = Field(
        default="MYR",
        description="Ledger currency; order amounts are denominated in it",
        min_length=3,
        max_length=3,
    )

    # Tax
    supported_tax_rates: frozenset[int] = Field(
        default=frozenset({0, 6, 7, 10}),
        description="Recognised tax rates in whole percent",
    )

    # Terms
    default_payment_terms_days: int = Field(
        default=30,
        description="Days between issue and due date when not specified",
        ge=0,
        le=365,
    )

    # Numbering
    invoice_number_prefix: str = Field(
        default="INV",
        description="Prefix for INV-YYYYMM-NNNN invoice numbers",
        min_length=1,
        max_length=10,
    )

    # Reminders
    reminder_offsets_days: tuple[int, ...] = Field(
        default=(-7, -1, 7, 30),
        description="Reminder dates relative to due date, one per level",
    )
    escalation_level: int = Field(
        default=3,
        description="First reminder level that is escalated",
        ge=1,
    )

    # Application
    app_name: str = Field(
        default="Bin Rental Billing",
        description="Sender name used in customer emails",
    )
