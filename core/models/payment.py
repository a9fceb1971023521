"""Payment event domain models.

Payment events are immutable. A cancellation is a second, negative event that
points at the one it reverses.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.fields import Money


class PaymentMethod(str, Enum):
    """Instrument a payment was made with."""

    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    ONLINE_BANKING = "online_banking"
    CASH_DEPOSIT_MACHINE = "cash_deposit_machine"
    E_WALLET = "e_wallet"
    CHEQUE = "cheque"

    @property
    def requires_reference(self) -> bool:
        """Every method except cash leaves a traceable reference."""
        return self is not PaymentMethod.CASH


class PaymentSource(str, Enum):
    """Who captured the payment."""

    OFFICE = "office"
    FIELD = "field"


class EWalletProvider(str, Enum):
    GRABPAY = "grabpay"
    TOUCHNGO = "touchngo"
    BOOST = "boost"
    FAVE = "fave"
    BIGPAY = "bigpay"


class BankInstrument(BaseModel):
    """Paying bank account for transfers."""

    kind: Literal["bank"] = "bank"
    bank_name: str = Field(..., min_length=1, max_length=100)
    account_number: str = Field(..., min_length=1, max_length=34)

    model_config = {"frozen": True}


class EWalletInstrument(BaseModel):
    """Paying e-wallet account."""

    kind: Literal["e_wallet"] = "e_wallet"
    provider: EWalletProvider
    wallet_number: str = Field(..., min_length=1, max_length=32)

    model_config = {"frozen": True}


PaymentInstrument = Annotated[BankInstrument | EWalletInstrument, Field(discriminator="kind")]


class PaymentEvent(BaseModel):
    """One immutable entry in the payment log."""

    id: UUID
    invoice_number: str
    amount: Money
    method: PaymentMethod
    paid_on: date
    reference_number: str | None = None
    instrument: PaymentInstrument | None = None
    source: PaymentSource = PaymentSource.OFFICE
    trip_id: str | None = None
    reverses_event_id: UUID | None = None
    reason: str | None = None
    recorded_at: datetime
    recorded_by: UUID | None = None

    model_config = {"frozen": True, "from_attributes": True}

    @property
    def is_reversal(self) -> bool:
        """Whether this is a compensating event."""
        return self.reverses_event_id is not None

    @property
    def amount_magnitude(self) -> Decimal:
        return abs(self.amount)
