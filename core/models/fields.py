"""Shared monetary field type for billing models."""

from decimal import Decimal
from typing import Annotated

from pydantic import Field

# Two decimal places, enforced at validation time.
Money = Annotated[Decimal, Field(max_digits=14, decimal_places=2)]
