"""
Invoice builder.

Turns delivery orders, or a customer plus a manually entered figure, into a
DraftInvoice. Pure: reads the order registry, writes nothing. The caller
commits the draft to the ledger.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Callable

from core.config import BillingConfig
from core.errors import (
    ExchangeRateRequiredError,
    MissingSourceError,
    MixedCustomerError,
    UnknownOrderError,
    UnsupportedTaxRateError,
)
from core.models import (
    CustomerSource,
    DraftInvoice,
    InvoiceSourceType,
    InvoiceTerms,
    OrderSource,
)
from core.money import convert, sum_money, to_money
from core.registry import OrderRegistry
from utils.timezone import add_days, now_utc

logger = logging.getLogger(__name__)


class InvoiceBuilder:
    """Builds draft invoices from billable facts."""

    def __init__(
        self,
        registry: OrderRegistry,
        config: BillingConfig | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.registry = registry
        self.config = config or BillingConfig()
        self.clock = clock

    def build_invoice(self, source: OrderSource | CustomerSource, terms: InvoiceTerms) -> DraftInvoice:
        """
        Build a draft invoice.

        Args:
            source: OrderSource (bill delivery orders) or CustomerSource
                (bill a customer a manual subtotal)
            terms: Tax rate, payment terms, currency and optional exchange rate

        Returns:
            DraftInvoice with subtotal, tax and total computed

        Raises:
            MissingSourceError: No orders, or no valid customer/subtotal
            UnknownOrderError: Order id not in the registry
            MixedCustomerError: Orders belong to different customers
            UnsupportedTaxRateError: Tax rate not recognised
            ExchangeRateRequiredError: Foreign currency without a rate
        """
        if terms.tax_rate_percent not in self.config.supported_tax_rates:
            raise UnsupportedTaxRateError(
                f"Tax rate {terms.tax_rate_percent}% not supported. "
                f"Use one of: {', '.join(str(r) for r in sorted(self.config.supported_tax_rates))}"
            )

        currency = (terms.currency or self.config.default_currency).upper()
        foreign = currency != self.config.default_currency
        if foreign and terms.exchange_rate is None:
            raise ExchangeRateRequiredError(
                f"Invoices in {currency} need an exchange rate from {self.config.default_currency}"
            )

        if isinstance(source, OrderSource):
            fields = self._from_orders(source, terms.exchange_rate if foreign else None)
        else:
            fields = self._from_customer(source)

        issue_date = terms.issue_date or self.clock().date()
        payment_terms_days = (
            terms.payment_terms_days
            if terms.payment_terms_days is not None
            else self.config.default_payment_terms_days
        )

        draft = DraftInvoice(
            **fields,
            tax_rate_percent=terms.tax_rate_percent,
            currency=currency,
            exchange_rate=terms.exchange_rate if foreign else None,
            original_currency=self.config.default_currency if foreign else None,
            issue_date=issue_date,
            payment_terms_days=payment_terms_days,
            due_date=self._due_date(issue_date, payment_terms_days),
            notes=terms.notes,
        )

        logger.debug(
            "Built %s draft for %s: total %s %s",
            draft.source_type.value, draft.customer_id, draft.total_amount, draft.currency,
        )
        return draft

    def _from_orders(self, source: OrderSource, exchange_rate: Decimal | None) -> dict:
        # Preserve first-seen order, drop repeats
        order_ids = list(dict.fromkeys(oid.strip() for oid in source.order_ids if oid.strip()))
        if not order_ids:
            raise MissingSourceError("Select at least one delivery order to invoice")

        found = self.registry.get_orders(order_ids)
        missing = [oid for oid in order_ids if oid not in found]
        if missing:
            raise UnknownOrderError(missing)

        lines = tuple(found[oid] for oid in order_ids)
        customers = {line.customer_id for line in lines}
        if len(customers) > 1:
            raise MixedCustomerError(
                f"Orders belong to {len(customers)} customers: {', '.join(sorted(customers))}"
            )

        subtotal = sum_money(line.amount for line in lines)
        if exchange_rate is not None:
            subtotal = convert(subtotal, exchange_rate)

        return {
            "source_type": InvoiceSourceType.ORDERS,
            "customer_id": customers.pop(),
            "order_ids": tuple(order_ids),
            "lines": lines,
            "subtotal": subtotal,
        }

    def _from_customer(self, source: CustomerSource) -> dict:
        if not source.customer_id or self.registry.get_customer(source.customer_id) is None:
            raise MissingSourceError(f"Customer '{source.customer_id}' not found")

        if source.manual_subtotal is None:
            raise MissingSourceError("Enter the subtotal to bill the customer")

        try:
            subtotal = to_money(source.manual_subtotal)
        except ValueError as e:
            raise MissingSourceError(str(e))

        if subtotal < 0:
            raise MissingSourceError("Subtotal cannot be negative")

        return {
            "source_type": InvoiceSourceType.CUSTOMER,
            "customer_id": source.customer_id,
            "subtotal": subtotal,
        }

    @staticmethod
    def _due_date(issue_date: date, payment_terms_days: int) -> date:
        return add_days(issue_date, payment_terms_days)
