"""
Handler for InvoicePaid events.

On full payment, emails the customer a receipt.
"""

import logging
from typing import Callable

from core.events import InvoicePaid

logger = logging.getLogger(__name__)


def handle_invoice_paid(email_client, customer_email_lookup: Callable[[str], str | None]) -> Callable:
    """
    Factory that returns an InvoicePaid handler.

    Args:
        email_client: EmailGatewayClient instance
        customer_email_lookup: customer_id -> email address, or None

    Returns:
        Handler callable that sends a payment receipt
    """

    def handler(event: InvoicePaid):
        invoice = event.invoice
        # Nothing was received on zero-total or fully credited invoices
        if invoice.paid_amount == 0:
            return

        email = customer_email_lookup(invoice.customer_id)
        if not email:
            logger.info("No email for %s, receipt for %s not sent", invoice.customer_id, invoice.invoice_number)
            return

        email_client.send_payment_receipt(email, invoice)

    return handler
