"""
Email gateway client for customer billing emails.

Posts JSON to the HTTP email gateway, signed with HMAC-SHA256 over the exact
request body. Reminder and receipt senders report failure as False so batch
jobs can count it; send_email raises.
"""

import hashlib
import hmac
import json
import logging

import requests

logger = logging.getLogger(__name__)

_REMINDER_SUBJECTS = {
    1: "Upcoming payment: invoice {number}",
    2: "Payment due tomorrow: invoice {number}",
    3: "Overdue: invoice {number}",
    4: "Final notice: invoice {number}",
}


class EmailGatewayError(Exception):
    """Raised when email gateway request fails."""


class EmailGatewayClient:
    """Send emails via HTTP gateway with HMAC signature verification."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str, sender_name: str = "Billing"):
        """
        Initialize with gateway credentials.

        Args:
            gateway_url: Full URL to the email gateway endpoint
            api_key: API key for X-API-Key header
            hmac_secret: Secret for HMAC-SHA256 signature
            sender_name: Display name customers see

        Raises:
            ValueError: If any credential is empty
        """
        if not gateway_url:
            raise ValueError("gateway_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        if not hmac_secret:
            raise ValueError("hmac_secret is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret
        self.sender_name = sender_name

    def sign(self, body: str) -> str:
        """Hex HMAC-SHA256 of a request body."""
        return hmac.new(
            self.hmac_secret.encode("utf-8"),
            body.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def _sign_and_send(self, payload: dict) -> None:
        """
        Sign payload with HMAC and send to gateway.

        Raises:
            EmailGatewayError: On any failure
        """
        payload_json = json.dumps(payload, separators=(",", ":"))

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": self.sign(payload_json),
        }

        try:
            response = requests.post(
                self.gateway_url,
                data=payload_json,
                headers=headers,
                timeout=10,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Email gateway connection failed: %s", e)
            raise EmailGatewayError(f"Connection failed: {e}")

        try:
            response_data = response.json()
        except ValueError:
            logger.error("Email gateway returned invalid JSON: %s", response.text)
            raise EmailGatewayError("Invalid response from gateway")

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error("Email gateway error: %s", error_msg)
            raise EmailGatewayError(f"Gateway error: {error_msg}")

    def send_email(self, to: str, subject: str, body: str, category: str = "billing") -> None:
        """
        Send a plain text email.

        Args:
            to: Recipient email address
            subject: Email subject line
            body: Plain text email body
            category: Gateway template category

        Raises:
            EmailGatewayError: On gateway failure
        """
        payload = {
            "type": category,
            "email": to,
            "subject": subject,
            "body": body,
            "sender": self.sender_name,
        }
        self._sign_and_send(payload)
        logger.info("Email sent to %s: %s", to, subject)

    def send_invoice_reminder(self, to: str, invoice, level: int, escalated: bool = False) -> bool:
        """
        Send a payment reminder for an open invoice.

        Args:
            to: Customer email
            invoice: Invoice being chased
            level: Reminder level (1-4)
            escalated: Whether this is an escalated collection notice

        Returns:
            True if the gateway accepted it
        """
        subject = _REMINDER_SUBJECTS.get(level, _REMINDER_SUBJECTS[4]).format(
            number=invoice.invoice_number
        )
        body = (
            f"Invoice {invoice.invoice_number} has an outstanding balance of "
            f"{invoice.currency} {invoice.balance_amount}, due {invoice.due_date.isoformat()}."
        )
        if escalated:
            body += " This account is now escalated to our collections team."

        try:
            self.send_email(to, subject, body, category="reminder")
        except EmailGatewayError:
            logger.warning("Reminder %d for %s not sent", level, invoice.invoice_number)
            return False
        return True

    def send_payment_receipt(self, to: str, invoice) -> bool:
        """
        Thank the customer for paying an invoice in full.

        Returns:
            True if the gateway accepted it
        """
        subject = f"Payment received: invoice {invoice.invoice_number}"
        body = (
            f"Thank you. We have received {invoice.currency} {invoice.paid_amount} "
            f"for invoice {invoice.invoice_number}, which is now fully paid."
        )
        try:
            self.send_email(to, subject, body, category="receipt")
        except EmailGatewayError:
            logger.warning("Receipt for %s not sent", invoice.invoice_number)
            return False
        return True
