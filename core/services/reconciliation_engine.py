"""
Reconciliation engine.

Matches field-collected trip payments to the open invoices that bill the
trip's orders and applies them through the Payment Recorder. Allocation is
oldest-due first; whatever no invoice can absorb is left unreconciled for
manual review instead of being forced onto the ledger. Events raised while a
reconciliation holds its locks reach handlers only after it releases them.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable

from core.errors import TripNotFoundError
from core.event_bus import EventBus
from core.events import TripReconciled, TripUnreconciled
from core.models import (
    PaymentSource,
    ReconciliationResult,
    ReconciliationStatus,
    ReconciliationWarning,
    TripSettlement,
    WarningCode,
)
from core.money import ZERO, sum_money
from core.services.invoice_ledger import InvoiceLedger
from core.services.payment_recorder import PaymentRecorder
from core.services.trip_payment_recorder import TripPaymentRecorder
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    """Applies trip payments to invoices."""

    def __init__(
        self,
        ledger: InvoiceLedger,
        payments: PaymentRecorder,
        trips: TripPaymentRecorder,
        event_bus: EventBus,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.ledger = ledger
        self.payments = payments
        self.trips = trips
        self.event_bus = event_bus
        self.clock = clock

        self._results: dict[str, ReconciliationResult] = {}

    def reconcile(self, trip_id: str) -> ReconciliationResult:
        """
        Reconcile one trip's payment against its orders' invoices.

        Idempotent: once any amount has been applied, later calls return the
        stored result and create no payment events. A trip with nothing
        applied can be retried, e.g. after its invoice is sent.

        Args:
            trip_id: Trip to reconcile

        Returns:
            ReconciliationResult with the applied events, any unreconciled
            remainder and a warning explaining it

        Raises:
            TripNotFoundError: Trip unknown or has no payment record
        """
        with self.event_bus.deferred():
            with self.trips.locked(trip_id):
                settlement = self.trips.require(trip_id)
                if settlement.record is None:
                    raise TripNotFoundError(f"Trip {trip_id} has no payment recorded")
                if settlement.payment_recorded:
                    return self._stored_result(settlement)

                record = settlement.record
                candidates = self.ledger.open_invoices_for_orders(record.order_ids)
                applied = []
                remaining = record.amount

                if candidates:
                    with self.ledger.locked_many(i.invoice_number for i in candidates):
                        for candidate in candidates:
                            if remaining == ZERO:
                                break
                            # Re-read under the lock; an office payment may have landed meanwhile
                            invoice = self.ledger.require(candidate.invoice_number)
                            if not invoice.is_open or invoice.balance_amount == ZERO:
                                continue

                            portion = min(remaining, invoice.balance_amount)
                            applied.append(
                                self.payments.record_payment(
                                    invoice.invoice_number,
                                    record.method,
                                    portion,
                                    record.reference_number,
                                    record.instrument,
                                    paid_on=record.collected_at.date(),
                                    trip_id=trip_id,
                                    source=PaymentSource.FIELD,
                                )
                            )
                            remaining -= portion

                result = self._build_result(trip_id, applied, remaining)
                self._results[trip_id] = result
                updated = self.trips.mark_reconciled(trip_id, result)

            if result.warning is not None:
                logger.warning("Trip %s: %s", trip_id, result.warning.message)
            else:
                logger.info("Trip %s reconciled: %s applied", trip_id, result.applied_amount)

            if applied:
                self.event_bus.publish(TripReconciled.create(updated, result))
            else:
                self.event_bus.publish(TripUnreconciled.create(updated, result))

        return result

    def _build_result(self, trip_id: str, applied: list, remaining: Decimal) -> ReconciliationResult:
        if not applied:
            status = ReconciliationStatus.UNRECONCILED
            warning = ReconciliationWarning(
                code=WarningCode.NO_MATCHING_INVOICE,
                message=f"No open invoice for the trip's orders; {remaining} held for review",
                amount=remaining,
            )
        elif remaining > ZERO:
            status = ReconciliationStatus.PARTIALLY_RECONCILED
            warning = ReconciliationWarning(
                code=WarningCode.AMOUNT_EXCEEDS_BALANCE,
                message=f"Collected amount exceeds open balances; {remaining} held for review",
                amount=remaining,
            )
        else:
            status = ReconciliationStatus.RECONCILED
            warning = None

        return ReconciliationResult(
            trip_id=trip_id,
            status=status,
            applied=applied,
            unreconciled_amount=remaining,
            warning=warning,
            reconciled_at=self.clock(),
        )

    def _stored_result(self, settlement: TripSettlement) -> ReconciliationResult:
        """Result of an earlier run, rebuilt from the payment log after a restart."""
        result = self._results.get(settlement.trip_id)
        if result is not None:
            return result

        applied = self.payments.list_for_trip(settlement.trip_id)
        remaining = settlement.record.amount - sum_money(e.amount for e in applied)
        result = self._build_result(settlement.trip_id, applied, remaining)
        self._results[settlement.trip_id] = result
        return result

    def reconcile_pending(self) -> list[ReconciliationResult]:
        """Retry every trip whose payment has not reached any invoice yet."""
        results = []
        for settlement in self.trips.list_settlements():
            if settlement.record is not None and not settlement.payment_recorded:
                results.append(self.reconcile(settlement.trip_id))
        return results

    def list_unreconciled(self) -> list[TripSettlement]:
        """Trips with money held for manual review."""
        return self.trips.list_unreconciled()
