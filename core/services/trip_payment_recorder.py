"""
Trip payment recorder.

Field-side capture of payments collected by drivers. A record is bound to the
trip's delivery orders, not to an invoice; the reconciliation engine links
the two. A trip completes once both its status update and its payment are in,
whichever arrives first.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator

from core.audit import AuditAction, AuditLogger, compute_changes
from core.errors import DuplicateTripPaymentError, TripNotFoundError, ValidationError
from core.event_bus import EventBus
from core.events import TripCompleted, TripPaymentCaptured, TripStatusUpdated
from core.models import (
    PaymentMethod,
    ReconciliationResult,
    ReconciliationStatus,
    TripPaymentCreate,
    TripPaymentRecord,
    TripSettlement,
)
from core.payment_rules import validate_payment_details
from utils.timezone import now_utc, to_utc

logger = logging.getLogger(__name__)


class TripPaymentRecorder:
    """Holds per-trip payment and completion state."""

    def __init__(
        self,
        audit: AuditLogger,
        event_bus: EventBus,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.audit = audit
        self.event_bus = event_bus
        self.clock = clock

        self._settlements: dict[str, TripSettlement] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def locked(self, trip_id: str) -> Iterator[None]:
        """Hold one trip's lock. Trips are created on first touch."""
        with self._registry_lock:
            lock = self._locks.setdefault(trip_id, threading.RLock())
        with lock:
            yield

    def get(self, trip_id: str) -> TripSettlement | None:
        with self._registry_lock:
            return self._settlements.get(trip_id)

    def require(self, trip_id: str) -> TripSettlement:
        """
        Settlement for a trip.

        Raises:
            TripNotFoundError: Nothing recorded for the trip
        """
        settlement = self.get(trip_id)
        if settlement is None:
            raise TripNotFoundError(f"Trip {trip_id} not found")
        return settlement

    def _store(self, current: TripSettlement | None, updated: TripSettlement) -> TripSettlement:
        """Store a trip's new state and audit it. Caller holds the trip lock."""
        updated = updated.model_copy(update={"version": (current.version if current else 0) + 1})
        with self._registry_lock:
            self._settlements[updated.trip_id] = updated

        if current is None:
            action = AuditAction.CREATE
            changes = {"created": updated.model_dump(mode="json")}
        else:
            action = AuditAction.UPDATE
            changes = compute_changes(
                current.model_dump(mode="json"),
                updated.model_dump(mode="json"),
                exclude_fields={"version"},
            )
        self.audit.log_change(entity_type="trip", entity_id=updated.trip_id, action=action, changes=changes)
        return updated

    def _complete_if_ready(self, settlement: TripSettlement) -> TripSettlement:
        """Set completed_at once both halves are present. Caller holds the trip lock."""
        if settlement.is_completed or settlement.record is None or settlement.status_updated_at is None:
            return settlement
        return settlement.model_copy(update={"completed_at": self.clock()})

    def record_trip_payment(self, data: TripPaymentCreate) -> TripPaymentRecord:
        """
        Record the payment a driver collected on a trip.

        Args:
            data: Trip, driver, orders, method, amount and instrument details

        Returns:
            The immutable TripPaymentRecord

        Raises:
            DuplicateTripPaymentError: Trip already has a payment
            ValidationError: Receipt requested for a non-cash payment
            ReferenceRequiredError: Non-cash payment without reference
            InstrumentRequiredError: Missing or mismatched instrument
        """
        reference = validate_payment_details(data.method, data.reference_number, data.instrument)
        if data.receipt_requested and data.method != PaymentMethod.CASH:
            raise ValidationError("Receipts are only issued for cash payments")

        order_ids = tuple(dict.fromkeys(oid.strip() for oid in data.order_ids if oid.strip()))
        if not order_ids:
            raise ValidationError(f"Trip {data.trip_id} payment lists no orders")

        with self.event_bus.deferred():
            with self.locked(data.trip_id):
                current = self.get(data.trip_id)
                if current is not None and current.record is not None:
                    raise DuplicateTripPaymentError(f"Payment already recorded for trip {data.trip_id}")

                now = self.clock()
                record = TripPaymentRecord(
                    trip_id=data.trip_id,
                    driver_id=data.driver_id,
                    order_ids=order_ids,
                    method=data.method,
                    amount=data.amount,
                    reference_number=reference,
                    instrument=data.instrument,
                    receipt_requested=data.receipt_requested,
                    receipt_number=f"RCPT-{data.trip_id}" if data.receipt_requested else None,
                    collected_at=to_utc(data.collected_at) if data.collected_at else now,
                    recorded_at=now,
                )

                base = current or TripSettlement(trip_id=data.trip_id)
                updated = self._store(
                    current, self._complete_if_ready(base.model_copy(update={"record": record}))
                )

            logger.info(
                "Trip %s: driver %s collected %s by %s",
                record.trip_id, record.driver_id, record.amount, record.method.value,
            )
            self.event_bus.publish(TripPaymentCaptured.create(updated))

        if updated.is_completed:
            # Captured handlers may have reconciled the trip; publish its current state
            self.event_bus.publish(TripCompleted.create(self.get(data.trip_id)))

        return record

    def mark_status_updated(self, trip_id: str, updated_at: datetime | None = None) -> TripSettlement:
        """
        Record the driver's trip status update.

        Repeated updates keep the first timestamp.
        """
        with self.event_bus.deferred():
            with self.locked(trip_id):
                current = self.get(trip_id)
                if current is not None and current.status_updated_at is not None:
                    return current

                base = current or TripSettlement(trip_id=trip_id)
                stamp = to_utc(updated_at) if updated_at else self.clock()
                updated = self._store(
                    current, self._complete_if_ready(base.model_copy(update={"status_updated_at": stamp}))
                )

            self.event_bus.publish(TripStatusUpdated.create(updated))
            if updated.is_completed:
                logger.info("Trip %s completed", trip_id)
                self.event_bus.publish(TripCompleted.create(updated))

        return updated

    def mark_reconciled(self, trip_id: str, result: ReconciliationResult) -> TripSettlement:
        """
        Store a reconciliation outcome. Called by the reconciliation engine only.

        Raises:
            TripNotFoundError: Nothing recorded for the trip
        """
        with self.event_bus.deferred(), self.locked(trip_id):
            current = self.require(trip_id)
            updated = self._store(
                current,
                current.model_copy(
                    update={
                        "payment_recorded": bool(result.applied),
                        "reconciliation_status": result.status,
                        "unreconciled_amount": result.unreconciled_amount,
                    }
                ),
            )

        return updated

    def list_settlements(self, status: ReconciliationStatus | None = None) -> list[TripSettlement]:
        """All trips, optionally by reconciliation status, ordered by trip id."""
        with self._registry_lock:
            settlements = list(self._settlements.values())
        if status is not None:
            settlements = [s for s in settlements if s.reconciliation_status == status]
        return sorted(settlements, key=lambda s: s.trip_id)

    def list_unreconciled(self) -> list[TripSettlement]:
        """Trips with collected money that is not on any invoice."""
        return [s for s in self.list_settlements() if s.needs_review]

    def restore(self, settlements) -> int:
        """Load trip state from durable storage. Not audited or published."""
        count = 0
        with self._registry_lock:
            for settlement in settlements:
                self._settlements[settlement.trip_id] = settlement
                count += 1
        logger.info("Restored %d trip(s)", count)
        return count
