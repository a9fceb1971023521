"""
Handler for TripPaymentCaptured events.

Reconciles a field payment as soon as the driver records it. A trip whose
invoice is not issued yet stays unreconciled and is picked up later by
ReconciliationEngine.reconcile_pending.
"""

from typing import Callable

from core.events import TripPaymentCaptured


def handle_trip_payment_captured(reconciliation_engine) -> Callable:
    """
    Factory that returns a TripPaymentCaptured handler.

    Args:
        reconciliation_engine: ReconciliationEngine instance

    Returns:
        Handler callable that reconciles the captured trip
    """

    def handler(event: TripPaymentCaptured):
        reconciliation_engine.reconcile(event.settlement.trip_id)

    return handler
