"""
Event bus for billing domain events.

Synchronous in-process pub/sub. Handlers execute in the same thread as the
publisher, once the ledger change is stored. Services wrap their locked
sections in deferred() so that handlers (persistence, email, automatic
reconciliation) run only after every lock has been released.
Handler errors are logged but never propagate; the ledger change has already
happened.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List

from core.events import BillingEvent

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-process event bus for billing domain events.

    Subscribe by event class or class name, publish by event instance.
    Handlers are called synchronously in subscription order.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}
        self._local = threading.local()

    @staticmethod
    def _key(event_type: type | str) -> str:
        return event_type if isinstance(event_type, str) else event_type.__name__

    def subscribe(self, event_type: type | str, callback: Callable):
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Event class, or its name (e.g. 'InvoicePaid')
            callback: Function to call when event is published
        """
        self._subscribers.setdefault(self._key(event_type), []).append(callback)

    def subscribe_many(self, event_types, callback: Callable):
        """Subscribe one callback to several event types."""
        for event_type in event_types:
            self.subscribe(event_type, callback)

    @contextmanager
    def deferred(self) -> Iterator[None]:
        """
        Hold this thread's published events until the outermost block exits.

        Nested blocks join the outer one. Queued events are delivered in
        publish order even when the block raises, since the changes they
        describe were stored before the error. Other threads are unaffected.
        """
        if getattr(self._local, "queue", None) is not None:
            yield
            return

        self._local.queue = []
        try:
            yield
        finally:
            pending, self._local.queue = self._local.queue, None
            for event in pending:
                self._dispatch(event)

    def publish(self, event: BillingEvent):
        """
        Publish an event to all subscribers of that type.

        Inside a deferred() block the event is queued instead.

        Args:
            event: BillingEvent instance to publish
        """
        queue = getattr(self._local, "queue", None)
        if queue is not None:
            queue.append(event)
            return
        self._dispatch(event)

    def _dispatch(self, event: BillingEvent):
        event_type = event.__class__.__name__

        for callback in self._subscribers.get(event_type, []):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Handler %s failed for %s (event_id=%s)",
                    getattr(callback, "__name__", repr(callback)),
                    event_type,
                    event.event_id,
                )
