"""Propagate the acting staff member through the call stack using contextvars.

Identity itself is owned by the upstream console; the billing core only
needs to know who to attribute audit entries and payment events to.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from uuid import UUID

_current_actor_id: ContextVar[UUID | None] = ContextVar("current_actor_id", default=None)


def get_current_actor_id() -> UUID:
    """
    Get current actor ID from context.

    Raises RuntimeError if no actor context is set.
    """
    actor_id = _current_actor_id.get()
    if actor_id is None:
        raise RuntimeError(
            "No actor context set. Wrap the call in actor_context() or "
            "route it through the API middleware."
        )
    return actor_id


def peek_current_actor_id() -> UUID | None:
    """Current actor ID, or None for system work such as overdue sweeps."""
    return _current_actor_id.get()


def set_current_actor_id(actor_id: UUID) -> None:
    """Set current actor ID in context."""
    _current_actor_id.set(actor_id)


def clear_current_actor_id() -> None:
    """
    Clear actor context.

    Must be called in a finally block to prevent context leakage.
    """
    _current_actor_id.set(None)


@contextmanager
def actor_context(actor_id: UUID):
    """
    Temporarily act as a staff member.

    Example:
        with actor_context(clerk_id):
            recorder.record_payment(number, PaymentMethod.CASH, Decimal("50.00"))
    """
    token = _current_actor_id.set(actor_id)
    try:
        yield
    finally:
        _current_actor_id.reset(token)
