"""
Audit trail for every ledger, payment and trip mutation.

The trail is:
- Append-only (entries never modified or deleted)
- Actor-attributed (who made the change, None for system jobs)
- Detailed (captures old and new values)

Entries are held in memory in insertion order; the repository persists them
to the audit_log table when one is configured.
"""

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Any, Callable
from uuid import UUID, uuid4

from pydantic import BaseModel

from utils.actor_context import peek_current_actor_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class AuditAction(Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    UPDATE = "update"
    TRANSITION = "transition"


class AuditEntry(BaseModel):
    """One immutable audit record."""

    id: UUID
    actor_id: UUID | None
    entity_type: str
    entity_id: str
    action: AuditAction
    changes: dict[str, Any]
    created_at: datetime

    model_config = {"frozen": True}


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    for key in set(old.keys()) | set(new.keys()):
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Append-only audit trail.

    Always pass JSON-compatible values (model_dump(mode="json")) so entries
    can be persisted unchanged.

    Usage:
        audit = AuditLogger()
        audit.log_change(
            entity_type="invoice",
            entity_id=invoice.invoice_number,
            action=AuditAction.TRANSITION,
            changes={"status": {"old": "draft", "new": "sent"}},
        )
        history = audit.get_entity_history("invoice", invoice.invoice_number)
    """

    def __init__(self, sink: Callable[[AuditEntry], None] | None = None):
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()
        self._sink = sink

    def log_change(
        self,
        entity_type: str,
        entity_id: str | UUID,
        action: AuditAction,
        changes: dict[str, Any],
        actor_id: UUID | None = None
    ) -> AuditEntry:
        """
        Log an entity change.

        Args:
            entity_type: "invoice", "payment", "trip" or "credit_note"
            entity_id: Invoice number, payment event id, trip id or credit note number
            action: CREATE, UPDATE or TRANSITION
            changes: The changes made (format depends on action)
            actor_id: Who made the change (defaults to current context)

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - UPDATE / TRANSITION: {"field": {"old": old_val, "new": new_val}, ...}
        """
        entry = AuditEntry(
            id=uuid4(),
            actor_id=actor_id if actor_id is not None else peek_current_actor_id(),
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            changes=changes,
            created_at=now_utc(),
        )

        with self._lock:
            self._entries.append(entry)

        if self._sink is not None:
            try:
                self._sink(entry)
            except Exception:
                # The change is already applied and must not be undone here.
                logger.exception("Audit sink failed for %s %s", entity_type, entity_id)

        return entry

    def get_entity_history(self, entity_type: str, entity_id: str | UUID) -> list[AuditEntry]:
        """Full history for an entity, newest first."""
        key = str(entity_id)
        with self._lock:
            matching = [
                e for e in self._entries
                if e.entity_type == entity_type and e.entity_id == key
            ]
        return list(reversed(matching))

    def get_actor_activity(self, actor_id: UUID, limit: int = 100) -> list[AuditEntry]:
        """Recent entries by one actor, newest first."""
        with self._lock:
            matching = [e for e in self._entries if e.actor_id == actor_id]
        return list(reversed(matching))[:limit]
