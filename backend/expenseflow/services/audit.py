"""Append-only audit trail for expense submissions and approval decisions.

Entries join the caller's transaction, so an aborted submission or decision
leaves no audit row behind.
"""
import json
import logging
import uuid
from typing import Any

from sqlalchemy.orm import Session

from expenseflow.middleware.request_id import get_request_id
from expenseflow.models.audit import AuditLog

logger = logging.getLogger(__name__)


def _as_uuid(value: uuid.UUID | str | None) -> uuid.UUID | None:
    if value is None or isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def _snapshot(state: Any | None) -> str | None:
    # Decimal, UUID and datetime values are stored as strings
    if state is None:
        return None
    return json.dumps(state, default=str, sort_keys=True)


def log(
    db: Session,
    action: str,
    entity_type: str,
    entity_id: uuid.UUID | str | None = None,
    actor_id: uuid.UUID | str | None = None,
    before: Any | None = None,
    after: Any | None = None,
    notes: str | None = None,
) -> AuditLog:
    """Add one audit row for a workflow transition.

    Args:
        action: e.g. 'expense_submitted', 'approval_log_approved', 'expense_rejected'.
        entity_type: 'expense' or 'approval_log'.
        actor_id: Acting user; None when the transition has no human actor.
        before / after: JSON-serialisable state snapshots.
    """
    entry = AuditLog(
        actor_id=_as_uuid(actor_id),
        action=action,
        entity_type=entity_type,
        entity_id=_as_uuid(entity_id),
        before_state=_snapshot(before),
        after_state=_snapshot(after),
        request_id=get_request_id(),
        notes=notes,
    )
    db.add(entry)
    db.flush()
    logger.debug("audit: %s %s=%s actor=%s", action, entity_type, entity_id, actor_id)
    return entry
