import json
import logging
from typing import Any

from flask import g, has_request_context
from sqlalchemy.orm import Session

from app.meetup.models import AuditLog, User

logger = logging.getLogger(__name__)


def _encode(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def diff_changes(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """
    Shallow field diff. Every key of `after` is compared with `before` by JSON encoding;
    differing keys map to {"from": old, "to": new}.
    """
    changes: dict[str, dict[str, Any]] = {}
    for key, new in after.items():
        old = before.get(key)
        if _encode(old) != _encode(new):
            changes[key] = {"from": old, "to": new}
    return changes


def log_audit(
    s: Session,
    *,
    user: User | None,
    action: str,
    entity_type: str,
    entity_id: Any,
    entity_name: str | None = None,
    changes: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditLog | None:
    """
    Append an audit row to the caller's unit of work.
    Audit is a side effect: failures are logged and never break the request.
    """
    try:
        rid = request_id or (getattr(g, "request_id", None) if has_request_context() else None)
        row = AuditLog(
            request_id=rid,
            user_id=user.id if user else None,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            entity_name=(entity_name or None) and str(entity_name)[:512],
            changes_json=_encode(changes) if changes else None,
        )
        s.add(row)
        return row
    except Exception:
        logger.exception("Failed to write audit log (%s %s %s)", action, entity_type, entity_id)
        return None
