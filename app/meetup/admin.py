from __future__ import annotations

import math

from flask import Blueprint, jsonify, request
from sqlalchemy.orm import Session

from app.meetup.constants import AUDIT_PAGE_SIZE
from app.meetup.db import db_session, unfiltered_users
from app.meetup.models import AuditLog
from app.meetup.rbac import require_role
from app.meetup.utils import parse_int

bp = Blueprint("admin", __name__)


def _entity_names(s: Session, entity_type: str, ids: list[int]) -> dict[str, str]:
    """id (as stored on the audit row) -> display name for one entity type."""
    from app.meetup.models import User
    from app.meetup.modules.checklists.models import SOPChecklist, SOPTask
    from app.meetup.modules.events.models import Event
    from app.meetup.modules.sop_templates.models import SOPTemplate
    from app.meetup.modules.speakers.models import EventSpeaker, Speaker
    from app.meetup.modules.venues.models import EventVenuePartner, VenuePartner
    from app.meetup.modules.volunteers.models import EventVolunteer, Volunteer

    simple = {
        "Event": (Event, "title"),
        "Speaker": (Speaker, "name"),
        "Volunteer": (Volunteer, "name"),
        "VenuePartner": (VenuePartner, "name"),
        "SOPChecklist": (SOPChecklist, "title"),
        "SOPTask": (SOPTask, "title"),
        "SOPTemplate": (SOPTemplate, "name"),
    }
    if entity_type in simple:
        model, attr = simple[entity_type]
        rows = s.query(model).filter(model.id.in_(ids)).all()
        return {str(r.id): getattr(r, attr) for r in rows}
    if entity_type == "User":
        rows = unfiltered_users(s).filter(User.id.in_(ids)).all()
        return {str(r.id): r.name for r in rows if r.name}
    if entity_type == "EventSpeaker":
        rows = s.query(EventSpeaker).filter(EventSpeaker.id.in_(ids)).all()
        return {str(r.id): r.speaker.name for r in rows}
    if entity_type == "EventVolunteer":
        rows = s.query(EventVolunteer).filter(EventVolunteer.id.in_(ids)).all()
        return {str(r.id): r.volunteer.name for r in rows}
    if entity_type == "EventVenuePartner":
        rows = s.query(EventVenuePartner).filter(EventVenuePartner.id.in_(ids)).all()
        return {str(r.id): r.venue_partner.name for r in rows}
    return {}


def _backfill_entity_names(s: Session, rows: list[dict]) -> None:
    """Older rows were written without entityName; look the live record up instead."""
    grouped: dict[str, list[int]] = {}
    for row in rows:
        if row["entityName"]:
            continue
        try:
            grouped.setdefault(row["entityType"], []).append(int(row["entityId"]))
        except ValueError:
            continue

    names: dict[tuple[str, str], str] = {}
    for entity_type, ids in grouped.items():
        for entity_id, name in _entity_names(s, entity_type, ids).items():
            names[(entity_type, entity_id)] = name

    for row in rows:
        if not row["entityName"]:
            row["entityName"] = names.get((row["entityType"], row["entityId"]))


@bp.get("/audit-log")
@require_role("ADMIN")
def audit_log():
    s = db_session()
    entity_type = (request.args.get("entityType") or "").strip()
    try:
        user_id = parse_int(request.args.get("userId"))
        page = max(parse_int(request.args.get("page")) or 1, 1)
    except ValueError:
        return jsonify({"error": "userId and page must be integers"}), 400

    q = s.query(AuditLog)
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    if user_id is not None:
        q = q.filter(AuditLog.user_id == user_id)

    total = q.count()
    logs = (
        q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * AUDIT_PAGE_SIZE)
        .limit(AUDIT_PAGE_SIZE)
        .all()
    )
    rows = [log.to_dict() for log in logs]
    _backfill_entity_names(s, rows)

    return jsonify(
        {
            "logs": rows,
            "total": total,
            "page": page,
            "totalPages": math.ceil(total / AUDIT_PAGE_SIZE),
        }
    )
