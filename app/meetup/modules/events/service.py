from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.meetup.audit import diff_changes, log_audit
from app.meetup.constants import EVENT_STATUSES, SPEAKER_STATUSES, VOLUNTEER_STATUSES
from app.meetup.modules.members.service import resolve_user_ref
from app.meetup.utils import clean_str, iso, parse_datetime, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.meetup.models import User
    from app.meetup.modules.events.models import Event
    from app.meetup.modules.speakers.models import EventSpeaker
    from app.meetup.modules.volunteers.models import EventVolunteer


# ---------- Serialization ----------
def event_summary(event: "Event") -> dict:
    """List row: event, creator, members and relation counts."""
    return {
        **event.to_dict(),
        "createdBy": event.created_by.brief() if event.created_by else None,
        "members": [m.to_dict() for m in event.members],
        "counts": {
            "speakers": len(event.speakers),
            "volunteers": len(event.volunteers),
            "checklists": len(event.checklists),
        },
    }


def event_detail(event: "Event") -> dict:
    return {
        **event.to_dict(),
        "createdBy": event.created_by.brief() if event.created_by else None,
        "members": [m.to_dict() for m in event.members],
        "speakers": [l.to_dict() for l in event.speakers],
        "volunteers": [l.to_dict() for l in event.volunteers],
        "venuePartners": [l.to_dict() for l in event.venue_partners],
        "checklists": [c.to_dict() for c in event.checklists],
    }


def _audit_snapshot(event: "Event") -> dict[str, Any]:
    return {
        "title": event.title,
        "description": event.description,
        "date": iso(event.date),
        "venue": event.venue,
        "status": event.status,
    }


# ---------- Queries ----------
def list_events_for(s: "Session", user: "User") -> list["Event"]:
    from app.meetup.modules.events.models import Event, EventMember
    from app.meetup.modules.volunteers.models import EventVolunteer, Volunteer

    q = s.query(Event)
    if user.global_role == "VOLUNTEER":
        q = q.filter(
            or_(
                Event.members.any(EventMember.user_id == user.id),
                Event.volunteers.any(EventVolunteer.volunteer.has(Volunteer.user_id == user.id)),
            )
        )
    return q.order_by(Event.date.desc()).all()


# ---------- Create / update / delete ----------
def validate_event_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial and (not clean_str(payload.get("title")) or not payload.get("date")):
        errors.append("Title and date are required")
        return errors
    if partial and "title" in payload and not clean_str(payload.get("title")):
        errors.append("Title cannot be empty")
    if "date" in payload and (partial or payload.get("date")):
        try:
            if parse_datetime(payload.get("date")) is None:
                errors.append("Date cannot be empty")
        except ValueError:
            errors.append("Invalid date")
    status = payload.get("status")
    if status is not None and status not in EVENT_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(EVENT_STATUSES)}")
    return errors


def create_event(s: "Session", payload: dict, user: "User") -> "Event":
    """Create the event with the caller as LEAD and, when given, seed checklists from a template."""
    from app.meetup.modules.events.models import Event, EventMember
    from app.meetup.modules.sop_templates.models import SOPTemplate
    from app.meetup.modules.sop_templates.service import apply_template_grouped_by_section

    now = datetime.utcnow()
    event = Event(
        title=payload["title"].strip(),
        description=clean_str(payload.get("description")),
        date=parse_datetime(payload["date"]),
        venue=clean_str(payload.get("venue")),
        status=payload.get("status") or "SCHEDULED",
        created_by_user_id=user.id,
        created_at=now,
        updated_at=now,
    )
    event.members.append(EventMember(user=user, event_role="LEAD", created_at=now))
    s.add(event)
    s.flush()

    template_id = parse_int(payload.get("templateId"))
    if template_id is not None:
        template = s.get(SOPTemplate, template_id)
        if template is not None and isinstance(template.default_tasks, list):
            apply_template_grouped_by_section(s, event, template)

    log_audit(
        s,
        user=user,
        action="CREATE",
        entity_type="Event",
        entity_id=event.id,
        entity_name=event.title,
        changes={"title": event.title, "date": iso(event.date), "venue": event.venue},
    )
    return event


def update_event(s: "Session", event: "Event", payload: dict, user: "User") -> dict:
    before = _audit_snapshot(event)

    if "title" in payload:
        event.title = payload["title"].strip()
    if "description" in payload:
        event.description = clean_str(payload.get("description"))
    if "date" in payload:
        event.date = parse_datetime(payload["date"])
    if "venue" in payload:
        event.venue = clean_str(payload.get("venue"))
    if payload.get("status") is not None:
        event.status = payload["status"]
    event.updated_at = datetime.utcnow()

    changes = diff_changes(before, _audit_snapshot(event))
    if changes:
        log_audit(
            s,
            user=user,
            action="UPDATE",
            entity_type="Event",
            entity_id=event.id,
            entity_name=event.title,
            changes=changes,
        )
    return changes


def delete_event(s: "Session", event: "Event", user: "User") -> None:
    log_audit(
        s,
        user=user,
        action="DELETE",
        entity_type="Event",
        entity_id=event.id,
        entity_name=event.title,
    )
    s.delete(event)


# ---------- Speaker links ----------
def find_speaker_link(s: "Session", event_id: int, speaker_id: int) -> "EventSpeaker | None":
    from app.meetup.modules.speakers.models import EventSpeaker

    return (
        s.query(EventSpeaker)
        .filter(EventSpeaker.event_id == event_id, EventSpeaker.speaker_id == speaker_id)
        .one_or_none()
    )


def link_speaker(s: "Session", event: "Event", speaker, user: "User") -> "EventSpeaker":
    from app.meetup.modules.speakers.models import EventSpeaker

    link = EventSpeaker(event=event, speaker=speaker, created_at=datetime.utcnow())
    s.add(link)
    s.flush()
    log_audit(
        s,
        user=user,
        action="CREATE",
        entity_type="EventSpeaker",
        entity_id=link.id,
        entity_name=speaker.name,
        changes={"eventId": event.id, "speakerId": speaker.id},
    )
    return link


def validate_link_patch(payload: dict, statuses: tuple[str, ...]) -> list[str]:
    errors = []
    status = payload.get("status")
    if status is not None and status not in statuses:
        errors.append(f"Invalid status. Must be one of: {', '.join(statuses)}")
    return errors


def validate_speaker_link_patch(payload: dict) -> list[str]:
    return validate_link_patch(payload, SPEAKER_STATUSES)


def validate_volunteer_link_patch(payload: dict) -> list[str]:
    return validate_link_patch(payload, VOLUNTEER_STATUSES)


def update_speaker_link(s: "Session", link: "EventSpeaker", payload: dict, user: "User") -> dict:
    """Raises ValueError for an unknown ownerId before anything changes."""
    owner = resolve_user_ref(s, payload.get("ownerId"), "Owner") if "ownerId" in payload else link.owner
    before = {"status": link.status, "ownerId": link.owner_id, "notes": link.notes}

    if payload.get("status") is not None:
        link.status = payload["status"]
    link.owner = owner
    link.owner_id = owner.id if owner else None
    if "notes" in payload:
        link.notes = clean_str(payload.get("notes"))

    changes = diff_changes(before, {"status": link.status, "ownerId": link.owner_id, "notes": link.notes})
    if changes:
        log_audit(
            s,
            user=user,
            action="UPDATE",
            entity_type="EventSpeaker",
            entity_id=link.id,
            entity_name=link.speaker.name,
            changes=changes,
        )
    return changes


def unlink_speaker(s: "Session", link: "EventSpeaker", user: "User") -> None:
    log_audit(
        s,
        user=user,
        action="DELETE",
        entity_type="EventSpeaker",
        entity_id=link.id,
        entity_name=link.speaker.name,
        changes={"eventId": link.event_id, "speakerId": link.speaker_id},
    )
    s.delete(link)


# ---------- Volunteer links ----------
def find_volunteer_link(s: "Session", event_id: int, volunteer_id: int) -> "EventVolunteer | None":
    from app.meetup.modules.volunteers.models import EventVolunteer

    return (
        s.query(EventVolunteer)
        .filter(EventVolunteer.event_id == event_id, EventVolunteer.volunteer_id == volunteer_id)
        .one_or_none()
    )


def link_volunteer(s: "Session", event: "Event", volunteer, assigned_role: Any, user: "User") -> "EventVolunteer":
    from app.meetup.modules.volunteers.models import EventVolunteer

    link = EventVolunteer(
        event=event,
        volunteer=volunteer,
        assigned_role=clean_str(assigned_role),
        created_at=datetime.utcnow(),
    )
    s.add(link)
    s.flush()
    log_audit(
        s,
        user=user,
        action="CREATE",
        entity_type="EventVolunteer",
        entity_id=link.id,
        entity_name=volunteer.name,
        changes={"eventId": event.id, "volunteerId": volunteer.id, "assignedRole": link.assigned_role},
    )
    return link


def update_volunteer_link(s: "Session", link: "EventVolunteer", payload: dict, user: "User") -> dict:
    owner = resolve_user_ref(s, payload.get("ownerId"), "Owner") if "ownerId" in payload else link.owner
    before = {"status": link.status, "assignedRole": link.assigned_role, "ownerId": link.owner_id}

    if payload.get("status") is not None:
        link.status = payload["status"]
    if "assignedRole" in payload:
        link.assigned_role = clean_str(payload.get("assignedRole"))
    link.owner = owner
    link.owner_id = owner.id if owner else None

    changes = diff_changes(
        before,
        {"status": link.status, "assignedRole": link.assigned_role, "ownerId": link.owner_id},
    )
    if changes:
        log_audit(
            s,
            user=user,
            action="UPDATE",
            entity_type="EventVolunteer",
            entity_id=link.id,
            entity_name=link.volunteer.name,
            changes=changes,
        )
    return changes


def unlink_volunteer(s: "Session", link: "EventVolunteer", user: "User") -> None:
    log_audit(
        s,
        user=user,
        action="DELETE",
        entity_type="EventVolunteer",
        entity_id=link.id,
        entity_name=link.volunteer.name,
        changes={"eventId": link.event_id, "volunteerId": link.volunteer_id},
    )
    s.delete(link)
