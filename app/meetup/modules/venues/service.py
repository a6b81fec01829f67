from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.meetup.audit import diff_changes, log_audit
from app.meetup.constants import PRIORITIES, VENUE_STATUSES
from app.meetup.utils import clean_str, iso, parse_datetime, parse_decimal, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.meetup.models import User
    from app.meetup.modules.checklists.models import SOPTask
    from app.meetup.modules.events.models import Event
    from app.meetup.modules.venues.models import EventVenuePartner, VenuePartner


# (payload key, attribute, label)
REQUIRED_FIELDS = (
    ("name", "name", "Name"),
    ("address", "address", "Address"),
    ("contactName", "contact_name", "Contact person"),
    ("email", "email", "Email"),
)
OPTIONAL_FIELDS = (
    ("phone", "phone"),
    ("notes", "notes"),
    ("website", "website"),
    ("photoUrl", "photo_url"),
)


class VenueConflict(Exception):
    """Another link of the event is already CONFIRMED and the caller did not force."""

    def __init__(self, existing: "EventVenuePartner"):
        super().__init__(f"Event {existing.event_id} already has a confirmed venue")
        self.existing = existing

    def to_dict(self) -> dict:
        return {
            "conflict": True,
            "existingVenue": {
                "id": self.existing.id,
                "venuePartner": {"name": self.existing.venue_partner.name},
            },
        }


# ---------- Venue partners ----------
def _visible_event_ids(s: "Session", user: "User") -> set[int]:
    from app.meetup.modules.events.models import EventMember
    from app.meetup.modules.volunteers.models import EventVolunteer, Volunteer

    volunteer_links = (
        s.query(EventVolunteer.event_id)
        .join(Volunteer, Volunteer.id == EventVolunteer.volunteer_id)
        .filter(Volunteer.user_id == user.id)
        .all()
    )
    member_links = s.query(EventMember.event_id).filter(EventMember.user_id == user.id).all()
    return {r[0] for r in volunteer_links} | {r[0] for r in member_links}


def list_venue_partners(s: "Session", user: "User") -> list[dict]:
    """
    Partners by name with eventCount and statusCounts.
    Volunteers only see partners linked to their own events, and only those links are counted.
    """
    from app.meetup.modules.venues.models import EventVenuePartner, VenuePartner

    q = s.query(VenuePartner)
    event_ids: set[int] | None = None
    if user.global_role == "VOLUNTEER":
        event_ids = _visible_event_ids(s, user)
        q = q.filter(VenuePartner.events.any(EventVenuePartner.event_id.in_(event_ids)))

    rows = []
    for partner in q.order_by(VenuePartner.name.asc()).all():
        links = [l for l in partner.events if event_ids is None or l.event_id in event_ids]
        rows.append(
            {
                **partner.to_dict(),
                "eventCount": len(links),
                "statusCounts": dict(Counter(l.status for l in links)),
            }
        )
    return rows


def venue_partner_detail(partner: "VenuePartner") -> dict:
    return {
        **partner.to_dict(),
        "eventCount": len(partner.events),
        "events": [
            {
                **link.to_dict(),
                "event": {
                    "id": link.event.id,
                    "title": link.event.title,
                    "date": iso(link.event.date),
                    "status": link.event.status,
                },
            }
            for link in partner.events
        ],
    }


def _parse_capacity(raw: Any) -> int:
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    return parse_int(raw)


def validate_venue_partner_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    for key, _attr, label in REQUIRED_FIELDS:
        if partial and key not in payload:
            continue
        if not clean_str(payload.get(key)):
            errors.append(f"{label} cannot be empty" if partial else f"{label} is required")
    if not partial or "capacity" in payload:
        raw = payload.get("capacity")
        if raw is None or raw == "":
            errors.append("Capacity is required" if not partial else "Capacity cannot be empty")
        else:
            try:
                _parse_capacity(raw)
            except ValueError:
                errors.append("Capacity must be an integer")
    return errors


def _snapshot(partner: "VenuePartner") -> dict[str, Any]:
    return {
        "name": partner.name,
        "contactName": partner.contact_name,
        "email": partner.email,
        "phone": partner.phone,
        "address": partner.address,
        "capacity": partner.capacity,
        "notes": partner.notes,
        "website": partner.website,
        "photoUrl": partner.photo_url,
    }


def create_venue_partner(s: "Session", payload: dict, user: "User") -> "VenuePartner":
    from app.meetup.modules.venues.models import VenuePartner

    now = datetime.utcnow()
    partner = VenuePartner(capacity=_parse_capacity(payload["capacity"]), created_at=now, updated_at=now)
    for key, attr, _label in REQUIRED_FIELDS:
        setattr(partner, attr, clean_str(payload.get(key)))
    for key, attr in OPTIONAL_FIELDS:
        setattr(partner, attr, clean_str(payload.get(key)))
    s.add(partner)
    s.flush()

    log_audit(
        s,
        user=user,
        action="CREATE",
        entity_type="VenuePartner",
        entity_id=partner.id,
        entity_name=partner.name,
        changes={
            "name": partner.name,
            "address": partner.address,
            "contactName": partner.contact_name,
            "email": partner.email,
            "capacity": partner.capacity,
        },
    )
    return partner


def update_venue_partner(s: "Session", partner: "VenuePartner", payload: dict, user: "User") -> dict:
    before = _snapshot(partner)

    for key, attr, _label in REQUIRED_FIELDS:
        if key in payload:
            setattr(partner, attr, clean_str(payload.get(key)))
    for key, attr in OPTIONAL_FIELDS:
        if key in payload:
            setattr(partner, attr, clean_str(payload.get(key)))
    if "capacity" in payload:
        partner.capacity = _parse_capacity(payload["capacity"])
    partner.updated_at = datetime.utcnow()

    changes = diff_changes(before, _snapshot(partner))
    if changes:
        log_audit(
            s,
            user=user,
            action="UPDATE",
            entity_type="VenuePartner",
            entity_id=partner.id,
            entity_name=partner.name,
            changes=changes,
        )
    return changes


def delete_venue_partner(s: "Session", partner: "VenuePartner", user: "User") -> None:
    log_audit(
        s,
        user=user,
        action="DELETE",
        entity_type="VenuePartner",
        entity_id=partner.id,
        entity_name=partner.name,
    )
    s.delete(partner)


# ---------- Event links ----------
def find_venue_link(s: "Session", event_id: int, venue_partner_id: int) -> "EventVenuePartner | None":
    from app.meetup.modules.venues.models import EventVenuePartner

    return (
        s.query(EventVenuePartner)
        .filter(EventVenuePartner.event_id == event_id, EventVenuePartner.venue_partner_id == venue_partner_id)
        .one_or_none()
    )


def link_venue_partner(s: "Session", event: "Event", partner: "VenuePartner", user: "User") -> "EventVenuePartner":
    from app.meetup.modules.venues.models import EventVenuePartner

    now = datetime.utcnow()
    link = EventVenuePartner(event=event, venue_partner=partner, created_at=now, updated_at=now)
    s.add(link)
    s.flush()
    log_audit(
        s,
        user=user,
        action="CREATE",
        entity_type="EventVenuePartner",
        entity_id=link.id,
        entity_name=partner.name,
        changes={"eventId": event.id, "venuePartnerId": partner.id},
    )
    return link


def unlink_venue_partner(s: "Session", event: "Event", link: "EventVenuePartner", user: "User") -> None:
    """Remove the link; a confirmed venue also clears event.venue and reopens the confirmation tasks."""
    name = link.venue_partner.name
    was_confirmed = link.status == "CONFIRMED"
    partner_id = link.venue_partner_id
    link_id = link.id

    s.delete(link)
    if was_confirmed:
        if event.venue == name:
            event.venue = None
            event.updated_at = datetime.utcnow()
        reset_venue_confirmation_tasks(s, event, user, f'Venue partner "{name}" unlinked from event')

    log_audit(
        s,
        user=user,
        action="DELETE",
        entity_type="EventVenuePartner",
        entity_id=link_id,
        entity_name=name,
        changes={"eventId": event.id, "venuePartnerId": partner_id},
    )


# ---------- Venue confirmation ----------
def is_venue_confirmation_task(title: str) -> bool:
    lower = (title or "").lower()
    return "venue" in lower and "confirm" in lower


def _venue_tasks(event: "Event") -> list["SOPTask"]:
    return [t for c in event.checklists for t in c.tasks if is_venue_confirmation_task(t.title)]


def complete_venue_confirmation_tasks(s: "Session", event: "Event", user: "User", venue_name: str) -> int:
    now = datetime.utcnow()
    count = 0
    for task in _venue_tasks(event):
        if task.status == "DONE":
            continue
        previous = task.status
        task.status = "DONE"
        task.completed_at = now
        task.updated_at = now
        log_audit(
            s,
            user=user,
            action="UPDATE",
            entity_type="SOPTask",
            entity_id=task.id,
            entity_name=task.title,
            changes={"status": {"from": previous, "to": "DONE"}, "reason": f'Venue partner "{venue_name}" confirmed'},
        )
        count += 1
    return count


def reset_venue_confirmation_tasks(s: "Session", event: "Event", user: "User", reason: str) -> int:
    now = datetime.utcnow()
    count = 0
    for task in _venue_tasks(event):
        if task.status != "DONE":
            continue
        task.status = "TODO"
        task.completed_at = None
        task.updated_at = now
        log_audit(
            s,
            user=user,
            action="UPDATE",
            entity_type="SOPTask",
            entity_id=task.id,
            entity_name=task.title,
            changes={"status": {"from": "DONE", "to": "TODO"}, "reason": reason},
        )
        count += 1
    return count


def validate_venue_link_patch(payload: dict) -> list[str]:
    errors = []
    status = payload.get("status")
    if status is not None and status not in VENUE_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(VENUE_STATUSES)}")
    priority = payload.get("priority")
    if priority is not None and priority not in PRIORITIES:
        errors.append(f"Invalid priority. Must be one of: {', '.join(PRIORITIES)}")
    try:
        parse_decimal(payload.get("cost"))
    except ValueError:
        errors.append("Invalid cost")
    try:
        parse_datetime(payload.get("confirmationDate"))
    except ValueError:
        errors.append("Invalid confirmationDate")
    return errors


def _link_snapshot(link: "EventVenuePartner") -> dict[str, Any]:
    return {
        "status": link.status,
        "priority": link.priority,
        "cost": str(link.cost) if link.cost is not None else None,
        "notes": link.notes,
        "confirmationDate": iso(link.confirmation_date),
    }


def update_venue_link(
    s: "Session",
    event: "Event",
    link: "EventVenuePartner",
    payload: dict,
    user: "User",
    *,
    force: bool = False,
) -> bool:
    """
    Apply a link PATCH keeping at most one CONFIRMED link per event.
    Raises VenueConflict when another link is confirmed and force is off; with force that link
    drops back to PENDING. Returns True when this call confirmed the venue.
    """
    from app.meetup.modules.venues.models import EventVenuePartner

    status = payload.get("status")
    name = link.venue_partner.name
    was_confirmed = link.status == "CONFIRMED"
    confirming = status == "CONFIRMED" and not was_confirmed
    unconfirming = bool(status) and status != "CONFIRMED" and was_confirmed
    now = datetime.utcnow()

    if confirming:
        existing = (
            s.query(EventVenuePartner)
            .filter(
                EventVenuePartner.event_id == event.id,
                EventVenuePartner.status == "CONFIRMED",
                EventVenuePartner.id != link.id,
            )
            .first()
        )
        if existing is not None:
            if not force:
                raise VenueConflict(existing)
            existing.status = "PENDING"
            existing.confirmation_date = None
            existing.updated_at = now
            log_audit(
                s,
                user=user,
                action="UPDATE",
                entity_type="EventVenuePartner",
                entity_id=existing.id,
                entity_name=existing.venue_partner.name,
                changes={
                    "status": {"from": "CONFIRMED", "to": "PENDING"},
                    "reason": f'Replaced by "{name}" as confirmed venue',
                },
            )

    before = _link_snapshot(link)

    if status is not None:
        link.status = status
    if payload.get("priority") is not None:
        link.priority = payload["priority"]
    if "cost" in payload:
        link.cost = parse_decimal(payload.get("cost"))
    if "notes" in payload:
        link.notes = clean_str(payload.get("notes"))
    if "confirmationDate" in payload:
        link.confirmation_date = parse_datetime(payload.get("confirmationDate"))
    elif confirming:
        link.confirmation_date = now
    elif unconfirming:
        link.confirmation_date = None
    link.updated_at = now

    if confirming:
        event.venue = name
        event.updated_at = now
        complete_venue_confirmation_tasks(s, event, user, name)
    elif unconfirming:
        if event.venue == name:
            event.venue = None
            event.updated_at = now
        reset_venue_confirmation_tasks(s, event, user, f'Venue partner "{name}" status changed to {status}')

    changes = diff_changes(before, _link_snapshot(link))
    if changes:
        log_audit(
            s,
            user=user,
            action="UPDATE",
            entity_type="EventVenuePartner",
            entity_id=link.id,
            entity_name=name,
            changes=changes,
        )
    return confirming
