from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.meetup.audit import diff_changes, log_audit
from app.meetup.modules.members.service import find_any_user_by_email, normalize_email
from app.meetup.utils import clean_str, iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.meetup.models import User
    from app.meetup.modules.volunteers.models import Volunteer


class EmailConflict(Exception):
    """The email is already used by a member or another volunteer."""


def volunteer_row(volunteer: "Volunteer") -> dict:
    return {**volunteer.to_dict(), "eventsCount": len(volunteer.events)}


def volunteer_detail(volunteer: "Volunteer") -> dict:
    return {
        **volunteer_row(volunteer),
        "events": [
            {
                "id": link.id,
                "assignedRole": link.assigned_role,
                "status": link.status,
                "event": {"id": link.event.id, "title": link.event.title, "date": iso(link.event.date)},
            }
            for link in volunteer.events
        ],
    }


def _snapshot(volunteer: "Volunteer") -> dict[str, Any]:
    return {
        "name": volunteer.name,
        "email": volunteer.email,
        "discordId": volunteer.discord_id,
        "role": volunteer.role,
    }


def find_volunteer_by_email(s: "Session", email: str, *, exclude_id: int | None = None) -> "Volunteer | None":
    from app.meetup.modules.volunteers.models import Volunteer

    q = s.query(Volunteer).filter(Volunteer.email == email)
    if exclude_id is not None:
        q = q.filter(Volunteer.id != exclude_id)
    return q.first()


def validate_volunteer_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial and not clean_str(payload.get("name")):
        errors.append("Name is required")
    if partial and "name" in payload and not clean_str(payload.get("name")):
        errors.append("Name cannot be empty")
    return errors


def create_volunteer(s: "Session", payload: dict, user: "User") -> "Volunteer":
    """Raises EmailConflict when another volunteer already uses the email."""
    from app.meetup.modules.volunteers.models import Volunteer

    email = normalize_email(payload.get("email"))
    if email:
        existing = find_volunteer_by_email(s, email)
        if existing is not None:
            raise EmailConflict(f'A volunteer with this email already exists: "{existing.name}"')

    now = datetime.utcnow()
    volunteer = Volunteer(
        name=payload["name"].strip(),
        email=email,
        discord_id=clean_str(payload.get("discordId")),
        role=clean_str(payload.get("role")),
        created_at=now,
        updated_at=now,
    )
    s.add(volunteer)
    s.flush()

    log_audit(
        s,
        user=user,
        action="CREATE",
        entity_type="Volunteer",
        entity_id=volunteer.id,
        entity_name=volunteer.name,
        changes=_snapshot(volunteer),
    )
    return volunteer


def update_volunteer(s: "Session", volunteer: "Volunteer", payload: dict, user: "User") -> dict:
    """
    Apply a PATCH. A changed email may not belong to any member (deactivated ones included)
    or to another volunteer; EmailConflict is raised before anything changes.
    """
    email = normalize_email(payload.get("email")) if "email" in payload else volunteer.email
    if email and email != volunteer.email:
        member = find_any_user_by_email(s, email)
        if member is not None:
            label = "a deactivated member" if not member.is_active else f'existing member "{member.display_name}"'
            raise EmailConflict(f"This email belongs to {label}. Members cannot be added as volunteers directly.")
        other = find_volunteer_by_email(s, email, exclude_id=volunteer.id)
        if other is not None:
            raise EmailConflict(f'A volunteer with this email already exists: "{other.name}"')

    before = _snapshot(volunteer)
    if "name" in payload:
        volunteer.name = payload["name"].strip()
    volunteer.email = email
    if "discordId" in payload:
        volunteer.discord_id = clean_str(payload.get("discordId"))
    if "role" in payload:
        volunteer.role = clean_str(payload.get("role"))
    volunteer.updated_at = datetime.utcnow()

    changes = diff_changes(before, _snapshot(volunteer))
    if changes:
        log_audit(
            s,
            user=user,
            action="UPDATE",
            entity_type="Volunteer",
            entity_id=volunteer.id,
            entity_name=volunteer.name,
            changes=changes,
        )
    return changes


def delete_volunteer(s: "Session", volunteer: "Volunteer", user: "User") -> None:
    log_audit(
        s,
        user=user,
        action="DELETE",
        entity_type="Volunteer",
        entity_id=volunteer.id,
        entity_name=volunteer.name,
        changes={"name": volunteer.name},
    )
    s.delete(volunteer)


def convert_to_member(s: "Session", volunteer: "Volunteer", actor: "User") -> tuple["User", bool]:
    """
    Link the volunteer to a member account with the same email, creating a VOLUNTEER user
    when none exists. A soft-deleted user is reactivated. Returns (user, linked_existing).
    """
    from app.meetup.models import User

    email = normalize_email(volunteer.email)
    now = datetime.utcnow()
    existing = find_any_user_by_email(s, email)

    if existing is not None:
        reactivated = not existing.is_active
        if reactivated:
            existing.deleted_at = None
            existing.updated_at = now
        volunteer.user = existing
        volunteer.user_id = existing.id
        volunteer.updated_at = now
        changes: dict[str, Any] = {"action": "linked_to_existing_member", "memberEmail": email}
        if reactivated:
            changes["reactivated"] = True
        log_audit(
            s,
            user=actor,
            action="UPDATE",
            entity_type="Volunteer",
            entity_id=volunteer.id,
            entity_name=volunteer.name,
            changes=changes,
        )
        return existing, True

    user = User(email=email, name=volunteer.name, global_role="VOLUNTEER", created_at=now, updated_at=now)
    s.add(user)
    s.flush()
    volunteer.user = user
    volunteer.user_id = user.id
    volunteer.updated_at = now
    log_audit(
        s,
        user=actor,
        action="CREATE",
        entity_type="User",
        entity_id=user.id,
        entity_name=user.display_name,
        changes={"convertedFromVolunteer": volunteer.name, "globalRole": "VOLUNTEER"},
    )
    return user, False
