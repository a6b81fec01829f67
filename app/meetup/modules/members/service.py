from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.meetup.audit import log_audit
from app.meetup.constants import ASSIGNABLE_ROLES, EVENT_ROLE_LEVELS
from app.meetup.db import unfiltered_users
from app.meetup.utils import clean_str, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.meetup.models import User


def normalize_email(raw: Any) -> str | None:
    value = clean_str(raw)
    return value.lower() if value else None


def resolve_user_ref(s: "Session", raw: Any, label: str = "User") -> "User | None":
    """
    Active user for an id taken from a payload; None when the payload clears it.
    Raises ValueError for a malformed or unknown id.
    """
    from app.meetup.models import User

    user_id = parse_int(raw)
    if user_id is None:
        return None
    user = s.get(User, user_id)
    if user is None or not user.is_active:
        raise ValueError(f"{label} not found")
    return user


def find_any_user_by_email(s: "Session", email: str) -> "User | None":
    """Includes soft-deleted users."""
    from app.meetup.models import User

    return unfiltered_users(s).filter(User.email == email).one_or_none()


def coerce_role(raw: Any) -> str:
    return raw if raw in ASSIGNABLE_ROLES else "VIEWER"


# ---------- Lists ----------
def list_members(s: "Session") -> list["User"]:
    from app.meetup.models import User

    return s.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def list_assignable_members(s: "Session") -> list["User"]:
    from app.meetup.models import User

    return s.query(User).filter(User.global_role != "SUPER_ADMIN").order_by(User.name.asc(), User.email.asc()).all()


# ---------- Invite / role change ----------
def invite_member(s: "Session", *, email: str, name: Any, role: str, actor: "User", existing: "User | None" = None) -> "User":
    """Create the user, or reactivate a soft-deleted one with the same email."""
    from app.meetup.models import User

    now = datetime.utcnow()
    if existing is not None:
        existing.deleted_at = None
        existing.global_role = role
        existing.name = clean_str(name) or existing.name
        existing.updated_at = now
        user = existing
        changes = {"globalRole": role, "reactivated": True}
    else:
        user = User(email=email, name=clean_str(name), global_role=role, created_at=now, updated_at=now)
        s.add(user)
        changes = {"globalRole": role}
    s.flush()

    log_audit(
        s,
        user=actor,
        action="CREATE",
        entity_type="User",
        entity_id=user.id,
        entity_name=user.display_name,
        changes=changes,
    )
    return user


def change_member_role(s: "Session", target: "User", role: str, actor: "User") -> dict:
    previous = target.global_role
    target.global_role = role
    target.updated_at = datetime.utcnow()
    changes = {"globalRole": {"from": previous, "to": role}}
    log_audit(
        s,
        user=actor,
        action="UPDATE",
        entity_type="User",
        entity_id=target.id,
        entity_name=target.display_name,
        changes=changes,
    )
    return changes


# ---------- Soft delete ----------
def owned_record_counts(s: "Session", user_id: int) -> dict[str, int]:
    """Rows that point at the user and would be orphaned by a deletion."""
    from app.meetup.modules.checklists.models import SOPTask
    from app.meetup.modules.events.models import Event
    from app.meetup.modules.speakers.models import EventSpeaker
    from app.meetup.modules.venues.models import EventVenuePartner
    from app.meetup.modules.volunteers.models import EventVolunteer

    return {
        "eventsCreated": s.query(Event).filter(Event.created_by_user_id == user_id).count(),
        "tasksOwned": s.query(SOPTask).filter(SOPTask.owner_id == user_id).count(),
        "tasksAssigned": s.query(SOPTask).filter(SOPTask.assignee_id == user_id).count(),
        "speakerLinks": s.query(EventSpeaker).filter(EventSpeaker.owner_id == user_id).count(),
        "volunteerLinks": s.query(EventVolunteer).filter(EventVolunteer.owner_id == user_id).count(),
        "venueLinks": s.query(EventVenuePartner).filter(EventVenuePartner.owner_id == user_id).count(),
    }


def _merge_memberships(s: "Session", target: "User", successor: "User") -> int:
    """Move the target's event memberships to the successor; on overlap keep the higher event role."""
    from app.meetup.modules.events.models import EventMember

    theirs = {m.event_id: m for m in s.query(EventMember).filter(EventMember.user_id == successor.id).all()}
    moved = 0
    for membership in s.query(EventMember).filter(EventMember.user_id == target.id).all():
        kept = theirs.get(membership.event_id)
        if kept is None:
            membership.user_id = successor.id
            moved += 1
            continue
        if EVENT_ROLE_LEVELS[membership.event_role] > EVENT_ROLE_LEVELS[kept.event_role]:
            kept.event_role = membership.event_role
        s.delete(membership)
    return moved


def soft_delete_member(
    s: "Session",
    target: "User",
    actor: "User",
    *,
    successor: "User | None" = None,
    owned_counts: dict[str, int] | None = None,
) -> None:
    """
    Deactivate the user inside the caller's transaction.
    With a successor, every owned row and event membership moves to them first.
    """
    from app.meetup.models import RefreshToken
    from app.meetup.modules.checklists.models import SOPTask
    from app.meetup.modules.events.models import Event
    from app.meetup.modules.speakers.models import EventSpeaker
    from app.meetup.modules.venues.models import EventVenuePartner
    from app.meetup.modules.volunteers.models import EventVolunteer

    if successor is not None:
        moves = (
            (Event, Event.created_by_user_id, "created_by_user_id"),
            (SOPTask, SOPTask.owner_id, "owner_id"),
            (SOPTask, SOPTask.assignee_id, "assignee_id"),
            (EventSpeaker, EventSpeaker.owner_id, "owner_id"),
            (EventVolunteer, EventVolunteer.owner_id, "owner_id"),
            (EventVenuePartner, EventVenuePartner.owner_id, "owner_id"),
        )
        for model, column, attr in moves:
            s.query(model).filter(column == target.id).update({attr: successor.id}, synchronize_session=False)
        _merge_memberships(s, target, successor)

    s.query(RefreshToken).filter(RefreshToken.user_id == target.id).delete(synchronize_session=False)
    now = datetime.utcnow()
    target.deleted_at = now
    target.updated_at = now

    changes: dict[str, Any] = {"deletedAt": now.isoformat(timespec="seconds") + "Z"}
    if successor is not None:
        changes["reassignedTo"] = {"id": successor.id, "name": successor.display_name}
    if owned_counts:
        changes["ownedCounts"] = owned_counts
    log_audit(
        s,
        user=actor,
        action="DELETE",
        entity_type="User",
        entity_id=target.id,
        entity_name=target.display_name,
        changes=changes,
    )
