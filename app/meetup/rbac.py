from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import current_app, g, jsonify, request
from sqlalchemy.orm import Session

from app.meetup.constants import EVENT_ROLE_LEVELS, GLOBAL_ROLE_LEVELS
from app.meetup.models import User

ROLE_LABELS = {
    "VIEWER": "Viewer",
    "VOLUNTEER": "Volunteer",
    "EVENT_LEAD": "Event Lead",
    "ADMIN": "Admin",
    "SUPER_ADMIN": "Super Admin",
}

EVENT_ACTIONS = ("read", "create", "update", "delete", "manage")


def has_minimum_role(role: str | None, minimum: str) -> bool:
    return GLOBAL_ROLE_LEVELS.get(role or "", -1) >= GLOBAL_ROLE_LEVELS[minimum]


def has_minimum_event_role(role: str | None, minimum: str) -> bool:
    return EVENT_ROLE_LEVELS.get(role or "", -1) >= EVENT_ROLE_LEVELS[minimum]


def get_user_event_role(s: Session, user_id: int, event_id: int) -> str | None:
    from app.meetup.modules.events.models import EventMember

    member = (
        s.query(EventMember)
        .filter(EventMember.event_id == event_id, EventMember.user_id == user_id)
        .one_or_none()
    )
    return member.event_role if member else None


def is_linked_volunteer(s: Session, user_id: int, event_id: int) -> bool:
    from app.meetup.modules.volunteers.models import EventVolunteer, Volunteer

    return (
        s.query(EventVolunteer.id)
        .join(Volunteer, Volunteer.id == EventVolunteer.volunteer_id)
        .filter(EventVolunteer.event_id == event_id, Volunteer.user_id == user_id)
        .first()
        is not None
    )


def can_user_access_event(s: Session, user: User | None, event_id: int, action: str) -> bool:
    """
    Two-level check: global role first, then the user's role on this event.
    ADMIN+ can do anything; VIEWER can only read; without a membership only linked
    volunteers and EVENT_LEAD+ may read.
    """
    if action not in EVENT_ACTIONS:
        raise ValueError(f"Unknown event action: {action}")
    if not user or not user.is_active:
        return False

    role = user.global_role
    if has_minimum_role(role, "ADMIN"):
        return True
    if role == "VIEWER":
        return action == "read"

    event_role = get_user_event_role(s, user.id, event_id)
    if event_role is None:
        if action != "read":
            return False
        if role == "VOLUNTEER":
            return is_linked_volunteer(s, user.id, event_id)
        return has_minimum_role(role, "EVENT_LEAD")

    if action == "read":
        return True
    if action in ("create", "update"):
        return has_minimum_event_role(event_role, "ORGANIZER")
    return has_minimum_event_role(event_role, "LEAD")


def _unauthorized():
    return jsonify({"error": "Unauthorized"}), 401


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            return _unauthorized()
        return fn(*args, **kwargs)

    return wrapped


def require_role(minimum: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                return _unauthorized()
            if not has_minimum_role(user.global_role, minimum):
                current_app.logger.warning(
                    "Forbidden: path=%s role=%s required=%s request_id=%s",
                    request.path,
                    user.global_role,
                    minimum,
                    getattr(g, "request_id", None),
                )
                return jsonify({"error": f"Forbidden: {ROLE_LABELS[minimum]} role required"}), 403
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def require_event_access(action: str, arg: str = "event_id") -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Guard a view whose URL carries the event id in `arg`."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            from app.meetup.db import db_session

            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                return _unauthorized()
            if not can_user_access_event(db_session(), user, kwargs[arg], action):
                return jsonify({"error": "Forbidden"}), 403
            return fn(*args, **kwargs)

        return wrapped

    return decorator
