from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.meetup.audit import diff_changes, log_audit
from app.meetup.utils import clean_str, iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.meetup.models import User
    from app.meetup.modules.speakers.models import Speaker


# payload key -> attribute
FIELDS = {
    "name": "name",
    "email": "email",
    "bio": "bio",
    "topic": "topic",
    "photoUrl": "photo_url",
}


def speaker_row(speaker: "Speaker") -> dict:
    return {
        **speaker.to_dict(),
        "eventCount": len(speaker.events),
        "statusCounts": dict(Counter(link.status for link in speaker.events)),
    }


def speaker_detail(speaker: "Speaker") -> dict:
    return {
        **speaker.to_dict(),
        "eventCount": len(speaker.events),
        "events": [
            {
                "id": link.id,
                "status": link.status,
                "notes": link.notes,
                "event": {
                    "id": link.event.id,
                    "title": link.event.title,
                    "date": iso(link.event.date),
                    "status": link.event.status,
                },
            }
            for link in speaker.events
        ],
    }


def validate_speaker_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if (not partial or "name" in payload) and not clean_str(payload.get("name")):
        errors.append("Name is required" if not partial else "Name cannot be empty")
    return errors


def _snapshot(speaker: "Speaker") -> dict[str, Any]:
    return {key: getattr(speaker, attr) for key, attr in FIELDS.items()}


def create_speaker(s: "Session", payload: dict, user: "User") -> "Speaker":
    from app.meetup.modules.speakers.models import Speaker

    now = datetime.utcnow()
    speaker = Speaker(created_at=now, updated_at=now)
    for key, attr in FIELDS.items():
        setattr(speaker, attr, clean_str(payload.get(key)))
    s.add(speaker)
    s.flush()

    log_audit(
        s,
        user=user,
        action="CREATE",
        entity_type="Speaker",
        entity_id=speaker.id,
        entity_name=speaker.name,
        changes={"name": speaker.name, "email": speaker.email, "topic": speaker.topic},
    )
    return speaker


def update_speaker(s: "Session", speaker: "Speaker", payload: dict, user: "User") -> dict:
    before = _snapshot(speaker)
    for key, attr in FIELDS.items():
        if key in payload:
            setattr(speaker, attr, clean_str(payload.get(key)))
    speaker.updated_at = datetime.utcnow()

    changes = diff_changes(before, _snapshot(speaker))
    if changes:
        log_audit(
            s,
            user=user,
            action="UPDATE",
            entity_type="Speaker",
            entity_id=speaker.id,
            entity_name=speaker.name,
            changes=changes,
        )
    return changes


def delete_speaker(s: "Session", speaker: "Speaker", user: "User") -> None:
    log_audit(
        s,
        user=user,
        action="DELETE",
        entity_type="Speaker",
        entity_id=speaker.id,
        entity_name=speaker.name,
        changes={"name": speaker.name},
    )
    s.delete(speaker)
