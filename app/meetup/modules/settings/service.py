from __future__ import annotations

import base64
import binascii
import re
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from app.meetup.audit import log_audit

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.meetup.models import User
    from app.meetup.modules.settings.models import AppSetting


PUBLIC_KEYS = (
    "volunteer_promotion_threshold",
    "meetup_name",
    "min_volunteer_tasks",
    "min_event_duration",
    "logo_light",
    "logo_dark",
)
LOGO_KEYS = ("logo_light", "logo_dark")
MAX_LOGO_SIZE = 300_000  # characters of data URI, roughly 200KB of image
DEFAULT_MEETUP_NAME = "Event Manager"

DEFAULT_SETTINGS = {
    "volunteer_promotion_threshold": "5",
    "meetup_name": "Meetup Manager",
    "min_volunteer_tasks": "7",
    "min_event_duration": "4",
}

_DATA_URI_RE = re.compile(r"^data:(image/[a-z+.-]+);base64,(.+)$", re.IGNORECASE | re.DOTALL)


def get_setting_values(s: "Session", keys: Iterable[str] = PUBLIC_KEYS) -> dict[str, str]:
    from app.meetup.modules.settings.models import AppSetting

    rows = s.query(AppSetting).filter(AppSetting.key.in_(tuple(keys))).all()
    return {r.key: r.value for r in rows}


def validate_setting_payload(payload: dict) -> list[str]:
    errors = []
    key = payload.get("key")
    value = payload.get("value")
    if not key or not isinstance(key, str) or not isinstance(value, str):
        errors.append("key and value are required strings")
        return errors
    if key not in PUBLIC_KEYS:
        errors.append("Unknown setting key")
    elif key in LOGO_KEYS and len(value) > MAX_LOGO_SIZE:
        errors.append("Logo image is too large. Please use an image under 200KB.")
    return errors


def upsert_setting(s: "Session", key: str, value: str, user: "User | None") -> "AppSetting":
    from app.meetup.modules.settings.models import AppSetting

    now = datetime.utcnow()
    setting = s.query(AppSetting).filter(AppSetting.key == key).one_or_none()
    if setting is None:
        setting = AppSetting(key=key, value=value, created_at=now, updated_at=now)
        s.add(setting)
    else:
        setting.value = value
        setting.updated_at = now
    s.flush()

    log_audit(
        s,
        user=user,
        action="UPDATE",
        entity_type="AppSetting",
        entity_id=key,
        entity_name=key,
        changes={"value": "(logo image updated)"} if key.startswith("logo_") else {"value": value},
    )
    return setting


def seed_default_settings(s: "Session") -> int:
    """Insert missing defaults; existing values are left alone. Returns rows created."""
    from app.meetup.modules.settings.models import AppSetting

    existing = {k for (k,) in s.query(AppSetting.key).all()}
    created = 0
    for key, value in DEFAULT_SETTINGS.items():
        if key in existing:
            continue
        s.add(AppSetting(key=key, value=value))
        created += 1
    return created


def decode_data_uri(data_uri: str | None) -> tuple[str, bytes] | None:
    """(content_type, bytes) for a base64 image data URI, else None."""
    if not data_uri:
        return None
    m = _DATA_URI_RE.match(data_uri.strip())
    if not m:
        return None
    try:
        data = base64.b64decode(m.group(2))
    except (binascii.Error, ValueError):
        return None
    return m.group(1).lower(), data
