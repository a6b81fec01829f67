from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from flask import abort, request


def parse_datetime(raw) -> datetime | None:
    """
    Parse an ISO-8601 date or datetime into a naive UTC datetime.
    Raises ValueError on malformed input; empty input gives None.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        value = raw
    else:
        s = str(raw).strip()
        if not s:
            return None
        if s.endswith(("Z", "z")):
            s = s[:-1] + "+00:00"
        value = datetime.fromisoformat(s)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds") + "Z"


def parse_decimal(raw) -> Decimal | None:
    if raw is None or raw == "":
        return None
    try:
        return Decimal(str(raw))
    except InvalidOperation as e:
        raise ValueError(f"Invalid number: {raw}") from e


def clean_str(raw) -> str | None:
    """Trim a payload string; empty or non-string becomes None."""
    if not isinstance(raw, str):
        return None
    return raw.strip() or None


def parse_int(raw) -> int | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ValueError("Expected an integer")
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Expected an integer, got {raw!r}") from e


def json_body() -> dict:
    """Request JSON as a dict; a missing or unparseable body is {}, any other shape aborts 400."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        abort(400, description="Request body must be a JSON object")
    return payload
