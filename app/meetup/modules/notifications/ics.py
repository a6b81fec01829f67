"""
Minimal RFC 5545 calendar file for event reminders.
"""
from __future__ import annotations

import secrets
import time
from datetime import datetime, timedelta

DEFAULT_DURATION = timedelta(hours=2)


def format_ics_date(value: datetime) -> str:
    """Naive datetimes are treated as UTC."""
    return value.strftime("%Y%m%dT%H%M%SZ")


def escape_ics(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def _uid() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}@meetup-manager"


def generate_ics(
    title: str,
    start: datetime,
    *,
    end: datetime | None = None,
    description: str | None = None,
    location: str | None = None,
    url: str | None = None,
) -> str:
    end = end or (start + DEFAULT_DURATION)
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Meetup Manager//Event//EN",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{_uid()}",
        f"DTSTAMP:{format_ics_date(datetime.utcnow())}",
        f"DTSTART:{format_ics_date(start)}",
        f"DTEND:{format_ics_date(end)}",
        f"SUMMARY:{escape_ics(title)}",
    ]
    if description:
        lines.append(f"DESCRIPTION:{escape_ics(description)}")
    if location:
        lines.append(f"LOCATION:{escape_ics(location)}")
    if url:
        lines.append(f"URL:{escape_ics(url)}")
    lines += ["END:VEVENT", "END:VCALENDAR"]
    return "\r\n".join(lines)
