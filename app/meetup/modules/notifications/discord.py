"""
Discord bot messages over the REST API (no gateway connection).
Every helper returns False when no bot token is available, and never raises.
"""
from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from flask import current_app

logger = logging.getLogger(__name__)

DISCORD_API = "https://discord.com/api/v10"

COLOR_BLURPLE = 0x5865F2
COLOR_YELLOW = 0xFEE75C
COLOR_RED = 0xED4245
COLOR_GREEN = 0x57F287

MAX_FIELDS = 10


@dataclass(frozen=True)
class TaskNotice:
    title: str
    deadline: datetime | None
    event_title: str
    person_name: str  # assignee for assignments, owner for reminders


def _bot_token(custom: str | None = None) -> str | None:
    token = custom if custom is not None else current_app.config.get("DISCORD_BOT_TOKEN")
    token = (token or "").strip()
    return token or None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _fmt_date(value: datetime | None, *, full: bool = False) -> str:
    if value is None:
        return "No deadline"
    return value.strftime("%A, %B %d, %Y" if full else "%b %d, %Y")


def _post(channel_id: str, body: dict[str, Any], token: str, timeout_seconds: int = 15) -> bool:
    url = f"{DISCORD_API}/channels/{channel_id}/messages"
    req = urllib.request.Request(url, data=json.dumps(body).encode("utf-8"), method="POST")
    req.add_header("Content-Type", "application/json")
    req.add_header("Authorization", f"Bot {token}")
    try:
        with urllib.request.urlopen(req, timeout=timeout_seconds) as resp:
            resp.read()
        return True
    except urllib.error.HTTPError as e:
        try:
            detail = e.read().decode("utf-8", errors="ignore")
        except OSError:
            detail = ""
        logger.error("Discord API error %s: %s", e.code, detail[:300])
        return False
    except (urllib.error.URLError, OSError) as e:
        logger.error("Discord request failed: %s", e)
        return False


def send_discord_message(channel_id: str, content: str, bot_token: str | None = None) -> bool:
    token = _bot_token(bot_token)
    if not token:
        return False
    return _post(channel_id, {"content": content}, token)


def send_discord_embed(
    channel_id: str,
    *,
    title: str,
    description: str | None = None,
    color: int | None = None,
    fields: list[dict[str, Any]] | None = None,
    timestamp: str | None = None,
    bot_token: str | None = None,
) -> bool:
    token = _bot_token(bot_token)
    if not token:
        return False
    embed: dict[str, Any] = {"title": title}
    if description:
        embed["description"] = description
    if color is not None:
        embed["color"] = color
    if fields:
        embed["fields"] = fields
    if timestamp:
        embed["timestamp"] = timestamp
    return _post(channel_id, {"embeds": [embed]}, token)


def notify_task_assigned(task: TaskNotice, channel_id: str, bot_token: str | None = None) -> bool:
    if not _bot_token(bot_token):
        return False
    return send_discord_embed(
        channel_id,
        title="Task Assigned",
        description=f"{task.person_name} has been assigned a new task for **{task.event_title}**.",
        color=COLOR_BLURPLE,
        fields=[
            {"name": "Task", "value": task.title, "inline": False},
            {"name": "Deadline", "value": _fmt_date(task.deadline), "inline": True},
        ],
        timestamp=_now_iso(),
        bot_token=bot_token,
    )


def _task_fields(tasks: list[TaskNotice], date_label: str, more_label: str) -> list[dict[str, Any]]:
    fields = [
        {
            "name": t.title,
            "value": f"Event: {t.event_title}\nOwner: {t.person_name}\n{date_label}: {_fmt_date(t.deadline)}",
            "inline": False,
        }
        for t in tasks[:MAX_FIELDS]
    ]
    if len(tasks) > MAX_FIELDS:
        fields.append({"name": "...", "value": f"{len(tasks) - MAX_FIELDS} {more_label}", "inline": False})
    return fields


def notify_deadline_approaching(tasks: list[TaskNotice], channel_id: str, bot_token: str | None = None) -> bool:
    if not _bot_token(bot_token):
        return False
    if not tasks:
        return True
    return send_discord_embed(
        channel_id,
        title="Deadlines Approaching",
        description=f"**{len(tasks)}** task(s) have deadlines within the next 3 days.",
        color=COLOR_YELLOW,
        fields=_task_fields(tasks, "Deadline", "more task(s)"),
        timestamp=_now_iso(),
        bot_token=bot_token,
    )


def notify_overdue_tasks(tasks: list[TaskNotice], channel_id: str, bot_token: str | None = None) -> bool:
    if not _bot_token(bot_token):
        return False
    if not tasks:
        return True
    return send_discord_embed(
        channel_id,
        title="Overdue Tasks",
        description=f"**{len(tasks)}** task(s) are past their deadline.",
        color=COLOR_RED,
        fields=_task_fields(tasks, "Overdue since", "more overdue task(s)"),
        timestamp=_now_iso(),
        bot_token=bot_token,
    )


def notify_event_created(
    title: str,
    date: datetime,
    venue: str | None,
    channel_id: str,
    bot_token: str | None = None,
) -> bool:
    if not _bot_token(bot_token):
        return False
    fields = [{"name": "Date", "value": _fmt_date(date, full=True), "inline": True}]
    if venue:
        fields.append({"name": "Venue", "value": venue, "inline": True})
    return send_discord_embed(
        channel_id,
        title="New Event Created",
        description=title,
        color=COLOR_GREEN,
        fields=fields,
        timestamp=_now_iso(),
        bot_token=bot_token,
    )


def latest_config(s):
    from app.meetup.modules.notifications.models import DiscordConfig

    return s.query(DiscordConfig).order_by(DiscordConfig.created_at.desc(), DiscordConfig.id.desc()).first()


def resolve_token(cfg) -> str | None:
    """Stored bot token, else DISCORD_BOT_TOKEN from the environment."""
    if cfg is not None and cfg.bot_token and cfg.bot_token.strip():
        return cfg.bot_token.strip()
    return _bot_token()
