from __future__ import annotations

import hmac
import math
import re
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request

from app.meetup.db import db_session
from app.meetup.modules.notifications import discord
from app.meetup.modules.notifications.mailer import is_email_configured, render_and_send, verify_connection
from app.meetup.modules.notifications.models import DiscordConfig, EmailLog
from app.meetup.modules.notifications.triggers import (
    send_event_reminder_email,
    send_task_due_soon_email,
    send_task_overdue_email,
    send_weekly_digest_email,
)
from app.meetup.rbac import require_role
from app.meetup.utils import clean_str, json_body, parse_int

bp = Blueprint("notifications", __name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
EMAIL_LOG_DEFAULT_LIMIT = 50
EMAIL_LOG_MAX_LIMIT = 100
EVENT_REMINDER_WINDOW = timedelta(days=2)
DEADLINE_WINDOW = timedelta(days=3)
DIGEST_BATCH_SIZE = 10
# overdue task emails cc the event leads from this many days on
OVERDUE_ESCALATION_DAYS = 3


# ---------- Email ----------
@bp.get("/email/test")
@require_role("ADMIN")
def email_status():
    if not is_email_configured():
        return jsonify({"configured": False, "connected": False, "smtpHost": None, "smtpUser": None})

    ok, error = verify_connection()
    user = current_app.config.get("SMTP_USER") or ""
    return jsonify(
        {
            "configured": True,
            "connected": ok,
            "error": error,
            "smtpHost": current_app.config.get("SMTP_HOST"),
            "smtpUser": f"{user[:3]}***" if user else None,
        }
    )


@bp.post("/email/test")
@require_role("ADMIN")
def email_test():
    if not is_email_configured():
        return (
            jsonify(
                {
                    "error": "SMTP is not configured. Please set SMTP_HOST, SMTP_USER, SMTP_PASS in your .env file.",
                    "configured": False,
                }
            ),
            400,
        )

    ok, error = verify_connection()
    if not ok:
        return jsonify({"error": f"SMTP connection failed: {error}", "configured": True, "connected": False}), 500

    payload = json_body()
    recipient = clean_str(payload.get("email")) or g.current_user.email
    if not recipient:
        return jsonify({"error": "No email address provided"}), 400
    if not EMAIL_RE.match(recipient):
        return jsonify({"error": "Invalid email address format"}), 400

    result = render_and_send(
        recipient,
        "Test Email - Meetup Manager",
        "test",
        {"email": recipient, "sent_at": datetime.utcnow().isoformat() + "Z"},
    )
    if not result.success:
        return (
            jsonify({"error": f"Failed to send test email: {result.error}", "configured": True, "connected": True}),
            500,
        )
    return jsonify({"success": True, "messageId": result.message_id, "sentTo": recipient})


@bp.get("/email/log")
@require_role("ADMIN")
def email_log():
    s = db_session()
    try:
        page = max(parse_int(request.args.get("page")) or 1, 1)
        limit = parse_int(request.args.get("limit")) or EMAIL_LOG_DEFAULT_LIMIT
    except ValueError:
        return jsonify({"error": "page and limit must be integers"}), 400
    limit = min(max(limit, 1), EMAIL_LOG_MAX_LIMIT)

    q = s.query(EmailLog)
    template = (request.args.get("template") or "").strip()
    status = (request.args.get("status") or "").strip()
    if template:
        q = q.filter(EmailLog.template == template)
    if status:
        q = q.filter(EmailLog.status == status)

    total = q.count()
    logs = (
        q.order_by(EmailLog.created_at.desc(), EmailLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return jsonify(
        {
            "logs": [log.to_dict() for log in logs],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit),
            },
        }
    )


# ---------- Discord ----------
@bp.get("/discord/config")
@require_role("ADMIN")
def discord_config_get():
    cfg = discord.latest_config(db_session())
    if cfg is None:
        return jsonify({"botToken": None, "guildId": None, "channelId": None, "reminderEnabled": False})
    return jsonify(cfg.to_dict())


@bp.post("/discord/config")
@require_role("ADMIN")
def discord_config_save():
    s = db_session()
    payload = json_body()

    cfg = discord.latest_config(s)
    now = datetime.utcnow()
    if cfg is None:
        cfg = DiscordConfig(reminder_enabled=False, created_at=now)
        s.add(cfg)

    if "botToken" in payload:
        cfg.bot_token = clean_str(payload.get("botToken"))
    if "guildId" in payload:
        cfg.guild_id = clean_str(payload.get("guildId"))
    if "channelId" in payload:
        cfg.channel_id = clean_str(payload.get("channelId"))
    if "reminderEnabled" in payload:
        cfg.reminder_enabled = bool(payload.get("reminderEnabled"))
    cfg.updated_at = now

    s.commit()
    current_app.logger.info("Discord config saved by user=%s", g.current_user.id)
    return jsonify(cfg.to_dict())


@bp.post("/discord/test")
@require_role("ADMIN")
def discord_test():
    cfg = discord.latest_config(db_session())
    if cfg is None or not cfg.channel_id:
        return jsonify({"error": "Discord channel not configured. Save a channel ID first."}), 400
    token = discord.resolve_token(cfg)
    if not token:
        return (
            jsonify({"error": "No bot token configured. Add a bot token in settings or set DISCORD_BOT_TOKEN."}),
            400,
        )

    if not discord.send_discord_message(cfg.channel_id, "Meetup Manager bot is connected!", token):
        return (
            jsonify({"error": "Failed to send test message. Check your bot token and channel permissions."}),
            500,
        )
    return jsonify({"success": True})


# ---------- Cron ----------
def _presented_secret() -> str | None:
    header = request.headers.get("Authorization") or ""
    if header:
        return re.sub(r"^Bearer\s+", "", header, flags=re.IGNORECASE)
    return request.args.get("secret")


def _check_cron_secret(*, required: bool):
    """Error response, or None when the caller may run the job."""
    expected = current_app.config.get("CRON_SECRET") or ""
    if not expected:
        if not required:
            return None
        current_app.logger.error("CRON_SECRET environment variable is not set")
        return jsonify({"error": "Server misconfiguration"}), 500
    presented = _presented_secret() or ""
    if not hmac.compare_digest(presented.encode(), expected.encode()):
        return jsonify({"error": "Unauthorized"}), 401
    return None


@bp.get("/cron/event-reminders")
def cron_event_reminders():
    err = _check_cron_secret(required=True)
    if err:
        return err
    if not is_email_configured():
        return jsonify({"skipped": True, "reason": "SMTP not configured"})

    from app.meetup.modules.events.models import Event

    s = db_session()
    now = datetime.utcnow()
    events = (
        s.query(Event)
        .filter(Event.date >= now, Event.date <= now + EVENT_REMINDER_WINDOW, Event.status == "SCHEDULED")
        .order_by(Event.date.asc())
        .all()
    )
    for event in events:
        send_event_reminder_email(s, event.id)

    current_app.logger.info("cron event-reminders: %s event(s)", len(events))
    return jsonify({"eventsFound": len(events), "emailsSent": len(events), "timestamp": now.isoformat() + "Z"})


@bp.get("/cron/reminders")
def cron_reminders():
    err = _check_cron_secret(required=False)
    if err:
        return err

    from app.meetup.modules.checklists.models import SOPTask

    s = db_session()
    now = datetime.utcnow()
    tasks = (
        s.query(SOPTask)
        .filter(SOPTask.status != "DONE", SOPTask.deadline.is_not(None))
        .order_by(SOPTask.deadline.asc())
        .all()
    )

    approaching: list[SOPTask] = []
    overdue: list[SOPTask] = []
    for task in tasks:
        if task.deadline < now:
            overdue.append(task)
        elif task.deadline <= now + DEADLINE_WINDOW:
            approaching.append(task)

    def _notice(task: SOPTask) -> discord.TaskNotice:
        return discord.TaskNotice(
            title=task.title,
            deadline=task.deadline,
            event_title=task.checklist.event.title,
            person_name=task.owner.name if task.owner and task.owner.name else "Unassigned",
        )

    summary = {"approachingSent": False, "overdueSent": False}
    cfg = discord.latest_config(s)
    if cfg is not None and cfg.reminder_enabled and cfg.channel_id:
        token = discord.resolve_token(cfg)
        if token:
            if approaching:
                summary["approachingSent"] = discord.notify_deadline_approaching(
                    [_notice(t) for t in approaching], cfg.channel_id, token
                )
            if overdue:
                summary["overdueSent"] = discord.notify_overdue_tasks(
                    [_notice(t) for t in overdue], cfg.channel_id, token
                )

    emails = 0
    if is_email_configured():
        for task in approaching:
            send_task_due_soon_email(s, task.id, max(math.ceil((task.deadline - now) / timedelta(days=1)), 0))
            emails += 1
        for task in overdue:
            days = (now - task.deadline).days
            send_task_overdue_email(s, task.id, days, cc_event_lead=days >= OVERDUE_ESCALATION_DAYS)
            emails += 1

    current_app.logger.info("cron reminders: approaching=%s overdue=%s", len(approaching), len(overdue))
    return jsonify({"approaching": len(approaching), "overdue": len(overdue), **summary, "emailsSent": emails})


@bp.get("/cron/weekly-digest")
def cron_weekly_digest():
    err = _check_cron_secret(required=True)
    if err:
        return err
    if not is_email_configured():
        return jsonify({"skipped": True, "reason": "SMTP not configured"})

    from app.meetup.models import User

    s = db_session()
    user_ids = [
        uid
        for (uid,) in s.query(User.id).filter(User.global_role != "VIEWER").order_by(User.id.asc()).all()
    ]
    sent = 0
    for start in range(0, len(user_ids), DIGEST_BATCH_SIZE):
        for uid in user_ids[start : start + DIGEST_BATCH_SIZE]:
            send_weekly_digest_email(s, uid)
            sent += 1
        # release the batch's identity map before the next one
        s.expunge_all()

    current_app.logger.info("cron weekly-digest: %s user(s)", len(user_ids))
    return jsonify(
        {"usersProcessed": len(user_ids), "emailsSent": sent, "timestamp": datetime.utcnow().isoformat() + "Z"}
    )
