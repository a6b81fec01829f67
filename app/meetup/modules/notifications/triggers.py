"""
High-level notification triggers.

Each trigger gathers what it needs from the database, renders one email template and
sends it. Triggers are side effects: they skip when SMTP is not configured and log,
never raise, on failure. Call them after the request's own commit.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta
from functools import wraps
from typing import Any

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.meetup.modules.notifications import discord
from app.meetup.modules.notifications.ics import generate_ics
from app.meetup.modules.notifications.mailer import Attachment, is_email_configured, render_and_send

logger = logging.getLogger(__name__)

PROMOTION_PERMISSIONS = (
    "Create and manage events",
    "Manage speakers, volunteers, and venue partners",
    "Assign and track SOP checklist tasks",
    "View all events (not just assigned ones)",
)
PROMOTION_NEXT_STEPS = (
    "Sign in with your Google account to access the full dashboard",
    "Check your assigned tasks on the dashboard",
    "Explore the event management tools",
)


def _app_url() -> str:
    return current_app.config.get("APP_URL") or "http://localhost:5000"


def _event_url(event_id: int) -> str:
    return f"{_app_url()}/events/{event_id}"


def format_date(value: datetime) -> str:
    return value.strftime("%A, %B %d, %Y")


def format_datetime(value: datetime) -> str:
    return value.strftime("%A, %B %d, %Y at %I:%M %p UTC")


def _email_trigger(name: str) -> Callable[[Callable[..., Any]], Callable[..., None]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., None]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any) -> None:
            if not is_email_configured():
                return
            try:
                fn(*args, **kwargs)
            except Exception:
                logger.exception("Email trigger failed: %s", name)

        return wrapped

    return decorator


def _task_recipient(task) -> str | None:
    if task.assignee and task.assignee.email:
        return task.assignee.email
    if task.volunteer_assignee and task.volunteer_assignee.email:
        return task.volunteer_assignee.email
    return None


def _member_emails(event, role: str | None = None) -> list[str]:
    """Emails of active members; soft-deleted users keep their memberships but get no mail."""
    return [
        m.user.email
        for m in event.members
        if (role is None or m.event_role == role) and m.user and m.user.deleted_at is None and m.user.email
    ]


def _lead_emails(event) -> list[str]:
    return _member_emails(event, "LEAD")


# ---------- Membership ----------
@_email_trigger("member_invitation")
def send_member_invitation_email(member_email: str, member_name: str | None, role: str, inviter_name: str) -> None:
    render_and_send(
        member_email,
        "You've been invited to join the team",
        "member_invitation",
        {
            "name": member_name or member_email,
            "email": member_email,
            "role": role,
            "inviter_name": inviter_name,
            "app_url": _app_url(),
        },
    )


@_email_trigger("volunteer_welcome")
def send_volunteer_welcome_email(name: str, email: str | None, role: str | None, inviter_name: str) -> None:
    if not email:
        return
    render_and_send(
        email,
        f"Welcome to the team, {name}!",
        "volunteer_welcome",
        {"name": name, "role": role, "inviter_name": inviter_name, "app_url": _app_url()},
    )


@_email_trigger("volunteer_promotion")
def send_volunteer_promotion_email(name: str, email: str | None) -> None:
    if not email:
        return
    render_and_send(
        email,
        "Congratulations! You've been promoted to Member",
        "volunteer_promotion",
        {
            "name": name,
            "new_role": "Member (Event Lead)",
            "permissions": PROMOTION_PERMISSIONS,
            "next_steps": PROMOTION_NEXT_STEPS,
            "app_url": _app_url(),
        },
    )


# ---------- Events ----------
@_email_trigger("event_created")
def send_event_created_email(s: Session, event_id: int) -> None:
    from app.meetup.modules.events.models import Event

    event = s.get(Event, event_id)
    if event is None:
        return
    recipients = _member_emails(event)
    if not recipients:
        return
    render_and_send(
        recipients,
        f"New event: {event.title}",
        "event_created",
        {
            "event_title": event.title,
            "date": format_datetime(event.date),
            "venue": event.venue,
            "event_url": _event_url(event.id),
            "created_by": (event.created_by.name if event.created_by else None) or "Team Member",
        },
    )


@_email_trigger("event_reminder")
def send_event_reminder_email(s: Session, event_id: int) -> None:
    from app.meetup.modules.events.models import Event

    event = s.get(Event, event_id)
    if event is None:
        return

    emails: dict[str, None] = dict.fromkeys(_member_emails(event))
    for link in event.speakers:
        if link.status == "CONFIRMED" and link.speaker and link.speaker.email:
            emails[link.speaker.email] = None
    recipients = list(emails)
    if not recipients:
        return

    days_until = math.ceil((event.date - datetime.utcnow()).total_seconds() / 86400)
    event_url = _event_url(event.id)
    ics = generate_ics(
        event.title,
        event.date,
        description=event.description,
        location=event.venue,
        url=event_url,
    )
    render_and_send(
        recipients,
        f"Reminder: {event.title} is in {days_until} day{'' if days_until == 1 else 's'}",
        "event_reminder",
        {
            "event_title": event.title,
            "date": format_datetime(event.date),
            "venue": event.venue,
            "event_url": event_url,
            "days_until": days_until,
        },
        attachments=[Attachment(filename="event.ics", content=ics, content_type="text/calendar")],
    )


# ---------- Tasks ----------
@_email_trigger("task_assigned")
def send_task_assigned_email(s: Session, task_id: int, assigned_by_name: str | None = None) -> None:
    from app.meetup.modules.checklists.models import SOPTask

    task = s.get(SOPTask, task_id)
    if task is None:
        return
    recipient = _task_recipient(task)
    if not recipient:
        return
    event = task.checklist.event
    render_and_send(
        recipient,
        f"Task assigned: {task.title}",
        "task_assigned",
        {
            "task_title": task.title,
            "priority": task.priority,
            "deadline": format_date(task.deadline) if task.deadline else None,
            "event_name": event.title,
            "task_url": _event_url(event.id),
            "assigned_by": assigned_by_name,
        },
    )


@_email_trigger("task_due_soon")
def send_task_due_soon_email(s: Session, task_id: int, days_remaining: int) -> None:
    from app.meetup.modules.checklists.models import SOPTask

    task = s.get(SOPTask, task_id)
    if task is None or task.deadline is None:
        return
    recipient = _task_recipient(task)
    if not recipient:
        return
    event = task.checklist.event
    render_and_send(
        recipient,
        f"Task due soon: {task.title}",
        "task_due_soon",
        {
            "task_title": task.title,
            "deadline": format_date(task.deadline),
            "days_remaining": days_remaining,
            "event_name": event.title,
            "task_url": _event_url(event.id),
            "priority": task.priority,
        },
    )


@_email_trigger("task_overdue")
def send_task_overdue_email(s: Session, task_id: int, overdue_days: int, cc_event_lead: bool = False) -> None:
    from app.meetup.modules.checklists.models import SOPTask

    task = s.get(SOPTask, task_id)
    if task is None or task.deadline is None:
        return
    recipient = _task_recipient(task)
    if not recipient:
        return
    event = task.checklist.event
    cc = [e for e in _lead_emails(event) if e != recipient] if cc_event_lead else []
    render_and_send(
        recipient,
        f"OVERDUE: {task.title}",
        "task_overdue",
        {
            "task_title": task.title,
            "deadline": format_date(task.deadline),
            "overdue_days": overdue_days,
            "event_name": event.title,
            "task_url": _event_url(event.id),
            "priority": task.priority,
            "is_escalation": bool(cc),
        },
        cc=cc or None,
    )


# ---------- Speakers / venues ----------
@_email_trigger("speaker_invitation")
def send_speaker_invitation_email(s: Session, event_speaker_id: int) -> None:
    from app.meetup.modules.speakers.models import EventSpeaker

    link = s.get(EventSpeaker, event_speaker_id)
    if link is None or not link.speaker or not link.speaker.email:
        return
    render_and_send(
        link.speaker.email,
        f"Speaker invitation: {link.event.title}",
        "speaker_invitation",
        {
            "speaker_name": link.speaker.name,
            "event_title": link.event.title,
            "topic": link.speaker.topic,
            "date": format_datetime(link.event.date),
            "venue": link.event.venue,
        },
    )


@_email_trigger("venue_confirmed")
def send_venue_confirmed_email(s: Session, link_id: int, event_id: int) -> None:
    from app.meetup.modules.events.models import Event
    from app.meetup.modules.venues.models import EventVenuePartner

    link = s.get(EventVenuePartner, link_id)
    event = s.get(Event, event_id)
    if link is None or event is None:
        return
    recipients = _lead_emails(event)
    if not recipients:
        return
    partner = link.venue_partner
    render_and_send(
        recipients,
        f"Venue confirmed: {partner.name} for {event.title}",
        "venue_confirmed",
        {
            "venue_name": partner.name,
            "address": partner.address,
            "capacity": partner.capacity,
            "confirmation_date": format_date(datetime.utcnow()),
            "event_title": event.title,
            "contact_name": partner.contact_name,
        },
    )


# ---------- Digest ----------
@_email_trigger("weekly_digest")
def send_weekly_digest_email(s: Session, user_id: int) -> None:
    from app.meetup.models import User
    from app.meetup.modules.checklists.models import SOPTask
    from app.meetup.modules.events.models import Event

    user = s.get(User, user_id)
    if user is None or not user.email:
        return

    now = datetime.utcnow()
    mine = or_(SOPTask.assignee_id == user_id, SOPTask.owner_id == user_id)
    open_tasks = (
        s.query(SOPTask)
        .filter(SOPTask.status != "DONE", mine)
        .order_by(SOPTask.deadline.is_(None), SOPTask.deadline.asc())
        .limit(20)
        .all()
    )
    overdue = [t for t in open_tasks if t.deadline and t.deadline < now]
    upcoming = (
        s.query(Event)
        .filter(Event.date >= now, Event.date <= now + timedelta(days=14), Event.status.in_(("SCHEDULED", "LIVE")))
        .order_by(Event.date.asc())
        .limit(5)
        .all()
    )
    total_tasks = s.query(SOPTask).filter(SOPTask.status != "DONE", mine).count()
    completed_tasks = (
        s.query(SOPTask)
        .filter(SOPTask.status == "DONE", mine, SOPTask.completed_at >= now - timedelta(days=7))
        .count()
    )
    total_events = s.query(Event).filter(Event.status.in_(("SCHEDULED", "LIVE"))).count()

    def _task_row(t) -> dict:
        ev = t.checklist.event
        return {
            "title": t.title,
            "event_title": ev.title,
            "priority": t.priority,
            "deadline": format_date(t.deadline) if t.deadline else None,
            "task_url": _event_url(ev.id),
        }

    render_and_send(
        user.email,
        f"Weekly digest: {total_tasks} active tasks, {len(upcoming)} upcoming events",
        "weekly_digest",
        {
            "user_name": user.name or "Team Member",
            "assigned_tasks": [_task_row(t) for t in open_tasks],
            "overdue_tasks": [_task_row(t) for t in overdue],
            "upcoming_events": [
                {"title": e.title, "date": format_date(e.date), "venue": e.venue, "event_url": _event_url(e.id)}
                for e in upcoming
            ],
            "summary": {
                "total_tasks": total_tasks,
                "completed_tasks": completed_tasks,
                "total_events": total_events,
                "upcoming_events_count": len(upcoming),
            },
            "app_url": _app_url(),
        },
    )


# ---------- Discord ----------
def announce_event_created(s: Session, event) -> bool:
    cfg = discord.latest_config(s)
    if cfg is None or not cfg.channel_id:
        return False
    return discord.notify_event_created(event.title, event.date, event.venue, cfg.channel_id, discord.resolve_token(cfg))


def announce_task_assigned(s: Session, task) -> bool:
    cfg = discord.latest_config(s)
    if cfg is None or not cfg.channel_id:
        return False
    person = task.assignee.display_name if task.assignee else (task.volunteer_assignee.name if task.volunteer_assignee else None)
    if not person:
        return False
    notice = discord.TaskNotice(
        title=task.title,
        deadline=task.deadline,
        event_title=task.checklist.event.title,
        person_name=person,
    )
    return discord.notify_task_assigned(notice, cfg.channel_id, discord.resolve_token(cfg))
