from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import or_

from app.meetup.utils import iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.meetup.models import User
    from app.meetup.modules.checklists.models import SOPTask
    from app.meetup.modules.events.models import Event

DASHBOARD_LIST_LIMIT = 10


def _task_owner_name(task: "SOPTask") -> str | None:
    if task.owner and task.owner.name:
        return task.owner.name
    if task.assignee and task.assignee.name:
        return task.assignee.name
    return None


def event_progress(event: "Event") -> dict:
    tasks = [t for c in event.checklists for t in c.tasks]
    done = sum(1 for t in tasks if t.status == "DONE")
    return {
        "progress": round(done / len(tasks) * 100) if tasks else 0,
        "tasksCompleted": done,
        "tasksTotal": len(tasks),
    }


def build_dashboard(s: "Session", user: "User", now: datetime | None = None) -> dict:
    from app.meetup.models import AuditLog
    from app.meetup.modules.checklists.models import SOPTask
    from app.meetup.modules.events.models import Event
    from app.meetup.modules.speakers.models import EventSpeaker
    from app.meetup.modules.volunteers.models import Volunteer

    now = now or datetime.utcnow()

    next_event = (
        s.query(Event)
        .filter(Event.date > now, Event.status != "COMPLETED")
        .order_by(Event.date.asc())
        .first()
    )

    my_tasks = (
        s.query(SOPTask)
        .filter(or_(SOPTask.owner_id == user.id, SOPTask.assignee_id == user.id), SOPTask.status != "DONE")
        .order_by(SOPTask.deadline.asc().nulls_last(), SOPTask.id.asc())
        .limit(DASHBOARD_LIST_LIMIT)
        .all()
    )
    overdue = (
        s.query(SOPTask)
        .filter(SOPTask.deadline < now, SOPTask.status != "DONE")
        .order_by(SOPTask.deadline.asc())
        .limit(DASHBOARD_LIST_LIMIT)
        .all()
    )
    recent = (
        s.query(AuditLog)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(DASHBOARD_LIST_LIMIT)
        .all()
    )

    return {
        "nextEvent": (
            {
                "id": next_event.id,
                "title": next_event.title,
                "date": iso(next_event.date),
                "venue": next_event.venue,
                "status": next_event.status,
                **event_progress(next_event),
            }
            if next_event
            else None
        ),
        "myTasks": [
            {
                "id": t.id,
                "title": t.title,
                "priority": t.priority,
                "status": t.status,
                "deadline": iso(t.deadline),
                "owner": _task_owner_name(t),
            }
            for t in my_tasks
        ],
        "overdueTasks": [
            {"id": t.id, "title": t.title, "deadline": iso(t.deadline), "owner": _task_owner_name(t)}
            for t in overdue
        ],
        "stats": {
            "totalEvents": s.query(Event).count(),
            "totalSpeakers": s.query(EventSpeaker).filter(EventSpeaker.status == "CONFIRMED").count(),
            "totalVolunteers": s.query(Volunteer).count(),
            "tasksCompletedThisWeek": s.query(SOPTask).filter(SOPTask.completed_at >= now - timedelta(days=7)).count(),
        },
        "recentActivity": [row.to_dict() for row in recent],
    }
