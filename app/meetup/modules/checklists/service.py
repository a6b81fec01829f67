from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func

from app.meetup.audit import diff_changes, log_audit
from app.meetup.constants import PRIORITIES, TASK_STATUSES
from app.meetup.modules.members.service import resolve_user_ref
from app.meetup.utils import clean_str, iso, parse_datetime, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.meetup.models import User
    from app.meetup.modules.checklists.models import SOPChecklist, SOPTask
    from app.meetup.modules.events.models import Event
    from app.meetup.modules.volunteers.models import Volunteer


def resolve_volunteer_ref(s: "Session", raw: Any) -> "Volunteer | None":
    from app.meetup.modules.volunteers.models import Volunteer

    volunteer_id = parse_int(raw)
    if volunteer_id is None:
        return None
    volunteer = s.get(Volunteer, volunteer_id)
    if volunteer is None:
        raise ValueError("Volunteer not found")
    return volunteer


def _check_deadline(raw: Any, errors: list[str]) -> None:
    try:
        parse_datetime(raw)
    except ValueError:
        errors.append("Invalid deadline")


def clean_task_inputs(tasks: Any) -> list[dict]:
    """Drop entries without a title; unknown priorities become MEDIUM."""
    if not isinstance(tasks, list):
        return []
    cleaned = []
    for t in tasks:
        if not isinstance(t, dict) or not clean_str(t.get("title")):
            continue
        cleaned.append(
            {
                "title": t["title"].strip(),
                "priority": t.get("priority") if t.get("priority") in PRIORITIES else "MEDIUM",
                "deadline": t.get("deadline") if isinstance(t.get("deadline"), str) else None,
                "ownerId": t.get("ownerId"),
            }
        )
    return cleaned


# ---------- Checklists ----------
def validate_checklist_payload(payload: dict) -> list[str]:
    errors = []
    if not clean_str(payload.get("title")):
        errors.append("Title is required")
    for t in clean_task_inputs(payload.get("tasks")):
        _check_deadline(t["deadline"], errors)
    return errors


def _next_checklist_order(s: "Session", event_id: int) -> int:
    from app.meetup.modules.checklists.models import SOPChecklist

    current = s.query(func.max(SOPChecklist.sort_order)).filter(SOPChecklist.event_id == event_id).scalar()
    return (current if current is not None else -1) + 1


def create_checklist(s: "Session", event: "Event", payload: dict, user: "User") -> "SOPChecklist":
    """Raises ValueError for an unknown task owner before anything is added."""
    from app.meetup.modules.checklists.models import SOPChecklist, SOPTask

    inputs = clean_task_inputs(payload.get("tasks"))
    owners = [resolve_user_ref(s, t["ownerId"], "Owner") or user for t in inputs]

    now = datetime.utcnow()
    checklist = SOPChecklist(
        title=payload["title"].strip(),
        sort_order=_next_checklist_order(s, event.id),
        created_at=now,
        updated_at=now,
    )
    for index, (t, owner) in enumerate(zip(inputs, owners)):
        checklist.tasks.append(
            SOPTask(
                title=t["title"],
                priority=t["priority"],
                sort_order=index,
                deadline=parse_datetime(t["deadline"]),
                owner=owner,
                created_at=now,
                updated_at=now,
            )
        )
    event.checklists.append(checklist)
    s.flush()

    log_audit(
        s,
        user=user,
        action="CREATE",
        entity_type="SOPChecklist",
        entity_id=checklist.id,
        entity_name=checklist.title,
        changes={"eventId": event.id, "title": checklist.title, "taskCount": len(inputs)},
    )
    return checklist


def validate_checklist_patch(payload: dict) -> list[str]:
    errors = []
    if "title" in payload and not clean_str(payload.get("title")):
        errors.append("Title cannot be empty")
    if "sortOrder" in payload:
        try:
            if parse_int(payload.get("sortOrder")) is None:
                errors.append("sortOrder cannot be empty")
        except ValueError:
            errors.append("sortOrder must be an integer")
    return errors


def update_checklist(s: "Session", checklist: "SOPChecklist", payload: dict, user: "User") -> dict:
    before = {"title": checklist.title, "sortOrder": checklist.sort_order}
    if "title" in payload:
        checklist.title = payload["title"].strip()
    if "sortOrder" in payload:
        checklist.sort_order = parse_int(payload["sortOrder"])
    checklist.updated_at = datetime.utcnow()

    changes = diff_changes(before, {"title": checklist.title, "sortOrder": checklist.sort_order})
    if changes:
        log_audit(
            s,
            user=user,
            action="UPDATE",
            entity_type="SOPChecklist",
            entity_id=checklist.id,
            entity_name=checklist.title,
            changes=changes,
        )
    return changes


def delete_checklist(s: "Session", checklist: "SOPChecklist", user: "User") -> None:
    log_audit(
        s,
        user=user,
        action="DELETE",
        entity_type="SOPChecklist",
        entity_id=checklist.id,
        entity_name=checklist.title,
        changes={"eventId": checklist.event_id, "taskCount": len(checklist.tasks)},
    )
    checklist.event.checklists.remove(checklist)


# ---------- Tasks ----------
def validate_task_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial and not clean_str(payload.get("title")):
        errors.append("Title is required")
    status = payload.get("status")
    if status is not None and status not in TASK_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(TASK_STATUSES)}")
    priority = payload.get("priority")
    if partial and priority is not None and priority not in PRIORITIES:
        errors.append(f"Invalid priority. Must be one of: {', '.join(PRIORITIES)}")
    if "deadline" in payload:
        _check_deadline(payload.get("deadline"), errors)
    return errors


def _task_snapshot(task: "SOPTask") -> dict[str, Any]:
    return {
        "status": task.status,
        "priority": task.priority,
        "deadline": iso(task.deadline),
        "ownerId": task.owner_id,
        "assigneeId": task.assignee_id,
        "volunteerAssigneeId": task.volunteer_assignee_id,
        "blockedReason": task.blocked_reason,
        "title": task.title,
    }


def _set_owner(task: "SOPTask", user: "User | None") -> None:
    task.owner = user
    task.owner_id = user.id if user else None


def _set_assignee(task: "SOPTask", user: "User | None") -> None:
    task.assignee = user
    task.assignee_id = user.id if user else None


def _set_volunteer_assignee(task: "SOPTask", volunteer: "Volunteer | None") -> None:
    task.volunteer_assignee = volunteer
    task.volunteer_assignee_id = volunteer.id if volunteer else None


def create_task(s: "Session", checklist: "SOPChecklist", payload: dict, user: "User") -> "SOPTask":
    """Append a task at the end of the checklist. Raises ValueError for unknown people."""
    from app.meetup.modules.checklists.models import SOPTask

    owner = resolve_user_ref(s, payload.get("ownerId"), "Owner") or user
    assignee = resolve_user_ref(s, payload.get("assigneeId"), "Assignee")
    volunteer = None if assignee else resolve_volunteer_ref(s, payload.get("volunteerAssigneeId"))

    now = datetime.utcnow()
    next_order = max((t.sort_order for t in checklist.tasks), default=-1) + 1
    task = SOPTask(
        title=payload["title"].strip(),
        priority=payload.get("priority") if payload.get("priority") in PRIORITIES else "MEDIUM",
        sort_order=next_order,
        deadline=parse_datetime(payload.get("deadline")),
        created_at=now,
        updated_at=now,
    )
    _set_owner(task, owner)
    _set_assignee(task, assignee)
    _set_volunteer_assignee(task, volunteer)
    checklist.tasks.append(task)
    s.flush()

    log_audit(
        s,
        user=user,
        action="CREATE",
        entity_type="SOPTask",
        entity_id=task.id,
        entity_name=task.title,
        changes={"checklistId": checklist.id, "title": task.title, "priority": task.priority},
    )
    return task


def update_task(s: "Session", task: "SOPTask", payload: dict, user: "User") -> tuple[dict, bool]:
    """
    Apply a task PATCH and audit the diff.
    Returns (changes, newly_assigned); newly_assigned is True when a different person now holds the task.
    Raises ValueError for unknown people before anything changes.
    """
    owner = resolve_user_ref(s, payload.get("ownerId"), "Owner") if "ownerId" in payload else task.owner
    assignee = resolve_user_ref(s, payload.get("assigneeId"), "Assignee") if "assigneeId" in payload else task.assignee
    volunteer = (
        resolve_volunteer_ref(s, payload.get("volunteerAssigneeId"))
        if "volunteerAssigneeId" in payload
        else task.volunteer_assignee
    )

    before = _task_snapshot(task)
    now = datetime.utcnow()

    status = payload.get("status")
    if status is not None:
        if status == "DONE" and task.status != "DONE":
            task.completed_at = now
        elif status != "DONE" and task.status == "DONE":
            task.completed_at = None
        task.status = status
    if payload.get("priority") is not None:
        task.priority = payload["priority"]
    if "deadline" in payload:
        task.deadline = parse_datetime(payload.get("deadline"))
    _set_owner(task, owner)
    if "assigneeId" in payload:
        _set_assignee(task, assignee)
        if assignee is not None:
            _set_volunteer_assignee(task, None)
    if "volunteerAssigneeId" in payload:
        _set_volunteer_assignee(task, volunteer)
        if volunteer is not None:
            _set_assignee(task, None)
    if "blockedReason" in payload:
        task.blocked_reason = clean_str(payload.get("blockedReason"))
    if clean_str(payload.get("title")):
        task.title = payload["title"].strip()
    task.updated_at = now

    after = _task_snapshot(task)
    changes = diff_changes(before, after)
    if changes:
        log_audit(
            s,
            user=user,
            action="UPDATE",
            entity_type="SOPTask",
            entity_id=task.id,
            entity_name=task.title,
            changes=changes,
        )

    newly_assigned = (
        (after["assigneeId"] is not None and after["assigneeId"] != before["assigneeId"])
        or (after["volunteerAssigneeId"] is not None and after["volunteerAssigneeId"] != before["volunteerAssigneeId"])
    )
    return changes, newly_assigned


def delete_task(s: "Session", task: "SOPTask", user: "User") -> None:
    log_audit(
        s,
        user=user,
        action="DELETE",
        entity_type="SOPTask",
        entity_id=task.id,
        entity_name=task.title,
        changes={"title": task.title},
    )
    task.checklist.tasks.remove(task)
