from __future__ import annotations

import math
from datetime import datetime, timedelta
from numbers import Real
from typing import TYPE_CHECKING, Any

from app.meetup.audit import diff_changes, log_audit
from app.meetup.constants import PRIORITIES, SECTION_LABELS, SOP_SECTIONS

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.meetup.models import User
    from app.meetup.modules.checklists.models import SOPChecklist
    from app.meetup.modules.events.models import Event
    from app.meetup.modules.sop_templates.models import SOPTemplate


def infer_section(relative_days: float) -> str:
    if relative_days > 0:
        return "PRE_EVENT"
    if relative_days == 0:
        return "ON_DAY"
    return "POST_EVENT"


MAX_RELATIVE_DAYS = 3650


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _is_relative_days(value: Any) -> bool:
    return _is_number(value) and math.isfinite(value) and abs(value) <= MAX_RELATIVE_DAYS


def validate_default_tasks(tasks: Any) -> list[dict]:
    """
    Keep well-formed template tasks, drop the rest.
    A task needs a non-empty title, a finite relativeDays within MAX_RELATIVE_DAYS and a known
    priority; a missing or unknown section is inferred from relativeDays.
    """
    if not isinstance(tasks, list):
        return []
    cleaned: list[dict] = []
    for t in tasks:
        if not isinstance(t, dict):
            continue
        title = t.get("title")
        days = t.get("relativeDays")
        if not isinstance(title, str) or not title.strip():
            continue
        if not _is_relative_days(days) or t.get("priority") not in PRIORITIES:
            continue
        section = t.get("section") if t.get("section") in SOP_SECTIONS else infer_section(days)
        task = {"title": title.strip(), "relativeDays": days, "priority": t["priority"], "section": section}
        sub = t.get("subcategory")
        if isinstance(sub, str) and sub.strip():
            task["subcategory"] = sub.strip()
        cleaned.append(task)
    return cleaned


def _task_section(task: dict) -> str:
    if task.get("section") in SOP_SECTIONS:
        return task["section"]
    return infer_section(task.get("relativeDays") or 0)


def _deadline(event_date: datetime, task: dict) -> datetime | None:
    days = task.get("relativeDays")
    if not _is_relative_days(days):
        return None
    try:
        return event_date - timedelta(days=days)
    except OverflowError:
        return None


def _build_checklist(event: "Event", title: str, sort_order: int, tasks: list[dict]) -> "SOPChecklist":
    from app.meetup.modules.checklists.models import SOPChecklist, SOPTask

    now = datetime.utcnow()
    checklist = SOPChecklist(title=title, sort_order=sort_order, created_at=now, updated_at=now)
    for index, task in enumerate(tasks):
        checklist.tasks.append(
            SOPTask(
                title=task["title"],
                priority=task.get("priority") if task.get("priority") in PRIORITIES else "MEDIUM",
                sort_order=index,
                deadline=_deadline(event.date, task),
                created_at=now,
                updated_at=now,
            )
        )
    event.checklists.append(checklist)
    return checklist


def apply_template_grouped_by_section(s: "Session", event: "Event", template: "SOPTemplate") -> list["SOPChecklist"]:
    """One checklist per non-empty section, titled by the section label."""
    by_section: dict[str, list[dict]] = {sec: [] for sec in SOP_SECTIONS}
    for task in template.default_tasks or []:
        by_section[_task_section(task)].append(task)

    created = []
    for sort_order, section in enumerate(SOP_SECTIONS):
        if not by_section[section]:
            continue
        created.append(_build_checklist(event, SECTION_LABELS[section], sort_order, by_section[section]))
    s.flush()
    return created


def apply_template_grouped_by_subcategory(s: "Session", event: "Event", template: "SOPTemplate") -> list["SOPChecklist"]:
    """
    One checklist per (section, subcategory), titled "<Section label>: <subcategory>".
    Groups follow section order and keep first-seen order within a section.
    """
    groups: dict[tuple[str, str], list[dict]] = {}
    for task in template.default_tasks or []:
        section = _task_section(task)
        sub = task.get("subcategory")
        sub = sub.strip() if isinstance(sub, str) and sub.strip() else SECTION_LABELS[section]
        groups.setdefault((section, sub), []).append(task)

    ordered = sorted(groups.items(), key=lambda kv: SOP_SECTIONS.index(kv[0][0]))
    created = []
    for sort_order, ((section, sub), tasks) in enumerate(ordered):
        created.append(_build_checklist(event, f"{SECTION_LABELS[section]}: {sub}", sort_order, tasks))
    s.flush()
    return created


def replace_event_template(s: "Session", event: "Event", template: "SOPTemplate", user: "User") -> None:
    """Drop every checklist (and task) of the event and rebuild from the template."""
    event.checklists.clear()
    s.flush()
    apply_template_grouped_by_subcategory(s, event, template)
    event.updated_at = datetime.utcnow()
    log_audit(
        s,
        user=user,
        action="UPDATE",
        entity_type="Event",
        entity_id=event.id,
        entity_name=event.title,
        changes={"sopTemplate": {"to": template.name}},
    )


# ---------- Template CRUD ----------
def _clean_description(raw: Any) -> str | None:
    return raw.strip() or None if isinstance(raw, str) else None


def create_template(
    s: "Session",
    *,
    name: str,
    description: Any,
    default_tasks: Any,
    user: "User",
    audit_extra: dict | None = None,
) -> "SOPTemplate":
    from app.meetup.modules.sop_templates.models import SOPTemplate

    tasks = validate_default_tasks(default_tasks or [])
    now = datetime.utcnow()
    template = SOPTemplate(
        name=name.strip(),
        description=_clean_description(description),
        default_tasks=tasks,
        created_at=now,
        updated_at=now,
    )
    s.add(template)
    s.flush()

    log_audit(
        s,
        user=user,
        action="CREATE",
        entity_type="SOPTemplate",
        entity_id=template.id,
        entity_name=template.name,
        changes={
            "name": template.name,
            "description": template.description,
            "taskCount": len(tasks),
            **(audit_extra or {}),
        },
    )
    return template


def validate_template_patch(payload: dict) -> list[str]:
    errors = []
    if "name" in payload:
        name = payload.get("name")
        if not isinstance(name, str) or not name.strip():
            errors.append("Name cannot be empty")
    return errors


def update_template(s: "Session", template: "SOPTemplate", payload: dict, user: "User") -> dict:
    before = {"name": template.name, "description": template.description, "defaultTasks": template.default_tasks}

    if "name" in payload:
        template.name = payload["name"].strip()
    if "description" in payload:
        template.description = _clean_description(payload.get("description"))
    if "defaultTasks" in payload:
        template.default_tasks = validate_default_tasks(payload.get("defaultTasks"))
    template.updated_at = datetime.utcnow()

    changes = diff_changes(
        before,
        {"name": template.name, "description": template.description, "defaultTasks": template.default_tasks},
    )
    if changes:
        log_audit(
            s,
            user=user,
            action="UPDATE",
            entity_type="SOPTemplate",
            entity_id=template.id,
            entity_name=template.name,
            changes=changes,
        )
    return changes


def delete_template(s: "Session", template: "SOPTemplate", user: "User") -> None:
    log_audit(
        s,
        user=user,
        action="DELETE",
        entity_type="SOPTemplate",
        entity_id=template.id,
        entity_name=template.name,
        changes={"name": template.name},
    )
    s.delete(template)


def ensure_default_meetup_template(s: "Session") -> bool:
    """Seed the "Default Meetup" template or refresh its task list. Returns True when created."""
    from app.meetup.modules.sop_templates.defaults import (
        DEFAULT_MEETUP_DESCRIPTION,
        DEFAULT_MEETUP_NAME,
        DEFAULT_MEETUP_TASKS,
    )
    from app.meetup.modules.sop_templates.models import SOPTemplate

    existing = s.query(SOPTemplate).filter(SOPTemplate.name == DEFAULT_MEETUP_NAME).first()
    if existing is None:
        s.add(SOPTemplate(name=DEFAULT_MEETUP_NAME, description=DEFAULT_MEETUP_DESCRIPTION, default_tasks=list(DEFAULT_MEETUP_TASKS)))
        return True
    existing.default_tasks = list(DEFAULT_MEETUP_TASKS)
    existing.updated_at = datetime.utcnow()
    return False
