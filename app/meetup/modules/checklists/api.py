from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.meetup.db import db_session
from app.meetup.modules.checklists.models import SOPChecklist, SOPTask
from app.meetup.modules.checklists.service import (
    create_checklist,
    create_task,
    delete_checklist,
    delete_task,
    update_checklist,
    update_task,
    validate_checklist_patch,
    validate_checklist_payload,
    validate_task_payload,
)
from app.meetup.modules.events.models import Event
from app.meetup.modules.notifications.triggers import announce_task_assigned, send_task_assigned_email
from app.meetup.rbac import can_user_access_event, require_auth
from app.meetup.utils import json_body, parse_int

bp = Blueprint("checklists", __name__)


def _checklist_with_access(checklist_id: int, action: str):
    """(checklist, error_response) after the event-level permission check."""
    s = db_session()
    checklist = s.get(SOPChecklist, checklist_id)
    if checklist is None:
        return None, (jsonify({"error": "Checklist not found"}), 404)
    if not can_user_access_event(s, g.current_user, checklist.event_id, action):
        return None, (jsonify({"error": "Forbidden"}), 403)
    return checklist, None


def _task_in(checklist: SOPChecklist, task_id: int):
    task = db_session().get(SOPTask, task_id)
    if task is None or task.checklist_id != checklist.id:
        return None, (jsonify({"error": "Task not found"}), 404)
    return task, None


def _notify_assignment(task: SOPTask) -> None:
    s = db_session()
    send_task_assigned_email(s, task.id, g.current_user.display_name)
    announce_task_assigned(s, task)


# ---------- Checklists ----------
@bp.post("/checklists")
@require_auth
def checklists_create():
    s = db_session()
    payload = json_body()
    try:
        event_id = parse_int(payload.get("eventId"))
    except ValueError:
        event_id = None
    if event_id is None:
        return jsonify({"error": "eventId and title are required"}), 400
    errors = validate_checklist_payload(payload)
    if errors:
        return jsonify({"error": errors[0]}), 400
    if not can_user_access_event(s, g.current_user, event_id, "update"):
        return jsonify({"error": "Forbidden: No access to this event"}), 403

    event = s.get(Event, event_id)
    if event is None:
        return jsonify({"error": "Event not found"}), 404

    try:
        checklist = create_checklist(s, event, payload, g.current_user)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()
    return jsonify(checklist.to_dict()), 201


@bp.patch("/checklists/<int:checklist_id>")
@require_auth
def checklists_patch(checklist_id: int):
    s = db_session()
    checklist, err = _checklist_with_access(checklist_id, "update")
    if err:
        return err
    payload = json_body()
    errors = validate_checklist_patch(payload)
    if errors:
        return jsonify({"error": errors[0]}), 400

    update_checklist(s, checklist, payload, g.current_user)
    s.commit()
    return jsonify(checklist.to_dict())


@bp.delete("/checklists/<int:checklist_id>")
@require_auth
def checklists_delete(checklist_id: int):
    s = db_session()
    checklist, err = _checklist_with_access(checklist_id, "delete")
    if err:
        return err
    delete_checklist(s, checklist, g.current_user)
    s.commit()
    return jsonify({"success": True})


# ---------- Tasks ----------
@bp.get("/checklists/<int:checklist_id>/tasks")
@require_auth
def tasks_list(checklist_id: int):
    checklist, err = _checklist_with_access(checklist_id, "read")
    if err:
        return err
    return jsonify([t.to_dict() for t in checklist.tasks])


@bp.post("/checklists/<int:checklist_id>/tasks")
@require_auth
def tasks_create(checklist_id: int):
    s = db_session()
    checklist, err = _checklist_with_access(checklist_id, "update")
    if err:
        return err
    payload = json_body()
    errors = validate_task_payload(payload)
    if errors:
        return jsonify({"error": errors[0]}), 400

    try:
        task = create_task(s, checklist, payload, g.current_user)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()

    if task.assignee_id or task.volunteer_assignee_id:
        _notify_assignment(task)
    return jsonify(task.to_dict()), 201


@bp.patch("/checklists/<int:checklist_id>/tasks/<int:task_id>")
@require_auth
def tasks_patch(checklist_id: int, task_id: int):
    s = db_session()
    checklist, err = _checklist_with_access(checklist_id, "update")
    if err:
        return err
    task, err = _task_in(checklist, task_id)
    if err:
        return err
    payload = json_body()
    errors = validate_task_payload(payload, partial=True)
    if errors:
        return jsonify({"error": errors[0]}), 400

    try:
        _changes, newly_assigned = update_task(s, task, payload, g.current_user)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    s.commit()

    if newly_assigned:
        _notify_assignment(task)
    return jsonify(task.to_dict())


@bp.delete("/checklists/<int:checklist_id>/tasks/<int:task_id>")
@require_auth
def tasks_delete(checklist_id: int, task_id: int):
    s = db_session()
    checklist, err = _checklist_with_access(checklist_id, "update")
    if err:
        return err
    task, err = _task_in(checklist, task_id)
    if err:
        return err
    delete_task(s, task, g.current_user)
    s.commit()
    return jsonify({"success": True})
