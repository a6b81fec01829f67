from app.meetup.db import session_scope
from app.meetup.modules.sop_templates.defaults import DEFAULT_MEETUP_NAME, DEFAULT_MEETUP_TASKS, KUG_CHENNAI_TASKS
from app.meetup.modules.sop_templates.models import SOPTemplate
from app.meetup.modules.sop_templates.service import (
    ensure_default_meetup_template,
    infer_section,
    validate_default_tasks,
)


def test_infer_section():
    assert infer_section(3) == "PRE_EVENT"
    assert infer_section(0.5) == "PRE_EVENT"
    assert infer_section(0) == "ON_DAY"
    assert infer_section(-1) == "POST_EVENT"


def test_validate_default_tasks_drops_malformed_entries():
    cleaned = validate_default_tasks(
        [
            {"title": " Book venue ", "relativeDays": 14, "priority": "HIGH"},
            {"title": "", "relativeDays": 1, "priority": "LOW"},
            {"title": "No days", "priority": "LOW"},
            {"title": "Bool days", "relativeDays": True, "priority": "LOW"},
            {"title": "Bad priority", "relativeDays": 1, "priority": "URGENT"},
            {"title": "Wrong section", "relativeDays": -2, "priority": "LOW", "section": "LATER"},
            {"title": "Sub", "relativeDays": 0, "priority": "MEDIUM", "section": "ON_DAY", "subcategory": "  Desk "},
            "not a dict",
        ]
    )
    assert cleaned == [
        {"title": "Book venue", "relativeDays": 14, "priority": "HIGH", "section": "PRE_EVENT"},
        {"title": "Wrong section", "relativeDays": -2, "priority": "LOW", "section": "POST_EVENT"},
        {"title": "Sub", "relativeDays": 0, "priority": "MEDIUM", "section": "ON_DAY", "subcategory": "Desk"},
    ]
    assert validate_default_tasks("nope") == []


def test_builtin_task_lists_are_valid():
    assert validate_default_tasks(DEFAULT_MEETUP_TASKS) == DEFAULT_MEETUP_TASKS
    assert validate_default_tasks(KUG_CHENNAI_TASKS) == KUG_CHENNAI_TASKS


def test_ensure_default_meetup_template_is_idempotent(app):
    with session_scope(app) as s:
        assert ensure_default_meetup_template(s) is True
    with session_scope(app) as s:
        t = s.query(SOPTemplate).filter(SOPTemplate.name == DEFAULT_MEETUP_NAME).one()
        t.default_tasks = []
    with session_scope(app) as s:
        assert ensure_default_meetup_template(s) is False
    with session_scope(app) as s:
        rows = s.query(SOPTemplate).filter(SOPTemplate.name == DEFAULT_MEETUP_NAME).all()
        assert len(rows) == 1
        assert len(rows[0].default_tasks) == len(DEFAULT_MEETUP_TASKS)


def test_template_crud(client, headers):
    r = client.post("/api/templates", json={"name": "x"}, headers=headers["EVENT_LEAD"])
    assert r.status_code == 403
    assert r.json["error"] == "Forbidden: Admin role required"

    r = client.post("/api/templates", json={"name": "  "}, headers=headers["ADMIN"])
    assert r.status_code == 400
    assert r.json["error"] == "Name is required"

    r = client.post(
        "/api/templates",
        json={
            "name": " Workshop ",
            "description": "  ",
            "defaultTasks": [
                {"title": "Labs ready", "relativeDays": 2, "priority": "HIGH"},
                {"title": "broken"},
            ],
        },
        headers=headers["ADMIN"],
    )
    assert r.status_code == 201
    template = r.json
    assert template["name"] == "Workshop"
    assert template["description"] is None
    assert template["defaultTasks"] == [
        {"title": "Labs ready", "relativeDays": 2, "priority": "HIGH", "section": "PRE_EVENT"}
    ]

    assert client.get("/api/templates", headers=headers["VIEWER"]).json[0]["name"] == "Workshop"

    r = client.patch(f"/api/templates/{template['id']}", json={"name": ""}, headers=headers["ADMIN"])
    assert r.status_code == 400
    assert r.json["error"] == "Name cannot be empty"

    r = client.patch(
        f"/api/templates/{template['id']}",
        json={"defaultTasks": [{"title": "Retro", "relativeDays": -3, "priority": "LOW"}]},
        headers=headers["ADMIN"],
    )
    assert r.json["defaultTasks"][0]["section"] == "POST_EVENT"

    assert client.delete(f"/api/templates/{template['id']}", headers=headers["ADMIN"]).status_code == 200
    assert client.get(f"/api/templates/{template['id']}", headers=headers["ADMIN"]).status_code == 404


def test_default_sop_template_created_once(client, headers):
    r = client.post("/api/templates/default", headers=headers["ADMIN"])
    assert r.status_code == 201
    assert r.json["name"] == "KUG Chennai Default SOP"
    assert len(r.json["defaultTasks"]) == len(KUG_CHENNAI_TASKS)

    r = client.post("/api/templates/default", headers=headers["ADMIN"])
    assert r.status_code == 409
    assert r.json["error"].startswith("Default SOP template already exists")


def test_relative_days_must_be_finite_and_bounded():
    cleaned = validate_default_tasks(
        [
            {"title": "Far future", "relativeDays": 1e9, "priority": "LOW"},
            {"title": "Not a number", "relativeDays": float("nan"), "priority": "LOW"},
            {"title": "Forever", "relativeDays": float("-inf"), "priority": "LOW"},
            {"title": "Ten years out", "relativeDays": 3650, "priority": "LOW"},
        ]
    )
    assert [t["title"] for t in cleaned] == ["Ten years out"]


def test_out_of_range_template_days_do_not_break_event_creation(app, client, headers, make_event):
    r = client.post(
        "/api/templates",
        json={"name": "Huge", "defaultTasks": [{"title": "Way ahead", "relativeDays": 1e9, "priority": "LOW"}]},
        headers=headers["ADMIN"],
    )
    assert r.status_code == 201
    assert r.json["defaultTasks"] == []

    with session_scope(app) as s:
        stored = SOPTemplate(
            name="Legacy",
            default_tasks=[
                {"title": "Stored huge", "relativeDays": 1e9, "priority": "LOW", "section": "PRE_EVENT"},
                {"title": "Normal", "relativeDays": 1, "priority": "LOW", "section": "PRE_EVENT"},
            ],
        )
        s.add(stored)
        s.flush()
        tid = stored.id

    event = make_event(date="2030-06-15T18:00:00Z", templateId=tid)
    detail = client.get(f"/api/events/{event['id']}", headers=headers["EVENT_LEAD"]).json
    deadlines = {t["title"]: t["deadline"] for c in detail["checklists"] for t in c["tasks"]}
    assert deadlines["Stored huge"] is None
    assert deadlines["Normal"].startswith("2030-06-14")
