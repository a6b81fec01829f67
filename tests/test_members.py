from datetime import datetime

from app.meetup.db import session_scope, unfiltered_users
from app.meetup.models import AuditLog, User
from app.meetup.modules.events.models import Event, EventMember


def test_members_list_requires_admin(client, headers):
    assert client.get("/api/members", headers=headers["EVENT_LEAD"]).status_code == 403
    rows = client.get("/api/members", headers=headers["ADMIN"]).json
    assert {r["email"] for r in rows} == {
        "super_admin@example.com",
        "admin@example.com",
        "event_lead@example.com",
        "volunteer@example.com",
        "viewer@example.com",
    }


def test_member_picker_hides_super_admins(client, headers):
    rows = client.get("/api/members/list", headers=headers["EVENT_LEAD"]).json
    assert "super_admin@example.com" not in {r["email"] for r in rows}
    assert all(set(r) == {"id", "name", "email", "image", "globalRole"} for r in rows)
    assert client.get("/api/members/list", headers=headers["VOLUNTEER"]).status_code == 403


def test_invite_member(app, client, headers):
    r = client.post("/api/members", json={"name": "x"}, headers=headers["ADMIN"])
    assert r.status_code == 400
    assert r.json["error"] == "Email is required"

    r = client.post("/api/members", json={"email": " New@Example.com ", "name": "Newbie", "globalRole": "ROOT"}, headers=headers["ADMIN"])
    assert r.status_code == 201
    assert r.json["email"] == "new@example.com"
    assert r.json["globalRole"] == "VIEWER"

    r = client.post("/api/members", json={"email": "new@example.com"}, headers=headers["ADMIN"])
    assert r.status_code == 409
    assert r.json["error"] == "A member with this email already exists"

    with session_scope(app) as s:
        log = s.query(AuditLog).filter(AuditLog.entity_type == "User", AuditLog.action == "CREATE").one()
        assert log.changes == {"globalRole": "VIEWER"}


def test_only_super_admin_invites_admins(client, headers):
    r = client.post("/api/members", json={"email": "a2@example.com", "globalRole": "ADMIN"}, headers=headers["ADMIN"])
    assert r.status_code == 403
    assert r.json["error"] == "Only super admins can assign the Admin role"

    r = client.post("/api/members", json={"email": "a2@example.com", "globalRole": "ADMIN"}, headers=headers["SUPER_ADMIN"])
    assert r.status_code == 201
    assert r.json["globalRole"] == "ADMIN"


def test_invite_reactivates_deleted_member(app, client, headers, users):
    with session_scope(app) as s:
        s.get(User, users["VIEWER"]).deleted_at = datetime.utcnow()

    r = client.post(
        "/api/members",
        json={"email": "viewer@example.com", "globalRole": "EVENT_LEAD"},
        headers=headers["ADMIN"],
    )
    assert r.status_code == 201
    assert r.json["id"] == users["VIEWER"]
    assert r.json["globalRole"] == "EVENT_LEAD"
    assert r.json["name"] == "Viewer"


def test_role_change_rules(client, headers, users):
    url = "/api/members"
    assert client.patch(url, json={"userId": users["VIEWER"]}, headers=headers["ADMIN"]).json["error"] == "Missing userId or globalRole"
    assert client.patch(url, json={"userId": users["VIEWER"], "globalRole": "SUPER_ADMIN"}, headers=headers["ADMIN"]).json["error"] == "Invalid role"
    assert client.patch(url, json={"userId": users["ADMIN"], "globalRole": "VIEWER"}, headers=headers["ADMIN"]).json["error"] == "You cannot change your own role"
    assert client.patch(url, json={"userId": 999, "globalRole": "VIEWER"}, headers=headers["ADMIN"]).status_code == 404

    r = client.patch(url, json={"userId": users["VIEWER"], "globalRole": "ADMIN"}, headers=headers["ADMIN"])
    assert r.status_code == 403
    assert r.json["error"] == "Only super admins can manage admins"
    r = client.patch(url, json={"userId": users["SUPER_ADMIN"], "globalRole": "VIEWER"}, headers=headers["ADMIN"])
    assert r.status_code == 403

    r = client.patch(url, json={"userId": users["VIEWER"], "globalRole": "VOLUNTEER"}, headers=headers["ADMIN"])
    assert r.status_code == 200
    assert r.json["globalRole"] == "VOLUNTEER"

    r = client.patch(url, json={"userId": users["ADMIN"], "globalRole": "EVENT_LEAD"}, headers=headers["SUPER_ADMIN"])
    assert r.status_code == 200


def test_delete_guards(client, headers, users):
    assert client.delete(f"/api/members/{users['VIEWER']}", headers=headers["ADMIN"]).status_code == 403
    assert client.delete(f"/api/members/{users['SUPER_ADMIN']}", headers=headers["SUPER_ADMIN"]).status_code == 400
    assert client.delete("/api/members/999", headers=headers["SUPER_ADMIN"]).status_code == 404

    r = client.delete(f"/api/members/{users['VIEWER']}", json={"reassignTo": 999}, headers=headers["SUPER_ADMIN"])
    assert r.status_code == 400
    assert r.json["error"] == "Reassignment target not found"

    r = client.delete(f"/api/members/{users['VIEWER']}", json={"reassignTo": users["VIEWER"]}, headers=headers["SUPER_ADMIN"])
    assert r.status_code == 400


def test_delete_member_without_records(app, client, headers, users):
    r = client.delete(f"/api/members/{users['VIEWER']}", headers=headers["SUPER_ADMIN"])
    assert r.status_code == 200
    assert r.json == {"success": True, "reassignedTo": None}

    with session_scope(app) as s:
        assert s.get(User, users["VIEWER"]) is None
        deleted = unfiltered_users(s).filter(User.id == users["VIEWER"]).one()
        assert deleted.deleted_at is not None

    # a deactivated user's token no longer works
    assert client.get("/api/dashboard", headers=headers["VIEWER"]).status_code == 401
    assert client.delete(f"/api/members/{users['VIEWER']}", headers=headers["SUPER_ADMIN"]).status_code == 404


def test_delete_member_with_records_requires_reassignment(app, client, headers, users, make_event):
    event = make_event()
    checklist = client.post(
        "/api/checklists",
        json={"eventId": event["id"], "title": "Ops", "tasks": [{"title": "Hall"}]},
        headers=headers["EVENT_LEAD"],
    ).json
    with session_scope(app) as s:
        s.add(EventMember(event_id=event["id"], user_id=users["ADMIN"], event_role="ORGANIZER"))

    r = client.delete(f"/api/members/{users['EVENT_LEAD']}", headers=headers["SUPER_ADMIN"])
    assert r.status_code == 409
    assert r.json["ownedCounts"]["eventsCreated"] == 1
    assert r.json["ownedCounts"]["tasksOwned"] == 1

    r = client.delete(
        f"/api/members/{users['EVENT_LEAD']}?reassignTo={users['ADMIN']}",
        headers=headers["SUPER_ADMIN"],
    )
    assert r.status_code == 200
    assert r.json["reassignedTo"] == users["ADMIN"]

    with session_scope(app) as s:
        assert s.get(Event, event["id"]).created_by_user_id == users["ADMIN"]
        members = s.query(EventMember).filter(EventMember.event_id == event["id"]).all()
        assert [(m.user_id, m.event_role) for m in members] == [(users["ADMIN"], "LEAD")]
        tasks = client.get(f"/api/checklists/{checklist['id']}/tasks", headers=headers["ADMIN"]).json
        assert tasks[0]["ownerId"] == users["ADMIN"]
        log = (
            s.query(AuditLog)
            .filter(AuditLog.entity_type == "User", AuditLog.action == "DELETE")
            .one()
        )
        assert log.changes["reassignedTo"]["id"] == users["ADMIN"]
