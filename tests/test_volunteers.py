from datetime import datetime

from app.meetup.db import session_scope, unfiltered_users
from app.meetup.models import AuditLog, User


def _volunteer(client, headers, **body):
    r = client.post("/api/volunteers", json={"name": "Sam", **body}, headers=headers["EVENT_LEAD"])
    assert r.status_code == 201, r.json
    return r.json


def test_create_volunteer(client, headers):
    r = client.post("/api/volunteers", json={"email": "x@example.com"}, headers=headers["EVENT_LEAD"])
    assert r.status_code == 400
    assert r.json["error"] == "Name is required"
    assert client.post("/api/volunteers", json={"name": "x"}, headers=headers["VOLUNTEER"]).status_code == 403

    vol = _volunteer(client, headers, email=" Sam@Example.COM ", discordId="sam#1", role="Photography")
    assert vol["email"] == "sam@example.com"
    assert vol["eventsCount"] == 0

    r = client.post("/api/volunteers", json={"name": "Other", "email": "SAM@example.com"}, headers=headers["EVENT_LEAD"])
    assert r.status_code == 409
    assert r.json["error"] == 'A volunteer with this email already exists: "Sam"'


def test_welcome_email_sent_when_email_given(client, headers, smtp_outbox):
    _volunteer(client, headers)
    assert smtp_outbox == []
    _volunteer(client, headers, name="Kim", email="kim@example.com")
    assert len(smtp_outbox) == 1
    assert smtp_outbox[0]["Subject"] == "Welcome to the team, Kim!"


def test_update_volunteer_email_conflicts(app, client, headers, users):
    vol = _volunteer(client, headers, email="sam@example.com")
    _volunteer(client, headers, name="Kim", email="kim@example.com")
    url = f"/api/volunteers/{vol['id']}"

    r = client.patch(url, json={"email": "kim@example.com"}, headers=headers["EVENT_LEAD"])
    assert r.status_code == 409
    assert r.json["error"] == 'A volunteer with this email already exists: "Kim"'

    r = client.patch(url, json={"email": "viewer@example.com"}, headers=headers["EVENT_LEAD"])
    assert r.status_code == 409
    assert r.json["error"] == (
        'This email belongs to existing member "Viewer". Members cannot be added as volunteers directly.'
    )

    with session_scope(app) as s:
        s.get(User, users["VIEWER"]).deleted_at = datetime.utcnow()
    r = client.patch(url, json={"email": "viewer@example.com"}, headers=headers["EVENT_LEAD"])
    assert r.status_code == 409
    assert r.json["error"] == (
        "This email belongs to a deactivated member. Members cannot be added as volunteers directly."
    )

    r = client.patch(url, json={"name": ""}, headers=headers["EVENT_LEAD"])
    assert r.status_code == 400

    r = client.patch(url, json={"email": "SAM2@example.com", "role": "Stage"}, headers=headers["EVENT_LEAD"])
    assert r.status_code == 200
    assert r.json["email"] == "sam2@example.com"
    assert r.json["role"] == "Stage"


def test_volunteer_detail_and_delete(client, headers, make_event):
    vol = _volunteer(client, headers)
    event = make_event(title="Hack Day")
    client.post(
        f"/api/events/{event['id']}/volunteers",
        json={"volunteerId": vol["id"], "assignedRole": "Desk"},
        headers=headers["EVENT_LEAD"],
    )

    detail = client.get(f"/api/volunteers/{vol['id']}", headers=headers["VIEWER"]).json
    assert detail["eventsCount"] == 1
    assert detail["events"][0]["assignedRole"] == "Desk"
    assert detail["events"][0]["event"]["title"] == "Hack Day"

    assert client.get("/api/volunteers", headers=headers["VIEWER"]).json[0]["eventsCount"] == 1

    assert client.delete(f"/api/volunteers/{vol['id']}", headers=headers["EVENT_LEAD"]).status_code == 200
    assert client.get(f"/api/volunteers/{vol['id']}", headers=headers["VIEWER"]).status_code == 404


def test_convert_creates_member(app, client, headers):
    vol = _volunteer(client, headers, email="new.person@example.com", name="New Person")
    url = f"/api/volunteers/{vol['id']}/convert"

    assert client.post(url, headers=headers["EVENT_LEAD"]).status_code == 403
    assert client.post("/api/volunteers/999/convert", headers=headers["ADMIN"]).json["error"] == "Volunteer not found"

    r = client.post(url, headers=headers["ADMIN"])
    assert r.status_code == 201
    assert r.json["linked"] is False
    assert r.json["message"] == "Volunteer converted to member"
    assert r.json["user"]["globalRole"] == "VOLUNTEER"
    assert r.json["user"]["email"] == "new.person@example.com"

    assert client.get(f"/api/volunteers/{vol['id']}", headers=headers["ADMIN"]).json["userId"] == r.json["user"]["id"]

    r = client.post(url, headers=headers["ADMIN"])
    assert r.status_code == 409

    with session_scope(app) as s:
        log = s.query(AuditLog).filter(AuditLog.entity_type == "User", AuditLog.action == "CREATE").one()
        assert log.changes == {"convertedFromVolunteer": "New Person", "globalRole": "VOLUNTEER"}


def test_convert_requires_email(client, headers):
    vol = _volunteer(client, headers)
    r = client.post(f"/api/volunteers/{vol['id']}/convert", headers=headers["ADMIN"])
    assert r.status_code == 400


def test_convert_links_and_reactivates_existing_member(app, client, headers, users, smtp_outbox):
    vol = _volunteer(client, headers, email="ghost@example.com", name="Ghost")
    with session_scope(app) as s:
        s.add(User(email="ghost@example.com", name="Ghost", global_role="VIEWER", deleted_at=datetime.utcnow()))

    r = client.post(f"/api/volunteers/{vol['id']}/convert", headers=headers["ADMIN"])
    assert r.status_code == 200
    assert r.json["linked"] is True
    assert r.json["message"] == "Volunteer linked to existing member account"

    with session_scope(app) as s:
        ghost = unfiltered_users(s).filter(User.email == "ghost@example.com").one()
        assert ghost.deleted_at is None
        log = (
            s.query(AuditLog)
            .filter(AuditLog.entity_type == "Volunteer", AuditLog.action == "UPDATE")
            .one()
        )
        assert log.changes == {
            "action": "linked_to_existing_member",
            "memberEmail": "ghost@example.com",
            "reactivated": True,
        }
    assert smtp_outbox[-1]["Subject"] == "Congratulations! You've been promoted to Member"
