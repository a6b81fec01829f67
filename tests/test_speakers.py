from app.meetup.db import session_scope
from app.meetup.models import AuditLog


def test_speaker_crud(app, client, headers):
    r = client.post("/api/speakers", json={"bio": "no name"}, headers=headers["EVENT_LEAD"])
    assert r.status_code == 400
    assert r.json["error"] == "Name is required"
    assert client.post("/api/speakers", json={"name": "x"}, headers=headers["VOLUNTEER"]).status_code == 403

    r = client.post(
        "/api/speakers",
        json={"name": " Grace ", "email": "grace@example.com", "topic": "Coroutines", "bio": ""},
        headers=headers["EVENT_LEAD"],
    )
    assert r.status_code == 201
    speaker = r.json
    assert speaker["name"] == "Grace"
    assert speaker["bio"] is None

    r = client.patch(f"/api/speakers/{speaker['id']}", json={"name": ""}, headers=headers["EVENT_LEAD"])
    assert r.status_code == 400
    assert r.json["error"] == "Name cannot be empty"

    r = client.patch(f"/api/speakers/{speaker['id']}", json={"topic": "Flows"}, headers=headers["EVENT_LEAD"])
    assert r.status_code == 200
    assert r.json["topic"] == "Flows"
    assert r.json["eventCount"] == 0

    assert client.delete(f"/api/speakers/{speaker['id']}", headers=headers["EVENT_LEAD"]).status_code == 200
    assert client.get(f"/api/speakers/{speaker['id']}", headers=headers["VIEWER"]).status_code == 404

    with session_scope(app) as s:
        changes = [
            log.changes
            for log in s.query(AuditLog).filter(AuditLog.entity_type == "Speaker", AuditLog.action == "UPDATE")
        ]
    assert changes == [{"topic": {"from": "Coroutines", "to": "Flows"}}]


def test_speaker_list_and_detail_include_events(client, headers, make_event):
    speaker = client.post("/api/speakers", json={"name": "Ada"}, headers=headers["EVENT_LEAD"]).json
    client.post("/api/speakers", json={"name": "Bob"}, headers=headers["EVENT_LEAD"])
    for title in ("Spring", "Summer"):
        event = make_event(title=title)
        link = client.post(
            f"/api/events/{event['id']}/speakers", json={"speakerId": speaker["id"]}, headers=headers["EVENT_LEAD"]
        ).json
    client.patch(
        f"/api/events/{event['id']}/speakers/{link['id']}", json={"status": "CONFIRMED"}, headers=headers["EVENT_LEAD"]
    )

    rows = client.get("/api/speakers", headers=headers["VIEWER"]).json
    assert [r["name"] for r in rows] == ["Ada", "Bob"]
    assert rows[0]["eventCount"] == 2
    assert rows[0]["statusCounts"] == {"INVITED": 1, "CONFIRMED": 1}

    detail = client.get(f"/api/speakers/{speaker['id']}", headers=headers["VIEWER"]).json
    assert sorted(e["event"]["title"] for e in detail["events"]) == ["Spring", "Summer"]


def test_speaker_invitation_email_on_link(client, headers, make_event, smtp_outbox):
    event = make_event(title="Droidcon")
    speaker = client.post(
        "/api/speakers", json={"name": "Ada", "email": "ada@example.com"}, headers=headers["EVENT_LEAD"]
    ).json
    before = len(smtp_outbox)

    client.post(f"/api/events/{event['id']}/speakers", json={"speakerId": speaker["id"]}, headers=headers["EVENT_LEAD"])
    assert len(smtp_outbox) == before + 1
    assert smtp_outbox[-1]["To"] == "ada@example.com"
    assert "Droidcon" in smtp_outbox[-1]["Subject"]
