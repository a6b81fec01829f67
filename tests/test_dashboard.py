from datetime import datetime, timedelta

from app.meetup.db import session_scope
from app.meetup.models import AuditLog, User
from app.meetup.modules.checklists.models import SOPChecklist, SOPTask
from app.meetup.modules.dashboard.service import build_dashboard
from app.meetup.modules.events.models import Event
from app.meetup.modules.speakers.models import EventSpeaker, Speaker
from app.meetup.modules.volunteers.models import Volunteer


def _seed(app, users, now):
    with session_scope(app) as s:
        past = Event(title="Past", date=now - timedelta(days=3), status="COMPLETED", created_by_user_id=users["EVENT_LEAD"])
        done = Event(title="Done early", date=now + timedelta(days=1), status="COMPLETED")
        nxt = Event(title="Next", date=now + timedelta(days=5), status="SCHEDULED")
        later = Event(title="Later", date=now + timedelta(days=40), status="SCHEDULED")
        s.add_all([past, done, nxt, later])
        s.flush()

        checklist = SOPChecklist(event_id=nxt.id, title="Ops")
        s.add(checklist)
        s.flush()
        lead = users["EVENT_LEAD"]
        s.add_all(
            [
                SOPTask(checklist_id=checklist.id, title="Late", status="TODO", deadline=now - timedelta(days=2), owner_id=lead),
                SOPTask(checklist_id=checklist.id, title="Soon", status="IN_PROGRESS", deadline=now + timedelta(days=1), assignee_id=lead),
                SOPTask(checklist_id=checklist.id, title="Someday", status="TODO", owner_id=lead),
                SOPTask(checklist_id=checklist.id, title="Finished", status="DONE", completed_at=now - timedelta(days=1), owner_id=lead),
                SOPTask(checklist_id=checklist.id, title="Old finish", status="DONE", completed_at=now - timedelta(days=9)),
                SOPTask(checklist_id=checklist.id, title="Other person", status="TODO", owner_id=users["ADMIN"]),
            ]
        )

        ada = Speaker(name="Ada")
        bob = Speaker(name="Bob")
        s.add_all([ada, bob])
        s.flush()
        s.add_all(
            [
                EventSpeaker(event_id=nxt.id, speaker_id=ada.id, status="CONFIRMED"),
                EventSpeaker(event_id=nxt.id, speaker_id=bob.id, status="INVITED"),
            ]
        )
        s.add_all([Volunteer(name="V1"), Volunteer(name="V2")])


def test_build_dashboard(app, users):
    now = datetime(2030, 1, 10, 12, 0, 0)
    _seed(app, users, now)

    with session_scope(app) as s:
        data = build_dashboard(s, s.get(User, users["EVENT_LEAD"]), now=now)

    nxt = data["nextEvent"]
    assert nxt["title"] == "Next"
    assert (nxt["tasksCompleted"], nxt["tasksTotal"], nxt["progress"]) == (2, 6, 33)

    assert [t["title"] for t in data["myTasks"]] == ["Late", "Soon", "Someday"]
    assert data["myTasks"][1]["owner"] == "Event Lead"
    assert [t["title"] for t in data["overdueTasks"]] == ["Late"]

    assert data["stats"] == {
        "totalEvents": 4,
        "totalSpeakers": 1,
        "totalVolunteers": 2,
        "tasksCompletedThisWeek": 1,
    }


def test_dashboard_without_events(app, users):
    with session_scope(app) as s:
        data = build_dashboard(s, s.get(User, users["VIEWER"]))
    assert data["nextEvent"] is None
    assert data["myTasks"] == []
    assert data["recentActivity"] == []


def test_dashboard_endpoint(client, headers, make_event):
    assert client.get("/api/dashboard").status_code == 401
    make_event(title="Upcoming", date="2099-01-01T10:00:00Z")

    r = client.get("/api/dashboard", headers=headers["VIEWER"])
    assert r.status_code == 200
    assert r.json["nextEvent"]["title"] == "Upcoming"
    assert r.json["nextEvent"]["progress"] == 0
    assert r.json["recentActivity"][0]["entityType"] == "Event"


def test_recent_activity_is_limited(app, client, headers):
    with session_scope(app) as s:
        for i in range(12):
            s.add(AuditLog(action="CREATE", entity_type="Speaker", entity_id=str(i)))
    r = client.get("/api/dashboard", headers=headers["VIEWER"])
    assert len(r.json["recentActivity"]) == 10
