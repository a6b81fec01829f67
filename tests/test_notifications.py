from datetime import datetime, timedelta

from app.meetup.db import session_scope
from app.meetup.modules.notifications import discord, mailer
from app.meetup.modules.notifications.ics import escape_ics, generate_ics
from app.meetup.modules.notifications.models import EmailLog

CRON = {"Authorization": "Bearer cron-secret"}


def _iso(dt):
    return dt.replace(microsecond=0).isoformat() + "Z"


# ---------- ics ----------
def test_generate_ics():
    ics = generate_ics(
        "Kotlin, Compose; and more",
        datetime(2030, 6, 1, 18, 0),
        description="Line one\nLine two",
        location="Hall A",
        url="https://example.com/events/1",
    )
    lines = ics.split("\r\n")
    assert lines[0] == "BEGIN:VCALENDAR"
    assert lines[-1] == "END:VCALENDAR"
    assert "DTSTART:20300601T180000Z" in lines
    assert "DTEND:20300601T200000Z" in lines
    assert "SUMMARY:Kotlin\\, Compose\\; and more" in lines
    assert "DESCRIPTION:Line one\\nLine two" in lines
    assert "LOCATION:Hall A" in lines
    assert any(l.startswith("UID:") and l.endswith("@meetup-manager") for l in lines)


def test_escape_ics_backslash_first():
    assert escape_ics("a\\b,c") == "a\\\\b\\,c"


# ---------- mailer ----------
def test_html_to_text():
    html = "<html><head><style>p{}</style></head><body><p>Hi &amp; welcome</p><a href=\"https://x.io\">Open</a><br>Bye</body></html>"
    assert mailer.html_to_text(html) == "Hi & welcome\nOpen (https://x.io)\nBye"


def test_send_email_without_smtp_logs_nothing(app):
    with app.app_context():
        result = mailer.send_email("a@example.com", "Hi", "<p>x</p>", template="test")
    assert result.success is False
    assert result.error == "SMTP not configured"
    with session_scope(app) as s:
        assert s.query(EmailLog).count() == 0


def test_send_email_records_sent_log(app, smtp_outbox):
    with app.app_context():
        result = mailer.send_email(["a@example.com", "b@example.com"], "Hi", "<p>Hello</p>", template="test", cc="c@example.com")
    assert result.success is True
    assert result.message_id
    msg = smtp_outbox[0]
    assert msg["To"] == "a@example.com, b@example.com"
    assert msg["Cc"] == "c@example.com"
    assert msg["From"] == "mailer@example.com"
    with session_scope(app) as s:
        log = s.query(EmailLog).one()
        assert (log.status, log.template, log.to) == ("SENT", "test", "a@example.com, b@example.com")
        assert log.sent_at is not None


def test_send_email_failure_is_logged(app, monkeypatch):
    app.config.update(SMTP_HOST="smtp.example.com", SMTP_USER="mailer@example.com", SMTP_PASS="secret")

    def boom():
        raise OSError("connection refused")

    monkeypatch.setattr(mailer, "_connect", boom)
    with app.app_context():
        result = mailer.send_email("a@example.com", "Hi", "<p>x</p>", template="test")
    assert result.success is False
    with session_scope(app) as s:
        log = s.query(EmailLog).one()
        assert log.status == "FAILED"
        assert log.error == "connection refused"


def test_render_and_send_uses_meetup_name(app, smtp_outbox):
    from app.meetup.modules.settings.models import AppSetting

    with session_scope(app) as s:
        s.add(AppSetting(key="meetup_name", value="KUG Chennai"))
    with app.test_request_context():
        result = mailer.render_and_send("a@example.com", "Test", "test", {"email": "a@example.com", "sent_at": "now"})
    assert result.success is True
    assert smtp_outbox[0]["From"] == "KUG Chennai <mailer@example.com>"


# ---------- email endpoints ----------
def test_email_status_endpoint(client, headers, smtp_outbox):
    assert client.get("/api/email/test", headers=headers["EVENT_LEAD"]).status_code == 403
    r = client.get("/api/email/test", headers=headers["ADMIN"])
    assert r.json == {
        "configured": True,
        "connected": True,
        "error": None,
        "smtpHost": "smtp.example.com",
        "smtpUser": "mai***",
    }


def test_email_status_not_configured(client, headers):
    r = client.get("/api/email/test", headers=headers["ADMIN"])
    assert r.json["configured"] is False
    r = client.post("/api/email/test", json={}, headers=headers["ADMIN"])
    assert r.status_code == 400
    assert r.json["configured"] is False


def test_send_test_email(client, headers, smtp_outbox):
    r = client.post("/api/email/test", json={"email": "not-an-email"}, headers=headers["ADMIN"])
    assert r.status_code == 400
    assert r.json["error"] == "Invalid email address format"

    r = client.post("/api/email/test", json={}, headers=headers["ADMIN"])
    assert r.status_code == 200
    assert r.json["success"] is True
    assert r.json["sentTo"] == "admin@example.com"
    assert smtp_outbox[-1]["Subject"] == "Test Email - Meetup Manager"


def test_send_test_email_connection_failure(app, client, headers, monkeypatch):
    app.config.update(SMTP_HOST="smtp.example.com", SMTP_USER="mailer@example.com", SMTP_PASS="secret")

    def boom():
        raise OSError("timed out")

    monkeypatch.setattr(mailer, "_connect", boom)
    r = client.post("/api/email/test", json={}, headers=headers["ADMIN"])
    assert r.status_code == 500
    assert r.json["error"] == "SMTP connection failed: timed out"


def test_email_log_endpoint(client, headers, smtp_outbox):
    for addr in ("a@example.com", "b@example.com", "c@example.com"):
        client.post("/api/email/test", json={"email": addr}, headers=headers["ADMIN"])

    r = client.get("/api/email/log?limit=2", headers=headers["ADMIN"]).json
    assert r["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}
    assert [l["to"] for l in r["logs"]] == ["c@example.com", "b@example.com"]

    r = client.get("/api/email/log?limit=500&status=SENT&template=test", headers=headers["ADMIN"]).json
    assert r["pagination"]["limit"] == 100
    assert r["pagination"]["total"] == 3

    assert client.get("/api/email/log?status=FAILED", headers=headers["ADMIN"]).json["logs"] == []
    assert client.get("/api/email/log?page=x", headers=headers["ADMIN"]).status_code == 400


# ---------- discord ----------
def test_discord_config_roundtrip(client, headers):
    r = client.get("/api/discord/config", headers=headers["ADMIN"])
    assert r.json == {"botToken": None, "guildId": None, "channelId": None, "reminderEnabled": False}

    r = client.post(
        "/api/discord/config",
        json={"botToken": " abc ", "channelId": "123", "reminderEnabled": 1},
        headers=headers["ADMIN"],
    )
    assert r.status_code == 200
    assert r.json["botToken"] == "********"
    assert r.json["channelId"] == "123"
    assert r.json["reminderEnabled"] is True

    r = client.post("/api/discord/config", json={"channelId": "456"}, headers=headers["ADMIN"])
    assert r.json["id"] == client.get("/api/discord/config", headers=headers["ADMIN"]).json["id"]
    assert r.json["channelId"] == "456"
    assert r.json["botToken"] == "********"

    assert client.post("/api/discord/config", json={}, headers=headers["EVENT_LEAD"]).status_code == 403


def test_discord_test_endpoint(app, client, headers, discord_calls, monkeypatch):
    r = client.post("/api/discord/test", headers=headers["ADMIN"])
    assert r.status_code == 400

    client.post("/api/discord/config", json={"channelId": "123"}, headers=headers["ADMIN"])
    r = client.post("/api/discord/test", headers=headers["ADMIN"])
    assert r.status_code == 400
    assert r.json["error"].startswith("No bot token configured")

    app.config["DISCORD_BOT_TOKEN"] = "env-token"
    r = client.post("/api/discord/test", headers=headers["ADMIN"])
    assert r.json == {"success": True}
    assert discord_calls[-1] == ("123", {"content": "Meetup Manager bot is connected!"}, "env-token")

    monkeypatch.setattr(discord, "_post", lambda *a, **kw: False)
    assert client.post("/api/discord/test", headers=headers["ADMIN"]).status_code == 500


def test_discord_helpers_need_a_token(app, discord_calls):
    notice = discord.TaskNotice(title="t", deadline=None, event_title="e", person_name="p")
    with app.app_context():
        assert discord.notify_task_assigned(notice, "1") is False
        assert discord.notify_overdue_tasks([notice], "1", "tok") is True
        assert discord.notify_deadline_approaching([], "1", "tok") is True
    assert len(discord_calls) == 1
    embed = discord_calls[0][1]["embeds"][0]
    assert embed["title"] == "Overdue Tasks"
    assert "Overdue since: No deadline" in embed["fields"][0]["value"]


def test_overdue_embed_truncates_fields(app, discord_calls):
    notices = [discord.TaskNotice(title=f"t{i}", deadline=None, event_title="e", person_name="p") for i in range(13)]
    with app.app_context():
        discord.notify_overdue_tasks(notices, "1", "tok")
    fields = discord_calls[0][1]["embeds"][0]["fields"]
    assert len(fields) == 11
    assert fields[-1]["value"] == "3 more overdue task(s)"


# ---------- cron ----------
def test_cron_secret_checks(app, client):
    assert client.get("/api/cron/event-reminders").status_code == 401
    assert client.get("/api/cron/event-reminders?secret=wrong").status_code == 401
    r = client.get("/api/cron/event-reminders?secret=cron-secret")
    assert r.json == {"skipped": True, "reason": "SMTP not configured"}
    assert client.get("/api/cron/weekly-digest", headers=CRON).json["skipped"] is True

    app.config["CRON_SECRET"] = ""
    r = client.get("/api/cron/event-reminders")
    assert r.status_code == 500
    assert r.json["error"] == "Server misconfiguration"
    assert client.get("/api/cron/reminders").status_code == 200


def test_cron_event_reminders(client, headers, make_event, smtp_outbox):
    soon = make_event(title="Tomorrow", date=_iso(datetime.utcnow() + timedelta(days=1)))
    make_event(title="Next month", date=_iso(datetime.utcnow() + timedelta(days=30)))
    speaker = client.post("/api/speakers", json={"name": "Ada", "email": "ada@example.com"}, headers=headers["EVENT_LEAD"]).json
    link = client.post(f"/api/events/{soon['id']}/speakers", json={"speakerId": speaker["id"]}, headers=headers["EVENT_LEAD"]).json
    client.patch(f"/api/events/{soon['id']}/speakers/{link['id']}", json={"status": "CONFIRMED"}, headers=headers["EVENT_LEAD"])
    smtp_outbox.clear()

    r = client.get("/api/cron/event-reminders", headers=CRON)
    assert r.status_code == 200
    assert (r.json["eventsFound"], r.json["emailsSent"]) == (1, 1)

    msg = smtp_outbox[0]
    assert msg["To"] == "event_lead@example.com, ada@example.com"
    assert msg["Subject"] == "Reminder: Tomorrow is in 1 day"
    attachments = {part.get_filename(): part for part in msg.iter_attachments()}
    assert "BEGIN:VCALENDAR" in attachments["event.ics"].get_content()


def test_cron_reminders_discord_and_email(client, headers, users, make_event, smtp_outbox, discord_calls):
    now = datetime.utcnow()
    event = make_event(title="Meetup", date=_iso(now + timedelta(days=10)))
    checklist = client.post("/api/checklists", json={"eventId": event["id"], "title": "Ops"}, headers=headers["EVENT_LEAD"]).json
    base = f"/api/checklists/{checklist['id']}/tasks"
    for title, deadline in (
        ("Overdue thing", now - timedelta(days=4)),
        ("Due soon", now + timedelta(days=1, hours=2)),
        ("Far away", now + timedelta(days=9)),
    ):
        client.post(base, json={"title": title, "deadline": _iso(deadline), "assigneeId": users["ADMIN"]}, headers=headers["EVENT_LEAD"])
    done = client.post(base, json={"title": "Finished", "deadline": _iso(now - timedelta(days=1))}, headers=headers["EVENT_LEAD"]).json
    client.patch(f"{base}/{done['id']}", json={"status": "DONE"}, headers=headers["EVENT_LEAD"])

    client.post(
        "/api/discord/config",
        json={"botToken": "tok", "channelId": "chan", "reminderEnabled": True},
        headers=headers["ADMIN"],
    )
    smtp_outbox.clear()
    discord_calls.clear()

    r = client.get("/api/cron/reminders", headers=CRON)
    assert r.json == {"approaching": 1, "overdue": 1, "approachingSent": True, "overdueSent": True, "emailsSent": 2}

    titles = [body["embeds"][0]["title"] for _, body, _ in discord_calls]
    assert titles == ["Deadlines Approaching", "Overdue Tasks"]
    assert "Owner: Event Lead" in discord_calls[1][1]["embeds"][0]["fields"][0]["value"]

    subjects = {m["Subject"]: m for m in smtp_outbox}
    overdue = subjects["OVERDUE: Overdue thing"]
    assert overdue["To"] == "admin@example.com"
    assert overdue["Cc"] == "event_lead@example.com"
    assert subjects["Task due soon: Due soon"]["To"] == "admin@example.com"
    assert subjects["Task due soon: Due soon"]["Cc"] is None


def test_cron_reminders_skip_discord_when_disabled(client, headers, discord_calls):
    client.post("/api/discord/config", json={"botToken": "tok", "channelId": "chan"}, headers=headers["ADMIN"])
    r = client.get("/api/cron/reminders", headers=CRON)
    assert r.json["approachingSent"] is False
    assert discord_calls == []


def test_cron_weekly_digest(client, smtp_outbox):
    r = client.get("/api/cron/weekly-digest", headers=CRON)
    assert r.status_code == 200
    assert (r.json["usersProcessed"], r.json["emailsSent"]) == (4, 4)
    recipients = sorted(m["To"] for m in smtp_outbox)
    assert recipients == ["admin@example.com", "event_lead@example.com", "super_admin@example.com", "volunteer@example.com"]
    assert all(m["Subject"].startswith("Weekly digest:") for m in smtp_outbox)
