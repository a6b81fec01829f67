from datetime import datetime

import pytest
from werkzeug.security import generate_password_hash

from app.meetup import create_app
from app.meetup import auth as auth_module
from app.meetup.db import session_scope
from app.meetup.models import Base, User
from app.meetup.security import issue_access_token

ROLES = ("SUPER_ADMIN", "ADMIN", "EVENT_LEAD", "VOLUNTEER", "VIEWER")


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("CRON_SECRET", "cron-secret")
    for k in ("SMTP_HOST", "SMTP_USER", "SMTP_PASS", "SMTP_FROM", "DISCORD_BOT_TOKEN", "AUTH_EXCHANGE_SECRET", "SUPER_ADMIN_EMAIL"):
        monkeypatch.delenv(k, raising=False)
    auth_module._login_attempts.clear()

    app = create_app()
    app.config["TESTING"] = True

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    now = datetime.utcnow()
    with session_scope(app) as s:
        for role in ROLES:
            s.add(
                User(
                    email=f"{role.lower()}@example.com",
                    name=role.replace("_", " ").title(),
                    password_hash=generate_password_hash("pw"),
                    global_role=role,
                    created_at=now,
                    updated_at=now,
                )
            )
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def users(app):
    """role -> user id"""
    with session_scope(app) as s:
        return {u.global_role: u.id for u in s.query(User).all()}


@pytest.fixture()
def headers(app, users):
    """role -> bearer auth headers"""
    out = {}
    with app.app_context():
        for role, uid in users.items():
            token = issue_access_token(uid, f"{role.lower()}@example.com", role)
            out[role] = {"Authorization": f"Bearer {token}"}
    return out


@pytest.fixture()
def make_event(client, headers):
    def _make(title="Kotlin Night", date="2030-06-01T18:00:00Z", role="EVENT_LEAD", **extra):
        r = client.post("/api/events", json={"title": title, "date": date, **extra}, headers=headers[role])
        assert r.status_code == 201, r.json
        return r.json

    return _make


@pytest.fixture()
def smtp_outbox(app, monkeypatch):
    """Configure SMTP and capture sent messages instead of talking to a server."""
    from app.meetup.modules.notifications import mailer

    sent = []

    class FakeSMTP:
        def send_message(self, msg):
            sent.append(msg)

        def noop(self):
            return (250, b"ok")

        def quit(self):
            return None

    app.config.update(SMTP_HOST="smtp.example.com", SMTP_USER="mailer@example.com", SMTP_PASS="secret")
    monkeypatch.setattr(mailer, "_connect", lambda: FakeSMTP())
    return sent


@pytest.fixture()
def discord_calls(monkeypatch):
    """Capture Discord bot API posts as (channel_id, body, token)."""
    from app.meetup.modules.notifications import discord

    calls = []

    def fake_post(channel_id, body, token, timeout_seconds=15):
        calls.append((channel_id, body, token))
        return True

    monkeypatch.setattr(discord, "_post", fake_post)
    return calls
