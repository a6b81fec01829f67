from datetime import datetime, timedelta

from app.meetup.db import session_scope
from app.meetup.models import RefreshToken, User
from app.meetup.modules.volunteers.models import Volunteer


def test_token_exchange_for_known_user(client):
    r = client.post("/api/auth/token", json={"email": "Admin@Example.com", "name": "Ada", "googleId": "g-1"})
    assert r.status_code == 200
    body = r.json
    assert body["user"]["email"] == "admin@example.com"
    assert body["user"]["name"] == "Ada"
    assert body["refreshToken"]

    r = client.get("/api/dashboard", headers={"Authorization": f"Bearer {body['accessToken']}"})
    assert r.status_code == 200


def test_token_exchange_rejects_unknown_email(client):
    r = client.post("/api/auth/token", json={"email": "stranger@example.com"})
    assert r.status_code == 401


def test_token_exchange_requires_email(client):
    r = client.post("/api/auth/token", json={})
    assert r.status_code == 400


def test_token_exchange_creates_super_admin(app, client):
    app.config["SUPER_ADMIN_EMAIL"] = "boss@example.com"
    r = client.post("/api/auth/token", json={"email": "boss@example.com"})
    assert r.status_code == 200
    assert r.json["user"]["globalRole"] == "SUPER_ADMIN"


def test_token_exchange_links_invited_volunteer(app, client):
    with session_scope(app) as s:
        s.add(Volunteer(name="Val", email="val@example.com"))
    r = client.post("/api/auth/token", json={"email": "val@example.com", "name": "Val"})
    assert r.status_code == 200
    assert r.json["user"]["globalRole"] == "VOLUNTEER"
    with session_scope(app) as s:
        v = s.query(Volunteer).filter(Volunteer.email == "val@example.com").one()
        assert v.user_id == r.json["user"]["id"]


def test_token_exchange_rejects_deactivated_member(app, client, users):
    with session_scope(app) as s:
        s.get(User, users["VIEWER"]).deleted_at = datetime.utcnow()
    r = client.post("/api/auth/token", json={"email": "viewer@example.com"})
    assert r.status_code == 401
    assert "deactivated" in r.json["error"]


def test_exchange_secret_enforced(app, client):
    app.config["AUTH_EXCHANGE_SECRET"] = "s3cret"
    r = client.post("/api/auth/token", json={"email": "admin@example.com"})
    assert r.status_code == 401
    r = client.post(
        "/api/auth/token",
        json={"email": "admin@example.com"},
        headers={"X-Auth-Exchange-Secret": "s3cret"},
    )
    assert r.status_code == 200


def test_refresh_rotates_token(app, client):
    first = client.post("/api/auth/token", json={"email": "admin@example.com"}).json
    r = client.post("/api/auth/refresh", json={"refreshToken": first["refreshToken"]})
    assert r.status_code == 200
    assert r.json["refreshToken"] != first["refreshToken"]

    # the old token is gone
    r = client.post("/api/auth/refresh", json={"refreshToken": first["refreshToken"]})
    assert r.status_code == 401


def test_refresh_expired(app, client):
    first = client.post("/api/auth/token", json={"email": "admin@example.com"}).json
    with session_scope(app) as s:
        row = s.query(RefreshToken).filter(RefreshToken.token == first["refreshToken"]).one()
        row.expires_at = datetime.utcnow() - timedelta(seconds=1)
    r = client.post("/api/auth/refresh", json={"refreshToken": first["refreshToken"]})
    assert r.status_code == 401
    assert r.json["error"] == "Refresh token expired"


def test_refresh_requires_token(client):
    assert client.post("/api/auth/refresh", json={}).status_code == 400


def test_bad_bearer_token_is_unauthorized(client):
    r = client.get("/api/events", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_token_exchange_secret_header(app, client):
    app.config["AUTH_EXCHANGE_SECRET"] = "s3cret"
    body = {"email": "admin@example.com"}

    assert client.post("/api/auth/token", json=body).status_code == 401
    r = client.post("/api/auth/token", json=body, headers={"X-Auth-Exchange-Secret": "sécret"})
    assert r.status_code == 401
    assert r.json["error"] == "Unauthorized"
    r = client.post("/api/auth/token", json=body, headers={"X-Auth-Exchange-Secret": "s3cret"})
    assert r.status_code == 200


def test_login_rate_limit_forgets_idle_addresses(app):
    from app.meetup import auth as auth_module

    auth_module._login_attempts["10.0.0.9"] = [datetime.utcnow() - timedelta(minutes=10)]
    assert auth_module._check_rate_limit("10.0.0.9") is False
    assert "10.0.0.9" not in auth_module._login_attempts
    assert auth_module._check_rate_limit("10.0.0.10") is False
    assert "10.0.0.10" not in auth_module._login_attempts
