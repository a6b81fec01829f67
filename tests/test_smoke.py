def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_plain(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_api_requires_auth(client):
    r = client.get("/api/events")
    assert r.status_code == 401
    assert r.json["error"] == "Unauthorized"


def test_unknown_route_is_json_404(client, headers):
    r = client.get("/api/nope", headers=headers["ADMIN"])
    assert r.status_code == 404
    assert "error" in r.json


def test_session_login_and_csrf(client):
    r = client.post("/auth/login", json={"email": "event_lead@example.com", "password": "pw"})
    assert r.status_code == 200
    csrf = r.json["csrfToken"]
    assert r.json["user"]["globalRole"] == "EVENT_LEAD"

    # cookie-authenticated writes need the CSRF token
    r = client.post("/api/speakers", json={"name": "Ada"})
    assert r.status_code == 400
    assert "CSRF" in r.json["error"]

    r = client.post("/api/speakers", json={"name": "Ada"}, headers={"X-CSRF-Token": csrf})
    assert r.status_code == 201

    r = client.get("/auth/me")
    assert r.json["user"]["email"] == "event_lead@example.com"

    client.post("/auth/logout")
    assert client.get("/api/speakers").status_code == 401


def test_login_rejects_bad_password(client):
    r = client.post("/auth/login", json={"email": "admin@example.com", "password": "nope"})
    assert r.status_code == 401
    assert r.json["error"] == "Invalid credentials"


def test_login_rate_limited(client):
    for _ in range(5):
        client.post("/auth/login", json={"email": "admin@example.com", "password": "nope"})
    r = client.post("/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 429


def test_bearer_requests_skip_csrf(client, headers):
    r = client.post("/api/speakers", json={"name": "Grace"}, headers=headers["EVENT_LEAD"])
    assert r.status_code == 201
