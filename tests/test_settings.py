import base64

from app.meetup.db import session_scope
from app.meetup.modules.settings.models import AppSetting
from app.meetup.modules.settings.service import DEFAULT_SETTINGS, decode_data_uri, seed_default_settings

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
PNG_URI = "data:image/png;base64," + base64.b64encode(PNG).decode()


def test_decode_data_uri():
    assert decode_data_uri(PNG_URI) == ("image/png", PNG)
    assert decode_data_uri("data:IMAGE/SVG+XML;base64,PHN2Zy8+") == ("image/svg+xml", b"<svg/>")
    assert decode_data_uri("https://example.com/logo.png") is None
    assert decode_data_uri("data:image/png;base64,abc") is None
    assert decode_data_uri(None) is None


def test_seed_default_settings_keeps_existing(app):
    with session_scope(app) as s:
        s.add(AppSetting(key="meetup_name", value="KUG Chennai"))
    with session_scope(app) as s:
        assert seed_default_settings(s) == len(DEFAULT_SETTINGS) - 1
    with session_scope(app) as s:
        assert seed_default_settings(s) == 0
        values = {r.key: r.value for r in s.query(AppSetting).all()}
    assert values["meetup_name"] == "KUG Chennai"
    assert values["min_volunteer_tasks"] == "7"


def test_public_settings_need_no_auth(client):
    r = client.get("/api/settings/public")
    assert r.status_code == 200
    assert r.json == {"meetupName": "Event Manager", "logoLight": None, "logoDark": None}


def test_patch_setting_rules(client, headers):
    body = {"key": "meetup_name", "value": "KUG Chennai"}
    r = client.patch("/api/settings", json=body, headers=headers["ADMIN"])
    assert r.status_code == 403
    assert r.json["error"] == "Forbidden: Super Admin role required"

    r = client.patch("/api/settings", json={"key": "meetup_name", "value": 5}, headers=headers["SUPER_ADMIN"])
    assert r.status_code == 400
    assert r.json["error"] == "key and value are required strings"

    r = client.patch("/api/settings", json={"key": "smtp_pass", "value": "x"}, headers=headers["SUPER_ADMIN"])
    assert r.status_code == 400
    assert r.json["error"] == "Unknown setting key"

    r = client.patch(
        "/api/settings",
        json={"key": "logo_dark", "value": "data:image/png;base64," + "A" * 300_000},
        headers=headers["SUPER_ADMIN"],
    )
    assert r.status_code == 400
    assert r.json["error"].startswith("Logo image is too large")

    r = client.patch("/api/settings", json=body, headers=headers["SUPER_ADMIN"])
    assert r.status_code == 200
    assert r.json["key"] == "meetup_name"
    assert r.json["value"] == "KUG Chennai"

    r = client.patch("/api/settings", json={**body, "value": "KUG"}, headers=headers["SUPER_ADMIN"])
    assert r.json["value"] == "KUG"

    assert client.get("/api/settings", headers=headers["VIEWER"]).json == {"meetup_name": "KUG"}
    assert client.get("/api/settings/public").json["meetupName"] == "KUG"


def test_logo_is_served_as_image(client, headers):
    assert client.get("/api/settings/logo").status_code == 404

    client.patch("/api/settings", json={"key": "logo_light", "value": PNG_URI}, headers=headers["SUPER_ADMIN"])
    r = client.get("/api/settings/logo")
    assert r.status_code == 200
    assert r.mimetype == "image/png"
    assert r.data == PNG
    assert "max-age=3600" in r.headers["Cache-Control"]

    assert client.get("/api/settings/logo?variant=dark").status_code == 404


def test_logo_update_is_not_copied_into_audit(app, client, headers):
    from app.meetup.models import AuditLog

    client.patch("/api/settings", json={"key": "logo_light", "value": PNG_URI}, headers=headers["SUPER_ADMIN"])
    with session_scope(app) as s:
        log = s.query(AuditLog).filter(AuditLog.entity_type == "AppSetting").one()
        assert log.changes == {"value": "(logo image updated)"}
