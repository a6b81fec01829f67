import pytest

from app.meetup.config import load_settings
from app.meetup.modules.settings.service import DEFAULT_SETTINGS
from scripts.init_db import SeedReport, seed_only
from scripts.start import gunicorn_argv, parse_port


def test_gunicorn_argv_uses_settings(monkeypatch):
    monkeypatch.setenv("WEB_CONCURRENCY", "4")
    monkeypatch.setenv("GUNICORN_TIMEOUT", "90")
    argv = gunicorn_argv(load_settings(), 9000)
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert "--bind=0.0.0.0:9000" in argv
    assert "--workers=4" in argv
    assert "--timeout=90" in argv


def test_gunicorn_defaults(monkeypatch):
    monkeypatch.delenv("WEB_CONCURRENCY", raising=False)
    monkeypatch.setenv("GUNICORN_TIMEOUT", "soon")
    argv = gunicorn_argv(load_settings(), 8080)
    assert "--workers=2" in argv
    assert "--timeout=60" in argv


def test_parse_port():
    assert parse_port(None) == 8080
    assert parse_port(" 5000 ") == 5000
    with pytest.raises(ValueError):
        parse_port("0")
    with pytest.raises(ValueError):
        parse_port("http")


def test_seed_reports_what_it_created(app, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "Owner@Example.com")
    monkeypatch.delenv("ADMIN_PASSWORD", raising=False)
    url = app.config["DATABASE_URL"]

    first = seed_only(database_url=url)
    assert first == SeedReport(admin="created", templates_created=1, settings_created=len(DEFAULT_SETTINGS))

    second = seed_only(database_url=url)
    assert second == SeedReport(admin="updated", templates_created=0, settings_created=0)
    assert second.summary() == "super admin updated, 0 template(s) created, 0 setting(s) created"


def test_seed_without_admin_email(app, monkeypatch):
    monkeypatch.delenv("ADMIN_EMAIL", raising=False)
    monkeypatch.delenv("SUPER_ADMIN_EMAIL", raising=False)
    assert seed_only(database_url=app.config["DATABASE_URL"]).admin == "skipped"
