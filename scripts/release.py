"""
Release phase for Meetup Manager: upgrade the schema to head, then seed.

DATABASE_URL is mandatory here, and production refuses sqlite.

    python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.meetup.config import load_settings  # noqa: E402


def _database_url() -> str:
    settings = load_settings()
    if not (os.environ.get("DATABASE_URL") or "").strip():
        raise RuntimeError("DATABASE_URL must be set for the release phase.")
    if settings.env in ("prod", "production") and settings.database_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against sqlite in production; point DATABASE_URL at Postgres.")
    return settings.database_url


def _upgrade_schema(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    cfg.attributes["url_from_caller"] = True
    command.upgrade(cfg, "head")


def run_release():
    """Returns the SeedReport of the seed step."""
    from scripts import init_db

    db_url = _database_url()
    print("[release] alembic upgrade head", flush=True)
    _upgrade_schema(db_url)
    report = init_db.seed_only(database_url=db_url)
    print(f"[release] seed: {report.summary()}", flush=True)
    return report


if __name__ == "__main__":
    run_release()
