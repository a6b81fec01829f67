import os
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.meetup.models import User
from app.meetup.modules.settings.service import seed_default_settings
from app.meetup.modules.sop_templates.service import ensure_default_meetup_template


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()

@dataclass
class SeedReport:
    admin: str = "skipped"  # created | updated | skipped
    templates_created: int = 0
    settings_created: int = 0

    def summary(self) -> str:
        return (
            f"super admin {self.admin}, "
            f"{self.templates_created} template(s) created, "
            f"{self.settings_created} setting(s) created"
        )


def _seed_super_admin(s: Session, email: str, password: str) -> str:
    user = s.query(User).filter(User.email == email).one_or_none()
    now = datetime.utcnow()
    if user is None:
        s.add(
            User(
                email=email,
                name="Super Admin",
                global_role="SUPER_ADMIN",
                password_hash=generate_password_hash(password) if password else None,
                created_at=now,
                updated_at=now,
            )
        )
        return "created"
    user.global_role = "SUPER_ADMIN"
    user.deleted_at = None
    user.updated_at = now
    if password and not user.password_hash:
        user.password_hash = generate_password_hash(password)
    return "updated"


def seed_only(*, database_url: str | None = None) -> SeedReport:
    """
    Seed the super admin, the "Default Meetup" SOP template and default settings.
    Idempotent; never overwrites an existing user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or os.environ.get("SUPER_ADMIN_EMAIL") or "").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or ""
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///meetup.db").strip()

    report = SeedReport()
    # Plain session: release seeds without building the Flask app.
    with _session_scope(db_url) as s:
        if admin_email:
            report.admin = _seed_super_admin(s, admin_email, admin_password)
        report.templates_created = int(ensure_default_meetup_template(s))
        report.settings_created = seed_default_settings(s)
    return report


def main() -> None:
    report = seed_only(database_url=None)
    print(f"Seed complete: {report.summary()}")


if __name__ == "__main__":
    main()
