from __future__ import annotations

import json
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from app.meetup.utils import iso


class Base(DeclarativeBase):
    pass


class User(Base):
    """
    Application user. Never hard-deleted: deleted_at marks a deactivated member and the
    session-level soft-delete filter (see db.py) hides those rows from normal reads.
    """

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_global_role", "global_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image: Mapped[str | None] = mapped_column(Text, nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)  # null for Google-only users
    global_role: Mapped[str] = mapped_column(String(32), nullable=False, default="VIEWER")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    accounts: Mapped[list["Account"]] = relationship(back_populates="user", cascade="all, delete-orphan", lazy="selectin")

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def brief(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email, "image": self.image}

    def to_dict(self) -> dict:
        return {
            **self.brief(),
            "globalRole": self.global_role,
            "createdAt": iso(self.created_at),
        }


class Account(Base):
    """Linked external identity (e.g. Google)."""

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("provider", "provider_account_id", name="uq_accounts_provider_account"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    provider: Mapped[str] = mapped_column(String(64), nullable=False)
    provider_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped[User] = relationship(back_populates="accounts")


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("idx_refresh_tokens_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped[User] = relationship()


class AuditLog(Base):
    """
    Append-only audit trail.
    entity_id is a string so it can point at any table.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_logs_entity", "entity_type", "entity_id"),
        Index("idx_audit_logs_user", "user_id"),
        Index("idx_audit_logs_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action: Mapped[str] = mapped_column(String(16), nullable=False)  # CREATE / UPDATE / DELETE
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    changes_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    user: Mapped[User | None] = relationship(lazy="selectin")

    @property
    def changes(self) -> dict | None:
        return json.loads(self.changes_json) if self.changes_json else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "action": self.action,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "entityName": self.entity_name,
            "changes": self.changes,
            "createdAt": iso(self.created_at),
            "user": self.user.brief() if self.user else None,
        }


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.meetup.modules.events.models import Event, EventMember  # noqa: E402,F401
from app.meetup.modules.checklists.models import SOPChecklist, SOPTask  # noqa: E402,F401
from app.meetup.modules.sop_templates.models import SOPTemplate  # noqa: E402,F401
from app.meetup.modules.speakers.models import EventSpeaker, Speaker  # noqa: E402,F401
from app.meetup.modules.volunteers.models import EventVolunteer, Volunteer  # noqa: E402,F401
from app.meetup.modules.venues.models import EventVenuePartner, VenuePartner  # noqa: E402,F401
from app.meetup.modules.settings.models import AppSetting  # noqa: E402,F401
from app.meetup.modules.notifications.models import DiscordConfig, EmailLog  # noqa: E402,F401
