from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.meetup.models import Base
from app.meetup.utils import iso

if TYPE_CHECKING:
    from app.meetup.models import User
    from app.meetup.modules.events.models import Event


class Volunteer(Base):
    """
    Community volunteer. May exist without an account; user_id is set once the volunteer
    signs in or is converted into a member.
    """

    __tablename__ = "volunteers"
    __table_args__ = (
        Index("idx_volunteers_name", "name"),
        Index("idx_volunteers_email", "email"),
        Index("idx_volunteers_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    discord_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    role: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Photographer"
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped["User | None"] = relationship("User", lazy="selectin")
    events: Mapped[list["EventVolunteer"]] = relationship(
        back_populates="volunteer",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "discordId": self.discord_id,
            "role": self.role,
            "userId": self.user_id,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class EventVolunteer(Base):
    __tablename__ = "event_volunteers"
    __table_args__ = (
        UniqueConstraint("event_id", "volunteer_id", name="uq_event_volunteers_event_volunteer"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    volunteer_id: Mapped[int] = mapped_column(ForeignKey("volunteers.id", ondelete="CASCADE"), nullable=False)
    assigned_role: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")  # PENDING, CONFIRMED, ACTIVE, NO_SHOW
    owner_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    event: Mapped["Event"] = relationship("Event", back_populates="volunteers")
    volunteer: Mapped[Volunteer] = relationship(back_populates="events", lazy="selectin")
    owner: Mapped["User | None"] = relationship("User", lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "volunteerId": self.volunteer_id,
            "assignedRole": self.assigned_role,
            "status": self.status,
            "ownerId": self.owner_id,
            "volunteer": self.volunteer.to_dict() if self.volunteer else None,
            "owner": self.owner.brief() if self.owner else None,
        }
