from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.meetup.models import Base
from app.meetup.utils import iso

if TYPE_CHECKING:
    from app.meetup.models import User
    from app.meetup.modules.checklists.models import SOPChecklist
    from app.meetup.modules.speakers.models import EventSpeaker
    from app.meetup.modules.venues.models import EventVenuePartner
    from app.meetup.modules.volunteers.models import EventVolunteer


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        Index("idx_events_date", "date"),
        Index("idx_events_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    venue: Mapped[str | None] = mapped_column(String(255), nullable=True)  # free text, synced from confirmed partner
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="SCHEDULED")  # DRAFT, SCHEDULED, LIVE, COMPLETED

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_by: Mapped["User | None"] = relationship("User", lazy="selectin")
    members: Mapped[list["EventMember"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    speakers: Mapped[list["EventSpeaker"]] = relationship(
        "EventSpeaker",
        back_populates="event",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    volunteers: Mapped[list["EventVolunteer"]] = relationship(
        "EventVolunteer",
        back_populates="event",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    venue_partners: Mapped[list["EventVenuePartner"]] = relationship(
        "EventVenuePartner",
        back_populates="event",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    checklists: Mapped[list["SOPChecklist"]] = relationship(
        "SOPChecklist",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="SOPChecklist.sort_order",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "date": iso(self.date),
            "venue": self.venue,
            "status": self.status,
            "createdById": self.created_by_user_id,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class EventMember(Base):
    __tablename__ = "event_members"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_members_event_user"),
        Index("idx_event_members_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    event_role: Mapped[str] = mapped_column(String(32), nullable=False, default="VOLUNTEER")  # LEAD, ORGANIZER, VOLUNTEER, VIEWER
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    event: Mapped[Event] = relationship(back_populates="members")
    user: Mapped["User"] = relationship("User", lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "userId": self.user_id,
            "eventRole": self.event_role,
            "user": self.user.brief() if self.user else None,
        }
