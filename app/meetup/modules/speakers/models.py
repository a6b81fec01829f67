from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.meetup.models import Base
from app.meetup.utils import iso

if TYPE_CHECKING:
    from app.meetup.models import User
    from app.meetup.modules.events.models import Event


class Speaker(Base):
    __tablename__ = "speakers"
    __table_args__ = (
        Index("idx_speakers_name", "name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    topic: Mapped[str | None] = mapped_column(String(512), nullable=True)
    photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    events: Mapped[list["EventSpeaker"]] = relationship(
        back_populates="speaker",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "bio": self.bio,
            "topic": self.topic,
            "photoUrl": self.photo_url,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class EventSpeaker(Base):
    __tablename__ = "event_speakers"
    __table_args__ = (
        UniqueConstraint("event_id", "speaker_id", name="uq_event_speakers_event_speaker"),
        Index("idx_event_speakers_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    speaker_id: Mapped[int] = mapped_column(ForeignKey("speakers.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="INVITED")  # INVITED, CONFIRMED, DECLINED, CANCELLED
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    event: Mapped["Event"] = relationship("Event", back_populates="speakers")
    speaker: Mapped[Speaker] = relationship(back_populates="events", lazy="selectin")
    owner: Mapped["User | None"] = relationship("User", lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "speakerId": self.speaker_id,
            "status": self.status,
            "notes": self.notes,
            "ownerId": self.owner_id,
            "speaker": self.speaker.to_dict() if self.speaker else None,
            "owner": self.owner.brief() if self.owner else None,
        }
