from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.meetup.models import Base
from app.meetup.utils import iso

if TYPE_CHECKING:
    from app.meetup.models import User
    from app.meetup.modules.events.models import Event


class VenuePartner(Base):
    __tablename__ = "venue_partners"
    __table_args__ = (
        Index("idx_venue_partners_name", "name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    contact_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(String(512), nullable=True)
    photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    events: Mapped[list["EventVenuePartner"]] = relationship(
        back_populates="venue_partner",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "contactName": self.contact_name,
            "email": self.email,
            "phone": self.phone,
            "capacity": self.capacity,
            "notes": self.notes,
            "website": self.website,
            "photoUrl": self.photo_url,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class EventVenuePartner(Base):
    """
    Event <-> venue partner link. At most one link per event may be CONFIRMED
    (enforced in venues.service.update_venue_link).
    """

    __tablename__ = "event_venue_partners"
    __table_args__ = (
        UniqueConstraint("event_id", "venue_partner_id", name="uq_event_venue_partners_event_partner"),
        Index("idx_event_venue_partners_status", "event_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    venue_partner_id: Mapped[int] = mapped_column(ForeignKey("venue_partners.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="INQUIRY")  # INQUIRY, PENDING, CONFIRMED, DECLINED, CANCELLED
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="MEDIUM")
    cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    confirmation_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    owner_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    event: Mapped["Event"] = relationship("Event", back_populates="venue_partners")
    venue_partner: Mapped[VenuePartner] = relationship(back_populates="events", lazy="selectin")
    owner: Mapped["User | None"] = relationship("User", lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "venuePartnerId": self.venue_partner_id,
            "status": self.status,
            "priority": self.priority,
            "cost": str(self.cost) if self.cost is not None else None,
            "notes": self.notes,
            "confirmationDate": iso(self.confirmation_date),
            "ownerId": self.owner_id,
            "venuePartner": self.venue_partner.to_dict() if self.venue_partner else None,
            "owner": self.owner.brief() if self.owner else None,
        }
