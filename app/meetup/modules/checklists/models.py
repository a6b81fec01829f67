from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.meetup.models import Base
from app.meetup.utils import iso

if TYPE_CHECKING:
    from app.meetup.models import User
    from app.meetup.modules.events.models import Event
    from app.meetup.modules.volunteers.models import Volunteer


class SOPChecklist(Base):
    __tablename__ = "sop_checklists"
    __table_args__ = (
        Index("idx_sop_checklists_event", "event_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    event: Mapped["Event"] = relationship("Event", back_populates="checklists")
    tasks: Mapped[list["SOPTask"]] = relationship(
        back_populates="checklist",
        cascade="all, delete-orphan",
        order_by="SOPTask.sort_order",
        lazy="selectin",
    )

    def to_dict(self, with_tasks: bool = True) -> dict:
        d = {
            "id": self.id,
            "eventId": self.event_id,
            "title": self.title,
            "sortOrder": self.sort_order,
            "createdAt": iso(self.created_at),
        }
        if with_tasks:
            d["tasks"] = [t.to_dict() for t in self.tasks]
        return d


class SOPTask(Base):
    __tablename__ = "sop_tasks"
    __table_args__ = (
        Index("idx_sop_tasks_checklist", "checklist_id"),
        Index("idx_sop_tasks_status", "status"),
        Index("idx_sop_tasks_deadline", "deadline"),
        Index("idx_sop_tasks_owner", "owner_id"),
        Index("idx_sop_tasks_assignee", "assignee_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    checklist_id: Mapped[int] = mapped_column(ForeignKey("sop_checklists.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="TODO")  # TODO, IN_PROGRESS, BLOCKED, DONE
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="MEDIUM")
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    blocked_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    owner_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assignee_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    volunteer_assignee_id: Mapped[int | None] = mapped_column(ForeignKey("volunteers.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    checklist: Mapped[SOPChecklist] = relationship(back_populates="tasks")
    owner: Mapped["User | None"] = relationship("User", foreign_keys=[owner_id], lazy="selectin")
    assignee: Mapped["User | None"] = relationship("User", foreign_keys=[assignee_id], lazy="selectin")
    volunteer_assignee: Mapped["Volunteer | None"] = relationship("Volunteer", lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "checklistId": self.checklist_id,
            "title": self.title,
            "status": self.status,
            "priority": self.priority,
            "deadline": iso(self.deadline),
            "completedAt": iso(self.completed_at),
            "blockedReason": self.blocked_reason,
            "sortOrder": self.sort_order,
            "ownerId": self.owner_id,
            "assigneeId": self.assignee_id,
            "volunteerAssigneeId": self.volunteer_assignee_id,
            "owner": self.owner.brief() if self.owner else None,
            "assignee": self.assignee.brief() if self.assignee else None,
            "volunteerAssignee": (
                {"id": self.volunteer_assignee.id, "name": self.volunteer_assignee.name, "email": self.volunteer_assignee.email}
                if self.volunteer_assignee
                else None
            ),
        }
