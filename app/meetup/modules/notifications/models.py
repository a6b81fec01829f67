from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.meetup.models import Base
from app.meetup.utils import iso


class EmailLog(Base):
    """One row per outbound email; status moves PENDING -> SENT | FAILED."""

    __tablename__ = "email_logs"
    __table_args__ = (
        Index("idx_email_logs_template", "template"),
        Index("idx_email_logs_status", "status"),
        Index("idx_email_logs_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    to: Mapped[str] = mapped_column(Text, nullable=False)  # comma-joined recipients
    subject: Mapped[str] = mapped_column(String(512), nullable=False)
    template: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "to": self.to,
            "subject": self.subject,
            "template": self.template,
            "status": self.status,
            "error": self.error,
            "sentAt": iso(self.sent_at),
            "createdAt": iso(self.created_at),
        }


class DiscordConfig(Base):
    __tablename__ = "discord_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    bot_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    guild_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    channel_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reminder_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "botToken": "********" if self.bot_token else None,
            "guildId": self.guild_id,
            "channelId": self.channel_id,
            "reminderEnabled": self.reminder_enabled,
        }
