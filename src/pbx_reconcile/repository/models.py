"""Database model for extension records."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _timestamp() -> datetime:
    return datetime.now(tz=timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for the record database."""


class ExtensionRow(Base):
    """One row of the ``extensions`` table managed by the admin panel."""

    __tablename__ = "extensions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    extension_number: Mapped[str] = mapped_column(
        String(20), nullable=False, unique=True, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    secret: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    context: Mapped[str] = mapped_column(
        String(50), nullable=False, default="from-internal"
    )
    transport: Mapped[str] = mapped_column(
        String(50), nullable=False, default="transport-udp"
    )
    codecs: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=lambda: ["ulaw", "alaw", "g722"]
    )
    max_contacts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    direct_media: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    qualify_frequency: Mapped[int] = mapped_column(
        Integer, nullable=False, default=60
    )
    caller_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    voicemail_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_timestamp
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_timestamp,
        onupdate=_timestamp,
    )


__all__ = ["Base", "ExtensionRow"]
