"""SQLAlchemy ORM model for phone-keyed visitor bans.

Personal bans belong to one host; system bans cover a whole building. A ban
counts only while ``is_active`` and not past ``expires_at``; the expiry sweep
merely tidies the flag.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from gatepass.db.base import Base
from gatepass.domain.mixins import TimestampMixin, UTCDateTime, utcnow


class BanScope(str, Enum):
    PERSONAL = "personal"
    SYSTEM = "system"


class BanSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class BanType(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class VisitorBan(Base, TimestampMixin):
    __tablename__ = "visitor_bans"
    __table_args__ = (
        CheckConstraint(
            "expires_at IS NULL OR expires_at > banned_at",
            name="ck_visitor_bans_expires_after_banned",
        ),
        CheckConstraint(
            "unbanned_at IS NULL OR unbanned_at >= banned_at",
            name="ck_visitor_bans_unbanned_after_banned",
        ),
        Index("ix_visitor_bans_building_phone", "building_id", "phone"),
        Index("ix_visitor_bans_host_phone", "host_id", "phone"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    scope: Mapped[str] = mapped_column(String(20), default=BanScope.PERSONAL.value, nullable=False)
    building_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Owner of a personal ban; NULL for system bans
    host_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True
    )
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), default=BanSeverity.MEDIUM.value, nullable=False)
    ban_type: Mapped[str] = mapped_column(String(20), default=BanType.MANUAL.value, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    banned_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True, index=True)

    unbanned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    unban_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    unbanned_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def is_effective(self, now: datetime) -> bool:
        """Live check: flagged active and not yet past its expiry."""
        return bool(self.is_active) and (self.expires_at is None or self.expires_at > now)
