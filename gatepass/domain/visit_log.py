"""SQLAlchemy ORM models written by the event notifier: visit logs and host notifications."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Boolean, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from gatepass.db.base import Base
from gatepass.domain.mixins import UTCDateTime, utcnow


class VisitLog(Base):
    """One row per lifecycle or gate event. Never updated or deleted."""

    __tablename__ = "visit_logs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # Plain references: log rows outlive the visits they describe
    visit_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    building_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    visitor_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    # created | confirmed | entered | exited | cancelled | expired | qr_reissued
    # | scan_rejected | ban_denied | visitor_<status>
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    outcome: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    actor_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    gate_label: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    location: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    old_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    new_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)


class Notification(Base):
    """Host-facing notification outbox; push/SMS delivery happens elsewhere."""

    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    building_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    visit_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)

    # visit_created | visitor_entered | visitor_exited | visit_cancelled | visit_expired
    # | security_alert
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
