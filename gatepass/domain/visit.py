"""SQLAlchemy ORM models for visits, visitor profiles and their attachments.

A Visit is the unit of authorization: one QR code, one entry and one exit
scan. VisitVisitor rows attach reusable VisitorProfile identities to it and
carry a per-person status alongside the visit-level flags.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatepass.db.base import Base
from gatepass.domain.mixins import SoftDeleteMixin, TimestampMixin, UTCDateTime, utcnow


class VisitStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# Plain values, matching what the status column stores
TERMINAL_STATUSES = frozenset(
    s.value for s in (VisitStatus.COMPLETED, VisitStatus.CANCELLED, VisitStatus.EXPIRED)
)


class VisitorStatus(str, Enum):
    EXPECTED = "expected"
    ARRIVED = "arrived"
    ENTERED = "entered"
    EXITED = "exited"
    CANCELLED = "cancelled"


class VisitType(str, Enum):
    SINGLE = "single"
    GROUP = "group"
    RECURRING = "recurring"


class VisitorProfile(Base, TimestampMixin, SoftDeleteMixin):
    """Reusable visitor identity, one per phone per building."""

    __tablename__ = "visitors"
    __table_args__ = (UniqueConstraint("building_id", "phone", name="uq_visitors_building_phone"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    building_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_by: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    visit_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_visit_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)


class Visit(Base, TimestampMixin):
    __tablename__ = "visits"
    __table_args__ = (
        CheckConstraint("NOT exit OR entry", name="ck_visits_exit_requires_entry"),
        CheckConstraint("current_visitor_count <= max_visitors", name="ck_visits_visitor_cap"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    building_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    host_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    visit_type: Mapped[str] = mapped_column(String(20), default=VisitType.SINGLE.value, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    purpose: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    expected_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    expected_end: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    actual_start: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    actual_end: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), default=VisitStatus.PENDING.value, nullable=False, index=True
    )

    # One valid token per visit: re-issue overwrites it
    qr_code: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True, index=True)
    qr_issued_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    qr_expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    entry: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    exit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    max_visitors: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    current_visitor_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    confirmed_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Optimistic-lock counter: every UPDATE is "WHERE id = ? AND version = ?"
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    attachments: Mapped[List["VisitVisitor"]] = relationship(
        back_populates="visit",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="VisitVisitor.added_at",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def active_attachments(self) -> list["VisitVisitor"]:
        return [a for a in self.attachments if a.status != VisitorStatus.CANCELLED.value]


class VisitVisitor(Base):
    """Attachment of a visitor profile to a visit, with its own status."""

    __tablename__ = "visit_visitors"
    __table_args__ = (UniqueConstraint("visit_id", "visitor_id", name="uq_visit_visitors_pair"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    visit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("visits.id", ondelete="CASCADE"), nullable=False, index=True
    )
    visitor_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("visitors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), default=VisitorStatus.EXPECTED.value, nullable=False
    )
    arrival_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    departure_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    added_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    added_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    visit: Mapped["Visit"] = relationship(back_populates="attachments", lazy="raise")
    visitor: Mapped["VisitorProfile"] = relationship(lazy="selectin")
