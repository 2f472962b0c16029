"""Domain package — all ORM models are imported here so Alembic autogenerate detects them.

Folder intent:
  building.py   — Building (license cap + materialized usage) and User
  visit.py      — Visit, VisitorProfile, VisitVisitor attachments, status enums
  ban.py        — Phone-keyed personal / system visitor bans
  visit_log.py  — Immutable visit event log + host notification outbox
  audit.py      — Immutable per-request audit trail (never updated or deleted)
  mixins.py     — UTCDateTime column type, TimestampMixin, SoftDeleteMixin
"""

from gatepass.domain.audit import AuditTrail
from gatepass.domain.ban import BanScope, BanSeverity, BanType, VisitorBan
from gatepass.domain.building import Building, User
from gatepass.domain.visit import (
    TERMINAL_STATUSES,
    Visit,
    VisitorProfile,
    VisitorStatus,
    VisitStatus,
    VisitType,
    VisitVisitor,
)
from gatepass.domain.visit_log import Notification, VisitLog

__all__ = [
    "AuditTrail",
    "BanScope",
    "BanSeverity",
    "BanType",
    "Building",
    "Notification",
    "TERMINAL_STATUSES",
    "User",
    "Visit",
    "VisitLog",
    "VisitorBan",
    "VisitorProfile",
    "VisitorStatus",
    "VisitStatus",
    "VisitType",
    "VisitVisitor",
]
