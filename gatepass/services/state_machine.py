"""Visit state machine.

Pure functions over a :class:`~gatepass.domain.visit.Visit` value. Nothing
here touches the database: the gate-scan processor and the visit service
load the row, ask these functions what should happen, and persist the
result.

    pending ──confirm──▶ confirmed
       │                    │
       └──────entry scan────┴──▶ active ──exit scan──▶ completed

``cancelled`` is reachable from every non-terminal status, ``expired`` only
from ``pending`` / ``confirmed`` (no entry yet).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from gatepass.domain.visit import TERMINAL_STATUSES, Visit, VisitorStatus, VisitStatus


class ScanKind(str, Enum):
    AUTO = "auto"
    ENTRY = "entry"
    EXIT = "exit"


class ScanOutcome(str, Enum):
    ENTERED = "entered"
    EXITED = "exited"
    CODE_NOT_FOUND = "code_not_found"
    CODE_EXPIRED = "code_expired"
    VISIT_NOT_ACTIONABLE = "visit_not_actionable"
    ALREADY_ENTERED = "already_entered"
    ALREADY_COMPLETED = "already_completed"
    EXIT_WITHOUT_ENTRY = "exit_without_entry"
    VISITOR_BANNED = "visitor_banned"
    TRY_AGAIN = "try_again"

    @property
    def success(self) -> bool:
        return self in (ScanOutcome.ENTERED, ScanOutcome.EXITED)

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_MESSAGES = {
    ScanOutcome.ENTERED: "Entry recorded. Visitors may proceed.",
    ScanOutcome.EXITED: "Exit recorded. Visit completed.",
    ScanOutcome.CODE_NOT_FOUND: "QR code not recognised.",
    ScanOutcome.CODE_EXPIRED: "QR code has expired. Ask the host to re-issue it.",
    ScanOutcome.VISIT_NOT_ACTIONABLE: "This visit has been cancelled or has expired.",
    ScanOutcome.ALREADY_ENTERED: "Visitors have already entered with this code.",
    ScanOutcome.ALREADY_COMPLETED: "This visit is already completed.",
    ScanOutcome.EXIT_WITHOUT_ENTRY: "No entry was recorded for this visit; exit refused.",
    ScanOutcome.VISITOR_BANNED: "A visitor on this pass is banned. Entry denied.",
    ScanOutcome.TRY_AGAIN: "The gate is busy with this visit. Please scan again.",
}

_TRANSITIONS: dict[str, frozenset[str]] = {
    VisitStatus.PENDING.value: frozenset(
        {VisitStatus.CONFIRMED.value, VisitStatus.ACTIVE.value,
         VisitStatus.CANCELLED.value, VisitStatus.EXPIRED.value}
    ),
    VisitStatus.CONFIRMED.value: frozenset(
        {VisitStatus.ACTIVE.value, VisitStatus.CANCELLED.value, VisitStatus.EXPIRED.value}
    ),
    VisitStatus.ACTIVE.value: frozenset(
        {VisitStatus.COMPLETED.value, VisitStatus.CANCELLED.value}
    ),
}

_VISITOR_TRANSITIONS: dict[str, frozenset[str]] = {
    VisitorStatus.EXPECTED.value: frozenset(
        {VisitorStatus.ARRIVED.value, VisitorStatus.ENTERED.value, VisitorStatus.CANCELLED.value}
    ),
    VisitorStatus.ARRIVED.value: frozenset(
        {VisitorStatus.ENTERED.value, VisitorStatus.CANCELLED.value}
    ),
    VisitorStatus.ENTERED.value: frozenset({VisitorStatus.EXITED.value}),
}


def _value(status) -> str:
    return status.value if isinstance(status, Enum) else str(status)


def is_terminal(status) -> bool:
    return _value(status) in TERMINAL_STATUSES


def can_transition(current, target) -> bool:
    return _value(target) in _TRANSITIONS.get(_value(current), frozenset())


def can_transition_visitor(current, target) -> bool:
    return _value(target) in _VISITOR_TRANSITIONS.get(_value(current), frozenset())


def resolve_kind(visit: Visit, kind: ScanKind) -> ScanKind:
    """``auto`` means entry until the entry is recorded, exit afterwards."""
    if kind != ScanKind.AUTO:
        return kind
    return ScanKind.EXIT if visit.entry else ScanKind.ENTRY


def plan_scan(visit: Visit, kind: ScanKind, now: datetime) -> ScanOutcome:
    """Decide what a scan of ``visit`` at ``now`` does, ignoring bans.

    Returns ``ENTERED`` / ``EXITED`` when the scan should transition the
    visit, otherwise the rejection. The code must be rejected as expired at
    exactly ``qr_expires_at``.
    """
    if visit.qr_expires_at is None or now >= visit.qr_expires_at:
        return ScanOutcome.CODE_EXPIRED

    if visit.status == VisitStatus.COMPLETED.value:
        return ScanOutcome.ALREADY_COMPLETED
    if is_terminal(visit.status):
        return ScanOutcome.VISIT_NOT_ACTIONABLE

    direction = resolve_kind(visit, kind)
    if direction == ScanKind.ENTRY:
        if visit.exit:
            return ScanOutcome.ALREADY_COMPLETED
        if visit.entry:
            return ScanOutcome.ALREADY_ENTERED
        return ScanOutcome.ENTERED

    if not visit.entry:
        return ScanOutcome.EXIT_WITHOUT_ENTRY
    if visit.exit:
        return ScanOutcome.ALREADY_COMPLETED
    return ScanOutcome.EXITED


def apply_scan(visit: Visit, outcome: ScanOutcome, now: datetime) -> Visit:
    """Mutate ``visit`` for a successful scan outcome; other outcomes are no-ops."""
    if outcome == ScanOutcome.ENTERED:
        visit.entry = True
        visit.status = VisitStatus.ACTIVE.value
        if visit.actual_start is None:
            visit.actual_start = now
        for attachment in visit.attachments:
            if attachment.status in (VisitorStatus.EXPECTED.value, VisitorStatus.ARRIVED.value):
                attachment.status = VisitorStatus.ENTERED.value
                attachment.arrival_time = attachment.arrival_time or now
    elif outcome == ScanOutcome.EXITED:
        visit.exit = True
        visit.status = VisitStatus.COMPLETED.value
        if visit.actual_end is None:
            start = visit.actual_start or now
            visit.actual_end = max(now, start)
        for attachment in visit.attachments:
            if attachment.status == VisitorStatus.ENTERED.value:
                attachment.status = VisitorStatus.EXITED.value
                attachment.departure_time = now
    return visit


def settle_attendance(visit: Visit, now: datetime) -> Visit:
    """Bring visit-level flags in line with individual visitor movements.

    The first visitor recorded inside starts the visit (``entry``, ``active``,
    ``actual_start``). Once every non-cancelled visitor has exited, the visit
    completes as an exit scan would.
    """
    inside = (VisitorStatus.ENTERED.value, VisitorStatus.EXITED.value)
    attachments = visit.active_attachments()
    if not visit.entry and any(a.status in inside for a in attachments):
        visit.entry = True
        visit.status = VisitStatus.ACTIVE.value
        if visit.actual_start is None:
            visit.actual_start = now
    if (
        visit.entry
        and not visit.exit
        and attachments
        and all(a.status == VisitorStatus.EXITED.value for a in attachments)
    ):
        visit.exit = True
        visit.status = VisitStatus.COMPLETED.value
        if visit.actual_end is None:
            visit.actual_end = max(now, visit.actual_start or now)
    return visit
