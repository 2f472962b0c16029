"""Tests for the pure visit state machine (no database)."""

from datetime import datetime, timedelta, timezone

import pytest

from gatepass.domain.visit import Visit, VisitorStatus, VisitStatus, VisitVisitor
from gatepass.services.state_machine import (
    ScanKind,
    ScanOutcome,
    apply_scan,
    can_transition,
    can_transition_visitor,
    is_terminal,
    plan_scan,
    settle_attendance,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _visit(status: str = "pending", entry: bool = False, exit: bool = False, **kw) -> Visit:
    visit = Visit(
        status=status,
        entry=entry,
        exit=exit,
        qr_expires_at=kw.pop("qr_expires_at", NOW + timedelta(hours=12)),
        **kw,
    )
    return visit


def _attach(visit: Visit, status: str) -> VisitVisitor:
    attachment = VisitVisitor(visitor_id=f"v-{len(visit.attachments)}", status=status)
    visit.attachments.append(attachment)
    return attachment


class TestTransitions:
    """Tests for the allowed status graph."""

    @pytest.mark.parametrize("status", ["completed", "cancelled", "expired"])
    def test_terminal_statuses(self, status: str) -> None:
        assert is_terminal(status)
        assert is_terminal(VisitStatus(status))
        for target in VisitStatus:
            assert not can_transition(status, target)

    def test_non_terminal_statuses(self) -> None:
        assert not is_terminal(VisitStatus.PENDING)
        assert not is_terminal("active")

    def test_expiry_only_before_entry(self) -> None:
        assert can_transition(VisitStatus.PENDING, VisitStatus.EXPIRED)
        assert can_transition(VisitStatus.CONFIRMED, VisitStatus.EXPIRED)
        assert not can_transition(VisitStatus.ACTIVE, VisitStatus.EXPIRED)

    def test_cancel_from_any_non_terminal(self) -> None:
        for status in ("pending", "confirmed", "active"):
            assert can_transition(status, VisitStatus.CANCELLED)

    def test_visitor_transitions(self) -> None:
        assert can_transition_visitor(VisitorStatus.EXPECTED, VisitorStatus.ARRIVED)
        assert can_transition_visitor("arrived", "entered")
        assert can_transition_visitor("entered", "exited")
        assert not can_transition_visitor("exited", "entered")
        assert not can_transition_visitor("entered", "cancelled")
        assert not can_transition_visitor("expected", "exited")


class TestPlanScan:
    """Tests for plan_scan decisions."""

    def test_auto_scan_enters_pending_visit(self) -> None:
        assert plan_scan(_visit(), ScanKind.AUTO, NOW) == ScanOutcome.ENTERED

    def test_auto_scan_exits_active_visit(self) -> None:
        visit = _visit("active", entry=True)
        assert plan_scan(visit, ScanKind.AUTO, NOW) == ScanOutcome.EXITED

    def test_confirmed_visit_can_enter(self) -> None:
        assert plan_scan(_visit("confirmed"), ScanKind.ENTRY, NOW) == ScanOutcome.ENTERED

    def test_explicit_entry_twice(self) -> None:
        visit = _visit("active", entry=True)
        assert plan_scan(visit, ScanKind.ENTRY, NOW) == ScanOutcome.ALREADY_ENTERED

    def test_exit_without_entry_is_refused(self) -> None:
        assert plan_scan(_visit(), ScanKind.EXIT, NOW) == ScanOutcome.EXIT_WITHOUT_ENTRY

    def test_completed_visit_is_idempotent(self) -> None:
        visit = _visit("completed", entry=True, exit=True)
        for kind in ScanKind:
            assert plan_scan(visit, kind, NOW) == ScanOutcome.ALREADY_COMPLETED

    @pytest.mark.parametrize("status", ["cancelled", "expired"])
    def test_dead_visit_not_actionable(self, status: str) -> None:
        assert plan_scan(_visit(status), ScanKind.AUTO, NOW) == ScanOutcome.VISIT_NOT_ACTIONABLE

    def test_expiry_boundary(self) -> None:
        """The code is dead at exactly qr_expires_at."""
        expires = NOW
        visit = _visit(qr_expires_at=expires)
        tick = timedelta(microseconds=1)
        assert plan_scan(visit, ScanKind.AUTO, expires - tick) == ScanOutcome.ENTERED
        assert plan_scan(visit, ScanKind.AUTO, expires) == ScanOutcome.CODE_EXPIRED
        assert plan_scan(visit, ScanKind.AUTO, expires + tick) == ScanOutcome.CODE_EXPIRED

    def test_expired_code_wins_over_status(self) -> None:
        visit = _visit("completed", entry=True, exit=True, qr_expires_at=NOW - timedelta(hours=1))
        assert plan_scan(visit, ScanKind.AUTO, NOW) == ScanOutcome.CODE_EXPIRED

    def test_missing_expiry_counts_as_expired(self) -> None:
        visit = _visit(qr_expires_at=None)
        assert plan_scan(visit, ScanKind.AUTO, NOW) == ScanOutcome.CODE_EXPIRED


class TestApplyScan:
    """Tests for apply_scan mutations."""

    def test_entry_marks_visit_and_visitors(self) -> None:
        visit = _visit()
        expected = _attach(visit, VisitorStatus.EXPECTED.value)
        cancelled = _attach(visit, VisitorStatus.CANCELLED.value)

        apply_scan(visit, ScanOutcome.ENTERED, NOW)

        assert visit.entry is True
        assert visit.exit is False
        assert visit.status == "active"
        assert visit.actual_start == NOW
        assert expected.status == "entered"
        assert expected.arrival_time == NOW
        assert cancelled.status == "cancelled"

    def test_exit_completes_visit(self) -> None:
        start = NOW - timedelta(hours=2)
        visit = _visit("active", entry=True, actual_start=start)
        inside = _attach(visit, VisitorStatus.ENTERED.value)

        apply_scan(visit, ScanOutcome.EXITED, NOW)

        assert visit.exit is True
        assert visit.status == "completed"
        assert visit.actual_end == NOW
        assert inside.status == "exited"
        assert inside.departure_time == NOW

    def test_actual_end_never_before_actual_start(self) -> None:
        visit = _visit("active", entry=True, actual_start=NOW + timedelta(minutes=5))
        apply_scan(visit, ScanOutcome.EXITED, NOW)
        assert visit.actual_end == visit.actual_start

    def test_rejections_do_not_mutate(self) -> None:
        visit = _visit()
        apply_scan(visit, ScanOutcome.VISITOR_BANNED, NOW)
        assert visit.entry is False
        assert visit.status == "pending"

    def test_outcome_messages(self) -> None:
        assert ScanOutcome.ENTERED.success
        assert not ScanOutcome.ALREADY_ENTERED.success
        for outcome in ScanOutcome:
            assert outcome.message


class TestSettleAttendance:
    """Tests for deriving visit flags from individual movements."""

    def test_first_visitor_inside_starts_visit(self) -> None:
        visit = _visit()
        _attach(visit, "entered")
        _attach(visit, "expected")

        settle_attendance(visit, NOW)

        assert visit.entry is True
        assert visit.status == "active"
        assert visit.actual_start == NOW
        assert visit.exit is False

    def test_arrival_alone_changes_nothing(self) -> None:
        visit = _visit()
        _attach(visit, "arrived")

        settle_attendance(visit, NOW)

        assert visit.entry is False
        assert visit.status == "pending"

    def test_cancelled_visitors_do_not_hold_visit_open(self) -> None:
        visit = _visit("active", entry=True, actual_start=NOW - timedelta(hours=1))
        _attach(visit, "exited")
        _attach(visit, "cancelled")

        settle_attendance(visit, NOW)

        assert visit.exit is True
        assert visit.status == "completed"
        assert visit.actual_end == NOW

    def test_visit_stays_active_while_someone_is_inside(self) -> None:
        visit = _visit("active", entry=True, actual_start=NOW - timedelta(hours=1))
        _attach(visit, "exited")
        _attach(visit, "entered")

        settle_attendance(visit, NOW)

        assert visit.exit is False
        assert visit.status == "active"
        assert visit.actual_end is None
