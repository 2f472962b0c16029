"""Tests for the host-side visit service."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from gatepass.core.exceptions import (
    ConflictError,
    ForbiddenError,
    HostBannedError,
    NotFoundError,
    ValidationError,
)
from gatepass.core.pagination import PaginationParams
from gatepass.domain.ban import BanScope
from gatepass.domain.visit import VisitorProfile, VisitorStatus, VisitStatus
from gatepass.domain.visit_log import VisitLog
from gatepass.schemas.ban import BanCreate
from gatepass.schemas.visit import VisitorIn
from gatepass.services.bans import BanRegistry
from gatepass.services.gate_scan import GateScanProcessor, ScanCommand
from gatepass.services.sweeps import expire_stale_visits
from gatepass.services.visits import VisitService

from tests.conftest import T0


class TestCreateVisit:
    """Tests for visit creation."""

    @pytest.mark.asyncio
    async def test_creates_pending_visit_with_code(self, seed, make_visit) -> None:
        visit = await make_visit(
            visitors=[
                VisitorIn(name="Ada Obi", phone="08031234567"),
                VisitorIn(name="Emeka Obi", phone="08037654321", company="Obi & Sons"),
            ],
        )

        assert visit.status == VisitStatus.PENDING.value
        assert visit.host_id == seed.host.id
        assert visit.entry is False and visit.exit is False
        assert visit.qr_code.startswith("SG_")
        assert visit.qr_issued_at == T0
        assert visit.qr_expires_at == T0 + timedelta(hours=24)
        assert visit.max_visitors == 2
        assert visit.current_visitor_count == 2
        assert visit.version == 1
        assert {a.status for a in visit.attachments} == {VisitorStatus.EXPECTED.value}
        assert sorted(a.visitor.phone for a in visit.attachments) == [
            "+2348031234567", "+2348037654321",
        ]

    @pytest.mark.asyncio
    async def test_expected_end_caps_code_lifetime(self, make_visit) -> None:
        end = T0 + timedelta(hours=4)
        visit = await make_visit(expected_end=end)
        assert visit.qr_expires_at == end

    @pytest.mark.asyncio
    async def test_returning_visitor_reuses_profile(self, session, make_visit) -> None:
        await make_visit()
        await make_visit(title="Second visit")

        profiles = (await session.execute(select(VisitorProfile))).scalars().all()
        assert len(profiles) == 1
        assert profiles[0].visit_count == 2

    @pytest.mark.asyncio
    async def test_rejects_duplicate_phones(self, make_visit) -> None:
        with pytest.raises(ValidationError):
            await make_visit(
                visitors=[
                    VisitorIn(name="Ada", phone="08031234567"),
                    VisitorIn(name="Ada again", phone="+2348031234567"),
                ]
            )

    @pytest.mark.asyncio
    async def test_rejects_more_visitors_than_allowed(self, make_visit) -> None:
        with pytest.raises(ValidationError):
            await make_visit(
                max_visitors=1,
                visitors=[
                    VisitorIn(name="Ada", phone="08031234567"),
                    VisitorIn(name="Bola", phone="08031234568"),
                ],
            )

    @pytest.mark.asyncio
    async def test_rejects_end_before_start(self, make_visit) -> None:
        with pytest.raises(ValidationError):
            await make_visit(
                expected_start=T0 + timedelta(hours=2),
                expected_end=T0 + timedelta(hours=1),
            )

    @pytest.mark.asyncio
    async def test_banned_visitor_blocks_creation(self, session, seed, make_visit) -> None:
        await BanRegistry(session).create_ban(
            seed.admin_ctx,
            BanCreate(scope=BanScope.SYSTEM, name="Ada", phone="08031234567", reason="Theft"),
            now=T0,
        )
        await session.commit()

        with pytest.raises(HostBannedError) as exc_info:
            await make_visit()
        assert exc_info.value.code == "HOST_BANNED"

    @pytest.mark.asyncio
    async def test_resident_cannot_invite_for_someone_else(self, seed, make_visit) -> None:
        with pytest.raises(ForbiddenError):
            await make_visit(host_id=seed.neighbour.id)

    @pytest.mark.asyncio
    async def test_admin_can_invite_for_resident(self, seed, make_visit) -> None:
        visit = await make_visit(ctx=seed.admin_ctx, host_id=seed.neighbour.id)
        assert visit.host_id == seed.neighbour.id

    @pytest.mark.asyncio
    async def test_security_cannot_create(self, seed, make_visit) -> None:
        with pytest.raises(ForbiddenError):
            await make_visit(ctx=seed.officer_ctx)

    @pytest.mark.asyncio
    async def test_inactive_host_cannot_invite(self, session, seed, make_visit) -> None:
        seed.host.is_active = False
        await session.commit()
        with pytest.raises(ForbiddenError):
            await make_visit()

    @pytest.mark.asyncio
    async def test_created_event_is_logged(self, session_factory, notifier, make_visit) -> None:
        visit = await make_visit()
        await notifier.drain()

        async with session_factory() as s:
            logs = (
                await s.execute(select(VisitLog).where(VisitLog.visit_id == visit.id))
            ).scalars().all()
        assert [log.action for log in logs] == ["created"]


class TestVisitLifecycle:
    """Tests for confirm / cancel / lookups."""

    @pytest.mark.asyncio
    async def test_confirm(self, session, seed, notifier, make_visit) -> None:
        visit = await make_visit()
        service = VisitService(session, seed.host_ctx, notifier)

        confirmed = await service.confirm_visit(visit.id, now=T0 + timedelta(minutes=5))

        assert confirmed.status == VisitStatus.CONFIRMED.value
        assert confirmed.confirmed_by == seed.host.id
        assert confirmed.version == 2
        with pytest.raises(ConflictError):
            await service.confirm_visit(visit.id)

    @pytest.mark.asyncio
    async def test_cancel_is_terminal(self, session, seed, notifier, make_visit) -> None:
        visit = await make_visit()
        service = VisitService(session, seed.host_ctx, notifier)

        cancelled = await service.cancel_visit(visit.id, "Plans changed", now=T0)
        assert cancelled.status == VisitStatus.CANCELLED.value
        assert cancelled.cancellation_reason == "Plans changed"

        with pytest.raises(ConflictError):
            await service.cancel_visit(visit.id)
        with pytest.raises(ConflictError):
            await service.reissue_code(visit.id)

    @pytest.mark.asyncio
    async def test_neighbour_cannot_see_visit(self, session, seed, notifier, make_visit) -> None:
        visit = await make_visit()
        with pytest.raises(ForbiddenError):
            await VisitService(session, seed.neighbour_ctx, notifier).get_visit(visit.id)

    @pytest.mark.asyncio
    async def test_other_building_cannot_see_visit(self, session, seed, notifier, make_visit) -> None:
        from gatepass.core.context import RequestContext, UserRole

        visit = await make_visit()
        outsider = RequestContext(
            actor_id=seed.other_officer.id,
            role=UserRole.SECURITY,
            building_id=seed.other_building.id,
        )
        with pytest.raises(NotFoundError):
            await VisitService(session, outsider, notifier).get_visit(visit.id)

    @pytest.mark.asyncio
    async def test_get_by_code(self, session, seed, notifier, make_visit) -> None:
        visit = await make_visit()
        service = VisitService(session, seed.officer_ctx, notifier)

        assert (await service.get_by_code(visit.qr_code)).id == visit.id
        with pytest.raises(NotFoundError):
            await service.get_by_code("SG_" + "0" * 32)
        with pytest.raises(NotFoundError):
            await service.get_by_code("garbage")

    @pytest.mark.asyncio
    async def test_list_visits(self, session, seed, notifier, make_visit) -> None:
        await make_visit()
        await make_visit(title="Another")
        await make_visit(ctx=seed.neighbour_ctx)

        page = PaginationParams.first()
        _, mine = await VisitService(session, seed.host_ctx, notifier).list_visits(page)
        _, everyone = await VisitService(session, seed.admin_ctx, notifier).list_visits(page)
        _, pending = await VisitService(session, seed.admin_ctx, notifier).list_visits(
            page, VisitStatus.PENDING
        )
        _, active = await VisitService(session, seed.admin_ctx, notifier).list_visits(
            page, VisitStatus.ACTIVE
        )
        assert (mine, everyone, pending, active) == (2, 3, 3, 0)


class TestVisitorStatus:
    """Tests for per-visitor movements."""

    @pytest.mark.asyncio
    async def test_officer_records_arrival_and_entry(self, session, seed, notifier, make_visit) -> None:
        visit = await make_visit()
        visitor_id = visit.attachments[0].visitor_id
        service = VisitService(session, seed.officer_ctx, notifier)

        visit = await service.update_visitor_status(
            visit.id, visitor_id, VisitorStatus.ARRIVED, gate_label="Gate A", now=T0
        )
        assert visit.attachments[0].status == "arrived"
        assert visit.attachments[0].arrival_time == T0
        assert visit.version == 2

        visit = await service.update_visitor_status(
            visit.id, visitor_id, VisitorStatus.ENTERED, now=T0 + timedelta(minutes=35)
        )
        assert visit.attachments[0].status == "entered"
        # The first visitor inside starts the visit
        assert visit.entry is True
        assert visit.status == VisitStatus.ACTIVE.value
        assert visit.actual_start == T0 + timedelta(minutes=35)

        with pytest.raises(ConflictError):
            await service.update_visitor_status(visit.id, visitor_id, VisitorStatus.ARRIVED)

    @pytest.mark.asyncio
    async def test_banned_visitor_cannot_arrive(self, session, seed, notifier, make_visit) -> None:
        visit = await make_visit()
        await BanRegistry(session).create_ban(
            seed.host_ctx,
            BanCreate(name="Ada", phone="08031234567", reason="Changed my mind"),
            now=T0,
        )
        await session.commit()

        service = VisitService(session, seed.officer_ctx, notifier)
        with pytest.raises(HostBannedError):
            await service.update_visitor_status(
                visit.id, visit.attachments[0].visitor_id, VisitorStatus.ARRIVED, now=T0
            )

    @pytest.mark.asyncio
    async def test_host_may_only_cancel_visitor(self, session, seed, notifier, make_visit) -> None:
        visit = await make_visit(
            visitors=[
                VisitorIn(name="Ada", phone="08031234567"),
                VisitorIn(name="Bola", phone="08031234568"),
            ]
        )
        service = VisitService(session, seed.host_ctx, notifier)
        first, second = visit.attachments

        with pytest.raises(ForbiddenError):
            await service.update_visitor_status(visit.id, first.visitor_id, VisitorStatus.ARRIVED)

        visit = await service.update_visitor_status(visit.id, second.visitor_id, VisitorStatus.CANCELLED)
        assert visit.current_visitor_count == 1

    @pytest.mark.asyncio
    async def test_unknown_visitor(self, session, seed, notifier, make_visit) -> None:
        visit = await make_visit()
        with pytest.raises(NotFoundError):
            await VisitService(session, seed.officer_ctx, notifier).update_visitor_status(
                visit.id, "no-such-visitor", VisitorStatus.ARRIVED
            )


class TestAttendance:
    """Individual movements keep the visit-level flags consistent."""

    @pytest.mark.asyncio
    async def test_visitor_inside_keeps_visit_from_expiring(
        self, session, session_factory, seed, notifier, make_visit, reload
    ) -> None:
        visit = await make_visit()
        await VisitService(session, seed.officer_ctx, notifier).update_visitor_status(
            visit.id,
            visit.attachments[0].visitor_id,
            VisitorStatus.ENTERED,
            now=T0 + timedelta(minutes=35),
        )

        async with session_factory() as s:
            assert await expire_stale_visits(s, T0 + timedelta(hours=3), timedelta(hours=2)) == []
            await s.commit()

        stored = await reload(visit.id)
        assert stored.status == VisitStatus.ACTIVE.value
        assert stored.entry is True
        assert [a.status for a in stored.attachments] == ["entered"]

    @pytest.mark.asyncio
    async def test_last_visitor_out_completes_visit(
        self, session, session_factory, seed, notifier, make_visit, reload
    ) -> None:
        visit = await make_visit()
        processor = GateScanProcessor(session_factory, notifier, building_id=seed.building.id)
        await processor.process_scan(ScanCommand(code=visit.qr_code), now=T0 + timedelta(hours=1))

        await VisitService(session, seed.officer_ctx, notifier).update_visitor_status(
            visit.id,
            visit.attachments[0].visitor_id,
            VisitorStatus.EXITED,
            now=T0 + timedelta(hours=2),
        )

        stored = await reload(visit.id)
        assert stored.status == VisitStatus.COMPLETED.value
        assert stored.exit is True
        assert stored.actual_end == T0 + timedelta(hours=2)
        assert [a.status for a in stored.attachments] == ["exited"]

    @pytest.mark.asyncio
    async def test_visit_stays_active_while_someone_is_inside(
        self, session, session_factory, seed, notifier, make_visit, reload
    ) -> None:
        visit = await make_visit(
            visitors=[
                VisitorIn(name="Ada", phone="08031234567"),
                VisitorIn(name="Bola", phone="08031234568"),
            ]
        )
        processor = GateScanProcessor(session_factory, notifier, building_id=seed.building.id)
        await processor.process_scan(ScanCommand(code=visit.qr_code), now=T0 + timedelta(hours=1))
        service = VisitService(session, seed.officer_ctx, notifier)
        first, second = (a.visitor_id for a in visit.attachments)

        await service.update_visitor_status(visit.id, first, VisitorStatus.EXITED, now=T0 + timedelta(hours=2))
        assert (await reload(visit.id)).status == VisitStatus.ACTIVE.value

        await service.update_visitor_status(visit.id, second, VisitorStatus.EXITED, now=T0 + timedelta(hours=3))
        stored = await reload(visit.id)
        assert stored.status == VisitStatus.COMPLETED.value
        assert stored.actual_end == T0 + timedelta(hours=3)
