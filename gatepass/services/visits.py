"""Visit service: the host side of the visit lifecycle.

Creation runs the license and ban checks, stores visitor profiles and
attachments, and stamps the QR code. Confirmation, cancellation, QR
re-issue and per-visitor status changes lock the visit row and go through
the same version check as gate scans.

Mutating methods commit their own transaction and only then publish the
event, so the audit log never describes a change that was rolled back.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from gatepass.core.context import ADMIN_ROLES, GATE_ROLES, RequestContext, UserRole
from gatepass.core.exceptions import (
    ConflictError,
    ForbiddenError,
    HostBannedError,
    LicenseUnavailableError,
    NotFoundError,
    ValidationError,
)
from gatepass.core.pagination import PaginationParams
from gatepass.core.phone import clean_phone
from gatepass.domain.mixins import utcnow
from gatepass.domain.visit import Visit, VisitorStatus, VisitStatus, VisitVisitor
from gatepass.repositories.building import BuildingRepository, UserRepository
from gatepass.repositories.visit import VisitRepository
from gatepass.repositories.visitor import VisitorProfileRepository
from gatepass.schemas.visit import VisitCreate
from gatepass.services import qr
from gatepass.services.bans import BanRegistry
from gatepass.services.licenses import LicenseAccountant
from gatepass.services.notifier import EventNotifier, VisitEvent, get_notifier
from gatepass.services.state_machine import (
    can_transition,
    can_transition_visitor,
    is_terminal,
    settle_attendance,
)

logger = logging.getLogger(__name__)


class VisitService:
    def __init__(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        notifier: EventNotifier | None = None,
    ):
        self._session = session
        self._ctx = ctx
        self._notifier = notifier or get_notifier()
        self._repo = VisitRepository(session, None if ctx.is_super_admin else ctx.building_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _authorize(self, visit: Visit) -> Visit:
        self._ctx.require_building(visit.building_id)
        if self._ctx.role == UserRole.RESIDENT and visit.host_id != self._ctx.actor_id:
            raise ForbiddenError("You can only manage your own visits")
        return visit

    def _require_host_or_admin(self, visit: Visit) -> None:
        if visit.host_id != self._ctx.actor_id and not self._ctx.is_admin:
            raise ForbiddenError("Only the host or a building admin can do this")

    async def _load(self, visit_id: str, *, for_update: bool = False) -> Visit:
        if for_update:
            visit = await self._repo.get_for_update(visit_id)
        else:
            visit = await self._repo.get_by_id(visit_id)
        if visit is None:
            raise NotFoundError("Visit", visit_id)
        return self._authorize(visit)

    def _event(self, visit: Visit, action: str, now: datetime, **extra) -> VisitEvent:
        extra.setdefault("new_status", visit.status)
        return VisitEvent(
            action=action,
            visit_id=visit.id,
            building_id=visit.building_id,
            host_id=visit.host_id,
            actor_id=self._ctx.actor_id,
            occurred_at=now,
            **extra,
        )

    async def _commit_and_publish(self, event: VisitEvent) -> None:
        await self._session.commit()
        self._notifier.publish(event)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_visit(self, data: VisitCreate, now: Optional[datetime] = None) -> Visit:
        now = now or utcnow()
        ctx = self._ctx

        building_id = data.building_id or ctx.building_id
        if building_id is None:
            raise ValidationError("buildingId is required")
        ctx.require_building(building_id)

        if ctx.role == UserRole.RESIDENT:
            if data.host_id and data.host_id != ctx.actor_id:
                raise ForbiddenError("Residents can only invite visitors as themselves")
            host_id = ctx.actor_id
        elif ctx.role in ADMIN_ROLES:
            host_id = data.host_id or ctx.actor_id
        else:
            raise ForbiddenError("Security staff cannot create visits")

        building = await BuildingRepository(self._session).get_by_id(building_id)
        if building is None:
            raise NotFoundError("Building", building_id)
        if not building.is_active:
            raise ForbiddenError("Building is not active")
        host = await UserRepository(self._session, building_id).get_by_id(host_id)
        if host is None:
            raise NotFoundError("Host", host_id)
        if not host.is_active:
            raise ForbiddenError("Host account is not active")

        if data.expected_end is not None and data.expected_end <= data.expected_start:
            raise ValidationError("expectedEnd must be after expectedStart")

        phones = [clean_phone(v.phone) for v in data.visitors]
        if len(set(phones)) != len(phones):
            raise ValidationError("Each visitor must have a different phone number")
        max_visitors = data.max_visitors or len(phones)
        if len(phones) > max_visitors:
            raise ValidationError(
                f"{len(phones)} visitors exceed the maximum of {max_visitors} for this visit"
            )

        if not await LicenseAccountant(self._session).host_may_invite(host):
            raise LicenseUnavailableError()
        bans = await BanRegistry(self._session).screen_phones(building_id, host.id, phones, now)
        if bans:
            logger.warning(
                "Visit creation by host %s refused: %s is banned (ban %s)",
                host.id, bans[0].phone, bans[0].id,
            )
            raise HostBannedError(bans[0].phone)

        visit = Visit(
            building_id=building_id,
            host_id=host.id,
            visit_type=data.visit_type.value,
            title=data.title,
            description=data.description,
            purpose=data.purpose,
            expected_start=data.expected_start,
            expected_end=data.expected_end,
            status=VisitStatus.PENDING.value,
            entry=False,
            exit=False,
            max_visitors=max_visitors,
            current_visitor_count=len(phones),
        )

        profiles = VisitorProfileRepository(self._session)
        for visitor_in, phone in zip(data.visitors, phones):
            profile = await profiles.upsert(
                building_id=building_id,
                phone=phone,
                name=visitor_in.name.strip(),
                email=visitor_in.email,
                company=visitor_in.company,
                created_by=host.id,
                visited_at=now,
            )
            visit.attachments.append(
                VisitVisitor(
                    visitor_id=profile.id,
                    visitor=profile,
                    status=VisitorStatus.EXPECTED.value,
                    added_by=ctx.actor_id,
                    added_at=now,
                )
            )

        await qr.stamp(visit, self._repo, now)
        await self._repo.add(visit)
        logger.info(
            "Visit %s created by %s for host %s with %d visitor(s)",
            visit.id, ctx.actor_id, host.id, len(phones),
        )
        await self._commit_and_publish(self._event(visit, "created", now))
        return visit

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_visit(self, visit_id: str) -> Visit:
        return await self._load(visit_id)

    async def get_by_code(self, code: str) -> Visit:
        visit = await self._repo.get_by_code(code) if qr.is_well_formed(code) else None
        if visit is None:
            raise NotFoundError("Visit for this QR code")
        return self._authorize(visit)

    async def list_visits(self, pagination: PaginationParams, status: VisitStatus | None = None):
        if self._ctx.building_id is None and not self._ctx.is_super_admin:
            raise ForbiddenError("A building is required to list visits")
        query = None
        if self._ctx.role == UserRole.RESIDENT:
            query = self._repo.host_query(self._ctx.actor_id)
        return await self._repo.list(
            query=query,
            filters={"status": status.value if status else None},
            **pagination.repo_kwargs(),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def confirm_visit(self, visit_id: str, now: Optional[datetime] = None) -> Visit:
        now = now or utcnow()
        visit = await self._load(visit_id, for_update=True)
        self._require_host_or_admin(visit)
        old_status = visit.status
        if not can_transition(old_status, VisitStatus.CONFIRMED):
            raise ConflictError(f"Cannot confirm a visit that is {old_status}")

        visit.status = VisitStatus.CONFIRMED.value
        visit.confirmed_at = now
        visit.confirmed_by = self._ctx.actor_id
        await self._repo.save(visit)
        await self._commit_and_publish(
            self._event(visit, "confirmed", now, old_status=old_status)
        )
        return visit

    async def cancel_visit(
        self, visit_id: str, reason: Optional[str] = None, now: Optional[datetime] = None
    ) -> Visit:
        now = now or utcnow()
        visit = await self._load(visit_id, for_update=True)
        self._require_host_or_admin(visit)
        old_status = visit.status
        if not can_transition(old_status, VisitStatus.CANCELLED):
            raise ConflictError(f"Cannot cancel a visit that is {old_status}")

        visit.status = VisitStatus.CANCELLED.value
        visit.cancelled_at = now
        visit.cancellation_reason = reason
        await self._repo.save(visit)
        logger.info("Visit %s cancelled by %s", visit.id, self._ctx.actor_id)
        await self._commit_and_publish(
            self._event(visit, "cancelled", now, old_status=old_status, notes=reason)
        )
        return visit

    async def reissue_code(self, visit_id: str, now: Optional[datetime] = None) -> Visit:
        """New token and expiry window; the previous token stops resolving."""
        now = now or utcnow()
        visit = await self._load(visit_id, for_update=True)
        self._require_host_or_admin(visit)
        if is_terminal(visit.status):
            raise ConflictError(f"Cannot re-issue the code of a visit that is {visit.status}")

        await qr.stamp(visit, self._repo, now)
        await self._repo.save(visit)
        await self._commit_and_publish(self._event(visit, "qr_reissued", now))
        return visit

    async def update_visitor_status(
        self,
        visit_id: str,
        visitor_id: str,
        status: VisitorStatus,
        *,
        gate_label: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Visit:
        """Move one attached visitor along ``expected -> arrived -> entered -> exited``.

        Gate staff record arrivals and movements; the host may only cancel a
        visitor. The first visitor inside starts the visit and the last one out
        completes it.
        """
        now = now or utcnow()
        ctx = self._ctx
        visit = await self._load(visit_id, for_update=True)

        is_gate = ctx.role in GATE_ROLES
        if not is_gate and not (
            status == VisitorStatus.CANCELLED and visit.host_id == ctx.actor_id
        ):
            raise ForbiddenError("Only security staff can record visitor movements")
        if is_terminal(visit.status):
            raise ConflictError(f"Visit is {visit.status}")

        attachment = next((a for a in visit.attachments if a.visitor_id == visitor_id), None)
        if attachment is None:
            raise NotFoundError("Visitor in this visit", visitor_id)
        old_status = attachment.status
        if old_status == status.value:
            raise ConflictError(f"Visitor is already {status.value}")
        if not can_transition_visitor(old_status, status):
            raise ConflictError(f"Visitor cannot move from {old_status} to {status.value}")

        if status in (VisitorStatus.ARRIVED, VisitorStatus.ENTERED):
            phone = attachment.visitor.phone
            if await BanRegistry(self._session).is_banned(
                visit.building_id, visit.host_id, phone, now
            ):
                logger.warning("Visitor %s on visit %s is banned", visitor_id, visit.id)
                raise HostBannedError(phone)

        attachment.status = status.value
        if status in (VisitorStatus.ARRIVED, VisitorStatus.ENTERED):
            attachment.arrival_time = attachment.arrival_time or now
        elif status == VisitorStatus.EXITED:
            attachment.departure_time = now
        if notes:
            attachment.notes = notes
        visit.current_visitor_count = len(visit.active_attachments())
        visit_status = visit.status
        settle_attendance(visit, now)
        if visit.status != visit_status:
            logger.info("Visit %s moved %s -> %s by visitor movement", visit.id, visit_status, visit.status)
        # Attachment-only changes must still move the visit version
        visit.updated_at = now

        await self._repo.save(visit)
        await self._commit_and_publish(
            self._event(
                visit,
                f"visitor_{status.value}",
                now,
                visitor_id=visitor_id,
                gate_label=gate_label,
                old_status=old_status,
                new_status=status.value,
                notes=notes,
                data={"visitStatus": visit.status},
            )
        )
        return visit
