"""Ban registry: "is this phone blocked for this host or building?"

Two lists apply to every visit: the host's personal bans and the building's
system bans. A ban counts while ``is_active`` and not past ``expires_at``;
the live clause is applied in every query, so a ban whose period has ended
stops blocking even before the expiry sweep clears its flag.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from gatepass.core.context import ADMIN_ROLES, RequestContext, UserRole
from gatepass.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from gatepass.core.pagination import PaginationParams
from gatepass.core.phone import clean_phone, normalize_phone
from gatepass.domain.ban import BanScope, BanType, VisitorBan
from gatepass.domain.mixins import utcnow
from gatepass.repositories.ban import BanRepository
from gatepass.schemas.ban import BanCreate

logger = logging.getLogger(__name__)


class BanRegistry:
    def __init__(self, session: AsyncSession):
        self._session = session
        self._repo = BanRepository(session)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def screen_phones(
        self,
        building_id: str,
        host_id: Optional[str],
        phones: Iterable[str],
        now: Optional[datetime] = None,
    ) -> list[VisitorBan]:
        """Every active ban matching any of ``phones`` for this host or building."""
        return await self._repo.find_active(
            building_id=building_id,
            host_id=host_id,
            phones=[normalize_phone(p) for p in phones],
            now=now or utcnow(),
        )

    async def find_active_ban(
        self,
        building_id: str,
        host_id: Optional[str],
        phone: str,
        now: Optional[datetime] = None,
    ) -> VisitorBan | None:
        bans = await self.screen_phones(building_id, host_id, [phone], now)
        return bans[0] if bans else None

    async def is_banned(
        self,
        building_id: str,
        host_id: Optional[str],
        phone: str,
        now: Optional[datetime] = None,
    ) -> bool:
        return await self.find_active_ban(building_id, host_id, phone, now) is not None

    async def list_bans(
        self,
        ctx: RequestContext,
        pagination: PaginationParams,
        *,
        scope: Optional[BanScope] = None,
        include_inactive: bool = False,
        now: Optional[datetime] = None,
    ):
        building_id = ctx.building_id
        if building_id is None and not ctx.is_super_admin:
            raise ForbiddenError("A building is required to list bans")
        repo = BanRepository(self._session, building_id)
        # Residents only see the bans they own
        host_id = ctx.actor_id if ctx.role == UserRole.RESIDENT else None
        query = repo.listing_query(
            now=now or utcnow(),
            scope=scope.value if scope else None,
            host_id=host_id,
            include_inactive=include_inactive,
        )
        return await repo.list(query=query, **pagination.repo_kwargs())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_ban(
        self,
        ctx: RequestContext,
        data: BanCreate,
        now: Optional[datetime] = None,
    ) -> VisitorBan:
        now = now or utcnow()
        building_id = data.building_id or ctx.building_id
        if building_id is None:
            raise ValidationError("buildingId is required")
        ctx.require_building(building_id)

        if data.scope == BanScope.SYSTEM:
            ctx.require_role(*ADMIN_ROLES)
            host_id = None
        else:
            ctx.require_role(UserRole.RESIDENT, *ADMIN_ROLES)
            host_id = data.host_id if (ctx.is_admin and data.host_id) else ctx.actor_id

        if data.expires_at is not None and data.expires_at <= now:
            raise ValidationError("expiresAt must be in the future")

        phone = clean_phone(data.phone)
        existing = await self._repo.find_duplicate(
            scope=data.scope.value,
            building_id=building_id,
            host_id=host_id,
            phone=phone,
            now=now,
        )
        if existing is not None:
            raise ConflictError(f"An active {data.scope.value} ban already exists for {phone}")

        ban = VisitorBan(
            scope=data.scope.value,
            building_id=building_id,
            host_id=host_id,
            created_by=ctx.actor_id,
            name=data.name.strip(),
            phone=phone,
            reason=data.reason,
            severity=data.severity.value,
            ban_type=BanType.MANUAL.value,
            is_active=True,
            banned_at=now,
            expires_at=data.expires_at,
            notes=data.notes,
        )
        self._session.add(ban)
        await self._session.flush()
        logger.info(
            "Ban %s created: scope=%s building=%s host=%s phone=%s",
            ban.id, ban.scope, building_id, host_id, phone,
        )
        return ban

    async def unban(
        self,
        ctx: RequestContext,
        ban_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> VisitorBan:
        now = now or utcnow()
        ban = await self._repo.get_by_id(ban_id)
        if ban is None:
            raise NotFoundError("Ban", ban_id)
        ctx.require_building(ban.building_id)
        owns = ban.scope == BanScope.PERSONAL.value and ban.host_id == ctx.actor_id
        if not (owns or ctx.is_admin):
            raise ForbiddenError("Only the ban owner or a building admin can lift this ban")
        if not ban.is_effective(now):
            raise ConflictError("Ban is not active")

        ban.is_active = False
        ban.unbanned_at = now
        ban.unbanned_by = ctx.actor_id
        ban.unban_reason = reason
        await self._session.flush()
        logger.info("Ban %s lifted by %s", ban.id, ctx.actor_id)
        return ban

    async def expire_due_bans(self, now: Optional[datetime] = None) -> int:
        count = await self._repo.expire_due(now or utcnow())
        if count:
            logger.info("Expired %d visitor ban(s)", count)
        return count
