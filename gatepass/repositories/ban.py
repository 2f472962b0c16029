"""Visitor ban repository. Every read applies the live expiry clause."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import and_, or_, select, update

from gatepass.domain.ban import BanScope, VisitorBan
from gatepass.repositories.base import BaseRepository

_AUTO_UNBAN_REASON = "Automatic expiry - ban period ended"


def active_clause(now: datetime):
    """SQL form of "this ban counts right now"."""
    return and_(
        VisitorBan.is_active.is_(True),
        or_(VisitorBan.expires_at.is_(None), VisitorBan.expires_at > now),
    )


def applicable_clause(building_id: str, host_id: Optional[str]):
    """Bans that bind a visit of ``host_id`` in ``building_id``: the host's own
    personal list plus the building's system list."""
    system = and_(
        VisitorBan.scope == BanScope.SYSTEM.value,
        VisitorBan.building_id == building_id,
    )
    if host_id is None:
        return system
    personal = and_(
        VisitorBan.scope == BanScope.PERSONAL.value,
        VisitorBan.host_id == host_id,
    )
    return or_(personal, system)


class BanRepository(BaseRepository[VisitorBan]):
    model = VisitorBan

    async def find_active(
        self,
        *,
        building_id: str,
        host_id: Optional[str],
        phones: Iterable[str],
        now: datetime,
    ) -> list[VisitorBan]:
        phones = list(phones)
        if not phones:
            return []
        result = await self._session.execute(
            select(VisitorBan)
            .where(
                VisitorBan.phone.in_(phones),
                applicable_clause(building_id, host_id),
                active_clause(now),
            )
            .order_by(VisitorBan.banned_at.desc())
        )
        return list(result.scalars().all())

    async def find_duplicate(
        self,
        *,
        scope: str,
        building_id: str,
        host_id: Optional[str],
        phone: str,
        now: datetime,
    ) -> VisitorBan | None:
        q = select(VisitorBan).where(
            VisitorBan.scope == scope,
            VisitorBan.building_id == building_id,
            VisitorBan.phone == phone,
            active_clause(now),
        )
        if scope == BanScope.PERSONAL.value:
            q = q.where(VisitorBan.host_id == host_id)
        result = await self._session.execute(q)
        return result.scalars().first()

    def listing_query(
        self,
        *,
        now: datetime,
        scope: Optional[str] = None,
        host_id: Optional[str] = None,
        include_inactive: bool = False,
    ):
        q = self._base_query()
        if scope:
            q = q.where(VisitorBan.scope == scope)
        if host_id:
            q = q.where(VisitorBan.host_id == host_id)
        if not include_inactive:
            q = q.where(active_clause(now))
        return q

    async def expire_due(self, now: datetime) -> int:
        """Clear the flag on bans whose period has ended. Safe to run repeatedly:
        an already-cleared ban no longer matches."""
        result = await self._session.execute(
            update(VisitorBan)
            .where(
                VisitorBan.is_active.is_(True),
                VisitorBan.expires_at.is_not(None),
                VisitorBan.expires_at <= now,
            )
            .values(
                is_active=False,
                unbanned_at=now,
                unban_reason=_AUTO_UNBAN_REASON,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
