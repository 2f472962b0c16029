"""Periodic maintenance: expire stale visits and ended bans.

Both sweeps are idempotent: they only touch rows still matching their
predicate, so a second run, or two overlapping runs, change nothing more.
The ``run_*_job`` wrappers open their own session and are what the
scheduler in :mod:`gatepass.main` calls.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gatepass.core.config import settings
from gatepass.db.base import async_session_factory
from gatepass.domain.mixins import utcnow
from gatepass.domain.visit import VisitStatus
from gatepass.repositories.visit import VisitRepository
from gatepass.services.bans import BanRegistry
from gatepass.services.notifier import EventNotifier, VisitEvent, get_notifier

logger = logging.getLogger(__name__)


async def expire_stale_visits(
    session: AsyncSession,
    now: Optional[datetime] = None,
    grace: Optional[timedelta] = None,
    building_id: Optional[str] = None,
) -> list[str]:
    """Expire ``pending`` / ``confirmed`` visits nobody entered within
    ``grace`` of their expected start, in one building or (``None``) all of
    them. Returns the ids actually expired."""
    now = now or utcnow()
    grace = grace if grace is not None else timedelta(minutes=settings.visit_expiry_grace_minutes)
    cutoff = now - grace

    repo = VisitRepository(session, building_id)
    expired = []
    for visit_id in await repo.stale_candidate_ids(cutoff):
        # A scan may have entered the visit since the candidate query
        if await repo.expire_if_stale(visit_id, cutoff, now):
            expired.append(visit_id)
    if expired:
        logger.info("Expired %d stale visit(s)", len(expired))
    return expired


async def _publish_expiries(
    session: AsyncSession, visit_ids: list[str], now: datetime, notifier: EventNotifier
) -> None:
    repo = VisitRepository(session)
    for visit_id in visit_ids:
        visit = await repo.get_by_id(visit_id)
        if visit is None:
            continue
        notifier.publish(
            VisitEvent(
                action="expired",
                visit_id=visit.id,
                building_id=visit.building_id,
                host_id=visit.host_id,
                occurred_at=now,
                new_status=VisitStatus.EXPIRED.value,
            )
        )


async def run_visit_expiry_job(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    notifier: EventNotifier | None = None,
    now: Optional[datetime] = None,
    building_id: Optional[str] = None,
) -> list[str]:
    now = now or utcnow()
    notifier = notifier or get_notifier()
    async with (session_factory or async_session_factory)() as session:
        expired = await expire_stale_visits(session, now, building_id=building_id)
        await session.commit()
        await _publish_expiries(session, expired, now, notifier)
    return expired


async def run_ban_expiry_job(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    now: Optional[datetime] = None,
) -> int:
    async with (session_factory or async_session_factory)() as session:
        count = await BanRegistry(session).expire_due_bans(now)
        await session.commit()
    return count
