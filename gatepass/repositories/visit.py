"""Visit store: visits, their visitor attachments and the QR-code lookup."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm.exc import StaleDataError

from gatepass.core.exceptions import ConcurrentModificationError
from gatepass.domain.visit import Visit, VisitStatus
from gatepass.repositories.base import BaseRepository


class VisitRepository(BaseRepository[Visit]):
    model = Visit

    async def get_by_code(self, code: str, *, for_update: bool = False) -> Visit | None:
        """Resolve a QR token. ``for_update`` takes the row lock used by gate scans
        (``SELECT ... FOR UPDATE``; SQLite ignores it and relies on the version check)."""
        q = self._base_query().where(Visit.qr_code == code)
        if for_update:
            q = q.with_for_update().execution_options(populate_existing=True)
        result = await self._session.execute(q)
        return result.scalars().first()

    async def get_for_update(self, visit_id: str) -> Visit | None:
        result = await self._session.execute(
            self._base_query()
            .where(Visit.id == visit_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def code_exists(self, code: str) -> bool:
        result = await self._session.execute(select(Visit.id).where(Visit.qr_code == code))
        return result.first() is not None

    def host_query(self, host_id: str):
        return self._base_query().where(Visit.host_id == host_id)

    async def add(self, visit: Visit) -> Visit:
        self._session.add(visit)
        await self.save(visit)
        return visit

    async def save(self, visit: Visit) -> Visit:
        """Flush pending changes; a lost version compare-and-swap becomes
        :class:`ConcurrentModificationError`.

        The failed flush rolls back and expires ``visit``, so its id is read first.
        """
        visit_id = visit.id
        try:
            await self._session.flush()
        except StaleDataError as exc:
            raise ConcurrentModificationError("Visit", visit_id) from exc
        await self._session.refresh(visit)
        return visit

    # ------------------------------------------------------------------
    # Sweep support
    # ------------------------------------------------------------------

    async def stale_candidate_ids(self, cutoff: datetime) -> list[str]:
        q = select(Visit.id).where(
            Visit.status.in_([VisitStatus.PENDING.value, VisitStatus.CONFIRMED.value]),
            Visit.entry.is_(False),
            Visit.expected_start < cutoff,
        )
        if self._building_id is not None:
            q = q.where(Visit.building_id == self._building_id)
        result = await self._session.execute(q)
        return list(result.scalars().all())

    async def expire_if_stale(self, visit_id: str, cutoff: datetime, now: datetime) -> Optional[str]:
        """Conditional UPDATE: only a row that still matches the stale predicate
        changes, and its version moves on so an in-flight scan loses its CAS."""
        result = await self._session.execute(
            update(Visit)
            .where(
                Visit.id == visit_id,
                Visit.status.in_([VisitStatus.PENDING.value, VisitStatus.CONFIRMED.value]),
                Visit.entry.is_(False),
                Visit.expected_start < cutoff,
            )
            .values(
                status=VisitStatus.EXPIRED.value,
                version=Visit.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return visit_id if result.rowcount else None
