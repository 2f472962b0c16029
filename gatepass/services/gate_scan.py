"""Gate-scan processor.

Turns a scanned QR token into an entry or exit, or a typed rejection.

Each attempt runs in its own transaction: the visit row is read with
``SELECT ... FOR UPDATE`` and written back with a version compare-and-swap,
so two stations scanning the same code at once can never both record the
entry. The loser of a race gets :class:`ConcurrentModificationError`, starts
a fresh transaction, re-reads the now-updated visit and answers
``already_entered``. After ``scan_max_retries`` lost races the officer is
asked to scan again.

Outcomes are data, not exceptions: the gate client always gets an answer.
Storage errors are the only thing that escapes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gatepass.core.config import settings
from gatepass.core.exceptions import ConcurrentModificationError
from gatepass.domain.mixins import utcnow
from gatepass.domain.visit import Visit
from gatepass.repositories.visit import VisitRepository
from gatepass.services import qr
from gatepass.services.bans import BanRegistry
from gatepass.services.notifier import EventNotifier, VisitEvent, get_notifier
from gatepass.services.state_machine import (
    ScanKind,
    ScanOutcome,
    apply_scan,
    plan_scan,
)

logger = logging.getLogger(__name__)

_EVENT_ACTIONS = {
    ScanOutcome.ENTERED: "entered",
    ScanOutcome.EXITED: "exited",
    ScanOutcome.VISITOR_BANNED: "ban_denied",
}
_RESULTING_ACTIONS = {
    ScanOutcome.ENTERED: "entry",
    ScanOutcome.EXITED: "exit",
}


@dataclass(frozen=True)
class ScanCommand:
    code: str
    kind: ScanKind = ScanKind.AUTO
    officer_id: Optional[str] = None
    gate_label: Optional[str] = None
    location_hint: Any = None


@dataclass(frozen=True)
class ScanResult:
    outcome: ScanOutcome
    scanned_at: datetime
    visit: Optional[Visit] = None
    banned_phone: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome.success

    @property
    def message(self) -> str:
        return self.outcome.message

    @property
    def resulting_action(self) -> Optional[str]:
        return _RESULTING_ACTIONS.get(self.outcome)


class GateScanProcessor:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: EventNotifier | None = None,
        *,
        building_id: Optional[str] = None,
        max_retries: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self._notifier = notifier or get_notifier()
        # Officers only resolve codes of their own building
        self._building_id = building_id
        self._max_retries = max_retries or settings.scan_max_retries

    async def process_scan(self, command: ScanCommand, now: Optional[datetime] = None) -> ScanResult:
        now = now or utcnow()
        if not qr.is_well_formed(command.code):
            logger.info("Scan rejected at %s: malformed code", command.gate_label or "gate")
            return ScanResult(ScanOutcome.CODE_NOT_FOUND, now)

        for attempt in range(1, self._max_retries + 1):
            try:
                result, old_status = await self._attempt(command, now)
            except ConcurrentModificationError as exc:
                logger.info(
                    "Scan of visit %s lost a concurrent update (attempt %d/%d), retrying",
                    exc.entity_id, attempt, self._max_retries,
                )
                continue
            self._log(command, result)
            if result.visit is not None:
                self._notifier.publish(self._event(command, result, old_status))
            return result

        logger.warning(
            "Scan at %s gave up after %d conflicting attempts",
            command.gate_label or "gate", self._max_retries,
        )
        return ScanResult(ScanOutcome.TRY_AGAIN, now)

    async def _attempt(self, command: ScanCommand, now: datetime) -> tuple[ScanResult, Optional[str]]:
        """One transaction: lock, evaluate, write. Commits on return."""
        async with self._session_factory() as session:
            async with session.begin():
                repo = VisitRepository(session, self._building_id)
                visit = await repo.get_by_code(command.code, for_update=True)
                if visit is None:
                    return ScanResult(ScanOutcome.CODE_NOT_FOUND, now), None

                old_status = visit.status
                outcome = plan_scan(visit, command.kind, now)
                if not outcome.success:
                    return ScanResult(outcome, now, visit), old_status

                # Bans gate entry only; a banned visitor already inside can still leave
                if outcome == ScanOutcome.ENTERED:
                    phones = [a.visitor.phone for a in visit.active_attachments() if a.visitor]
                    bans = await BanRegistry(session).screen_phones(
                        visit.building_id, visit.host_id, phones, now
                    )
                    if bans:
                        return (
                            ScanResult(ScanOutcome.VISITOR_BANNED, now, visit, banned_phone=bans[0].phone),
                            old_status,
                        )

                apply_scan(visit, outcome, now)
                await repo.save(visit)
        return ScanResult(outcome, now, visit), old_status

    def _event(self, command: ScanCommand, result: ScanResult, old_status: Optional[str]) -> VisitEvent:
        visit = result.visit
        return VisitEvent(
            action=_EVENT_ACTIONS.get(result.outcome, "scan_rejected"),
            visit_id=visit.id,
            building_id=visit.building_id,
            host_id=visit.host_id,
            actor_id=command.officer_id,
            occurred_at=result.scanned_at,
            outcome=result.outcome.value,
            gate_label=command.gate_label,
            location=command.location_hint,
            old_status=old_status,
            new_status=visit.status,
            notes=f"Banned visitor {result.banned_phone}" if result.banned_phone else None,
            data={"visitorCount": visit.current_visitor_count},
        )

    @staticmethod
    def _log(command: ScanCommand, result: ScanResult) -> None:
        visit_id = result.visit.id if result.visit is not None else None
        if result.outcome == ScanOutcome.VISITOR_BANNED:
            logger.warning(
                "Entry denied at %s for visit %s: banned visitor %s",
                command.gate_label or "gate", visit_id, result.banned_phone,
            )
        else:
            logger.info(
                "Scan at %s by %s: visit=%s outcome=%s",
                command.gate_label or "gate", command.officer_id, visit_id, result.outcome.value,
            )
