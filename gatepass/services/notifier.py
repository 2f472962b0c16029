"""Event notifier: visit audit log and host notification outbox.

Events are published after the transaction that produced them has
committed. Delivery runs as a background task in its own session, so a
slow or failing write never delays the gate or rolls back a recorded
entry. Failures are retried a few times with a linear back-off and then
logged.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gatepass.core.config import settings
from gatepass.db.base import async_session_factory
from gatepass.domain.visit_log import Notification, VisitLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VisitEvent:
    action: str
    visit_id: str
    building_id: str
    occurred_at: datetime
    host_id: Optional[str] = None
    actor_id: Optional[str] = None
    outcome: Optional[str] = None
    gate_label: Optional[str] = None
    location: Any = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    visitor_id: Optional[str] = None
    notes: Optional[str] = None
    data: dict = field(default_factory=dict)


# action -> (notification type, title, message template)
_HOST_NOTIFICATIONS = {
    "entered": (
        "visitor_entered",
        "Visitors Entered Building",
        "Your visitors have entered the building{gate}.",
    ),
    "exited": (
        "visitor_exited",
        "Visitors Left Building",
        "Your visitors have left the building{gate}.",
    ),
    "ban_denied": (
        "security_alert",
        "Visitor Entry Denied",
        "Entry was denied{gate}: a visitor on your pass is banned.",
    ),
    "expired": (
        "visit_expired",
        "Visit Expired",
        "Your visit expired because nobody arrived in time.",
    ),
}


class EventNotifier:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
    ):
        self._session_factory = session_factory or async_session_factory
        self._max_attempts = max_attempts or settings.notifier_max_attempts
        self._retry_delay = (
            retry_delay if retry_delay is not None else settings.notifier_retry_delay_seconds
        )
        self._pending: set[asyncio.Task] = set()

    def publish(self, event: VisitEvent) -> None:
        """Fire-and-forget: schedule delivery and return immediately."""
        task = asyncio.get_running_loop().create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, event: VisitEvent) -> None:
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._write(event)
                return
            except Exception:
                if attempt >= self._max_attempts:
                    logger.exception(
                        "Dropping %s event for visit %s after %d attempts",
                        event.action, event.visit_id, attempt,
                    )
                    return
                logger.warning(
                    "Event %s for visit %s failed (attempt %d/%d), retrying",
                    event.action, event.visit_id, attempt, self._max_attempts,
                )
                await asyncio.sleep(self._retry_delay * attempt)

    async def _write(self, event: VisitEvent) -> None:
        async with self._session_factory() as session:
            session.add(
                VisitLog(
                    visit_id=event.visit_id,
                    building_id=event.building_id,
                    visitor_id=event.visitor_id,
                    action=event.action,
                    outcome=event.outcome,
                    actor_id=event.actor_id,
                    gate_label=event.gate_label,
                    location=event.location,
                    old_status=event.old_status,
                    new_status=event.new_status,
                    notes=event.notes,
                    occurred_at=event.occurred_at,
                )
            )
            template = _HOST_NOTIFICATIONS.get(event.action)
            if template and event.host_id:
                kind, title, message = template
                gate = f" at {event.gate_label}" if event.gate_label else ""
                session.add(
                    Notification(
                        user_id=event.host_id,
                        building_id=event.building_id,
                        visit_id=event.visit_id,
                        type=kind,
                        title=title,
                        message=message.format(gate=gate),
                        data={
                            "outcome": event.outcome,
                            "gateLabel": event.gate_label,
                            "occurredAt": event.occurred_at.isoformat(),
                            **event.data,
                        },
                    )
                )
            await session.commit()
        logger.debug("Recorded %s event for visit %s", event.action, event.visit_id)


_notifier: EventNotifier | None = None


def get_notifier() -> EventNotifier:
    """FastAPI dependency / process-wide notifier."""
    global _notifier
    if _notifier is None:
        _notifier = EventNotifier()
    return _notifier
