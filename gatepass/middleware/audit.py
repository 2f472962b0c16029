"""Audit logging middleware — records every state-changing request to audit_trail."""


import asyncio
import logging
import time
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from gatepass.db.base import async_session_factory
from gatepass.domain.audit import AuditTrail

logger = logging.getLogger(__name__)

# Methods that mutate state
_WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
_UUID_LENGTH = 36

class AuditMiddleware(BaseHTTPMiddleware):
    """Logs all write operations.

    Each audit row is written asynchronously AFTER the response is sent so it
    never adds latency to the request. Failures in audit logging are caught and
    logged — they never raise to the caller.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000)

        if request.method in _WRITE_METHODS:
            # Fire-and-forget: don't await here so the response is not delayed
            task = asyncio.create_task(
                self._record(request, response.status_code, duration_ms)
            )
            pending = getattr(request.app.state, "audit_tasks", None)
            if pending is not None:
                pending.add(task)
                task.add_done_callback(pending.discard)

        return response

    @staticmethod
    def _entity(path: str) -> tuple[str, str | None]:
        """Infer the entity from the path, e.g. /api/v1/visits/<id>/cancel -> ("visit", <id>)."""
        parts = [p for p in path.strip("/").split("/") if p]
        for i in range(len(parts) - 1, 0, -1):
            if len(parts[i]) == _UUID_LENGTH:
                return parts[i - 1].rstrip("s"), parts[i]
        return (parts[-1].rstrip("s") if parts else "unknown"), None

    async def _record(
        self, request: Request, status_code: int, duration_ms: int
    ) -> None:
        """Persist an audit row. Swallows all errors to avoid cascading failures."""
        try:
            entity_type, entity_id = self._entity(request.url.path)
            factory = getattr(request.app.state, "session_factory", async_session_factory)

            async with factory() as session:
                session.add(
                    AuditTrail(
                        actor_id=request.headers.get("x-user-id"),
                        actor_role=request.headers.get("x-user-role"),
                        building_id=request.headers.get("x-building-id"),
                        ip_address=request.client.host if request.client else None,
                        user_agent=request.headers.get("user-agent"),
                        action=f"{request.method}:{status_code}",
                        entity_type=entity_type,
                        entity_id=entity_id,
                        status_code=status_code,
                        description=f"{request.method} {request.url.path} → {status_code} ({duration_ms}ms)",
                    )
                )
                await session.commit()
        except Exception:  # pragma: no cover
            logger.exception("Failed to record audit row for %s %s", request.method, request.url.path)
