"""Gate scan router — the security station endpoint.

Every scan answers HTTP 200 with a typed outcome; a refused entry is a
normal answer for the gate, not an error.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gatepass.core.context import GATE_ROLES, RequestContext, get_request_context
from gatepass.core.exceptions import ForbiddenError
from gatepass.core.response import DataResponse, envelope
from gatepass.db.base import get_session_factory
from gatepass.schemas.scan import ScanRequest, ScanResponse
from gatepass.schemas.visit import VisitOut
from gatepass.services.gate_scan import GateScanProcessor, ScanCommand
from gatepass.services.notifier import EventNotifier, get_notifier

router = APIRouter(prefix="/scans", tags=["Gate scans"])


@router.post("", response_model=DataResponse[ScanResponse])
async def scan_code(
    body: ScanRequest,
    ctx: RequestContext = Depends(get_request_context),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    notifier: EventNotifier = Depends(get_notifier),
):
    """Record an entry or exit for the scanned QR code."""
    ctx.require_role(*GATE_ROLES)
    if ctx.building_id is None and not ctx.is_super_admin:
        raise ForbiddenError("Gate staff must be assigned to a building")

    processor = GateScanProcessor(
        session_factory,
        notifier,
        building_id=None if ctx.is_super_admin else ctx.building_id,
    )
    result = await processor.process_scan(
        ScanCommand(
            code=body.code.strip(),
            kind=body.scan_kind,
            officer_id=body.officer_id or ctx.actor_id,
            gate_label=body.gate_label,
            location_hint=body.location_hint,
        )
    )
    response = ScanResponse(
        success=result.success,
        outcome=result.outcome,
        message=result.message,
        resulting_action=result.resulting_action,
        visit_snapshot=VisitOut.from_visit(result.visit) if result.visit is not None else None,
        scanned_at=result.scanned_at,
    )
    return envelope(response, result.message)
