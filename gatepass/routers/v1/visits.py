"""Visit router — host-side lifecycle endpoints.

Pattern:
  1. Resolve the caller into a RequestContext from the forwarded headers
  2. Instantiate the service with (session, ctx, notifier)
  3. Call service methods and wrap the result in the response envelope
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gatepass.core.context import ADMIN_ROLES, RequestContext, get_request_context
from gatepass.core.pagination import PaginationParams
from gatepass.core.response import DataResponse, ListResponse, envelope, paginated
from gatepass.db.base import get_db, get_session_factory
from gatepass.domain.visit import VisitStatus
from gatepass.schemas.visit import (
    CancelRequest,
    ExpiredVisitsOut,
    VisitCreate,
    VisitCreated,
    VisitorStatusUpdate,
    VisitOut,
)
from gatepass.services.notifier import EventNotifier, get_notifier
from gatepass.services.sweeps import run_visit_expiry_job
from gatepass.services.visits import VisitService

router = APIRouter(prefix="/visits", tags=["Visits"])


def _svc(session: AsyncSession, ctx: RequestContext, notifier: EventNotifier) -> VisitService:
    return VisitService(session, ctx, notifier)


@router.post("", response_model=DataResponse[VisitCreated], status_code=status.HTTP_201_CREATED)
async def create_visit(
    body: VisitCreate,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
):
    """Create a visit invitation and issue its QR code."""
    visit = await _svc(session, ctx, notifier).create_visit(body)
    created = VisitCreated(
        visit_id=visit.id,
        status=visit.status,
        qr_token=visit.qr_code,
        qr_expiry=visit.qr_expires_at,
        visitor_count=visit.current_visitor_count,
    )
    return envelope(created, "Visit created")


@router.get("", response_model=ListResponse[VisitOut])
async def list_visits(
    filter_status: Optional[VisitStatus] = Query(default=None, alias="status"),
    pagination: PaginationParams = Depends(),
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
):
    """Residents see their own visits; staff see the building's."""
    items, total = await _svc(session, ctx, notifier).list_visits(pagination, filter_status)
    return paginated(
        [VisitOut.from_visit(v) for v in items],
        total, pagination.page, pagination.limit,
    )


@router.post("/expire-stale", response_model=DataResponse[ExpiredVisitsOut])
async def expire_stale_visits(
    ctx: RequestContext = Depends(get_request_context),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    notifier: EventNotifier = Depends(get_notifier),
):
    """Run the stale-visit sweep now for the caller's building (all buildings
    for a super admin) instead of waiting for the scheduler."""
    ctx.require_role(*ADMIN_ROLES)
    expired = await run_visit_expiry_job(
        session_factory,
        notifier,
        building_id=None if ctx.is_super_admin else ctx.building_id,
    )
    return envelope(ExpiredVisitsOut(count=len(expired), visit_ids=expired))


@router.get("/by-code/{code}", response_model=DataResponse[VisitOut])
async def get_visit_by_code(
    code: str,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
):
    visit = await _svc(session, ctx, notifier).get_by_code(code)
    return envelope(VisitOut.from_visit(visit))


@router.get("/{visit_id}", response_model=DataResponse[VisitOut])
async def get_visit(
    visit_id: str,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
):
    visit = await _svc(session, ctx, notifier).get_visit(visit_id)
    return envelope(VisitOut.from_visit(visit))


@router.post("/{visit_id}/confirm", response_model=DataResponse[VisitOut])
async def confirm_visit(
    visit_id: str,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
):
    visit = await _svc(session, ctx, notifier).confirm_visit(visit_id)
    return envelope(VisitOut.from_visit(visit), "Visit confirmed")


@router.post("/{visit_id}/cancel", response_model=DataResponse[VisitOut])
async def cancel_visit(
    visit_id: str,
    body: Optional[CancelRequest] = None,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
):
    reason = body.reason if body else None
    visit = await _svc(session, ctx, notifier).cancel_visit(visit_id, reason)
    return envelope(VisitOut.from_visit(visit), "Visit cancelled")


@router.post("/{visit_id}/qr", response_model=DataResponse[VisitOut])
async def reissue_qr_code(
    visit_id: str,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
):
    """Issue a fresh QR code; the previous code stops working."""
    visit = await _svc(session, ctx, notifier).reissue_code(visit_id)
    return envelope(VisitOut.from_visit(visit), "QR code re-issued")


@router.patch("/{visit_id}/visitors/{visitor_id}", response_model=DataResponse[VisitOut])
async def update_visitor_status(
    visit_id: str,
    visitor_id: str,
    body: VisitorStatusUpdate,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier),
):
    visit = await _svc(session, ctx, notifier).update_visitor_status(
        visit_id,
        visitor_id,
        body.status,
        gate_label=body.gate_label,
        notes=body.notes,
    )
    return envelope(VisitOut.from_visit(visit), f"Visitor status updated to {body.status.value}")
