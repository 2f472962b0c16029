"""Visitor ban router."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gatepass.core.context import ADMIN_ROLES, RequestContext, UserRole, get_request_context
from gatepass.core.exceptions import ValidationError
from gatepass.core.pagination import PaginationParams
from gatepass.core.phone import clean_phone
from gatepass.core.response import DataResponse, ListResponse, envelope, paginated
from gatepass.db.base import get_db, get_session_factory
from gatepass.domain.ban import BanScope
from gatepass.schemas.ban import BanCheckOut, BanCreate, BanExpiryOut, BanOut, UnbanRequest
from gatepass.services.bans import BanRegistry
from gatepass.services.sweeps import run_ban_expiry_job

router = APIRouter(prefix="/bans", tags=["Visitor bans"])


@router.post("", response_model=DataResponse[BanOut], status_code=status.HTTP_201_CREATED)
async def create_ban(
    body: BanCreate,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
):
    """Ban a phone number for yourself (personal) or the whole building (system)."""
    ban = await BanRegistry(session).create_ban(ctx, body)
    return envelope(BanOut.model_validate(ban), "Visitor banned")


@router.get("", response_model=ListResponse[BanOut])
async def list_bans(
    scope: Optional[BanScope] = Query(default=None),
    include_inactive: bool = Query(default=False, alias="includeInactive"),
    pagination: PaginationParams = Depends(),
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
):
    items, total = await BanRegistry(session).list_bans(
        ctx, pagination, scope=scope, include_inactive=include_inactive,
    )
    return paginated(
        [BanOut.model_validate(b) for b in items],
        total, pagination.page, pagination.limit,
    )


@router.get("/check", response_model=DataResponse[BanCheckOut])
async def check_phone(
    phone: str = Query(min_length=7),
    host_id: Optional[str] = Query(default=None, alias="hostId"),
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
):
    """Is this phone blocked for the host (personal list) or the building?"""
    if ctx.building_id is None:
        raise ValidationError("X-Building-Id header is required")
    if ctx.role == UserRole.RESIDENT:
        host_id = ctx.actor_id
    normalized = clean_phone(phone)
    ban = await BanRegistry(session).find_active_ban(ctx.building_id, host_id, normalized)
    return envelope(
        BanCheckOut(
            phone=normalized,
            is_banned=ban is not None,
            ban=BanOut.model_validate(ban) if ban else None,
        )
    )


@router.post("/expire", response_model=DataResponse[BanExpiryOut])
async def expire_bans(
    ctx: RequestContext = Depends(get_request_context),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """Run the ban expiry sweep now."""
    ctx.require_role(*ADMIN_ROLES)
    count = await run_ban_expiry_job(session_factory)
    return envelope(BanExpiryOut(expired=count))


@router.post("/{ban_id}/unban", response_model=DataResponse[BanOut])
async def unban(
    ban_id: str,
    body: Optional[UnbanRequest] = None,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
):
    ban = await BanRegistry(session).unban(ctx, ban_id, body.reason if body else None)
    return envelope(BanOut.model_validate(ban), "Ban lifted")
