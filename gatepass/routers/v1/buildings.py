"""Building license router: license state, recount, user onboarding and activation."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from gatepass.core.context import ADMIN_ROLES, RequestContext, get_request_context
from gatepass.core.response import DataResponse, envelope
from gatepass.db.base import get_db
from gatepass.schemas.building import LicenseStateOut, UserCreate, UserOut, UserStatusUpdate
from gatepass.services.licenses import LicenseAccountant, LicenseState

router = APIRouter(prefix="/buildings", tags=["Buildings"])


def _license_out(state: LicenseState) -> LicenseStateOut:
    return LicenseStateOut(
        building_id=state.building_id,
        total_licenses=state.total_licenses,
        used_licenses=state.used_licenses,
        available_licenses=state.available_licenses,
        has_available=state.has_available,
    )


@router.get("/{building_id}/licenses", response_model=DataResponse[LicenseStateOut])
async def get_license_state(
    building_id: str,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
):
    ctx.require_building(building_id)
    state = await LicenseAccountant(session).license_state(building_id)
    return envelope(_license_out(state))


@router.post("/{building_id}/licenses/recompute", response_model=DataResponse[LicenseStateOut])
async def recompute_licenses(
    building_id: str,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
):
    """Recount license holders from the users table."""
    ctx.require_role(*ADMIN_ROLES)
    ctx.require_building(building_id)
    accountant = LicenseAccountant(session)
    await accountant.recompute(building_id)
    return envelope(_license_out(await accountant.license_state(building_id)))


@router.post(
    "/{building_id}/users",
    response_model=DataResponse[UserOut],
    status_code=status.HTTP_201_CREATED,
)
async def onboard_user(
    building_id: str,
    body: UserCreate,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
):
    user = await LicenseAccountant(session).onboard_user(ctx, building_id, body)
    return envelope(UserOut.model_validate(user), "User onboarded")


@router.patch("/{building_id}/users/{user_id}", response_model=DataResponse[UserOut])
async def set_user_active(
    building_id: str,
    user_id: str,
    body: UserStatusUpdate,
    ctx: RequestContext = Depends(get_request_context),
    session: AsyncSession = Depends(get_db),
):
    """Activate or deactivate a user; deactivation frees their license."""
    user = await LicenseAccountant(session).set_user_active(ctx, building_id, user_id, body.is_active)
    return envelope(UserOut.model_validate(user))
