"""License accountant.

A building sells a fixed number of licenses; every active user flagged
``uses_license`` holds one. ``Building.used_licenses`` is a materialized
count, recomputed from the users table inside the same transaction as
every user mutation and under a lock on the building row. It is never
incremented or decremented in place.

Visitors are never counted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from gatepass.core.context import ADMIN_ROLES, RequestContext
from gatepass.core.exceptions import ConflictError, LicenseUnavailableError, NotFoundError
from gatepass.core.phone import clean_phone
from gatepass.domain.building import Building, User
from gatepass.repositories.building import BuildingRepository, UserRepository
from gatepass.schemas.building import UserCreate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LicenseState:
    building_id: str
    total_licenses: int
    used_licenses: int

    @property
    def available_licenses(self) -> int:
        return max(self.total_licenses - self.used_licenses, 0)

    @property
    def has_available(self) -> bool:
        return self.used_licenses < self.total_licenses


class LicenseAccountant:
    def __init__(self, session: AsyncSession):
        self._session = session
        self._buildings = BuildingRepository(session)
        self._users = UserRepository(session)

    async def _building(self, building_id: str, *, lock: bool = False) -> Building:
        if lock:
            building = await self._buildings.get_for_update(building_id)
        else:
            building = await self._buildings.get_by_id(building_id)
        if building is None:
            raise NotFoundError("Building", building_id)
        return building

    async def license_state(self, building_id: str) -> LicenseState:
        building = await self._building(building_id)
        return LicenseState(building.id, building.total_licenses, building.used_licenses)

    async def has_available_license(self, building_id: str) -> bool:
        return (await self.license_state(building_id)).has_available

    async def host_may_invite(self, host: User) -> bool:
        """Hosts outside licensing, or already holding a counted seat, may invite.
        Invitations never consume a license."""
        if not host.uses_license:
            return True
        if host.is_active:
            return True
        return await self.has_available_license(host.building_id)

    async def recompute(self, building_id: str) -> Building:
        """Recount license holders. A count above the cap aborts the caller's
        transaction with :class:`LicenseUnavailableError`."""
        building = await self._building(building_id, lock=True)
        await self._session.flush()
        used = await self._users.count_license_holders(building_id)
        if used > building.total_licenses:
            logger.warning(
                "License cap exceeded for building %s: %d/%d",
                building_id, used, building.total_licenses,
            )
            raise LicenseUnavailableError()
        if used != building.used_licenses:
            logger.info(
                "Building %s license usage %d -> %d", building_id, building.used_licenses, used,
            )
        building.used_licenses = used
        await self._session.flush()
        return building

    async def onboard_user(self, ctx: RequestContext, building_id: str, data: UserCreate) -> User:
        """Create a user in ``building_id``; the only path that consumes a license."""
        ctx.require_role(*ADMIN_ROLES)
        ctx.require_building(building_id)

        building = await self._building(building_id, lock=True)
        if data.uses_license and building.used_licenses >= building.total_licenses:
            raise LicenseUnavailableError()
        if await self._users.get_by_email(data.email.lower()):
            raise ConflictError(f"A user with email {data.email} already exists")

        user = User(
            building_id=building_id,
            email=data.email.lower(),
            first_name=data.first_name,
            last_name=data.last_name,
            phone=clean_phone(data.phone),
            apartment_number=data.apartment_number,
            role=data.role.value,
            is_active=True,
            uses_license=data.uses_license,
        )
        self._session.add(user)
        await self.recompute(building_id)
        logger.info("Onboarded user %s (%s) in building %s", user.id, user.role, building_id)
        return user

    async def set_user_active(
        self, ctx: RequestContext, building_id: str, user_id: str, is_active: bool
    ) -> User:
        """Deactivation frees a seat; re-activation needs one."""
        ctx.require_role(*ADMIN_ROLES)
        ctx.require_building(building_id)

        building = await self._building(building_id, lock=True)
        user = await UserRepository(self._session, building_id).get_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        if user.is_active == is_active:
            return user
        if is_active and user.uses_license and building.used_licenses >= building.total_licenses:
            raise LicenseUnavailableError()

        user.is_active = is_active
        await self.recompute(building_id)
        return user
