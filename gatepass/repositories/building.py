"""Building and user repositories used by license accounting."""

from __future__ import annotations

from sqlalchemy import func, select

from gatepass.domain.building import Building, User
from gatepass.repositories.base import BaseRepository


class BuildingRepository(BaseRepository[Building]):
    model = Building

    async def get_for_update(self, building_id: str) -> Building | None:
        """Lock the building row; serializes license recounts per building."""
        result = await self._session.execute(
            select(Building).where(Building.id == building_id).with_for_update()
        )
        return result.scalars().first()


class UserRepository(BaseRepository[User]):
    model = User

    async def get_by_email(self, email: str) -> User | None:
        result = await self._session.execute(select(User).where(User.email == email))
        return result.scalars().first()

    async def count_license_holders(self, building_id: str) -> int:
        result = await self._session.execute(
            select(func.count(User.id)).where(
                User.building_id == building_id,
                User.is_active.is_(True),
                User.uses_license.is_(True),
            )
        )
        return result.scalar_one()
