"""Visitor profile repository: one reusable identity per phone per building."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import select

from gatepass.domain.visit import VisitorProfile
from gatepass.repositories.base import BaseRepository


class VisitorProfileRepository(BaseRepository[VisitorProfile]):
    model = VisitorProfile

    async def get_by_phone(self, building_id: str, phone: str) -> VisitorProfile | None:
        result = await self._session.execute(
            select(VisitorProfile).where(
                VisitorProfile.building_id == building_id,
                VisitorProfile.phone == phone,
            )
        )
        return result.scalars().first()

    async def upsert(
        self,
        *,
        building_id: str,
        phone: str,
        name: str,
        created_by: Optional[str],
        email: Optional[str] = None,
        company: Optional[str] = None,
        visited_at: datetime,
    ) -> VisitorProfile:
        """Reuse the profile for a returning phone, refreshing name and contact
        details, and count the visit."""
        profile = await self.get_by_phone(building_id, phone)
        if profile is None:
            profile = VisitorProfile(
                building_id=building_id,
                phone=phone,
                name=name,
                email=email,
                company=company,
                created_by=created_by,
                visit_count=0,
            )
            self._session.add(profile)
        else:
            profile.name = name
            profile.deleted_at = None
            if email:
                profile.email = email
            if company:
                profile.company = company
        profile.visit_count = (profile.visit_count or 0) + 1
        profile.last_visit_at = visited_at
        await self._session.flush()
        return profile
