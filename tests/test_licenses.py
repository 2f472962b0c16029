"""Tests for the license accountant."""

import pytest

from gatepass.core.context import UserRole
from gatepass.core.exceptions import ConflictError, ForbiddenError, LicenseUnavailableError
from gatepass.schemas.building import UserCreate
from gatepass.services.licenses import LicenseAccountant


def _new_user(n: int, **kw) -> UserCreate:
    return UserCreate(
        email=f"resident{n}@lekkitowers.ng",
        first_name=f"Resident{n}",
        last_name="Okafor",
        phone=f"080300001{n:02d}",
        apartment_number=f"{n}C",
        **kw,
    )


class TestLicenseAccountant:
    """Tests for LicenseAccountant."""

    @pytest.mark.asyncio
    async def test_seeded_usage_counts_license_holders_only(self, session, seed) -> None:
        state = await LicenseAccountant(session).license_state(seed.building.id)
        # host, neighbour and admin hold licenses; the officer does not
        assert state.used_licenses == 3
        assert state.total_licenses == 5
        assert state.available_licenses == 2
        assert state.has_available

    @pytest.mark.asyncio
    async def test_onboarding_consumes_until_full(self, session, seed) -> None:
        accountant = LicenseAccountant(session)
        await accountant.onboard_user(seed.admin_ctx, seed.building.id, _new_user(1))
        await accountant.onboard_user(seed.admin_ctx, seed.building.id, _new_user(2))
        await session.commit()

        state = await accountant.license_state(seed.building.id)
        assert state.used_licenses == state.total_licenses == 5
        assert not await accountant.has_available_license(seed.building.id)

        with pytest.raises(LicenseUnavailableError):
            await accountant.onboard_user(seed.admin_ctx, seed.building.id, _new_user(3))

    @pytest.mark.asyncio
    async def test_non_license_user_allowed_when_full(self, session, seed) -> None:
        seed.building.total_licenses = 3
        await session.commit()

        accountant = LicenseAccountant(session)
        user = await accountant.onboard_user(
            seed.admin_ctx,
            seed.building.id,
            _new_user(4, role=UserRole.SECURITY, uses_license=False),
        )
        assert user.uses_license is False
        assert (await accountant.license_state(seed.building.id)).used_licenses == 3

    @pytest.mark.asyncio
    async def test_existing_host_may_invite_when_full(self, session, seed) -> None:
        seed.building.total_licenses = 3
        await session.commit()

        accountant = LicenseAccountant(session)
        assert not await accountant.has_available_license(seed.building.id)
        assert await accountant.host_may_invite(seed.host)

    @pytest.mark.asyncio
    async def test_inactive_host_needs_a_free_seat(self, session, seed) -> None:
        seed.building.total_licenses = 3
        seed.host.is_active = False
        await session.commit()

        accountant = LicenseAccountant(session)
        assert not await accountant.host_may_invite(seed.host)

        seed.building.total_licenses = 4
        await session.commit()
        assert await accountant.host_may_invite(seed.host)

    @pytest.mark.asyncio
    async def test_deactivation_frees_a_seat(self, session, seed) -> None:
        seed.building.total_licenses = 3
        await session.commit()
        accountant = LicenseAccountant(session)

        await accountant.set_user_active(seed.admin_ctx, seed.building.id, seed.neighbour.id, False)
        await session.commit()
        assert (await accountant.license_state(seed.building.id)).used_licenses == 2

        await accountant.onboard_user(seed.admin_ctx, seed.building.id, _new_user(5))
        await session.commit()

        # Now full again: the neighbour cannot come back
        with pytest.raises(LicenseUnavailableError):
            await accountant.set_user_active(
                seed.admin_ctx, seed.building.id, seed.neighbour.id, True
            )

    @pytest.mark.asyncio
    async def test_recompute_repairs_drift(self, session, seed) -> None:
        seed.building.used_licenses = 0
        await session.commit()

        building = await LicenseAccountant(session).recompute(seed.building.id)
        assert building.used_licenses == 3

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, session, seed) -> None:
        accountant = LicenseAccountant(session)
        await accountant.onboard_user(seed.admin_ctx, seed.building.id, _new_user(6))
        with pytest.raises(ConflictError):
            await accountant.onboard_user(seed.admin_ctx, seed.building.id, _new_user(6))

    @pytest.mark.asyncio
    async def test_only_admins_onboard(self, session, seed) -> None:
        with pytest.raises(ForbiddenError):
            await LicenseAccountant(session).onboard_user(
                seed.host_ctx, seed.building.id, _new_user(7)
            )
