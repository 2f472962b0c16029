"""
Test Configuration
==================

Pytest fixtures for GatePass tests. Every test gets its own file-backed
SQLite database so concurrent sessions behave like separate connections.
"""

import os
import tempfile
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio

# Set test environment before the app's settings are loaded
os.environ.setdefault(
    "DATABASE_URL", f"sqlite+aiosqlite:///{tempfile.mkdtemp()}/gatepass_test.db"
)
os.environ["APP_ENV"] = "testing"
os.environ["SWEEP_ENABLED"] = "false"
os.environ["AUTO_CREATE_TABLES"] = "false"

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

import gatepass.domain  # noqa: E402,F401
from gatepass.core.context import RequestContext, UserRole  # noqa: E402
from gatepass.db.base import Base, build_engine, build_session_factory  # noqa: E402
from gatepass.domain.building import Building, User  # noqa: E402
from gatepass.domain.visit import Visit  # noqa: E402
from gatepass.repositories.visit import VisitRepository  # noqa: E402
from gatepass.schemas.visit import VisitCreate, VisitorIn  # noqa: E402
from gatepass.services.licenses import LicenseAccountant  # noqa: E402
from gatepass.services.notifier import EventNotifier  # noqa: E402
from gatepass.services.visits import VisitService  # noqa: E402

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh schema in a per-test database file."""
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'gatepass.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def notifier(session_factory) -> AsyncGenerator[EventNotifier, None]:
    n = EventNotifier(session_factory, max_attempts=2, retry_delay=0)
    yield n
    await n.drain()


def _user(building: Building, first: str, role: UserRole, phone: str, **kw) -> User:
    return User(
        building_id=building.id,
        email=f"{first.lower()}@lekkitowers.ng",
        first_name=first,
        last_name="Test",
        phone=phone,
        role=role.value,
        is_active=True,
        uses_license=kw.pop("uses_license", True),
        **kw,
    )


@pytest_asyncio.fixture
async def seed(session) -> SimpleNamespace:
    """One building with a resident host, a second resident, an admin and a
    security officer, plus a second building with its own officer."""
    building = Building(name="Lekki Towers", total_licenses=5, used_licenses=0, is_active=True)
    other = Building(name="Ikoyi Court", total_licenses=5, used_licenses=0, is_active=True)
    session.add_all([building, other])
    await session.flush()

    host = _user(building, "Amaka", UserRole.RESIDENT, "+2348030000001", apartment_number="4B")
    neighbour = _user(building, "Tunde", UserRole.RESIDENT, "+2348030000002", apartment_number="7A")
    admin = _user(building, "Grace", UserRole.BUILDING_ADMIN, "+2348030000003")
    officer = _user(building, "Musa", UserRole.SECURITY, "+2348030000004", uses_license=False)
    other_officer = _user(other, "Bayo", UserRole.SECURITY, "+2348030000005", uses_license=False)
    session.add_all([host, neighbour, admin, officer, other_officer])
    await session.flush()

    accountant = LicenseAccountant(session)
    await accountant.recompute(building.id)
    await accountant.recompute(other.id)
    await session.commit()

    def ctx(user: User, role: UserRole) -> RequestContext:
        return RequestContext(actor_id=user.id, role=role, building_id=user.building_id)

    return SimpleNamespace(
        building=building,
        other_building=other,
        host=host,
        neighbour=neighbour,
        admin=admin,
        officer=officer,
        other_officer=other_officer,
        host_ctx=ctx(host, UserRole.RESIDENT),
        neighbour_ctx=ctx(neighbour, UserRole.RESIDENT),
        admin_ctx=ctx(admin, UserRole.BUILDING_ADMIN),
        officer_ctx=ctx(officer, UserRole.SECURITY),
    )


@pytest.fixture
def make_visit(session, notifier, seed):
    """Create a visit through the service, as the host unless ``ctx`` is given."""

    async def _make(
        *,
        now: datetime = T0,
        ctx: RequestContext | None = None,
        visitors: list[VisitorIn] | None = None,
        **fields,
    ) -> Visit:
        fields.setdefault("title", "Sunday lunch")
        fields.setdefault("expected_start", now + timedelta(minutes=30))
        data = VisitCreate(
            visitors=visitors or [VisitorIn(name="Ada Obi", phone="08031234567")],
            **fields,
        )
        service = VisitService(session, ctx or seed.host_ctx, notifier)
        return await service.create_visit(data, now=now)

    return _make


@pytest.fixture
def reload(session_factory):
    """Read a visit back through a fresh session (no identity-map caching)."""

    async def _reload(visit_id: str) -> Visit:
        async with session_factory() as s:
            return await VisitRepository(s).get_by_id(visit_id)

    return _reload
