"""GatePass API — FastAPI application factory."""


import logging
import sys
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gatepass.core.config import settings
from gatepass.core.exceptions import register_exception_handlers
from gatepass.db.base import Base, async_session_factory, engine
from gatepass.middleware.audit import AuditMiddleware
from gatepass.schemas.common import HealthResponse
from gatepass.services.notifier import get_notifier
from gatepass.services.sweeps import run_ban_expiry_job, run_visit_expiry_job

# v1 routers
from gatepass.routers.v1.bans import router as bans_v1_router
from gatepass.routers.v1.buildings import router as buildings_v1_router
from gatepass.routers.v1.scans import router as scans_v1_router
from gatepass.routers.v1.visits import router as visits_v1_router

import gatepass.domain  # noqa: F401  (register all models on Base.metadata)

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Set up structured logging for the application."""
    level = logging.DEBUG if settings.app_env == "development" else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _build_scheduler(app: FastAPI) -> AsyncIOScheduler:
    factory = app.state.session_factory
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_visit_expiry_job,
        "interval",
        minutes=settings.visit_sweep_interval_minutes,
        kwargs={"session_factory": factory},
        id="expire_stale_visits",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        run_ban_expiry_job,
        "interval",
        minutes=settings.ban_sweep_interval_minutes,
        kwargs={"session_factory": factory},
        id="expire_visitor_bans",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.auto_create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    scheduler = None
    if settings.sweep_enabled:
        scheduler = _build_scheduler(app)
        scheduler.start()
        logger.info(
            "Sweeps scheduled: visits every %d min, bans every %d min",
            settings.visit_sweep_interval_minutes, settings.ban_sweep_interval_minutes,
        )
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        await get_notifier().drain()
        await engine.dispose()


def create_app() -> FastAPI:
    _configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )
    app.state.session_factory = async_session_factory
    app.state.audit_tasks = set()

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # --- Audit middleware ---
    app.add_middleware(AuditMiddleware)

    # --- Global exception handlers ---
    register_exception_handlers(app)

    # --- v1 API routes (/api/v1/*) ---
    app.include_router(visits_v1_router, prefix="/api/v1")
    app.include_router(scans_v1_router, prefix="/api/v1")
    app.include_router(bans_v1_router, prefix="/api/v1")
    app.include_router(buildings_v1_router, prefix="/api/v1")

    # --- Health check ---
    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health():
        return HealthResponse(
            app=settings.app_name,
            env=settings.app_env,
            database=engine.dialect.name,
        )

    return app


app = create_app()
