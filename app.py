"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the registry and services, registers routers, and seeds the
default doctor roster at startup.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from opd_token_engine.controllers.operations_controller import router as operations_router
from opd_token_engine.controllers.token_controller import router as token_router
from opd_token_engine.repository.doctor_registry import DoctorRegistry
from opd_token_engine.services.allocation_service import AllocationService
from opd_token_engine.services.simulation_service import SimulationService
from opd_token_engine.utils.config import Settings, get_settings
from opd_token_engine.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[DoctorRegistry] = None,
) -> FastAPI:
    """
    Build and wire the FastAPI application.

    The doctor registry is constructed here (or injected by tests) and handed
    to the services through app.state; nothing reads it as ambient state.
    """
    settings = settings or get_settings()

    # --- Registry (in-memory doctor -> slot store) ---
    registry = registry if registry is not None else DoctorRegistry()

    # --- Services ---
    allocation_service = AllocationService(registry=registry, settings=settings)
    simulation_service = SimulationService(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Seed the roster before accepting requests, release it on shutdown."""
        _startup(app, settings)
        yield
        app.state.registry.clear()
        logger.info("Shutdown: registry cleared")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(token_router)
    app.include_router(operations_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.registry = registry
    app.state.allocation_service = allocation_service
    app.state.simulation_service = simulation_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """Idempotent startup: the roster seed is skipped when doctors exist."""
    registry: DoctorRegistry = app.state.registry
    if settings.seed_default_roster:
        logger.info("Startup: seeding default doctor roster")
        seeded = registry.seed_default_roster()
        logger.info("Startup: %s doctors seeded", seeded)
    logger.info("Startup complete | doctors=%s", registry.count_doctors())


# Module-level app object for uvicorn
app = create_app()
