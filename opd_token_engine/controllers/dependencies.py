"""Shared FastAPI dependency providers for the controller layer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from opd_token_engine.services.allocation_service import AllocationService
from opd_token_engine.services.simulation_service import SimulationService


def _require_state(request: Request, name: str, label: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_allocation_service(request: Request) -> AllocationService:
    return _require_state(request, "allocation_service", "Allocation service")


def get_simulation_service(request: Request) -> SimulationService:
    return _require_state(request, "simulation_service", "Simulation service")
