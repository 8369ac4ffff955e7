"""Controller layer for operator workflows: roster, capacity, simulation."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from opd_token_engine.controllers.dependencies import (
    get_allocation_service,
    get_simulation_service,
)
from opd_token_engine.domain.models import DoctorSummary, SlotSnapshot, TokenSource, TokenView
from opd_token_engine.repository.doctor_registry import RegistryLookupError
from opd_token_engine.services.allocation_service import (
    AllocationService,
    AllocationValidationError,
)
from opd_token_engine.services.simulation_service import SimulationService
from opd_token_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["operations"])


class DoctorResponse(BaseModel):
    doctor_id: str
    efficiency_score: float = Field(gt=0.0)
    slot_capacities: dict[str, int]


class EfficiencyDeltaRequest(BaseModel):
    factor: float = Field(gt=0.0)


class TokenViewResponse(BaseModel):
    token_id: str
    patient_id: str
    source: TokenSource
    snapshot_priority: int
    preemption_count: int = Field(ge=0)


class SlotStateResponse(BaseModel):
    slot_id: str
    base_capacity: int = Field(ge=0)
    effective_capacity: int = Field(ge=0)
    admitted: list[TokenViewResponse]
    waiting: list[TokenViewResponse]


class SimulationEventResponse(BaseModel):
    time: str
    patient_id: str
    doctor_id: str
    slot_id: str
    source: str
    result: str
    token_id: Optional[str] = None
    evicted_token_id: Optional[str] = None
    note: Optional[str] = None


class SimulationSummaryResponse(BaseModel):
    total_requests: int = Field(ge=0)
    allocated: int = Field(ge=0)
    reallocated: int = Field(ge=0)
    waitlisted: int = Field(ge=0)
    errors: int = Field(ge=0)


class SimulationResponse(BaseModel):
    simulation_name: str
    day: str
    events: list[SimulationEventResponse]
    summary: SimulationSummaryResponse
    doctors: list[DoctorResponse]
    notes: list[str]


def _doctor_response(summary: DoctorSummary) -> DoctorResponse:
    return DoctorResponse(
        doctor_id=summary.doctor_id,
        efficiency_score=summary.efficiency_score,
        slot_capacities=summary.slot_capacities,
    )


def _token_view_response(view: TokenView) -> TokenViewResponse:
    return TokenViewResponse(
        token_id=view.token_id,
        patient_id=view.requester_id,
        source=view.source,
        snapshot_priority=view.snapshot_priority,
        preemption_count=view.preemption_count,
    )


def _slot_state_response(snapshot: SlotSnapshot) -> SlotStateResponse:
    return SlotStateResponse(
        slot_id=snapshot.slot_id,
        base_capacity=snapshot.base_capacity,
        effective_capacity=snapshot.effective_capacity,
        admitted=[_token_view_response(view) for view in snapshot.admitted],
        waiting=[_token_view_response(view) for view in snapshot.waiting],
    )


@router.get("/doctors", response_model=list[DoctorResponse], status_code=status.HTTP_200_OK)
def list_doctors(
    service: AllocationService = Depends(get_allocation_service),
) -> list[DoctorResponse]:
    return [_doctor_response(summary) for summary in service.list_doctors()]


@router.get(
    "/doctors/{doctor_id}/slots/{slot_id}",
    response_model=SlotStateResponse,
    status_code=status.HTTP_200_OK,
)
def describe_slot(
    doctor_id: str,
    slot_id: str,
    service: AllocationService = Depends(get_allocation_service),
) -> SlotStateResponse:
    """Diagnostic view of both queues in priority order."""
    try:
        snapshot = service.describe_slot(doctor_id=doctor_id, slot_id=slot_id)
    except RegistryLookupError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return _slot_state_response(snapshot)


@router.post(
    "/doctors/{doctor_id}/efficiency",
    response_model=DoctorResponse,
    status_code=status.HTTP_200_OK,
)
def apply_efficiency_delta(
    doctor_id: str,
    payload: EfficiencyDeltaRequest,
    service: AllocationService = Depends(get_allocation_service),
) -> DoctorResponse:
    """Scale a doctor's efficiency, e.g. 0.8 when the doctor is running late."""
    try:
        doctor = service.apply_efficiency_delta(doctor_id=doctor_id, factor=payload.factor)
    except RegistryLookupError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except AllocationValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return _doctor_response(doctor.summary())


@router.post(
    "/simulation/opd-day",
    response_model=SimulationResponse,
    status_code=status.HTTP_200_OK,
)
def simulate_opd_day(
    service: SimulationService = Depends(get_simulation_service),
) -> SimulationResponse:
    """Replay the scripted OPD day on an isolated registry."""
    try:
        report: dict[str, Any] = service.run_opd_day().to_api_dict()
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected simulation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to run OPD day simulation",
        ) from exc
    return SimulationResponse(**report)
