"""HTTP controller layer for patient token admission and cancellation."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from opd_token_engine.controllers.dependencies import get_allocation_service
from opd_token_engine.domain.models import AllocationReceipt, AllocationStatus, TokenSource
from opd_token_engine.services.allocation_service import AllocationService
from opd_token_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/tokens", tags=["tokens"])


class TokenRequest(BaseModel):
    """Input DTO validated before entering the service layer."""

    doctor_id: str = Field(min_length=1)
    slot_id: str = Field(min_length=1)
    patient_id: str = Field(min_length=1)
    source: TokenSource


class EmergencyTokenRequest(BaseModel):
    doctor_id: str = Field(min_length=1)
    slot_id: str = Field(min_length=1)
    patient_id: str = Field(min_length=1)


class AllocationResponse(BaseModel):
    token_id: Optional[str] = None
    status: AllocationStatus
    reason: str
    evicted_token_id: Optional[str] = None
    position_in_queue: Optional[int] = Field(default=None, ge=1)


class CancelTokenRequest(BaseModel):
    doctor_id: str = Field(min_length=1)
    slot_id: str = Field(min_length=1)
    token_id: str = Field(min_length=1)


class CancelTokenResponse(BaseModel):
    cancelled: bool
    message: str


def _to_response(receipt: AllocationReceipt) -> AllocationResponse:
    if receipt.status is AllocationStatus.ERROR:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=receipt.reason,
        )
    return AllocationResponse(
        token_id=receipt.token_id,
        status=receipt.status,
        reason=receipt.reason,
        evicted_token_id=receipt.evicted_token_id,
        position_in_queue=receipt.position_in_queue,
    )


@router.post("", response_model=AllocationResponse, status_code=status.HTTP_200_OK)
def create_token(
    payload: TokenRequest,
    service: AllocationService = Depends(get_allocation_service),
) -> AllocationResponse:
    """Admit, waitlist, or admit-by-preemption a new patient token."""
    try:
        receipt = service.create_token(
            doctor_id=payload.doctor_id,
            slot_id=payload.slot_id,
            patient_id=payload.patient_id,
            source=payload.source,
        )
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected allocation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to allocate token",
        ) from exc
    return _to_response(receipt)


@router.post("/emergency", response_model=AllocationResponse, status_code=status.HTTP_200_OK)
def create_emergency_token(
    payload: EmergencyTokenRequest,
    service: AllocationService = Depends(get_allocation_service),
) -> AllocationResponse:
    try:
        receipt = service.create_emergency_token(
            doctor_id=payload.doctor_id,
            slot_id=payload.slot_id,
            patient_id=payload.patient_id,
        )
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected emergency allocation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to allocate emergency token",
        ) from exc
    return _to_response(receipt)


@router.post("/cancel", response_model=CancelTokenResponse, status_code=status.HTTP_200_OK)
def cancel_token(
    payload: CancelTokenRequest,
    service: AllocationService = Depends(get_allocation_service),
) -> CancelTokenResponse:
    try:
        cancelled = service.cancel_token(
            doctor_id=payload.doctor_id,
            slot_id=payload.slot_id,
            token_id=payload.token_id,
        )
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected cancellation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel token",
        ) from exc
    if cancelled:
        return CancelTokenResponse(cancelled=True, message="Token cancelled successfully")
    return CancelTokenResponse(cancelled=False, message="Token not found or already cancelled")
