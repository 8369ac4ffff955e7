"""Orchestration between callers, the doctor registry and the allocation engine."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from opd_token_engine.domain.constraints import EngineConfig
from opd_token_engine.domain.doctor import Doctor
from opd_token_engine.domain.models import (
    AllocationReceipt,
    AllocationStatus,
    DoctorSummary,
    SlotSnapshot,
    Token,
    TokenSource,
)
from opd_token_engine.domain.priority import PriorityCalculator
from opd_token_engine.repository.doctor_registry import (
    DoctorNotFoundError,
    DoctorRegistry,
    SlotNotFoundError,
)
from opd_token_engine.services.allocation_engine import AllocationEngine, utc_now
from opd_token_engine.utils.config import Settings, get_settings
from opd_token_engine.utils.logger import get_logger


logger = get_logger(__name__)

Clock = Callable[[], datetime]

REASON_BY_STATUS: dict[AllocationStatus, str] = {
    AllocationStatus.ALLOCATED: "Token allocated successfully within slot capacity",
    AllocationStatus.WAITLISTED: "Slot is full; token added to waiting queue",
    AllocationStatus.REALLOCATED: (
        "Lower-priority token was moved to the waiting queue to admit this token"
    ),
}


class AllocationValidationError(Exception):
    """Raised when an operator request carries invalid parameters."""


def build_engine(settings: Settings) -> AllocationEngine:
    calculator = PriorityCalculator(
        EngineConfig(
            aging_factor=settings.aging_factor,
            reallocation_penalty=settings.reallocation_penalty,
        )
    )
    return AllocationEngine(
        calculator=calculator,
        cancel_waitlisted_tokens=settings.cancel_waitlisted_tokens,
    )


class AllocationService:
    """Resolves doctor and slot, builds tokens, and maps engine outcomes."""

    def __init__(
        self,
        registry: Optional[DoctorRegistry] = None,
        settings: Optional[Settings] = None,
        engine: Optional[AllocationEngine] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._registry = registry or DoctorRegistry()
        self._engine = engine or build_engine(self._settings)
        self._clock = clock or utc_now

    def create_token(
        self,
        *,
        doctor_id: str,
        slot_id: str,
        patient_id: str,
        source: TokenSource,
    ) -> AllocationReceipt:
        try:
            slot = self._registry.resolve_slot(doctor_id, slot_id)
        except DoctorNotFoundError:
            logger.info("Allocation rejected | doctor_id=%s | reason=doctor_not_found", doctor_id)
            return AllocationReceipt(
                token_id=None,
                status=AllocationStatus.ERROR,
                reason="Doctor not found",
            )
        except SlotNotFoundError:
            logger.info(
                "Allocation rejected | doctor_id=%s | slot_id=%s | reason=slot_not_found",
                doctor_id,
                slot_id,
            )
            return AllocationReceipt(
                token_id=None,
                status=AllocationStatus.ERROR,
                reason="Slot not found",
            )

        now = self._clock()
        token = Token.create(requester_id=patient_id, source=source, created_at=now)
        outcome = self._engine.allocate(slot, token, now)

        position = None
        if outcome.status is AllocationStatus.WAITLISTED:
            # Snapshot only; the queue may change as soon as the lock is released
            position = slot.waiting_position(token.token_id)

        logger.info(
            "Token processed | doctor_id=%s | slot_id=%s | token_id=%s | source=%s | status=%s",
            doctor_id,
            slot_id,
            token.token_id,
            token.source.value,
            outcome.status.value,
        )
        return AllocationReceipt(
            token_id=token.token_id,
            status=outcome.status,
            reason=REASON_BY_STATUS[outcome.status],
            evicted_token_id=outcome.evicted_token_id,
            position_in_queue=position,
        )

    def create_emergency_token(self, *, doctor_id: str, slot_id: str, patient_id: str) -> AllocationReceipt:
        return self.create_token(
            doctor_id=doctor_id,
            slot_id=slot_id,
            patient_id=patient_id,
            source=TokenSource.EMERGENCY,
        )

    def cancel_token(self, *, doctor_id: str, slot_id: str, token_id: str) -> bool:
        try:
            slot = self._registry.resolve_slot(doctor_id, slot_id)
        except (DoctorNotFoundError, SlotNotFoundError) as exc:
            logger.info("Cancellation skipped | token_id=%s | reason=%s", token_id, exc)
            return False
        return self._engine.cancel(slot, token_id, self._clock())

    def apply_efficiency_delta(self, *, doctor_id: str, factor: float) -> Doctor:
        doctor = self._registry.get_doctor(doctor_id)
        try:
            self._engine.apply_efficiency_delta(doctor, factor)
        except ValueError as exc:
            raise AllocationValidationError(str(exc)) from exc
        return doctor

    def compute_priority(self, token: Token, now: Optional[datetime] = None) -> int:
        return self._engine.compute_priority(token, now or self._clock())

    def describe_slot(self, *, doctor_id: str, slot_id: str) -> SlotSnapshot:
        return self._registry.resolve_slot(doctor_id, slot_id).snapshot()

    def list_doctors(self) -> list[DoctorSummary]:
        return self._registry.list_doctors()
