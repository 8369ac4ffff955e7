"""In-memory doctor registry: the lookup collaborator of the allocation engine."""

from __future__ import annotations

from threading import RLock
from typing import Mapping, Optional

from opd_token_engine.domain.doctor import Doctor
from opd_token_engine.domain.models import DoctorSummary
from opd_token_engine.domain.slot import Slot
from opd_token_engine.utils.logger import get_logger


logger = get_logger(__name__)


# doctor_id -> (efficiency, {slot_id: base_capacity})
DEFAULT_ROSTER: dict[str, tuple[float, dict[str, int]]] = {
    "D1": (1.2, {"9-10": 5, "10-11": 5}),
    "D2": (1.0, {"9-10": 4, "10-11": 4}),
    "D3": (0.8, {"9-10": 3, "10-11": 3}),
}


class RegistryLookupError(Exception):
    """Base failure for unresolved registry references."""


class DoctorNotFoundError(RegistryLookupError):
    """Raised when a doctor id is not registered."""


class SlotNotFoundError(RegistryLookupError):
    """Raised when a doctor has no slot with the requested id."""


class DoctorRegistry:
    """Explicitly constructed doctor store, injected into the services.

    There is no process-wide instance; the application factory owns one and
    tests build their own.
    """

    def __init__(self) -> None:
        self._doctors: dict[str, Doctor] = {}
        self._lock = RLock()

    def register_doctor(self, doctor: Doctor) -> Doctor:
        with self._lock:
            if doctor.doctor_id in self._doctors:
                raise ValueError(f"Doctor {doctor.doctor_id} is already registered")
            self._doctors[doctor.doctor_id] = doctor
        logger.info(
            "Doctor registered | doctor_id=%s | efficiency=%.3f",
            doctor.doctor_id,
            doctor.efficiency_score,
        )
        return doctor

    def add_doctor(
        self,
        doctor_id: str,
        efficiency_score: float = 1.0,
        slots: Optional[Mapping[str, int]] = None,
    ) -> Doctor:
        doctor = Doctor(doctor_id, efficiency_score)
        for slot_id, base_capacity in (slots or {}).items():
            doctor.add_slot(slot_id, base_capacity)
        return self.register_doctor(doctor)

    def get_doctor(self, doctor_id: str) -> Doctor:
        with self._lock:
            doctor = self._doctors.get(doctor_id)
        if doctor is None:
            raise DoctorNotFoundError(f"Doctor {doctor_id} not found")
        return doctor

    def resolve_slot(self, doctor_id: str, slot_id: str) -> Slot:
        doctor = self.get_doctor(doctor_id)
        slot = doctor.get_slot(slot_id)
        if slot is None:
            raise SlotNotFoundError(f"Slot {slot_id} not found for doctor {doctor_id}")
        return slot

    def list_doctors(self) -> list[DoctorSummary]:
        with self._lock:
            doctors = [self._doctors[key] for key in sorted(self._doctors)]
        return [doctor.summary() for doctor in doctors]

    def count_doctors(self) -> int:
        with self._lock:
            return len(self._doctors)

    def clear(self) -> None:
        with self._lock:
            self._doctors.clear()

    def seed_default_roster(self) -> int:
        """Register the default OPD roster when the registry is empty."""
        with self._lock:
            if self._doctors:
                logger.info("Registry already populated; skipping roster seed")
                return 0
            for doctor_id, (efficiency, slots) in DEFAULT_ROSTER.items():
                self.add_doctor(doctor_id, efficiency, slots)
            return len(DEFAULT_ROSTER)
