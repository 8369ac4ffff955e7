"""Doctor entity: owns slots and scales their capacity by efficiency."""

from __future__ import annotations

import math
from decimal import Decimal
from threading import RLock
from typing import Optional

from opd_token_engine.domain.constraints import validate_efficiency_factor
from opd_token_engine.domain.models import DoctorSummary
from opd_token_engine.domain.slot import Slot


def _as_decimal(value: float | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # repr() keeps 1.2 as 1.2 instead of its binary expansion
    return Decimal(repr(value))


def scaled_capacity(base_capacity: int, efficiency_score: float | Decimal) -> int:
    """floor(base_capacity * efficiency_score), computed in decimal."""
    return max(0, math.floor(base_capacity * _as_decimal(efficiency_score)))


class Doctor:
    """Holds a slot mapping guarded by its own lock.

    Slot lookups may interleave with slot registration and efficiency updates;
    each slot's capacity field is written under that slot's lock.
    """

    def __init__(self, doctor_id: str, efficiency_score: float = 1.0) -> None:
        validate_efficiency_factor(efficiency_score)
        self._doctor_id = doctor_id
        self._efficiency = _as_decimal(efficiency_score)
        self._slots: dict[str, Slot] = {}
        self._lock = RLock()

    @property
    def doctor_id(self) -> str:
        return self._doctor_id

    @property
    def efficiency_score(self) -> float:
        with self._lock:
            return float(self._efficiency)

    def add_slot(self, slot_id: str, base_capacity: int) -> Slot:
        with self._lock:
            if slot_id in self._slots:
                raise ValueError(f"Slot {slot_id} already exists for doctor {self._doctor_id}")
            slot = Slot(
                slot_id=slot_id,
                base_capacity=base_capacity,
                effective_capacity=scaled_capacity(base_capacity, self._efficiency),
            )
            self._slots[slot_id] = slot
            return slot

    def get_slot(self, slot_id: str) -> Optional[Slot]:
        with self._lock:
            return self._slots.get(slot_id)

    def slots(self) -> dict[str, Slot]:
        with self._lock:
            return dict(self._slots)

    def apply_efficiency_delta(self, factor: float) -> None:
        """Multiply efficiency by `factor` and rescale every owned slot.

        Shrinking never evicts; a slot left above its new ceiling only stops
        accepting admissions until cancellations bring it back under.
        """
        validate_efficiency_factor(factor)
        with self._lock:
            self._efficiency *= _as_decimal(factor)
            for slot in self._slots.values():
                with slot.lock:
                    slot.update_capacity(scaled_capacity(slot.base_capacity, self._efficiency))

    def summary(self) -> DoctorSummary:
        with self._lock:
            return DoctorSummary(
                doctor_id=self._doctor_id,
                efficiency_score=float(self._efficiency),
                slot_capacities={
                    slot_id: slot.effective_capacity
                    for slot_id, slot in sorted(self._slots.items())
                },
            )
