"""Scripted OPD-day simulation isolated from the live registry.

The simulation builds its own registry seeded with the default roster and its
own allocation service, so replaying a day never admits, evicts or cancels a
token in the registry that serves real requests.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Optional

from opd_token_engine.domain.models import AllocationStatus, DoctorSummary, TokenSource
from opd_token_engine.repository.doctor_registry import DoctorRegistry
from opd_token_engine.services.allocation_engine import utc_now
from opd_token_engine.services.allocation_service import AllocationService, Clock, build_engine
from opd_token_engine.utils.config import Settings, get_settings
from opd_token_engine.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class ScriptedArrival:
    at: time
    patient_id: str
    doctor_id: str
    slot_id: str
    source: TokenSource
    note: Optional[str] = None


OPD_DAY_SCRIPT: tuple[ScriptedArrival, ...] = (
    ScriptedArrival(time(9, 0), "P001", "D1", "9-10", TokenSource.EMERGENCY),
    ScriptedArrival(time(9, 5), "P002", "D1", "9-10", TokenSource.PAID),
    ScriptedArrival(time(9, 10), "P003", "D2", "9-10", TokenSource.ONLINE),
    ScriptedArrival(time(9, 15), "P004", "D3", "9-10", TokenSource.WALK_IN),
    ScriptedArrival(time(9, 20), "P005", "D1", "9-10", TokenSource.FOLLOW_UP),
    ScriptedArrival(time(9, 20), "P006", "D1", "9-10", TokenSource.ONLINE),
    ScriptedArrival(time(9, 25), "P007", "D1", "9-10", TokenSource.ONLINE),
    ScriptedArrival(time(9, 30), "P008", "D1", "9-10", TokenSource.ONLINE),
    ScriptedArrival(
        time(9, 40),
        "P009",
        "D1",
        "9-10",
        TokenSource.EMERGENCY,
        note="Slot was full; emergency may preempt a lower-priority token",
    ),
    ScriptedArrival(time(10, 0), "P010", "D2", "10-11", TokenSource.PAID),
    ScriptedArrival(time(10, 5), "P011", "D3", "10-11", TokenSource.WALK_IN),
    ScriptedArrival(time(10, 10), "P012", "D1", "10-11", TokenSource.FOLLOW_UP),
)

OPD_DAY_NOTES: tuple[str, ...] = (
    "Simulation demonstrates a multi-doctor OPD day",
    "Emergency patients may preempt lower priority tokens",
    "Waiting queue automatically manages overflow",
    "Each doctor has different efficiency affecting capacity",
)


@dataclass(frozen=True)
class SimulatedEvent:
    time: str
    patient_id: str
    doctor_id: str
    slot_id: str
    source: TokenSource
    result: AllocationStatus
    token_id: Optional[str]
    evicted_token_id: Optional[str] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class SimulationReport:
    events: list[SimulatedEvent]
    doctors: list[DoctorSummary]
    day: date
    notes: tuple[str, ...] = OPD_DAY_NOTES

    @property
    def counts(self) -> Counter:
        return Counter(event.result for event in self.events)

    def to_api_dict(self) -> dict[str, Any]:
        counts = self.counts
        return {
            "simulation_name": "OPD day with 3 doctors",
            "day": self.day.isoformat(),
            "events": [
                {
                    "time": event.time,
                    "patient_id": event.patient_id,
                    "doctor_id": event.doctor_id,
                    "slot_id": event.slot_id,
                    "source": event.source.value,
                    "result": event.result.value,
                    "token_id": event.token_id,
                    "evicted_token_id": event.evicted_token_id,
                    "note": event.note,
                }
                for event in self.events
            ],
            "summary": {
                "total_requests": len(self.events),
                "allocated": counts[AllocationStatus.ALLOCATED],
                "reallocated": counts[AllocationStatus.REALLOCATED],
                "waitlisted": counts[AllocationStatus.WAITLISTED],
                "errors": counts[AllocationStatus.ERROR],
            },
            "doctors": [
                {
                    "doctor_id": doctor.doctor_id,
                    "efficiency_score": doctor.efficiency_score,
                    "slot_capacities": doctor.slot_capacities,
                }
                for doctor in self.doctors
            ],
            "notes": list(self.notes),
        }


class _SimulatedClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current


class SimulationService:
    """Replays the scripted OPD day against a fresh in-memory registry."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        day: Optional[datetime] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._day = day
        self._clock = clock or utc_now

    def _replay_day(self) -> datetime:
        """Midnight of the fixed day, or of today when none was given."""
        day = self._day or self._clock()
        return day.replace(hour=0, minute=0, second=0, microsecond=0)

    def run_opd_day(self) -> SimulationReport:
        day = self._replay_day()
        registry = DoctorRegistry()
        registry.seed_default_roster()
        clock = _SimulatedClock(day)
        service = AllocationService(
            registry=registry,
            settings=self._settings,
            engine=build_engine(self._settings),
            clock=clock,
        )

        logger.info("OPD day simulation started | arrivals=%s", len(OPD_DAY_SCRIPT))
        events: list[SimulatedEvent] = []
        for arrival in OPD_DAY_SCRIPT:
            clock.current = day + timedelta(hours=arrival.at.hour, minutes=arrival.at.minute)
            receipt = service.create_token(
                doctor_id=arrival.doctor_id,
                slot_id=arrival.slot_id,
                patient_id=arrival.patient_id,
                source=arrival.source,
            )
            events.append(
                SimulatedEvent(
                    time=arrival.at.strftime("%H:%M"),
                    patient_id=arrival.patient_id,
                    doctor_id=arrival.doctor_id,
                    slot_id=arrival.slot_id,
                    source=arrival.source,
                    result=receipt.status,
                    token_id=receipt.token_id,
                    evicted_token_id=receipt.evicted_token_id,
                    note=arrival.note,
                )
            )

        report = SimulationReport(
            events=events,
            doctors=registry.list_doctors(),
            day=day.date(),
        )
        counts = report.counts
        logger.info(
            "OPD day simulation completed | allocated=%s | reallocated=%s | waitlisted=%s",
            counts[AllocationStatus.ALLOCATED],
            counts[AllocationStatus.REALLOCATED],
            counts[AllocationStatus.WAITLISTED],
        )
        return report
