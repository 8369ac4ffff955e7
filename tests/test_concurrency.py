"""Thread-safety of per-slot decisions under parallel callers."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from opd_token_engine.domain.doctor import scaled_capacity
from opd_token_engine.domain.models import AllocationStatus, Token, TokenSource
from opd_token_engine.domain.slot import Slot
from opd_token_engine.repository.doctor_registry import DoctorRegistry, SlotNotFoundError
from opd_token_engine.services.allocation_engine import AllocationEngine
from opd_token_engine.services.allocation_service import AllocationService
from opd_token_engine.utils.config import get_settings


T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
SOURCES = list(TokenSource)


def _token(index: int) -> Token:
    return Token.create(
        requester_id=f"P{index:03d}",
        source=SOURCES[index % len(SOURCES)],
        created_at=T0,
    )


def test_parallel_allocations_never_overflow_capacity() -> None:
    engine = AllocationEngine()
    slot = Slot("9-10", 5)
    tokens = [_token(index) for index in range(200)]

    def allocate(token: Token) -> AllocationStatus:
        return engine.allocate(slot, token, T0).status

    with ThreadPoolExecutor(max_workers=16) as pool:
        statuses = list(pool.map(allocate, tokens))

    admitted_ids = {token.token_id for token in slot.admitted_tokens()}
    waiting_ids = {token.token_id for token in slot.waiting_tokens()}
    assert slot.admitted_count() == 5
    assert slot.admitted_count() + slot.waiting_count() == len(tokens)
    assert not admitted_ids & waiting_ids
    assert statuses.count(AllocationStatus.ALLOCATED) == 5
    # Each preemption charged exactly one evicted token
    assert sum(token.preemption_count for token in tokens) == statuses.count(
        AllocationStatus.REALLOCATED
    )


def test_parallel_allocations_and_cancellations_keep_invariants() -> None:
    engine = AllocationEngine()
    slot = Slot("9-10", 5)
    initial = [_token(index) for index in range(5)]
    for token in initial:
        engine.allocate(slot, token, T0)
    newcomers = [_token(index) for index in range(5, 55)]

    def run(item: tuple[str, object]) -> bool:
        action, payload = item
        if action == "cancel":
            return engine.cancel(slot, payload, T0)
        engine.allocate(slot, payload, T0)
        return True

    work: list[tuple[str, object]] = [("allocate", token) for token in newcomers]
    for position, token in enumerate(initial):
        work.insert(position * 10, ("cancel", token.token_id))

    with ThreadPoolExecutor(max_workers=12) as pool:
        results = list(pool.map(run, work))

    failed_cancellations = sum(
        1 for (action, _), ok in zip(work, results) if action == "cancel" and not ok
    )
    assert slot.admitted_count() <= slot.effective_capacity
    assert slot.admitted_count() + slot.waiting_count() == len(newcomers) + failed_cancellations
    if slot.waiting_count():
        assert slot.admitted_count() == slot.effective_capacity
    admitted_ids = {token.token_id for token in slot.admitted_tokens()}
    assert not admitted_ids & {token.token_id for token in slot.waiting_tokens()}


def test_parallel_service_calls_across_slots() -> None:
    registry = DoctorRegistry()
    registry.seed_default_roster()
    service = AllocationService(registry=registry, settings=get_settings())
    targets = [("D1", "9-10"), ("D1", "10-11"), ("D2", "9-10"), ("D3", "10-11")]

    def submit(index: int):
        doctor_id, slot_id = targets[index % len(targets)]
        return service.create_token(
            doctor_id=doctor_id,
            slot_id=slot_id,
            patient_id=f"P{index}",
            source=SOURCES[index % len(SOURCES)],
        )

    with ThreadPoolExecutor(max_workers=8) as pool:
        receipts = list(pool.map(submit, range(120)))

    assert all(receipt.status is not AllocationStatus.ERROR for receipt in receipts)
    for doctor_id, slot_id in targets:
        slot = registry.resolve_slot(doctor_id, slot_id)
        assert slot.admitted_count() == slot.effective_capacity
        assert slot.admitted_count() + slot.waiting_count() == 30


def test_slot_lookups_interleave_with_slot_registration() -> None:
    registry = DoctorRegistry()
    doctor = registry.add_doctor("D1", 1.2, {"9-10": 5})
    existing = registry.resolve_slot("D1", "9-10")
    new_slot_ids = [f"extra-{index}" for index in range(100)]

    def run(index: int):
        if index % 2:
            return doctor.add_slot(new_slot_ids[index // 2], 4)
        try:
            registry.resolve_slot("D1", new_slot_ids[index // 2])
        except SlotNotFoundError:
            pass
        return registry.resolve_slot("D1", "9-10")

    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(run, range(200)))

    resolved = results[0::2]
    added = results[1::2]
    assert all(slot is existing for slot in resolved)
    assert set(doctor.slots()) == {"9-10", *new_slot_ids}
    for slot in added:
        assert registry.resolve_slot("D1", slot.slot_id) is slot
        assert slot.effective_capacity == 4


def test_efficiency_changes_race_allocations_and_cancellations() -> None:
    registry = DoctorRegistry()
    doctor = registry.add_doctor("D1", 1.0, {"9-10": 6, "10-11": 4})
    service = AllocationService(registry=registry, settings=get_settings())
    slot_ids = ["9-10", "10-11"]
    factors = [2.0, 0.5]

    def run(index: int) -> None:
        slot_id = slot_ids[index % len(slot_ids)]
        if index % 10 == 0:
            service.apply_efficiency_delta(
                doctor_id="D1", factor=factors[(index // 10) % len(factors)]
            )
            return
        if index % 5 == 0:
            slot = registry.resolve_slot("D1", slot_id)
            admitted = slot.admitted_tokens()
            if admitted:
                service.cancel_token(
                    doctor_id="D1", slot_id=slot_id, token_id=admitted[0].token_id
                )
            return
        service.create_token(
            doctor_id="D1",
            slot_id=slot_id,
            patient_id=f"P{index}",
            source=SOURCES[index % len(SOURCES)],
        )

    with ThreadPoolExecutor(max_workers=16) as pool:
        list(pool.map(run, range(400)))

    # Twenty doublings and twenty halvings cancel out exactly
    assert doctor.efficiency_score == 1.0
    for slot in doctor.slots().values():
        assert slot.effective_capacity == scaled_capacity(slot.base_capacity, doctor.efficiency_score)
        assert slot.effective_capacity == slot.base_capacity
        admitted_ids = {token.token_id for token in slot.admitted_tokens()}
        waiting_ids = {token.token_id for token in slot.waiting_tokens()}
        assert not admitted_ids & waiting_ids
