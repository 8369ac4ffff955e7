"""Admission and preemption decisions for a single slot.

Every decision runs while holding the slot lock, so the capacity check, the
peek at the lowest admitted token and the resulting mutation are one atomic
step with respect to other allocate/cancel calls on that slot.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from opd_token_engine.domain.doctor import Doctor
from opd_token_engine.domain.models import AllocationOutcome, AllocationStatus, Token
from opd_token_engine.domain.priority import PriorityCalculator
from opd_token_engine.domain.slot import Slot
from opd_token_engine.utils.logger import get_logger


logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AllocationEngine:
    """Decides ALLOCATED / WAITLISTED / REALLOCATED and mutates the slot."""

    def __init__(
        self,
        calculator: Optional[PriorityCalculator] = None,
        cancel_waitlisted_tokens: bool = False,
    ) -> None:
        self._calculator = calculator or PriorityCalculator()
        self._cancel_waitlisted_tokens = cancel_waitlisted_tokens

    def compute_priority(self, token: Token, now: Optional[datetime] = None) -> int:
        return self._calculator.calculate(token, now or utc_now())

    def allocate(self, slot: Slot, token: Token, now: Optional[datetime] = None) -> AllocationOutcome:
        now = now or utc_now()
        with slot.lock:
            priority = self._calculator.calculate(token, now)
            token.snapshot_priority = priority

            if slot.has_free_capacity():
                slot.admit(token)
                self._log_decision(slot, token, AllocationStatus.ALLOCATED)
                return AllocationOutcome(status=AllocationStatus.ALLOCATED)

            lowest = slot.peek_lowest_admitted()
            if lowest is None:
                # At capacity with nothing admitted: only reachable when the
                # effective capacity has dropped to zero.
                logger.warning(
                    "Capacity invariant violated; admitting anyway | slot_id=%s | "
                    "effective_capacity=%s | token_id=%s",
                    slot.slot_id,
                    slot.effective_capacity,
                    token.token_id,
                )
                slot.admit(token)
                return AllocationOutcome(
                    status=AllocationStatus.ALLOCATED,
                    capacity_invariant_violated=True,
                )

            if priority > lowest.snapshot_priority:
                slot.pop_lowest_admitted()
                lowest.preemption_count += 1
                lowest.snapshot_priority = self._calculator.calculate(lowest, now)
                slot.enqueue_waiting(lowest)
                slot.admit(token)
                logger.info(
                    "Token preempted | slot_id=%s | evicted_token_id=%s | "
                    "evicted_priority=%s | preemptions=%s | admitted_token_id=%s | priority=%s",
                    slot.slot_id,
                    lowest.token_id,
                    lowest.snapshot_priority,
                    lowest.preemption_count,
                    token.token_id,
                    priority,
                )
                self._log_decision(slot, token, AllocationStatus.REALLOCATED)
                return AllocationOutcome(
                    status=AllocationStatus.REALLOCATED,
                    evicted_token_id=lowest.token_id,
                )

            slot.enqueue_waiting(token)
            self._log_decision(slot, token, AllocationStatus.WAITLISTED)
            return AllocationOutcome(status=AllocationStatus.WAITLISTED)

    def cancel(self, slot: Slot, token_id: str, now: Optional[datetime] = None) -> bool:
        """Remove an admitted token and promote the best waiting one.

        Waitlisted tokens are only removed when the engine was built with
        `cancel_waitlisted_tokens=True`; otherwise they stay queued and the
        call reports False.
        """
        now = now or utc_now()
        with slot.lock:
            removed = slot.remove_admitted(token_id)
            if removed is None:
                if self._cancel_waitlisted_tokens and slot.remove_waiting(token_id) is not None:
                    logger.info(
                        "Waitlisted token cancelled | slot_id=%s | token_id=%s",
                        slot.slot_id,
                        token_id,
                    )
                    return True
                logger.info(
                    "Cancellation ignored; token not admitted | slot_id=%s | token_id=%s",
                    slot.slot_id,
                    token_id,
                )
                return False

            # Always true unless the capacity shrank below the admitted count;
            # in that case the freed place is absorbed by the lower ceiling.
            promoted = slot.pop_highest_waiting() if slot.has_free_capacity() else None
            if promoted is not None:
                promoted.snapshot_priority = self._calculator.calculate(promoted, now)
                slot.admit(promoted)
            logger.info(
                "Token cancelled | slot_id=%s | token_id=%s | promoted_token_id=%s",
                slot.slot_id,
                token_id,
                promoted.token_id if promoted is not None else None,
            )
            return True

    def apply_efficiency_delta(self, doctor: Doctor, factor: float) -> None:
        doctor.apply_efficiency_delta(factor)
        logger.info(
            "Efficiency updated | doctor_id=%s | factor=%.3f | efficiency=%.3f",
            doctor.doctor_id,
            factor,
            doctor.efficiency_score,
        )

    @staticmethod
    def _log_decision(slot: Slot, token: Token, status: AllocationStatus) -> None:
        logger.debug(
            "Allocation decision | slot_id=%s | token_id=%s | status=%s | priority=%s | "
            "admitted=%s | waiting=%s",
            slot.slot_id,
            token.token_id,
            status.value,
            token.snapshot_priority,
            slot.admitted_count(),
            slot.waiting_count(),
        )
