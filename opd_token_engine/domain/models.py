"""Domain models for OPD token admission and preemption."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4


class TokenSource(str, Enum):
    EMERGENCY = "EMERGENCY"
    PAID = "PAID"
    FOLLOW_UP = "FOLLOW_UP"
    ONLINE = "ONLINE"
    WALK_IN = "WALK_IN"


BASE_PRIORITY_BY_SOURCE: dict[TokenSource, int] = {
    TokenSource.EMERGENCY: 100,
    TokenSource.PAID: 85,
    TokenSource.FOLLOW_UP: 65,
    TokenSource.ONLINE: 50,
    TokenSource.WALK_IN: 40,
}


def base_priority_for(source: TokenSource) -> int:
    return BASE_PRIORITY_BY_SOURCE[TokenSource(source)]


class AllocationStatus(str, Enum):
    ALLOCATED = "ALLOCATED"
    WAITLISTED = "WAITLISTED"
    REALLOCATED = "REALLOCATED"
    ERROR = "ERROR"


@dataclass(eq=False)
class Token:
    """One admission request.

    Identity, requester, source, base priority and creation time are fixed at
    construction. Only the bookkeeping fields (`preemption_count`,
    `snapshot_priority`, `is_admitted`) change, and only while the owning
    slot's lock is held.
    """

    requester_id: str
    source: TokenSource
    base_priority: int
    created_at: datetime
    token_id: str = field(default_factory=lambda: str(uuid4()))
    preemption_count: int = 0
    snapshot_priority: int = 0
    is_admitted: bool = False

    @classmethod
    def create(cls, requester_id: str, source: TokenSource, created_at: datetime) -> "Token":
        source = TokenSource(source)
        return cls(
            requester_id=requester_id,
            source=source,
            base_priority=base_priority_for(source),
            created_at=created_at,
        )


@dataclass(frozen=True)
class AllocationOutcome:
    status: AllocationStatus
    evicted_token_id: Optional[str] = None
    capacity_invariant_violated: bool = False


@dataclass(frozen=True)
class AllocationReceipt:
    """Orchestration-level answer returned to callers of the service."""

    token_id: Optional[str]
    status: AllocationStatus
    reason: str
    evicted_token_id: Optional[str] = None
    position_in_queue: Optional[int] = None


@dataclass(frozen=True)
class TokenView:
    token_id: str
    requester_id: str
    source: TokenSource
    snapshot_priority: int
    preemption_count: int


@dataclass(frozen=True)
class SlotSnapshot:
    slot_id: str
    base_capacity: int
    effective_capacity: int
    admitted: list[TokenView]
    waiting: list[TokenView]


@dataclass(frozen=True)
class DoctorSummary:
    doctor_id: str
    efficiency_score: float
    slot_capacities: dict[str, int]
