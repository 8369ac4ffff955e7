"""Capacity-bounded appointment slot with admitted and waiting heaps.

Heap keys are the token's *snapshot* priority, written just before insertion.
The comparator never calls the priority function, so ordering stays valid as
wall-clock time advances.
"""

from __future__ import annotations

import heapq
import itertools
from threading import RLock
from typing import Optional

from opd_token_engine.domain.constraints import validate_base_capacity
from opd_token_engine.domain.models import SlotSnapshot, Token, TokenView


# admitted entries: (snapshot_priority, -sequence, token); lowest priority at the
# head, most recently admitted first among ties.
# waiting entries: (-snapshot_priority, sequence, token); highest priority at the
# head, first come first served among ties.
_HeapEntry = tuple[int, int, Token]


def _view(token: Token) -> TokenView:
    return TokenView(
        token_id=token.token_id,
        requester_id=token.requester_id,
        source=token.source,
        snapshot_priority=token.snapshot_priority,
        preemption_count=token.preemption_count,
    )


class Slot:
    """Owns the only mutation surface of its two token collections.

    Every method takes the slot lock. The lock is re-entrant so the allocation
    engine can hold it across a whole admit/evict decision while calling these
    methods.
    """

    def __init__(self, slot_id: str, base_capacity: int, effective_capacity: Optional[int] = None) -> None:
        validate_base_capacity(base_capacity)
        self._slot_id = slot_id
        self._base_capacity = base_capacity
        self._effective_capacity = max(
            0,
            base_capacity if effective_capacity is None else effective_capacity,
        )
        self._admitted: list[_HeapEntry] = []
        self._waiting: list[_HeapEntry] = []
        self._sequence = itertools.count()
        self._lock = RLock()

    @property
    def slot_id(self) -> str:
        return self._slot_id

    @property
    def base_capacity(self) -> int:
        return self._base_capacity

    @property
    def lock(self) -> RLock:
        return self._lock

    @property
    def effective_capacity(self) -> int:
        with self._lock:
            return self._effective_capacity

    def update_capacity(self, new_capacity: int) -> None:
        """Set the ceiling for future admissions; current admissions stay."""
        with self._lock:
            self._effective_capacity = max(0, new_capacity)

    def admitted_count(self) -> int:
        with self._lock:
            return len(self._admitted)

    def waiting_count(self) -> int:
        with self._lock:
            return len(self._waiting)

    def has_free_capacity(self) -> bool:
        with self._lock:
            return len(self._admitted) < self._effective_capacity

    def admit(self, token: Token) -> None:
        with self._lock:
            token.is_admitted = True
            heapq.heappush(
                self._admitted,
                (token.snapshot_priority, -next(self._sequence), token),
            )

    def enqueue_waiting(self, token: Token) -> None:
        with self._lock:
            token.is_admitted = False
            heapq.heappush(
                self._waiting,
                (-token.snapshot_priority, next(self._sequence), token),
            )

    def peek_lowest_admitted(self) -> Optional[Token]:
        with self._lock:
            if not self._admitted:
                return None
            return self._admitted[0][2]

    def pop_lowest_admitted(self) -> Optional[Token]:
        with self._lock:
            if not self._admitted:
                return None
            token = heapq.heappop(self._admitted)[2]
            token.is_admitted = False
            return token

    def pop_highest_waiting(self) -> Optional[Token]:
        with self._lock:
            if not self._waiting:
                return None
            return heapq.heappop(self._waiting)[2]

    def remove_admitted(self, token_id: str) -> Optional[Token]:
        with self._lock:
            token = self._remove(self._admitted, token_id)
            if token is not None:
                token.is_admitted = False
            return token

    def remove_waiting(self, token_id: str) -> Optional[Token]:
        with self._lock:
            return self._remove(self._waiting, token_id)

    @staticmethod
    def _remove(heap: list[_HeapEntry], token_id: str) -> Optional[Token]:
        for index, (_, _, token) in enumerate(heap):
            if token.token_id == token_id:
                heap[index] = heap[-1]
                heap.pop()
                heapq.heapify(heap)
                return token
        return None

    def admitted_tokens(self) -> list[Token]:
        """Admitted tokens, lowest priority first."""
        with self._lock:
            return [entry[2] for entry in sorted(self._admitted, key=lambda item: item[:2])]

    def waiting_tokens(self) -> list[Token]:
        """Waiting tokens in promotion order."""
        with self._lock:
            return [entry[2] for entry in sorted(self._waiting, key=lambda item: item[:2])]

    def waiting_position(self, token_id: str) -> Optional[int]:
        """1-based place in the promotion order at the time of the call."""
        with self._lock:
            for position, token in enumerate(self.waiting_tokens(), start=1):
                if token.token_id == token_id:
                    return position
            return None

    def snapshot(self) -> SlotSnapshot:
        with self._lock:
            return SlotSnapshot(
                slot_id=self._slot_id,
                base_capacity=self._base_capacity,
                effective_capacity=self._effective_capacity,
                admitted=[_view(token) for token in self.admitted_tokens()],
                waiting=[_view(token) for token in self.waiting_tokens()],
            )
