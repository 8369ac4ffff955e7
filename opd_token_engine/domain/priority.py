"""Effective priority of a token: base + aging - preemption penalty."""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal
from typing import Optional

from opd_token_engine.domain.constraints import EngineConfig, validate_engine_config
from opd_token_engine.domain.models import Token


def waiting_minutes(created_at: datetime, now: datetime) -> int:
    """Whole minutes elapsed since creation, never negative."""
    elapsed_seconds = (now - created_at).total_seconds()
    if elapsed_seconds <= 0:
        return 0
    return int(elapsed_seconds // 60)


class PriorityCalculator:
    """Pure priority function; higher values are admitted first."""

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self._config = config or EngineConfig()
        validate_engine_config(self._config)
        # repr() keeps 0.3 as 0.3 instead of its binary expansion
        self._aging_factor = Decimal(repr(self._config.aging_factor))

    def aging_bonus(self, token: Token, now: datetime) -> int:
        minutes = waiting_minutes(token.created_at, now)
        return math.floor(self._aging_factor * minutes)

    def calculate(self, token: Token, now: datetime) -> int:
        return (
            token.base_priority
            + self.aging_bonus(token, now)
            - self._config.reallocation_penalty * token.preemption_count
        )
