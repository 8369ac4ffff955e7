"""Domain-level validation rules for the priority model and capacity scaling."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class EngineConfig:
    aging_factor: float = 0.3
    reallocation_penalty: int = 10


def validate_engine_config(config: EngineConfig) -> None:
    if not math.isfinite(config.aging_factor) or config.aging_factor < 0.0:
        raise ValueError("aging_factor must be a finite value >= 0")
    if config.reallocation_penalty < 0:
        raise ValueError("reallocation_penalty must be >= 0")


def validate_efficiency_factor(factor: float) -> None:
    if not math.isfinite(factor) or factor <= 0.0:
        raise ValueError("efficiency factor must be a finite value > 0")


def validate_base_capacity(base_capacity: int) -> None:
    if base_capacity < 0:
        raise ValueError("base_capacity must be >= 0")
