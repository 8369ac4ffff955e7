"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class Settings:
    app_name: str = "OPD Token Allocation Engine"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    # Priority model
    aging_factor: float = 0.3
    reallocation_penalty: int = 10

    # Cancellation removes waitlisted tokens too when enabled
    cancel_waitlisted_tokens: bool = False

    seed_default_roster: bool = True


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests derive variants with `replace`."""
    return Settings(
        app_name=os.getenv("OPD_APP_NAME", Settings.app_name),
        app_version=os.getenv("OPD_APP_VERSION", Settings.app_version),
        log_level=os.getenv("OPD_LOG_LEVEL", Settings.log_level),
        aging_factor=float(os.getenv("OPD_AGING_FACTOR", Settings.aging_factor)),
        reallocation_penalty=int(
            os.getenv("OPD_REALLOCATION_PENALTY", Settings.reallocation_penalty)
        ),
        cancel_waitlisted_tokens=_env_bool(
            "OPD_CANCEL_WAITLISTED_TOKENS",
            Settings.cancel_waitlisted_tokens,
        ),
        seed_default_roster=_env_bool(
            "OPD_SEED_DEFAULT_ROSTER",
            Settings.seed_default_roster,
        ),
    )
