"""Reconciliation loop settings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from .env import env_seconds, optional_env_var
from .errors import ConfigurationError

DEFAULT_TICK_INTERVAL_SECONDS = 30.0
DEFAULT_BACKOFF_BASE_SECONDS = 30.0
DEFAULT_BACKOFF_MAX_SECONDS = 900.0


@dataclass(frozen=True, slots=True)
class ReconcilerConfig:
    tick_interval: timedelta = timedelta(seconds=DEFAULT_TICK_INTERVAL_SECONDS)
    backoff_base: timedelta = timedelta(seconds=DEFAULT_BACKOFF_BASE_SECONDS)
    backoff_max: timedelta = timedelta(seconds=DEFAULT_BACKOFF_MAX_SECONDS)
    stuck_after: timedelta | None = None
    declarations_path: Path | None = None

    def __post_init__(self) -> None:
        if self.tick_interval <= timedelta(0):
            raise ConfigurationError("Tick interval must be positive")
        if self.backoff_max < self.backoff_base:
            raise ConfigurationError("Backoff ceiling must not be smaller than its base")


def get_reconciler_config() -> ReconcilerConfig:
    stuck_raw = optional_env_var("STALEWATCH_STUCK_AFTER_SECONDS")
    declarations = optional_env_var("STALEWATCH_DECLARATIONS")
    return ReconcilerConfig(
        tick_interval=env_seconds(
            "STALEWATCH_TICK_INTERVAL_SECONDS", DEFAULT_TICK_INTERVAL_SECONDS
        ),
        backoff_base=env_seconds("STALEWATCH_BACKOFF_BASE_SECONDS", DEFAULT_BACKOFF_BASE_SECONDS),
        backoff_max=env_seconds("STALEWATCH_BACKOFF_MAX_SECONDS", DEFAULT_BACKOFF_MAX_SECONDS),
        stuck_after=(
            env_seconds("STALEWATCH_STUCK_AFTER_SECONDS", 0.0) if stuck_raw is not None else None
        ),
        declarations_path=Path(declarations) if declarations else None,
    )
