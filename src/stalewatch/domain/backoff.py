"""Exponential backoff gate for assets whose materializations keep failing."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from stalewatch.domain.model import AssetKey


@dataclass(frozen=True, slots=True)
class _FailureState:
    failures: int
    last_failed_at: datetime
    reason: str


@dataclass(slots=True)
class FailureBackoff:
    """Hold back an asset for ``base * 2 ** (failures - 1)``, capped at ``ceiling``.

    A zero ``base`` disables the gate: failed assets are re-planned on the
    very next tick.
    """

    base: timedelta = timedelta(seconds=30)
    ceiling: timedelta = timedelta(minutes=15)
    _states: dict[AssetKey, _FailureState] = field(
        default_factory=dict["AssetKey", _FailureState], repr=False
    )

    def __post_init__(self) -> None:
        if self.base < timedelta(0) or self.ceiling < timedelta(0):
            raise ValueError("Backoff durations must be non-negative")

    def record_failure(self, key: AssetKey, *, at: datetime, reason: str = "") -> timedelta:
        previous = self._states.get(key)
        failures = 1 if previous is None else previous.failures + 1
        self._states[key] = _FailureState(failures=failures, last_failed_at=at, reason=reason)
        return self.delay_for(failures)

    def reset(self, key: AssetKey) -> None:
        self._states.pop(key, None)

    def forget(self, keys: frozenset[AssetKey]) -> None:
        for key in set(self._states) - keys:
            del self._states[key]

    def failures(self, key: AssetKey) -> int:
        state = self._states.get(key)
        return 0 if state is None else state.failures

    def delay_for(self, failures: int) -> timedelta:
        if failures <= 0 or self.base == timedelta(0):
            return timedelta(0)
        # bounded so the product stays within timedelta range
        exponent = min(failures - 1, 20)
        return min(self.base * (2**exponent), self.ceiling)

    def retry_at(self, key: AssetKey) -> datetime | None:
        state = self._states.get(key)
        if state is None:
            return None
        return state.last_failed_at + self.delay_for(state.failures)

    def blocked(self, now: datetime) -> frozenset[AssetKey]:
        """Assets that must not be re-planned before ``now``."""

        if self.base == timedelta(0):
            return frozenset()
        return frozenset(
            key
            for key, state in self._states.items()
            if now < state.last_failed_at + self.delay_for(state.failures)
        )
