"""Declared assets and their freshness policies."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

type AssetKey = str


@dataclass(frozen=True, slots=True)
class FreshnessPolicy:
    """Maximum tolerable lag of an asset's data relative to wall-clock now.

    A zero lag means "always fresh": the asset is late exactly when it is stale.
    """

    maximum_lag: timedelta

    def __post_init__(self) -> None:
        if self.maximum_lag < timedelta(0):
            raise ValueError("Freshness policy lag must be non-negative")

    @classmethod
    def minutes(cls, value: float) -> FreshnessPolicy:
        return cls(maximum_lag=timedelta(minutes=value))

    @property
    def always_fresh(self) -> bool:
        return self.maximum_lag == timedelta(0)


@dataclass(frozen=True, slots=True)
class AssetDefinition:
    """A named node of the asset graph as declared by its owner.

    ``code_version`` changes whenever the defining logic of the asset changes;
    ``None`` means the asset does not track code versions.
    """

    key: AssetKey
    deps: frozenset[AssetKey] = field(default_factory=frozenset["AssetKey"])
    policy: FreshnessPolicy | None = None
    code_version: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.key, str) or not self.key.strip():
            raise ValueError("Asset key must be a non-empty string")
        # accept any iterable of keys from callers
        object.__setattr__(self, "deps", frozenset(self.deps))
        if self.key in self.deps:
            raise ValueError(f"Asset {self.key!r} cannot depend on itself")
