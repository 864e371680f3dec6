"""Port for the execution backend that performs materializations."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable
from uuid import uuid4

if TYPE_CHECKING:
    from datetime import datetime

    from stalewatch.domain.model import AssetKey, Fingerprint


@dataclass(frozen=True, slots=True, kw_only=True)
class MaterializationSuccess:
    """Terminal success of one asset.

    ``data_version`` identifies the produced data (for example a content hash);
    ``upstream_fingerprints`` overrides the upstream snapshot when the backend
    knows exactly which upstream states it consumed.
    """

    data_version: str | None = None
    completed_at: datetime | None = None
    upstream_fingerprints: Mapping[AssetKey, Fingerprint] | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class MaterializationFailure:
    """Terminal failure of one asset."""

    reason: str


type MaterializationOutcome = MaterializationSuccess | MaterializationFailure

type CompletionCallback = Callable[[AssetKey, MaterializationOutcome], None]


@dataclass(frozen=True, slots=True)
class SubmissionHandle:
    keys: tuple[AssetKey, ...]
    id: str = field(default_factory=lambda: uuid4().hex)


@runtime_checkable
class ExecutionBackend(Protocol):
    """Runs materializations asynchronously relative to the reconciliation loop.

    ``submit`` must return without waiting for the runs. Assets of one
    submission are materialized respecting the given order, and every key
    eventually receives exactly one terminal outcome through ``on_complete``.
    """

    def submit(
        self,
        keys: Sequence[AssetKey],
        *,
        on_complete: CompletionCallback,
    ) -> SubmissionHandle: ...


@runtime_checkable
class PollingExecutionBackend(ExecutionBackend, Protocol):
    """Backend that only learns about completions when asked."""

    def poll(self) -> int: ...
