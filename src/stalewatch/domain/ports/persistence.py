"""Ports for persisting materialization records."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from stalewatch.domain.model import AssetKey, MaterializationRecord


@runtime_checkable
class MaterializationRecordRepository(Protocol):
    """Durable key-value store of one record per asset."""

    def get(self, key: AssetKey) -> MaterializationRecord | None: ...

    def save(self, record: MaterializationRecord) -> None: ...

    def list_all(self) -> Sequence[MaterializationRecord]: ...
