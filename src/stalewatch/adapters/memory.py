"""In-memory ledger storage for embedding and tests.

Writes are staged per unit of work and only become visible on ``commit``,
matching the SQLAlchemy adapter's transactional behaviour.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Literal

from stalewatch.domain.ports.unit_of_work import LedgerRepositories

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from stalewatch.domain.model import AssetKey, MaterializationRecord


class InMemoryRecordStore:
    """Committed records shared by every unit of work created from it."""

    def __init__(self, records: Sequence[MaterializationRecord] = ()) -> None:
        self._lock = threading.Lock()
        self._records: dict[AssetKey, MaterializationRecord] = {
            record.asset_key: record for record in records
        }

    def read(self, key: AssetKey) -> MaterializationRecord | None:
        with self._lock:
            return self._records.get(key)

    def read_all(self) -> list[MaterializationRecord]:
        with self._lock:
            return [self._records[key] for key in sorted(self._records)]

    def write(self, records: Sequence[MaterializationRecord]) -> None:
        with self._lock:
            for record in records:
                self._records[record.asset_key] = record

    def unit_of_work(self) -> InMemoryLedgerUnitOfWork:
        return InMemoryLedgerUnitOfWork(self)


class InMemoryMaterializationRecordRepository:
    def __init__(self, store: InMemoryRecordStore) -> None:
        self._store = store
        self.pending: dict[AssetKey, MaterializationRecord] = {}

    def get(self, key: AssetKey) -> MaterializationRecord | None:
        pending = self.pending.get(key)
        return pending if pending is not None else self._store.read(key)

    def list_all(self) -> Sequence[MaterializationRecord]:
        merged = {record.asset_key: record for record in self._store.read_all()}
        merged.update(self.pending)
        return [merged[key] for key in sorted(merged)]

    def save(self, record: MaterializationRecord) -> None:
        self.pending[record.asset_key] = record


class InMemoryLedgerUnitOfWork:
    def __init__(self, store: InMemoryRecordStore) -> None:
        self._store = store
        self._repository: InMemoryMaterializationRecordRepository | None = None

    def __enter__(self) -> InMemoryLedgerUnitOfWork:
        self._repository = InMemoryMaterializationRecordRepository(self._store)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        self._repository = None
        return False

    @property
    def repositories(self) -> LedgerRepositories:
        if self._repository is None:
            raise RuntimeError("Unit of work not entered")
        return LedgerRepositories(records=self._repository)

    def commit(self) -> None:
        repository = self._repository
        if repository is None:
            raise RuntimeError("Unit of work not entered")
        self._store.write(list(repository.pending.values()))
        repository.pending.clear()

    def rollback(self) -> None:
        if self._repository is not None:
            self._repository.pending.clear()


if TYPE_CHECKING:
    from stalewatch.domain.ports.unit_of_work import LedgerUnitOfWork

    _uow_check: LedgerUnitOfWork = InMemoryLedgerUnitOfWork(InMemoryRecordStore())
