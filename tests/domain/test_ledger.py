from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Literal

import pytest

from stalewatch.adapters.memory import InMemoryRecordStore
from stalewatch.domain.errors import LedgerError
from stalewatch.domain.ledger import MaterializationLedger
from tests.support.assets import T0, record

if TYPE_CHECKING:
    from types import TracebackType

    from stalewatch.domain.ports.unit_of_work import LedgerRepositories


class _BrokenUnitOfWork:
    def __enter__(self) -> _BrokenUnitOfWork:
        raise OSError("disk on fire")

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        return False

    @property
    def repositories(self) -> LedgerRepositories:
        raise AssertionError("unreachable")

    def commit(self) -> None:
        raise AssertionError("unreachable")

    def rollback(self) -> None:
        return None


def test_cold_start_is_an_empty_snapshot(record_store: InMemoryRecordStore) -> None:
    ledger = MaterializationLedger(record_store.unit_of_work)

    assert dict(ledger.snapshot()) == {}
    assert ledger.record_for("A") is None
    assert ledger.fingerprint_of("A") is None


def test_record_success_writes_through(record_store: InMemoryRecordStore) -> None:
    ledger = MaterializationLedger(record_store.unit_of_work)
    stored = record("A")

    ledger.record_success(stored)

    assert record_store.read("A") == stored
    assert ledger.fingerprint_of("A") == stored.fingerprint


def test_snapshot_is_detached_from_later_writes(record_store: InMemoryRecordStore) -> None:
    ledger = MaterializationLedger(record_store.unit_of_work)
    ledger.record_success(record("A"))

    snapshot = ledger.snapshot()
    ledger.record_success(record("A", completed_at=T0 + timedelta(minutes=1)))

    assert snapshot["A"].completed_at == T0
    latest = ledger.record_for("A")
    assert latest is not None
    assert latest.completed_at == T0 + timedelta(minutes=1)


def test_invalidate_marks_existing_record() -> None:
    store = InMemoryRecordStore([record("A")])
    ledger = MaterializationLedger(store.unit_of_work)

    assert ledger.invalidate("A") is True
    assert ledger.invalidate("B") is False
    stored = store.read("A")
    assert stored is not None
    assert stored.invalidated


def test_reload_reads_the_store_again() -> None:
    store = InMemoryRecordStore()
    ledger = MaterializationLedger(store.unit_of_work)
    assert ledger.record_for("A") is None

    store.write([record("A")])
    ledger.reload()

    assert ledger.record_for("A") == record("A")


def test_unreadable_store_raises_ledger_error() -> None:
    ledger = MaterializationLedger(_BrokenUnitOfWork)

    with pytest.raises(LedgerError, match="disk on fire"):
        ledger.snapshot()
