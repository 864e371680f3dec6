from __future__ import annotations

import pytest

from stalewatch.adapters.memory import InMemoryRecordStore
from tests.support.assets import record


def test_writes_are_visible_only_after_commit(record_store: InMemoryRecordStore) -> None:
    with record_store.unit_of_work() as uow:
        uow.repositories.records.save(record("A"))
        assert uow.repositories.records.get("A") == record("A")
        assert record_store.read("A") is None
        uow.commit()

    assert record_store.read("A") == record("A")


def test_rollback_discards_pending_writes(record_store: InMemoryRecordStore) -> None:
    with record_store.unit_of_work() as uow:
        uow.repositories.records.save(record("A"))
        uow.rollback()
        uow.commit()

    assert record_store.read_all() == []


def test_list_all_merges_pending_and_committed() -> None:
    store = InMemoryRecordStore([record("B")])

    with store.unit_of_work() as uow:
        uow.repositories.records.save(record("A"))
        keys = [item.asset_key for item in uow.repositories.records.list_all()]

    assert keys == ["A", "B"]
    assert [item.asset_key for item in store.read_all()] == ["B"]


def test_repositories_require_an_entered_unit_of_work(record_store: InMemoryRecordStore) -> None:
    uow = record_store.unit_of_work()

    with pytest.raises(RuntimeError, match="not entered"):
        _ = uow.repositories
