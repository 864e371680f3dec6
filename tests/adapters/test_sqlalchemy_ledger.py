from __future__ import annotations

from datetime import timedelta, timezone
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine, select

from stalewatch.adapters.sqlalchemy.mappings import materialization_record_table
from stalewatch.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyLedgerUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)
from stalewatch.domain.ledger import MaterializationLedger
from tests.support.assets import T0, record

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from sqlalchemy.engine import Engine


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def test_unit_of_work_requires_startup() -> None:
    with pytest.raises(StartupError):
        SqlAlchemyLedgerUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:", future=True)
    engine_b = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine_a, force=True)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert configured_engine() is engine_b
    assert is_started()


def test_record_round_trip_keeps_timezone_and_fingerprints(
    sqlite_unit_of_work: Callable[[], SqlAlchemyLedgerUnitOfWork],
) -> None:
    upstream = record("A")
    local_time = T0.astimezone(timezone(timedelta(hours=2)))
    stored = record("B", completed_at=local_time, upstream={"A": upstream.fingerprint})

    with sqlite_unit_of_work() as uow:
        uow.repositories.records.save(upstream)
        uow.repositories.records.save(stored)
        uow.commit()

    with sqlite_unit_of_work() as uow:
        loaded = uow.repositories.records.get("B")
        missing = uow.repositories.records.get("Z")

    assert missing is None
    assert loaded is not None
    assert loaded.completed_at == T0
    assert loaded.completed_at.utcoffset() == timedelta(0)
    assert dict(loaded.upstream_fingerprints) == {"A": upstream.fingerprint}
    assert loaded.fingerprint == stored.fingerprint


def test_save_overwrites_existing_row(
    sqlite_unit_of_work: Callable[[], SqlAlchemyLedgerUnitOfWork],
    sqlite_engine: Engine,
) -> None:
    with sqlite_unit_of_work() as uow:
        uow.repositories.records.save(record("A"))
        uow.commit()
    with sqlite_unit_of_work() as uow:
        later = record("A", completed_at=T0 + timedelta(hours=1))
        uow.repositories.records.save(later.invalidate())
        uow.commit()

    with sqlite_engine.connect() as connection:
        rows = connection.execute(select(materialization_record_table)).all()

    assert len(rows) == 1
    assert rows[0].invalidated


def test_uncommitted_writes_are_rolled_back(
    sqlite_unit_of_work: Callable[[], SqlAlchemyLedgerUnitOfWork],
) -> None:
    with pytest.raises(RuntimeError, match="abort"), sqlite_unit_of_work() as uow:
        uow.repositories.records.save(record("A"))
        raise RuntimeError("abort")

    with sqlite_unit_of_work() as uow:
        assert uow.repositories.records.list_all() == []


def test_ledger_survives_restart(
    sqlite_unit_of_work: Callable[[], SqlAlchemyLedgerUnitOfWork],
) -> None:
    MaterializationLedger(sqlite_unit_of_work).record_success(record("A"))
    MaterializationLedger(sqlite_unit_of_work).invalidate("A")

    restarted = MaterializationLedger(sqlite_unit_of_work)

    loaded = restarted.record_for("A")
    assert loaded is not None
    assert loaded.invalidated
    assert [item.asset_key for item in restarted.snapshot().values()] == ["A"]
