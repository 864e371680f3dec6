"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from stalewatch.adapters.sqlalchemy.mappings import materialization_record_table
from stalewatch.domain.model import MaterializationRecord

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy import Row
    from sqlalchemy.orm import Session

    from stalewatch.domain.model import AssetKey


class SqlAlchemyMaterializationRecordRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, key: AssetKey) -> MaterializationRecord | None:
        stmt = select(materialization_record_table).where(
            materialization_record_table.c.asset_key == key
        )
        row = self.session.execute(stmt).one_or_none()
        return None if row is None else self._to_record(row)

    def list_all(self) -> Sequence[MaterializationRecord]:
        stmt = select(materialization_record_table).order_by(
            materialization_record_table.c.asset_key
        )
        return [self._to_record(row) for row in self.session.execute(stmt)]

    def save(self, record: MaterializationRecord) -> None:
        values = {
            "completed_at": record.completed_at,
            "code_version": record.code_version,
            "data_version": record.data_version,
            "upstream_fingerprints": dict(record.upstream_fingerprints),
            "invalidated": record.invalidated,
        }
        table = materialization_record_table
        result = self.session.execute(
            table.update().where(table.c.asset_key == record.asset_key).values(**values)
        )
        if result.rowcount == 0:
            self.session.execute(table.insert().values(asset_key=record.asset_key, **values))

    @staticmethod
    def _to_record(row: Row[Any]) -> MaterializationRecord:
        mapping = row._mapping  # noqa: SLF001
        return MaterializationRecord(
            asset_key=mapping["asset_key"],
            completed_at=mapping["completed_at"],
            code_version=mapping["code_version"],
            data_version=mapping["data_version"],
            upstream_fingerprints=mapping["upstream_fingerprints"],
            invalidated=bool(mapping["invalidated"]),
        )


if TYPE_CHECKING:
    from typing import cast

    from stalewatch.domain.ports.persistence import MaterializationRecordRepository

    _session_stub = cast("Session", object())
    _repo_check: MaterializationRecordRepository = SqlAlchemyMaterializationRecordRepository(
        _session_stub
    )
