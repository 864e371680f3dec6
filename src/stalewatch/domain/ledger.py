"""Materialization ledger: the single owner of per-asset records.

Records are loaded once from the persistence port (an empty store is a normal
cold start) and kept in memory afterwards; every write goes through to the
store before the in-memory copy is replaced, so a failed write leaves the
previous state visible and the asset keeps being considered stale.
"""

from __future__ import annotations

from logging import getLogger
from types import MappingProxyType
from typing import TYPE_CHECKING

from stalewatch.domain.errors import LedgerError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from stalewatch.domain.model import AssetKey, Fingerprint, MaterializationRecord
    from stalewatch.domain.ports.unit_of_work import LedgerUnitOfWork

log = getLogger(__name__)


class MaterializationLedger:
    def __init__(self, unit_of_work_factory: Callable[[], LedgerUnitOfWork]) -> None:
        self._unit_of_work_factory = unit_of_work_factory
        self._records: dict[AssetKey, MaterializationRecord] | None = None

    def snapshot(self) -> Mapping[AssetKey, MaterializationRecord]:
        """Return a read-only copy of every record, for one tick's evaluation."""

        return MappingProxyType(dict(self._loaded()))

    def record_for(self, key: AssetKey) -> MaterializationRecord | None:
        return self._loaded().get(key)

    def fingerprint_of(self, key: AssetKey) -> Fingerprint | None:
        record = self.record_for(key)
        return record.fingerprint if record is not None else None

    def record_success(self, record: MaterializationRecord) -> None:
        """Create or overwrite the record of ``record.asset_key``."""

        self._write(record)
        log.debug(
            "Recorded materialization of %s at %s (fingerprint %s)",
            record.asset_key,
            record.completed_at.isoformat(),
            record.fingerprint,
        )

    def invalidate(self, key: AssetKey) -> bool:
        """Force ``key`` stale until its next successful materialization.

        Returns ``False`` when the asset has no record, since it is already
        stale in that case.
        """

        record = self.record_for(key)
        if record is None:
            return False
        if not record.invalidated:
            self._write(record.invalidate())
        return True

    def reload(self) -> None:
        """Drop the in-memory copy; the next read goes back to the store."""

        self._records = None

    def _loaded(self) -> dict[AssetKey, MaterializationRecord]:
        if self._records is None:
            try:
                with self._unit_of_work_factory() as uow:
                    stored = uow.repositories.records.list_all()
            except LedgerError:
                raise
            except Exception as exc:
                raise LedgerError(f"Failed to load materialization records: {exc}") from exc
            self._records = {record.asset_key: record for record in stored}
            log.info("Loaded %s materialization record(s)", len(self._records))
        return self._records

    def _write(self, record: MaterializationRecord) -> None:
        records = self._loaded()
        try:
            with self._unit_of_work_factory() as uow:
                uow.repositories.records.save(record)
                uow.commit()
        except Exception as exc:
            raise LedgerError(
                f"Failed to save materialization record for {record.asset_key!r}: {exc}"
            ) from exc
        records[record.asset_key] = record
