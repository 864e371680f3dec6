"""SQLAlchemy adapter package for the materialization ledger."""

from __future__ import annotations

from .mappings import (
    FingerprintMapType,
    UTCDateTime,
    create_all_tables,
    mapper_registry,
    materialization_record_table,
)
from .repositories import SqlAlchemyMaterializationRecordRepository
from .unit_of_work import (
    SqlAlchemyLedgerUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "FingerprintMapType",
    "SqlAlchemyLedgerUnitOfWork",
    "SqlAlchemyMaterializationRecordRepository",
    "StartupError",
    "UTCDateTime",
    "configured_engine",
    "create_all_tables",
    "is_started",
    "mapper_registry",
    "materialization_record_table",
    "shutdown",
    "startup",
]
