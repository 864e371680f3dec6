"""SQLAlchemy table metadata for the materialization ledger."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import Boolean, Column, DateTime, Dialect, String, Table, Text, TypeDecorator, orm

from stalewatch.domain.model import Fingerprint

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy.engine import Engine


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class FingerprintMapType(TypeDecorator[dict[str, Fingerprint]]):
    """Store an upstream snapshot as a JSON object of key -> digest."""

    impl = Text
    cache_ok = True

    def process_bind_param(
        self,
        value: Mapping[str, Fingerprint] | None,
        dialect: Dialect,
    ) -> str | None:
        _ = dialect
        if value is None:
            return None
        payload = {key: value[key].digest for key in sorted(value)}
        return json.dumps(payload, separators=(",", ":"))

    def process_result_value(self, value: str | None, dialect: Dialect) -> dict[str, Fingerprint]:
        _ = dialect
        if value is None:
            return {}
        loaded = json.loads(value)
        if not isinstance(loaded, dict):
            return {}
        items = cast(dict[str, Any], loaded)
        return {
            key: Fingerprint(digest=digest)
            for key, digest in items.items()
            if isinstance(digest, str)
        }


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

materialization_record_table = Table(
    "materialization_record",
    mapper_registry.metadata,
    Column("asset_key", String, primary_key=True),
    Column("completed_at", UTCDateTime(), nullable=False),
    Column("code_version", String, nullable=True),
    Column("data_version", String, nullable=True),
    Column("upstream_fingerprints", FingerprintMapType(), nullable=False),
    Column("invalidated", Boolean, nullable=False, default=False),
)


def create_all_tables(engine: Engine) -> None:
    """Create the ledger tables if they do not exist yet."""

    mapper_registry.metadata.create_all(engine, checkfirst=True)
