"""Materialization records kept by the ledger."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from .fingerprint import Fingerprint

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from .asset import AssetKey


@dataclass(frozen=True, slots=True, kw_only=True)
class MaterializationRecord:
    """Outcome of the last successful materialization of one asset.

    ``upstream_fingerprints`` holds each upstream's fingerprint as observed
    when this asset's run was recorded. Upstreams that had never been
    materialized at that point are absent from the mapping.
    """

    asset_key: AssetKey
    completed_at: datetime
    code_version: str | None = None
    data_version: str | None = None
    upstream_fingerprints: Mapping[AssetKey, Fingerprint] = field(
        default_factory=dict["AssetKey", Fingerprint]
    )
    invalidated: bool = False

    def __post_init__(self) -> None:
        if self.completed_at.tzinfo is None:
            raise ValueError("Materialization timestamps must include timezone information")

    @property
    def fingerprint(self) -> Fingerprint:
        return Fingerprint.combine(
            code_version=self.code_version,
            data_version=self.data_version,
            upstream=self.upstream_fingerprints,
        )

    def invalidate(self) -> MaterializationRecord:
        return replace(self, invalidated=True)
