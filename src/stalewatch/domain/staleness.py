"""Staleness evaluation.

An asset is stale iff
- it has no materialization record,
- its record was invalidated by an external trigger,
- its declared code version differs from the one recorded at its last run, or
- any upstream is stale, or has a current fingerprint different from the one
  recorded in the asset's upstream snapshot.

Because the last rule only looks at direct upstreams whose results are already
known, one pass in topological order decides every asset.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

from stalewatch.domain.model import StaleReason

if TYPE_CHECKING:
    from collections.abc import Mapping

    from stalewatch.domain.graph import AssetGraph
    from stalewatch.domain.model import AssetKey, Fingerprint, MaterializationRecord


@dataclass(frozen=True, slots=True)
class StalenessReport:
    """Memoized staleness of every asset for one tick."""

    reasons: Mapping[AssetKey, StaleReason]
    fingerprints: Mapping[AssetKey, Fingerprint | None]

    @property
    def stale(self) -> frozenset[AssetKey]:
        return frozenset(self.reasons)

    def is_stale(self, key: AssetKey) -> bool:
        return key in self.reasons

    def reason_for(self, key: AssetKey) -> StaleReason | None:
        return self.reasons.get(key)

    def fingerprint_of(self, key: AssetKey) -> Fingerprint | None:
        return self.fingerprints.get(key)


class StalenessEvaluator:
    def evaluate(
        self,
        graph: AssetGraph,
        records: Mapping[AssetKey, MaterializationRecord],
    ) -> StalenessReport:
        reasons: dict[AssetKey, StaleReason] = {}
        fingerprints: dict[AssetKey, Fingerprint | None] = {}

        for key in graph.topological_order():
            record = records.get(key)
            fingerprints[key] = record.fingerprint if record is not None else None
            reason = self._reason(graph, key, record, reasons, fingerprints)
            if reason is not None:
                reasons[key] = reason

        return StalenessReport(
            reasons=MappingProxyType(reasons),
            fingerprints=MappingProxyType(fingerprints),
        )

    @staticmethod
    def _reason(
        graph: AssetGraph,
        key: AssetKey,
        record: MaterializationRecord | None,
        reasons: Mapping[AssetKey, StaleReason],
        fingerprints: Mapping[AssetKey, Fingerprint | None],
    ) -> StaleReason | None:
        if record is None:
            return StaleReason.NEVER_MATERIALIZED
        if record.invalidated:
            return StaleReason.INVALIDATED
        if record.code_version != graph.definition(key).code_version:
            return StaleReason.CODE_VERSION_CHANGED

        upstreams = sorted(graph.upstreams(key))
        if any(upstream in reasons for upstream in upstreams):
            return StaleReason.UPSTREAM_STALE
        for upstream in upstreams:
            if fingerprints[upstream] != record.upstream_fingerprints.get(upstream):
                return StaleReason.UPSTREAM_CHANGED
        return None
