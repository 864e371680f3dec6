"""Public domain model surface."""

from __future__ import annotations

from stalewatch.domain.model.asset import AssetDefinition, AssetKey, FreshnessPolicy
from stalewatch.domain.model.enums import ExecutionStatus, StaleReason
from stalewatch.domain.model.fingerprint import Fingerprint
from stalewatch.domain.model.record import MaterializationRecord

__all__ = [
    "AssetDefinition",
    "AssetKey",
    "ExecutionStatus",
    "Fingerprint",
    "FreshnessPolicy",
    "MaterializationRecord",
    "StaleReason",
]
