"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class ExecutionStatus(StrEnum):
    """Where an asset sits in the reconciliation loop."""

    IDLE = "idle"
    PLANNED = "planned"
    IN_FLIGHT = "in_flight"


class StaleReason(StrEnum):
    """Why the committed data of an asset no longer reflects its inputs."""

    NEVER_MATERIALIZED = "never_materialized"
    INVALIDATED = "invalidated"
    CODE_VERSION_CHANGED = "code_version_changed"
    UPSTREAM_CHANGED = "upstream_changed"
    UPSTREAM_STALE = "upstream_stale"
