"""Application orchestration entry points."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from stalewatch.adapters.declarations import TomlDeclarationSource
from stalewatch.adapters.http import HttpExecutionBackend
from stalewatch.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyLedgerUnitOfWork,
    is_started,
    startup,
)
from stalewatch.config import ConfigurationError, get_reconciler_config
from stalewatch.domain.backoff import FailureBackoff
from stalewatch.domain.clock import utcnow
from stalewatch.domain.graph import AssetGraph
from stalewatch.domain.ledger import MaterializationLedger
from stalewatch.domain.ports.execution import PollingExecutionBackend
from stalewatch.domain.reconciliation import Reconciler, evaluate_snapshot

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

    from stalewatch.config import ReconcilerConfig
    from stalewatch.domain.clock import Clock
    from stalewatch.domain.freshness import PolicyEvaluation
    from stalewatch.domain.model import AssetKey, ExecutionStatus, StaleReason
    from stalewatch.domain.ports.declarations import DeclarationSource
    from stalewatch.domain.ports.execution import ExecutionBackend
    from stalewatch.domain.ports.unit_of_work import LedgerUnitOfWork
    from stalewatch.domain.reconciliation import Evaluation, TickResult

UnitOfWorkFactory = Callable[[], "LedgerUnitOfWork"]


log = getLogger(__name__)


def _default_unit_of_work_factory() -> UnitOfWorkFactory:
    if not is_started():
        startup()
    return SqlAlchemyLedgerUnitOfWork


def _declarations_from(
    declarations: DeclarationSource | None,
    path: Path | None,
    config: ReconcilerConfig,
) -> DeclarationSource:
    if declarations is not None:
        return declarations
    resolved = path or config.declarations_path
    if resolved is None:
        raise ConfigurationError(
            "No asset declarations configured; pass --declarations or set STALEWATCH_DECLARATIONS"
        )
    return TomlDeclarationSource(resolved)


def build_reconciler(
    *,
    declarations: DeclarationSource | None = None,
    declarations_path: Path | None = None,
    backend: ExecutionBackend | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    config: ReconcilerConfig | None = None,
    clock: Clock = utcnow,
) -> Reconciler:
    """Wire a reconciler from the configured adapters."""

    effective_config = config or get_reconciler_config()
    return Reconciler(
        declarations=_declarations_from(declarations, declarations_path, effective_config),
        ledger=MaterializationLedger(unit_of_work_factory or _default_unit_of_work_factory()),
        backend=backend or HttpExecutionBackend(),
        backoff=FailureBackoff(
            base=effective_config.backoff_base,
            ceiling=effective_config.backoff_max,
        ),
        clock=clock,
    )


def evaluate_assets(
    *,
    now: datetime | None = None,
    declarations: DeclarationSource | None = None,
    declarations_path: Path | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    config: ReconcilerConfig | None = None,
) -> Evaluation:
    """Evaluate the stored ledger against the declarations without submitting anything."""

    effective_config = config or get_reconciler_config()
    source = _declarations_from(declarations, declarations_path, effective_config)
    ledger = MaterializationLedger(unit_of_work_factory or _default_unit_of_work_factory())
    graph = AssetGraph.build(source.load())
    evaluation = evaluate_snapshot(graph, ledger.snapshot(), now or utcnow())
    log.info(
        "Evaluated %s asset(s): stale=%s, violated policies=%s, planned=%s",
        len(graph),
        len(evaluation.staleness.stale),
        len(evaluation.freshness.violations),
        len(evaluation.plan),
    )
    return evaluation


@dataclass(frozen=True, slots=True, kw_only=True)
class AssetStatus:
    """Operator-facing view of one asset."""

    asset_key: AssetKey
    stale_reason: StaleReason | None
    policy: PolicyEvaluation | None
    planned: bool
    execution: ExecutionStatus | None = None

    @property
    def stale(self) -> bool:
        return self.stale_reason is not None


def describe_assets(
    evaluation: Evaluation,
    reconciler: Reconciler | None = None,
) -> list[AssetStatus]:
    """Flatten an evaluation into one row per asset, in topological order."""

    return [
        AssetStatus(
            asset_key=key,
            stale_reason=evaluation.staleness.reason_for(key),
            policy=evaluation.freshness.evaluations.get(key),
            planned=key in evaluation.plan,
            execution=reconciler.status_of(key) if reconciler is not None else None,
        )
        for key in evaluation.graph
    ]


def invalidate_asset(
    key: AssetKey,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> bool:
    """Mark the stored record of ``key`` invalid; ``False`` if it has none."""

    ledger = MaterializationLedger(unit_of_work_factory or _default_unit_of_work_factory())
    invalidated = ledger.invalidate(key)
    if invalidated:
        log.info("Invalidated %s; it will be re-planned on the next tick", key)
    else:
        log.info("%s has no materialization record; nothing to invalidate", key)
    return invalidated


def serve(
    reconciler: Reconciler,
    *,
    backend: ExecutionBackend | None = None,
    config: ReconcilerConfig | None = None,
    clock: Clock = utcnow,
    stop: threading.Event | None = None,
    max_ticks: int | None = None,
) -> list[TickResult]:
    """Tick until ``stop`` is set or ``max_ticks`` ticks ran.

    Polling backends are polled before each tick so that completions learned
    since the last tick are recorded first.
    """

    effective_config = config or get_reconciler_config()
    stop_event = stop or threading.Event()
    interval = effective_config.tick_interval.total_seconds()
    results: list[TickResult] = []
    log.info("Reconciliation loop started (interval=%ss)", interval)

    while not stop_event.is_set():
        if isinstance(backend, PollingExecutionBackend):
            delivered = backend.poll()
            if delivered:
                log.debug("Received %s completion(s) from the backend", delivered)

        result = reconciler.tick(clock())
        results.append(result)
        if result.error is not None:
            log.warning("Tick at %s failed: %s", result.evaluated_at.isoformat(), result.error)

        if effective_config.stuck_after is not None:
            for entry in reconciler.overdue(clock(), effective_config.stuck_after):
                log.warning(
                    "%s has been in flight since %s (handle %s)",
                    entry.asset_key,
                    entry.submitted_at.isoformat(),
                    entry.handle_id,
                )

        if max_ticks is not None and len(results) >= max_ticks:
            break
        stop_event.wait(interval)

    log.info("Reconciliation loop stopped after %s tick(s)", len(results))
    return results
