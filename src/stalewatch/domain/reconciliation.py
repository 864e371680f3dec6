"""Reconciliation loop.

Each tick runs to completion under the reconciler's lock:
1) refresh the asset graph from the declaration source
2) snapshot the ledger
3) evaluate staleness, then freshness policies
4) plan, holding back in-flight and backed-off assets and their descendants
5) move planned assets into the in-flight set and submit them

Completion callbacks from the execution backend take the same lock, so they
never interleave with an evaluation. Submission itself happens outside the
lock; assets are registered as in flight beforehand, so a backend that reports
completions before ``submit`` returns is handled like any other.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from functools import partial
from logging import getLogger
from typing import TYPE_CHECKING
from uuid import uuid4

from stalewatch.domain.backoff import FailureBackoff
from stalewatch.domain.clock import ensure_aware, utcnow
from stalewatch.domain.errors import DeclarationError, LedgerError, ReconciliationError
from stalewatch.domain.freshness import FreshnessEvaluator, FreshnessReport
from stalewatch.domain.graph import AssetGraph
from stalewatch.domain.model import ExecutionStatus, MaterializationRecord
from stalewatch.domain.planner import RunPlan, RunPlanner
from stalewatch.domain.ports.execution import MaterializationFailure
from stalewatch.domain.staleness import StalenessEvaluator, StalenessReport

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Set
    from datetime import datetime, timedelta

    from stalewatch.domain.clock import Clock
    from stalewatch.domain.ledger import MaterializationLedger
    from stalewatch.domain.model import AssetKey, Fingerprint
    from stalewatch.domain.ports.declarations import DeclarationSource
    from stalewatch.domain.ports.execution import (
        ExecutionBackend,
        MaterializationOutcome,
        MaterializationSuccess,
        SubmissionHandle,
    )

log = getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class InFlightEntry:
    """One asset handed to the execution backend and not yet resolved.

    ``submission_id`` is assigned by the reconciler before the backend is
    called and identifies which submission may resolve the entry.
    ``handle_id`` stays ``None`` while the submission call is in progress.
    """

    asset_key: AssetKey
    submitted_at: datetime
    code_version: str | None
    submission_id: str
    handle_id: str | None = None


class InFlightSet:
    def __init__(self) -> None:
        self._entries: dict[AssetKey, InFlightEntry] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[InFlightEntry]:
        return iter(tuple(self._entries.values()))

    def keys(self) -> frozenset[AssetKey]:
        return frozenset(self._entries)

    def get(self, key: AssetKey) -> InFlightEntry | None:
        return self._entries.get(key)

    def add(self, entry: InFlightEntry) -> None:
        if entry.asset_key in self._entries:
            raise ValueError(f"Asset {entry.asset_key!r} is already in flight")
        self._entries[entry.asset_key] = entry

    def pop(self, key: AssetKey) -> InFlightEntry | None:
        return self._entries.pop(key, None)

    def attach(self, handle: SubmissionHandle) -> None:
        for key in handle.keys:
            entry = self._entries.get(key)
            if entry is not None and entry.handle_id is None:
                self._entries[key] = replace(entry, handle_id=handle.id)

    def overdue(self, now: datetime, ceiling: timedelta) -> tuple[InFlightEntry, ...]:
        return tuple(
            sorted(
                (entry for entry in self._entries.values() if now - entry.submitted_at >= ceiling),
                key=lambda entry: (entry.submitted_at, entry.asset_key),
            )
        )


@dataclass(frozen=True, slots=True)
class Evaluation:
    """Everything one tick derived from the graph and ledger snapshot."""

    evaluated_at: datetime
    graph: AssetGraph
    staleness: StalenessReport
    freshness: FreshnessReport
    plan: RunPlan


def evaluate_snapshot(
    graph: AssetGraph,
    records: Mapping[AssetKey, MaterializationRecord],
    now: datetime,
    *,
    excluded: Set[AssetKey] = frozenset(),
) -> Evaluation:
    """Run staleness, freshness and planning over one consistent snapshot."""

    staleness = StalenessEvaluator().evaluate(graph, records)
    freshness = FreshnessEvaluator().evaluate(graph, records, staleness, now)
    plan = RunPlanner().plan(graph, staleness, freshness, excluded=excluded)
    return Evaluation(
        evaluated_at=now,
        graph=graph,
        staleness=staleness,
        freshness=freshness,
        plan=plan,
    )


@dataclass(frozen=True, slots=True, kw_only=True)
class TickResult:
    evaluated_at: datetime
    plan: RunPlan = RunPlan.EMPTY
    handle: SubmissionHandle | None = None
    error: str | None = None

    @property
    def submitted(self) -> bool:
        return self.handle is not None

    @property
    def aborted(self) -> bool:
        return self.error is not None and self.handle is None


class Reconciler:
    """Owns the in-flight set and every ledger write of one asset graph."""

    def __init__(
        self,
        *,
        declarations: DeclarationSource,
        ledger: MaterializationLedger,
        backend: ExecutionBackend,
        backoff: FailureBackoff | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._declarations = declarations
        self._ledger = ledger
        self._backend = backend
        self._backoff = backoff if backoff is not None else FailureBackoff()
        self._clock = clock
        self._lock = threading.RLock()
        self._graph: AssetGraph | None = None
        self._in_flight = InFlightSet()

    @property
    def graph(self) -> AssetGraph | None:
        """Graph observed by the most recent evaluation."""

        return self._graph

    @property
    def in_flight(self) -> frozenset[AssetKey]:
        with self._lock:
            return self._in_flight.keys()

    @property
    def backoff(self) -> FailureBackoff:
        return self._backoff

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, now: datetime) -> Evaluation:
        """Evaluate one snapshot without submitting anything.

        Raises ``ReconciliationError`` subclasses when the declarations or the
        ledger cannot be read, or when the graph is invalid.
        """

        now = ensure_aware(now)
        with self._lock:
            graph = self._refresh_graph()
            excluded = self._in_flight.keys() | self._backoff.blocked(now)
            return evaluate_snapshot(graph, self._ledger.snapshot(), now, excluded=excluded)

    def plan(self, now: datetime) -> RunPlan:
        return self.evaluate(now).plan

    def tick(self, now: datetime) -> TickResult:
        """Run one reconciliation cycle; never raises."""

        try:
            now = ensure_aware(now)
            with self._lock:
                evaluation = self.evaluate(now)
                plan = evaluation.plan
                if not plan:
                    log.debug("Tick at %s: nothing to materialize", now.isoformat())
                    return TickResult(evaluated_at=now)
                submission_id = self._mark_in_flight(plan, evaluation.graph, now)
        except ReconciliationError as exc:
            log.exception("Tick at %s aborted", now.isoformat())
            return TickResult(evaluated_at=now, error=str(exc))
        except Exception as exc:  # noqa: BLE001
            log.exception("Unexpected error during tick at %s", now.isoformat())
            return TickResult(evaluated_at=now, error=f"{exc.__class__.__name__}: {exc}")

        log.info("Tick at %s: submitting %s asset(s): %s", now, len(plan), ", ".join(plan))
        on_complete = partial(self.on_complete, submission_id=submission_id)
        try:
            handle = self._backend.submit(plan.keys, on_complete=on_complete)
        except Exception as exc:  # noqa: BLE001
            log.exception("Submission of %s asset(s) failed", len(plan))
            self._fail_submission(
                plan,
                submission_id=submission_id,
                reason=str(exc) or exc.__class__.__name__,
            )
            return TickResult(evaluated_at=now, plan=plan, error=str(exc))

        with self._lock:
            self._in_flight.attach(handle)
        return TickResult(evaluated_at=now, plan=plan, handle=handle)

    # ------------------------------------------------------------------
    # Completion callbacks
    # ------------------------------------------------------------------

    def on_complete(
        self,
        key: AssetKey,
        outcome: MaterializationOutcome,
        *,
        submission_id: str | None = None,
    ) -> None:
        """Resolve the in-flight entry of ``key``.

        Callbacks handed to the backend carry the ``submission_id`` of their
        tick; an outcome from any other submission (e.g. one whose asset was
        evicted and submitted again) is ignored.
        """

        with self._lock:
            entry = self._in_flight.get(key)
            if entry is None:
                log.warning("Ignoring completion for %s: asset is not in flight", key)
                return
            if submission_id is not None and entry.submission_id != submission_id:
                log.warning(
                    "Ignoring completion for %s from superseded submission %s",
                    key,
                    submission_id,
                )
                return
            self._in_flight.pop(key)
            if isinstance(outcome, MaterializationFailure):
                delay = self._backoff.record_failure(key, at=self._clock(), reason=outcome.reason)
                log.warning(
                    "Materialization of %s failed (%s); retry allowed after %s",
                    key,
                    outcome.reason,
                    delay,
                )
                return
            self._record_success(entry, outcome)

    def _record_success(self, entry: InFlightEntry, outcome: MaterializationSuccess) -> None:
        key = entry.asset_key
        graph = self._graph
        if graph is None or key not in graph:
            log.info("Discarding result of %s: asset is no longer declared", key)
            return

        completed_at = ensure_aware(outcome.completed_at or self._clock())
        upstream = (
            dict(outcome.upstream_fingerprints)
            if outcome.upstream_fingerprints is not None
            else self._current_upstream_fingerprints(graph, key)
        )
        record = MaterializationRecord(
            asset_key=key,
            completed_at=completed_at,
            code_version=entry.code_version,
            data_version=outcome.data_version or completed_at.isoformat(),
            upstream_fingerprints=upstream,
        )
        try:
            self._ledger.record_success(record)
        except LedgerError:
            log.exception("Could not record materialization of %s; it stays stale", key)
            return
        self._backoff.reset(key)
        log.info("Materialized %s at %s", key, completed_at.isoformat())

    def _current_upstream_fingerprints(
        self,
        graph: AssetGraph,
        key: AssetKey,
    ) -> dict[AssetKey, Fingerprint]:
        snapshot: dict[AssetKey, Fingerprint] = {}
        for upstream in sorted(graph.upstreams(key)):
            fingerprint = self._ledger.fingerprint_of(upstream)
            if fingerprint is not None:
                snapshot[upstream] = fingerprint
        return snapshot

    # ------------------------------------------------------------------
    # Operator helpers
    # ------------------------------------------------------------------

    def status_of(self, key: AssetKey) -> ExecutionStatus:
        with self._lock:
            entry = self._in_flight.get(key)
        if entry is None:
            return ExecutionStatus.IDLE
        if entry.handle_id is None:
            return ExecutionStatus.PLANNED
        return ExecutionStatus.IN_FLIGHT

    def invalidate(self, key: AssetKey) -> bool:
        """Force ``key`` stale so that the next tick re-plans it."""

        with self._lock:
            return self._ledger.invalidate(key)

    def overdue(self, now: datetime, ceiling: timedelta) -> tuple[InFlightEntry, ...]:
        """In-flight assets submitted at least ``ceiling`` ago."""

        with self._lock:
            return self._in_flight.overdue(ensure_aware(now), ceiling)

    def evict(self, key: AssetKey) -> bool:
        """Drop ``key`` from the in-flight set without touching its record.

        Meant for watchdogs handling runs that will never report back; a late
        completion for an evicted asset is ignored.
        """

        with self._lock:
            entry = self._in_flight.pop(key)
        if entry is None:
            return False
        log.warning("Evicted %s from the in-flight set (submitted %s)", key, entry.submitted_at)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _refresh_graph(self) -> AssetGraph:
        try:
            definitions = self._declarations.load()
        except ReconciliationError:
            raise
        except Exception as exc:
            raise DeclarationError(f"Failed to load asset declarations: {exc}") from exc
        graph = AssetGraph.build(definitions)
        self._graph = graph
        self._backoff.forget(graph.keys)
        return graph

    def _mark_in_flight(self, plan: RunPlan, graph: AssetGraph, now: datetime) -> str:
        submission_id = uuid4().hex
        for key in plan:
            self._in_flight.add(
                InFlightEntry(
                    asset_key=key,
                    submitted_at=now,
                    code_version=graph.definition(key).code_version,
                    submission_id=submission_id,
                )
            )
        return submission_id

    def _fail_submission(self, plan: RunPlan, *, submission_id: str, reason: str) -> None:
        failure = MaterializationFailure(reason=f"submission failed: {reason}")
        for key in plan:
            self.on_complete(key, failure, submission_id=submission_id)
