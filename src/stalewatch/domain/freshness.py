"""Freshness policy evaluation.

A policy-bearing asset is *late* when it is stale, or when its last successful
materialization is at least ``maximum_lag`` old. A zero lag means the asset
only has to follow upstream changes, so it is late exactly when it is stale.

For every late asset the evaluator derives its minimal cause set: walking
upstream from the asset, ancestors that are stale or whose own policy is
violated are included and walked further; any other ancestor stops the walk,
because its existing output already satisfies every consumer right now.

Ancestors shared between several violated policies appear once in the union
and are attributed to the tightest (smallest) lag requiring them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from stalewatch.domain.graph import AssetGraph
    from stalewatch.domain.model import AssetKey, FreshnessPolicy, MaterializationRecord
    from stalewatch.domain.staleness import StalenessReport


@dataclass(frozen=True, slots=True, kw_only=True)
class PolicyEvaluation:
    """Freshness state of one policy-bearing asset at ``evaluated_at``.

    ``data_time`` is the completion time of the committed data, or ``None``
    when that data is stale (treated as maximally old).
    """

    asset_key: AssetKey
    policy: FreshnessPolicy
    evaluated_at: datetime
    data_time: datetime | None
    stale: bool

    @property
    def deadline(self) -> datetime | None:
        """Instant at which the current data becomes late if nothing changes."""

        if self.data_time is None or self.policy.always_fresh:
            return None
        return self.data_time + self.policy.maximum_lag

    @property
    def late(self) -> bool:
        if self.stale or self.data_time is None:
            return True
        if self.policy.always_fresh:
            return False
        return self.evaluated_at - self.data_time >= self.policy.maximum_lag

    @property
    def overdue_by(self) -> timedelta | None:
        deadline = self.deadline
        if not self.late or deadline is None:
            return None
        return max(self.evaluated_at - deadline, timedelta(0))


@dataclass(frozen=True, slots=True)
class PolicyViolation:
    asset_key: AssetKey
    maximum_lag: timedelta
    cause: frozenset[AssetKey]


@dataclass(frozen=True, slots=True)
class FreshnessReport:
    evaluations: Mapping[AssetKey, PolicyEvaluation]
    violations: tuple[PolicyViolation, ...]
    requirements: Mapping[AssetKey, timedelta]
    driving_policy: Mapping[AssetKey, AssetKey]

    def violated_policies(self) -> tuple[tuple[AssetKey, frozenset[AssetKey]], ...]:
        return tuple((violation.asset_key, violation.cause) for violation in self.violations)

    def is_late(self, key: AssetKey) -> bool:
        evaluation = self.evaluations.get(key)
        return evaluation is not None and evaluation.late

    @property
    def cause_union(self) -> frozenset[AssetKey]:
        return frozenset(self.requirements)


class FreshnessEvaluator:
    def evaluate(
        self,
        graph: AssetGraph,
        records: Mapping[AssetKey, MaterializationRecord],
        staleness: StalenessReport,
        now: datetime,
    ) -> FreshnessReport:
        evaluations: dict[AssetKey, PolicyEvaluation] = {}
        for key in graph.policy_bearing():
            policy = graph.policy(key)
            if policy is None:  # pragma: no cover - guarded by policy_bearing()
                continue
            stale = staleness.is_stale(key)
            record = records.get(key)
            evaluations[key] = PolicyEvaluation(
                asset_key=key,
                policy=policy,
                evaluated_at=now,
                data_time=None if stale or record is None else record.completed_at,
                stale=stale,
            )

        violated = frozenset(key for key, evaluation in evaluations.items() if evaluation.late)
        violations: list[PolicyViolation] = []
        requirements: dict[AssetKey, timedelta] = {}
        driving_policy: dict[AssetKey, AssetKey] = {}

        # tightest lag first so the first policy to claim an ancestor drives it
        ordered = sorted(violated, key=lambda k: (evaluations[k].policy.maximum_lag, k))
        for key in ordered:
            lag = evaluations[key].policy.maximum_lag
            cause = self._minimal_cause(graph, key, staleness, violated)
            violations.append(PolicyViolation(asset_key=key, maximum_lag=lag, cause=cause))
            for member in cause:
                if member not in requirements:
                    requirements[member] = lag
                    driving_policy[member] = key

        violations.sort(key=lambda violation: violation.asset_key)
        return FreshnessReport(
            evaluations=MappingProxyType(evaluations),
            violations=tuple(violations),
            requirements=MappingProxyType(requirements),
            driving_policy=MappingProxyType(driving_policy),
        )

    @staticmethod
    def _minimal_cause(
        graph: AssetGraph,
        key: AssetKey,
        staleness: StalenessReport,
        violated: frozenset[AssetKey],
    ) -> frozenset[AssetKey]:
        cause: set[AssetKey] = {key}
        visited: set[AssetKey] = {key}
        stack = list(graph.upstreams(key))
        while stack:
            upstream = stack.pop()
            if upstream in visited:
                continue
            visited.add(upstream)
            if not (staleness.is_stale(upstream) or upstream in violated):
                continue
            cause.add(upstream)
            stack.extend(graph.upstreams(upstream))
        return frozenset(cause)
