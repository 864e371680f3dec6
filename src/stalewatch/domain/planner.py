"""Run planning: merge stale assets and violated-policy causes into one plan."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Set
    from datetime import timedelta

    from stalewatch.domain.freshness import FreshnessReport
    from stalewatch.domain.graph import AssetGraph
    from stalewatch.domain.model import AssetKey, StaleReason
    from stalewatch.domain.staleness import StalenessReport


class PlanTrigger(StrEnum):
    STALE = "stale"
    FRESHNESS = "freshness"


@dataclass(frozen=True, slots=True, kw_only=True)
class PlanReason:
    """Why one asset is part of a plan.

    ``driving_policy`` and ``required_lag`` are set when the asset belongs to
    the minimal cause set of at least one violated policy; they name the
    tightest such policy.
    """

    trigger: PlanTrigger
    stale_reason: StaleReason | None = None
    driving_policy: AssetKey | None = None
    required_lag: timedelta | None = None


@dataclass(frozen=True, slots=True)
class RunPlan:
    """Ordered, duplicate-free set of assets to submit in one tick."""

    keys: tuple[AssetKey, ...] = ()
    reasons: Mapping[AssetKey, PlanReason] = field(
        default_factory=lambda: MappingProxyType({}), compare=False
    )

    EMPTY: ClassVar[RunPlan]

    def __len__(self) -> int:
        return len(self.keys)

    def __iter__(self) -> Iterator[AssetKey]:
        return iter(self.keys)

    def __bool__(self) -> bool:
        return bool(self.keys)

    def __contains__(self, key: object) -> bool:
        return key in self.reasons


RunPlan.EMPTY = RunPlan()


class RunPlanner:
    def plan(
        self,
        graph: AssetGraph,
        staleness: StalenessReport,
        freshness: FreshnessReport,
        *,
        excluded: Set[AssetKey] = frozenset(),
    ) -> RunPlan:
        """Return the topologically ordered plan for this tick.

        Candidates are the policy-less stale assets plus the union of every
        violated policy's minimal cause set, minus ``excluded`` (in-flight and
        backed-off assets) and everything downstream of them. A held-back
        downstream asset is planned on the first tick after its upstream
        resolves. The result depends only on the inputs.
        """

        held = self._held_back(graph, excluded)
        candidates = {
            key for key in staleness.stale if key not in held and graph.policy(key) is None
        }
        candidates.update(key for key in freshness.cause_union if key not in held)
        if not candidates:
            return RunPlan.EMPTY

        order = graph.topological_order(candidates)
        reasons = {key: self._reason(key, staleness, freshness) for key in order}
        return RunPlan(keys=order, reasons=MappingProxyType(reasons))

    @staticmethod
    def _held_back(graph: AssetGraph, excluded: Set[AssetKey]) -> frozenset[AssetKey]:
        # excluded keys may belong to assets no longer declared
        held: set[AssetKey] = set(excluded)
        for key in excluded:
            if key in graph:
                held.update(graph.descendants(key))
        return frozenset(held)

    @staticmethod
    def _reason(
        key: AssetKey,
        staleness: StalenessReport,
        freshness: FreshnessReport,
    ) -> PlanReason:
        required_lag = freshness.requirements.get(key)
        if required_lag is None:
            return PlanReason(trigger=PlanTrigger.STALE, stale_reason=staleness.reason_for(key))
        return PlanReason(
            trigger=PlanTrigger.FRESHNESS,
            stale_reason=staleness.reason_for(key),
            driving_policy=freshness.driving_policy[key],
            required_lag=required_lag,
        )
