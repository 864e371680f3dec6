"""Immutable asset graph snapshots.

A graph is built once per tick from the declared asset definitions and never
mutated afterwards; declarations changing between ticks produce a new graph.
The single edge set is stored as two read-only adjacency maps:
- ``upstream``: asset -> the assets it depends on
- ``downstream``: asset -> the assets depending on it
"""

from __future__ import annotations

import heapq
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from stalewatch.domain.errors import (
    CycleDetectedError,
    DanglingDependencyError,
    DuplicateAssetError,
    UnknownAssetError,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from stalewatch.domain.model import AssetDefinition, AssetKey, FreshnessPolicy


@dataclass(frozen=True, slots=True, eq=False)
class AssetGraph:
    _definitions: Mapping[AssetKey, AssetDefinition] = field(repr=False)
    _upstream: Mapping[AssetKey, frozenset[AssetKey]] = field(repr=False)
    _downstream: Mapping[AssetKey, frozenset[AssetKey]] = field(repr=False)
    _order: tuple[AssetKey, ...] = field(repr=False)

    @classmethod
    def build(cls, definitions: Iterable[AssetDefinition]) -> AssetGraph:
        """Validate ``definitions`` and return the graph they describe.

        Raises ``DuplicateAssetError``, ``DanglingDependencyError`` or
        ``CycleDetectedError`` when the declarations are not a valid DAG.
        """

        by_key: dict[AssetKey, AssetDefinition] = {}
        for definition in definitions:
            if definition.key in by_key:
                raise DuplicateAssetError(definition.key)
            by_key[definition.key] = definition

        downstream: dict[AssetKey, set[AssetKey]] = {key: set() for key in by_key}
        for key, definition in by_key.items():
            missing = definition.deps - by_key.keys()
            if missing:
                raise DanglingDependencyError(key, missing)
            for dep in definition.deps:
                downstream[dep].add(key)

        upstream = MappingProxyType({key: d.deps for key, d in by_key.items()})
        frozen_downstream = MappingProxyType(
            {key: frozenset(children) for key, children in downstream.items()}
        )
        order = _kahn(by_key.keys(), upstream, frozen_downstream)
        return cls(
            _definitions=MappingProxyType(by_key),
            _upstream=upstream,
            _downstream=frozen_downstream,
            _order=order,
        )

    @classmethod
    def empty(cls) -> AssetGraph:
        return cls.build(())

    @property
    def keys(self) -> frozenset[AssetKey]:
        return frozenset(self._definitions)

    def __contains__(self, key: object) -> bool:
        return key in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def __iter__(self) -> Iterator[AssetKey]:
        return iter(self._order)

    def definition(self, key: AssetKey) -> AssetDefinition:
        try:
            return self._definitions[key]
        except KeyError:
            raise UnknownAssetError(key) from None

    def policy(self, key: AssetKey) -> FreshnessPolicy | None:
        return self.definition(key).policy

    def policy_bearing(self) -> tuple[AssetKey, ...]:
        """Policy-bearing assets in topological order."""

        return tuple(key for key in self._order if self._definitions[key].policy is not None)

    def upstreams(self, key: AssetKey) -> frozenset[AssetKey]:
        try:
            return self._upstream[key]
        except KeyError:
            raise UnknownAssetError(key) from None

    def downstreams(self, key: AssetKey) -> frozenset[AssetKey]:
        try:
            return self._downstream[key]
        except KeyError:
            raise UnknownAssetError(key) from None

    def ancestors(self, key: AssetKey) -> frozenset[AssetKey]:
        seen: set[AssetKey] = set()
        stack = list(self.upstreams(key))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._upstream[current])
        return frozenset(seen)

    def descendants(self, key: AssetKey) -> frozenset[AssetKey]:
        seen: set[AssetKey] = set()
        stack = list(self.downstreams(key))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._downstream[current])
        return frozenset(seen)

    def topological_order(self, subset: Iterable[AssetKey] | None = None) -> tuple[AssetKey, ...]:
        """Order ``subset`` (default: every asset) so dependencies come first.

        The subset keeps its relative position in the full graph order, so
        indirect dependencies through assets outside the subset are respected
        too. Ties are broken by key so the result is deterministic.
        """

        if subset is None:
            return self._order
        keys = frozenset(subset)
        unknown = keys - self._definitions.keys()
        if unknown:
            raise UnknownAssetError(min(unknown))
        if not keys:
            return ()
        return tuple(key for key in self._order if key in keys)


def _kahn(
    keys: Iterable[AssetKey],
    upstream: Mapping[AssetKey, frozenset[AssetKey]],
    downstream: Mapping[AssetKey, frozenset[AssetKey]],
) -> tuple[AssetKey, ...]:
    members = frozenset(keys)
    incoming = {key: len(upstream[key] & members) for key in members}
    ready = [key for key, count in incoming.items() if count == 0]
    heapq.heapify(ready)

    order: list[AssetKey] = []
    while ready:
        key = heapq.heappop(ready)
        order.append(key)
        for child in downstream[key]:
            if child not in members:
                continue
            incoming[child] -= 1
            if incoming[child] == 0:
                heapq.heappush(ready, child)

    if len(order) != len(members):
        raise CycleDetectedError(members - set(order))
    return tuple(order)
