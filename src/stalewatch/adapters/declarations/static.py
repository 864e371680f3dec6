"""Declarations held in memory by the embedding application."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from stalewatch.domain.model import AssetDefinition


class StaticDeclarationSource:
    """Serve a fixed list of definitions; ``replace`` swaps it between ticks."""

    def __init__(self, definitions: Iterable[AssetDefinition] = ()) -> None:
        self._lock = threading.Lock()
        self._definitions = tuple(definitions)

    def load(self) -> Sequence[AssetDefinition]:
        with self._lock:
            return self._definitions

    def replace(self, definitions: Iterable[AssetDefinition]) -> None:
        with self._lock:
            self._definitions = tuple(definitions)


if TYPE_CHECKING:
    from stalewatch.domain.ports.declarations import DeclarationSource

    _source_check: DeclarationSource = StaticDeclarationSource()
