"""Port for reading the declared asset graph."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from stalewatch.domain.model import AssetDefinition


@runtime_checkable
class DeclarationSource(Protocol):
    """Read accessor for the current asset declarations.

    Called once at the start of every tick; implementations raise
    ``DeclarationError`` when the declarations cannot be read.
    """

    def load(self) -> Sequence[AssetDefinition]: ...
