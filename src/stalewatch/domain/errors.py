"""Error hierarchy of the reconciliation core."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from stalewatch.domain.model import AssetKey


class ReconciliationError(RuntimeError):
    """Base class for errors raised by the reconciliation core."""


class GraphIntegrityError(ReconciliationError):
    """The declared asset graph violates a structural invariant."""


class DuplicateAssetError(GraphIntegrityError):
    def __init__(self, key: AssetKey) -> None:
        super().__init__(f"Asset {key!r} is declared more than once")
        self.key = key


class DanglingDependencyError(GraphIntegrityError):
    def __init__(self, key: AssetKey, missing: Iterable[AssetKey]) -> None:
        self.key = key
        self.missing = tuple(sorted(missing))
        super().__init__(
            f"Asset {key!r} depends on undeclared asset(s): {', '.join(self.missing)}"
        )


class CycleDetectedError(GraphIntegrityError):
    def __init__(self, keys: Iterable[AssetKey]) -> None:
        self.keys = tuple(sorted(keys))
        super().__init__(f"Dependency cycle among: {', '.join(self.keys)}")


class UnknownAssetError(ReconciliationError, KeyError):
    def __init__(self, key: AssetKey) -> None:
        super().__init__(f"Unknown asset: {key!r}")
        self.key = key

    def __str__(self) -> str:
        return str(self.args[0])


class DeclarationError(ReconciliationError):
    """The declaration source could not produce asset definitions."""


class LedgerError(ReconciliationError):
    """The materialization ledger could not be read or written."""
