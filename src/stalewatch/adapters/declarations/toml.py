"""Declarations read from a TOML file.

Example::

    [assets.raw_orders]
    code_version = "1"

    [assets.daily_revenue]
    deps = ["raw_orders"]
    code_version = "3"
    freshness = { maximum_lag_minutes = 30 }

The file is re-read whenever its modification time changes.
"""

from __future__ import annotations

import threading
import tomllib
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import ValidationError

from stalewatch.domain.errors import DeclarationError

from .schema import DeclarationDocument

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from stalewatch.domain.model import AssetDefinition

log = getLogger(__name__)


class TomlDeclarationSource:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._cached: tuple[int, tuple[AssetDefinition, ...]] | None = None

    def load(self) -> Sequence[AssetDefinition]:
        with self._lock:
            try:
                mtime = self.path.stat().st_mtime_ns
            except OSError as exc:
                raise DeclarationError(f"Cannot read declarations at {self.path}: {exc}") from exc
            if self._cached is not None and self._cached[0] == mtime:
                return self._cached[1]
            definitions = tuple(self._parse())
            self._cached = (mtime, definitions)
            log.info("Loaded %s asset declaration(s) from %s", len(definitions), self.path)
            return definitions

    def _parse(self) -> list[AssetDefinition]:
        try:
            with self.path.open("rb") as handle:
                document = tomllib.load(handle)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise DeclarationError(f"Cannot parse declarations at {self.path}: {exc}") from exc
        try:
            return DeclarationDocument.model_validate(document).to_definitions()
        except (ValidationError, ValueError) as exc:
            raise DeclarationError(f"Invalid declarations in {self.path}: {exc}") from exc

