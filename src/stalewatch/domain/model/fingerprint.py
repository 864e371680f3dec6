"""Opaque change-detection tokens."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .asset import AssetKey


@dataclass(frozen=True, slots=True, order=True)
class Fingerprint:
    """Summary of an asset's logical state at one materialization.

    Two fingerprints compare equal iff the code version, the reported data
    version and every upstream fingerprint they were combined from are equal.
    Fingerprints say *whether* something changed, never *how much*.
    """

    digest: str

    @classmethod
    def combine(
        cls,
        *,
        code_version: str | None,
        data_version: str | None,
        upstream: Mapping[AssetKey, Fingerprint],
    ) -> Fingerprint:
        payload = {
            "code": code_version,
            "data": data_version,
            "upstream": {key: upstream[key].digest for key in sorted(upstream)},
        }
        raw = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
        return cls(digest=hashlib.sha256(raw).hexdigest())

    def __str__(self) -> str:
        return self.digest[:12]
