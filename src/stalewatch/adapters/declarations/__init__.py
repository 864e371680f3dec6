"""Declaration sources for the asset graph."""

from __future__ import annotations

from .schema import AssetPayload, DeclarationDocument, FreshnessPayload
from .static import StaticDeclarationSource
from .toml import TomlDeclarationSource

__all__ = [
    "AssetPayload",
    "DeclarationDocument",
    "FreshnessPayload",
    "StaticDeclarationSource",
    "TomlDeclarationSource",
]
