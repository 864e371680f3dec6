"""Location of the materialization ledger database."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import optional_env_var

APP_DIR_NAME: Final[str] = "stalewatch"
LEDGER_FILENAME: Final[str] = "stalewatch.db"


def platform_data_dir() -> Path:
    """Per-user data directory: ``%LOCALAPPDATA%`` on Windows, XDG elsewhere."""

    if os.name == "nt":
        root = os.getenv("LOCALAPPDATA")
        base = Path(root) if root else Path.home() / "AppData" / "Local"
    else:
        root = os.getenv("XDG_DATA_HOME")
        base = Path(root) if root else Path.home() / ".local" / "share"
    return base / APP_DIR_NAME


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Directory holding the default SQLite ledger."""

    data_dir: Path

    @classmethod
    def from_environment(cls) -> StorageConfig:
        configured = optional_env_var("STALEWATCH_DATA_DIR")
        return cls(data_dir=Path(configured) if configured else platform_data_dir())

    @property
    def ledger_path(self) -> Path:
        return self.data_dir.expanduser().resolve() / LEDGER_FILENAME

    def sqlite_uri(self, *, create_dir: bool = True) -> str:
        path = self.ledger_path
        if create_dir:
            path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite+pysqlite:///{path}"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def get_storage_config() -> StorageConfig:
    return StorageConfig.from_environment()


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    """``DATABASE_URI`` wins; otherwise a SQLite file in the data directory."""

    uri = optional_env_var("DATABASE_URI")
    if uri is None:
        uri = (storage or get_storage_config()).sqlite_uri()
    return DatabaseConfig(uri=uri)
