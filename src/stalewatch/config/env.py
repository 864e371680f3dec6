"""Environment variable loaders for configuration."""

from __future__ import annotations

import os
from datetime import timedelta
from typing import TYPE_CHECKING

from .errors import ConfigurationError, MissingConfigurationError

if TYPE_CHECKING:
    from collections.abc import Sequence


def require_env_vars(names: Sequence[str]) -> dict[str, str]:
    """Return the given environment variables or raise if any are missing/blank."""

    missing: list[str] = []
    values: dict[str, str] = {}
    for name in names:
        value = os.getenv(name)
        if value is None or not value.strip():
            missing.append(name)
            continue
        values[name] = value.strip()

    if missing:
        raise MissingConfigurationError(missing)

    return values


def require_env_var(name: str) -> str:
    """Return a required environment variable by name."""

    return require_env_vars([name])[name]


def optional_env_var(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def env_seconds(name: str, default: float) -> timedelta:
    """Read a non-negative duration in seconds, falling back to ``default``."""

    raw = optional_env_var(name)
    if raw is None:
        return timedelta(seconds=default)
    try:
        seconds = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}") from exc
    if seconds < 0:
        raise ConfigurationError(f"{name} must be non-negative, got {raw!r}")
    return timedelta(seconds=seconds)
