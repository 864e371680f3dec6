"""Execution backend connection settings."""

from __future__ import annotations

from dataclasses import dataclass

from .env import optional_env_var, require_env_vars


@dataclass(frozen=True, slots=True)
class BackendConfig:
    """Holds the remote runner endpoint used by the HTTP execution backend."""

    base_url: str
    token: str | None = None

    @classmethod
    def from_environment(cls) -> BackendConfig:
        values = require_env_vars(("STALEWATCH_BACKEND_URL",))
        return cls(
            base_url=values["STALEWATCH_BACKEND_URL"],
            token=optional_env_var("STALEWATCH_BACKEND_TOKEN"),
        )


def get_backend_config() -> BackendConfig:
    return BackendConfig.from_environment()
