"""Logging setup for the reconciliation loop and the CLI."""

from __future__ import annotations

import logging

from .env import optional_env_var
from .errors import ConfigurationError

LOG_LEVEL_VAR = "STALEWATCH_LOG_LEVEL"

# per-request chatter from the runner client
_QUIET_LOGGERS = ("httpx", "httpcore")


def log_level_from_environment(default: int = logging.INFO) -> int:
    """Level named by ``STALEWATCH_LOG_LEVEL`` (``debug``, ``WARNING``, ...)."""

    name = optional_env_var(LOG_LEVEL_VAR)
    if name is None:
        return default
    level = logging.getLevelNamesMapping().get(name.strip().upper())
    if level is None:
        raise ConfigurationError(f"{LOG_LEVEL_VAR} must be a logging level name, got {name!r}")
    return level


def configure_logging(*, level: int | str | None = None, force: bool = False) -> None:
    """Initialise the root logger once.

    Without an explicit ``level`` the environment decides (INFO when unset).
    Timestamps carry the date since the loop usually outlives a day. Pass
    ``force=True`` to reconfigure during tests.
    """

    logging.basicConfig(
        level=log_level_from_environment() if level is None else level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        force=force,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
