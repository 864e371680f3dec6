"""Application configuration helpers."""

from __future__ import annotations

from .backend import BackendConfig, get_backend_config
from .env import env_seconds, optional_env_var, require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging, log_level_from_environment
from .reconciler import ReconcilerConfig, get_reconciler_config
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "BackendConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ReconcilerConfig",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "configure_logging",
    "env_seconds",
    "get_backend_config",
    "get_database_config",
    "get_reconciler_config",
    "get_storage_config",
    "log_level_from_environment",
    "optional_env_var",
    "require_env_var",
    "require_env_vars",
]
