"""Retry, rate-limit and timeout settings for the runner HTTP client."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .backend import BackendConfig

# submissions (POST) are not idempotent and are never retried
IDEMPOTENT_METHODS: frozenset[str] = frozenset({"GET", "HEAD", "OPTIONS"})


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    total: int = 4
    backoff_factor: float = 0.5
    max_backoff_wait: float = 30.0
    backoff_jitter: float = 1.0
    retry_statuses: frozenset[int] = field(
        default_factory=lambda: frozenset({429, 500, 502, 503, 504})
    )
    retry_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.TimeoutException,
        httpx.NetworkError,
        httpx.RemoteProtocolError,
    )


@dataclass(slots=True, frozen=True)
class RateLimit:
    max_calls: int
    per_seconds: float


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    name: str
    base_url: str | None = None
    timeout_seconds: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    headers: Mapping[str, str] = field(default_factory=dict[str, str])

    @classmethod
    def for_backend(
        cls,
        backend: BackendConfig,
        *,
        timeout_seconds: float = 15.0,
    ) -> ResilienceConfig:
        headers = {"Accept": "application/json"}
        if backend.token:
            headers["Authorization"] = f"Bearer {backend.token}"
        return cls(
            name="runner",
            base_url=backend.base_url,
            timeout_seconds=timeout_seconds,
            headers=headers,
        )
