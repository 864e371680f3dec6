"""Async HTTP client for the runner API with retries and optional rate limiting."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from aiolimiter import AsyncLimiter
from httpx_retries import Retry, RetryTransport

from stalewatch.config.http_resilience import IDEMPOTENT_METHODS

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

    from stalewatch.config.http_resilience import ResilienceConfig, RetryPolicy

log = getLogger(__name__)


def build_retry(policy: RetryPolicy) -> Retry:
    return Retry(
        total=policy.total,
        backoff_factor=policy.backoff_factor,
        max_backoff_wait=policy.max_backoff_wait,
        backoff_jitter=policy.backoff_jitter,
        respect_retry_after_header=True,
        allowed_methods=tuple(sorted(IDEMPOTENT_METHODS)),
        status_forcelist=tuple(sorted(policy.retry_statuses)),
        retry_on_exceptions=policy.retry_exceptions,
    )


class ResilientClient:
    """One short-lived ``httpx.AsyncClient`` per batch of runner calls.

    Retries happen in the transport and only ever repeat idempotent methods.
    Every request also waits on the rate limiter when one is configured.
    """

    def __init__(self, config: ResilienceConfig) -> None:
        self.config = config
        ratelimit = config.ratelimit
        self._limiter = (
            AsyncLimiter(ratelimit.max_calls, ratelimit.per_seconds) if ratelimit else None
        )
        self._client = httpx.AsyncClient(
            base_url=config.base_url or "",
            timeout=config.timeout_seconds,
            headers=dict(config.headers),
            transport=RetryTransport(retry=build_retry(config.retry)),
        )

    @property
    def limiter(self) -> AsyncLimiter | None:
        return self._limiter

    async def __aenter__(self) -> ResilientClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get(
        self,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        return await self.send(self._client.build_request("GET", path, params=params))

    async def post(self, path: str, *, json: object) -> httpx.Response:
        return await self.send(self._client.build_request("POST", path, json=json))

    async def send(self, request: httpx.Request) -> httpx.Response:
        if self._limiter is not None:
            async with self._limiter:
                response = await self._client.send(request)
        else:
            response = await self._client.send(request)
        log.debug(
            "%s %s %s -> %s",
            self.config.name,
            request.method,
            request.url.path,
            response.status_code,
        )
        return response
