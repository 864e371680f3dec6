"""Execution backend submitting runs to a remote runner over HTTP.

The runner exposes two endpoints:
- ``POST /runs`` accepts ``{"submission_id", "assets"}`` and returns the run id
- ``GET /runs/{id}`` reports the state of every asset of the run

Completions are only learned by polling, so the host loop calls ``poll()``
before each tick.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from stalewatch.config import BackendConfig, ResilienceConfig
from stalewatch.domain.ports.execution import (
    MaterializationFailure,
    MaterializationSuccess,
    SubmissionHandle,
)

from .resilience import ResilientClient
from .schema import (
    AssetRunPayload,
    ErrorResponse,
    RunStatusResponse,
    SubmitRunRequest,
    SubmitRunResponse,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from stalewatch.domain.model import AssetKey
    from stalewatch.domain.ports.execution import CompletionCallback, MaterializationOutcome

log = getLogger(__name__)


class RunnerAPIError(RuntimeError):
    """Raised when the runner rejects a request or answers with garbage."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


@dataclass(slots=True)
class _TrackedRun:
    run_id: str
    handle: SubmissionHandle
    on_complete: CompletionCallback
    reported: set[AssetKey] = field(default_factory=set["AssetKey"])

    @property
    def done(self) -> bool:
        return self.reported.issuperset(self.handle.keys)


@dataclass(slots=True)
class HttpExecutionBackend:
    config: BackendConfig = field(default_factory=BackendConfig.from_environment)
    resilience: ResilienceConfig | None = None
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )
    _runs: dict[str, _TrackedRun] = field(default_factory=dict[str, _TrackedRun], repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        if self.resilience is None:
            self.resilience = ResilienceConfig.for_backend(self.config)

    @property
    def pending_runs(self) -> int:
        with self._lock:
            return len(self._runs)

    def submit(
        self,
        keys: Sequence[AssetKey],
        *,
        on_complete: CompletionCallback,
    ) -> SubmissionHandle:
        handle = SubmissionHandle(keys=tuple(keys))
        run_id = asyncio.run(self._submit_async(handle))
        with self._lock:
            self._runs[run_id] = _TrackedRun(run_id=run_id, handle=handle, on_complete=on_complete)
        log.info("Submitted run %s with %s asset(s)", run_id, len(handle.keys))
        return handle

    def poll(self) -> int:
        """Deliver every newly terminal asset outcome; return how many were delivered."""

        with self._lock:
            runs = list(self._runs.values())
        if not runs:
            return 0
        statuses = asyncio.run(self._fetch_statuses_async([run.run_id for run in runs]))

        delivered = 0
        for run in runs:
            status = statuses.get(run.run_id)
            if status is None:
                continue
            delivered += self._deliver(run, status)
            if run.done:
                with self._lock:
                    self._runs.pop(run.run_id, None)
        return delivered

    def _deliver(self, run: _TrackedRun, status: RunStatusResponse) -> int:
        delivered = 0
        expected = set(run.handle.keys)
        for asset in status.assets:
            if asset.key not in expected or asset.key in run.reported or not asset.terminal:
                continue
            run.reported.add(asset.key)
            run.on_complete(asset.key, _outcome(asset))
            delivered += 1
        return delivered

    async def _submit_async(self, handle: SubmissionHandle) -> str:
        request = SubmitRunRequest(submission_id=handle.id, assets=list(handle.keys))
        async with self.client_factory(self._resilience()) as client:
            response = await client.post("/runs", json=request.model_dump(mode="json"))
        payload = _checked_json(response)
        try:
            accepted = SubmitRunResponse.model_validate(payload)
        except ValidationError as exc:
            raise RunnerAPIError("Unexpected runner response to submission") from exc
        missing = set(handle.keys) - set(accepted.assets or handle.keys)
        if missing:
            raise RunnerAPIError(f"Runner did not accept: {', '.join(sorted(missing))}")
        return accepted.run_id

    async def _fetch_statuses_async(self, run_ids: Sequence[str]) -> dict[str, RunStatusResponse]:
        statuses: dict[str, RunStatusResponse] = {}
        async with self.client_factory(self._resilience()) as client:
            for run_id in run_ids:
                try:
                    response = await client.get(f"/runs/{run_id}")
                    payload = _checked_json(response)
                    statuses[run_id] = RunStatusResponse.model_validate(payload)
                except (httpx.HTTPError, RunnerAPIError, ValidationError) as exc:
                    log.warning("Could not poll run %s: %s", run_id, exc)
        return statuses

    def _resilience(self) -> ResilienceConfig:
        if self.resilience is None:
            self.resilience = ResilienceConfig.for_backend(self.config)
        return self.resilience


def _checked_json(response: httpx.Response) -> object:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if response.is_error:
        if isinstance(payload, dict) and "error" in payload:
            error = ErrorResponse.model_validate(payload)
            message = f"{error.error}: {error.detail}" if error.detail else error.error
        else:
            message = f"HTTP {response.status_code}"
        raise RunnerAPIError(message, status_code=response.status_code)
    if not isinstance(payload, dict):
        raise RunnerAPIError("Unexpected runner response payload", status_code=response.status_code)
    return payload


def _outcome(asset: AssetRunPayload) -> MaterializationOutcome:
    if asset.state == "succeeded":
        return MaterializationSuccess(
            data_version=asset.data_version,
            completed_at=asset.completed_at,
        )
    return MaterializationFailure(reason=asset.error or f"run {asset.state}")


if TYPE_CHECKING:
    from stalewatch.domain.ports.execution import PollingExecutionBackend

    _backend_check: PollingExecutionBackend = HttpExecutionBackend()
