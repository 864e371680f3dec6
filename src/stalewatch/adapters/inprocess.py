"""Execution backend running registered Python callables on a thread pool.

Every submission becomes one job that materializes its assets sequentially in
the submitted order. Once an asset fails, the remaining assets of that job
are reported as failed without running, because they may depend on it.
"""

from __future__ import annotations

import concurrent.futures
import threading
from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from stalewatch.domain.ports.execution import (
    MaterializationFailure,
    MaterializationSuccess,
    SubmissionHandle,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from stalewatch.domain.model import AssetKey
    from stalewatch.domain.ports.execution import CompletionCallback

log = getLogger(__name__)

type Materializer = Callable[[], str | None]
"""Produce an asset; the optional return value is its data version."""


class InProcessExecutionBackend:
    def __init__(
        self,
        materializers: Mapping[AssetKey, Materializer],
        *,
        max_workers: int = 4,
    ) -> None:
        self._materializers = dict(materializers)
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="stalewatch-run",
        )
        self._lock = threading.Lock()
        self._pending: dict[str, concurrent.futures.Future[None]] = {}

    def submit(
        self,
        keys: Sequence[AssetKey],
        *,
        on_complete: CompletionCallback,
    ) -> SubmissionHandle:
        handle = SubmissionHandle(keys=tuple(keys))
        future = self._executor.submit(self._run, handle, on_complete)
        with self._lock:
            self._pending[handle.id] = future
        future.add_done_callback(lambda _: self._forget(handle.id))
        return handle

    def wait(self, timeout: float | None = None) -> bool:
        """Block until every submitted job finished; ``False`` on timeout."""

        with self._lock:
            futures = list(self._pending.values())
        _done, not_done = concurrent.futures.wait(futures, timeout=timeout)
        return not not_done

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def _forget(self, handle_id: str) -> None:
        with self._lock:
            self._pending.pop(handle_id, None)

    def _run(self, handle: SubmissionHandle, on_complete: CompletionCallback) -> None:
        failed: AssetKey | None = None
        for key in handle.keys:
            if failed is not None:
                on_complete(key, MaterializationFailure(reason=f"skipped after {failed} failed"))
                continue
            materializer = self._materializers.get(key)
            if materializer is None:
                failed = key
                on_complete(key, MaterializationFailure(reason="no materializer registered"))
                continue
            try:
                data_version = materializer()
            except Exception as exc:  # noqa: BLE001
                log.exception("Materializer for %s raised", key)
                failed = key
                on_complete(key, MaterializationFailure(reason=str(exc) or type(exc).__name__))
                continue
            on_complete(key, MaterializationSuccess(data_version=data_version))


if TYPE_CHECKING:
    from stalewatch.domain.ports.execution import ExecutionBackend

    _backend_check: ExecutionBackend = InProcessExecutionBackend({})
