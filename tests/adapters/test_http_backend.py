from __future__ import annotations

import json
from collections.abc import Callable  # noqa: TC003
from datetime import UTC, datetime

import httpx
import pytest

from stalewatch.adapters.http import HttpExecutionBackend, ResilientClient, RunnerAPIError
from stalewatch.config import BackendConfig, MissingConfigurationError, ResilienceConfig
from stalewatch.domain.ports.execution import (
    MaterializationFailure,
    MaterializationOutcome,
    MaterializationSuccess,
)


def _make_client_factory(
    handler: Callable[[httpx.Request], httpx.Response],
) -> Callable[[ResilienceConfig], ResilientClient]:
    async def async_handler(request: httpx.Request) -> httpx.Response:
        return handler(request)

    def factory(resilience: ResilienceConfig) -> ResilientClient:
        client = ResilientClient(resilience)
        client._client = httpx.AsyncClient(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
            base_url=resilience.base_url or "",
            headers=dict(resilience.headers),
            transport=httpx.MockTransport(async_handler),
        )
        return client

    return factory


class FakeRunner:
    """Minimal runner: accepts runs and reports whatever state the test sets."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.states: dict[str, dict[str, object]] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST" and request.url.path == "/runs":
            body = json.loads(request.content)
            return httpx.Response(201, json={"id": "run-1", "assets": body["assets"]})
        if request.method == "GET" and request.url.path == "/runs/run-1":
            assets = [{"key": key, **state} for key, state in self.states.items()]
            return httpx.Response(200, json={"id": "run-1", "assets": assets})
        return httpx.Response(404, json={"error": "not_found"})


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def http_backend(runner: FakeRunner) -> HttpExecutionBackend:
    return HttpExecutionBackend(
        config=BackendConfig(base_url="https://runner.test", token="secret"),
        client_factory=_make_client_factory(runner),
    )


def test_submit_posts_plan_and_tracks_run(
    http_backend: HttpExecutionBackend,
    runner: FakeRunner,
) -> None:
    handle = http_backend.submit(["A", "B"], on_complete=lambda *_: None)

    request = runner.requests[0]
    assert request.headers["Authorization"] == "Bearer secret"
    assert json.loads(request.content) == {"submission_id": handle.id, "assets": ["A", "B"]}
    assert handle.keys == ("A", "B")
    assert http_backend.pending_runs == 1


def test_poll_delivers_each_terminal_outcome_once(
    http_backend: HttpExecutionBackend,
    runner: FakeRunner,
) -> None:
    outcomes: list[tuple[str, MaterializationOutcome]] = []

    def on_complete(key: str, outcome: MaterializationOutcome) -> None:
        outcomes.append((key, outcome))

    http_backend.submit(["A", "B"], on_complete=on_complete)

    runner.states = {
        "A": {
            "state": "succeeded",
            "data_version": "abc",
            "completed_at": "2025-01-01T12:00:00Z",
        },
        "B": {"state": "running"},
    }
    assert http_backend.poll() == 1
    assert http_backend.poll() == 0

    runner.states["B"] = {"state": "failed", "error": "out of memory"}
    assert http_backend.poll() == 1

    assert outcomes == [
        (
            "A",
            MaterializationSuccess(
                data_version="abc",
                completed_at=datetime(2025, 1, 1, 12, 0, tzinfo=UTC),
            ),
        ),
        ("B", MaterializationFailure(reason="out of memory")),
    ]
    assert http_backend.pending_runs == 0
    assert http_backend.poll() == 0


def test_skipped_asset_without_error_gets_state_as_reason(
    http_backend: HttpExecutionBackend,
    runner: FakeRunner,
) -> None:
    outcomes: list[MaterializationOutcome] = []
    http_backend.submit(["A"], on_complete=lambda _key, outcome: outcomes.append(outcome))
    runner.states = {"A": {"state": "skipped", "error": "  "}}

    http_backend.poll()

    assert outcomes == [MaterializationFailure(reason="run skipped")]


def test_rejected_submission_raises() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "unavailable", "detail": "draining"})

    backend = HttpExecutionBackend(
        config=BackendConfig(base_url="https://runner.test"),
        client_factory=_make_client_factory(handler),
    )

    with pytest.raises(RunnerAPIError, match="unavailable: draining") as excinfo:
        backend.submit(["A"], on_complete=lambda *_: None)

    assert excinfo.value.status_code == 503
    assert backend.pending_runs == 0


def test_partially_accepted_submission_raises() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json={"id": "run-9", "assets": ["A"]})

    backend = HttpExecutionBackend(
        config=BackendConfig(base_url="https://runner.test"),
        client_factory=_make_client_factory(handler),
    )

    with pytest.raises(RunnerAPIError, match="did not accept: B"):
        backend.submit(["A", "B"], on_complete=lambda *_: None)


def test_failed_poll_keeps_run_pending(runner: FakeRunner) -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            calls["count"] += 1
            return httpx.Response(500)
        return runner(request)

    backend = HttpExecutionBackend(
        config=BackendConfig(base_url="https://runner.test"),
        client_factory=_make_client_factory(handler),
    )
    backend.submit(["A"], on_complete=lambda *_: None)

    assert backend.poll() == 0
    assert calls["count"] == 1
    assert backend.pending_runs == 1


def test_backend_requires_runner_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STALEWATCH_BACKEND_URL", raising=False)

    with pytest.raises(MissingConfigurationError) as excinfo:
        HttpExecutionBackend()

    assert excinfo.value.names == ("STALEWATCH_BACKEND_URL",)
