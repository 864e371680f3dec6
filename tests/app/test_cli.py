from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from stalewatch.adapters.declarations import StaticDeclarationSource
from stalewatch.adapters.http import HttpExecutionBackend
from stalewatch.adapters.memory import InMemoryRecordStore
from stalewatch.app import evaluate_assets
from stalewatch.domain.reconciliation import TickResult
from stalewatch.ui import cli as cli_module
from tests.support.assets import T0, asset


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "STALEWATCH_TICK_INTERVAL_SECONDS",
        "STALEWATCH_BACKOFF_BASE_SECONDS",
        "STALEWATCH_BACKOFF_MAX_SECONDS",
        "STALEWATCH_STUCK_AFTER_SECONDS",
        "STALEWATCH_DECLARATIONS",
        "STALEWATCH_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("STALEWATCH_BACKEND_URL", "https://runner.test")


def test_plan_passes_timestamp_and_declarations(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_evaluate(**kwargs: object) -> object:
        captured.update(kwargs)
        return evaluate_assets(
            now=T0,
            declarations=StaticDeclarationSource([asset("A")]),
            unit_of_work_factory=InMemoryRecordStore().unit_of_work,
        )

    monkeypatch.setattr(cli_module, "evaluate_assets", fake_evaluate)

    cli_module.main(["plan", "--declarations", "assets.toml", "--now", "2025-01-01T15:00:00+03:00"])

    assert captured["now"] == datetime(2025, 1, 1, 12, 0, tzinfo=UTC)
    assert captured["declarations_path"] == Path("assets.toml")


def test_status_logs_each_asset(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    def fake_evaluate(**_: object) -> object:
        return evaluate_assets(
            now=T0,
            declarations=StaticDeclarationSource([asset("A"), asset("B", "A", lag_minutes=5)]),
            unit_of_work_factory=InMemoryRecordStore().unit_of_work,
        )

    monkeypatch.setattr(cli_module, "evaluate_assets", fake_evaluate)

    with caplog.at_level("INFO", logger="stalewatch.ui.cli"):
        cli_module.main(["status"])

    assert "A: never_materialized, freshness -, planned" in caplog.text
    assert "B: never_materialized, freshness late (lag 0:05:00), planned" in caplog.text


def test_invalid_timestamp_exits_with_validation_error() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["plan", "--now", "not-a-date"])

    assert excinfo.value.code == 2


def test_non_positive_interval_exits_with_validation_error() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["run", "--interval", "0"])

    assert excinfo.value.code == 2


def test_invalid_environment_exits_with_validation_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("STALEWATCH_TICK_INTERVAL_SECONDS", "later")

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["run", "--once"])

    assert excinfo.value.code == 2


def test_unknown_log_level_exits_with_validation_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("STALEWATCH_LOG_LEVEL", "chatty")

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["status"])

    assert excinfo.value.code == 2


def test_run_once_wires_http_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_build(**kwargs: object) -> str:
        captured.update(kwargs)
        return "reconciler"

    def fake_serve(reconciler: object, **kwargs: object) -> list[TickResult]:
        captured["reconciler"] = reconciler
        captured.update({f"serve_{key}": value for key, value in kwargs.items()})
        return [TickResult(evaluated_at=T0)]

    monkeypatch.setattr(cli_module, "build_reconciler", fake_build)
    monkeypatch.setattr(cli_module, "serve", fake_serve)

    cli_module.main(["run", "--once", "--interval", "2.5", "--backend-url", "http://other"])

    backend = captured["backend"]
    assert isinstance(backend, HttpExecutionBackend)
    assert backend.config.base_url == "http://other"
    assert captured["serve_backend"] is backend
    assert captured["serve_max_ticks"] == 1
    assert captured["reconciler"] == "reconciler"
    config = captured["serve_config"]
    assert config.tick_interval == timedelta(seconds=2.5)  # type: ignore[attr-defined]


def test_failed_single_tick_exits_with_runtime_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_module, "build_reconciler", lambda **_: "reconciler")
    monkeypatch.setattr(
        cli_module,
        "serve",
        lambda *_, **__: [TickResult(evaluated_at=T0, error="Dependency cycle among: A, B")],
    )

    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(["run", "--once"])

    assert excinfo.value.code == 1


def test_invalidate_forwards_key(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []
    monkeypatch.setattr(cli_module, "invalidate_asset", lambda key: calls.append(key) or True)

    cli_module.main(["invalidate", "daily_revenue"])

    assert calls == ["daily_revenue"]
