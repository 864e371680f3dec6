from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from stalewatch.adapters.http import HttpExecutionBackend
from stalewatch.app import (
    build_reconciler,
    describe_assets,
    evaluate_assets,
    invalidate_asset,
    serve,
)
from stalewatch.config import (
    BackendConfig,
    ConfigurationError,
    configure_logging,
    get_reconciler_config,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from stalewatch.app import AssetStatus
    from stalewatch.config import ReconcilerConfig
    from stalewatch.domain.reconciliation import Evaluation

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Keep data assets fresh")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log at DEBUG level (overrides STALEWATCH_LOG_LEVEL)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_declarations(command: argparse.ArgumentParser) -> None:
        command.add_argument(
            "--declarations",
            type=Path,
            help="TOML file declaring the assets (defaults to STALEWATCH_DECLARATIONS)",
        )

    plan = subparsers.add_parser("plan", help="Show what the next tick would materialize")
    add_declarations(plan)
    plan.add_argument(
        "--now",
        type=str,
        help="ISO-8601 timestamp (UTC) to evaluate at instead of the current time",
    )

    status = subparsers.add_parser("status", help="Show staleness and freshness per asset")
    add_declarations(status)
    status.add_argument(
        "--now",
        type=str,
        help="ISO-8601 timestamp (UTC) to evaluate at instead of the current time",
    )

    run = subparsers.add_parser("run", help="Run the reconciliation loop")
    add_declarations(run)
    run.add_argument(
        "--once",
        action="store_true",
        help="Run a single tick and exit",
    )
    run.add_argument(
        "--interval",
        type=float,
        help="Seconds between ticks (defaults to config)",
    )
    run.add_argument(
        "--backend-url",
        type=str,
        help="Base URL of the runner service (defaults to STALEWATCH_BACKEND_URL)",
    )

    invalidate = subparsers.add_parser(
        "invalidate",
        help="Force an asset stale so that it is re-materialized",
    )
    invalidate.add_argument("key", type=str, help="Asset key to invalidate")

    return parser.parse_args(list(argv))


def _parse_iso_datetime(value: str) -> datetime:
    try:
        normalized = value.strip()
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        dt = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO timestamp: {value}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _loop_config(args: argparse.Namespace) -> ReconcilerConfig:
    config = get_reconciler_config()
    if args.interval is not None:
        if args.interval <= 0:
            raise ValueError("Tick interval must be positive")
        config = replace(config, tick_interval=timedelta(seconds=args.interval))
    return config


def _log_plan(evaluation: Evaluation) -> None:
    plan = evaluation.plan
    if not plan:
        log.info("Nothing to materialize at %s", evaluation.evaluated_at.isoformat())
        return
    log.info("Plan at %s (%s asset(s)):", evaluation.evaluated_at.isoformat(), len(plan))
    for position, key in enumerate(plan, start=1):
        reason = plan.reasons[key]
        if reason.driving_policy is not None:
            log.info(
                "  %s. %s (freshness of %s, lag %s; %s)",
                position,
                key,
                reason.driving_policy,
                reason.required_lag,
                reason.stale_reason or "fresh data too old",
            )
        else:
            log.info("  %s. %s (%s)", position, key, reason.stale_reason)


def _log_status(rows: list[AssetStatus]) -> None:
    for row in rows:
        freshness = "-"
        if row.policy is not None:
            if row.policy.late:
                freshness = f"late (lag {row.policy.policy.maximum_lag})"
            elif row.policy.deadline is not None:
                freshness = f"fresh until {row.policy.deadline.isoformat()}"
            else:
                freshness = "fresh"
        log.info(
            "%s: %s, freshness %s%s",
            row.asset_key,
            row.stale_reason or "up to date",
            freshness,
            ", planned" if row.planned else "",
        )


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    parsed_args: argparse.Namespace
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    now: datetime | None = None
    loop_config: ReconcilerConfig | None = None
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(level=logging.DEBUG if parsed_args.verbose else None)
        if parsed_args.command in {"plan", "status"} and parsed_args.now:
            now = _parse_iso_datetime(parsed_args.now)
        if parsed_args.command == "run":
            loop_config = _loop_config(parsed_args)
    except (ValueError, ConfigurationError):
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "plan":
            evaluation = evaluate_assets(now=now, declarations_path=parsed_args.declarations)
            _log_plan(evaluation)
        elif parsed_args.command == "status":
            evaluation = evaluate_assets(now=now, declarations_path=parsed_args.declarations)
            _log_status(describe_assets(evaluation))
        elif parsed_args.command == "run":
            backend = (
                HttpExecutionBackend(config=BackendConfig(base_url=parsed_args.backend_url))
                if parsed_args.backend_url
                else HttpExecutionBackend()
            )
            reconciler = build_reconciler(
                declarations_path=parsed_args.declarations,
                backend=backend,
                config=loop_config,
            )
            results = serve(
                reconciler,
                backend=backend,
                config=loop_config,
                max_ticks=1 if parsed_args.once else None,
            )
            if parsed_args.once and results and results[-1].error is not None:
                raise RuntimeError(f"Tick failed: {results[-1].error}")  # noqa: TRY301
        elif parsed_args.command == "invalidate":
            invalidate_asset(parsed_args.key)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error during %s", parsed_args.command)
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
