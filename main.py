"""Entry point for the clipwire feed-to-post relay."""

from __future__ import annotations

import argparse
import json
import logging
import os
import socket
import sys
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Final, Sequence

from clipwire.app import ClipwireApp
from clipwire.config import ConfigError, load_config
from clipwire.errors import IdentityMismatch

LOGGER = logging.getLogger("clipwire.main")

EXIT_OK: Final[int] = 0
EXIT_CONFIG_ERROR: Final[int] = 1
EXIT_IDENTITY_MISMATCH: Final[int] = 2


@dataclass(frozen=True, slots=True)
class RunContext:
    """Trace metadata attached to every lifecycle event of one process."""

    trace_id: str
    instance_id: str
    started_ns: int

    @classmethod
    def create(cls) -> "RunContext":
        return cls(
            trace_id=os.getenv("CLIPWIRE_TRACE_ID") or uuid.uuid4().hex,
            instance_id=os.getenv("CLIPWIRE_INSTANCE_ID") or socket.gethostname(),
            started_ns=time.time_ns(),
        )

    @property
    def started_at(self) -> str:
        started = datetime.fromtimestamp(self.started_ns / 1e9, tz=timezone.utc)
        return started.isoformat().replace("+00:00", "Z")


def _log_event(level: int, event: str, context: RunContext, **fields: Any) -> None:
    payload = {
        "event": event,
        "trace_id": context.trace_id,
        "instance_id": context.instance_id,
        "started_at": context.started_at,
        **fields,
    }
    LOGGER.log(level, json.dumps(payload, default=str, separators=(",", ":")))


def _emit_metric(name: str, value: float, unit: str, context: RunContext, **labels: Any) -> None:
    """Durations and counters go out as log lines for downstream scraping."""
    _log_event(logging.INFO, "metric", context, metric_name=name, value=round(value, 3), unit=unit, **labels)


def _elapsed_ms(start_ns: int) -> float:
    return (time.perf_counter_ns() - start_ns) / 1_000_000


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Relay new YouTube uploads to X as native clips.")
    parser.add_argument("--once", action="store_true", help="Run a single poll cycle and exit")
    parser.add_argument("--dry-run", action="store_true", help="Log intended posts instead of publishing")
    return parser


def _build_app(args: argparse.Namespace) -> ClipwireApp:
    config = load_config()
    if args.dry_run and not config.dry_run:
        config = config.model_copy(update={"dry_run": True})
    return ClipwireApp(config)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the relay and translate fatal conditions into exit codes."""
    args = build_parser().parse_args(argv)
    context = RunContext.create()
    app: ClipwireApp | None = None
    start_ns = time.perf_counter_ns()

    try:
        app = _build_app(args)
        _emit_metric("bootstrap_duration_ms", _elapsed_ms(start_ns), "milliseconds", context)
        _log_event(logging.INFO, "clipwire.bootstrap_complete", context, once=args.once, dry_run=app.config.dry_run)

        run_start_ns = time.perf_counter_ns()
        if args.once:
            next_delay = app.run_once()
            _emit_metric("next_poll_delay_s", next_delay, "seconds", context)
        else:
            app.start()
        _log_event(logging.INFO, "clipwire.run_completed", context, duration_ms=round(_elapsed_ms(run_start_ns), 2))
        return EXIT_OK
    except ConfigError as exc:
        if not logging.getLogger().handlers:
            logging.basicConfig(level=logging.INFO)
        _log_event(logging.CRITICAL, "clipwire.config_invalid", context, error_message=str(exc))
        return EXIT_CONFIG_ERROR
    except IdentityMismatch as exc:
        _log_event(logging.CRITICAL, "clipwire.identity_mismatch", context, actual=exc.actual, expected=exc.expected)
        return EXIT_IDENTITY_MISMATCH
    except KeyboardInterrupt:
        if app is not None:
            app.stop()
        _log_event(logging.WARNING, "clipwire.interrupted", context)
        return EXIT_OK
    except Exception as exc:
        error_fields = {"error_type": type(exc).__name__, "error_message": str(exc)}
        _emit_metric("run_failure", 1.0, "count", context, **error_fields)
        _log_event(logging.CRITICAL, "clipwire.run_failed", context, **error_fields)
        raise


if __name__ == "__main__":
    sys.exit(main())
