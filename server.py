"""Daily newsletter dispatcher entrypoint.

Starts the scheduler that runs one dispatch cycle per day, or runs a single
cycle immediately with ``--once``.
"""

from __future__ import annotations

import argparse
import signal
import threading
from dataclasses import dataclass
from typing import Any
from zoneinfo import ZoneInfo

from config import AppConfig, get_config
from scheduler import SchedulerRuntime
from services.clock import SystemClock
from services.coordinator import DispatchCoordinator, PopulationLoadError
from services.notifier import SlackWebhookNotifier
from services.observability import LogContext, get_logger
from services.renderer import NewsletterRenderer
from services.runtime_paths import bootstrap_runtime_paths
from services.sender import SmtpSender
from services.worker import RecipientWorker


@dataclass(frozen=True)
class ServerRuntime:
    """Container for initialized runtime dependencies."""

    coordinator: DispatchCoordinator
    scheduler: SchedulerRuntime


def _build_runtime(config: AppConfig) -> ServerRuntime:
    store = bootstrap_runtime_paths(config)
    logger = get_logger()
    clock = SystemClock(ZoneInfo(config.timezone))

    worker = RecipientWorker(
        store=store,
        renderer=NewsletterRenderer(),
        sender=SmtpSender(config),
        clock=clock,
        subject=config.newsletter_subject,
        logger=logger,
    )
    coordinator = DispatchCoordinator(
        config=config,
        store=store,
        worker=worker,
        notifier=SlackWebhookNotifier(config.slack_webhook_url),
        clock=clock,
        logger=logger,
    )
    scheduler_runtime = SchedulerRuntime(config=config, coordinator=coordinator, logger=logger)
    return ServerRuntime(coordinator=coordinator, scheduler=scheduler_runtime)


def _install_signal_handlers(scheduler: SchedulerRuntime, stop: threading.Event) -> None:
    def _shutdown(_signum: int, _frame: Any) -> None:
        stop.set()
        scheduler.shutdown()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Daily newsletter dispatcher")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single dispatch cycle now instead of starting the scheduler",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the dispatcher process."""
    args = _parse_args(argv)
    config = get_config()
    runtime = _build_runtime(config)
    logger = get_logger()

    if args.once:
        try:
            summary = runtime.coordinator.run_daily_dispatch()
        except PopulationLoadError as exc:
            logger.error("manual_dispatch_aborted", context=LogContext(), error=str(exc))
            return 1
        print(summary.text)
        return 0

    stop = threading.Event()
    runtime.scheduler.start()
    _install_signal_handlers(runtime.scheduler, stop)
    logger.info(
        "server_started",
        context=LogContext(),
        next_run_at=runtime.scheduler.next_run_at(),
        dry_run=config.enable_dry_run,
    )
    stop.wait()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
