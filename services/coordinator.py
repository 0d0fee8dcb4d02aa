"""Daily fan-out of recipient workers behind a shared release time."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta

from config import AppConfig
from models import ErrorKind, Recipient, RunSummary, WorkOutcome
from services.aggregator import build_run_summary
from services.clock import Clock, release_time_for
from services.failures import save_dead_letter
from services.notifier import SlackWebhookNotifier
from services.observability import LogContext, StructuredLogger, get_logger
from services.store import NewsletterStore
from services.worker import RecipientWorker


class PopulationLoadError(RuntimeError):
    """Raised when the recipient snapshot cannot be loaded; nothing is sent."""


class DispatchCoordinator:
    """Coordinate one dispatch cycle: load, fan out, join, summarize, report."""

    def __init__(
        self,
        *,
        config: AppConfig,
        store: NewsletterStore,
        worker: RecipientWorker,
        notifier: SlackWebhookNotifier,
        clock: Clock,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._config = config
        self._store = store
        self._worker = worker
        self._notifier = notifier
        self._clock = clock
        self._logger = logger or get_logger()

    def release_time_for(self, trigger_time: datetime) -> datetime:
        """Release instant a run triggered at ``trigger_time`` prepares for.

        The trigger fires ``preparation_lead_minutes`` ahead of release, so the
        release date is the local date of trigger plus lead. A trigger shortly
        before midnight targets the next day's release.
        """
        anchor = trigger_time.astimezone(self._clock.timezone) + timedelta(
            minutes=self._config.preparation_lead_minutes
        )
        return release_time_for(
            anchor.date(),
            self._config.release_time,
            self._clock.timezone,
        )

    def run_daily_dispatch(self) -> RunSummary:
        """Run one dispatch cycle now and return its summary."""
        trigger_time = self._clock.now()
        release_time = self.release_time_for(trigger_time)
        run_id = self._generate_run_id(trigger_time)
        context = LogContext(run_id=run_id)

        try:
            recipients = self._store.load_recipients()
        except Exception as exc:  # noqa: BLE001
            self._logger.error("recipient_load_failed", context=context, error=str(exc))
            raise PopulationLoadError(f"Could not load recipients for run {run_id}") from exc

        self._logger.info(
            "dispatch_started",
            context=context,
            recipient_count=len(recipients),
            release_time=release_time.isoformat(),
        )

        outcomes = self._dispatch_all(recipients, release_time=release_time, run_id=run_id)
        summary = build_run_summary(outcomes)
        self._record_failures(run_id=run_id, outcomes=outcomes)

        self._logger.info(
            "dispatch_completed",
            context=context,
            recipient_count=summary.recipient_count,
            delivered_items=summary.delivered_items,
            failure_count=summary.failure_count,
        )
        self._report(summary, context=context)
        return summary

    def _dispatch_all(
        self,
        recipients: list[Recipient],
        *,
        release_time: datetime,
        run_id: str,
    ) -> list[WorkOutcome]:
        if not recipients:
            return []

        outcomes: list[WorkOutcome] = []
        max_workers = min(len(recipients), self._config.max_workers)
        if max_workers < len(recipients):
            self._logger.warning(
                "recipient_pool_capped",
                context=LogContext(run_id=run_id),
                recipient_count=len(recipients),
                max_workers=max_workers,
            )
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="recipient") as pool:
            future_map = {
                pool.submit(
                    self._worker.run_for_recipient,
                    recipient,
                    release_time,
                    run_id=run_id,
                ): recipient
                for recipient in recipients
            }
            for future in as_completed(future_map):
                recipient = future_map[future]
                try:
                    outcomes.append(future.result())
                except Exception as exc:  # noqa: BLE001
                    self._logger.error(
                        "recipient_worker_crashed",
                        context=LogContext.for_recipient(run_id, recipient),
                        error=str(exc),
                    )
                    outcomes.append(
                        WorkOutcome(
                            recipient_id=recipient.recipient_id,
                            name=recipient.display_name,
                            email=recipient.email,
                            count=0,
                            error=ErrorKind.INTERNAL,
                            error_detail=str(exc),
                        )
                    )
        return outcomes

    def _record_failures(self, *, run_id: str, outcomes: list[WorkOutcome]) -> None:
        for outcome in outcomes:
            if not outcome.failed:
                continue
            try:
                save_dead_letter(
                    failure_dir=self._config.failure_log_dir,
                    run_id=run_id,
                    outcome=outcome,
                )
            except OSError as exc:
                self._logger.error(
                    "dead_letter_write_failed",
                    context=LogContext(run_id=run_id, recipient_id=outcome.recipient_id, email=outcome.email),
                    error=str(exc),
                )

    def _report(self, summary: RunSummary, *, context: LogContext) -> None:
        try:
            self._notifier.notify(summary.text)
        except Exception as exc:  # noqa: BLE001
            self._logger.error("notification_failed", context=context, error=str(exc))

    @staticmethod
    def _generate_run_id(trigger_time: datetime) -> str:
        return f"{trigger_time.strftime('%Y-%m-%d')}-daily-{trigger_time.strftime('%H%M%S')}"
