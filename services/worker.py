"""Per-recipient select, render, wait, send and watermark pipeline."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from models import ErrorKind, Recipient, WorkOutcome
from services.clock import Clock
from services.observability import LogContext, StructuredLogger, get_logger
from services.query_builder import build_selection_criteria
from services.renderer import NewsletterRenderer
from services.sender import SmtpSender
from services.store import NewsletterStore

MAX_ITEMS_PER_MESSAGE = 5


class RecipientWorker:
    """Run one recipient's pipeline and always return exactly one outcome.

    Failures are caught per stage and recorded on the outcome so that one
    recipient can never affect another. The watermark advances whenever item
    selection succeeded, even if rendering or sending later failed.
    """

    def __init__(
        self,
        *,
        store: NewsletterStore,
        renderer: NewsletterRenderer,
        sender: SmtpSender,
        clock: Clock,
        subject: str,
        max_items: int = MAX_ITEMS_PER_MESSAGE,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._store = store
        self._renderer = renderer
        self._sender = sender
        self._clock = clock
        self._subject = subject
        self._max_items = max_items
        self._logger = logger or get_logger()

    def run_for_recipient(
        self,
        recipient: Recipient,
        release_time: datetime,
        *,
        run_id: str | None = None,
    ) -> WorkOutcome:
        """Select, render, send at ``release_time`` and advance the watermark.

        The new watermark is the instant items were selected, so anything
        published while waiting for release is picked up by the next run.
        """
        name = recipient.display_name
        context = LogContext.for_recipient(run_id, recipient)

        selected_at = self._clock.now()
        try:
            criteria = build_selection_criteria(recipient)
            items = self._store.select_items(criteria, limit=self._max_items)
        except Exception as exc:  # noqa: BLE001
            self._logger.error("recipient_selection_failed", context=context, error=str(exc))
            return WorkOutcome(
                recipient_id=recipient.recipient_id,
                name=name,
                email=recipient.email,
                count=0,
                error=ErrorKind.SELECTION,
                error_detail=str(exc),
            )

        count = len(items)
        error: ErrorKind | None = None
        error_detail: str | None = None
        transmitted_at: datetime | None = None

        if not items:
            self._logger.info("recipient_no_content", context=context)
        else:
            try:
                html = self._renderer.render(name=name, length=count, items=items)
            except Exception as exc:  # noqa: BLE001
                self._logger.error("recipient_render_failed", context=context, error=str(exc))
                count = 0
                error = ErrorKind.RENDER
                error_detail = str(exc)
            else:
                self._logger.info(
                    "recipient_ready_to_send",
                    context=context,
                    item_count=count,
                    release_time=release_time.isoformat(),
                )
                self._clock.sleep_until(release_time)
                transmitted_at = self._clock.now()
                try:
                    result = self._sender.send(to_email=recipient.email, subject=self._subject, html=html)
                except Exception as exc:  # noqa: BLE001
                    self._logger.error("recipient_send_failed", context=context, error=str(exc))
                    error = ErrorKind.TRANSMISSION
                    error_detail = str(exc)
                else:
                    self._logger.info(
                        "recipient_sent",
                        context=context,
                        item_count=count,
                        dry_run=result.dry_run,
                    )

        delivered_at = max(recipient.last_delivered_at, selected_at)
        try:
            self._store.save_recipient(replace(recipient, last_delivered_at=delivered_at))
        except Exception as exc:  # noqa: BLE001
            self._logger.error("recipient_watermark_failed", context=context, error=str(exc))
            if error is None:
                error = ErrorKind.PERSISTENCE
                error_detail = str(exc)

        return WorkOutcome(
            recipient_id=recipient.recipient_id,
            name=name,
            email=recipient.email,
            count=count,
            error=error,
            error_detail=error_detail,
            transmitted_at=transmitted_at,
        )
