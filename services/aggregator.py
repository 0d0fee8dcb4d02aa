"""Run summary formatting over worker outcomes."""

from __future__ import annotations

from collections.abc import Iterable

from models import RunSummary, WorkOutcome

SUMMARY_HEADER = "Hello! This is plaa.\nHere is what Nerd Planet delivered today:"
EMPTY_RUN_LINE = "No subscribers were scheduled for this run."


def format_outcome_line(outcome: WorkOutcome) -> str:
    line = f"{outcome.name} received {outcome.count} items"
    if outcome.error is not None:
        line += f" [FAILED: {outcome.error.value}]"
    return line


def build_run_summary(outcomes: Iterable[WorkOutcome]) -> RunSummary:
    """Aggregate outcomes into a report independent of completion order."""
    ordered = sorted(outcomes, key=lambda o: (o.name.casefold(), o.email, o.recipient_id))
    lines = tuple(format_outcome_line(outcome) for outcome in ordered)

    delivered = sum(o.count for o in ordered if not o.failed)
    failures = sum(1 for o in ordered if o.failed)

    body = "\n".join(lines) if lines else EMPTY_RUN_LINE
    totals = f"Total: {len(ordered)} recipients, {delivered} items delivered, {failures} failed"
    text = f"{SUMMARY_HEADER}\n\n{body}\n\n{totals}"

    return RunSummary(
        lines=lines,
        recipient_count=len(ordered),
        delivered_items=delivered,
        failure_count=failures,
        text=text,
    )
