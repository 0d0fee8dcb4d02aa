"""Dead-letter records for recipients whose dispatch failed."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from models import WorkOutcome


def save_dead_letter(
    *,
    failure_dir: Path,
    run_id: str,
    outcome: WorkOutcome,
    payload: dict[str, Any] | None = None,
) -> Path:
    """Persist a failed outcome for manual follow-up."""
    if outcome.error is None:
        raise ValueError("Only failed outcomes are written as dead letters")

    failure_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    out_path = (
        failure_dir
        / f"failure_{run_id}_{outcome.recipient_id}_{outcome.error.value}_{timestamp}.json"
    )
    body = {
        "run_id": run_id,
        "recipient_id": outcome.recipient_id,
        "email": outcome.email,
        "stage": outcome.error.value,
        "error": outcome.error_detail,
        "intended_count": outcome.count,
        "payload": payload or {},
        "created_at": datetime.now(UTC).isoformat(),
    }
    out_path.write_text(json.dumps(body, indent=2, sort_keys=True), encoding="utf-8")
    return out_path
