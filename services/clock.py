"""Injectable time source for dispatch scheduling."""

from __future__ import annotations

import time
from datetime import date, datetime, timedelta
from datetime import time as time_of_day
from typing import Protocol
from zoneinfo import ZoneInfo

# Long waits are split so clock adjustments are picked up.
_MAX_SLEEP_SLICE_SECONDS = 30.0


class Clock(Protocol):
    """Wall-clock access used by the coordinator and its workers."""

    @property
    def timezone(self) -> ZoneInfo: ...

    def now(self) -> datetime: ...

    def sleep_until(self, deadline: datetime) -> None: ...


class SystemClock:
    """Real wall clock pinned to a configured time zone."""

    def __init__(self, timezone: ZoneInfo) -> None:
        self._timezone = timezone

    @property
    def timezone(self) -> ZoneInfo:
        return self._timezone

    def now(self) -> datetime:
        return datetime.now(self._timezone)

    def sleep_until(self, deadline: datetime) -> None:
        """Block until ``deadline``; return at once if it already passed."""
        while True:
            remaining = (deadline - self.now()).total_seconds()
            if remaining <= 0:
                return
            time.sleep(min(remaining, _MAX_SLEEP_SLICE_SECONDS))


def release_time_for(day: date, release_at: time_of_day, timezone: ZoneInfo) -> datetime:
    """Absolute release instant for ``day`` in ``timezone``."""
    return datetime.combine(day, release_at, tzinfo=timezone)


def preparation_time_of_day(release_at: time_of_day, lead_minutes: int) -> time_of_day:
    """Time of day at which the run should start, ``lead_minutes`` before release."""
    anchor = datetime.combine(date(2000, 1, 2), release_at)
    return (anchor - timedelta(minutes=lead_minutes)).time()
