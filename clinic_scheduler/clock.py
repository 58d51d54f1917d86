"""Clock abstraction and time-of-day helpers."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock frozen at a given instant until moved explicitly."""

    def __init__(self, moment: datetime):
        self._moment = moment

    def now(self) -> datetime:
        return self._moment

    def set(self, moment: datetime) -> None:
        self._moment = moment

    def advance(self, **delta) -> None:
        self._moment += timedelta(**delta)


def today(clock: Clock) -> str:
    """Current calendar date (YYYY-MM-DD) according to `clock`."""
    return clock.now().date().isoformat()


def minutes_of_day(value: str) -> int:
    """Parse an `HH:MM` (24h) time-of-day into minutes after midnight."""
    parsed = datetime.strptime(value, "%H:%M")
    return parsed.hour * 60 + parsed.minute


def format_minutes(total: int) -> str:
    """Inverse of `minutes_of_day`, always zero-padded."""
    hours, minutes = divmod(total, 60)
    return f"{hours:02d}:{minutes:02d}"
