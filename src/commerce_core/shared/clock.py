"""Clock abstraction so time-dependent services can be driven in tests."""

import time
from datetime import UTC, datetime, timedelta


class Clock:
    """Wall-clock and monotonic time source."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()


class FrozenClock(Clock):
    """Manually advanced clock.

    Both ``now()`` and ``monotonic()`` move together when ``advance`` is called,
    which keeps TTL caches and datetime-based expiry checks in step.
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2024, 1, 1, tzinfo=UTC)
        self._monotonic = 0.0

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._monotonic

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)
        self._monotonic += seconds
