"""
Clock - supplies "now" to the orchestration layer.

The evaluation engine never reads time itself; whoever calls it passes
clock.now() in as current_timestamp. Simulated time is an OffsetClock built
from the organization's persisted offset (see app/repositories/clock_store.py),
not process-global state.
"""

from datetime import datetime, timedelta, timezone


class Clock:
    """Base clock interface."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Real wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Always returns the same instant. Used by tests and replays."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant


class OffsetClock(Clock):
    """Another clock shifted by a fixed offset (time simulation)."""

    def __init__(self, base: Clock, offset: timedelta):
        self.base = base
        self.offset = offset

    def now(self) -> datetime:
        return self.base.now() + self.offset
