"""Kernel time – the clock every timestamp in taskbroker is read from."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Source of aware UTC datetimes and epoch seconds."""

    def now(self) -> datetime: ...
    def timestamp(self) -> float: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(UTC)

    def timestamp(self) -> float:
        return self.now().timestamp()


class FrozenClock(SystemClock):
    """A clock that only moves when told to.

    Message timestamps, alert cooldowns and throughput windows all read the
    injected clock, so tests step through an hour of cooldown with
    ``advance(hours=1)`` instead of sleeping.
    """

    def __init__(self, fixed: datetime) -> None:
        self._fixed = fixed

    def now(self) -> datetime:
        return self._fixed

    def advance(self, **delta: float) -> None:
        self._fixed += timedelta(**delta)


def utc_now() -> datetime:
    return datetime.now(UTC)


__all__ = ["Clock", "FrozenClock", "SystemClock", "utc_now"]
