"""
Clock — the engine's only source of "now".

Every lease decision compares stored timestamps against a clock reading taken
at call time. DocumentQueue takes the clock as a parameter so tests can move
time forward deterministically instead of sleeping through a lease.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Structural Protocol: any object with a now() returning an aware datetime."""

    def now(self) -> datetime: ...


@dataclasses.dataclass(frozen=True)
class SystemClock:
    """Wall-clock UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclasses.dataclass
class ManualClock:
    """
    A clock that only moves when told to.

    Parameters
    ----------
    current : the instant returned by now() (default 2024-01-01T00:00:00Z)
    """

    current: datetime = dataclasses.field(
        default_factory=lambda: datetime(2024, 1, 1, tzinfo=timezone.utc)
    )

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta | float) -> datetime:
        """Move forward by `delta` (a timedelta or seconds). Returns the new time."""
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        if delta < timedelta(0):
            raise ValueError("ManualClock cannot move backwards")
        self.current = self.current + delta
        return self.current


def plus_seconds(instant: datetime, seconds: float) -> datetime:
    """Return `instant` shifted forward by `seconds`."""
    return instant + timedelta(seconds=seconds)
