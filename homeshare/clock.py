"""
clock.py - Time sources for the ledger

All time-dependent rules (auction windows, booking check-out) read the time
from a single injected clock, in integer seconds.

Classes:
- Clock: Protocol defining the time interface
- ManualClock: Monotonic clock driven explicitly (tests, simulations, replay)
- SystemClock: Wall-clock time
"""

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """
    Protocol for time sources.

    Implementations return the current time as integer seconds.
    """

    def now(self) -> int:
        ...


class ManualClock:
    """
    Clock that only moves when told to.

    Time can only move forward, never backward.
    """

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError(f"Clock cannot start before 0, got {start}")
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        """Move forward by a number of seconds and return the new time."""
        if seconds < 0:
            raise ValueError(f"Cannot move time backwards by {seconds}s")
        self._now += int(seconds)
        return self._now

    def advance_to(self, timestamp: int) -> int:
        """Move forward to an absolute timestamp and return it."""
        if timestamp < self._now:
            raise ValueError(
                f"Cannot move time backwards: {timestamp} < {self._now}"
            )
        self._now = int(timestamp)
        return self._now

    def __repr__(self):
        return f"ManualClock(now={self._now})"


class SystemClock:
    """Wall-clock time in whole seconds since the epoch."""

    def now(self) -> int:
        return int(time.time())

    def advance_to(self, timestamp: int) -> int:
        raise ValueError("SystemClock follows wall time and cannot be advanced")

    def __repr__(self):
        return "SystemClock()"
