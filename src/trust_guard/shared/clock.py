"""Time sources used by the trust engine and the failed-login tracker.

Everything that expires (UA verdicts, failure timestamps) or depends on the
wall clock (local hour of the caller) reads time through a :class:`Clock` so
tests can drive it deterministically with :class:`ManualClock`.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone, tzinfo
from typing import Optional, Protocol


class Clock(Protocol):
    """Source of the current time."""

    def time(self) -> float:
        """Return the current time as epoch seconds."""

    def now(self, tz: Optional[tzinfo] = None) -> datetime:
        """Return the current time as an aware datetime in ``tz`` (UTC by default)."""


class SystemClock:
    """Real wall-clock time."""

    def time(self) -> float:
        return time.time()

    def now(self, tz: Optional[tzinfo] = None) -> datetime:
        return datetime.now(tz or timezone.utc)


class ManualClock:
    """Clock that only moves when told to.

    Safe to share between threads; ``advance`` and ``set`` take effect for
    every reader immediately.
    """

    def __init__(self, start: float | datetime = 0.0) -> None:
        self._lock = threading.Lock()
        self._now = self._to_epoch(start)

    @staticmethod
    def _to_epoch(value: float | datetime) -> float:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.timestamp()
        return float(value)

    def time(self) -> float:
        with self._lock:
            return self._now

    def now(self, tz: Optional[tzinfo] = None) -> datetime:
        return datetime.fromtimestamp(self.time(), tz or timezone.utc)

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._now += seconds

    def set(self, value: float | datetime) -> None:
        with self._lock:
            self._now = self._to_epoch(value)
