"""
Time sources for the vault ledger.

All time gating in the ledger goes through a ``time_provider`` callable
returning integer UNIX seconds, so tests and demos can drive the ledger
deterministically without sleeping.
"""

from __future__ import annotations

import threading
import time
from typing import Callable

TimeProvider = Callable[[], int]


class SystemClock:
    """Wall-clock time in whole seconds."""

    def __call__(self) -> int:
        return int(time.time())

    def __repr__(self) -> str:
        return "SystemClock()"


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000):
        if not isinstance(start, int) or start < 0:
            raise ValueError("Clock start must be a non-negative integer timestamp.")
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            return self._now

    def advance(self, seconds: int) -> int:
        if not isinstance(seconds, int) or seconds < 0:
            raise ValueError("Clock can only advance by a non-negative integer.")
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, timestamp: int) -> None:
        with self._lock:
            if timestamp < self._now:
                raise ValueError("Clock cannot move backwards.")
            self._now = timestamp

    def __repr__(self) -> str:
        return f"ManualClock(now={self._now})"
