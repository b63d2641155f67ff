"""Wall-clock access, substitutable in tests."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float:
        """Current time in epoch milliseconds."""
        ...


class SystemClock:
    def now(self) -> float:
        return time.time() * 1000


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start_ms: float = 0.0):
        self._now = start_ms

    def now(self) -> float:
        return self._now

    def advance(self, ms: float) -> None:
        self._now += ms

    def set(self, ms: float) -> None:
        self._now = ms
