"""Retry delay bookkeeping for the now-playing poller.

Doubles on failure up to a cap, snaps back to the floor on success, and
honours a server-provided ``Retry-After`` hint as-is (raised to the floor,
never cut to the cap) when one is given.
"""

from __future__ import annotations

from typing import Optional

BACKOFF_FLOOR_MS = 1000
BACKOFF_CAP_MS = 60000


class BackoffController:
    """Current retry delay for a single poll target."""

    def __init__(self, floor_ms: int = BACKOFF_FLOOR_MS, cap_ms: int = BACKOFF_CAP_MS):
        if floor_ms <= 0 or cap_ms < floor_ms:
            raise ValueError("need 0 < floor_ms <= cap_ms")
        self.floor_ms = floor_ms
        self.cap_ms = cap_ms
        self.delay_ms = floor_ms

    @property
    def engaged(self) -> bool:
        """True while a failure penalty is outstanding."""
        return self.delay_ms > self.floor_ms

    def on_failure(self, server_hint_ms: Optional[int] = None) -> int:
        """Record a failed attempt and return the delay before the next one."""
        if server_hint_ms is not None:
            self.delay_ms = max(self.floor_ms, int(server_hint_ms))
        else:
            self.delay_ms = min(self.delay_ms * 2, self.cap_ms)
        return self.delay_ms

    def on_success(self) -> None:
        self.delay_ms = self.floor_ms
