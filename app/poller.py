"""Now-playing poller — timer-driven fetch → reconcile → schedule loop.

One fetch is in flight at a time; a poll requested while another is running
waits for it (FIFO) instead of running in parallel, so outcomes are always
reconciled in the order their requests were issued.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable

from app.fetcher import SpotifyFetcher
from core.backoff import BackoffController
from core.clock import Clock
from core.reconciler import BackoffAction, Decision, reconcile, reconcile_recent
from core.store import SnapshotStore

logger = logging.getLogger(__name__)

PLAYING_INTERVAL_S = 10.0
IDLE_INTERVAL_S = 30.0


# ---------------------------------------------------------------------------
# Poller states
# ---------------------------------------------------------------------------

class PollerState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SUCCESS = "success"
    FAILURE = "failure"
    SCHEDULED = "scheduled"
    STOPPED = "stopped"


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

class CancelToken:
    """Explicit cancellation flag shared by every task of one mount."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to *seconds*; return False if cancelled meanwhile."""
        if seconds <= 0:
            await asyncio.sleep(0)
            return not self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False


PollFn = Callable[[CancelToken], Awaitable[float]]


async def schedule_loop(poll: PollFn, token: CancelToken, *, initial_delay: float = 0.0) -> None:
    """Run *poll* repeatedly, waiting whatever delay it returns in between."""
    delay = initial_delay
    while await token.sleep(delay):
        delay = await poll(token)


# ---------------------------------------------------------------------------
# Poller
# ---------------------------------------------------------------------------

class NowPlayingPoller:
    """Drives the fetcher and writes reconciled state into the store."""

    def __init__(
        self,
        fetcher: SpotifyFetcher,
        store: SnapshotStore,
        clock: Clock,
        *,
        backoff: BackoffController | None = None,
        playing_interval_s: float = PLAYING_INTERVAL_S,
        idle_interval_s: float = IDLE_INTERVAL_S,
        recent_limit: int = 1,
    ):
        self._fetcher = fetcher
        self._store = store
        self._clock = clock
        self.backoff = backoff or BackoffController()
        self._playing_interval_s = playing_interval_s
        self._idle_interval_s = idle_interval_s
        self._recent_limit = recent_limit
        self._lock = asyncio.Lock()
        self._token: CancelToken | None = None
        self._task: asyncio.Task | None = None
        self.state = PollerState.IDLE
        self.last_result: PollerState | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def base_interval(self) -> float:
        """Seconds until the next regular poll, based on the current snapshot."""
        if self._store.get().is_playing:
            return self._playing_interval_s
        return self._idle_interval_s

    def start(self, token: CancelToken) -> None:
        """Begin polling immediately; *token* ends it."""
        if self.running:
            return
        self._token = token
        self._task = asyncio.create_task(schedule_loop(self.poll_once, token))
        logger.info("Now-playing poller started")

    async def stop(self) -> None:
        """Cancel pending timers and drop any in-flight result."""
        if self._token is not None:
            self._token.cancel()
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self.state = PollerState.STOPPED
        logger.info("Now-playing poller stopped")

    async def poll_once(self, token: CancelToken) -> float:
        """One fetch/reconcile cycle.  Returns the delay (s) before the next one."""
        async with self._lock:
            if token.cancelled:
                return 0.0
            self.state = PollerState.FETCHING
            try:
                decision = await self._fetch_and_reconcile(token)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Now-playing poll failed")
                decision = None

            if token.cancelled:
                return 0.0

            if decision is None:
                return self._schedule_after_failure(self.backoff.on_failure())

            self._store.set(decision.snapshot)

            if decision.backoff is BackoffAction.RATE_LIMITED:
                return self._schedule_after_failure(self.backoff.on_failure(decision.retry_after_ms))
            if decision.backoff is BackoffAction.FAILURE:
                return self._schedule_after_failure(self.backoff.on_failure())

            self.backoff.on_success()
            self.last_result = PollerState.SUCCESS
            self.state = PollerState.SCHEDULED
            return self.base_interval()

    async def _fetch_and_reconcile(self, token: CancelToken) -> Decision | None:
        outcome = await self._fetcher.fetch_current_playback()
        if token.cancelled:
            return None
        decision = reconcile(outcome, self._store.get(), self._clock.now())
        logger.debug("Current playback → %s (%s)", outcome.kind, decision.backoff.value)

        if decision.needs_recent:
            recent = await self._fetcher.fetch_recently_played(self._recent_limit)
            if token.cancelled:
                return None
            # The estimator may have ticked meanwhile; build on the latest
            # snapshot, keeping the authorization the playback call restored.
            base = self._store.get()
            if base.is_authorized != decision.snapshot.is_authorized:
                base = base.model_copy(update={"is_authorized": decision.snapshot.is_authorized})
            decision = reconcile_recent(recent, base, self._clock.now())
            logger.debug("Recently played → %s (%s)", recent.kind, decision.backoff.value)
        return decision

    def _schedule_after_failure(self, delay_ms: int) -> float:
        logger.info("Backing off for %dms", delay_ms)
        self.last_result = PollerState.FAILURE
        self.state = PollerState.SCHEDULED
        return delay_ms / 1000
