"""Now-playing engine — wires fetcher, poller, estimator and snapshot store.

The engine is created once per application and handed to routes through
``app.state``; ``start()``/``stop()`` correspond to the banner being mounted
and unmounted.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from app.config import Settings, get_settings
from app.fetcher import SpotifyFetcher
from app.poller import CancelToken, NowPlayingPoller
from app.tokens import get_access_token
from core.backoff import BackoffController
from core.clock import Clock, SystemClock
from core.progress import estimate
from core.store import SnapshotStore

logger = logging.getLogger(__name__)


class ProgressTicker:
    """Interpolates playback position at a fixed cadence."""

    def __init__(
        self,
        store: SnapshotStore,
        clock: Clock,
        *,
        tick_ms: int = 1000,
        stale_after_ms: int = 2000,
    ):
        self._store = store
        self._clock = clock
        self._tick_ms = tick_ms
        self._stale_after_ms = stale_after_ms

    def tick(self) -> None:
        self._store.update(
            lambda snap: estimate(
                snap,
                self._clock.now(),
                tick_ms=self._tick_ms,
                stale_after_ms=self._stale_after_ms,
            ),
            synced=False,
        )

    async def run(self, token: CancelToken) -> None:
        while await token.sleep(self._tick_ms / 1000):
            self.tick()


class NowPlayingEngine:
    """Owns the background tasks and the shared snapshot."""

    def __init__(
        self,
        fetcher: SpotifyFetcher,
        *,
        store: SnapshotStore | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        settings = settings or get_settings()
        self.store = store or SnapshotStore()
        self.clock = clock or SystemClock()
        self.fetcher = fetcher
        self.poller = NowPlayingPoller(
            fetcher,
            self.store,
            self.clock,
            backoff=BackoffController(settings.backoff_floor_ms, settings.backoff_cap_ms),
            playing_interval_s=settings.playing_interval_s,
            idle_interval_s=settings.idle_interval_s,
            recent_limit=settings.recent_limit,
        )
        self.ticker = ProgressTicker(
            self.store,
            self.clock,
            tick_ms=settings.progress_tick_ms,
            stale_after_ms=settings.progress_stale_after_ms,
        )
        self._client = client
        self._token: CancelToken | None = None
        self._ticker_task: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "NowPlayingEngine":
        """Build an engine talking to the real Spotify API."""
        settings = settings or get_settings()
        client = httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_s))
        fetcher = SpotifyFetcher(client, get_access_token, api_base=settings.spotify_api_base)
        return cls(fetcher, settings=settings, client=client)

    @property
    def token(self) -> CancelToken | None:
        return self._token

    @property
    def running(self) -> bool:
        return self._token is not None and not self._token.cancelled

    def start(self) -> None:
        """Mount: poll right away and start the 1 Hz estimator."""
        if self.running:
            return
        self._token = CancelToken()
        self.poller.start(self._token)
        self._ticker_task = asyncio.create_task(self.ticker.run(self._token))

    async def stop(self) -> None:
        """Unmount: cancel timers; the snapshot survives for the next mount."""
        if self._token is not None:
            self._token.cancel()
        await self.poller.stop()
        if self._ticker_task and not self._ticker_task.done():
            self._ticker_task.cancel()
            try:
                await self._ticker_task
            except asyncio.CancelledError:
                pass
        self._ticker_task = None

    async def refresh(self) -> None:
        """Run one poll now (waits behind a poll already in flight)."""
        token = self._token if self.running else CancelToken()
        await self.poller.poll_once(token)

    async def aclose(self) -> None:
        await self.stop()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
