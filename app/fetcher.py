"""Spotify now-playing reads, classified into fetch outcomes.

Three calls:
  - GET /v1/me/player/currently-playing
  - GET /v1/me/player/recently-played?limit=N
  - GET /v1/me/top/tracks?limit=N&time_range=R

Every HTTP result (and every transport failure) is decoded here into one of
the ``core.models`` outcome variants, so nothing downstream looks at status
codes.  No retries happen at this layer; the poller owns scheduling.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

import httpx

from app.tokens import TokenMissingError
from core.models import (
    AdBreak,
    Items,
    NetworkError,
    NoContent,
    Outcome,
    PlayingTrack,
    RateLimited,
    RecentItem,
    TopTracks,
    Track,
    Unauthorized,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

_SPOTIFY_API = "https://api.spotify.com"
_CURRENT_PATH = "/v1/me/player/currently-playing"
_RECENT_PATH = "/v1/me/player/recently-played"
_TOP_TRACKS_PATH = "/v1/me/top/tracks"
_DEFAULT_RETRY_AFTER_S = 1

TokenProvider = Callable[[], Awaitable[str]]


def _retry_after_ms(resp: httpx.Response) -> int:
    """``Retry-After`` (seconds) as milliseconds; 1s when absent or garbled."""
    raw = resp.headers.get("Retry-After")
    try:
        seconds = int(raw) if raw is not None else _DEFAULT_RETRY_AFTER_S
    except ValueError:
        seconds = _DEFAULT_RETRY_AFTER_S
    return max(seconds, 0) * 1000


def _classify_error(resp: httpx.Response, path: str) -> Outcome:
    """Shared handling for non-success statuses."""
    if resp.status_code in (401, 404):
        logger.info("%d on %s — treating as unauthorized", resp.status_code, path)
        return Unauthorized()
    if resp.status_code == 429:
        wait_ms = _retry_after_ms(resp)
        logger.warning("429 on %s — server asks for %dms", path, wait_ms)
        return RateLimited(retry_after_ms=wait_ms)
    logger.warning("Unexpected status %d on %s", resp.status_code, path)
    return NetworkError(reason=f"HTTP {resp.status_code}")


class SpotifyFetcher:
    """Performs the upstream reads for the now-playing banner and music page."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        token_provider: TokenProvider,
        *,
        api_base: str = _SPOTIFY_API,
    ):
        self._client = client
        self._token_provider = token_provider
        self._api_base = api_base.rstrip("/")

    async def _get(self, path: str, **kwargs) -> httpx.Response | Outcome:
        """GET *path*, or an outcome when the request never got a status."""
        try:
            token = await self._token_provider()
        except TokenMissingError:
            logger.info("No access token — %s skipped", path)
            return Unauthorized()

        try:
            return await self._client.get(
                f"{self._api_base}{path}",
                headers={"Authorization": f"Bearer {token}"},
                **kwargs,
            )
        except httpx.HTTPError as exc:
            logger.warning("Request to %s failed: %s", path, exc)
            return NetworkError(reason=type(exc).__name__)

    async def fetch_current_playback(self) -> Outcome:
        resp = await self._get(_CURRENT_PATH)
        if not isinstance(resp, httpx.Response):
            return resp

        if resp.status_code == 204:
            return NoContent()
        if resp.status_code != 200:
            return _classify_error(resp, _CURRENT_PATH)

        try:
            data = resp.json()
        except ValueError:
            logger.warning("Undecodable body from %s", _CURRENT_PATH)
            return NetworkError(reason="invalid JSON")

        if not data:
            return NoContent()

        is_playing = bool(data.get("is_playing", False))
        item = data.get("item")
        if not item:
            # Playing without a track payload means an ad is on.
            return AdBreak() if is_playing else NoContent()

        return PlayingTrack(
            track=Track.from_api(item),
            progress_ms=data.get("progress_ms") or 0,
            is_playing=is_playing,
        )

    async def fetch_recently_played(self, limit: int = 1) -> Outcome:
        resp = await self._get(_RECENT_PATH, params={"limit": limit})
        if not isinstance(resp, httpx.Response):
            return resp

        if resp.status_code != 200:
            return _classify_error(resp, _RECENT_PATH)

        try:
            data = resp.json()
        except ValueError:
            logger.warning("Undecodable body from %s", _RECENT_PATH)
            return NetworkError(reason="invalid JSON")

        items: list[RecentItem] = []
        for entry in data.get("items", []):
            track = entry.get("track")
            if not track:
                continue
            items.append(
                RecentItem(track=Track.from_api(track), played_at=entry.get("played_at", ""))
            )
        return Items(items=items)

    async def fetch_top_tracks(self, limit: int = 10, time_range: str = "short_term") -> Outcome:
        resp = await self._get(_TOP_TRACKS_PATH, params={"limit": limit, "time_range": time_range})
        if not isinstance(resp, httpx.Response):
            return resp

        if resp.status_code != 200:
            return _classify_error(resp, _TOP_TRACKS_PATH)

        try:
            data = resp.json()
        except ValueError:
            logger.warning("Undecodable body from %s", _TOP_TRACKS_PATH)
            return NetworkError(reason="invalid JSON")

        return TopTracks(tracks=[Track.from_api(item) for item in data.get("items", []) if item])
