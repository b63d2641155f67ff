"""Now-playing routes consumed by the "Currently Listening" banner."""

from __future__ import annotations

import secrets
from typing import Any, Literal

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel

from app.config import DEFAULT_SECRET_KEY, get_settings
from app.engine import NowPlayingEngine
from app.tokens import save_access_token
from core.models import Items, Outcome, RateLimited, TopTracks, Unauthorized

router = APIRouter(prefix="/now-playing", tags=["now-playing"])


def get_engine(request: Request) -> NowPlayingEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Now-playing engine not running")
    return engine


def _snapshot_view(engine: NowPlayingEngine) -> dict[str, Any]:
    """Serialize the shared snapshot for the banner."""
    snap = engine.store.get()
    return {
        "track": snap.track.model_dump() if snap.track else None,
        "is_playing": snap.is_playing,
        "progress_ms": snap.progress_ms,
        "progress_percent": snap.progress_percent,
        "last_played_at": snap.last_played_at,
        "is_authorized": snap.is_authorized,
        "loading": not engine.store.synced,
        "poller_state": engine.poller.state.value,
    }


# ---------------------------------------------------------------------------
# GET /now-playing
# ---------------------------------------------------------------------------

@router.get("")
async def now_playing(engine: NowPlayingEngine = Depends(get_engine)):
    """Latest reconciled playback snapshot.

    ``progress_percent`` is a percentage in ``[0, 100]``, not a ``[0, 1]`` ratio.
    """
    return _snapshot_view(engine)


# ---------------------------------------------------------------------------
# POST /now-playing/refresh
# ---------------------------------------------------------------------------

@router.post("/refresh")
async def refresh(engine: NowPlayingEngine = Depends(get_engine)):
    """Poll immediately and return the resulting snapshot."""
    await engine.refresh()
    return _snapshot_view(engine)


def _raise_for_outcome(outcome: Outcome) -> None:
    """Map a failed upstream read to the matching HTTP error."""
    if isinstance(outcome, Unauthorized):
        raise HTTPException(status_code=401, detail="Spotify not connected")
    if isinstance(outcome, RateLimited):
        raise HTTPException(
            status_code=429,
            detail="Rate limited by Spotify",
            headers={"Retry-After": str(max(outcome.retry_after_ms // 1000, 1))},
        )
    raise HTTPException(status_code=502, detail="Spotify request failed")


# ---------------------------------------------------------------------------
# GET /now-playing/history
# ---------------------------------------------------------------------------

@router.get("/history")
async def history(
    limit: int = Query(10, ge=1, le=50),
    engine: NowPlayingEngine = Depends(get_engine),
):
    """Recently played tracks, most recent first."""
    outcome = await engine.fetcher.fetch_recently_played(limit)
    if not isinstance(outcome, Items):
        _raise_for_outcome(outcome)
    return {
        "items": [
            {"track": item.track.model_dump(), "played_at": item.played_at}
            for item in outcome.items
        ]
    }


# ---------------------------------------------------------------------------
# GET /now-playing/top-tracks
# ---------------------------------------------------------------------------

@router.get("/top-tracks")
async def top_tracks(
    limit: int = Query(10, ge=1, le=50),
    time_range: Literal["short_term", "medium_term", "long_term"] = Query("short_term"),
    engine: NowPlayingEngine = Depends(get_engine),
):
    """Most played tracks over *time_range*, for the music page."""
    outcome = await engine.fetcher.fetch_top_tracks(limit, time_range)
    if not isinstance(outcome, TopTracks):
        _raise_for_outcome(outcome)
    return {"items": [track.model_dump() for track in outcome.tracks]}


# ---------------------------------------------------------------------------
# PUT /now-playing/token
# ---------------------------------------------------------------------------

class TokenBody(BaseModel):
    access_token: str


@router.put("/token", status_code=204)
async def put_token(
    body: TokenBody,
    x_admin_key: str | None = Header(default=None),
):
    """Store the access token used for upstream calls.

    Disabled until ``SECRET_KEY`` is set to something other than the default.
    """
    secret_key = get_settings().secret_key
    if secret_key == DEFAULT_SECRET_KEY:
        raise HTTPException(status_code=503, detail="SECRET_KEY not configured")
    if x_admin_key is None or not secrets.compare_digest(
        x_admin_key.encode("utf-8"), secret_key.encode("utf-8")
    ):
        raise HTTPException(status_code=403, detail="Invalid admin key")
    if not body.access_token:
        raise HTTPException(status_code=400, detail="access_token must not be empty")
    await save_access_token(body.access_token)
