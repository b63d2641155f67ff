"""Local playback-position interpolation between server updates."""

from __future__ import annotations

from core.models import PlaybackSnapshot

TICK_MS = 1000
STALE_AFTER_MS = 2000


def estimate(
    snapshot: PlaybackSnapshot,
    now_ms: float,
    *,
    tick_ms: int = TICK_MS,
    stale_after_ms: int = STALE_AFTER_MS,
) -> PlaybackSnapshot:
    """Advance ``progress_ms`` by one tick unless a server value just landed.

    Wraps to 0 once the track length is reached; the next poll confirms the
    track change. ``last_server_sync_at`` is never touched here.
    """
    track = snapshot.track
    if not snapshot.is_playing or track is None:
        return snapshot

    if now_ms - snapshot.last_server_sync_at <= stale_after_ms:
        return snapshot

    progress = snapshot.progress_ms + tick_ms
    if track.duration_ms > 0 and progress >= track.duration_ms:
        progress = 0
    return snapshot.model_copy(update={"progress_ms": progress})
