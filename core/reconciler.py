"""State reconciler — pure decision logic, no I/O.

Turns a fetch outcome plus the previous snapshot into the next snapshot and a
backoff signal.  Decision order:

1. Unauthorized  → keep showing a cached track; only flag unauthorized when
   there is nothing to fall back on.
2. RateLimited   → snapshot unchanged, back off with the server hint.
3. PlayingTrack  → authoritative server progress; same track id keeps the
   existing Track object.
4. AdBreak       → not idle; fall through to recently played.
5. NoContent     → fall through to recently played (``reconcile_recent``).
6. NetworkError  → snapshot unchanged, exponential backoff.
7. Everything else counts as a success for the backoff controller.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from core.models import (
    AdBreak,
    Items,
    NetworkError,
    NoContent,
    Outcome,
    PlaybackSnapshot,
    PlayingTrack,
    RateLimited,
    Track,
    Unauthorized,
)


class BackoffAction(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class Decision:
    snapshot: PlaybackSnapshot
    backoff: BackoffAction
    retry_after_ms: Optional[int] = None
    needs_recent: bool = False


def _stable_track(previous: PlaybackSnapshot, incoming: Track) -> Track:
    """Reuse the cached Track object when the id has not changed."""
    if previous.track is not None and previous.track.id == incoming.id:
        return previous.track
    return incoming


def reconcile(outcome: Outcome, previous: PlaybackSnapshot, now_ms: float) -> Decision:
    """Apply a current-playback outcome to *previous*."""
    if isinstance(outcome, Unauthorized):
        if previous.track is not None:
            return Decision(previous, BackoffAction.SUCCESS)
        return Decision(
            previous.model_copy(update={"is_authorized": False}),
            BackoffAction.SUCCESS,
        )

    if isinstance(outcome, RateLimited):
        return Decision(previous, BackoffAction.RATE_LIMITED, retry_after_ms=outcome.retry_after_ms)

    if isinstance(outcome, PlayingTrack):
        snapshot = previous.model_copy(
            update={
                "track": _stable_track(previous, outcome.track),
                "is_playing": outcome.is_playing,
                "progress_ms": outcome.progress_ms,
                "last_server_sync_at": now_ms,
                "last_played_at": None,
                "is_authorized": True,
            }
        )
        return Decision(snapshot, BackoffAction.SUCCESS)

    if isinstance(outcome, (AdBreak, NoContent)):
        authorized = previous if previous.is_authorized else previous.model_copy(update={"is_authorized": True})
        return Decision(authorized, BackoffAction.SUCCESS, needs_recent=True)

    if isinstance(outcome, NetworkError):
        return Decision(previous, BackoffAction.FAILURE)

    if isinstance(outcome, Items):
        return reconcile_recent(outcome, previous, now_ms)

    raise TypeError(f"Unknown outcome: {outcome!r}")


def reconcile_recent(outcome: Outcome, previous: PlaybackSnapshot, now_ms: float) -> Decision:
    """Apply a recently-played outcome (fallback when nothing is playing).

    An empty list leaves the previous snapshot alone so a track that is only
    between polls is not cleared.
    """
    if isinstance(outcome, Items):
        if not outcome.items:
            return Decision(previous, BackoffAction.SUCCESS)
        latest = outcome.items[0]
        snapshot = previous.model_copy(
            update={
                "track": _stable_track(previous, latest.track),
                "is_playing": False,
                "progress_ms": 0,
                "last_server_sync_at": now_ms,
                "last_played_at": latest.played_at,
            }
        )
        return Decision(snapshot, BackoffAction.SUCCESS)

    if isinstance(outcome, RateLimited):
        return Decision(previous, BackoffAction.RATE_LIMITED, retry_after_ms=outcome.retry_after_ms)

    if isinstance(outcome, NetworkError):
        return Decision(previous, BackoffAction.FAILURE)

    # Unauthorized here means the history scope is missing; the playback call
    # already succeeded, so the display is left as is.
    return Decision(previous, BackoffAction.SUCCESS)
