"""Tests for the state reconciler (core/reconciler.py)."""

from __future__ import annotations

import pytest

from core.models import (
    AdBreak,
    Items,
    NetworkError,
    NoContent,
    PlaybackSnapshot,
    PlayingTrack,
    RateLimited,
    RecentItem,
    Track,
    Unauthorized,
)
from core.reconciler import BackoffAction, reconcile, reconcile_recent

TRACK_A = Track(id="A", name="Song A", artists=["Artist"], duration_ms=200000)
TRACK_B = Track(id="B", name="Song B", artists=["Other"], duration_ms=180000)
EMPTY = PlaybackSnapshot()


def _showing(track: Track = TRACK_A, **kw) -> PlaybackSnapshot:
    return PlaybackSnapshot(track=track, **kw)


# ---------------------------------------------------------------------------
# Unauthorized
# ---------------------------------------------------------------------------


def test_unauthorized_with_cached_track_is_suppressed():
    prev = _showing(is_playing=True, progress_ms=1000)
    d = reconcile(Unauthorized(), prev, 5000)
    assert d.snapshot is prev
    assert d.snapshot.is_authorized is True
    assert d.snapshot.track is TRACK_A


def test_unauthorized_without_track_flags_snapshot():
    d = reconcile(Unauthorized(), EMPTY, 5000)
    assert d.snapshot.is_authorized is False
    assert d.snapshot.track is None
    assert d.backoff is BackoffAction.SUCCESS


# ---------------------------------------------------------------------------
# RateLimited / NetworkError
# ---------------------------------------------------------------------------


def test_rate_limited_keeps_snapshot_and_carries_hint():
    prev = _showing(is_playing=True, progress_ms=6000)
    d = reconcile(RateLimited(retry_after_ms=2000), prev, 5000)
    assert d.snapshot is prev
    assert d.backoff is BackoffAction.RATE_LIMITED
    assert d.retry_after_ms == 2000


def test_network_error_keeps_snapshot():
    prev = _showing(is_playing=True)
    d = reconcile(NetworkError(reason="ConnectError"), prev, 5000)
    assert d.snapshot is prev
    assert d.backoff is BackoffAction.FAILURE
    assert d.retry_after_ms is None


# ---------------------------------------------------------------------------
# PlayingTrack
# ---------------------------------------------------------------------------


def test_playing_track_from_empty():
    d = reconcile(PlayingTrack(track=TRACK_A, progress_ms=5000), EMPTY, 1234)
    snap = d.snapshot
    assert snap.track == TRACK_A
    assert snap.is_playing is True
    assert snap.progress_ms == 5000
    assert snap.last_server_sync_at == 1234
    assert d.backoff is BackoffAction.SUCCESS
    assert not d.needs_recent


def test_same_track_keeps_object_identity_and_takes_server_progress():
    prev = _showing(is_playing=True, progress_ms=9000, last_server_sync_at=0)
    incoming = Track(id="A", name="Song A (copy)", duration_ms=200000)
    d = reconcile(PlayingTrack(track=incoming, progress_ms=8500), prev, 10_000)
    assert d.snapshot.track is TRACK_A
    assert d.snapshot.progress_ms == 8500
    assert d.snapshot.last_server_sync_at == 10_000


def test_new_track_replaces_and_resets_progress():
    prev = _showing(is_playing=True, progress_ms=150_000)
    d = reconcile(PlayingTrack(track=TRACK_B, progress_ms=300), prev, 10_000)
    assert d.snapshot.track is TRACK_B
    assert d.snapshot.progress_ms == 300


def test_playing_track_clears_last_played_and_restores_auth():
    prev = PlaybackSnapshot(
        track=TRACK_B, last_played_at="2024-01-01T00:00:00Z", is_authorized=False
    )
    d = reconcile(PlayingTrack(track=TRACK_A, progress_ms=0), prev, 1)
    assert d.snapshot.last_played_at is None
    assert d.snapshot.is_authorized is True


def test_paused_track_is_shown_not_playing():
    d = reconcile(PlayingTrack(track=TRACK_A, progress_ms=42_000, is_playing=False), EMPTY, 1)
    assert d.snapshot.track == TRACK_A
    assert d.snapshot.is_playing is False
    assert d.snapshot.progress_ms == 42_000


# ---------------------------------------------------------------------------
# AdBreak / NoContent → recently played
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("outcome", [AdBreak(), NoContent()])
def test_idle_and_ad_break_need_recently_played(outcome):
    prev = _showing(is_playing=True)
    d = reconcile(outcome, prev, 1)
    assert d.needs_recent is True
    assert d.snapshot.track is TRACK_A
    assert d.backoff is BackoffAction.SUCCESS


def test_ad_break_then_recent_items_shows_first_item():
    recent = Items(
        items=[
            RecentItem(track=TRACK_B, played_at="2024-05-01T10:00:00Z"),
            RecentItem(track=TRACK_A, played_at="2024-05-01T09:55:00Z"),
        ]
    )
    first = reconcile(AdBreak(), _showing(is_playing=True, progress_ms=9000), 1)
    d = reconcile_recent(recent, first.snapshot, 2)
    assert d.snapshot.track is TRACK_B
    assert d.snapshot.is_playing is False
    assert d.snapshot.progress_ms == 0
    assert d.snapshot.last_played_at == "2024-05-01T10:00:00Z"


def test_empty_recent_items_is_noop():
    prev = _showing(is_playing=False, last_played_at="2024-05-01T10:00:00Z")
    first = reconcile(NoContent(), prev, 1)
    d = reconcile_recent(Items(items=[]), first.snapshot, 2)
    assert d.snapshot is prev
    assert d.snapshot.track is TRACK_A


def test_recent_rate_limited_and_network_error():
    prev = _showing()
    d = reconcile_recent(RateLimited(retry_after_ms=5000), prev, 1)
    assert d.snapshot is prev
    assert d.backoff is BackoffAction.RATE_LIMITED
    d = reconcile_recent(NetworkError(), prev, 1)
    assert d.backoff is BackoffAction.FAILURE


def test_recent_unauthorized_leaves_display():
    prev = _showing()
    d = reconcile_recent(Unauthorized(), prev, 1)
    assert d.snapshot is prev
    assert d.backoff is BackoffAction.SUCCESS


def test_no_content_restores_authorization():
    prev = PlaybackSnapshot(is_authorized=False)
    d = reconcile(NoContent(), prev, 1)
    assert d.snapshot.is_authorized is True
