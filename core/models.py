"""Pydantic models shared across the application."""

from __future__ import annotations

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Track(BaseModel):
    """Minimal representation of a Spotify track."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    artists: List[str] = Field(default_factory=list)
    album: str = ""
    album_art: Optional[str] = None
    duration_ms: int = 0
    url: str = ""  # e.g. "https://open.spotify.com/track/6rqhFgbbKwnb9MLmUQDhG6"

    @classmethod
    def from_api(cls, item: dict) -> "Track":
        """Build a Track from a Web API ``item`` / ``track`` object."""
        album = item.get("album") or {}
        images = album.get("images") or []
        return cls(
            id=item.get("id") or item.get("uri") or "",
            name=item.get("name", ""),
            artists=[a.get("name", "") for a in item.get("artists") or []],
            album=album.get("name", ""),
            album_art=images[0].get("url") if images else None,
            duration_ms=item.get("duration_ms") or 0,
            url=(item.get("external_urls") or {}).get("spotify", ""),
        )


class RecentItem(BaseModel):
    """One entry of the recently-played list."""

    model_config = ConfigDict(frozen=True)

    track: Track
    played_at: str  # ISO-8601, as sent by Spotify


class PlaybackSnapshot(BaseModel):
    """Latest reconciled playback state, shared by every consumer."""

    model_config = ConfigDict(frozen=True)

    track: Optional[Track] = None
    is_playing: bool = False
    progress_ms: int = 0
    last_server_sync_at: float = 0.0  # epoch ms of the last server-sourced progress
    last_played_at: Optional[str] = None
    is_authorized: bool = True

    @property
    def progress_percent(self) -> float:
        """Playback position as a 0-100 percentage of the track length."""
        if self.track is None or self.track.duration_ms <= 0:
            return 0.0
        pct = self.progress_ms / self.track.duration_ms * 100
        return max(0.0, min(100.0, pct))


# ---------------------------------------------------------------------------
# Fetch outcomes (tagged union)
# ---------------------------------------------------------------------------

class Unauthorized(BaseModel):
    kind: Literal["unauthorized"] = "unauthorized"


class RateLimited(BaseModel):
    kind: Literal["rate_limited"] = "rate_limited"
    retry_after_ms: int


class NoContent(BaseModel):
    kind: Literal["no_content"] = "no_content"


class PlayingTrack(BaseModel):
    kind: Literal["playing_track"] = "playing_track"
    track: Track
    progress_ms: int = 0
    is_playing: bool = True


class AdBreak(BaseModel):
    kind: Literal["ad_break"] = "ad_break"


class NetworkError(BaseModel):
    kind: Literal["network_error"] = "network_error"
    reason: str = ""


class Items(BaseModel):
    kind: Literal["items"] = "items"
    items: List[RecentItem] = Field(default_factory=list)


class TopTracks(BaseModel):
    kind: Literal["top_tracks"] = "top_tracks"
    tracks: List[Track] = Field(default_factory=list)


Outcome = Union[
    Unauthorized,
    RateLimited,
    NoContent,
    PlayingTrack,
    AdBreak,
    NetworkError,
    Items,
    TopTracks,
]
