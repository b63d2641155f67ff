"""Application settings loaded from .env via pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_SECRET_KEY = "change-me"


class Settings(BaseSettings):
    """Central configuration — values come from environment / .env file."""

    # Spotify
    spotify_api_base: str = "https://api.spotify.com"
    spotify_access_token: str = ""  # fallback when no token is stored in the DB

    # App
    secret_key: str = DEFAULT_SECRET_KEY  # must be overridden before /now-playing/token works

    # Database
    db_path: str = "./data/now_playing.db"

    # Poller
    playing_interval_s: float = 10.0
    idle_interval_s: float = 30.0
    backoff_floor_ms: int = 1000
    backoff_cap_ms: int = 60000
    http_timeout_s: float = 10.0
    recent_limit: int = 1

    # Progress estimator
    progress_tick_ms: int = 1000
    progress_stale_after_ms: int = 2000

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def db_abs_path(self) -> Path:
        """Return the database path as an absolute Path, creating parents if needed."""
        p = Path(self.db_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        return p.resolve()


@lru_cache
def get_settings() -> Settings:
    """Cached singleton so .env is read only once."""
    return Settings()
