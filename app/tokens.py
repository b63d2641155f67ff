"""Stored Spotify access token (DB-backed, env fallback).

Obtaining and refreshing tokens happens elsewhere; this module only hands
the current one to the fetcher.
"""

from __future__ import annotations

import logging

from app.config import get_settings
from app.db import get_db

logger = logging.getLogger(__name__)

_TOKEN_NAME = "spotify"


class TokenMissingError(Exception):
    """Raised when no access token is available."""


async def get_access_token() -> str:
    """Return the stored access token, else ``SPOTIFY_ACCESS_TOKEN``."""
    db = get_db()
    cursor = await db.execute(
        "SELECT access_token FROM tokens WHERE name = ?",
        (_TOKEN_NAME,),
    )
    row = await cursor.fetchone()
    if row and row[0]:
        return row[0]

    fallback = get_settings().spotify_access_token
    if fallback:
        return fallback
    raise TokenMissingError("No Spotify access token stored")


async def save_access_token(access_token: str) -> None:
    """Upsert the access token."""
    db = get_db()
    await db.execute(
        """
        INSERT INTO tokens (name, access_token)
        VALUES (?, ?)
        ON CONFLICT(name)
        DO UPDATE SET access_token = excluded.access_token,
                      updated_at   = datetime('now')
        """,
        (_TOKEN_NAME, access_token),
    )
    await db.commit()
    logger.info("Stored new Spotify access token")
