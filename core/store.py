"""Process-wide snapshot cache with a single write path."""

from __future__ import annotations

import logging
import threading
from typing import Callable, List

from core.models import PlaybackSnapshot

logger = logging.getLogger(__name__)

Listener = Callable[[PlaybackSnapshot], None]


class SnapshotStore:
    """Holds the last-known-good ``PlaybackSnapshot``.

    Writers go through ``update``/``set``; readers get an immutable snapshot.
    ``synced`` flips once the first reconciled state has been stored, so a
    view mounted later can render immediately instead of showing a loader.
    """

    def __init__(self, initial: PlaybackSnapshot | None = None):
        self._snapshot = initial or PlaybackSnapshot()
        self._synced = initial is not None
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    @property
    def synced(self) -> bool:
        return self._synced

    def get(self) -> PlaybackSnapshot:
        return self._snapshot

    def set(self, snapshot: PlaybackSnapshot, *, synced: bool = True) -> PlaybackSnapshot:
        return self.update(lambda _prev: snapshot, synced=synced)

    def update(
        self,
        fn: Callable[[PlaybackSnapshot], PlaybackSnapshot],
        *,
        synced: bool = True,
    ) -> PlaybackSnapshot:
        """Replace the snapshot with ``fn(current)`` and notify listeners on change."""
        with self._lock:
            previous = self._snapshot
            current = fn(previous)
            self._snapshot = current
            if synced:
                self._synced = True
            listeners = list(self._listeners)

        if current != previous:
            for listener in listeners:
                try:
                    listener(current)
                except Exception:
                    logger.exception("Snapshot listener %r failed", listener)
        return current

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
