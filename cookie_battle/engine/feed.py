"""
Snapshot feed for a single session.
Holds the latest published SessionState and pushes copies to watchers (UI, tests, the CLI).
"""

import logging
import threading
from typing import Callable

from cookie_battle.engine.state import SessionState

LOGGER = logging.getLogger(__name__)

Watcher = Callable[[SessionState], None]


class SessionFeed:
    """Lightweight pub/sub over session snapshots."""

    def __init__(self, initial: SessionState):
        self._latest = initial.copy()
        self._watchers: list[Watcher] = []
        self._lock = threading.Lock()

    def read(self) -> SessionState:
        """Copy of the latest snapshot; callers cannot mutate the feed's state."""
        with self._lock:
            return self._latest.copy()

    def publish(self, state: SessionState) -> None:
        """Store a new snapshot and notify every watcher with its own copy."""
        with self._lock:
            self._latest = state.copy()
            watchers = list(self._watchers)
        for callback in watchers:
            try:
                callback(state.copy())
            except Exception:
                # one broken watcher must not starve the others
                LOGGER.warning("Session watcher %r failed", callback, exc_info=True)

    def watch(self, callback: Watcher) -> Callable[[], None]:
        """Register callback and return a function that unregisters it."""
        with self._lock:
            self._watchers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._watchers:
                    self._watchers.remove(callback)

        return unsubscribe

    @property
    def watcher_count(self) -> int:
        with self._lock:
            return len(self._watchers)
