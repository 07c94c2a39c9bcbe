"""Short-lived memory of engine-initiated pushes and deletions.

The Contents API can serve a stale listing for a while after a write.
Within the grace window a path we just pushed must not look deleted or
remotely changed, and a path we just deleted must not look new.
"""

from __future__ import annotations

import time
from collections.abc import Callable

PUSH_GRACE_SECONDS = 90.0
DELETE_GRACE_SECONDS = 120.0


class GracePeriodCache:
    """Timestamps of recent pushes/deletes, keyed by local path."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        push_window: float = PUSH_GRACE_SECONDS,
        delete_window: float = DELETE_GRACE_SECONDS,
    ) -> None:
        self._clock = clock
        self.push_window = push_window
        self.delete_window = delete_window
        self.recently_pushed: dict[str, float] = {}
        self.recently_deleted: dict[str, float] = {}

    def mark_pushed(self, path: str) -> None:
        self.recently_pushed[path] = self._clock()

    def mark_deleted(self, path: str) -> None:
        self.recently_deleted[path] = self._clock()

    def was_recently_pushed(self, path: str) -> bool:
        ts = self.recently_pushed.get(path)
        return ts is not None and self._clock() - ts < self.push_window

    def was_recently_deleted(self, path: str) -> bool:
        ts = self.recently_deleted.get(path)
        return ts is not None and self._clock() - ts < self.delete_window

    def forget(self, path: str) -> None:
        self.recently_pushed.pop(path, None)
        self.recently_deleted.pop(path, None)

    def expire(self) -> int:
        """Drop entries older than their window; return how many went."""
        now = self._clock()
        stale_pushed = [
            p for p, ts in self.recently_pushed.items()
            if now - ts >= self.push_window
        ]
        stale_deleted = [
            p for p, ts in self.recently_deleted.items()
            if now - ts >= self.delete_window
        ]
        for p in stale_pushed:
            del self.recently_pushed[p]
        for p in stale_deleted:
            del self.recently_deleted[p]
        return len(stale_pushed) + len(stale_deleted)
