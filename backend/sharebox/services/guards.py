from __future__ import annotations

from collections import defaultdict


class StreamGuard:
    """Tracks in-flight payload streams per share inside one event loop.

    A reap that finds streams in flight marks the payload for removal
    instead of deleting it; whoever releases the last stream performs the
    purge. The bookkeeping never awaits, so it needs no lock.
    """

    def __init__(self) -> None:
        self._active: defaultdict[str, int] = defaultdict(int)
        self._pending_purge: set[str] = set()

    def acquire(self, share_id: str) -> None:
        self._active[share_id] += 1

    def release(self, share_id: str) -> bool:
        """Drop one stream; returns True if the caller must purge the payload now."""
        remaining = self._active.get(share_id, 0) - 1
        if remaining > 0:
            self._active[share_id] = remaining
            return False
        self._active.pop(share_id, None)
        if share_id in self._pending_purge:
            self._pending_purge.discard(share_id)
            return True
        return False

    def defer_purge(self, share_id: str) -> bool:
        """Returns True if the purge was deferred because streams are in flight."""
        if self._active.get(share_id, 0) > 0:
            self._pending_purge.add(share_id)
            return True
        return False

    def active_streams(self, share_id: str) -> int:
        return self._active.get(share_id, 0)
