"""In-process key/value cache with per-key expiry.

Used as the fallback backend of ProgressStore. Values are stored as
strings, matching a Redis client created with `decode_responses=True`.
"""

from __future__ import annotations

import math
import time
from typing import Optional


class MemoryCache:
    """Dict-backed cache with Redis-like TTL semantics.

    Not thread-safe; all callers run on one event loop. Expired entries are
    invisible to reads immediately and are physically removed by
    `sweep_expired`, which the owning store calls periodically.
    """

    def __init__(self, clock=time.monotonic):
        self._entries: dict[str, tuple[str, Optional[float]]] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def _live(self, key: str) -> Optional[tuple[str, Optional[float]]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return entry[0] if entry else None

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._entries[key] = (str(value), expires_at)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def exists(self, key: str) -> bool:
        return self._live(key) is not None

    def expire(self, key: str, ttl: int) -> bool:
        entry = self._live(key)
        if entry is None:
            return False
        self._entries[key] = (entry[0], self._clock() + ttl)
        return True

    def ttl(self, key: str) -> int:
        """Seconds to expiry; -2 if missing, -1 if the key never expires."""
        entry = self._live(key)
        if entry is None:
            return -2
        if entry[1] is None:
            return -1
        return max(0, math.ceil(entry[1] - self._clock()))

    def incr(self, key: str) -> int:
        """Increment an integer value, keeping any existing expiry."""
        entry = self._live(key)
        if entry is None:
            value, expires_at = 0, None
        else:
            value, expires_at = int(entry[0]), entry[1]
        value += 1
        self._entries[key] = (str(value), expires_at)
        return value

    def sweep_expired(self) -> int:
        """Drop expired entries.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [
            key
            for key, (_, expires_at) in self._entries.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
