"""Bounded in-memory LRU cache of decompressed transcript content with sliding TTL."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 50
DEFAULT_MAX_BYTES = 100 * 1024 * 1024
DEFAULT_TTL = 30 * 60.0


@dataclass
class CacheEntry:
    content: str
    size: int
    last_access: float


class TranscriptCache:
    """LRU cache bounded by entry count and total UTF-8 bytes.

    Entries untouched for longer than ``ttl`` seconds are misses; a hit
    refreshes the entry's age and recency.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_bytes: int = DEFAULT_MAX_BYTES,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.max_bytes = max_bytes
        self.ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._bytes = 0
        self.hits = 0
        self.misses = 0
        self.evictions = {"capacity": 0, "ttl": 0, "invalidation": 0}

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def total_bytes(self) -> int:
        return self._bytes

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.last_access > self.ttl

    def _remove(self, key: str, reason: str) -> None:
        entry = self._entries.pop(key)
        self._bytes -= entry.size
        self.evictions[reason] += 1

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        now = self._clock()
        if entry is None:
            self.misses += 1
            return None
        if self._expired(entry, now):
            self._remove(key, "ttl")
            self.misses += 1
            return None
        entry.last_access = now
        self._entries.move_to_end(key)
        self.hits += 1
        return entry.content

    def has(self, key: str) -> bool:
        """Membership test that neither refreshes age nor counts as a hit."""
        entry = self._entries.get(key)
        return entry is not None and not self._expired(entry, self._clock())

    def set(self, key: str, content: str) -> bool:
        """Cache ``content``; returns False when it alone exceeds the byte capacity."""
        size = len(content.encode("utf-8"))
        if key in self._entries:
            old = self._entries.pop(key)
            self._bytes -= old.size
        if size > self.max_bytes:
            logger.debug("Not caching %s: %d bytes exceeds capacity", key, size)
            return False

        now = self._clock()
        for stale in [k for k, e in self._entries.items() if self._expired(e, now)]:
            self._remove(stale, "ttl")
        while self._entries and (len(self._entries) >= self.max_entries or self._bytes + size > self.max_bytes):
            oldest = next(iter(self._entries))
            self._remove(oldest, "capacity")

        self._entries[key] = CacheEntry(content=content, size=size, last_access=now)
        self._bytes += size
        return True

    def invalidate(self, key: str) -> bool:
        if key not in self._entries:
            return False
        self._remove(key, "invalidation")
        return True

    def clear(self) -> None:
        self._entries.clear()
        self._bytes = 0

    def stats(self) -> dict:
        lookups = self.hits + self.misses
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "bytes": self._bytes,
            "max_bytes": self.max_bytes,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / lookups if lookups else 0.0,
            "evictions": dict(self.evictions),
        }
