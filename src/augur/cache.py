"""In-process session state with bounded lifetime.

Per-session state (recent conversation history) is kept in an LRU cache with
TTL so that the number of live sessions in memory is capped. Entries expire on
read after ``ttl`` seconds and the least recently used session is evicted once
``maxsize`` is exceeded.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any

import structlog

log = structlog.get_logger()


@dataclass
class CacheStats:
    """Cache performance statistics."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "hit_rate": round(self.hit_rate, 4),
        }


@dataclass
class CacheEntry[T]:
    """A cached value and the monotonic time it stops being valid."""

    value: T
    expires_at: float
    created_at: float = field(default_factory=time.monotonic)

    @property
    def is_expired(self) -> bool:
        return time.monotonic() >= self.expires_at


class LRUCache[T]:
    """LRU cache with per-entry TTL.

    Uses OrderedDict for O(1) access and eviction. All access happens on the
    event loop thread, so no locking is needed.
    """

    def __init__(self, maxsize: int = 1000, default_ttl: float = 900.0) -> None:
        """Initialize cache.

        Args:
            maxsize: Maximum number of entries.
            default_ttl: Default time-to-live in seconds.
        """
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._cache: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._maxsize = maxsize
        self._default_ttl = default_ttl
        self._stats = CacheStats()

    def get(self, key: str) -> T | None:
        """Get value from cache, or None if missing or expired."""
        entry = self._cache.get(key)

        if entry is None:
            self._stats.misses += 1
            return None

        if entry.is_expired:
            self._stats.expirations += 1
            self._stats.misses += 1
            del self._cache[key]
            return None

        # Most recently used goes last
        self._cache.move_to_end(key)
        self._stats.hits += 1
        return entry.value

    def set(self, key: str, value: T, ttl: float | None = None) -> None:
        """Store ``value`` under ``key``, evicting the oldest entries past capacity."""
        ttl = ttl if ttl is not None else self._default_ttl

        if key in self._cache:
            self._cache.move_to_end(key)

        self._cache[key] = CacheEntry(value=value, expires_at=time.monotonic() + ttl)

        while len(self._cache) > self._maxsize:
            evicted, _ = self._cache.popitem(last=False)
            self._stats.evictions += 1
            log.debug("Evicted session state", key=evicted)

    def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        if key in self._cache:
            del self._cache[key]
            return True
        return False

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        expired = [k for k, entry in self._cache.items() if entry.is_expired]
        for key in expired:
            del self._cache[key]
        self._stats.expirations += len(expired)
        return len(expired)

    def clear(self) -> None:
        self._cache.clear()

    @property
    def stats(self) -> CacheStats:
        return self._stats

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: str) -> bool:
        entry = self._cache.get(key)
        return entry is not None and not entry.is_expired
