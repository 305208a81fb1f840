"""
services/relevance_cache.py
──────────────────────────────────────────────────────────────────────────────
Bounded in-process key → value store memoising program classifications.

Policy:
  - Every entry carries an expiry time.  An entry read at or after its expiry
    counts as a miss and is removed on the spot.
  - On insert at capacity, expired entries are swept first; if the cache is
    still full the least-recently-used entry is evicted (ties: oldest
    creation time, then insertion order).
  - Every get() counts towards hits / misses.  __contains__ does not.

Capacity and default TTL have no implicit defaults: the container passes
them in from Settings.  The clock is injectable so TTL behaviour is testable
without sleeping.

Thread safety:
  A single threading.Lock guards the entry table AND the counters, so a
  reader never observes a half-written or half-evicted entry and concurrent
  reads never lose a hit/miss increment.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from grant_ranker.domain.exceptions import ConfigurationError
from grant_ranker.domain.models import CacheStats

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """One cached value plus its bookkeeping."""

    key: str
    value: Any
    created_at: float
    expires_at: float
    last_accessed: float
    access_count: int = 0
    sequence: int = 0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def eviction_rank(self) -> tuple[float, float, int]:
        return (self.last_accessed, self.created_at, self.sequence)


class RelevanceCache:
    """LRU + TTL cache with hit/miss metrics.

    Args:
        capacity:    Maximum number of live entries (>= 1).
        default_ttl: Lifetime of an entry in clock units (> 0) when set()
                     is called without an explicit ttl.
        clock:       Zero-argument callable returning the current time.
    """

    def __init__(
        self,
        capacity: int,
        default_ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ConfigurationError(f"Cache capacity must be >= 1, got {capacity}")
        if default_ttl <= 0:
            raise ConfigurationError(f"Cache TTL must be > 0, got {default_ttl}")

        self._capacity = capacity
        self._default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._sequence = 0

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._invalidations = 0

        logger.debug(
            "RelevanceCache init | capacity=%d default_ttl=%.1f",
            capacity, default_ttl,
        )

    @property
    def capacity(self) -> int:
        return self._capacity

    # ── Public API ─────────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss (absent or expired)."""
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(now):
                del self._entries[key]
                self._misses += 1
                return None
            entry.access_count += 1
            entry.last_accessed = now
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Insert or replace an entry, evicting if the cache is full."""
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError(f"ttl must be > 0, got {ttl}")

        with self._lock:
            now = self._clock()
            if key not in self._entries and len(self._entries) >= self._capacity:
                self._purge_expired_locked(now)
                while len(self._entries) >= self._capacity:
                    self._evict_lru_locked()

            self._sequence += 1
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                created_at=now,
                expires_at=now + ttl,
                last_accessed=now,
                sequence=self._sequence,
            )

    def invalidate(self, key: str) -> bool:
        """Remove one entry.  Returns True if it was present."""
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._invalidations += 1
            return True

    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with prefix."""
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
            self._invalidations += len(doomed)
            return len(doomed)

    def purge_expired(self) -> int:
        """Sweep all expired entries.  Returns how many were removed."""
        with self._lock:
            return self._purge_expired_locked(self._clock())

    def compact(self, target_ratio: float = 0.75) -> int:
        """Shrink the cache to at most capacity × target_ratio entries.

        Expired entries go first, then least-recently-used ones.
        """
        if not 0 <= target_ratio <= 1:
            raise ValueError(f"target_ratio must be within [0, 1], got {target_ratio}")
        with self._lock:
            removed = self._purge_expired_locked(self._clock())
            target = int(self._capacity * target_ratio)
            while len(self._entries) > target:
                self._evict_lru_locked()
                removed += 1
            return removed

    def clear(self) -> int:
        """Drop every entry.  Counters are kept."""
        with self._lock:
            n = len(self._entries)
            self._entries.clear()
            return n

    def keys(self) -> list[str]:
        """Snapshot of the keys of all non-expired entries."""
        with self._lock:
            now = self._clock()
            return [k for k, e in self._entries.items() if not e.is_expired(now)]

    def stats(self) -> CacheStats:
        with self._lock:
            now = self._clock()
            lookups = self._hits + self._misses
            hit_rate = round(self._hits / lookups * 100, 2) if lookups else 0.0
            return CacheStats(
                size=len(self._entries),
                capacity=self._capacity,
                total_hits=self._hits,
                total_misses=self._misses,
                hit_rate=hit_rate,
                total_evictions=self._evictions,
                total_invalidations=self._invalidations,
                expired_entries=sum(
                    1 for e in self._entries.values() if e.is_expired(now)
                ),
                total_access_count=sum(
                    e.access_count for e in self._entries.values()
                ),
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and not entry.is_expired(self._clock())

    # ── Private helpers (caller holds the lock) ────────────────────────────

    def _purge_expired_locked(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def _evict_lru_locked(self) -> None:
        victim = min(self._entries.values(), key=CacheEntry.eviction_rank)
        del self._entries[victim.key]
        self._evictions += 1
        logger.debug("Cache evicted %r (access_count=%d)", victim.key, victim.access_count)
