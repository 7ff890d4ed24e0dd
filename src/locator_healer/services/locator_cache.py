"""
In-memory cache of healed locators.

Remembers past healings keyed by the original locator, tracks how often a
cached result actually worked, and drops entries that expired, proved
unreliable, or were least recently used when the cache is full. All state
changes happen under one lock so concurrent tests can share an instance.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional

from ..core.models.healing_models import CacheEntry, Candidate, build_cache_key

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_SIZE = 500


class LocatorCache:
    """
    Key to Candidate store with TTL expiry, LRU eviction and reliability
    tracking.

    Entries are kept in access order: ``get`` and ``put`` move a key to the
    most-recently-used end, and inserting past capacity evicts from the
    other end.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE,
                 ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 enabled: bool = True,
                 unreliable_min_uses: int = 3,
                 unreliable_success_rate: float = 0.5,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the cache.

        Args:
            max_size: Maximum number of entries before LRU eviction
            ttl_seconds: Age after which an entry is treated as a miss
            enabled: Whether the cache starts enabled
            unreliable_min_uses: Uses needed before reliability is judged
            unreliable_success_rate: Success rate below which an entry is purged
            clock: Time source, injectable for tests
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self._clock = clock
        self._max_size = max_size
        self._ttl_seconds = ttl_seconds
        self._enabled = enabled
        self._unreliable_min_uses = unreliable_min_uses
        self._unreliable_success_rate = unreliable_success_rate

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._invalidations = 0

    @classmethod
    def from_config(cls, config, clock: Callable[[], float] = time.monotonic) -> "LocatorCache":
        """Build a cache sized by a HealingConfiguration."""
        return cls(
            max_size=config.cache_max_size,
            ttl_seconds=config.cache_ttl_seconds,
            enabled=config.cache_enabled,
            unreliable_min_uses=config.unreliable_min_uses,
            unreliable_success_rate=config.unreliable_success_rate,
            clock=clock
        )

    @staticmethod
    def generate_cache_key(kind: Any, value: str, semantic_key: Optional[str] = None) -> str:
        """Deterministic key for an original locator.

        Args:
            kind: LocatorKind or its string value
            value: Original locator value
            semantic_key: Optional page-object property name

        Returns:
            ``kind||value``, with ``||KEY:semantic_key`` appended when given
        """
        kind_value = getattr(kind, "value", kind)
        return build_cache_key(str(kind_value), value or "", semantic_key)

    def get(self, key: str) -> Optional[Candidate]:
        """Look up a healed locator.

        Expired and unreliable entries are removed and reported as misses.

        Returns:
            The cached Candidate, or None on a miss or while disabled
        """
        if not self._enabled:
            return None

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            now = self._clock()
            if entry.is_expired(self._ttl_seconds, now):
                del self._entries[key]
                self._misses += 1
                self._invalidations += 1
                logger.info(f"Cache entry expired: {key}")
                return None

            if entry.is_unreliable(self._unreliable_min_uses, self._unreliable_success_rate):
                del self._entries[key]
                self._misses += 1
                self._invalidations += 1
                logger.warning(f"Removing unreliable cache entry {key} "
                               f"(success rate {entry.success_rate * 100:.1f}% "
                               f"over {entry.use_count} uses)")
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            logger.debug(f"Cache hit: {key}")
            return entry.candidate

    def peek_entry(self, key: str) -> Optional[CacheEntry]:
        """Return the raw entry without touching order, TTL or counters."""
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, candidate: Candidate) -> None:
        """Store a healed locator as a fresh, unused entry.

        Any previous entry for the key is replaced.
        """
        if not self._enabled or candidate is None:
            return

        with self._lock:
            now = self._clock()
            if key in self._entries:
                del self._entries[key]
            self._entries[key] = CacheEntry(
                candidate=candidate,
                cache_key=key,
                created_at=now,
                last_used_at=now
            )
            while len(self._entries) > self._max_size:
                evicted_key, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug(f"Evicted least recently used cache entry: {evicted_key}")

            logger.info(f"💾 Cached healed locator: {key} -> {candidate.strategy.value}"
                        f"||{candidate.value}")

    def record_usage(self, key: str, success: bool) -> None:
        """Record whether a cached locator worked. No-op for unknown keys."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug(f"Usage reported for unknown cache key: {key}")
                return
            entry.record_use(success, self._clock())
            logger.debug(f"Recorded {'success' if success else 'failure'} for {key} "
                         f"({entry.success_count}/{entry.use_count})")

    def invalidate(self, key: str) -> bool:
        """Remove an entry. Returns True if one was present."""
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._invalidations += 1
            logger.info(f"Invalidated cache entry: {key}")
            return True

    def clear(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cleared {count} cache entries")

    def set_ttl(self, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        with self._lock:
            self._ttl_seconds = ttl_seconds

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable caching. Disabling also drops every entry."""
        with self._lock:
            self._enabled = enabled
            if not enabled:
                self._entries.clear()
        logger.info(f"Locator cache {'enabled' if enabled else 'disabled'}")

    def is_enabled(self) -> bool:
        return self._enabled

    def stats(self) -> Dict[str, Any]:
        """Snapshot of cache size, usage and hit statistics."""
        with self._lock:
            total_uses = sum(entry.use_count for entry in self._entries.values())
            total_successes = sum(entry.success_count for entry in self._entries.values())
            return {
                "size": len(self._entries),
                "max_size": self._max_size,
                "ttl_seconds": self._ttl_seconds,
                "enabled": self._enabled,
                "total_uses": total_uses,
                "total_successes": total_successes,
                "overall_success_rate": total_successes / total_uses if total_uses else 0.0,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "invalidations": self._invalidations
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries
