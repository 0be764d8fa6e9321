"""
Cache Manager for Verification Results.

Provides lifecycle management for computed verification statistics:
- Deterministic cache keys from request parameter tuples
- TTL-based expiration policies
- LRU/LFU/FIFO eviction when the entry limit is exceeded
- Tag-based invalidation when new samples are ingested
- Single-flight computation: concurrent requests for the same key
  wait for the one in-flight computation instead of recomputing
- Thread-safe operations

A computation that fails or is cancelled never populates the cache.
"""

import hashlib
import logging
import threading
from concurrent.futures import CancelledError, Future
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple, Type

logger = logging.getLogger(__name__)


class CacheEntryStatus(Enum):
    """Status of a cache entry."""

    ACTIVE = "active"  # Entry active and available
    EXPIRED = "expired"  # Entry past TTL
    EVICTED = "evicted"  # Entry evicted due to entry limit
    INVALID = "invalid"  # Entry invalidated by new data


class EvictionPolicy(Enum):
    """Cache eviction policies."""

    LRU = "lru"  # Least Recently Used
    LFU = "lfu"  # Least Frequently Used
    FIFO = "fifo"  # First In First Out


@dataclass
class CacheConfig:
    """
    Configuration for cache manager.

    Attributes:
        max_entries: Maximum number of cache entries (0 = unlimited)
        default_ttl_seconds: Default TTL for new entries (0 = no expiration)
        eviction_policy: Policy for evicting entries when full
        enable_statistics: Whether to track access statistics
    """

    max_entries: int = 0
    default_ttl_seconds: int = 86400  # 24 hours
    eviction_policy: EvictionPolicy = EvictionPolicy.LRU
    enable_statistics: bool = True

    def __post_init__(self):
        """Validate configuration."""
        if isinstance(self.eviction_policy, str):
            self.eviction_policy = EvictionPolicy(self.eviction_policy)
        if self.max_entries < 0:
            raise ValueError(f"max_entries must be >= 0, got {self.max_entries}")
        if self.default_ttl_seconds < 0:
            raise ValueError(
                f"default_ttl_seconds must be >= 0, got {self.default_ttl_seconds}"
            )


@dataclass
class CacheEntry:
    """
    Represents an entry in the cache.

    Attributes:
        cache_key: Unique cache key
        value: Cached result
        status: Current entry status
        created_at: Creation timestamp
        accessed_at: Last access timestamp
        expires_at: Expiration timestamp
        access_count: Number of times accessed
        tags: Invalidation tags
    """

    cache_key: str
    value: Any
    status: CacheEntryStatus = CacheEntryStatus.ACTIVE
    created_at: Optional[datetime] = None
    accessed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    access_count: int = 0
    tags: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (without the cached value)."""
        return {
            "cache_key": self.cache_key,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "accessed_at": self.accessed_at.isoformat() if self.accessed_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "access_count": self.access_count,
            "tags": sorted(self.tags),
        }

    @property
    def is_expired(self) -> bool:
        """Check if entry has expired."""
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) > self.expires_at


@dataclass
class CacheStatistics:
    """Statistics about cache usage."""

    active_entries: int = 0
    in_flight: int = 0
    hits: int = 0
    misses: int = 0
    computations: int = 0
    evictions: int = 0
    expirations: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "active_entries": self.active_entries,
            "in_flight": self.in_flight,
            "hits": self.hits,
            "misses": self.misses,
            "computations": self.computations,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "invalidations": self.invalidations,
            "hit_rate": self.hit_rate,
        }


@dataclass
class _InFlight:
    """A computation currently running for one cache key."""

    future: Future
    tags: FrozenSet[str]


class CacheManager:
    """
    Manages cached verification results.

    Provides thread-safe registration, lookup and invalidation of computed
    results, and serializes computations per cache key.

    Example:
        cache = CacheManager(CacheConfig(default_ttl_seconds=3600))
        key = cache.generate_cache_key("T", "2025-08-05", extra={"lead": "1-10"})
        result = cache.get_or_compute(key, compute_fn, tags={"2902123|T|2025-08-05"})
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        cancel_exceptions: Tuple[Type[BaseException], ...] = (),
    ):
        """
        Initialize cache manager.

        Args:
            config: Cache configuration
            cancel_exceptions: Exception types meaning the leading caller
                abandoned the computation; waiters then compute themselves
        """
        self.config = config or CacheConfig()
        self.cancel_exceptions = tuple(cancel_exceptions)
        self._lock = threading.RLock()
        self._entries: Dict[str, CacheEntry] = {}
        self._tag_index: Dict[str, Set[str]] = {}
        self._in_flight: Dict[str, _InFlight] = {}
        self._statistics = CacheStatistics()

        logger.info(
            f"CacheManager initialized with ttl={self.config.default_ttl_seconds}s, "
            f"max_entries={self.config.max_entries}"
        )

    @staticmethod
    def generate_cache_key(*parts: Any, extra: Optional[Dict[str, Any]] = None) -> str:
        """
        Generate a deterministic cache key.

        Args:
            parts: Ordered key components
            extra: Additional named parameters

        Returns:
            Deterministic cache key (SHA256 hash prefix)
        """
        key_parts = [str(p) for p in parts]

        if extra:
            # Sort for determinism
            for k, v in sorted(extra.items()):
                key_parts.append(f"{k}:{v}")

        key_string = "|".join(key_parts)
        hash_digest = hashlib.sha256(key_string.encode()).hexdigest()
        return hash_digest[:32]

    def get(self, cache_key: str) -> Optional[Any]:
        """
        Get a cached value and update access statistics.

        Args:
            cache_key: Cache key to look up

        Returns:
            Cached value if found and valid, None otherwise
        """
        with self._lock:
            entry = self._lookup(cache_key)
            if entry is None:
                self._record("misses")
                return None
            self._record("hits")
            return entry.value

    def contains(self, cache_key: str) -> bool:
        """Check if cache key exists and is valid, without touching it."""
        with self._lock:
            entry = self._entries.get(cache_key)
            return (
                entry is not None
                and entry.status == CacheEntryStatus.ACTIVE
                and not entry.is_expired
            )

    def put(
        self,
        cache_key: str,
        value: Any,
        ttl_seconds: Optional[int] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> CacheEntry:
        """
        Register a cache entry.

        Args:
            cache_key: Unique cache key
            value: Value to cache
            ttl_seconds: Time to live (uses default if None)
            tags: Invalidation tags

        Returns:
            Created CacheEntry
        """
        with self._lock:
            self._remove(cache_key)
            self._ensure_capacity()

            now = datetime.now(timezone.utc)
            ttl = ttl_seconds if ttl_seconds is not None else self.config.default_ttl_seconds
            expires_at = now + timedelta(seconds=ttl) if ttl > 0 else None

            entry = CacheEntry(
                cache_key=cache_key,
                value=value,
                status=CacheEntryStatus.ACTIVE,
                created_at=now,
                accessed_at=now,
                expires_at=expires_at,
                tags=set(tags or ()),
            )
            self._entries[cache_key] = entry
            for tag in entry.tags:
                self._tag_index.setdefault(tag, set()).add(cache_key)

            logger.debug(f"Cached entry: {cache_key} (tags={sorted(entry.tags)})")
            return entry

    def get_or_compute(
        self,
        cache_key: str,
        compute: Callable[[], Any],
        tags: Optional[Iterable[str]] = None,
        ttl_seconds: Optional[int] = None,
    ) -> Any:
        """
        Return the cached value for a key, computing it at most once.

        The first caller for a missing key runs ``compute``; concurrent
        callers for the same key wait for that result. If the key or one of
        its tags is invalidated while computing, the result is returned to
        the callers already waiting but is not stored.

        Args:
            cache_key: Cache key
            compute: Zero-argument function producing the value
            tags: Invalidation tags for the stored entry
            ttl_seconds: Time to live (uses default if None)

        Returns:
            Cached or freshly computed value

        Raises:
            Whatever ``compute`` raises; nothing is cached in that case
        """
        tag_set = frozenset(tags or ())

        while True:
            with self._lock:
                entry = self._lookup(cache_key)
                if entry is not None:
                    self._record("hits")
                    logger.debug(f"Cache hit: {cache_key}")
                    return entry.value

                flight = self._in_flight.get(cache_key)
                leader = flight is None
                if leader:
                    flight = _InFlight(future=Future(), tags=tag_set)
                    self._in_flight[cache_key] = flight
                    self._record("misses")
                    self._record("computations")

            if leader:
                return self._run_leader(cache_key, flight, compute, ttl_seconds)

            try:
                logger.debug(f"Waiting for in-flight computation: {cache_key}")
                return flight.future.result()
            except CancelledError:
                # Leader abandoned the computation; try again ourselves
                continue

    def _run_leader(
        self,
        cache_key: str,
        flight: _InFlight,
        compute: Callable[[], Any],
        ttl_seconds: Optional[int],
    ) -> Any:
        """Run the computation for a key and publish its outcome."""
        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                if self._in_flight.get(cache_key) is flight:
                    del self._in_flight[cache_key]
            if isinstance(exc, self.cancel_exceptions):
                flight.future.cancel()
            else:
                flight.future.set_exception(exc)
            raise

        with self._lock:
            current = self._in_flight.get(cache_key) is flight
            if current:
                del self._in_flight[cache_key]
                self.put(cache_key, value, ttl_seconds=ttl_seconds, tags=flight.tags)
            else:
                logger.debug(f"Discarding result invalidated during computation: {cache_key}")
        flight.future.set_result(value)
        return value

    def invalidate(self, cache_key: str) -> bool:
        """
        Invalidate a cache entry and detach any in-flight computation.

        Args:
            cache_key: Cache key to invalidate

        Returns:
            True if an entry or computation was invalidated
        """
        with self._lock:
            invalidated = self._invalidate_key(cache_key)
            if invalidated:
                logger.debug(f"Invalidated cache entry: {cache_key}")
            return invalidated

    def invalidate_by_tag(self, tag: str) -> int:
        """
        Invalidate cache entries and in-flight computations with a tag.

        Args:
            tag: Tag to match

        Returns:
            Number of entries invalidated
        """
        with self._lock:
            keys = set(self._tag_index.get(tag, ()))
            keys.update(k for k, f in self._in_flight.items() if tag in f.tags)
            count = sum(1 for key in keys if self._invalidate_key(key))
            if count:
                logger.debug(f"Invalidated {count} entries with tag: {tag}")
            return count

    def cleanup_expired(self) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries cleaned up
        """
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired]
            for key in expired:
                self._entries[key].status = CacheEntryStatus.EXPIRED
                self._remove(key)
            if expired:
                self._record("expirations", len(expired))
                logger.info(f"Cleaned up {len(expired)} expired cache entries")
            return len(expired)

    def clear(self) -> int:
        """
        Clear all cache entries and reset statistics.

        Returns:
            Number of entries cleared
        """
        with self._lock:
            cleared = len(self._entries)
            self._entries.clear()
            self._tag_index.clear()
            self._statistics = CacheStatistics()
            logger.info(f"Cleared {cleared} cache entries")
            return cleared

    def list_entries(self, tag: Optional[str] = None) -> List[CacheEntry]:
        """List active entries, most recently accessed first."""
        with self._lock:
            entries = [
                e for e in self._entries.values()
                if tag is None or tag in e.tags
            ]
            return sorted(entries, key=lambda e: e.accessed_at, reverse=True)

    def get_statistics(self) -> CacheStatistics:
        """
        Get current cache statistics.

        Returns:
            CacheStatistics snapshot
        """
        with self._lock:
            stats = self._statistics
            return CacheStatistics(
                active_entries=len(self._entries),
                in_flight=len(self._in_flight),
                hits=stats.hits,
                misses=stats.misses,
                computations=stats.computations,
                evictions=stats.evictions,
                expirations=stats.expirations,
                invalidations=stats.invalidations,
            )

    def _lookup(self, cache_key: str) -> Optional[CacheEntry]:
        """Find an active entry and update its access statistics."""
        entry = self._entries.get(cache_key)
        if entry is None:
            return None

        if entry.is_expired:
            entry.status = CacheEntryStatus.EXPIRED
            self._remove(cache_key)
            self._record("expirations")
            return None

        entry.accessed_at = datetime.now(timezone.utc)
        entry.access_count += 1
        # Keep dict order in access order so equal timestamps still evict LRU
        self._entries[cache_key] = self._entries.pop(cache_key)
        return entry

    def _invalidate_key(self, cache_key: str) -> bool:
        invalidated = False
        entry = self._entries.get(cache_key)
        if entry is not None:
            entry.status = CacheEntryStatus.INVALID
            self._remove(cache_key)
            invalidated = True
        if self._in_flight.pop(cache_key, None) is not None:
            invalidated = True
        if invalidated:
            self._record("invalidations")
        return invalidated

    def _remove(self, cache_key: str) -> None:
        entry = self._entries.pop(cache_key, None)
        if entry is None:
            return
        for tag in entry.tags:
            keys = self._tag_index.get(tag)
            if keys is not None:
                keys.discard(cache_key)
                if not keys:
                    del self._tag_index[tag]

    def _ensure_capacity(self) -> None:
        """Evict entries until there is room for one more."""
        if self.config.max_entries <= 0:
            return

        while len(self._entries) >= self.config.max_entries:
            policy = self.config.eviction_policy
            if policy == EvictionPolicy.LFU:
                order = lambda e: (e.access_count, e.accessed_at)
            elif policy == EvictionPolicy.FIFO:
                order = lambda e: e.created_at
            else:
                order = lambda e: e.accessed_at

            victim = min(self._entries.values(), key=order)
            victim.status = CacheEntryStatus.EVICTED
            self._remove(victim.cache_key)
            self._record("evictions")
            logger.debug(f"Evicted cache entry: {victim.cache_key}")

    def _record(self, stat_name: str, amount: int = 1) -> None:
        """Increment a statistics counter."""
        if not self.config.enable_statistics:
            return
        setattr(self._statistics, stat_name, getattr(self._statistics, stat_name) + amount)
