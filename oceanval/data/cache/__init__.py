"""
Result Cache for Verification Queries.

Components:
- CacheManager with TTL expiration, eviction and tag invalidation
- Single-flight computation so concurrent identical queries compute once

Example usage:
    from oceanval.data.cache import CacheConfig, CacheManager

    cache = CacheManager(CacheConfig(default_ttl_seconds=3600))
    key = cache.generate_cache_key("lead_time_series", "T", "2025-08-05")
    series = cache.get_or_compute(key, compute_series, tags={"2902123|T|2025-08-05"})
"""

from oceanval.data.cache.manager import (
    CacheConfig,
    CacheEntry,
    CacheEntryStatus,
    CacheManager,
    CacheStatistics,
    EvictionPolicy,
)

__all__ = [
    "CacheConfig",
    "CacheEntry",
    "CacheEntryStatus",
    "CacheManager",
    "CacheStatistics",
    "EvictionPolicy",
]
