"""
Cache Infrastructure

Storage providers and the cache layer used by the orchestrator.
"""

from queryspec.infrastructure.cache.manager import (
    CacheLayer,
    fingerprint,
    normalize_for_cache,
)
from queryspec.infrastructure.cache.providers import (
    CacheEntry,
    CacheProvider,
    MemoryCacheProvider,
    RedisCacheProvider,
    create_cache_provider,
)

__all__ = [
    "CacheLayer",
    "fingerprint",
    "normalize_for_cache",
    "CacheEntry",
    "CacheProvider",
    "MemoryCacheProvider",
    "RedisCacheProvider",
    "create_cache_provider",
]
