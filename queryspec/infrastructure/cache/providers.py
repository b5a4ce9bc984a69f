"""
Cache Storage Providers

Async key/value backends behind the CacheLayer.

- MemoryCacheProvider: process-local dict with per-entry expiry
- RedisCacheProvider:  redis.asyncio client, JSON-serialized values

Providers raise on backend failure; the CacheLayer turns failures into
warnings so queries never fail because of the cache.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional

import redis.asyncio as aioredis

from queryspec.core.config import QuerySettings, get_settings

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


class CacheProvider(ABC):

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if it existed."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry owned by this provider."""

    @abstractmethod
    async def has(self, key: str) -> bool:
        """True when ``key`` holds a live entry."""

    async def purge_expired(self) -> int:
        """Sweep expired entries. Backends with native expiry have nothing to do."""
        return 0


# =============================================================================
# IN-MEMORY
# =============================================================================

@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class MemoryCacheProvider(CacheProvider):
    """
    Dict-backed provider. Expired entries are dropped lazily on read and in
    bulk by ``purge_expired``.
    """

    def __init__(self, default_ttl: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[Any]:
        entry = self._live_entry(key)
        return entry.value if entry is not None else None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def clear(self) -> None:
        self._entries.clear()

    async def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    async def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired cache entries")
        return len(expired)

    @property
    def size(self) -> int:
        return len(self._entries)


# =============================================================================
# REDIS
# =============================================================================

def _serialize_for_cache(obj: Any) -> Any:
    """
    Recursively convert a value into something json.dumps accepts.

    Handles pydantic models, dataclasses and date/datetime values.
    """
    if obj is None:
        return None

    if isinstance(obj, dict):
        return {k: _serialize_for_cache(v) for k, v in obj.items()}

    if isinstance(obj, (list, tuple)):
        return [_serialize_for_cache(item) for item in obj]

    if hasattr(obj, "model_dump"):
        return _serialize_for_cache(obj.model_dump())

    if hasattr(obj, "__dataclass_fields__"):
        return _serialize_for_cache(asdict(obj))

    if isinstance(obj, (datetime, date)):
        return obj.isoformat()

    return obj


class RedisCacheProvider(CacheProvider):
    """
    Redis-backed provider.

    Keys are used as given (the CacheLayer prefixes them); ``clear`` removes
    only keys under ``namespace``.

    Values round-trip through JSON, so a hit is not type-identical to the value
    that was stored: dates and datetimes come back as ISO strings, tuples as
    lists and models or dataclasses as dicts. Callers needing rich types must
    rehydrate them (``ResultEnvelope.model_validate`` does this for envelopes
    but leaves row values as strings).
    """

    def __init__(self, client: "aioredis.Redis", namespace: str = "sqb:", default_ttl: int = DEFAULT_TTL_SECONDS):
        self.client = client
        self.namespace = namespace
        self.default_ttl = default_ttl

    @classmethod
    def from_url(cls, url: str, namespace: str = "sqb:", default_ttl: int = DEFAULT_TTL_SECONDS) -> "RedisCacheProvider":
        client = aioredis.from_url(url, socket_connect_timeout=2, socket_timeout=5)
        return cls(client, namespace=namespace, default_ttl=default_ttl)

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        payload = json.dumps(_serialize_for_cache(value), default=str)
        await self.client.set(key, payload, ex=ttl)

    async def delete(self, key: str) -> bool:
        return bool(await self.client.delete(key))

    async def clear(self) -> None:
        keys = [key async for key in self.client.scan_iter(match=f"{self.namespace}*")]
        if keys:
            await self.client.delete(*keys)
            logger.info(f"Cleared {len(keys)} cache keys under '{self.namespace}'")

    async def has(self, key: str) -> bool:
        return bool(await self.client.exists(key))

    async def close(self) -> None:
        await self.client.aclose()


def create_cache_provider(settings: Optional[QuerySettings] = None) -> CacheProvider:
    """Instantiate the provider selected by ``settings.cache_provider``."""
    settings = settings or get_settings()
    if settings.cache_provider == "redis":
        logger.info(f"Using Redis cache provider: {settings.redis_url}")
        return RedisCacheProvider.from_url(
            settings.redis_url,
            namespace=settings.cache_key_prefix,
            default_ttl=settings.cache_ttl,
        )
    return MemoryCacheProvider(default_ttl=settings.cache_ttl)
