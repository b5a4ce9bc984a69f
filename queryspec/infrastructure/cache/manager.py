"""
Query Cache Layer

Wraps a CacheProvider with key namespacing, TTL defaults and failure isolation.

KEY DESIGN PRINCIPLES:
----------------------
1. Cache is an OPTIMIZATION, not a source of truth
2. Graceful degradation: provider failures are logged, never raised
3. Disabled cache means every operation is a no-op

CACHE KEY STRUCTURE:
--------------------
{prefix}query:{entity}:{sha256(normalized specification [+ scope])}[:{suffix}]

The suffix keeps row fetches and fetch-with-count results apart. The scope
carries whatever else shapes the result (compile schemas, page size limits)
so callers configured differently never share entries.

CONCURRENCY:
------------
``get_or_compute`` does not coordinate concurrent callers by default: two
callers missing the same key both run the factory. With ``coalesce=True`` the
first caller's computation is shared with callers that arrive while it is
still running (process-local only).
"""

import asyncio
import dataclasses
import hashlib
import inspect
import json
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from queryspec.core.config import QuerySettings, get_settings
from queryspec.infrastructure.cache.providers import CacheProvider, create_cache_provider

logger = logging.getLogger(__name__)

Factory = Callable[[], Union[Any, Awaitable[Any]]]


# =============================================================================
# CACHE KEY BUILDER
# =============================================================================

def normalize_for_cache(obj: Any) -> Any:
    """
    Normalize an object for stable JSON serialization.

    - Sorts dictionary keys
    - Converts dates/datetimes to ISO strings
    - Removes None values
    - Replaces classes and callables by their qualified names
    - Expands dataclass instances field by field

    This ensures identical specifications produce identical cache keys.
    """
    if obj is None:
        return None

    if isinstance(obj, Enum):
        return obj.value

    if isinstance(obj, dict):
        return {str(k): normalize_for_cache(v) for k, v in sorted(obj.items(), key=lambda kv: str(kv[0])) if v is not None}

    if isinstance(obj, (list, tuple)):
        return [normalize_for_cache(item) for item in obj]

    if isinstance(obj, (set, frozenset)):
        return sorted((normalize_for_cache(item) for item in obj), key=repr)

    if isinstance(obj, (datetime, date)):
        return obj.isoformat()

    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return normalize_for_cache({f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)})

    if isinstance(obj, type) or callable(obj):
        return getattr(obj, "__qualname__", repr(obj))

    if hasattr(obj, "model_dump"):  # Pydantic model
        return normalize_for_cache(obj.model_dump(exclude_none=True))

    if hasattr(obj, "to_dict"):
        return normalize_for_cache(obj.to_dict())

    return obj


def fingerprint(obj: Any) -> str:
    json_str = json.dumps(normalize_for_cache(obj), sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(json_str.encode("utf-8")).hexdigest()


# =============================================================================
# CACHE LAYER
# =============================================================================

class CacheLayer:

    def __init__(
        self,
        provider: Optional[CacheProvider] = None,
        enabled: bool = False,
        default_ttl: int = 300,
        key_prefix: str = "sqb:",
        coalesce: bool = False,
    ):
        self.provider = provider
        self.enabled = enabled and provider is not None
        self.default_ttl = default_ttl
        self.key_prefix = key_prefix
        self.coalesce = coalesce
        self._in_flight: Dict[str, asyncio.Future] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Optional[QuerySettings] = None,
        provider: Optional[CacheProvider] = None,
    ) -> "CacheLayer":
        settings = settings or get_settings()
        if provider is None and settings.enable_caching:
            provider = create_cache_provider(settings)
        return cls(
            provider=provider,
            enabled=settings.enable_caching,
            default_ttl=settings.cache_ttl,
            key_prefix=settings.cache_key_prefix,
            coalesce=settings.cache_coalesce_requests,
        )

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    # -------------------------------------------------------------------------
    # Key helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def generate_key(prefix: str, *parts: Any) -> str:
        return ":".join([prefix, *(str(p) for p in parts)])

    @staticmethod
    def build_query_key(entity: str, specification: Any, suffix: str = "", scope: Any = None) -> str:
        material = specification if scope is None else {"spec": specification, "scope": scope}
        key = f"query:{entity}:{fingerprint(material)}"
        return f"{key}:{suffix}" if suffix else key

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            return await self.provider.get(self._key(key))
        except Exception as e:
            logger.warning(f"Cache get error for '{key}': {e}")
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        if not self.enabled:
            return False
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        try:
            await self.provider.set(self._key(key), value, ttl)
            return True
        except Exception as e:
            logger.warning(f"Cache set error for '{key}': {e}")
            return False

    async def delete(self, key: str) -> bool:
        if not self.enabled:
            return False
        try:
            return await self.provider.delete(self._key(key))
        except Exception as e:
            logger.warning(f"Cache delete error for '{key}': {e}")
            return False

    async def clear(self) -> bool:
        if not self.enabled:
            return False
        try:
            await self.provider.clear()
            return True
        except Exception as e:
            logger.warning(f"Cache clear error: {e}")
            return False

    async def has(self, key: str) -> bool:
        if not self.enabled:
            return False
        try:
            return await self.provider.has(self._key(key))
        except Exception as e:
            logger.warning(f"Cache has error for '{key}': {e}")
            return False

    async def purge_expired(self) -> int:
        if not self.enabled:
            return 0
        try:
            return await self.provider.purge_expired()
        except Exception as e:
            logger.warning(f"Cache sweep error: {e}")
            return 0

    async def get_or_compute(
        self,
        key: str,
        factory: Factory,
        ttl_seconds: Optional[int] = None,
        coalesce: Optional[bool] = None,
    ) -> Any:
        """
        Return the cached value for ``key`` or compute, store and return it.

        ``factory`` may be a plain callable or return an awaitable.
        """
        if not self.enabled:
            return await _call(factory)

        cached = await self.get(key)
        if cached is not None:
            return cached

        coalesce = self.coalesce if coalesce is None else coalesce
        if not coalesce:
            value = await _call(factory)
            if value is not None:
                await self.set(key, value, ttl_seconds)
            return value

        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug(f"Awaiting in-flight computation for '{key}'")
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                # Leader was cancelled; this caller takes over
                return await self.get_or_compute(key, factory, ttl_seconds, coalesce=True)

        future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            value = await _call(factory)
            if value is not None:
                await self.set(key, value, ttl_seconds)
            future.set_result(value)
            return value
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unawaited future does not log a warning
            future.exception()
            raise
        finally:
            if not future.done():
                future.cancel()
            self._in_flight.pop(key, None)


async def _call(factory: Factory) -> Any:
    value = factory()
    if inspect.isawaitable(value):
        value = await value
    return value
