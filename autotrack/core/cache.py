"""Read-through cache in front of the dashboard rollup.

Entries live for a short fixed TTL and are dropped early by prefix whenever a
write changes the near-term numbers. The default backend is process-local, so
each server process keeps its own copy; the Redis backend shares entries
across processes.
"""

import json
import logging
import time
from collections.abc import Callable
from functools import lru_cache
from typing import Any, Protocol

from autotrack.core.config import settings
from autotrack.core.redis import safe_redis_delete_prefix, safe_redis_get, safe_redis_setex

logger = logging.getLogger(__name__)

DASHBOARD_PREFIX = "dashboard"


def dashboard_key(days: int) -> str:
    return f"{DASHBOARD_PREFIX}:{days}"


class AggregationCache(Protocol):
    ttl: int

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None: ...

    async def invalidate(self, prefix: str) -> int: ...

    async def clear(self) -> None: ...


class MemoryCache:
    """Process-local TTL cache.

    No locking: entries are only touched from the event loop thread.
    """

    def __init__(self, ttl: int, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        self._entries[key] = (self._clock() + (ttl or self.ttl), value)

    async def invalidate(self, prefix: str) -> int:
        stale = [key for key in self._entries if key.startswith(prefix)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    async def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCache:
    """Redis-backed cache for multi-process deployments.

    Values must be JSON-serialisable. Redis failures degrade to cache misses.
    """

    def __init__(self, ttl: int, namespace: str = "autotrack:cache:", client: Any = None):
        self.ttl = ttl
        self.namespace = namespace
        self._client = client

    async def get(self, key: str) -> Any | None:
        raw = await safe_redis_get(self.namespace + key, client=self._client)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        await safe_redis_setex(
            self.namespace + key,
            ttl or self.ttl,
            json.dumps(value, default=str),
            client=self._client,
        )

    async def invalidate(self, prefix: str) -> int:
        return await safe_redis_delete_prefix(self.namespace + prefix, client=self._client)

    async def clear(self) -> None:
        await safe_redis_delete_prefix(self.namespace, client=self._client)


@lru_cache
def get_dashboard_cache() -> AggregationCache:
    """Process-wide dashboard cache, built from settings on first use."""
    if settings.CACHE_BACKEND == "redis":
        logger.info("Using Redis dashboard cache")
        return RedisCache(ttl=settings.DASHBOARD_CACHE_TTL_SECONDS)
    return MemoryCache(ttl=settings.DASHBOARD_CACHE_TTL_SECONDS)
