"""Rate limiting.

Dashboard endpoints use the slowapi decorator. Tracking endpoints check the
per-IP quota by hand, after bot/internal filtering, so crawler traffic never
eats into a real visitor's budget.
"""

import logging
from functools import lru_cache

from limits import RateLimitItemPerSecond
from limits.aio.strategies import FixedWindowRateLimiter
from limits.storage import storage_from_string
from slowapi import Limiter
from slowapi.util import get_remote_address

from autotrack.core.config import settings

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, storage_uri=settings.RATELIMIT_STORAGE_URI)


class TrackingRateLimiter:
    """Fixed quota per client IP per window.

    The window opens on an IP's first hit and the count resets once it has
    elapsed. With the default memory storage every process enforces its own
    quota.
    """

    def __init__(self, quota: int, window_seconds: int, storage_uri: str = "memory://"):
        if not storage_uri.startswith("async+"):
            storage_uri = f"async+{storage_uri}"
        self.item = RateLimitItemPerSecond(quota, window_seconds, namespace="TRACK")
        self.storage = storage_from_string(storage_uri)
        self.strategy = FixedWindowRateLimiter(self.storage)

    async def hit(self, ip: str) -> bool:
        """Record one request from ``ip``; False once the quota is exhausted."""
        allowed: bool = await self.strategy.hit(self.item, ip)
        if not allowed:
            logger.info("Tracking rate limit exceeded for %s", ip)
        return allowed

    async def reset(self) -> None:
        await self.storage.reset()


@lru_cache
def get_tracking_limiter() -> TrackingRateLimiter:
    return TrackingRateLimiter(
        quota=settings.TRACKING_RATE_LIMIT,
        window_seconds=settings.TRACKING_RATE_WINDOW_SECONDS,
        storage_uri=settings.RATELIMIT_STORAGE_URI,
    )
