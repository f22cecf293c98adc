from fastapi import Header

from autotrack.core.cache import AggregationCache, get_dashboard_cache
from autotrack.core.exceptions import UnauthorizedError
from autotrack.core.limiter import TrackingRateLimiter, get_tracking_limiter
from autotrack.core.security import verify_admin_key


async def require_admin_key(
    x_admin_key: str | None = Header(None, alias="X-Admin-Key"),
) -> None:
    """Dependency to authenticate back-office requests via the admin API key."""
    if not x_admin_key or not verify_admin_key(x_admin_key):
        raise UnauthorizedError("Invalid admin key")


def get_cache() -> AggregationCache:
    """Dependency returning the process-wide dashboard cache."""
    return get_dashboard_cache()


def get_rate_limiter() -> TrackingRateLimiter:
    """Dependency returning the process-wide tracking rate limiter."""
    return get_tracking_limiter()
