import hashlib
import hmac
import uuid
from datetime import datetime, timezone

from autotrack.core.config import settings


def hash_ip(ip: str, now: datetime | None = None) -> str:
    """Hash an IP address with HMAC-SHA256 using a daily-rotating key.

    The key is derived from SECRET_KEY + current UTC date, so hashes
    naturally rotate every 24 hours, preventing long-term tracking
    while still allowing same-day correlation.
    """
    day = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    key = f"{settings.SECRET_KEY}:{day}".encode()
    return hmac.new(key, ip.encode(), hashlib.sha256).hexdigest()


def generate_visitor_id() -> str:
    """Mint a new random, unguessable visitor identifier."""
    return str(uuid.uuid4())


def parse_visitor_id(value: str | None) -> str | None:
    """Return the canonical visitor id from a cookie value, or None if unusable."""
    if not value:
        return None
    try:
        return str(uuid.UUID(value))
    except ValueError:
        return None


def verify_admin_key(candidate: str) -> bool:
    """Constant-time comparison against the configured admin key."""
    return hmac.compare_digest(candidate.encode(), settings.ADMIN_API_KEY.encode())
