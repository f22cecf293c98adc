"""Request classification: crawlers and internal traffic are dropped silently."""

import ipaddress
import logging
import re
from functools import lru_cache

from autotrack.core.config import settings

logger = logging.getLogger(__name__)

BOT_SIGNATURES = [
    "bot",
    "crawl",
    "spider",
    "slurp",
    "mediapartners",
    "googlebot",
    "bingbot",
    "yandex",
    "baidu",
    "duckduck",
    "facebookexternalhit",
    "twitterbot",
    "whatsapp",
    "telegram",
    "lighthouse",
    "gtmetrix",
    "pingdom",
    "uptimerobot",
    # Headless / automation
    "headless",
    "phantomjs",
    "puppeteer",
    "playwright",
    "selenium",
]

_BOT_PATTERN = re.compile("|".join(re.escape(s) for s in BOT_SIGNATURES), re.IGNORECASE)

INTERNAL_HOSTS = {"localhost"}

Network = ipaddress.IPv4Network | ipaddress.IPv6Network


def is_bot(user_agent: str | None) -> bool:
    """Return True for crawler user agents. A missing UA is treated as a bot."""
    if not user_agent:
        return True
    return _BOT_PATTERN.search(user_agent) is not None


@lru_cache
def _configured_networks(ranges: tuple[str, ...]) -> tuple[Network, ...]:
    networks: list[Network] = []
    for cidr in ranges:
        try:
            networks.append(ipaddress.ip_network(cidr, strict=False))
        except ValueError:
            logger.warning("Ignoring invalid INTERNAL_IP_RANGES entry: %s", cidr)
    return tuple(networks)


def is_internal_ip(ip: str, extra_ranges: list[str] | None = None) -> bool:
    """Return True for loopback/private/link-local addresses and configured ranges."""
    if ip in INTERNAL_HOSTS:
        return True
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False

    if addr.is_loopback or addr.is_private or addr.is_link_local:
        return True

    ranges = extra_ranges if extra_ranges is not None else settings.INTERNAL_IP_RANGES
    return any(
        addr.version == net.version and addr in net
        for net in _configured_networks(tuple(ranges))
    )


def should_reject(user_agent: str | None, ip: str) -> bool:
    """Classify a tracking request; True means accept-and-ignore."""
    return is_bot(user_agent) or is_internal_ip(ip)
