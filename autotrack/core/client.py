"""Ambient request signals: client IP, coarse country and user-agent facets."""

from dataclasses import dataclass

from fastapi import Request

from autotrack.core.config import settings

UNKNOWN_COUNTRY = "Unknown"


@dataclass(frozen=True)
class UserAgentInfo:
    device: str
    browser: str
    os: str


def client_ip(request: Request, trusted_hops: int | None = None) -> str:
    """Resolve the originating IP, preferring proxy headers.

    With ``TRUSTED_PROXY_HOPS`` set, the address is read that many entries
    from the right of X-Forwarded-For, so a client cannot choose its own
    rate-limit key by prepending entries.
    """
    hops = settings.TRUSTED_PROXY_HOPS if trusted_hops is None else trusted_hops
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        entries = [part.strip() for part in forwarded.split(",") if part.strip()]
        if entries:
            if hops > 0:
                return entries[-min(hops, len(entries))]
            return entries[0]
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def detect_country(request: Request) -> str:
    """Country code from the edge/CDN geo header, if any."""
    for header in settings.COUNTRY_HEADERS:
        value = request.headers.get(header)
        if value and value.strip():
            return value.strip().upper()[:64]
    return UNKNOWN_COUNTRY


def parse_user_agent(ua: str | None) -> UserAgentInfo:
    """Bucket a user-agent string into device class, browser and OS."""
    if not ua:
        return UserAgentInfo(device="Desktop", browser="Unknown", os="Unknown")

    # Order matters: Edge and Opera UAs also contain "Chrome/", Chrome contains "Safari/"
    if "Edg/" in ua or "EdgA/" in ua or "EdgiOS/" in ua:
        browser = "Edge"
    elif "OPR/" in ua or "Opera" in ua:
        browser = "Opera"
    elif "Chrome/" in ua or "CriOS/" in ua:
        browser = "Chrome"
    elif "Firefox/" in ua or "FxiOS/" in ua:
        browser = "Firefox"
    elif "Safari/" in ua:
        browser = "Safari"
    else:
        browser = "Other"

    # Android UAs contain "Linux"; iOS UAs contain "like Mac OS X"
    if "Android" in ua:
        os_name = "Android"
    elif "iPhone" in ua or "iPad" in ua or "iPod" in ua:
        os_name = "iOS"
    elif "Windows" in ua or "Win64" in ua:
        os_name = "Windows"
    elif "Macintosh" in ua or "Mac OS X" in ua:
        os_name = "macOS"
    elif "Linux" in ua or "X11" in ua:
        os_name = "Linux"
    else:
        os_name = "Other"

    if "iPad" in ua or "Tablet" in ua or ("Android" in ua and "Mobi" not in ua):
        device = "Tablet"
    elif "Mobi" in ua or "iPhone" in ua or "Android" in ua:
        device = "Mobile"
    else:
        device = "Desktop"

    return UserAgentInfo(device=device, browser=browser, os=os_name)
