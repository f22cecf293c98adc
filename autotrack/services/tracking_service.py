import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autotrack.core.cache import DASHBOARD_PREFIX, AggregationCache
from autotrack.core.client import parse_user_agent
from autotrack.core.config import settings
from autotrack.core.security import hash_ip, parse_visitor_id
from autotrack.models.event import PageView, ProductView, SocialClickEvent
from autotrack.schemas.tracking import PageViewIn, ProductViewIn, SocialClickData
from autotrack.services.base import utcnow
from autotrack.services.identity_service import IdentityService, ResolvedIdentity

logger = logging.getLogger(__name__)

SOCIAL_CLICK_EVENT = "team_social_click"


class TrackOutcome(str, enum.Enum):
    RECORDED = "recorded"
    DEDUPLICATED = "deduplicated"
    FILTERED = "filtered"


@dataclass
class TrackResult:
    outcome: TrackOutcome
    identity: ResolvedIdentity | None = None


@dataclass
class PageViewResult:
    outcome: TrackOutcome
    identity: ResolvedIdentity


class TrackingService:
    """Deduplicates and records page views, product views and click events.

    Each ``track_*`` call commits its own unit of work.
    """

    def __init__(self, db: AsyncSession, cache: AggregationCache | None = None):
        self.db = db
        self.cache = cache

    def _dedup_cutoff(self, now: datetime) -> datetime:
        return now - timedelta(seconds=settings.DEDUP_WINDOW_SECONDS)

    async def is_duplicate_page_view(self, visitor_id: str, path: str, now: datetime) -> bool:
        result = await self.db.execute(
            select(PageView.id)
            .where(
                PageView.visitor_id == visitor_id,
                PageView.path == path,
                PageView.created_at >= self._dedup_cutoff(now),
            )
            .limit(1)
        )
        return result.first() is not None

    async def is_duplicate_product_view(self, visitor_id: str, car_id: str, now: datetime) -> bool:
        result = await self.db.execute(
            select(ProductView.id)
            .where(
                ProductView.visitor_id == visitor_id,
                ProductView.car_id == car_id,
                ProductView.viewed_at >= self._dedup_cutoff(now),
            )
            .limit(1)
        )
        return result.first() is not None

    async def track_page_view(
        self,
        data: PageViewIn,
        *,
        visitor_cookie: str | None,
        ip: str,
        user_agent: str | None,
        country: str,
        now: datetime | None = None,
    ) -> PageViewResult:
        now = now or utcnow()
        identity = await IdentityService(self.db).resolve(
            visitor_cookie, ip=ip, user_agent=user_agent, country=country, now=now
        )

        if await self.is_duplicate_page_view(identity.visitor_id, data.path, now):
            # Visitor/session activity is still worth keeping
            await self.db.commit()
            return PageViewResult(TrackOutcome.DEDUPLICATED, identity)

        ua = parse_user_agent(user_agent)
        self.db.add(
            PageView(
                visitor_id=identity.visitor_id,
                session_id=identity.session.id,
                path=data.path,
                referrer=data.referer,
                device=ua.device,
                browser=ua.browser,
                os=ua.os,
                country=country,
                created_at=now,
            )
        )
        await self.db.commit()
        return PageViewResult(TrackOutcome.RECORDED, identity)

    async def track_product_view(
        self,
        data: ProductViewIn,
        *,
        visitor_cookie: str | None,
        ip: str,
        user_agent: str | None,
        country: str,
        now: datetime | None = None,
    ) -> TrackResult:
        # Short glances are not real views; nothing is written for them
        if data.duration_ms < settings.MIN_PRODUCT_VIEW_MS:
            return TrackResult(TrackOutcome.FILTERED)

        now = now or utcnow()
        identity = await IdentityService(self.db).resolve(
            visitor_cookie, ip=ip, user_agent=user_agent, country=country, now=now
        )

        if await self.is_duplicate_product_view(identity.visitor_id, data.car_id, now):
            await self.db.commit()
            return TrackResult(TrackOutcome.DEDUPLICATED, identity)

        self.db.add(
            ProductView(
                visitor_id=identity.visitor_id,
                session_id=identity.session.id,
                car_id=data.car_id,
                duration_ms=data.duration_ms,
                scroll_depth=data.scroll_depth,
                source=data.source,
                referrer=data.referer,
                viewed_at=now,
            )
        )
        await self.db.commit()

        if self.cache is not None:
            await self.cache.invalidate(DASHBOARD_PREFIX)
        return TrackResult(TrackOutcome.RECORDED, identity)

    async def track_social_click(
        self,
        data: SocialClickData,
        *,
        visitor_cookie: str | None,
        ip: str,
        now: datetime | None = None,
    ) -> TrackResult:
        """Record a team social-link click. Does not create visitors or sessions."""
        now = now or utcnow()
        self.db.add(
            SocialClickEvent(
                member_name=data.member_name,
                platform=data.platform,
                visitor_id=parse_visitor_id(visitor_cookie),
                ip_hash=hash_ip(ip, now),
                created_at=now,
            )
        )
        await self.db.commit()
        return TrackResult(TrackOutcome.RECORDED)
