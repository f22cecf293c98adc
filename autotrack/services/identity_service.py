import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from autotrack.core.client import UNKNOWN_COUNTRY
from autotrack.core.config import settings
from autotrack.core.security import generate_visitor_id, hash_ip, parse_visitor_id
from autotrack.models.visitor import Visitor, VisitorSession
from autotrack.services.base import utcnow

logger = logging.getLogger(__name__)


@dataclass
class ResolvedIdentity:
    visitor_id: str
    is_new_visitor: bool
    session: VisitorSession


class IdentityService:
    """Resolves the anonymous visitor and their open session for a tracking request."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(
        self,
        visitor_cookie: str | None,
        *,
        ip: str,
        user_agent: str | None,
        country: str,
        now: datetime | None = None,
    ) -> ResolvedIdentity:
        """Return the visitor id, whether it was just minted, and the active session.

        A cookie that is not a valid visitor id is treated as absent.
        """
        now = now or utcnow()
        visitor_id = parse_visitor_id(visitor_cookie)
        is_new_visitor = visitor_id is None
        if visitor_id is None:
            visitor_id = generate_visitor_id()

        await self._upsert_visitor(visitor_id, ip=ip, user_agent=user_agent, country=country, now=now)
        session = await self._touch_session(visitor_id, now)
        return ResolvedIdentity(visitor_id=visitor_id, is_new_visitor=is_new_visitor, session=session)

    async def _upsert_visitor(
        self,
        visitor_id: str,
        *,
        ip: str,
        user_agent: str | None,
        country: str,
        now: datetime,
    ) -> Visitor:
        ip_hash = hash_ip(ip, now)
        visitor = await self.db.get(Visitor, visitor_id)

        if visitor is None:
            visitor = Visitor(
                id=visitor_id,
                ip_hash=ip_hash,
                user_agent=user_agent,
                country=country,
                first_seen=now,
                last_seen=now,
            )
            self.db.add(visitor)
            try:
                await self.db.flush()
                return visitor
            except IntegrityError:
                # Concurrent first request for the same cookie won the insert
                await self.db.rollback()
                logger.info("Visitor %s created concurrently, updating instead", visitor_id)
                visitor = await self.db.get(Visitor, visitor_id)
                if visitor is None:
                    raise

        # Facets are refreshed to follow VPN / travel changes
        visitor.last_seen = now
        visitor.ip_hash = ip_hash
        if user_agent:
            visitor.user_agent = user_agent
        if country != UNKNOWN_COUNTRY:
            visitor.country = country
        await self.db.flush()
        return visitor

    async def _touch_session(self, visitor_id: str, now: datetime) -> VisitorSession:
        """Extend the visitor's open session or start a new one.

        Read-then-write without a lock: two simultaneous requests can both
        start a session. Sessions are an estimate, so that is tolerated.
        """
        cutoff = now - timedelta(minutes=settings.SESSION_TIMEOUT_MINUTES)
        result = await self.db.execute(
            select(VisitorSession)
            .where(
                VisitorSession.visitor_id == visitor_id,
                VisitorSession.last_activity_at >= cutoff,
            )
            .order_by(VisitorSession.last_activity_at.desc())
            .limit(1)
        )
        session = result.scalar_one_or_none()

        if session is not None:
            session.last_activity_at = now
        else:
            session = VisitorSession(visitor_id=visitor_id, started_at=now, last_activity_at=now)
            self.db.add(session)

        await self.db.flush()
        return session
