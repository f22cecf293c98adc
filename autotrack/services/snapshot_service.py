import logging
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autotrack.core.cache import DASHBOARD_PREFIX, AggregationCache
from autotrack.core.exceptions import BadRequestError
from autotrack.models.catalog import Enquiry
from autotrack.models.event import PageView, ProductView
from autotrack.models.snapshot import AnalyticsDailySnapshot
from autotrack.models.visitor import Visitor, VisitorSession
from autotrack.services.base import BaseQueryService, day_bounds, utcnow

logger = logging.getLogger(__name__)


class SnapshotService(BaseQueryService):
    """Freezes one closed day's totals into an AnalyticsDailySnapshot row."""

    def __init__(self, db: AsyncSession, cache: AggregationCache | None = None):
        super().__init__(db)
        self.cache = cache

    async def generate(
        self, day: date | None = None, *, now: datetime | None = None
    ) -> AnalyticsDailySnapshot:
        """Compute and upsert the snapshot for ``day`` (default: yesterday, UTC).

        Idempotent: re-running overwrites the row with freshly computed values.

        Raises:
            BadRequestError: If ``day`` is today or in the future.
        """
        now = now or utcnow()
        today = now.date()
        if day is None:
            day = today - timedelta(days=1)
        if day >= today:
            raise BadRequestError("Snapshots can only be generated for completed days")

        start, end = day_bounds(day)

        totals = {
            "total_visitors": await self.count_between(Visitor, Visitor.first_seen, start, end),
            "total_sessions": await self.count_between(
                VisitorSession, VisitorSession.started_at, start, end
            ),
            "total_page_views": await self.count_between(PageView, PageView.created_at, start, end),
            "total_product_views": await self.count_between(
                ProductView, ProductView.viewed_at, start, end
            ),
            "total_enquiries": await self.count_between(Enquiry, Enquiry.created_at, start, end),
            "avg_product_view_duration_ms": await self.avg_between(
                ProductView.duration_ms, ProductView.viewed_at, start, end
            ),
        }
        product_views = totals["total_product_views"]
        view_to_enquiry_rate = (
            totals["total_enquiries"] / product_views * 100 if product_views else 0.0
        )

        # Upsert: try to update existing snapshot, else insert
        existing = await self.db.execute(
            select(AnalyticsDailySnapshot).where(AnalyticsDailySnapshot.date == day)
        )
        snapshot = existing.scalar_one_or_none()

        if snapshot is None:
            snapshot = AnalyticsDailySnapshot(date=day)
            self.db.add(snapshot)

        for field, value in totals.items():
            setattr(snapshot, field, value)
        snapshot.view_to_enquiry_rate = view_to_enquiry_rate
        snapshot.avg_session_duration_ms = None
        snapshot.bounce_rate = None

        await self.db.commit()
        await self.db.refresh(snapshot)
        logger.info(
            "Snapshot for %s: %d visitors, %d page views, %d product views",
            day,
            snapshot.total_visitors,
            snapshot.total_page_views,
            snapshot.total_product_views,
        )

        # Yesterday moves from "missing" to "snapshotted" in every window
        if self.cache is not None:
            await self.cache.invalidate(DASHBOARD_PREFIX)
        return snapshot
