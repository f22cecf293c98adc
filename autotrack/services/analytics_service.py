import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from autotrack.core.cache import AggregationCache, dashboard_key
from autotrack.core.config import settings
from autotrack.models.catalog import Car, Enquiry
from autotrack.models.event import PageView, ProductView
from autotrack.models.snapshot import AnalyticsDailySnapshot
from autotrack.models.visitor import Visitor, VisitorSession
from autotrack.schemas.analytics import (
    CarSummary,
    CountryCount,
    DailySnapshot,
    DashboardResponse,
    DeviceCount,
    FunnelStage,
    OverviewMetrics,
    RecentActivity,
    TopCar,
)
from autotrack.services.base import BaseQueryService, as_int, day_start, utcnow

logger = logging.getLogger(__name__)

DEFAULT_DEVICE = "Desktop"


def percentage(numerator: int, denominator: int, places: int = 2) -> str:
    """``numerator / denominator * 100`` formatted to ``places`` decimals, "0" when undefined."""
    if not denominator:
        return "0"
    return f"{numerator / denominator * 100:.{places}f}"


class AnalyticsService(BaseQueryService):
    """Dashboard rollups.

    Scalar totals come from frozen daily snapshots for every full day in the
    window plus live counts for today. Breakdowns (top cars, countries,
    devices) are computed live over the whole window, bounded by LIMITs.
    """

    def __init__(self, db: AsyncSession, cache: AggregationCache | None = None):
        super().__init__(db)
        self.cache = cache

    async def get_dashboard(self, days: int) -> dict[str, Any]:
        """Read-through cached dashboard payload (camelCase JSON-ready dict)."""
        key = dashboard_key(days)
        if self.cache is not None:
            cached = await self.cache.get(key)
            if cached is not None:
                return cached  # type: ignore[no-any-return]

        dashboard = await self.compute_dashboard(days)
        data = dashboard.model_dump(mode="json", by_alias=True)

        if self.cache is not None:
            await self.cache.set(key, data)
        return data

    async def compute_dashboard(self, days: int, now: datetime | None = None) -> DashboardResponse:
        """Compute the dashboard for the last ``days`` full days plus today."""
        now = now or utcnow()
        today = day_start(now)
        start = today - timedelta(days=days)
        logger.debug("Computing dashboard for %d days (%s to %s)", days, start, now)

        snapshots = await self._get_snapshots(start, today)
        overview = await self._get_overview(snapshots, today, now)

        return DashboardResponse(
            days=days,
            period_start=start,
            generated_at=now,
            overview=overview,
            top_cars=await self.get_top_cars(start),
            top_countries=await self.get_top_countries(start),
            device_stats=await self.get_device_stats(start),
            recent_activity=await self.get_recent_activity(now),
            funnel=await self.get_funnel(start),
            snapshots=[DailySnapshot.model_validate(s) for s in snapshots],
        )

    async def _get_snapshots(
        self, start: datetime, today: datetime
    ) -> list[AnalyticsDailySnapshot]:
        result = await self.db.execute(
            select(AnalyticsDailySnapshot)
            .where(
                AnalyticsDailySnapshot.date >= start.date(),
                AnalyticsDailySnapshot.date < today.date(),
            )
            .order_by(AnalyticsDailySnapshot.date.asc())
        )
        return list(result.scalars().all())

    async def _get_overview(
        self,
        snapshots: list[AnalyticsDailySnapshot],
        today: datetime,
        now: datetime,
    ) -> OverviewMetrics:
        # --- Historical portion: frozen snapshot rows ---
        hist_visitors = sum(s.total_visitors for s in snapshots)
        hist_sessions = sum(s.total_sessions for s in snapshots)
        hist_page_views = sum(s.total_page_views for s in snapshots)
        hist_product_views = sum(s.total_product_views for s in snapshots)
        hist_enquiries = sum(s.total_enquiries for s in snapshots)

        # --- Live portion: today has no snapshot yet ---
        live_visitors = await self.count_between(Visitor, Visitor.first_seen, today)
        live_sessions = await self.count_between(VisitorSession, VisitorSession.started_at, today)
        live_page_views = await self.count_between(PageView, PageView.created_at, today)
        live_product_views = await self.count_between(ProductView, ProductView.viewed_at, today)
        live_enquiries = await self.count_between(Enquiry, Enquiry.created_at, today)

        session_cutoff = now - timedelta(minutes=settings.SESSION_TIMEOUT_MINUTES)
        active_sessions = await self.count_between(
            VisitorSession, VisitorSession.last_activity_at, session_cutoff
        )

        total_product_views = hist_product_views + live_product_views
        total_enquiries = hist_enquiries + live_enquiries

        return OverviewMetrics(
            total_visitors=hist_visitors + live_visitors,
            total_sessions=hist_sessions + live_sessions,
            total_page_views=hist_page_views + live_page_views,
            total_product_views=total_product_views,
            total_enquiries=total_enquiries,
            active_sessions=active_sessions,
            conversion_rate=percentage(total_enquiries, total_product_views, 2),
        )

    async def get_top_cars(self, start: datetime, limit: int | None = None) -> list[TopCar]:
        """Most viewed listings in the window, enriched with engagement and enquiries.

        Ties on view count fall back to whichever listing was first viewed.
        """
        limit = limit or settings.TOP_LISTINGS_LIMIT
        views = func.count(ProductView.id).label("views")
        result = await self.db.execute(
            select(
                ProductView.car_id,
                views,
                func.avg(ProductView.duration_ms).label("avg_duration"),
                func.avg(ProductView.scroll_depth).label("avg_scroll"),
            )
            .where(ProductView.viewed_at >= start)
            .group_by(ProductView.car_id)
            .order_by(views.desc(), func.min(ProductView.id).asc())
            .limit(limit)
        )
        rows = result.all()
        if not rows:
            return []

        car_ids = [row.car_id for row in rows]

        enquiry_result = await self.db.execute(
            select(Enquiry.car_id, func.count(Enquiry.id))
            .where(Enquiry.car_id.in_(car_ids), Enquiry.created_at >= start)
            .group_by(Enquiry.car_id)
        )
        enquiries_by_car: dict[str, int] = {car_id: cnt for car_id, cnt in enquiry_result.all()}

        car_result = await self.db.execute(select(Car).where(Car.id.in_(car_ids)))
        cars = {car.id: car for car in car_result.scalars().all()}

        top: list[TopCar] = []
        for row in rows:
            car = cars.get(row.car_id)
            enquiries = enquiries_by_car.get(row.car_id, 0)
            top.append(
                TopCar(
                    car_id=row.car_id,
                    car=CarSummary.model_validate(car) if car else None,
                    views=row.views,
                    avg_duration=as_int(row.avg_duration),
                    avg_scroll=as_int(row.avg_scroll),
                    enquiries=enquiries,
                    conversion_rate=percentage(enquiries, row.views, 2),
                )
            )
        return top

    async def get_top_countries(
        self, start: datetime, limit: int | None = None
    ) -> list[CountryCount]:
        """Countries ranked by visitors first seen in the window."""
        limit = limit or settings.TOP_COUNTRIES_LIMIT
        cnt = func.count(Visitor.id).label("cnt")
        result = await self.db.execute(
            select(Visitor.country, cnt)
            .where(Visitor.first_seen >= start)
            .group_by(Visitor.country)
            .order_by(cnt.desc(), Visitor.country.asc())
            .limit(limit)
        )
        return [CountryCount(country=row[0], count=row[1]) for row in result.all()]

    async def get_device_stats(self, start: datetime) -> list[DeviceCount]:
        """Page views per device class; unclassified rows count as desktop."""
        result = await self.db.execute(
            select(PageView.device, func.count(PageView.id))
            .where(PageView.created_at >= start)
            .group_by(PageView.device)
        )
        counts: dict[str, int] = {}
        for device, cnt in result.all():
            key = device or DEFAULT_DEVICE
            counts[key] = counts.get(key, 0) + cnt

        ordered = sorted(counts.items(), key=lambda x: (-x[1], x[0]))
        return [DeviceCount(type=device, count=cnt) for device, cnt in ordered]

    async def get_recent_activity(self, now: datetime) -> list[RecentActivity]:
        since = now - timedelta(minutes=settings.RECENT_ACTIVITY_MINUTES)
        result = await self.db.execute(
            select(PageView)
            .where(PageView.created_at >= since)
            .order_by(PageView.created_at.desc(), PageView.id.desc())
            .limit(settings.RECENT_ACTIVITY_LIMIT)
        )
        return [RecentActivity.model_validate(pv) for pv in result.scalars().all()]

    async def get_funnel(self, start: datetime) -> list[FunnelStage]:
        """Visitors → product views → enquiries, each as a share of the stage before."""
        visitors = await self.count_between(Visitor, Visitor.first_seen, start)
        product_views = await self.count_between(ProductView, ProductView.viewed_at, start)
        enquiries = await self.count_between(Enquiry, Enquiry.created_at, start)

        return [
            FunnelStage(stage="Visitors", count=visitors, percentage="100" if visitors else "0"),
            FunnelStage(
                stage="Product Views",
                count=product_views,
                percentage=percentage(product_views, visitors, 1),
            ),
            FunnelStage(
                stage="Enquiries",
                count=enquiries,
                percentage=percentage(enquiries, product_views, 1),
            ),
        ]
