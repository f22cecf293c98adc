import logging
from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from autotrack.api.deps import get_cache, require_admin_key
from autotrack.core.cache import AggregationCache
from autotrack.core.config import settings
from autotrack.core.exceptions import ServiceUnavailableError
from autotrack.core.limiter import limiter
from autotrack.db.session import get_db
from autotrack.schemas.analytics import DashboardResponse, SnapshotResponse
from autotrack.services.analytics_service import AnalyticsService
from autotrack.services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin_key)])


@router.get("/dashboard", response_model=DashboardResponse)
@limiter.limit(f"{settings.RATE_LIMIT_PER_MINUTE}/minute")
async def get_dashboard(
    request: Request,
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    cache: AggregationCache = Depends(get_cache),
):
    """Get the admin analytics dashboard for the last ``days`` days plus today."""
    service = AnalyticsService(db, cache)
    try:
        return await service.get_dashboard(days)
    except Exception:
        logger.exception("Failed to compute analytics dashboard (days=%d)", days)
        raise ServiceUnavailableError("Analytics unavailable") from None


@router.post("/snapshots", response_model=SnapshotResponse)
@limiter.limit(f"{settings.RATE_LIMIT_PER_MINUTE}/minute")
async def create_snapshot(
    request: Request,
    snapshot_date: date | None = Query(None, alias="date"),
    db: AsyncSession = Depends(get_db),
    cache: AggregationCache = Depends(get_cache),
):
    """Generate (or regenerate) the daily snapshot. Defaults to yesterday."""
    service = SnapshotService(db, cache)
    try:
        snapshot = await service.generate(snapshot_date)
    except SQLAlchemyError:
        logger.exception("Failed to generate snapshot for %s", snapshot_date or "yesterday")
        await db.rollback()
        raise ServiceUnavailableError("Snapshot generation failed") from None
    return SnapshotResponse(date=snapshot.date)
