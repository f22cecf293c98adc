from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from autotrack.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def day_start(value: date | datetime) -> datetime:
    """Midnight UTC of the given day."""
    if isinstance(value, datetime):
        value = value.astimezone(timezone.utc).date()
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Half-open [start, end) UTC range covering ``day``."""
    start = day_start(day)
    return start, start + timedelta(days=1)


def as_int(value: Any) -> int:
    """Round a nullable SQL aggregate (float or Decimal) to an int."""
    if value is None:
        return 0
    return int(round(float(value)))


class BaseQueryService:
    """Shared time-ranged aggregate helpers for analytics services."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def count_between(
        self,
        model: type[Base],
        column: InstrumentedAttribute[Any],
        start: datetime,
        end: datetime | None = None,
    ) -> int:
        """Count rows of ``model`` whose ``column`` falls in [start, end)."""
        stmt = select(func.count()).select_from(model).where(column >= start)
        if end is not None:
            stmt = stmt.where(column < end)
        result = await self.db.execute(stmt)
        return int(result.scalar_one())

    async def avg_between(
        self,
        value: InstrumentedAttribute[Any],
        column: InstrumentedAttribute[Any],
        start: datetime,
        end: datetime | None = None,
    ) -> int:
        """Average of ``value`` over rows whose ``column`` falls in [start, end)."""
        stmt = select(func.avg(value)).where(column >= start)
        if end is not None:
            stmt = stmt.where(column < end)
        result = await self.db.execute(stmt)
        return as_int(result.scalar_one())
