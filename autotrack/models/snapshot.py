import datetime as dt

from sqlalchemy import Date, Float, Integer
from sqlalchemy.orm import Mapped, mapped_column

from autotrack.db.base import Base
from autotrack.models.base import TimestampMixin


class AnalyticsDailySnapshot(Base, TimestampMixin):
    """Frozen totals for one closed UTC day, written by the snapshot job."""

    __tablename__ = "analytics_daily_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    date: Mapped[dt.date] = mapped_column(Date, unique=True, nullable=False, index=True)
    total_visitors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_page_views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_product_views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_enquiries: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    avg_product_view_duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    view_to_enquiry_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    # Reserved, not computed yet
    avg_session_duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bounce_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
