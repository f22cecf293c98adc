import datetime as dt

from autotrack.schemas.common import CamelModel


class OverviewMetrics(CamelModel):
    """Headline totals: frozen daily snapshots plus today's live counts."""

    total_visitors: int
    total_sessions: int
    total_page_views: int
    total_product_views: int
    total_enquiries: int
    active_sessions: int
    conversion_rate: str


class CarSummary(CamelModel):
    id: str
    make: str
    model: str
    year: int | None
    price: float | None
    status: str


class TopCar(CamelModel):
    """Per-listing engagement over the whole window."""

    car_id: str
    car: CarSummary | None
    views: int
    avg_duration: int
    avg_scroll: int
    enquiries: int
    conversion_rate: str


class CountryCount(CamelModel):
    country: str
    count: int


class DeviceCount(CamelModel):
    type: str
    count: int


class RecentActivity(CamelModel):
    id: int
    path: str
    device: str | None
    country: str
    created_at: dt.datetime


class FunnelStage(CamelModel):
    stage: str
    count: int
    percentage: str


class DailySnapshot(CamelModel):
    date: dt.date
    total_visitors: int
    total_sessions: int
    total_page_views: int
    total_product_views: int
    total_enquiries: int
    avg_product_view_duration_ms: int
    view_to_enquiry_rate: float


class DashboardResponse(CamelModel):
    """Everything the admin analytics page renders."""

    days: int
    period_start: dt.datetime
    generated_at: dt.datetime
    overview: OverviewMetrics
    top_cars: list[TopCar]
    top_countries: list[CountryCount]
    device_stats: list[DeviceCount]
    recent_activity: list[RecentActivity]
    funnel: list[FunnelStage]
    snapshots: list[DailySnapshot]


class SnapshotResponse(CamelModel):
    success: bool = True
    date: dt.date
