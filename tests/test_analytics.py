import uuid
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from autotrack.core.cache import MemoryCache, dashboard_key
from autotrack.models.catalog import Enquiry
from autotrack.models.event import PageView, ProductView
from autotrack.models.snapshot import AnalyticsDailySnapshot
from autotrack.models.visitor import Visitor, VisitorSession
from autotrack.services.analytics_service import AnalyticsService

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
TODAY = datetime(2024, 5, 10, tzinfo=timezone.utc)


async def _visitor(
    db: AsyncSession, first_seen: datetime, country: str = "KE"
) -> tuple[Visitor, VisitorSession]:
    visitor = Visitor(
        id=str(uuid.uuid4()),
        country=country,
        first_seen=first_seen,
        last_seen=first_seen,
    )
    db.add(visitor)
    session = VisitorSession(visitor_id=visitor.id, started_at=first_seen, last_activity_at=first_seen)
    db.add(session)
    await db.flush()
    return visitor, session


def _page_view(visitor, session, at, path="/", device="Desktop", country="KE") -> PageView:
    return PageView(
        visitor_id=visitor.id,
        session_id=session.id,
        path=path,
        device=device,
        browser="Chrome",
        os="Windows",
        country=country,
        created_at=at,
    )


def _product_view(visitor, session, at, car_id, duration_ms=10000, scroll_depth=50) -> ProductView:
    return ProductView(
        visitor_id=visitor.id,
        session_id=session.id,
        car_id=car_id,
        duration_ms=duration_ms,
        scroll_depth=scroll_depth,
        viewed_at=at,
    )


def _enquiry(at, car_id=None) -> Enquiry:
    return Enquiry(
        car_id=car_id,
        user_name="Buyer",
        user_email="buyer@example.com",
        message="Is it still available?",
        created_at=at,
    )


def _snapshot(day: date, visitors=0, sessions=0, page_views=0, product_views=0, enquiries=0):
    return AnalyticsDailySnapshot(
        date=day,
        total_visitors=visitors,
        total_sessions=sessions,
        total_page_views=page_views,
        total_product_views=product_views,
        total_enquiries=enquiries,
        avg_product_view_duration_ms=0,
        view_to_enquiry_rate=0.0,
    )


# --- Rollup engine -----------------------------------------------------------


@pytest.mark.asyncio
async def test_empty_dashboard_has_no_division_by_zero(db_session: AsyncSession):
    dashboard = await AnalyticsService(db_session).compute_dashboard(30, now=NOW)

    assert dashboard.overview.total_visitors == 0
    assert dashboard.overview.conversion_rate == "0"
    assert dashboard.top_cars == []
    assert dashboard.top_countries == []
    assert dashboard.device_stats == []
    assert dashboard.recent_activity == []
    assert dashboard.snapshots == []
    assert [(s.stage, s.count, s.percentage) for s in dashboard.funnel] == [
        ("Visitors", 0, "0"),
        ("Product Views", 0, "0"),
        ("Enquiries", 0, "0"),
    ]


@pytest.mark.asyncio
async def test_window_bounds(db_session: AsyncSession):
    dashboard = await AnalyticsService(db_session).compute_dashboard(7, now=NOW)

    assert dashboard.days == 7
    assert dashboard.period_start == TODAY - timedelta(days=7)
    assert dashboard.generated_at == NOW


@pytest.mark.asyncio
async def test_overview_sums_snapshots_and_live_today(db_session: AsyncSession):
    """Closed days come from snapshots, today from live rows."""
    db_session.add_all(
        [
            _snapshot(date(2024, 5, 9), visitors=10, sessions=12, page_views=40, product_views=8, enquiries=2),
            _snapshot(date(2024, 5, 7), visitors=5, sessions=5, page_views=20, product_views=2, enquiries=0),
            # Outside a 7-day window
            _snapshot(date(2024, 5, 1), visitors=100, sessions=100, page_views=100, product_views=100),
        ]
    )
    # Live rows for today; yesterday's raw rows must not be double counted
    visitor, session = await _visitor(db_session, TODAY + timedelta(hours=9))
    old_visitor, old_session = await _visitor(db_session, TODAY - timedelta(hours=5), country="TZ")
    db_session.add_all(
        [
            _page_view(visitor, session, TODAY + timedelta(hours=9)),
            _page_view(visitor, session, TODAY + timedelta(hours=9, minutes=1), path="/cars"),
            _product_view(visitor, session, TODAY + timedelta(hours=9, minutes=2), "car-1"),
            _page_view(old_visitor, old_session, TODAY - timedelta(hours=5)),
            _enquiry(TODAY + timedelta(hours=10), "car-1"),
        ]
    )
    await db_session.commit()

    dashboard = await AnalyticsService(db_session).compute_dashboard(7, now=NOW)
    overview = dashboard.overview

    assert overview.total_visitors == 10 + 5 + 1
    assert overview.total_sessions == 12 + 5 + 1
    assert overview.total_page_views == 40 + 20 + 2
    assert overview.total_product_views == 8 + 2 + 1
    assert overview.total_enquiries == 2 + 0 + 1
    assert overview.conversion_rate == "27.27"
    assert [s.date for s in dashboard.snapshots] == [date(2024, 5, 7), date(2024, 5, 9)]


@pytest.mark.asyncio
async def test_active_sessions(db_session: AsyncSession):
    await _visitor(db_session, NOW - timedelta(minutes=10))
    await _visitor(db_session, NOW - timedelta(minutes=45))
    await db_session.commit()

    dashboard = await AnalyticsService(db_session).compute_dashboard(30, now=NOW)
    assert dashboard.overview.active_sessions == 1


@pytest.mark.asyncio
async def test_top_cars(db_session: AsyncSession, cars):
    visitor, session = await _visitor(db_session, TODAY - timedelta(days=3))
    day = TODAY - timedelta(days=2)
    db_session.add_all(
        [
            _product_view(visitor, session, day, "car-3", duration_ms=4000, scroll_depth=10),
            _product_view(visitor, session, day + timedelta(minutes=1), "car-1", 10000, 40),
            _product_view(visitor, session, day + timedelta(minutes=2), "car-1", 20000, 60),
            _product_view(visitor, session, day + timedelta(minutes=3), "car-2", 5000, 90),
            _product_view(visitor, session, day + timedelta(minutes=4), "car-1", 30000, 80),
            # Listing missing from the catalog still ranks
            _product_view(visitor, session, day + timedelta(minutes=5), "gone-9", 6000, 20),
            _product_view(visitor, session, day + timedelta(minutes=6), "gone-9", 6000, 20),
            # Before the window
            _product_view(visitor, session, TODAY - timedelta(days=40), "car-2", 5000, 90),
            _enquiry(day + timedelta(hours=1), "car-1"),
            _enquiry(TODAY - timedelta(days=40), "car-1"),
        ]
    )
    await db_session.commit()

    top = await AnalyticsService(db_session).get_top_cars(TODAY - timedelta(days=30))

    assert [t.car_id for t in top] == ["car-1", "gone-9", "car-3", "car-2"]
    first = top[0]
    assert first.views == 3
    assert first.avg_duration == 20000
    assert first.avg_scroll == 60
    assert first.enquiries == 1
    assert first.conversion_rate == "33.33"
    assert first.car is not None and (first.car.make, first.car.model) == ("Toyota", "Hilux")
    assert top[1].car is None
    assert top[1].conversion_rate == "0.00"


@pytest.mark.asyncio
async def test_top_cars_limit(db_session: AsyncSession):
    visitor, session = await _visitor(db_session, TODAY - timedelta(days=1))
    db_session.add_all(
        [_product_view(visitor, session, TODAY - timedelta(hours=i + 1), f"car-{i}") for i in range(5)]
    )
    await db_session.commit()

    top = await AnalyticsService(db_session).get_top_cars(TODAY - timedelta(days=30), limit=3)
    assert len(top) == 3


@pytest.mark.asyncio
async def test_top_countries_and_devices(db_session: AsyncSession):
    start = TODAY - timedelta(days=30)
    v1, s1 = await _visitor(db_session, TODAY - timedelta(days=1), country="KE")
    v2, s2 = await _visitor(db_session, TODAY - timedelta(days=2), country="KE")
    v3, s3 = await _visitor(db_session, TODAY - timedelta(days=3), country="TZ")
    await _visitor(db_session, TODAY - timedelta(days=60), country="GB")
    db_session.add_all(
        [
            _page_view(v1, s1, TODAY - timedelta(days=1), device="Mobile"),
            _page_view(v1, s1, TODAY - timedelta(days=1, minutes=-1), device="Mobile"),
            _page_view(v2, s2, TODAY - timedelta(days=2), device="Desktop"),
            _page_view(v3, s3, TODAY - timedelta(days=3), device=None),
            _page_view(v3, s3, TODAY - timedelta(days=3, minutes=-1), device="Tablet"),
        ]
    )
    await db_session.commit()

    service = AnalyticsService(db_session)
    countries = await service.get_top_countries(start)
    assert [(c.country, c.count) for c in countries] == [("KE", 2), ("TZ", 1)]

    devices = await service.get_device_stats(start)
    assert [(d.type, d.count) for d in devices] == [("Desktop", 2), ("Mobile", 2), ("Tablet", 1)]


@pytest.mark.asyncio
async def test_recent_activity(db_session: AsyncSession):
    visitor, session = await _visitor(db_session, NOW - timedelta(hours=3))
    db_session.add_all(
        [
            _page_view(visitor, session, NOW - timedelta(hours=2), path="/old"),
            _page_view(visitor, session, NOW - timedelta(minutes=30), path="/cars"),
            _page_view(visitor, session, NOW - timedelta(minutes=5), path="/about"),
        ]
    )
    await db_session.commit()

    recent = await AnalyticsService(db_session).get_recent_activity(NOW)
    assert [r.path for r in recent] == ["/about", "/cars"]


@pytest.mark.asyncio
async def test_funnel(db_session: AsyncSession):
    start = TODAY - timedelta(days=30)
    visitors = [await _visitor(db_session, TODAY - timedelta(days=i + 1)) for i in range(4)]
    (v1, s1), (v2, s2) = visitors[0], visitors[1]
    db_session.add_all(
        [
            _product_view(v1, s1, TODAY - timedelta(days=1), "car-1"),
            _product_view(v2, s2, TODAY - timedelta(days=2), "car-2"),
            _product_view(v2, s2, TODAY - timedelta(days=2, minutes=-5), "car-1"),
            _enquiry(TODAY - timedelta(days=1), "car-1"),
        ]
    )
    await db_session.commit()

    funnel = await AnalyticsService(db_session).get_funnel(start)
    assert [(s.stage, s.count, s.percentage) for s in funnel] == [
        ("Visitors", 4, "100"),
        ("Product Views", 3, "75.0"),
        ("Enquiries", 1, "33.3"),
    ]


@pytest.mark.asyncio
async def test_get_dashboard_reads_through_cache(db_session: AsyncSession):
    cache = MemoryCache(ttl=60)
    service = AnalyticsService(db_session, cache)

    first = await service.get_dashboard(30)
    assert await cache.get(dashboard_key(30)) == first
    assert "totalVisitors" in first["overview"]

    with patch.object(AnalyticsService, "compute_dashboard", AsyncMock()) as compute:
        assert await service.get_dashboard(30) == first
        compute.assert_not_called()


# --- HTTP surface ------------------------------------------------------------


@pytest.mark.asyncio
async def test_dashboard_requires_admin_key(client: AsyncClient):
    response = await client.get("/api/v1/analytics/dashboard")
    assert response.status_code == 401

    response = await client.get("/api/v1/analytics/dashboard", headers={"X-Admin-Key": "wrong-key-wrong-key"})
    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid admin key"}


@pytest.mark.asyncio
async def test_dashboard_days_bounds(client: AsyncClient, admin_headers: dict):
    for days in (0, 366):
        response = await client.get(f"/api/v1/analytics/dashboard?days={days}", headers=admin_headers)
        assert response.status_code == 422


@pytest.mark.asyncio
async def test_dashboard_shape(client: AsyncClient, admin_headers: dict):
    response = await client.get("/api/v1/analytics/dashboard", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["days"] == 30
    assert set(data) >= {
        "overview",
        "topCars",
        "topCountries",
        "deviceStats",
        "recentActivity",
        "funnel",
        "snapshots",
        "periodStart",
        "generatedAt",
    }
    assert data["overview"]["conversionRate"] == "0"
    assert data["overview"]["activeSessions"] == 0


@pytest.mark.asyncio
async def test_product_view_shows_in_top_listings(
    client: AsyncClient, admin_headers: dict, browser_headers: dict
):
    """A tracked 15s view of L123 appears on the 30-day dashboard."""
    response = await client.post(
        "/api/v1/track/product-view",
        headers=browser_headers,
        json={"carId": "L123", "durationMs": 15000},
    )
    assert response.json() == {"success": True}

    response = await client.get("/api/v1/analytics/dashboard?days=30", headers=admin_headers)
    assert response.status_code == 200
    top = {car["carId"]: car for car in response.json()["topCars"]}
    assert top["L123"]["views"] >= 1
    assert top["L123"]["avgDuration"] == 15000
    assert top["L123"]["car"] is None


@pytest.mark.asyncio
async def test_dashboard_cache_staleness_and_invalidation(
    client: AsyncClient, admin_headers: dict, browser_headers: dict
):
    """Page views may be served stale for the TTL; product views invalidate."""
    response = await client.get("/api/v1/analytics/dashboard", headers=admin_headers)
    assert response.json()["overview"]["totalPageViews"] == 0

    await client.post("/api/v1/track/page-view", headers=browser_headers, json={"path": "/"})
    response = await client.get("/api/v1/analytics/dashboard", headers=admin_headers)
    assert response.json()["overview"]["totalPageViews"] == 0

    await client.post(
        "/api/v1/track/product-view",
        headers=browser_headers,
        json={"carId": "L123", "durationMs": 5000},
    )
    response = await client.get("/api/v1/analytics/dashboard", headers=admin_headers)
    overview = response.json()["overview"]
    assert overview["totalPageViews"] == 1
    assert overview["totalProductViews"] == 1
    assert overview["totalVisitors"] == 1


@pytest.mark.asyncio
async def test_windows_are_cached_separately(client: AsyncClient, admin_headers: dict):
    week = await client.get("/api/v1/analytics/dashboard?days=7", headers=admin_headers)
    month = await client.get("/api/v1/analytics/dashboard?days=30", headers=admin_headers)
    assert week.json()["days"] == 7
    assert month.json()["days"] == 30


@pytest.mark.asyncio
async def test_dashboard_failure_returns_503(client: AsyncClient, admin_headers: dict):
    with patch.object(
        AnalyticsService, "compute_dashboard", AsyncMock(side_effect=RuntimeError("boom"))
    ):
        response = await client.get("/api/v1/analytics/dashboard", headers=admin_headers)
    assert response.status_code == 503
    assert response.json() == {"detail": "Analytics unavailable"}
