import os
from collections.abc import AsyncGenerator
from unittest.mock import patch

import fakeredis
import fakeredis.aioredis
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Set test env vars before importing app modules
os.environ["SECRET_KEY"] = "test-secret-key-must-be-at-least-32-characters-long"
os.environ["ADMIN_API_KEY"] = "test-admin-key-0123456789"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["COOKIE_SECURE"] = "false"  # httpx test client uses http://, not https://

ADMIN_HEADERS = {"X-Admin-Key": os.environ["ADMIN_API_KEY"]}

# A public address and a real browser UA: anything else is filtered as internal/bot
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "X-Forwarded-For": "81.2.69.142",
}

# Shared FakeServer holds state; each call creates a fresh client
# bound to the current event loop (avoids pytest-asyncio loop mismatch).
_fake_server = fakeredis.FakeServer()


def _make_fake_redis():
    """Create a fakeredis instance bound to the shared server."""
    return fakeredis.aioredis.FakeRedis(server=_fake_server, decode_responses=True)


async def _mock_get_redis():
    return _make_fake_redis()


# Patch the module-level get_redis() used by the Redis cache backend
_redis_patcher = patch("autotrack.core.redis.get_redis", _mock_get_redis)
_redis_patcher.start()

# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestingSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(autouse=True)
async def setup_database():
    from autotrack.core.cache import get_dashboard_cache
    from autotrack.core.limiter import get_tracking_limiter, limiter
    from autotrack.db.base import Base
    from autotrack.models import catalog, event, snapshot, visitor  # noqa: F401

    # Disable dashboard rate limiting in tests; the tracking quota is tested explicitly
    limiter.enabled = False

    # Fresh process-wide cache and tracking limiter for each test
    get_dashboard_cache.cache_clear()
    get_tracking_limiter.cache_clear()

    # Clear fakeredis for each test
    await _make_fake_redis().flushall()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def fake_redis():
    """Provide a fakeredis instance for direct use in tests."""
    return _make_fake_redis()


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    from autotrack.db.session import get_db
    from autotrack.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    return dict(ADMIN_HEADERS)


@pytest.fixture
def browser_headers() -> dict:
    return dict(BROWSER_HEADERS)


@pytest.fixture
async def cars(db_session: AsyncSession):
    """Listings referenced by product views and enquiries."""
    from autotrack.models.catalog import Car

    listings = [
        Car(id="car-1", make="Toyota", model="Hilux", year=2021, price=27900, status="available"),
        Car(id="car-2", make="Mazda", model="CX-5", year=2020, price=19800, status="available"),
        Car(id="car-3", make="Honda", model="Fit", year=2017, price=7900, status="sold"),
    ]
    db_session.add_all(listings)
    await db_session.commit()
    return listings
