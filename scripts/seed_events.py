"""Generate realistic fake traffic for development and demos.

Tracking endpoints always stamp events with the server clock, so history is
written straight to the database, then each closed day is snapshotted.

Usage:
    python -m scripts.seed_events [--days 14] [--visitors 300]
    python -m scripts.seed_events --days 30 --visitors 1000 --no-snapshots
"""

import argparse
import asyncio
import random
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autotrack.core.client import parse_user_agent
from autotrack.core.security import hash_ip
from autotrack.db.session import AsyncSessionLocal, engine
from autotrack.models.catalog import Car, Enquiry
from autotrack.models.event import PageView, ProductView
from autotrack.models.visitor import Visitor, VisitorSession
from autotrack.services.snapshot_service import SnapshotService

CARS = [
    ("toyota-land-cruiser-2019", "Toyota", "Land Cruiser", 2019, 48500),
    ("toyota-hilux-2021", "Toyota", "Hilux", 2021, 27900),
    ("nissan-x-trail-2018", "Nissan", "X-Trail", 2018, 14200),
    ("honda-fit-2017", "Honda", "Fit", 2017, 7900),
    ("mazda-cx5-2020", "Mazda", "CX-5", 2020, 19800),
    ("subaru-forester-2019", "Subaru", "Forester", 2019, 17600),
    ("mitsubishi-pajero-2016", "Mitsubishi", "Pajero", 2016, 16400),
    ("lexus-rx-2018", "Lexus", "RX 350", 2018, 31200),
]

PAGES = ["/", "/cars", "/about", "/team", "/contact", "/how-it-works", "/faq"]

REFERRERS = [
    "https://google.com",
    "https://facebook.com",
    "https://instagram.com",
    "",
    "",
    "",
]

COUNTRIES = [("KE", 30), ("TZ", 15), ("UG", 12), ("GB", 10), ("AE", 8), ("JP", 5), ("Unknown", 5)]

USER_AGENTS = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Version/17.0 Mobile/15E148 Safari/604.1",
    "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 Chrome/120.0.0.0 Mobile Safari/537.36",
    "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Version/17.0 Mobile/15E148 Safari/604.1",
    "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0",
]


async def seed_cars(db: AsyncSession) -> None:
    existing = set((await db.execute(select(Car.id))).scalars().all())
    for car_id, make, model, year, price in CARS:
        if car_id not in existing:
            db.add(Car(id=car_id, make=make, model=model, year=year, price=price))
    await db.commit()


async def seed_visitor(db: AsyncSession, first_seen: datetime, now: datetime) -> tuple[int, int, int]:
    """One visitor with 1-3 sessions. Returns (page views, product views, enquiries)."""
    countries = [c[0] for c in COUNTRIES]
    weights = [c[1] for c in COUNTRIES]
    user_agent = random.choice(USER_AGENTS)
    ua = parse_user_agent(user_agent)
    country = random.choices(countries, weights=weights, k=1)[0]
    ip = f"41.{random.randint(0, 255)}.{random.randint(0, 255)}.{random.randint(1, 254)}"

    visitor = Visitor(
        id=str(uuid.uuid4()),
        ip_hash=hash_ip(ip, first_seen),
        user_agent=user_agent,
        country=country,
        first_seen=first_seen,
        last_seen=first_seen,
    )
    db.add(visitor)

    page_views = product_views = enquiries = 0
    started = first_seen
    for _ in range(random.randint(1, 3)):
        if started >= now:
            break
        session = VisitorSession(visitor_id=visitor.id, started_at=started, last_activity_at=started)
        db.add(session)
        await db.flush()

        ts = started
        for _ in range(random.randint(1, 8)):
            ts += timedelta(seconds=random.randint(10, 240))
            if ts >= now:
                break
            if random.random() < 0.4:
                car_id = random.choice(CARS)[0]
                db.add(
                    ProductView(
                        visitor_id=visitor.id,
                        session_id=session.id,
                        car_id=car_id,
                        duration_ms=random.randint(3000, 180000),
                        scroll_depth=random.randint(10, 100),
                        source=random.choice(["listing", "search", "home", None]),
                        referrer=random.choice(REFERRERS) or None,
                        viewed_at=ts,
                    )
                )
                product_views += 1
                if random.random() < 0.06:
                    db.add(
                        Enquiry(
                            car_id=car_id,
                            user_name="Seed Visitor",
                            user_email=f"visitor+{visitor.id[:8]}@example.com",
                            message="Is this car still available?",
                            created_at=ts + timedelta(seconds=30),
                        )
                    )
                    enquiries += 1
            else:
                db.add(
                    PageView(
                        visitor_id=visitor.id,
                        session_id=session.id,
                        path=random.choice(PAGES),
                        referrer=random.choice(REFERRERS) or None,
                        device=ua.device,
                        browser=ua.browser,
                        os=ua.os,
                        country=country,
                        created_at=ts,
                    )
                )
                page_views += 1

        session.last_activity_at = ts
        visitor.last_seen = max(visitor.last_seen, ts)
        started = ts + timedelta(hours=random.randint(1, 48))

    await db.commit()
    return page_views, product_views, enquiries


async def seed(days: int, visitors: int, snapshots: bool) -> None:
    now = datetime.now(timezone.utc)
    start = now - timedelta(days=days)

    async with AsyncSessionLocal() as db:
        await seed_cars(db)

        print(f"Generating {visitors} visitors over {days} days...")
        totals = [0, 0, 0]
        for i in range(visitors):
            first_seen = start + timedelta(seconds=random.randint(0, days * 86400))
            counts = await seed_visitor(db, first_seen, now)
            totals = [a + b for a, b in zip(totals, counts)]
            if (i + 1) % 100 == 0:
                print(f"  Seeded {i + 1}/{visitors} visitors")

        print(
            f"Done! {totals[0]} page views, {totals[1]} product views, {totals[2]} enquiries."
        )

        if snapshots:
            service = SnapshotService(db)
            for offset in range(days, 0, -1):
                day = (now - timedelta(days=offset)).date()
                await service.generate(day, now=now)
            print(f"Snapshotted {days} closed days.")

    await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Seed analytics traffic")
    parser.add_argument("--days", type=int, default=14, help="Days of history")
    parser.add_argument("--visitors", type=int, default=300, help="Number of visitors")
    parser.add_argument(
        "--no-snapshots", action="store_true", help="Skip generating daily snapshots"
    )
    args = parser.parse_args()

    asyncio.run(seed(args.days, args.visitors, not args.no_snapshots))


if __name__ == "__main__":
    main()
