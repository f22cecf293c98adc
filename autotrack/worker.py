"""Snapshot worker: freezes each closed UTC day into analytics_daily_snapshots.

Run as a separate process (from cron, or as a long-lived daemon):
    python -m autotrack.worker                  # snapshot yesterday, then exit
    python -m autotrack.worker --date 2024-05-01
    python -m autotrack.worker --loop           # every day shortly after midnight UTC
"""

import argparse
import asyncio
import logging
import signal
import sys
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from autotrack.core.cache import AggregationCache, get_dashboard_cache
from autotrack.core.config import settings
from autotrack.core.exceptions import BadRequestError
from autotrack.services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)

# Run a few minutes after midnight so late beacons for yesterday have landed
RUN_AT = time(0, 5, tzinfo=timezone.utc)

_shutdown = asyncio.Event()


def _handle_signal(*_):
    logger.info("Shutdown signal received")
    _shutdown.set()


def seconds_until_next_run(now: datetime) -> float:
    """Seconds from ``now`` until the next RUN_AT (today's if still ahead, else tomorrow's)."""
    next_run = datetime.combine(now.date(), RUN_AT)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


def shared_dashboard_cache() -> AggregationCache | None:
    """The dashboard cache to invalidate after a snapshot, if the API can see it.

    A memory cache lives inside each API process, so clearing this process's
    copy would do nothing; those entries age out on their TTL instead.
    """
    if settings.CACHE_BACKEND == "redis":
        return get_dashboard_cache()
    return None


async def generate_snapshot(
    session_factory: async_sessionmaker[AsyncSession], day: date | None = None
) -> bool:
    """Generate one snapshot in its own session. Returns False on failure."""
    async with session_factory() as session:
        service = SnapshotService(session, shared_dashboard_cache())
        try:
            snapshot = await service.generate(day)
        except BadRequestError as e:
            logger.error("Cannot snapshot %s: %s", day, e.detail)
            return False
        except SQLAlchemyError:
            logger.exception("Snapshot generation failed for %s", day or "yesterday")
            return False
    logger.info("Snapshot for %s written", snapshot.date)
    return True


async def run_worker(day: date | None = None, loop: bool = False) -> int:
    """Generate a snapshot once, or daily until a shutdown signal arrives."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )

    engine = create_async_engine(settings.DATABASE_URL)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        if not loop:
            ok = await generate_snapshot(session_factory, day)
            return 0 if ok else 1

        logger.info("Starting daily snapshot worker")
        while not _shutdown.is_set():
            delay = seconds_until_next_run(datetime.now(timezone.utc))
            logger.info("Next snapshot run in %.0f seconds", delay)
            try:
                await asyncio.wait_for(_shutdown.wait(), timeout=delay)
            except asyncio.TimeoutError:
                await generate_snapshot(session_factory)
        logger.info("Worker shut down cleanly")
        return 0
    finally:
        await engine.dispose()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate daily analytics snapshots.")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="UTC day to snapshot (YYYY-MM-DD). Defaults to yesterday.",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Keep running and snapshot each day shortly after midnight UTC.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.loop and args.date:
        logger.warning("--date is ignored with --loop")
    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handle_signal)
    return asyncio.run(run_worker(day=None if args.loop else args.date, loop=args.loop))


if __name__ == "__main__":
    sys.exit(main())
