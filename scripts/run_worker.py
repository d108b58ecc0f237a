"""Standalone import job worker.

Runs the same queue worker the API starts in-process, so extra workers can
be added on other hosts against the same database.

Usage:
    python scripts/run_worker.py
    python scripts/run_worker.py --once
    python scripts/run_worker.py --poll-seconds 2 --worker-id scraper-host-1
"""

import argparse
import asyncio
import logging

import structlog

from importhawk.config import settings
from importhawk.db.session import async_session_factory, engine
from importhawk.jobs.worker import JobWorker
from importhawk.models import Base
from importhawk.scrapers.factory import get_adapter_factory

logger = structlog.get_logger(__name__)


async def run(once: bool, poll_seconds: int, worker_id: str) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = get_adapter_factory()
    worker = JobWorker(
        async_session_factory,
        worker_id=worker_id or None,
        adapter_factory=factory,
        poll_seconds=poll_seconds,
    )
    try:
        if once:
            processed = await worker.run_pending()
            logger.info("worker_run_once_finished", processed=processed)
            return

        worker.start()
        # The scheduler runs on this loop until interrupted
        await asyncio.Event().wait()
    finally:
        worker.stop()
        await factory.close()
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the import job worker")
    parser.add_argument("--once", action="store_true", help="Drain the queue once and exit")
    parser.add_argument(
        "--poll-seconds",
        type=int,
        default=settings.WORKER_POLL_SECONDS,
        help=f"Queue poll interval (default: {settings.WORKER_POLL_SECONDS})",
    )
    parser.add_argument("--worker-id", default="", help="Worker id recorded on claimed jobs")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        asyncio.run(run(args.once, args.poll_seconds, args.worker_id))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
