"""APScheduler-based queue worker.

Polls the import_jobs table, claims queued jobs one at a time and runs
them through the JobOrchestrator. Several workers (in-process or
``scripts/run_worker.py``) can share one database; claiming is atomic.
"""

import socket
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from importhawk.config import settings
from importhawk.core.exceptions import CollectionScrapeError, ImportHawkException
from importhawk.jobs.orchestrator import JobOrchestrator
from importhawk.jobs.queue import JobQueue
from importhawk.models.import_job import ImportJob
from importhawk.schemas.imports import ImportOptions
from importhawk.scrapers.detector import PlatformDetector
from importhawk.scrapers.factory import AdapterFactory, get_adapter_factory
from importhawk.scrapers.utils.pacing import PacingPolicy
from importhawk.services.catalog_client import CatalogClient, build_catalog_client
from importhawk.services.image_pipeline import ImagePipeline, LocalObjectStore
from importhawk.services.import_executor import ImportExecutor

logger = structlog.get_logger(__name__)

CatalogFactory = Callable[[str], CatalogClient]


def default_worker_id() -> str:
    return f"{socket.gethostname()}-{uuid.uuid4().hex[:8]}"


class JobWorker:
    """Claims and executes import jobs on an interval."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        worker_id: Optional[str] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        catalog_factory: Optional[CatalogFactory] = None,
        detector: Optional[PlatformDetector] = None,
        image_pipeline: Optional[ImagePipeline] = None,
        pacing: Optional[PacingPolicy] = None,
        poll_seconds: Optional[int] = None,
        stale_after_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.queue = JobQueue(session_factory)
        self.worker_id = worker_id or default_worker_id()
        self.adapter_factory = adapter_factory
        self.catalog_factory = catalog_factory or build_catalog_client
        self.detector = detector
        self.image_pipeline = image_pipeline if image_pipeline is not None else ImagePipeline(LocalObjectStore())
        self.pacing = pacing or PacingPolicy.from_settings()
        self.poll_seconds = poll_seconds or settings.WORKER_POLL_SECONDS
        self.stale_after = timedelta(seconds=stale_after_seconds or settings.WORKER_STALE_AFTER_SECONDS)
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.logger = logger.bind(service="job_worker", worker_id=self.worker_id)

    def start(self) -> None:
        """Schedule the poll job and start the scheduler."""
        if self.scheduler.running:
            self.logger.warning("worker_already_running")
            return

        self.scheduler.add_job(
            func=self.run_pending,
            trigger=IntervalTrigger(
                seconds=self.poll_seconds,
                start_date=datetime.now(timezone.utc),
                timezone="UTC",
            ),
            id="import_job_worker",
            name="Import job worker",
            replace_existing=True,
            max_instances=1,  # one job at a time per worker
            coalesce=True,
        )
        self.scheduler.start()
        self.logger.info("worker_started", poll_seconds=self.poll_seconds)

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("worker_stopped")

    async def run_pending(self) -> int:
        """Requeue stale jobs, then run queued jobs until none are left.

        Returns:
            Number of jobs processed
        """
        try:
            await self.queue.requeue_stale(self.stale_after)
        except Exception as e:
            self.logger.error("stale_requeue_failed", error=str(e), exc_info=True)

        processed = 0
        while True:
            job = await self.queue.claim_next(self.worker_id)
            if job is None:
                break
            await self.run_job(job)
            processed += 1
        return processed

    async def run_job(self, job: ImportJob) -> None:
        """Execute one claimed job and write its terminal state."""
        job_id = str(job.id)
        log = self.logger.bind(job_id=job_id, kind=job.kind, shop=job.shop)
        catalog: Optional[CatalogClient] = None

        async def on_progress(done: int, total: int) -> None:
            # 100 is reserved for the terminal write
            percent = min(99, done * 100 // max(total, 1))
            await self.queue.update_progress(job_id, percent, worker_id=self.worker_id)

        try:
            catalog = self.catalog_factory(job.shop)
            adapter_factory = self.adapter_factory or get_adapter_factory()
            executor = ImportExecutor(
                catalog=catalog,
                shop=job.shop,
                session_factory=self.session_factory,
                detector=self.detector,
                adapter_factory=adapter_factory,
                image_pipeline=self.image_pipeline,
                pacing=self.pacing,
            )
            orchestrator = JobOrchestrator(executor, pacing=self.pacing)
            options = ImportOptions.model_validate(job.options or {})

            if job.kind == "bulk-import":
                result = await orchestrator.run_bulk(
                    job.payload.get("urls", []), options, job_id=job_id, on_progress=on_progress
                )
            elif job.kind == "collection-import":
                result = await orchestrator.run_collection(
                    job.payload["url"],
                    int(job.payload.get("limit") or settings.COLLECTION_DEFAULT_LIMIT),
                    options,
                    job_id=job_id,
                    on_progress=on_progress,
                )
            else:
                raise ValueError(f"Unknown job kind '{job.kind}'")

            await self.queue.complete(job_id, result, worker_id=self.worker_id)
        except CollectionScrapeError as e:
            log.warning("collection_job_failed", error=str(e))
            await self.queue.fail(job_id, str(e), worker_id=self.worker_id)
        except ImportHawkException as e:
            log.warning("job_failed", error=str(e))
            await self.queue.fail(job_id, str(e), worker_id=self.worker_id)
        except Exception as e:
            log.error("job_crashed", error=str(e), exc_info=True)
            await self.queue.fail(job_id, str(e), worker_id=self.worker_id)
        finally:
            if catalog is not None:
                await catalog.close()
