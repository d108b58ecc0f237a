"""Durable job queue backed by the import_jobs table.

Delivery is at-least-once: a job whose worker dies stays ``running`` until
``requeue_stale`` hands it back to the queue. Item-level idempotency keys
keep a redelivered job from importing the same product twice.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from importhawk.core.exceptions import NotFoundError
from importhawk.models.import_job import ImportJob

logger = structlog.get_logger(__name__)

JOB_KINDS = frozenset(["bulk-import", "collection-import"])


def _as_uuid(job_id: Union[str, UUID]) -> UUID:
    return job_id if isinstance(job_id, UUID) else UUID(str(job_id))


class JobQueue:
    """Enqueue, claim and settle import jobs."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self.logger = logger.bind(service="job_queue")

    async def enqueue(
        self,
        kind: str,
        payload: Dict[str, Any],
        options: Optional[Dict[str, Any]] = None,
        shop: str = "",
    ) -> str:
        """Persist a new queued job and return its id."""
        if kind not in JOB_KINDS:
            raise ValueError(f"Unknown job kind '{kind}'")

        async with self.session_factory() as db:
            job = ImportJob(
                kind=kind,
                payload=payload,
                options=options or {},
                shop=shop,
                state="queued",
                progress=0,
            )
            db.add(job)
            await db.commit()
            job_id = str(job.id)

        self.logger.info("job_enqueued", job_id=job_id, kind=kind, shop=shop)
        return job_id

    async def claim_next(self, worker_id: str) -> Optional[ImportJob]:
        """Atomically move the oldest queued job to ``running``.

        The state check in the UPDATE is the compare-and-set: when two
        workers race for the same row only one update matches.
        """
        async with self.session_factory() as db:
            now = datetime.now(timezone.utc)
            for _ in range(5):
                candidate = await db.scalar(
                    select(ImportJob.id)
                    .where(ImportJob.state == "queued")
                    .order_by(ImportJob.created_at)
                    .limit(1)
                )
                if candidate is None:
                    return None

                result = await db.execute(
                    update(ImportJob)
                    .where(ImportJob.id == candidate, ImportJob.state == "queued")
                    .values(
                        state="running",
                        worker_id=worker_id,
                        claimed_at=now,
                        heartbeat_at=now,
                        attempts=ImportJob.attempts + 1,
                    )
                )
                await db.commit()
                if result.rowcount == 1:
                    job = await db.get(ImportJob, candidate, populate_existing=True)
                    self.logger.info("job_claimed", job_id=str(candidate), worker_id=worker_id, kind=job.kind)
                    return job

                self.logger.debug("job_claim_lost", job_id=str(candidate), worker_id=worker_id)
        return None

    async def update_progress(
        self,
        job_id: Union[str, UUID],
        progress: int,
        worker_id: Optional[str] = None,
    ) -> bool:
        """Record progress as a 0-100 percentage and refresh the heartbeat.

        With ``worker_id`` the write only lands while that worker still owns
        the job.

        Returns:
            False if the claim was lost
        """
        progress = max(0, min(100, int(progress)))
        async with self.session_factory() as db:
            result = await db.execute(
                update(ImportJob)
                .where(*self._owned(job_id, worker_id))
                .values(progress=progress, heartbeat_at=datetime.now(timezone.utc))
            )
            await db.commit()
        return self._settled(result, job_id, worker_id, "progress")

    async def complete(
        self,
        job_id: Union[str, UUID],
        result: Dict[str, Any],
        worker_id: Optional[str] = None,
    ) -> bool:
        """Write the terminal ``completed`` state.

        Returns:
            False if ``worker_id`` no longer owns the job; nothing is written
        """
        async with self.session_factory() as db:
            outcome = await db.execute(
                update(ImportJob)
                .where(*self._owned(job_id, worker_id))
                .values(
                    state="completed",
                    progress=100,
                    result=result,
                    error=None,
                    completed_at=datetime.now(timezone.utc),
                )
            )
            await db.commit()
        if not self._settled(outcome, job_id, worker_id, "complete"):
            return False

        self.logger.info(
            "job_completed",
            job_id=str(job_id),
            total=result.get("total"),
            success=result.get("success"),
            failed=result.get("failed"),
        )
        return True

    async def fail(self, job_id: Union[str, UUID], error: str, worker_id: Optional[str] = None) -> bool:
        """Write the terminal ``failed`` state. Same ownership rule as complete()."""
        async with self.session_factory() as db:
            outcome = await db.execute(
                update(ImportJob)
                .where(*self._owned(job_id, worker_id))
                .values(
                    state="failed",
                    error=error,
                    completed_at=datetime.now(timezone.utc),
                )
            )
            await db.commit()
        if not self._settled(outcome, job_id, worker_id, "fail"):
            return False

        self.logger.warning("job_failed", job_id=str(job_id), error=error)
        return True

    @staticmethod
    def _owned(job_id: Union[str, UUID], worker_id: Optional[str]) -> list:
        conditions = [ImportJob.id == _as_uuid(job_id)]
        if worker_id is not None:
            conditions += [ImportJob.worker_id == worker_id, ImportJob.state == "running"]
        return conditions

    def _settled(self, result, job_id: Union[str, UUID], worker_id: Optional[str], action: str) -> bool:
        if result.rowcount == 1:
            return True
        self.logger.warning("job_claim_lost", job_id=str(job_id), worker_id=worker_id, action=action)
        return False

    async def get(self, job_id: Union[str, UUID]) -> ImportJob:
        try:
            key = _as_uuid(job_id)
        except ValueError:
            raise NotFoundError("ImportJob", str(job_id))

        async with self.session_factory() as db:
            job = await db.get(ImportJob, key)
        if job is None:
            raise NotFoundError("ImportJob", str(job_id))
        return job

    async def get_status(self, job_id: Union[str, UUID]) -> Dict[str, Any]:
        """Polling view of a job.

        Raises:
            NotFoundError: if no job has this id
        """
        job = await self.get(job_id)
        return {
            "id": str(job.id),
            "kind": job.kind,
            "state": job.state,
            "progress": job.progress,
            "result": job.result,
            "error": job.error,
        }

    async def requeue_stale(self, older_than: timedelta) -> List[str]:
        """Return ``running`` jobs whose worker has not reported for ``older_than`` to the queue.

        A live worker refreshes ``heartbeat_at`` with every progress report,
        so only jobs of dead or hung workers match.
        """
        cutoff = datetime.now(timezone.utc) - older_than
        async with self.session_factory() as db:
            result = await db.execute(
                select(ImportJob.id).where(
                    ImportJob.state == "running",
                    func.coalesce(ImportJob.heartbeat_at, ImportJob.claimed_at) < cutoff,
                )
            )
            stale_ids = list(result.scalars().all())
            if not stale_ids:
                return []

            await db.execute(
                update(ImportJob)
                .where(ImportJob.id.in_(stale_ids), ImportJob.state == "running")
                .values(state="queued", worker_id=None, claimed_at=None, heartbeat_at=None)
            )
            await db.commit()

        requeued = [str(job_id) for job_id in stale_ids]
        self.logger.warning("stale_jobs_requeued", count=len(requeued), job_ids=requeued)
        return requeued
