"""Fan-out of bulk and collection jobs into single-product imports."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import structlog

from importhawk.config import settings
from importhawk.core.exceptions import CollectionScrapeError, InvalidSourceURLError
from importhawk.schemas.imports import ImportOptions
from importhawk.scrapers.base import PlatformKind, RawExtraction
from importhawk.scrapers.detector import PlatformDetector
from importhawk.scrapers.factory import AdapterFactory, get_adapter_factory
from importhawk.scrapers.utils.pacing import PacingPolicy
from importhawk.services.import_executor import ImportExecutor, ImportOutcome, make_idempotency_key

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int, int], Awaitable[None]]


@dataclass
class JobResult:
    """Aggregate of a multi-product job."""

    total: int = 0
    success: int = 0
    failed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    max_errors: int = 50

    def add(self, outcome: ImportOutcome) -> None:
        if outcome.success:
            self.success += 1
            return
        self.failed += 1
        if len(self.errors) < self.max_errors:
            self.errors.append({
                "title": outcome.title or outcome.source_url,
                "url": outcome.source_url,
                "error": outcome.error or "Unknown error",
            })

    @property
    def partial(self) -> bool:
        return self.success > 0 and self.failed > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "errors": list(self.errors),
            "partial": self.partial,
        }


class JobOrchestrator:
    """Runs bulk and collection jobs one item at a time.

    Items run sequentially with ``PacingPolicy.per_item_delay`` between
    them. Item failures are counted, never raised; only a collection that
    cannot be enumerated fails the job.
    """

    def __init__(
        self,
        executor: ImportExecutor,
        detector: Optional[PlatformDetector] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        pacing: Optional[PacingPolicy] = None,
        max_reported_errors: Optional[int] = None,
    ):
        self.executor = executor
        self.detector = detector or executor.detector
        self.adapter_factory = adapter_factory or executor.adapter_factory or get_adapter_factory()
        self.pacing = pacing or PacingPolicy.from_settings()
        self.max_reported_errors = (
            max_reported_errors if max_reported_errors is not None else settings.JOB_MAX_REPORTED_ERRORS
        )
        self.logger = logger.bind(service="job_orchestrator", shop=executor.shop)

    def _new_result(self, total: int) -> JobResult:
        return JobResult(total=total, max_errors=self.max_reported_errors)

    def _key(self, url: str, job_id: Optional[str]) -> Optional[str]:
        if job_id is None:
            return None
        return make_idempotency_key(self.executor.shop, url, job_id)

    async def run_bulk(
        self,
        urls: Iterable[str],
        options: Optional[ImportOptions] = None,
        job_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, Any]:
        """Import every URL in order and return the aggregate result."""
        urls = list(urls)
        options = options or ImportOptions()
        result = self._new_result(len(urls))
        self.logger.info("bulk_job_started", job_id=job_id, total=len(urls))

        for index, url in enumerate(urls):
            if index:
                await self.pacing.item_pause()
            outcome = await self.executor.import_url(
                url,
                options,
                import_type="bulk",
                job_id=job_id,
                idempotency_key=self._key(url, job_id),
            )
            result.add(outcome)
            if on_progress is not None:
                await on_progress(index + 1, len(urls))

        self.logger.info(
            "bulk_job_finished",
            job_id=job_id,
            total=result.total,
            success=result.success,
            failed=result.failed,
        )
        return result.to_dict()

    async def enumerate_collection(self, url: str, platform: PlatformKind, limit: int) -> List[RawExtraction]:
        """Scrape a collection page into extractions.

        Raises:
            CollectionScrapeError: if the collection cannot be read or is empty
        """
        try:
            adapter = self.adapter_factory.get_adapter(platform)
            extractions = await adapter.scrape_collection(url, limit)
        except CollectionScrapeError:
            raise
        except Exception as e:
            self.logger.error("collection_enumeration_crashed", url=url, error=str(e), exc_info=True)
            raise CollectionScrapeError(url, str(e)) from e

        if not extractions:
            raise CollectionScrapeError(url, "no products found")
        return extractions[:limit]

    async def run_collection(
        self,
        url: str,
        limit: int,
        options: Optional[ImportOptions] = None,
        job_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, Any]:
        """Import up to ``limit`` products of a collection.

        Raises:
            CollectionScrapeError: the job fails as a whole, nothing is imported
        """
        options = options or ImportOptions()
        platform = await self._detect_collection_platform(url)
        extractions = await self.enumerate_collection(url, platform, limit)
        result = self._new_result(len(extractions))
        if on_progress is not None:
            await on_progress(0, len(extractions))
        self.logger.info("collection_job_started", job_id=job_id, url=url, platform=platform.value, total=len(extractions))

        for index, raw in enumerate(extractions):
            if index:
                await self.pacing.item_pause()
            source_url = raw.metadata.get("source_url") or url
            outcome = await self.executor.import_extraction(
                raw,
                platform,
                source_url,
                options,
                import_type="collection",
                job_id=job_id,
                idempotency_key=self._key(source_url, job_id),
            )
            result.add(outcome)
            if on_progress is not None:
                await on_progress(index + 1, len(extractions))

        self.logger.info(
            "collection_job_finished",
            job_id=job_id,
            total=result.total,
            success=result.success,
            failed=result.failed,
        )
        return result.to_dict()

    async def _detect_collection_platform(self, url: str) -> PlatformKind:
        try:
            return await self.detector.detect(url)
        except InvalidSourceURLError as e:
            raise CollectionScrapeError(url, str(e)) from e
