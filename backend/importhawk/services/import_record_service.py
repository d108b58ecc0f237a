"""Import audit trail persistence."""

from datetime import datetime, timezone
from typing import List, Optional, Tuple
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from importhawk.core.exceptions import NotFoundError, RecordAlreadyFinalizedError
from importhawk.models.import_record import PRODUCT_TITLE_MAX_LENGTH, TERMINAL_STATUSES, ImportRecord

logger = structlog.get_logger(__name__)


class ImportRecordService:
    """Creates, finalizes and lists ImportRecord rows.

    Each write commits immediately so a record survives a crash later in
    the import.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="import_record_service")

    async def start(
        self,
        shop: str,
        source_url: str,
        import_type: str = "single",
        options: Optional[dict] = None,
        job_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        source_platform: str = "unknown",
    ) -> ImportRecord:
        """Create a record in the ``processing`` state."""
        record = ImportRecord(
            shop=shop,
            source_url=source_url,
            source_platform=source_platform,
            import_type=import_type,
            status="processing",
            options=options or {},
            job_id=job_id,
            idempotency_key=idempotency_key,
            total_products=1,
        )
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)
        return record

    async def get(self, record_id: UUID) -> ImportRecord:
        record = await self.db.get(ImportRecord, record_id)
        if record is None:
            raise NotFoundError("ImportRecord", str(record_id))
        return record

    async def finalize(
        self,
        record_id: UUID,
        status: str,
        source_platform: Optional[str] = None,
        product_id: Optional[str] = None,
        product_title: Optional[str] = None,
        error: Optional[str] = None,
        images_imported: int = 0,
        variants_imported: int = 0,
    ) -> ImportRecord:
        """Move a record to a terminal status. Allowed exactly once.

        Raises:
            RecordAlreadyFinalizedError: if the record is already terminal
            ValueError: for a non-terminal status
        """
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"'{status}' is not a terminal import status")

        record = await self.get(record_id)
        if record.is_finalized:
            raise RecordAlreadyFinalizedError(str(record_id))

        record.status = status
        if source_platform:
            record.source_platform = source_platform
        record.product_id = product_id
        record.product_title = product_title[:PRODUCT_TITLE_MAX_LENGTH] if product_title else product_title
        record.error = error
        record.images_imported = images_imported
        record.variants_imported = variants_imported
        record.successful_products = 1 if status == "success" else 0
        record.failed_products = 0 if status == "success" else 1
        record.completed_at = datetime.now(timezone.utc)
        await self.db.commit()
        await self.db.refresh(record)

        self.logger.info(
            "import_record_finalized",
            record_id=str(record_id),
            status=status,
            product_id=product_id,
        )
        return record

    async def find_success_by_key(self, idempotency_key: str) -> Optional[ImportRecord]:
        result = await self.db.execute(
            select(ImportRecord)
            .where(
                ImportRecord.idempotency_key == idempotency_key,
                ImportRecord.status == "success",
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_history(
        self,
        shop: str,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
    ) -> Tuple[List[ImportRecord], int]:
        """Newest-first records for a shop, with the total count."""
        conditions = [ImportRecord.shop == shop]
        if status:
            conditions.append(ImportRecord.status == status)

        total = await self.db.scalar(select(func.count()).select_from(ImportRecord).where(*conditions))

        result = await self.db.execute(
            select(ImportRecord)
            .where(*conditions)
            .order_by(ImportRecord.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def list_for_job(self, job_id: str) -> List[ImportRecord]:
        result = await self.db.execute(
            select(ImportRecord).where(ImportRecord.job_id == job_id).order_by(ImportRecord.created_at)
        )
        return list(result.scalars().all())
