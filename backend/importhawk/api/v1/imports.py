"""Product import endpoints.

Single imports and previews run inline; bulk and collection imports are
queued and picked up by the job worker. Progress is polled through
``/imports/status/{job_id}``.
"""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from importhawk.core.exceptions import InvalidSourceURLError, NotFoundError, ScrapeError, ScrapeErrorKind
from importhawk.dependencies import (
    get_adapters,
    get_catalog_client,
    get_db,
    get_image_pipeline,
    get_job_queue,
    get_session_factory,
    get_shop,
    require_configured_shop,
)
from importhawk.jobs.queue import JobQueue
from importhawk.schemas.common import ApiResponse, PaginationMeta
from importhawk.schemas.imports import (
    BulkImportRequest,
    CollectionImportRequest,
    ImportOptions,
    ImportOutcomeResponse,
    ImportRecordResponse,
    JobStatusResponse,
    JobSubmittedResponse,
    PreviewRequest,
    ProductPreviewResponse,
    SingleImportRequest,
    VariantPreview,
)
from importhawk.scrapers.base import NormalizedProduct
from importhawk.scrapers.detector import PlatformDetector
from importhawk.scrapers.factory import AdapterFactory
from importhawk.services.catalog_client import CatalogClient
from importhawk.services.image_pipeline import ImagePipeline
from importhawk.services.import_executor import ImportExecutor
from importhawk.services.import_record_service import ImportRecordService
from importhawk.services.normalizer import Normalizer
from importhawk.services.url_file_parser import URLFileError, extract_urls

router = APIRouter()
logger = structlog.get_logger(__name__)

MAX_BULK_URLS = 1000

SCRAPE_ERROR_STATUS = {
    ScrapeErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ScrapeErrorKind.PARSE_FAILURE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ScrapeErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ScrapeErrorKind.BLOCKED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _preview(product: NormalizedProduct) -> ProductPreviewResponse:
    return ProductPreviewResponse(
        title=product.title,
        description=product.description,
        vendor=product.vendor,
        product_type=product.product_type,
        tags=list(product.tags),
        images=[{"src": i.src, "alt": i.alt, "position": i.position} for i in product.images],
        options=[{"name": o.name, "values": list(o.values)} for o in product.options],
        variants=[
            VariantPreview(
                title=v.title,
                price=str(v.price),
                compare_at_price=str(v.compare_at_price) if v.compare_at_price is not None else None,
                sku=v.sku,
                option1=v.option1,
                option2=v.option2,
                option3=v.option3,
            )
            for v in product.variants
        ],
        source_url=product.source_url,
        source_platform=product.source_platform.value,
    )


@router.post("/preview", response_model=ApiResponse[ProductPreviewResponse])
async def preview_import(
    body: PreviewRequest,
    adapters: AdapterFactory = Depends(get_adapters),
):
    """Scrape and normalize a product without touching the shop."""
    try:
        platform = await PlatformDetector().detect(body.url)
        raw = await adapters.get_adapter(platform).scrape_product(body.url)
    except InvalidSourceURLError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ScrapeError as e:
        raise HTTPException(status_code=SCRAPE_ERROR_STATUS[e.kind], detail=str(e))

    product = Normalizer().normalize(raw, platform, body.url)
    return ApiResponse(data=_preview(product))


@router.post("/single", response_model=ApiResponse[ImportOutcomeResponse])
async def import_single(
    body: SingleImportRequest,
    shop: str = Depends(require_configured_shop),
    catalog: CatalogClient = Depends(get_catalog_client),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    adapters: AdapterFactory = Depends(get_adapters),
    image_pipeline: ImagePipeline = Depends(get_image_pipeline),
):
    """Import one product inline.

    A failed import answers 422 with the error message; the ImportRecord
    is written either way.
    """
    executor = ImportExecutor(
        catalog=catalog,
        shop=shop,
        session_factory=session_factory,
        adapter_factory=adapters,
        image_pipeline=image_pipeline,
    )
    outcome = await executor.import_url(body.url, body.options, import_type="single")
    if not outcome.success:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=outcome.error)

    return ApiResponse(data=ImportOutcomeResponse(
        record_id=outcome.record_id,
        status=outcome.status,
        source_url=outcome.source_url,
        source_platform=outcome.source_platform,
        product_id=outcome.product_id,
        title=outcome.title,
        error=outcome.error,
        variants_imported=outcome.variants_imported,
        images_imported=outcome.images_imported,
        skipped=outcome.skipped,
    ))


@router.post("/collection", response_model=ApiResponse[JobSubmittedResponse], status_code=202)
async def import_collection(
    body: CollectionImportRequest,
    shop: str = Depends(require_configured_shop),
    queue: JobQueue = Depends(get_job_queue),
):
    """Queue a collection import."""
    job_id = await queue.enqueue(
        "collection-import",
        {"url": body.url, "limit": body.limit},
        body.options.model_dump(mode="json", by_alias=True),
        shop=shop,
    )
    return ApiResponse(data=JobSubmittedResponse(job_id=job_id, kind="collection-import", state="queued"))


async def _enqueue_bulk(queue: JobQueue, shop: str, urls: List[str], options: ImportOptions) -> JobSubmittedResponse:
    job_id = await queue.enqueue(
        "bulk-import",
        {"urls": urls},
        options.model_dump(mode="json", by_alias=True),
        shop=shop,
    )
    return JobSubmittedResponse(job_id=job_id, kind="bulk-import", state="queued", total=len(urls))


@router.post("/bulk", response_model=ApiResponse[JobSubmittedResponse], status_code=202)
async def import_bulk(
    body: BulkImportRequest,
    shop: str = Depends(require_configured_shop),
    queue: JobQueue = Depends(get_job_queue),
):
    """Queue a bulk import of a URL list."""
    return ApiResponse(data=await _enqueue_bulk(queue, shop, body.urls, body.options))


@router.post("/bulk/upload", response_model=ApiResponse[JobSubmittedResponse], status_code=202)
async def import_bulk_upload(
    file: UploadFile = File(..., description="CSV or XLSX with a url/link column"),
    options: Optional[str] = Form(None, description="ImportOptions as JSON"),
    shop: str = Depends(require_configured_shop),
    queue: JobQueue = Depends(get_job_queue),
):
    """Queue a bulk import from an uploaded spreadsheet."""
    try:
        import_options = ImportOptions.model_validate_json(options) if options else ImportOptions()
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid options: {e.errors()}")

    content = await file.read()
    try:
        urls = extract_urls(file.filename or "", content)
    except URLFileError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not urls:
        raise HTTPException(status_code=400, detail="No URLs found in the uploaded file")
    if len(urls) > MAX_BULK_URLS:
        raise HTTPException(status_code=400, detail=f"At most {MAX_BULK_URLS} URLs per upload")

    logger.info("bulk_upload_received", shop=shop, filename=file.filename, urls=len(urls))
    return ApiResponse(data=await _enqueue_bulk(queue, shop, urls, import_options))


@router.get("/status/{job_id}", response_model=ApiResponse[JobStatusResponse])
async def job_status(
    job_id: str,
    queue: JobQueue = Depends(get_job_queue),
):
    """Poll a queued job."""
    try:
        job = await queue.get_status(job_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found")
    return ApiResponse(data=JobStatusResponse(**job))


@router.get("/history", response_model=ApiResponse[List[ImportRecordResponse]])
async def import_history(
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    status_filter: Optional[str] = Query(
        None,
        alias="status",
        pattern="^(pending|processing|success|failed|partial)$",
        description="Filter by record status",
    ),
    shop: str = Depends(get_shop),
    db: AsyncSession = Depends(get_db),
):
    """Import records for the shop, newest first."""
    records, total = await ImportRecordService(db).list_history(shop, page=page, limit=limit, status=status_filter)
    total_pages = (total + limit - 1) // limit if total > 0 else 0

    return ApiResponse(
        data=[ImportRecordResponse.model_validate(r) for r in records],
        meta=PaginationMeta(page=page, limit=limit, total=total, total_pages=total_pages),
    )
