"""Tests for bulk and collection job fan-out."""

import pytest
from jsonschema import ValidationError, validate

from importhawk.core.exceptions import CollectionScrapeError
from importhawk.jobs.orchestrator import JobOrchestrator, JobResult
from importhawk.schemas.imports import ImportOptions
from importhawk.services.import_executor import ImportOutcome
from importhawk.services.import_record_service import ImportRecordService

from conftest import make_raw, validation_error

JOB_RESULT_SCHEMA = {
    "type": "object",
    "required": ["total", "success", "failed", "errors", "partial"],
    "properties": {
        "total": {"type": "integer", "minimum": 0},
        "success": {"type": "integer", "minimum": 0},
        "failed": {"type": "integer", "minimum": 0},
        "partial": {"type": "boolean"},
        "errors": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["title", "url", "error"],
                "properties": {
                    "title": {"type": "string"},
                    "url": {"type": "string"},
                    "error": {"type": "string"},
                },
            },
        },
    },
    "additionalProperties": False,
}

COLLECTION_URL = "https://acme.myshopify.com/collections/summer"
OPTIONS = ImportOptions(download_images=False)


def _product_url(n: int) -> str:
    return f"https://acme.myshopify.com/products/item-{n}"


@pytest.fixture
def orchestrator(executor_factory, no_pacing):
    return JobOrchestrator(executor_factory(), pacing=no_pacing)


async def test_bulk_counts_scrape_failures(orchestrator, adapter):
    urls = [_product_url(n) for n in range(5)]
    for n in (0, 2, 4):
        adapter.pages[urls[n]] = make_raw(title=f"Item {n}")

    result = await orchestrator.run_bulk(urls, OPTIONS, job_id="job-bulk")

    validate(instance=result, schema=JOB_RESULT_SCHEMA)
    assert result["total"] == 5
    assert result["success"] == 3
    assert result["failed"] == 2
    assert len(result["errors"]) == 2
    assert result["partial"] is True
    assert [e["url"] for e in result["errors"]] == [urls[1], urls[3]]
    # No title was scraped, so the URL stands in for it
    assert result["errors"][0]["title"] == urls[1]


async def test_bulk_all_success_is_not_partial(orchestrator, adapter):
    urls = [_product_url(n) for n in range(2)]
    for url in urls:
        adapter.pages[url] = make_raw()

    result = await orchestrator.run_bulk(urls, OPTIONS)

    assert result == {"total": 2, "success": 2, "failed": 0, "errors": [], "partial": False}


async def test_bulk_reports_progress(orchestrator, adapter):
    urls = [_product_url(n) for n in range(3)]
    seen = []

    async def on_progress(done, total):
        seen.append((done, total))

    await orchestrator.run_bulk(urls, OPTIONS, on_progress=on_progress)

    assert seen == [(1, 3), (2, 3), (3, 3)]


async def test_bulk_redelivery_skips_completed_items(orchestrator, adapter, catalog):
    urls = [_product_url(n) for n in range(2)]
    adapter.pages[urls[0]] = make_raw()

    first = await orchestrator.run_bulk(urls, OPTIONS, job_id="job-redelivered")
    adapter.pages[urls[1]] = make_raw(title="Second")
    second = await orchestrator.run_bulk(urls, OPTIONS, job_id="job-redelivered")

    assert first["success"] == 1
    assert second["success"] == 2
    # Item 0 was created by the first run only
    assert catalog.count("create_product") == 2


async def test_collection_with_one_rejected_product(orchestrator, adapter, catalog, session_factory):
    extractions = []
    for n in range(10):
        raw = make_raw(title=f"Item {n}")
        raw.metadata["source_url"] = _product_url(n)
        extractions.append(raw)
    adapter.collections[COLLECTION_URL] = extractions

    original_create = catalog.create_product

    async def create_product(product, status):
        if product.title == "Item 3":
            raise validation_error("Handle has already been taken")
        return await original_create(product, status)

    catalog.create_product = create_product

    result = await orchestrator.run_collection(COLLECTION_URL, 10, OPTIONS, job_id="job-coll")

    validate(instance=result, schema=JOB_RESULT_SCHEMA)
    assert (result["total"], result["success"], result["failed"]) == (10, 9, 1)
    assert result["errors"] == [
        {"title": "Item 3", "url": _product_url(3), "error": "Handle has already been taken"}
    ]

    async with session_factory() as db:
        records = await ImportRecordService(db).list_for_job("job-coll")
    assert len(records) == 10
    assert {r.import_type for r in records} == {"collection"}
    assert sum(1 for r in records if r.status == "failed") == 1


async def test_collection_respects_limit(orchestrator, adapter):
    adapter.collections[COLLECTION_URL] = [make_raw(title=f"Item {n}") for n in range(5)]

    result = await orchestrator.run_collection(COLLECTION_URL, 2, OPTIONS)

    assert result["total"] == 2


async def test_empty_collection_fails_job(orchestrator, adapter, catalog):
    adapter.collections[COLLECTION_URL] = []

    with pytest.raises(CollectionScrapeError):
        await orchestrator.run_collection(COLLECTION_URL, 10, OPTIONS)
    assert catalog.count("create_product") == 0


async def test_collection_enumeration_error_fails_job(orchestrator, adapter):
    adapter.collection_error = CollectionScrapeError(COLLECTION_URL, "HTTP 404")

    with pytest.raises(CollectionScrapeError, match="HTTP 404"):
        await orchestrator.run_collection(COLLECTION_URL, 10, OPTIONS)


async def test_unexpected_collection_error_is_wrapped(orchestrator, adapter):
    adapter.collection_error = RuntimeError("browser crashed")

    with pytest.raises(CollectionScrapeError, match="browser crashed"):
        await orchestrator.run_collection(COLLECTION_URL, 10, OPTIONS)


async def test_invalid_collection_url_fails_job(orchestrator):
    with pytest.raises(CollectionScrapeError):
        await orchestrator.run_collection("not-a-url", 10, OPTIONS)


def test_reported_errors_are_capped():
    result = JobResult(total=60, max_errors=50)
    for n in range(60):
        result.add(ImportOutcome(status="failed", source_url=_product_url(n), error="boom"))

    data = result.to_dict()
    assert data["failed"] == 60
    assert len(data["errors"]) == 50
    assert data["partial"] is False


def test_result_schema_rejects_missing_fields():
    with pytest.raises(ValidationError):
        validate(instance={"total": 1, "success": 1}, schema=JOB_RESULT_SCHEMA)
