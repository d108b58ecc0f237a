"""Tests for the single-product import pipeline."""

from dataclasses import replace
from decimal import Decimal

import httpx

from importhawk.core.exceptions import RemoteCreateError, RemoteErrorKind
from importhawk.models.import_record import ImportRecord
from importhawk.schemas.imports import ImportOptions, MarkupType
from importhawk.services.import_executor import ImportOutcome, make_idempotency_key
from importhawk.services.import_record_service import ImportRecordService

from conftest import TEST_SHOP, make_raw, validation_error

URL = "https://acme.myshopify.com/products/linen-shirt"


class StubPipeline:
    def __init__(self):
        self.calls = 0

    async def rehost_all(self, images):
        self.calls += 1
        return tuple(replace(image, src=f"https://media.test/images/{index}.jpg") for index, image in enumerate(images))


async def _records(session_factory):
    async with session_factory() as db:
        records, total = await ImportRecordService(db).list_history(TEST_SHOP, limit=100)
    return records, total


def _sized_raw(**kwargs):
    return make_raw(
        options=[{"name": "Size", "values": ["S", "M"]}, {"name": "Color", "values": ["Red"]}],
        **kwargs,
    )


# ============================================================================
# SUCCESS PATHS
# ============================================================================

async def test_simple_product_updates_default_variant(executor_factory, adapter, catalog, session_factory):
    adapter.pages[URL] = make_raw()
    executor = executor_factory()

    outcome = await executor.import_url(URL, ImportOptions(download_images=False))

    assert outcome.success
    assert outcome.product_id.startswith("gid://shopify/Product/")
    assert outcome.variants_imported == 1
    assert outcome.images_imported == 1
    assert catalog.count("create_variant") == 0
    assert catalog.count("update_variant_price") == 1
    assert catalog.count("set_inventory") == 1
    assert list(catalog.inventory.values()) == [100]

    records, total = await _records(session_factory)
    assert total == 1
    assert records[0].status == "success"
    assert records[0].source_platform == "shopify"
    assert records[0].product_title == "Linen Shirt"
    assert records[0].completed_at is not None


async def test_markup_and_naming_reach_the_catalog(executor_factory, adapter, catalog):
    adapter.pages[URL] = make_raw(price="20.00")
    options = ImportOptions(
        price_markup=10,
        price_markup_type=MarkupType.PERCENTAGE,
        title_prefix="[New]",
        replace_vendor="My Store",
        download_images=False,
    )

    outcome = await executor_factory().import_url(URL, options)

    assert outcome.title == "[New] Linen Shirt"
    product = next(iter(catalog.products.values()))
    assert product.vendor == "My Store"
    price_update = [c for c in catalog.calls if c[0] == "update_variant_price"][0]
    assert price_update[2] == Decimal("22.00")


async def test_generated_variants_are_created_one_by_one(executor_factory, adapter, catalog):
    adapter.pages[URL] = _sized_raw()

    outcome = await executor_factory().import_url(URL, ImportOptions(download_images=False))

    assert outcome.success
    assert outcome.variants_imported == 2
    assert catalog.count("create_options") == 1
    assert [c[2] for c in catalog.calls if c[0] == "create_variant"] == ["S / Red", "M / Red"]
    inventory_call = [c for c in catalog.calls if c[0] == "set_inventory"][0]
    assert len(inventory_call[2]) == 2


async def test_failed_variant_is_skipped(executor_factory, adapter, catalog):
    adapter.pages[URL] = _sized_raw()
    catalog.variant_errors["S / Red"] = validation_error("Price must be positive")

    outcome = await executor_factory().import_url(URL, ImportOptions(download_images=False))

    assert outcome.success
    assert outcome.variants_imported == 1


async def test_transport_error_on_variant_is_skipped(executor_factory, adapter, catalog):
    adapter.pages[URL] = _sized_raw()
    catalog.variant_errors["M / Red"] = httpx.ConnectError("connection reset")

    outcome = await executor_factory().import_url(URL, ImportOptions(download_images=False))

    assert outcome.success
    assert outcome.variants_imported == 1


async def test_existing_variant_conflict_updates_default_variant(executor_factory, adapter, catalog):
    adapter.pages[URL] = _sized_raw()
    catalog.variant_errors["S / Red"] = validation_error(
        "The variant 'S / Red' already exists.", code="VARIANT_ALREADY_EXISTS"
    )

    outcome = await executor_factory().import_url(URL, ImportOptions(download_images=False))

    assert outcome.variants_imported == 2
    assert catalog.count("update_variant_price") == 1


async def test_variant_pass_failure_falls_back_to_first_variant_price(executor_factory, adapter, catalog):
    adapter.pages[URL] = _sized_raw()
    catalog.fail_options = RemoteCreateError("productOptionsCreate", RemoteErrorKind.UNKNOWN, "boom")

    outcome = await executor_factory().import_url(URL, ImportOptions(download_images=False))

    assert outcome.success
    assert outcome.variants_imported == 0
    assert catalog.count("get_first_variant_id") == 1
    assert catalog.count("update_variant_price") == 1


async def test_collection_and_publish_are_requested(executor_factory, adapter, catalog):
    adapter.pages[URL] = make_raw()
    options = ImportOptions(
        collection_id="gid://shopify/Collection/7",
        publish_to_sales_channels=True,
        download_images=False,
    )

    outcome = await executor_factory().import_url(URL, options)

    assert outcome.success
    assert ("add_to_collection", "gid://shopify/Collection/7", outcome.product_id) in catalog.calls
    assert ("publish", outcome.product_id) in catalog.calls


async def test_images_go_through_pipeline_when_downloading(executor_factory, adapter, catalog):
    adapter.pages[URL] = make_raw(images=["https://cdn.example.com/a.jpg", "https://cdn.example.com/b.jpg"])
    pipeline = StubPipeline()

    outcome = await executor_factory(image_pipeline=pipeline).import_url(URL, ImportOptions(download_images=True))

    assert outcome.images_imported == 2
    assert pipeline.calls == 1
    assert [i.src for i in catalog.media_attached] == [
        "https://media.test/images/0.jpg",
        "https://media.test/images/1.jpg",
    ]


async def test_images_keep_source_urls_without_download(executor_factory, adapter, catalog):
    adapter.pages[URL] = make_raw()
    pipeline = StubPipeline()

    await executor_factory(image_pipeline=pipeline).import_url(URL, ImportOptions(download_images=False))

    assert pipeline.calls == 0
    assert catalog.media_attached[0].src == "https://cdn.example.com/shirt.jpg"


# ============================================================================
# NON-FATAL FAILURES
# ============================================================================

async def test_media_failure_does_not_fail_import(executor_factory, adapter, catalog):
    adapter.pages[URL] = make_raw()
    catalog.fail_media = RemoteCreateError("productCreateMedia", RemoteErrorKind.VALIDATION, "bad image")

    outcome = await executor_factory().import_url(URL, ImportOptions(download_images=False))

    assert outcome.success
    assert outcome.images_imported == 0


async def test_collection_failure_does_not_fail_import(executor_factory, adapter, catalog):
    adapter.pages[URL] = make_raw()
    catalog.fail_collection = RemoteCreateError("collectionAddProducts", RemoteErrorKind.VALIDATION, "no such collection")

    outcome = await executor_factory().import_url(
        URL, ImportOptions(collection_id="gid://shopify/Collection/404", download_images=False)
    )

    assert outcome.success


async def test_no_inventory_without_quantity(executor_factory, adapter, catalog):
    adapter.pages[URL] = make_raw()

    await executor_factory().import_url(URL, ImportOptions(inventory_quantity=0, download_images=False))

    assert catalog.count("set_inventory") == 0
    assert catalog.count("get_location_id") == 0


async def test_missing_location_skips_inventory(executor_factory, adapter, catalog):
    adapter.pages[URL] = make_raw()
    catalog.location_id = None

    outcome = await executor_factory().import_url(URL, ImportOptions(download_images=False))

    assert outcome.success
    assert catalog.count("set_inventory") == 0


async def test_location_and_currency_fetched_once_per_executor(executor_factory, adapter, catalog):
    other = "https://acme.myshopify.com/products/wool-hat"
    adapter.pages[URL] = make_raw()
    adapter.pages[other] = make_raw(title="Wool Hat")
    executor = executor_factory()

    await executor.import_url(URL, ImportOptions(download_images=False))
    await executor.import_url(other, ImportOptions(download_images=False))

    assert catalog.count("get_location_id") == 1
    assert catalog.count("get_shop_currency") == 1
    assert catalog.count("set_inventory") == 2


# ============================================================================
# FAILED IMPORTS
# ============================================================================

async def test_scrape_failure_finalizes_failed_record(executor_factory, catalog, session_factory):
    outcome = await executor_factory().import_url("https://acme.myshopify.com/products/gone")

    assert outcome.status == "failed"
    assert "404" in outcome.error
    assert catalog.count("create_product") == 0

    records, total = await _records(session_factory)
    assert total == 1
    assert records[0].status == "failed"
    assert records[0].failed_products == 1


async def test_invalid_url_finalizes_failed_record(executor_factory, session_factory):
    outcome = await executor_factory().import_url("ftp://acme.example/file")

    assert outcome.status == "failed"
    assert "Invalid source URL" in outcome.error
    _, total = await _records(session_factory)
    assert total == 1


async def test_create_rejection_fails_item(executor_factory, adapter, catalog, session_factory):
    adapter.pages[URL] = make_raw()
    catalog.fail_create = validation_error("Title can't be blank")

    outcome = await executor_factory().import_url(URL, ImportOptions(download_images=False))

    assert outcome.status == "failed"
    assert outcome.error == "Title can't be blank"
    assert outcome.title == "Linen Shirt"
    assert catalog.count("attach_media") == 0

    records, _ = await _records(session_factory)
    assert records[0].product_id is None


async def test_unexpected_create_error_fails_item(executor_factory, adapter, catalog):
    adapter.pages[URL] = make_raw()
    catalog.fail_create = httpx.ReadTimeout("read timed out")

    outcome = await executor_factory().import_url(URL, ImportOptions(download_images=False))

    assert outcome.status == "failed"
    assert "timed out" in outcome.error


# ============================================================================
# IDEMPOTENCY
# ============================================================================

async def test_completed_key_is_not_imported_twice(executor_factory, adapter, catalog, session_factory):
    adapter.pages[URL] = make_raw()
    executor = executor_factory()
    key = make_idempotency_key(TEST_SHOP, URL, "job-1")

    first = await executor.import_url(URL, ImportOptions(download_images=False), job_id="job-1", idempotency_key=key)
    second = await executor.import_url(URL, ImportOptions(download_images=False), job_id="job-1", idempotency_key=key)

    assert first.success and not first.skipped
    assert second.success and second.skipped
    assert second.record_id == first.record_id
    assert catalog.count("create_product") == 1
    _, total = await _records(session_factory)
    assert total == 1


async def test_failed_key_is_retried(executor_factory, adapter, catalog):
    executor = executor_factory()
    key = make_idempotency_key(TEST_SHOP, URL, "job-1")

    first = await executor.import_url(URL, idempotency_key=key)
    adapter.pages[URL] = make_raw()
    second = await executor.import_url(URL, ImportOptions(download_images=False), idempotency_key=key)

    assert first.status == "failed"
    assert second.success and not second.skipped


def test_idempotency_key_is_stable():
    assert make_idempotency_key("a.myshopify.com", URL, "j1") == make_idempotency_key("a.myshopify.com", URL, "j1")
    assert make_idempotency_key("a.myshopify.com", URL, "j1") != make_idempotency_key("a.myshopify.com", URL, "j2")
    assert len(make_idempotency_key("a.myshopify.com", URL, None)) == 64


async def test_import_extraction_uses_given_platform(executor_factory, catalog, session_factory):
    from importhawk.scrapers.base import PlatformKind

    outcome = await executor_factory().import_extraction(
        make_raw(), PlatformKind.AMAZON, "https://www.amazon.com/dp/B000000001", ImportOptions(download_images=False)
    )

    assert outcome.success
    assert outcome.source_platform == "amazon"
    records, _ = await _records(session_factory)
    assert records[0].import_type == "collection"


def test_outcome_from_record():
    record = ImportRecord(
        shop=TEST_SHOP,
        source_url=URL,
        source_platform="shopify",
        status="success",
        product_id="gid://shopify/Product/1",
        variants_imported=3,
        images_imported=2,
    )
    outcome = ImportOutcome.from_record(record)
    assert outcome.success
    assert outcome.variants_imported == 3
