"""Single-product import pipeline.

One call drives one source product through scrape, normalize, transform
and creation in the destination catalog, and leaves exactly one finalized
ImportRecord behind. Steps after the product exists (variants, inventory,
images, collection, publishing) degrade instead of failing the import.
"""

import hashlib
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import UUID

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from importhawk.core.exceptions import InvalidSourceURLError, RemoteCreateError, ScrapeError
from importhawk.models.import_record import ImportRecord
from importhawk.schemas.imports import ImportOptions
from importhawk.scrapers.base import NormalizedProduct, PlatformKind, RawExtraction
from importhawk.scrapers.detector import PlatformDetector
from importhawk.scrapers.factory import AdapterFactory, get_adapter_factory
from importhawk.scrapers.utils.pacing import PacingPolicy
from importhawk.services.catalog_client import CatalogClient, CreatedProduct
from importhawk.services.image_pipeline import ImagePipeline
from importhawk.services.import_record_service import ImportRecordService
from importhawk.services.normalizer import Normalizer
from importhawk.services.price_transformer import PriceTransformer

logger = structlog.get_logger(__name__)

# Errors from one destination call that must not abort the variant pass
_CALL_ERRORS = (RemoteCreateError, httpx.HTTPError)

_EXISTING_VARIANT_CODES = frozenset(["VARIANT_ALREADY_EXISTS", "VARIANT_ALREADY_EXISTS_CHANGE_OPTION_VALUE"])


def make_idempotency_key(shop: str, source_url: str, job_id: Optional[str]) -> str:
    """Stable key for one item of one job: ``sha256(shop|source_url|job_id)``."""
    return hashlib.sha256(f"{shop}|{source_url}|{job_id or ''}".encode("utf-8")).hexdigest()


def _is_existing_variant_error(error: RemoteCreateError) -> bool:
    for user_error in error.user_errors:
        if user_error.get("code") in _EXISTING_VARIANT_CODES:
            return True
        if "already exists" in str(user_error.get("message", "")).lower():
            return True
    return False


@dataclass
class ImportOutcome:
    """What happened to one product import."""

    status: str
    source_url: str
    source_platform: str = "unknown"
    record_id: Optional[UUID] = None
    product_id: Optional[str] = None
    title: Optional[str] = None
    error: Optional[str] = None
    variants_imported: int = 0
    images_imported: int = 0
    skipped: bool = False

    @property
    def success(self) -> bool:
        return self.status == "success"

    @classmethod
    def from_record(cls, record: ImportRecord, skipped: bool = False) -> "ImportOutcome":
        return cls(
            status=record.status,
            source_url=record.source_url,
            source_platform=record.source_platform,
            record_id=record.id,
            product_id=record.product_id,
            title=record.product_title,
            error=record.error,
            variants_imported=record.variants_imported,
            images_imported=record.images_imported,
            skipped=skipped,
        )


@dataclass
class _VariantPassResult:
    imported: int = 0
    inventory_item_ids: List[str] = field(default_factory=list)


class ImportExecutor:
    """Imports products for one shop.

    Create one executor per request or job: it caches the shop's inventory
    location and currency for its lifetime.
    """

    def __init__(
        self,
        catalog: CatalogClient,
        shop: str,
        session_factory: async_sessionmaker[AsyncSession],
        detector: Optional[PlatformDetector] = None,
        adapter_factory: Optional[AdapterFactory] = None,
        normalizer: Optional[Normalizer] = None,
        price_transformer: Optional[PriceTransformer] = None,
        image_pipeline: Optional[ImagePipeline] = None,
        pacing: Optional[PacingPolicy] = None,
    ):
        self.catalog = catalog
        self.shop = shop
        self.session_factory = session_factory
        self.detector = detector or PlatformDetector()
        self.adapter_factory = adapter_factory or get_adapter_factory()
        self.normalizer = normalizer or Normalizer()
        self.price_transformer = price_transformer or PriceTransformer()
        self.image_pipeline = image_pipeline
        self.pacing = pacing or PacingPolicy.from_settings()
        self.logger = logger.bind(service="import_executor", shop=shop)

        self._location_id: Optional[str] = None
        self._location_fetched = False
        self._currency_checked = False

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def import_url(
        self,
        url: str,
        options: Optional[ImportOptions] = None,
        import_type: str = "single",
        job_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> ImportOutcome:
        """Scrape a source URL and import it."""
        options = options or ImportOptions()

        existing = await self._find_completed(idempotency_key)
        if existing is not None:
            return existing

        record_id = await self._start_record(url, import_type, options, job_id, idempotency_key)
        platform: Optional[PlatformKind] = None
        try:
            platform = await self.detector.detect(url)
            adapter = self.adapter_factory.get_adapter(platform)
            raw = await adapter.scrape_product(url)
        except (InvalidSourceURLError, ScrapeError) as e:
            self.logger.warning("import_scrape_failed", url=url, error=str(e))
            return await self._finalize_failed(record_id, url, platform, str(e))
        except Exception as e:
            self.logger.error("import_scrape_crashed", url=url, error=str(e), exc_info=True)
            return await self._finalize_failed(record_id, url, platform, str(e))

        return await self._import(record_id, raw, platform, url, options)

    async def import_extraction(
        self,
        raw: RawExtraction,
        platform: PlatformKind,
        source_url: str,
        options: Optional[ImportOptions] = None,
        import_type: str = "collection",
        job_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> ImportOutcome:
        """Import an extraction that was already scraped (collection fan-out)."""
        options = options or ImportOptions()

        existing = await self._find_completed(idempotency_key)
        if existing is not None:
            return existing

        record_id = await self._start_record(
            source_url, import_type, options, job_id, idempotency_key, platform.value
        )
        return await self._import(record_id, raw, platform, source_url, options)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _import(
        self,
        record_id: UUID,
        raw: RawExtraction,
        platform: PlatformKind,
        source_url: str,
        options: ImportOptions,
    ) -> ImportOutcome:
        try:
            product = self.normalizer.normalize(raw, platform, source_url)
            product = self.price_transformer.transform(product, options)
        except Exception as e:
            self.logger.error("import_normalize_crashed", url=source_url, error=str(e), exc_info=True)
            return await self._finalize_failed(record_id, source_url, platform, str(e), title=raw.title)

        await self._log_shop_currency()

        try:
            created = await self.catalog.create_product(product, options.status)
        except RemoteCreateError as e:
            self.logger.warning("import_create_rejected", url=source_url, kind=e.kind.value, error=str(e))
            return await self._finalize_failed(record_id, source_url, platform, str(e), title=product.title)
        except Exception as e:
            self.logger.error("import_create_crashed", url=source_url, error=str(e), exc_info=True)
            return await self._finalize_failed(record_id, source_url, platform, str(e), title=product.title)

        variant_pass = await self._attach_variants(created, product)

        if options.inventory_quantity > 0 and variant_pass.inventory_item_ids:
            await self._set_inventory(variant_pass.inventory_item_ids, options.inventory_quantity)

        images_imported = await self._attach_images(created.id, product, options)

        if options.collection_id:
            try:
                await self.catalog.add_to_collection(options.collection_id, created.id)
            except _CALL_ERRORS as e:
                self.logger.warning("import_collection_add_failed", product_id=created.id, error=str(e))

        if options.publish_to_sales_channels:
            try:
                await self.catalog.publish(created.id)
            except _CALL_ERRORS as e:
                self.logger.warning("import_publish_failed", product_id=created.id, error=str(e))

        async with self.session_factory() as db:
            record = await ImportRecordService(db).finalize(
                record_id,
                "success",
                source_platform=platform.value,
                product_id=created.id,
                product_title=product.title,
                images_imported=images_imported,
                variants_imported=variant_pass.imported,
            )
        self.logger.info(
            "import_succeeded",
            url=source_url,
            product_id=created.id,
            variants=variant_pass.imported,
            images=images_imported,
        )
        return ImportOutcome.from_record(record)

    async def _attach_variants(self, created: CreatedProduct, product: NormalizedProduct) -> _VariantPassResult:
        result = _VariantPassResult()
        variants = product.variants

        # Simple product: the catalog already made the one variant
        if len(variants) == 1 and not product.options:
            if not created.default_variant_id:
                return result
            variant = variants[0]
            try:
                item_id = await self.catalog.update_variant_price(
                    created.id, created.default_variant_id, variant.price, variant.compare_at_price
                )
            except _CALL_ERRORS as e:
                self.logger.warning("import_default_variant_update_failed", product_id=created.id, error=str(e))
                return result
            result.imported = 1
            item_id = item_id or created.default_inventory_item_id
            if item_id:
                result.inventory_item_ids.append(item_id)
            return result

        try:
            await self.catalog.create_options(created.id, product.options)

            for index, variant in enumerate(variants):
                if index:
                    await self.pacing.variant_pause()
                try:
                    created_variants = await self.catalog.create_variants(created.id, [variant], product.options)
                except RemoteCreateError as e:
                    # Creating options turns the default variant into the
                    # first option combination
                    if _is_existing_variant_error(e) and created.default_variant_id:
                        try:
                            item_id = await self.catalog.update_variant_price(
                                created.id, created.default_variant_id, variant.price, variant.compare_at_price
                            )
                        except _CALL_ERRORS as update_error:
                            self.logger.warning(
                                "import_variant_failed", variant=variant.title, error=str(update_error)
                            )
                            continue
                        result.imported += 1
                        if item_id:
                            result.inventory_item_ids.append(item_id)
                        continue
                    self.logger.warning("import_variant_failed", variant=variant.title, error=str(e))
                    continue
                except httpx.HTTPError as e:
                    self.logger.warning("import_variant_failed", variant=variant.title, error=str(e))
                    continue

                result.imported += len(created_variants)
                result.inventory_item_ids.extend(v.inventory_item_id for v in created_variants if v.inventory_item_id)
        except Exception as e:
            self.logger.warning("import_variant_pass_failed", product_id=created.id, error=str(e))
            await self._update_first_variant_price(created, product)

        self.logger.info("import_variants_attached", product_id=created.id, created=result.imported, total=len(variants))
        return result

    async def _update_first_variant_price(self, created: CreatedProduct, product: NormalizedProduct) -> None:
        """Fallback: make sure at least the first variant carries a real price."""
        try:
            variant_id = await self.catalog.get_first_variant_id(created.id)
            if variant_id:
                first = product.variants[0]
                await self.catalog.update_variant_price(created.id, variant_id, first.price, first.compare_at_price)
        except _CALL_ERRORS as e:
            self.logger.warning("import_fallback_price_failed", product_id=created.id, error=str(e))

    async def _set_inventory(self, inventory_item_ids: List[str], quantity: int) -> None:
        location_id = await self._get_location_id()
        if not location_id:
            self.logger.info("import_inventory_skipped", reason="no_location")
            return
        try:
            await self.catalog.set_inventory(location_id, inventory_item_ids, quantity)
        except _CALL_ERRORS as e:
            self.logger.warning("import_inventory_failed", error=str(e))

    async def _attach_images(self, product_id: str, product: NormalizedProduct, options: ImportOptions) -> int:
        images = product.images
        if not images:
            return 0
        if options.download_images and self.image_pipeline is not None:
            images = await self.image_pipeline.rehost_all(images)
        try:
            return await self.catalog.attach_media(product_id, images)
        except _CALL_ERRORS as e:
            self.logger.warning("import_media_failed", product_id=product_id, error=str(e))
            return 0

    # ------------------------------------------------------------------
    # Per-shop lookups, cached for the executor's lifetime
    # ------------------------------------------------------------------

    async def _get_location_id(self) -> Optional[str]:
        if not self._location_fetched:
            self._location_fetched = True
            try:
                self._location_id = await self.catalog.get_location_id()
            except _CALL_ERRORS as e:
                self.logger.warning("import_location_lookup_failed", error=str(e))
        return self._location_id

    async def _log_shop_currency(self) -> None:
        # Source prices are never converted; the currency is informational
        if self._currency_checked:
            return
        self._currency_checked = True
        try:
            currency = await self.catalog.get_shop_currency()
            self.logger.info("shop_currency", currency=currency)
        except _CALL_ERRORS as e:
            self.logger.info("shop_currency_unavailable", error=str(e))

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def _find_completed(self, idempotency_key: Optional[str]) -> Optional[ImportOutcome]:
        if not idempotency_key:
            return None
        async with self.session_factory() as db:
            record = await ImportRecordService(db).find_success_by_key(idempotency_key)
        if record is None:
            return None
        self.logger.info("import_already_completed", url=record.source_url, record_id=str(record.id))
        return ImportOutcome.from_record(record, skipped=True)

    async def _start_record(
        self,
        url: str,
        import_type: str,
        options: ImportOptions,
        job_id: Optional[str],
        idempotency_key: Optional[str],
        source_platform: str = "unknown",
    ) -> UUID:
        async with self.session_factory() as db:
            record = await ImportRecordService(db).start(
                shop=self.shop,
                source_url=url,
                import_type=import_type,
                options=options.model_dump(mode="json", by_alias=True),
                job_id=job_id,
                idempotency_key=idempotency_key,
                source_platform=source_platform,
            )
        return record.id

    async def _finalize_failed(
        self,
        record_id: UUID,
        url: str,
        platform: Optional[PlatformKind],
        error: str,
        title: Optional[str] = None,
    ) -> ImportOutcome:
        async with self.session_factory() as db:
            record = await ImportRecordService(db).finalize(
                record_id,
                "failed",
                source_platform=platform.value if platform else None,
                product_title=title,
                error=error,
            )
        return ImportOutcome.from_record(record)
