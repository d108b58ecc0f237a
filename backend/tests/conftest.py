"""Pytest configuration and shared fixtures."""

import os

# Must be set before importhawk.config is imported anywhere
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["HTTP_RETRY_ATTEMPTS"] = "1"
os.environ["CATALOG_RETRY_ATTEMPTS"] = "1"
os.environ["PACING_ITEM_DELAY"] = "0"
os.environ["PACING_PLATFORM_DELAY"] = "0"
os.environ["PACING_VARIANT_DELAY"] = "0"
os.environ["SHOPIFY_ADMIN_TOKENS"] = "test-shop.myshopify.com=shpat_test"

from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from importhawk.core.exceptions import RemoteCreateError, RemoteErrorKind, ScrapeError, ScrapeErrorKind
from importhawk.models import Base
from importhawk.scrapers.base import ImageRef, NormalizedProduct, PlatformKind, ProductOption, RawExtraction, Variant
from importhawk.scrapers.detector import parse_source_url
from importhawk.scrapers.utils.pacing import PacingPolicy
from importhawk.services.catalog_client import CatalogClient, CreatedProduct, CreatedVariant

TEST_SHOP = "test-shop.myshopify.com"


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite shared across sessions through a StaticPool."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def no_pacing() -> PacingPolicy:
    return PacingPolicy.none()


# ============================================================================
# FAKES
# ============================================================================

class FakeCatalog(CatalogClient):
    """In-memory destination catalog that records every call.

    Failures are scripted through the public attributes.
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self.products: Dict[str, NormalizedProduct] = {}
        self.fail_create: Optional[Exception] = None
        self.fail_options: Optional[Exception] = None
        self.variant_errors: Dict[str, Exception] = {}
        self.fail_media: Optional[Exception] = None
        self.fail_collection: Optional[Exception] = None
        self.location_id: Optional[str] = "gid://shopify/Location/1"
        self.media_attached: List[ImageRef] = []
        self.inventory: Dict[str, int] = {}
        self.collections: List[Dict[str, Any]] = []
        self._counter = 0

    def _next(self, kind: str) -> str:
        self._counter += 1
        return f"gid://shopify/{kind}/{self._counter}"

    async def create_product(self, product, status) -> CreatedProduct:
        self.calls.append(("create_product", product.title))
        if self.fail_create is not None:
            raise self.fail_create
        product_id = self._next("Product")
        self.products[product_id] = product
        return CreatedProduct(
            id=product_id,
            title=product.title,
            handle=product.title.lower().replace(" ", "-"),
            default_variant_id=self._next("ProductVariant"),
            default_inventory_item_id=self._next("InventoryItem"),
        )

    async def create_options(self, product_id: str, options: Sequence[ProductOption]) -> None:
        self.calls.append(("create_options", product_id, tuple(o.name for o in options)))
        if self.fail_options is not None:
            raise self.fail_options

    async def create_variants(self, product_id, variants, options) -> List[CreatedVariant]:
        created = []
        for variant in variants:
            self.calls.append(("create_variant", product_id, variant.title))
            if variant.title in self.variant_errors:
                raise self.variant_errors[variant.title]
            created.append(CreatedVariant(
                id=self._next("ProductVariant"),
                title=variant.title,
                inventory_item_id=self._next("InventoryItem"),
            ))
        return created

    async def update_variant_price(self, product_id, variant_id, price, compare_at_price=None) -> Optional[str]:
        self.calls.append(("update_variant_price", variant_id, price))
        return None

    async def get_first_variant_id(self, product_id: str) -> Optional[str]:
        self.calls.append(("get_first_variant_id", product_id))
        return "gid://shopify/ProductVariant/first"

    async def attach_media(self, product_id, images) -> int:
        self.calls.append(("attach_media", product_id, len(images)))
        if self.fail_media is not None:
            raise self.fail_media
        self.media_attached.extend(images)
        return len(images)

    async def add_to_collection(self, collection_id: str, product_id: str) -> None:
        self.calls.append(("add_to_collection", collection_id, product_id))
        if self.fail_collection is not None:
            raise self.fail_collection

    async def get_location_id(self) -> Optional[str]:
        self.calls.append(("get_location_id",))
        return self.location_id

    async def set_inventory(self, location_id, inventory_item_ids, quantity) -> None:
        self.calls.append(("set_inventory", location_id, tuple(inventory_item_ids), quantity))
        for item_id in inventory_item_ids:
            self.inventory[item_id] = quantity

    async def get_shop_currency(self) -> Optional[str]:
        self.calls.append(("get_shop_currency",))
        return "USD"

    async def publish(self, product_id: str) -> None:
        self.calls.append(("publish", product_id))

    async def list_collections(self) -> List[Dict[str, Any]]:
        self.calls.append(("list_collections",))
        return list(self.collections)

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


class FakeAdapter:
    """Adapter returning scripted extractions keyed by URL."""

    def __init__(self, platform: PlatformKind = PlatformKind.SHOPIFY):
        self.platform = platform
        self.pages: Dict[str, RawExtraction] = {}
        self.collections: Dict[str, List[RawExtraction]] = {}
        self.collection_error: Optional[Exception] = None

    async def scrape_product(self, url: str) -> RawExtraction:
        if url not in self.pages:
            raise ScrapeError(self.platform.value, ScrapeErrorKind.NOT_FOUND, f"HTTP 404 for {url}")
        return self.pages[url]

    async def scrape_collection(self, url: str, limit: int) -> List[RawExtraction]:
        if self.collection_error is not None:
            raise self.collection_error
        return self.collections.get(url, [])[:limit]

    async def close(self) -> None:
        pass


class FakeAdapterFactory:
    def __init__(self, adapter: FakeAdapter):
        self.adapter = adapter

    def get_adapter(self, platform: PlatformKind) -> FakeAdapter:
        return self.adapter

    async def close(self) -> None:
        pass


class FakeDetector:
    """Detects every URL as the same platform, without network access."""

    def __init__(self, platform: PlatformKind = PlatformKind.SHOPIFY):
        self.platform = platform

    async def detect(self, url: str) -> PlatformKind:
        parse_source_url(url)
        return self.platform


def validation_error(message: str = "Title can't be blank", code: Optional[str] = None) -> RemoteCreateError:
    user_error = {"field": ["title"], "message": message}
    if code:
        user_error["code"] = code
    return RemoteCreateError("productCreate", RemoteErrorKind.VALIDATION, message, [user_error])


def make_raw(title: str = "Linen Shirt", price: str = "20.00", **kwargs) -> RawExtraction:
    kwargs.setdefault("images", ["https://cdn.example.com/shirt.jpg"])
    kwargs.setdefault("vendor", "Acme")
    return RawExtraction(title=title, price_text=price, **kwargs)


def make_product(**kwargs) -> NormalizedProduct:
    kwargs.setdefault("title", "Linen Shirt")
    kwargs.setdefault("source_url", "https://acme.myshopify.com/products/linen-shirt")
    kwargs.setdefault("source_platform", PlatformKind.SHOPIFY)
    kwargs.setdefault("variants", (Variant(title="Default", price=Decimal("20.00")),))
    return NormalizedProduct(**kwargs)


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def executor_factory(catalog, adapter, session_factory, no_pacing):
    """Build an ImportExecutor wired to the fakes."""
    from importhawk.services.import_executor import ImportExecutor

    def _build(**overrides):
        kwargs = dict(
            catalog=catalog,
            shop=TEST_SHOP,
            session_factory=session_factory,
            detector=FakeDetector(adapter.platform),
            adapter_factory=FakeAdapterFactory(adapter),
            pacing=no_pacing,
        )
        kwargs.update(overrides)
        return ImportExecutor(**kwargs)

    return _build
