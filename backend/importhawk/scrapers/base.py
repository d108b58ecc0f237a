"""Base scraper adapter interface and the product data structures.

All platform-specific scrapers inherit from BaseScraperAdapter (plain
HTTP) or BrowserScraperAdapter (headless browser) and return
RawExtraction objects. Normalization into NormalizedProduct happens in
the service layer, never inside an adapter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional, Tuple, Union
from urllib.parse import urlparse

import httpx
import structlog
from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from importhawk.config import settings
from importhawk.core.exceptions import ScrapeError, ScrapeErrorKind
from importhawk.scrapers.utils.browser_manager import BrowserManager
from importhawk.scrapers.utils.normalizer import is_decorative_image, normalize_image_url
from importhawk.scrapers.utils.pacing import PacingPolicy
from importhawk.scrapers.utils.rate_limiter import DomainRateLimiter
from importhawk.scrapers.utils.retry import http_retry, playwright_retry
from importhawk.scrapers.utils.user_agents import browser_headers

logger = structlog.get_logger(__name__)


class PlatformKind(str, Enum):
    SHOPIFY = "shopify"
    ALIEXPRESS = "aliexpress"
    AMAZON = "amazon"
    GENERIC = "generic"


@dataclass
class RawExtraction:
    """Platform-shaped product data, exactly as an adapter found it.

    ``images`` holds strings or ``{"src", "alt", "position"}`` dicts,
    ``variants`` holds dicts with Shopify-style keys (title, price,
    compare_at_price, sku, option1..option3, inventory_quantity) and
    ``options`` holds ``{"name", "values"}`` dicts. ``tags`` may be a list
    or a comma-delimited string.
    """

    title: Optional[str] = None
    price_text: Optional[str] = None
    images: List[Union[str, dict]] = field(default_factory=list)
    variants: List[dict] = field(default_factory=list)
    options: List[dict] = field(default_factory=list)
    description: Optional[str] = None
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    tags: Union[List[str], str, None] = None
    source_id: Optional[str] = None
    handle: Optional[str] = None
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ImageRef:
    src: str
    alt: str = ""
    position: int = 1


@dataclass(frozen=True)
class Variant:
    """One purchasable variant. Prices are 2-scale Decimals."""

    title: str
    price: Decimal
    compare_at_price: Optional[Decimal] = None
    sku: str = ""
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    inventory_quantity: int = 0

    @property
    def option_values(self) -> List[str]:
        return [v for v in (self.option1, self.option2, self.option3) if v is not None]


@dataclass(frozen=True)
class ProductOption:
    name: str
    values: Tuple[str, ...] = ()


@dataclass(frozen=True)
class NormalizedProduct:
    """Platform-independent product, ready to be sent to the catalog.

    ``variants`` is never empty and option triples are unique within it.
    """

    title: str
    source_url: str
    source_platform: PlatformKind
    variants: Tuple[Variant, ...]
    description: str = ""
    vendor: str = ""
    product_type: str = ""
    tags: Tuple[str, ...] = ()
    images: Tuple[ImageRef, ...] = ()
    options: Tuple[ProductOption, ...] = ()

    def __post_init__(self):
        if not self.title:
            raise ValueError("title is required")
        if not self.variants:
            raise ValueError("at least one variant is required")
        if len(self.options) > 3:
            raise ValueError("at most three options are supported")


class BaseScraperAdapter(ABC):
    """Abstract base class for all source adapters.

    Provides an httpx client (injected or owned), per-domain rate limiting,
    transport retries and the mapping of HTTP failures onto ScrapeError
    kinds.
    """

    platform: PlatformKind = PlatformKind.GENERIC

    # Lower-cased substrings that identify an anti-bot interstitial
    BLOCK_MARKERS: Tuple[str, ...] = ()

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        pacing: Optional[PacingPolicy] = None,
        rate_limiter: Optional[DomainRateLimiter] = None,
    ):
        self._http_client = http_client
        self._owns_client = http_client is None
        self.pacing = pacing or PacingPolicy.from_settings()
        self.rate_limiter = rate_limiter
        self.logger = logger.bind(adapter=self.platform.value)

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=settings.SCRAPE_TIMEOUT,
                follow_redirects=True,
                headers=browser_headers(),
            )
        return self._http_client

    @abstractmethod
    async def scrape_product(self, url: str) -> RawExtraction:
        """Scrape a single product page.

        Raises:
            ScrapeError: with kind NOT_FOUND, PARSE_FAILURE, TIMEOUT or BLOCKED
        """

    @abstractmethod
    async def scrape_collection(self, url: str, limit: int) -> List[RawExtraction]:
        """Scrape up to ``limit`` products from a collection or listing page.

        Items that fail are logged and skipped.

        Raises:
            CollectionScrapeError: if the collection cannot be enumerated
        """

    async def close(self) -> None:
        """Release owned resources."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _error(self, kind: ScrapeErrorKind, message: str) -> ScrapeError:
        return ScrapeError(self.platform.value, kind, message)

    @http_retry
    async def _get(self, url: str, headers: Optional[dict] = None) -> httpx.Response:
        return await self.http_client.get(url, headers=headers)

    async def _fetch(self, url: str, headers: Optional[dict] = None) -> httpx.Response:
        """GET a URL and map failures onto ScrapeError kinds.

        Raises:
            ScrapeError: TIMEOUT, NOT_FOUND or BLOCKED
        """
        if self.rate_limiter:
            await self.rate_limiter.acquire(urlparse(url).netloc)

        self.logger.debug("fetching_url", url=url)
        try:
            response = await self._get(url, headers=headers)
        except httpx.TimeoutException as e:
            raise self._error(ScrapeErrorKind.TIMEOUT, f"timed out fetching {url}") from e
        except httpx.HTTPError as e:
            raise self._error(ScrapeErrorKind.NOT_FOUND, f"unreachable {url}: {e}") from e

        status = response.status_code
        if status in (404, 410):
            raise self._error(ScrapeErrorKind.NOT_FOUND, f"HTTP {status} for {url}")
        if status in (401, 403, 429, 503):
            raise self._error(ScrapeErrorKind.BLOCKED, f"HTTP {status} for {url}")
        if status >= 400:
            raise self._error(ScrapeErrorKind.NOT_FOUND, f"HTTP {status} for {url}")
        return response

    async def _fetch_html(self, url: str) -> str:
        response = await self._fetch(url)
        html = response.text
        self._check_blocked(html, url)
        return html

    async def _fetch_json(self, url: str) -> Any:
        response = await self._fetch(url, headers={"Accept": "application/json"})
        try:
            return response.json()
        except ValueError as e:
            raise self._error(ScrapeErrorKind.PARSE_FAILURE, f"invalid JSON from {url}") from e

    def _is_blocked(self, html: str) -> bool:
        lowered = html.lower()
        return any(marker in lowered for marker in self.BLOCK_MARKERS)

    def _check_blocked(self, html: str, url: str) -> None:
        if self._is_blocked(html):
            self.logger.warning("anti_bot_page_detected", url=url)
            raise self._error(ScrapeErrorKind.BLOCKED, f"anti-bot page served for {url}")

    # ------------------------------------------------------------------
    # Parsing helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _soup(html: str) -> BeautifulSoup:
        return BeautifulSoup(html, "html.parser")

    @staticmethod
    def _clean_image_urls(urls, base_url: str) -> List[str]:
        """Resolve, filter decorative assets and de-duplicate, keeping order."""
        seen = set()
        cleaned: List[str] = []
        for src in urls:
            absolute = normalize_image_url(src, base_url)
            if not absolute or is_decorative_image(absolute) or absolute in seen:
                continue
            seen.add(absolute)
            cleaned.append(absolute)
        return cleaned


class BrowserScraperAdapter(BaseScraperAdapter):
    """Base class for adapters that need a rendered page.

    Each instance owns its BrowserManager; close() shuts the browser down.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        pacing: Optional[PacingPolicy] = None,
        rate_limiter: Optional[DomainRateLimiter] = None,
        browser: Optional[BrowserManager] = None,
    ):
        super().__init__(http_client=http_client, pacing=pacing, rate_limiter=rate_limiter)
        self.browser = browser or BrowserManager(
            headless=settings.BROWSER_HEADLESS,
            navigation_timeout_ms=settings.BROWSER_NAVIGATION_TIMEOUT_MS,
        )

    @playwright_retry
    async def _render_with_retry(self, url: str, wait_selector: Optional[str], settle_seconds: float) -> str:
        return await self.browser.render(url, wait_selector=wait_selector, settle_seconds=settle_seconds)

    async def _render(self, url: str, wait_selector: Optional[str] = None, settle_seconds: float = 0.0) -> str:
        """Render a page in the browser and map failures onto ScrapeError kinds."""
        if self.rate_limiter:
            await self.rate_limiter.acquire(urlparse(url).netloc)

        self.logger.info("rendering_url", url=url)
        try:
            html = await self._render_with_retry(url, wait_selector, settle_seconds)
        except PlaywrightTimeoutError as e:
            raise self._error(ScrapeErrorKind.TIMEOUT, f"timed out rendering {url}") from e
        except PlaywrightError as e:
            raise self._error(ScrapeErrorKind.NOT_FOUND, f"could not render {url}: {e}") from e

        self._check_blocked(html, url)
        return html

    async def close(self) -> None:
        await self.browser.stop()
        await super().close()
