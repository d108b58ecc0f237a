"""AliExpress product adapter.

AliExpress renders product data client-side, so pages are loaded in the
headless browser. The page state object (``window.runParams`` or
``window._init_data_``) is read first; selectors are the fallback.
"""

import json
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from importhawk.core.exceptions import CollectionScrapeError, ScrapeError, ScrapeErrorKind
from importhawk.scrapers.base import BrowserScraperAdapter, PlatformKind, RawExtraction

_CAPTCHA_MARKERS = (
    "slide to verify",
    "unusual traffic",
    "verify you are human",
    "security verification",
    "/punish?",
    "baxia-punish",
)

_ITEM_ID = re.compile(r"/item/(\d+)")

# `window.runParams = { data: {...} }` is a JS literal, not JSON, so decode
# from the start of the `data` value
_STATE_DATA_KEY = re.compile(r"window\.(?:runParams|_init_data_)\s*=\s*\{\s*['\"]?data['\"]?\s*:\s*")
_STATE_JSON = re.compile(r"window\.(?:runParams|_init_data_)\s*=\s*")

_WAIT_SELECTOR = "h1, [data-pl='product-title'], [class*='title--']"

MAX_IMAGES = 10


def extract_item_id(url: str) -> Optional[str]:
    match = _ITEM_ID.search(urlparse(url).path)
    return match.group(1) if match else None


def _first(*values):
    for value in values:
        if value:
            return value
    return None


def _dig(data: Dict[str, Any], *path: str) -> Any:
    node: Any = data
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


class AliExpressAdapter(BrowserScraperAdapter):
    """Scraper for AliExpress item pages."""

    platform = PlatformKind.ALIEXPRESS

    BLOCK_MARKERS = _CAPTCHA_MARKERS

    async def scrape_product(self, url: str) -> RawExtraction:
        html = await self._render(url, wait_selector=_WAIT_SELECTOR, settle_seconds=1.0)
        return self.parse_product_html(html, url)

    async def scrape_collection(self, url: str, limit: int) -> List[RawExtraction]:
        try:
            html = await self._render(url, wait_selector="a[href*='/item/']", settle_seconds=2.0)
        except ScrapeError as e:
            raise CollectionScrapeError(url, str(e)) from e

        product_urls = self.parse_listing_html(html)[:limit]
        self.logger.info("aliexpress_listing_enumerated", url=url, count=len(product_urls))

        extractions: List[RawExtraction] = []
        for index, product_url in enumerate(product_urls):
            if index:
                await self.pacing.platform_pause()
            try:
                extraction = await self.scrape_product(product_url)
            except ScrapeError as e:
                self.logger.warning("collection_item_skipped", url=product_url, error=str(e))
                continue
            except Exception as e:
                self.logger.warning(
                    "collection_item_failed", url=product_url, error=str(e), exc_info=True
                )
                continue
            extraction.metadata["source_url"] = product_url
            extractions.append(extraction)
        return extractions

    def parse_listing_html(self, html: str) -> List[str]:
        """Item URLs linked from a listing page, de-duplicated by item id."""
        seen = set()
        urls = []
        for link in self._soup(html).select("a[href*='/item/']"):
            item_id = extract_item_id(link.get("href", ""))
            if item_id and item_id not in seen:
                seen.add(item_id)
                urls.append(f"https://www.aliexpress.com/item/{item_id}.html")
        return urls

    def parse_product_html(self, html: str, url: str) -> RawExtraction:
        state = self.extract_page_state(html)
        if state:
            extraction = self._from_page_state(state, url)
            if extraction is not None:
                return extraction
            self.logger.info("aliexpress_state_incomplete", url=url)
        return self._from_selectors(html, url)

    @staticmethod
    def extract_page_state(html: str) -> Optional[Dict[str, Any]]:
        """The product data object embedded by the page, if any."""
        decoder = json.JSONDecoder()
        data = None

        match = _STATE_DATA_KEY.search(html)
        if match:
            try:
                data, _ = decoder.raw_decode(html, match.end())
            except ValueError:
                data = None

        if data is None:
            match = _STATE_JSON.search(html)
            if match:
                try:
                    wrapper, _ = decoder.raw_decode(html, match.end())
                except ValueError:
                    wrapper = None
                if isinstance(wrapper, dict):
                    data = wrapper.get("data", wrapper)

        # _init_data_ nests one level deeper
        while isinstance(data, dict) and set(data.keys()) == {"data"}:
            data = data["data"]
        return data if isinstance(data, dict) else None

    def _from_page_state(self, state: Dict[str, Any], url: str) -> Optional[RawExtraction]:
        title = _first(
            _dig(state, "titleModule", "subject"),
            _dig(state, "productInfoComponent", "subject"),
            _dig(state, "metaDataComponent", "title"),
        )
        if not title:
            return None

        price_text = _first(
            _dig(state, "priceModule", "formatedActivityPrice"),
            _dig(state, "priceModule", "formatedPrice"),
            _dig(state, "priceModule", "minAmount", "value"),
            _dig(state, "priceComponent", "discountPrice", "minActivityAmount", "value"),
            _dig(state, "priceComponent", "origPrice", "minAmount", "value"),
        )

        image_paths = _first(
            _dig(state, "imageModule", "imagePathList"),
            _dig(state, "imageComponent", "imagePathList"),
        ) or []
        if not isinstance(image_paths, list):
            image_paths = []
        images = self._clean_image_urls(image_paths, url)[:MAX_IMAGES]

        sku_props = _first(
            _dig(state, "skuModule", "productSKUPropertyList"),
            _dig(state, "skuComponent", "productSKUPropertyList"),
        ) or []
        if not isinstance(sku_props, list):
            sku_props = []
        options = []
        for prop in sku_props[:3]:
            if not isinstance(prop, dict):
                continue
            values = [
                _first(value.get("propertyValueDisplayName"), value.get("propertyValueName"))
                for value in prop.get("skuPropertyValues") or []
                if isinstance(value, dict)
            ]
            values = [v for v in values if v]
            if prop.get("skuPropertyName") and values:
                options.append({"name": prop["skuPropertyName"], "values": values})

        vendor = _first(
            _dig(state, "storeModule", "storeName"),
            _dig(state, "sellerComponent", "storeName"),
        )

        return RawExtraction(
            title=str(title).strip(),
            price_text=str(price_text) if price_text is not None else None,
            images=[{"src": src, "alt": title} for src in images],
            options=options,
            description=_first(_dig(state, "pageModule", "description"), "Imported from AliExpress"),
            vendor=vendor or "AliExpress",
            tags=["aliexpress", "imported"],
            source_id=extract_item_id(url),
            metadata={
                "structured_data": True,
                "description_url": _first(
                    _dig(state, "descriptionModule", "descriptionUrl"),
                    _dig(state, "productDescComponent", "descriptionUrl"),
                ),
            },
        )

    def _from_selectors(self, html: str, url: str) -> RawExtraction:
        soup = self._soup(html)

        title_el = soup.select_one("h1") or soup.select_one("[data-pl='product-title']")
        title = title_el.get_text(" ", strip=True) if title_el else ""
        if not title:
            raise self._error(ScrapeErrorKind.PARSE_FAILURE, f"no product data on {url}")

        price_text = None
        for selector in ("[class*='price'] span", "[class*='Price']", "[class*='price']"):
            el = soup.select_one(selector)
            if el and el.get_text(strip=True):
                price_text = el.get_text(strip=True)
                break

        srcs = [img.get("src") or img.get("data-src") for img in soup.select("img[src*='alicdn'], img[data-src*='alicdn']")]
        images = self._clean_image_urls(srcs, url)[:MAX_IMAGES]

        return RawExtraction(
            title=title,
            price_text=price_text,
            images=[{"src": src, "alt": title} for src in images],
            description="Imported from AliExpress",
            vendor="AliExpress",
            tags=["aliexpress", "imported"],
            source_id=extract_item_id(url),
        )
