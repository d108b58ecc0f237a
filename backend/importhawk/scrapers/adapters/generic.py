"""Fallback adapter for any website.

Reads schema.org Product JSON-LD when the page has it, otherwise walks
lists of common selectors for each field.
"""

import json
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from importhawk.core.exceptions import ScrapeError, ScrapeErrorKind
from importhawk.scrapers.base import BaseScraperAdapter, PlatformKind, RawExtraction

# Every image selector is tried; results are merged in this order
IMAGE_SELECTORS = [
    "[class*='product'] img",
    "[class*='gallery'] img",
    "[itemprop='image']",
    "[class*='slider'] img",
    "meta[property='og:image']",
    "[class*='main-image'] img",
    ".product-image img",
    "#product-image img",
]

TITLE_SELECTORS = [
    "h1[class*='product']",
    "h1[class*='title']",
    "h1[itemprop='name']",
    "[class*='product-title']",
    "[class*='product-name']",
    "[data-testid*='title']",
    "meta[property='og:title']",
    "meta[name='twitter:title']",
    "h1",
    "title",
]

PRICE_SELECTORS = [
    "[class*='price']:not([class*='compare'])",
    "[itemprop='price']",
    "[data-price]",
    "[class*='Price']",
    "meta[property='product:price:amount']",
    "meta[property='og:price:amount']",
]

DESCRIPTION_SELECTORS = [
    "[class*='product-description']",
    "[class*='description']",
    "[itemprop='description']",
    "#product-description",
    ".product-details",
    "meta[name='description']",
    "meta[property='og:description']",
]

LAZY_SRC_ATTRS = ("src", "data-src", "content", "data-lazy-src", "data-original")

MAX_IMAGES = 10


def _is_product_type(node: dict) -> bool:
    node_type = node.get("@type")
    return node_type == "Product" or (isinstance(node_type, list) and "Product" in node_type)


def pick_product_node(data: Any) -> Optional[Dict[str, Any]]:
    """Find a schema.org Product node in parsed JSON-LD (dict, list or @graph)."""
    if isinstance(data, dict):
        for node in data.get("@graph") or []:
            if isinstance(node, dict) and _is_product_type(node):
                return node
        if _is_product_type(data):
            return data
    elif isinstance(data, list):
        for node in data:
            found = pick_product_node(node)
            if found:
                return found
    return None


class GenericAdapter(BaseScraperAdapter):
    """Best-effort scraper for unclassified storefronts."""

    platform = PlatformKind.GENERIC

    BLOCK_MARKERS = (
        "cf-browser-verification",
        "attention required! | cloudflare",
        "checking your browser before accessing",
    )

    async def scrape_product(self, url: str) -> RawExtraction:
        html = await self._fetch_html(url)
        return self.parse_product_html(html, url)

    async def scrape_collection(self, url: str, limit: int) -> List[RawExtraction]:
        """Listing pages are not enumerated; the page is imported as one product."""
        try:
            return [await self.scrape_product(url)]
        except ScrapeError as e:
            self.logger.warning("generic_collection_item_failed", url=url, error=str(e))
            return []

    def parse_product_html(self, html: str, url: str) -> RawExtraction:
        soup = self._soup(html)
        ld = self._extract_ld_product(soup)

        title = ld.get("title") or self._first_text(soup, TITLE_SELECTORS, min_length=3)
        if not title:
            raise self._error(ScrapeErrorKind.PARSE_FAILURE, f"could not extract a product title from {url}")

        price_text = ld.get("price_text") or self._extract_price_text(soup)

        image_srcs = list(ld.get("images") or [])
        for selector in IMAGE_SELECTORS:
            for el in soup.select(selector):
                src = next((el.get(attr) for attr in LAZY_SRC_ATTRS if el.get(attr)), None)
                if src:
                    image_srcs.append(src)
        images = self._clean_image_urls(image_srcs, url)[:MAX_IMAGES]

        description = ld.get("description") or self._first_html(soup, DESCRIPTION_SELECTORS, min_length=11)

        host = (urlparse(url).hostname or "").lower()
        if host.startswith("www."):
            host = host[len("www."):]

        return RawExtraction(
            title=title,
            price_text=price_text,
            images=[{"src": src, "alt": title} for src in images],
            description=description or "",
            vendor=ld.get("vendor") or host,
            tags=["imported"],
            source_id=ld.get("sku"),
            metadata={"structured_data": bool(ld)},
        )

    def _extract_ld_product(self, soup) -> Dict[str, Any]:
        for script in soup.find_all("script", type="application/ld+json"):
            if not script.string:
                continue
            try:
                data = json.loads(script.string)
            except ValueError:
                continue
            product = pick_product_node(data)
            if product:
                return self._ld_fields(product)
        return {}

    @staticmethod
    def _ld_fields(product: Dict[str, Any]) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}

        name = product.get("name")
        if isinstance(name, str) and name.strip():
            fields["title"] = name.strip()

        description = product.get("description")
        if isinstance(description, str) and description.strip():
            fields["description"] = description.strip()

        image = product.get("image")
        if not isinstance(image, list):
            image = [image]
        images = []
        for item in image:
            if isinstance(item, dict):
                item = item.get("url") or item.get("contentUrl")
            if isinstance(item, str) and item.strip():
                images.append(item.strip())
        fields["images"] = images

        offers = product.get("offers")
        if isinstance(offers, list):
            offers = offers[0] if offers else None
        if isinstance(offers, dict):
            price = offers.get("price", offers.get("lowPrice"))
            if isinstance(price, (str, int, float)):
                fields["price_text"] = str(price)

        brand = product.get("brand")
        if isinstance(brand, dict):
            brand = brand.get("name")
        if isinstance(brand, str) and brand.strip():
            fields["vendor"] = brand.strip()

        sku = product.get("sku")
        if isinstance(sku, (str, int)):
            fields["sku"] = str(sku)
        return fields

    @staticmethod
    def _first_text(soup, selectors: List[str], min_length: int = 1) -> Optional[str]:
        for selector in selectors:
            el = soup.select_one(selector)
            if not el:
                continue
            text = (el.get("content") or el.get_text(" ", strip=True) or "").strip()
            if len(text) >= min_length:
                return text
        return None

    @staticmethod
    def _first_html(soup, selectors: List[str], min_length: int = 1) -> Optional[str]:
        for selector in selectors:
            el = soup.select_one(selector)
            if not el:
                continue
            content = (el.get("content") or el.decode_contents() or "").strip()
            if len(content) >= min_length:
                return content
        return None

    @staticmethod
    def _extract_price_text(soup) -> Optional[str]:
        for selector in PRICE_SELECTORS:
            el = soup.select_one(selector)
            if not el:
                continue
            text = el.get("content") or el.get("data-price") or el.get_text(" ", strip=True)
            if text and any(ch.isdigit() for ch in text):
                return text
        return None
