"""Shopify storefront adapter.

Uses the public storefront JSON endpoints (``/products/{handle}.json`` and
``/products.json``) and falls back to the product page HTML when the JSON
endpoint is disabled.
"""

import json
import re
from decimal import Decimal
from typing import List, Optional
from urllib.parse import urlparse

from importhawk.core.exceptions import CollectionScrapeError, ScrapeError, ScrapeErrorKind
from importhawk.scrapers.base import BaseScraperAdapter, PlatformKind, RawExtraction

_PRODUCT_VAR = re.compile(r"var\s+product\s*=\s*")

# Shopify serves at most 250 products per storefront page
PAGE_SIZE = 250


class ShopifyAdapter(BaseScraperAdapter):
    """Scraper for any Shopify-powered storefront."""

    platform = PlatformKind.SHOPIFY

    @staticmethod
    def product_json_url(url: str) -> str:
        parsed = urlparse(url)
        handle = parsed.path.rstrip("/").split("/")[-1]
        if handle.endswith(".json"):
            handle = handle[: -len(".json")]
        return f"{parsed.scheme}://{parsed.netloc}/products/{handle}.json"

    @staticmethod
    def collection_base_url(url: str) -> str:
        """``{origin}/collections/{handle}`` for collection URLs, else the origin."""
        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        if "/collections/" in parsed.path:
            handle = parsed.path.split("/collections/", 1)[1].split("/")[0]
            if handle:
                return f"{origin}/collections/{handle}"
        return origin

    async def scrape_product(self, url: str) -> RawExtraction:
        try:
            data = await self._fetch_json(self.product_json_url(url))
            product = data.get("product") if isinstance(data, dict) else None
            if product:
                return self.to_extraction(product)
            self.logger.info("shopify_json_missing_product", url=url)
        except ScrapeError as e:
            self.logger.info("shopify_json_unavailable", url=url, kind=e.kind.value)

        html = await self._fetch_html(url)
        return self.parse_product_html(html, url)

    async def scrape_collection(self, url: str, limit: int) -> List[RawExtraction]:
        base_url = self.collection_base_url(url)
        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.netloc}"

        extractions: List[RawExtraction] = []
        page = 1
        while len(extractions) < limit:
            page_url = f"{base_url}/products.json?page={page}&limit={PAGE_SIZE}"
            try:
                data = await self._fetch_json(page_url)
            except ScrapeError as e:
                if page == 1:
                    raise CollectionScrapeError(url, str(e)) from e
                self.logger.warning("collection_page_failed", url=page_url, page=page, error=str(e))
                break

            products = data.get("products") if isinstance(data, dict) else None
            if not products:
                break

            for product in products:
                if len(extractions) >= limit:
                    break
                try:
                    extraction = self.to_extraction(product)
                except (TypeError, ValueError, AttributeError) as e:
                    self.logger.warning("collection_item_skipped", page=page, error=str(e))
                    continue
                if extraction.handle:
                    extraction.metadata["source_url"] = f"{origin}/products/{extraction.handle}"
                extractions.append(extraction)

            page += 1
            await self.pacing.platform_pause()

        self.logger.info("collection_scraped", url=url, count=len(extractions))
        return extractions

    def to_extraction(self, data: dict, prices_in_cents: bool = False) -> RawExtraction:
        """Map a storefront product JSON object onto a RawExtraction.

        Args:
            data: product object from a .json endpoint or a theme script tag
            prices_in_cents: theme-embedded JSON (Liquid `product | json`)
                serializes prices as integer cents
        """
        def price(value):
            if prices_in_cents and isinstance(value, int):
                return str(Decimal(value) / 100)
            return value

        title = data.get("title")
        images = []
        for index, image in enumerate(data.get("images") or [], start=1):
            if isinstance(image, dict):
                images.append({
                    "src": image.get("src"),
                    "alt": image.get("alt") or title,
                    "position": image.get("position") or index,
                })
            else:
                images.append({"src": image, "alt": title, "position": index})

        variants = []
        for variant in data.get("variants") or []:
            variants.append({
                "title": variant.get("title"),
                "price": price(variant.get("price")),
                "compare_at_price": price(variant.get("compare_at_price")),
                "sku": variant.get("sku"),
                "option1": variant.get("option1"),
                "option2": variant.get("option2"),
                "option3": variant.get("option3"),
                "inventory_quantity": variant.get("inventory_quantity") or 0,
            })

        # Theme JSON lists options as bare names; the .json endpoints use
        # {"name", "values"} objects
        options = []
        for option in data.get("options") or []:
            if isinstance(option, dict):
                options.append({"name": option.get("name"), "values": option.get("values") or []})
            elif isinstance(option, str):
                options.append({"name": option, "values": []})

        price_text = None
        if variants:
            price_text = str(variants[0].get("price") or "")
        elif data.get("price") is not None:
            price_text = str(price(data.get("price")))

        source_id = data.get("id")
        return RawExtraction(
            title=title,
            price_text=price_text,
            images=images,
            variants=variants,
            options=options,
            description=data.get("body_html") or data.get("description") or "",
            vendor=data.get("vendor") or "",
            product_type=data.get("product_type") or data.get("type") or "",
            tags=data.get("tags") or [],
            source_id=str(source_id) if source_id is not None else None,
            handle=data.get("handle"),
        )

    def parse_product_html(self, html: str, url: str) -> RawExtraction:
        """Extract a product from a storefront product page."""
        soup = self._soup(html)

        product_data = self._find_embedded_product(soup)
        if product_data:
            self.logger.info("shopify_embedded_json_found", url=url)
            return self.to_extraction(product_data, prices_in_cents=True)

        title_el = soup.select_one("h1") or soup.select_one("[class*='product-title']")
        title = title_el.get_text(strip=True) if title_el else ""
        if not title:
            raise self._error(ScrapeErrorKind.PARSE_FAILURE, f"no product data found at {url}")

        description_el = soup.select_one("[class*='product-description']")
        if description_el:
            description = description_el.decode_contents()
        else:
            meta = soup.select_one("meta[name='description']")
            description = meta.get("content", "") if meta else ""

        price_el = soup.select_one("[class*='price']")
        vendor_el = soup.select_one("[class*='vendor']")

        image_srcs = [
            img.get("src") or img.get("data-src")
            for img in soup.select("[class*='product'] img, [data-product-image] img, .product-image img")
        ]
        images = [
            {"src": src, "alt": title, "position": index}
            for index, src in enumerate(self._clean_image_urls(image_srcs, url), start=1)
        ]

        return RawExtraction(
            title=title,
            price_text=price_el.get_text(" ", strip=True) if price_el else None,
            images=images,
            description=description,
            vendor=vendor_el.get_text(strip=True) if vendor_el else "",
            tags=[],
        )

    @staticmethod
    def _find_embedded_product(soup) -> Optional[dict]:
        product_data = None
        for script in soup.select("script[type='application/json']"):
            try:
                blob = json.loads(script.string or "")
            except ValueError:
                continue
            if isinstance(blob, dict) and isinstance(blob.get("product"), dict):
                product_data = blob["product"]

        if product_data:
            return product_data

        # Older themes assign the product to a global
        decoder = json.JSONDecoder()
        for script in soup.find_all("script"):
            content = script.string or ""
            match = _PRODUCT_VAR.search(content)
            if not match:
                continue
            try:
                candidate, _ = decoder.raw_decode(content, match.end())
            except ValueError:
                continue
            if isinstance(candidate, dict):
                return candidate
        return None
