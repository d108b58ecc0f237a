"""Amazon product adapter.

Tries a plain HTTP fetch first. Amazon serves a CAPTCHA interstitial to a
good share of non-browser clients; when that happens, or when the page
arrives without a product title, the page is re-rendered in the headless
browser.
"""

import json
import re
from typing import List, Optional
from urllib.parse import urlparse

from importhawk.core.exceptions import CollectionScrapeError, ScrapeError, ScrapeErrorKind
from importhawk.scrapers.base import BrowserScraperAdapter, PlatformKind, RawExtraction

# Specific phrases only: "robot" alone matches the robots meta tag
_CAPTCHA_MARKERS = (
    "enter the characters you see below",
    "type the characters you see",
    "sorry, we just need to make sure you're not a robot",
    "api-services-support@amazon.com",
    "to discuss automated access to amazon data",
)

_ASIN_PATTERN = re.compile(r"/(?:dp|gp/product)/([A-Z0-9]{10})(?:[/?]|$)")

# "._AC_SX679_.jpg" -> ".jpg"
_SIZE_SUFFIX = re.compile(r"\._[A-Za-z0-9_,]+_\.(jpe?g|png|webp|gif)$", re.IGNORECASE)

_COLOR_IMAGES = re.compile(r"""['"]colorImages['"]\s*:\s*\{\s*['"]initial['"]\s*:\s*""")

PRICE_SELECTORS = [
    ".a-price .a-offscreen",
    "#priceblock_ourprice",
    "[data-a-color='price'] .a-offscreen",
    "#corePrice_feature_div .a-offscreen",
]

IMAGE_SELECTORS = "#altImages img, #imageBlock img, #landingImage"

MAX_IMAGES = 10


def extract_asin(url: str) -> Optional[str]:
    match = _ASIN_PATTERN.search(urlparse(url).path)
    return match.group(1) if match else None


def full_size_image(src: str) -> str:
    """Drop Amazon's size/crop suffix to get the original resolution."""
    return _SIZE_SUFFIX.sub(r".\1", src)


class AmazonAdapter(BrowserScraperAdapter):
    """Scraper for Amazon product detail pages."""

    platform = PlatformKind.AMAZON

    BLOCK_MARKERS = _CAPTCHA_MARKERS

    async def _load_page(self, url: str) -> str:
        """HTML for a page, escalating to the browser when blocked."""
        try:
            html = await self._fetch_html(url)
        except ScrapeError as e:
            if e.kind != ScrapeErrorKind.BLOCKED:
                raise
            self.logger.info("amazon_http_blocked_using_browser", url=url)
            return await self._render(url, wait_selector="#productTitle, a[href*='/dp/']")

        if self._soup(html).select_one("#productTitle") is None and extract_asin(url):
            self.logger.info("amazon_title_missing_using_browser", url=url)
            return await self._render(url, wait_selector="#productTitle")
        return html

    async def scrape_product(self, url: str) -> RawExtraction:
        html = await self._load_page(url)
        return self.parse_product_html(html, url)

    async def scrape_collection(self, url: str, limit: int) -> List[RawExtraction]:
        try:
            html = await self._load_page(url)
        except ScrapeError as e:
            raise CollectionScrapeError(url, str(e)) from e

        product_urls = self.parse_listing_html(html, url)[:limit]
        self.logger.info("amazon_listing_enumerated", url=url, count=len(product_urls))

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

    def parse_listing_html(self, html: str, url: str) -> List[str]:
        """Canonical ``/dp/{ASIN}`` URLs linked from a listing page, first-seen order."""
        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        seen = set()
        urls = []
        for link in self._soup(html).select("a[href*='/dp/'], a[href*='/gp/product/']"):
            asin = extract_asin(link.get("href", ""))
            if asin and asin not in seen:
                seen.add(asin)
                urls.append(f"{origin}/dp/{asin}")
        return urls

    def parse_product_html(self, html: str, url: str) -> RawExtraction:
        soup = self._soup(html)

        title_el = soup.select_one("#productTitle") or soup.select_one("h1 span")
        title = title_el.get_text(" ", strip=True) if title_el else ""
        if not title:
            raise self._error(ScrapeErrorKind.PARSE_FAILURE, f"no product title on {url}")

        price_text = None
        for selector in PRICE_SELECTORS:
            el = soup.select_one(selector)
            if el and el.get_text(strip=True):
                price_text = el.get_text(strip=True)
                break

        image_srcs = self._color_images(html)
        if not image_srcs:
            for img in soup.select(IMAGE_SELECTORS):
                src = img.get("data-old-hires") or img.get("src")
                if src:
                    image_srcs.append(full_size_image(src))
        images = self._clean_image_urls(image_srcs, url)[:MAX_IMAGES]

        description_el = soup.select_one("#productDescription") or soup.select_one("#feature-bullets")
        description = description_el.decode_contents().strip() if description_el else ""

        byline = soup.select_one("#bylineInfo")
        vendor = ""
        if byline:
            vendor = re.sub(r"Visit the|Store|Brand:", "", byline.get_text(" ", strip=True), flags=re.IGNORECASE).strip()

        return RawExtraction(
            title=title,
            price_text=price_text,
            images=[{"src": src, "alt": title} for src in images],
            description=description,
            vendor=vendor or "Amazon",
            tags=["amazon", "imported"],
            source_id=extract_asin(url),
        )

    @staticmethod
    def _color_images(html: str) -> List[str]:
        """hiRes (or large) image URLs from the embedded colorImages JSON."""
        match = _COLOR_IMAGES.search(html)
        if not match:
            return []
        try:
            entries, _ = json.JSONDecoder().raw_decode(html, match.end())
        except ValueError:
            return []
        if not isinstance(entries, list):
            return []
        return [
            entry.get("hiRes") or entry.get("large")
            for entry in entries
            if isinstance(entry, dict) and (entry.get("hiRes") or entry.get("large"))
        ]
