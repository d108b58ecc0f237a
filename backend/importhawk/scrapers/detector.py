"""Source platform detection."""

from typing import Optional
from urllib.parse import urlparse

import httpx
import structlog

from importhawk.config import settings
from importhawk.core.exceptions import InvalidSourceURLError
from importhawk.scrapers.base import PlatformKind
from importhawk.scrapers.utils.user_agents import browser_headers

logger = structlog.get_logger(__name__)


def parse_source_url(url: str):
    """Parse and validate a source URL.

    Raises:
        InvalidSourceURLError: if the URL is not absolute http(s)
    """
    if not url or not isinstance(url, str):
        raise InvalidSourceURLError(str(url))
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise InvalidSourceURLError(url)
    return parsed


def origin_of(url: str) -> str:
    parsed = parse_source_url(url)
    return f"{parsed.scheme}://{parsed.netloc}"


class PlatformDetector:
    """Classify a product URL by the platform that serves it.

    Known marketplaces are recognized from the host name alone. Anything
    else is probed for the Shopify storefront JSON endpoint; a failed probe
    means GENERIC, never an error.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, probe_timeout: Optional[float] = None):
        self._http_client = http_client
        self.probe_timeout = probe_timeout if probe_timeout is not None else settings.DETECTOR_PROBE_TIMEOUT

    @staticmethod
    def detect_from_host(url: str) -> Optional[PlatformKind]:
        """Host-name classification. Order matters: AliExpress hosts can contain 'amazon'."""
        host = (parse_source_url(url).hostname or "").lower()
        if "aliexpress.com" in host:
            return PlatformKind.ALIEXPRESS
        if "amazon" in host:
            return PlatformKind.AMAZON
        if "myshopify.com" in host:
            return PlatformKind.SHOPIFY
        return None

    async def detect(self, url: str) -> PlatformKind:
        """Detect the platform for a source URL.

        Raises:
            InvalidSourceURLError: before any network activity, for a bad URL
        """
        platform = self.detect_from_host(url)
        if platform is None:
            platform = PlatformKind.SHOPIFY if await self.is_shopify_store(url) else PlatformKind.GENERIC

        logger.info("platform_detected", url=url, platform=platform.value)
        return platform

    async def is_shopify_store(self, url: str) -> bool:
        """Probe ``{origin}/products.json?limit=1``; any 2xx means Shopify."""
        probe_url = f"{origin_of(url)}/products.json?limit=1"
        try:
            if self._http_client is not None:
                response = await self._http_client.get(probe_url, timeout=self.probe_timeout)
            else:
                async with httpx.AsyncClient(
                    timeout=self.probe_timeout,
                    follow_redirects=True,
                    headers=browser_headers(),
                ) as client:
                    response = await client.get(probe_url)
            return response.is_success
        except Exception as e:
            logger.debug("shopify_probe_failed", url=probe_url, error=str(e))
            return False
