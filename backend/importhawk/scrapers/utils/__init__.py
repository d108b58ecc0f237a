"""Shared scraping utilities."""

from importhawk.scrapers.utils.browser_manager import BrowserManager
from importhawk.scrapers.utils.normalizer import (
    PriceNormalizer,
    is_decorative_image,
    normalize_image_url,
)
from importhawk.scrapers.utils.pacing import PacingPolicy
from importhawk.scrapers.utils.rate_limiter import DomainRateLimiter, TokenBucket
from importhawk.scrapers.utils.retry import catalog_retry, http_retry, playwright_retry
from importhawk.scrapers.utils.user_agents import browser_headers, get_random_user_agent

__all__ = [
    "BrowserManager",
    "DomainRateLimiter",
    "PacingPolicy",
    "PriceNormalizer",
    "TokenBucket",
    "browser_headers",
    "catalog_retry",
    "get_random_user_agent",
    "http_retry",
    "is_decorative_image",
    "normalize_image_url",
    "playwright_retry",
]
