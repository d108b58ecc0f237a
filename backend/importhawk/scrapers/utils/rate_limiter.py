"""Token bucket rate limiter for per-domain rate limiting."""

import asyncio
import time
from typing import Dict


class TokenBucket:
    """Token bucket algorithm implementation for rate limiting.

    The bucket starts full and refills at a constant rate.
    Each request consumes one token. If no tokens are available,
    the request waits until tokens are refilled.
    """

    def __init__(self, rate: float, capacity: float):
        """Initialize token bucket.

        Args:
            rate: Tokens per second (e.g., 1.0 = 60 RPM)
            capacity: Maximum tokens in bucket (burst capacity)
        """
        self.rate = rate
        self.capacity = capacity
        self.tokens = capacity
        self.last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Acquire tokens from the bucket, waiting if necessary."""
        async with self._lock:
            while True:
                self._refill()
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return
                wait_time = (tokens - self.tokens) / self.rate
                await asyncio.sleep(wait_time)


class DomainRateLimiter:
    """Per-domain rate limiter.

    Each source host gets its own token bucket. Storefronts of unknown
    merchants share nothing with each other, so one slow shop does not
    throttle another.
    """

    # Requests per minute for hosts we scrape often
    DOMAIN_LIMITS_RPM = {
        "www.aliexpress.com": 6,
        "aliexpress.com": 6,
        "www.aliexpress.us": 6,
        "www.amazon.com": 6,
        "www.amazon.co.uk": 6,
        "www.amazon.de": 6,
        "www.amazon.ca": 6,
    }

    # Shopify storefronts tolerate roughly two requests per second
    SHOPIFY_RPM = 120

    DEFAULT_RPM = 30

    def __init__(self):
        self._buckets: Dict[str, TokenBucket] = {}

    def _limit_for(self, domain: str) -> int:
        if domain in self.DOMAIN_LIMITS_RPM:
            return self.DOMAIN_LIMITS_RPM[domain]
        if domain.endswith(".myshopify.com"):
            return self.SHOPIFY_RPM
        return self.DEFAULT_RPM

    def _get_bucket(self, domain: str) -> TokenBucket:
        domain = domain.lower()
        if domain not in self._buckets:
            rpm = self._limit_for(domain)
            rate = rpm / 60.0
            # Allow small bursts (10% of RPM, min 2)
            capacity = max(2.0, rpm / 10.0)
            self._buckets[domain] = TokenBucket(rate=rate, capacity=capacity)
        return self._buckets[domain]

    async def acquire(self, domain: str, tokens: float = 1.0) -> None:
        """Block until the domain's bucket allows one more request.

        Args:
            domain: Host name to rate limit
            tokens: Number of tokens to acquire (default 1.0)
        """
        bucket = self._get_bucket(domain)
        await bucket.acquire(tokens)

    def get_current_rate(self, domain: str) -> float:
        """Current limit for a domain in requests per minute."""
        return self._get_bucket(domain).rate * 60.0
