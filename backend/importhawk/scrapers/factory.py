"""Factory for creating and managing scraper adapter instances."""

from typing import Dict, Optional, Type

import httpx
import structlog

from importhawk.scrapers.base import BaseScraperAdapter, PlatformKind
from importhawk.scrapers.utils.pacing import PacingPolicy
from importhawk.scrapers.utils.rate_limiter import DomainRateLimiter

logger = structlog.get_logger(__name__)


class AdapterFactory:
    """Maps a PlatformKind to its adapter and keeps one instance per kind.

    Adapters are created lazily and reused, so a browser-backed adapter
    launches its browser once and shares it across imports. Rate limiter
    and pacing policy are injected into every adapter it creates.
    """

    def __init__(
        self,
        pacing: Optional[PacingPolicy] = None,
        rate_limiter: Optional[DomainRateLimiter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.pacing = pacing
        self.rate_limiter = rate_limiter if rate_limiter is not None else DomainRateLimiter()
        self.http_client = http_client
        self._adapter_registry: Dict[PlatformKind, Type[BaseScraperAdapter]] = {}
        self._instances: Dict[PlatformKind, BaseScraperAdapter] = {}

    def register_adapter(self, platform: PlatformKind, adapter_class: Type[BaseScraperAdapter]) -> None:
        if not issubclass(adapter_class, BaseScraperAdapter):
            raise ValueError(f"Adapter class must inherit from BaseScraperAdapter: {adapter_class}")
        self._adapter_registry[platform] = adapter_class
        logger.info("adapter_registered", platform=platform.value, adapter=adapter_class.__name__)

    def get_adapter(self, platform: PlatformKind) -> BaseScraperAdapter:
        """Return the shared adapter for a platform, creating it on first use.

        Unregistered platforms fall back to the GENERIC adapter.
        """
        if platform in self._instances:
            return self._instances[platform]

        adapter_class = self._adapter_registry.get(platform)
        if adapter_class is None:
            if platform == PlatformKind.GENERIC or PlatformKind.GENERIC not in self._adapter_registry:
                raise ValueError(f"No adapter registered for platform '{platform.value}'")
            logger.warning("adapter_not_found_using_generic", platform=platform.value)
            return self.get_adapter(PlatformKind.GENERIC)

        adapter = adapter_class(
            http_client=self.http_client,
            pacing=self.pacing,
            rate_limiter=self.rate_limiter,
        )
        self._instances[platform] = adapter
        logger.info("adapter_created", platform=platform.value, adapter=adapter_class.__name__)
        return adapter

    def get_registered_platforms(self) -> list[PlatformKind]:
        return list(self._adapter_registry.keys())

    async def close(self) -> None:
        """Close every adapter created so far (HTTP clients, browsers)."""
        for platform, adapter in list(self._instances.items()):
            try:
                await adapter.close()
            except Exception as e:
                logger.warning("adapter_close_failed", platform=platform.value, error=str(e))
        self._instances.clear()


def register_all_adapters(factory: AdapterFactory) -> AdapterFactory:
    """Register the built-in adapter for every PlatformKind."""
    from importhawk.scrapers.adapters import (
        AliExpressAdapter,
        AmazonAdapter,
        GenericAdapter,
        ShopifyAdapter,
    )

    factory.register_adapter(PlatformKind.SHOPIFY, ShopifyAdapter)
    factory.register_adapter(PlatformKind.ALIEXPRESS, AliExpressAdapter)
    factory.register_adapter(PlatformKind.AMAZON, AmazonAdapter)
    factory.register_adapter(PlatformKind.GENERIC, GenericAdapter)
    return factory


# Global factory instance
adapter_factory = AdapterFactory()


def get_adapter_factory() -> AdapterFactory:
    """Get the global adapter factory, registering adapters on first use."""
    if not adapter_factory.get_registered_platforms():
        register_all_adapters(adapter_factory)
    return adapter_factory
