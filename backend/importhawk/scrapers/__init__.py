"""Source scraping: platform detection, adapters and shared data types."""

from importhawk.scrapers.base import (
    BaseScraperAdapter,
    BrowserScraperAdapter,
    ImageRef,
    NormalizedProduct,
    PlatformKind,
    ProductOption,
    RawExtraction,
    Variant,
)

__all__ = [
    "BaseScraperAdapter",
    "BrowserScraperAdapter",
    "ImageRef",
    "NormalizedProduct",
    "PlatformKind",
    "ProductOption",
    "RawExtraction",
    "Variant",
]
