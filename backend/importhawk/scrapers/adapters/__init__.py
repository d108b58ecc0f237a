"""Source platform adapters."""

from importhawk.scrapers.adapters.aliexpress import AliExpressAdapter
from importhawk.scrapers.adapters.amazon import AmazonAdapter
from importhawk.scrapers.adapters.generic import GenericAdapter
from importhawk.scrapers.adapters.shopify import ShopifyAdapter

__all__ = ["AliExpressAdapter", "AmazonAdapter", "GenericAdapter", "ShopifyAdapter"]
