"""Scrape and normalize a product URL without importing it.

Useful for checking what an adapter extracts from a page before pointing
a real import at it.

Usage:
    python scripts/run_import.py https://example.myshopify.com/products/linen-shirt
    python scripts/run_import.py https://www.amazon.com/dp/B000000000 --markup 25
    python scripts/run_import.py https://example.com/collections/all --collection --limit 5
"""

import argparse
import asyncio
import sys

from importhawk.core.exceptions import ImportHawkException
from importhawk.schemas.imports import ImportOptions, MarkupType
from importhawk.scrapers.base import NormalizedProduct
from importhawk.scrapers.detector import PlatformDetector
from importhawk.scrapers.factory import get_adapter_factory
from importhawk.services.normalizer import Normalizer
from importhawk.services.price_transformer import PriceTransformer


def print_product(product: NormalizedProduct) -> None:
    print(f"\n{'=' * 70}")
    print(f"  {product.title}")
    print(f"{'=' * 70}")
    print(f"  Platform: {product.source_platform.value}")
    print(f"  Vendor:   {product.vendor or '-'}")
    print(f"  Type:     {product.product_type or '-'}")
    print(f"  Tags:     {', '.join(product.tags) or '-'}")
    print(f"  Images:   {len(product.images)}")
    for option in product.options:
        print(f"  Option {option.name}: {', '.join(option.values)}")
    print(f"\n  {'Variant':<40} {'Price':>10} {'Compare':>10}  SKU")
    print(f"  {'-' * 40} {'-' * 10} {'-' * 10}  {'-' * 12}")
    for variant in product.variants:
        compare = str(variant.compare_at_price) if variant.compare_at_price is not None else "-"
        print(f"  {variant.title[:40]:<40} {str(variant.price):>10} {compare:>10}  {variant.sku}")


async def run(url: str, collection: bool, limit: int, options: ImportOptions) -> int:
    factory = get_adapter_factory()
    normalizer = Normalizer()
    transformer = PriceTransformer()
    try:
        platform = await PlatformDetector().detect(url)
        adapter = factory.get_adapter(platform)
        if collection:
            extractions = await adapter.scrape_collection(url, limit)
        else:
            extractions = [await adapter.scrape_product(url)]

        for raw in extractions:
            source_url = raw.metadata.get("source_url") or url
            product = transformer.transform(normalizer.normalize(raw, platform, source_url), options)
            print_product(product)
        print(f"\n{len(extractions)} product(s) from {platform.value}")
        return 0
    except ImportHawkException as e:
        print(f"\nError: {e}", file=sys.stderr)
        return 1
    finally:
        await factory.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Preview a product import")
    parser.add_argument("url", help="Product or collection URL")
    parser.add_argument("--collection", action="store_true", help="Treat the URL as a collection page")
    parser.add_argument("--limit", type=int, default=10, help="Max products for --collection (default: 10)")
    parser.add_argument("--markup", type=float, default=0, help="Price markup to apply")
    parser.add_argument(
        "--markup-type",
        choices=[t.value for t in MarkupType],
        default=MarkupType.PERCENTAGE.value,
        help="Markup type (default: percentage)",
    )
    args = parser.parse_args()

    options = ImportOptions(price_markup=args.markup, price_markup_type=MarkupType(args.markup_type))
    sys.exit(asyncio.run(run(args.url, args.collection, args.limit, options)))


if __name__ == "__main__":
    main()
