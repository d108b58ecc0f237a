"""Conversion of platform-shaped extractions into NormalizedProduct."""

import hashlib
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

import structlog

from importhawk.scrapers.base import (
    ImageRef,
    NormalizedProduct,
    PlatformKind,
    ProductOption,
    RawExtraction,
    Variant,
)
from importhawk.scrapers.utils.normalizer import PriceNormalizer, normalize_image_url
from importhawk.services.variant_generator import VariantGenerator

logger = structlog.get_logger(__name__)

UNTITLED = "Untitled product"
DEFAULT_VARIANT_TITLE = "Default"

# Shopify's placeholder for products without real options
PLACEHOLDER_OPTION_NAME = "Title"
PLACEHOLDER_OPTION_VALUE = "Default Title"

MAX_OPTIONS = 3

SKU_PREFIXES = {
    PlatformKind.SHOPIFY: "SHP",
    PlatformKind.ALIEXPRESS: "ALI",
    PlatformKind.AMAZON: "AMZ",
    PlatformKind.GENERIC: "GEN",
}


def _text(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _option_value(value) -> Optional[str]:
    text = _text(value)
    if not text or text == PLACEHOLDER_OPTION_VALUE:
        return None
    return text


def synthetic_sku(platform: PlatformKind, source_url: str) -> str:
    """Deterministic SKU stem for a source product, e.g. ``AMZ-3f2a9c1d``."""
    digest = hashlib.sha1(source_url.encode("utf-8")).hexdigest()[:8]
    return f"{SKU_PREFIXES.get(platform, 'GEN')}-{digest}"


class Normalizer:
    """Turns any RawExtraction into a NormalizedProduct.

    Pure and deterministic: the same extraction always normalizes to an
    equal product. Never raises for missing or malformed fields.
    """

    def __init__(self, variant_generator: Optional[VariantGenerator] = None):
        self.variant_generator = variant_generator or VariantGenerator()

    def normalize(self, raw: RawExtraction, platform: PlatformKind, source_url: str) -> NormalizedProduct:
        title = _text(raw.title) or UNTITLED
        sku_stem = synthetic_sku(platform, source_url)

        options = self.normalize_options(raw.options, raw.variants)
        variants = self.normalize_variants(raw.variants)

        if not variants and options:
            base_price = PriceNormalizer.parse_price(raw.price_text)
            variants = self.variant_generator.generate(
                [option.values for option in options], base_price, sku_prefix=sku_stem
            )

        if not variants:
            variants = [
                Variant(
                    title=DEFAULT_VARIANT_TITLE,
                    price=PriceNormalizer.parse_price(raw.price_text),
                    sku=sku_stem,
                )
            ]

        # Options nobody selects would be rejected by the catalog
        if all(not v.option_values for v in variants):
            options = []
        elif not options:
            options = self.options_from_variants(variants)

        return NormalizedProduct(
            title=title,
            description=_text(raw.description),
            vendor=_text(raw.vendor),
            product_type=_text(raw.product_type),
            tags=self.normalize_tags(raw.tags),
            images=self.normalize_images(raw.images, title, source_url),
            variants=tuple(variants),
            options=tuple(options),
            source_url=source_url,
            source_platform=platform,
        )

    @staticmethod
    def normalize_tags(tags) -> Tuple[str, ...]:
        """Ordered tags; comma-delimited strings are split. Duplicates kept."""
        if not tags:
            return ()
        if isinstance(tags, str):
            items: Iterable = tags.split(",")
        else:
            items = tags
        return tuple(t for t in (_text(item) for item in items) if t)

    @staticmethod
    def normalize_images(images, title: str, source_url: str) -> Tuple[ImageRef, ...]:
        refs: List[ImageRef] = []
        for index, image in enumerate(images or [], start=1):
            if isinstance(image, dict):
                src, alt, position = image.get("src"), image.get("alt"), image.get("position")
            else:
                src, alt, position = image, None, None

            absolute = normalize_image_url(src, source_url)
            if not absolute:
                continue
            try:
                position = int(position) if position is not None else index
            except (TypeError, ValueError):
                position = index
            refs.append(ImageRef(src=absolute, alt=_text(alt) or title, position=position))
        return tuple(refs)

    @staticmethod
    def normalize_options(raw_options, raw_variants) -> List[ProductOption]:
        """Named option axes, at most three.

        Axes listed without values take their values from the variants.
        Shopify's "Title: Default Title" placeholder is dropped.
        """
        options: List[ProductOption] = []
        for axis, raw in enumerate((raw_options or [])[:MAX_OPTIONS], start=1):
            if not isinstance(raw, dict):
                continue
            name = _text(raw.get("name"))
            values = [_text(v) for v in raw.get("values") or []]
            values = [v for v in values if v]
            if not values:
                values = [
                    value
                    for value in (_option_value(v.get(f"option{axis}")) for v in raw_variants or [] if isinstance(v, dict))
                    if value
                ]
            values = list(dict.fromkeys(values))

            if name == PLACEHOLDER_OPTION_NAME and values in ([], [PLACEHOLDER_OPTION_VALUE]):
                continue
            if not name or not values:
                continue
            options.append(ProductOption(name=name, values=tuple(values)))
        return options

    @staticmethod
    def options_from_variants(variants: List[Variant]) -> List[ProductOption]:
        """Unnamed axes ("Option 1".."Option 3") built from variant selectors."""
        options = []
        for axis in range(1, MAX_OPTIONS + 1):
            values = [getattr(v, f"option{axis}") for v in variants]
            values = list(dict.fromkeys(v for v in values if v is not None))
            if values:
                options.append(ProductOption(name=f"Option {axis}", values=tuple(values)))
        return options

    @staticmethod
    def normalize_variants(raw_variants) -> List[Variant]:
        """Convert raw variant dicts, keeping the first of each option triple."""
        seen = set()
        variants: List[Variant] = []
        for raw in raw_variants or []:
            if not isinstance(raw, dict):
                continue

            option1 = _option_value(raw.get("option1"))
            option2 = _option_value(raw.get("option2"))
            option3 = _option_value(raw.get("option3"))
            key = (option1, option2, option3)
            if key in seen:
                continue
            seen.add(key)

            price = PriceNormalizer.parse_price(raw.get("price"))
            compare_at: Optional[Decimal] = None
            if raw.get("compare_at_price") not in (None, ""):
                compare_at = PriceNormalizer.parse_price(raw.get("compare_at_price"))
                if compare_at <= 0 or compare_at < price:
                    compare_at = None

            try:
                quantity = int(raw.get("inventory_quantity") or 0)
            except (TypeError, ValueError):
                quantity = 0

            selectors = [v for v in key if v is not None]
            title = _text(raw.get("title"))
            if not title or title == PLACEHOLDER_OPTION_VALUE:
                title = " / ".join(selectors) or DEFAULT_VARIANT_TITLE

            variants.append(
                Variant(
                    title=title,
                    price=price,
                    compare_at_price=compare_at,
                    sku=_text(raw.get("sku")),
                    option1=option1,
                    option2=option2,
                    option3=option3,
                    inventory_quantity=max(quantity, 0),
                )
            )

        if len(variants) < sum(1 for v in raw_variants or [] if isinstance(v, dict)):
            logger.debug("duplicate_variants_collapsed", kept=len(variants))
        return variants
