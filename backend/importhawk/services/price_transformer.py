"""Merchant pricing and naming rules applied before import."""

from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional

from importhawk.schemas.imports import ImportOptions, MarkupType
from importhawk.scrapers.base import NormalizedProduct, Variant

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")


class PriceTransformer:
    """Applies markup and title/vendor rules. Every method returns new objects."""

    @staticmethod
    def _mark_up(price: Optional[Decimal], markup: Decimal, markup_type: MarkupType) -> Optional[Decimal]:
        if price is None:
            return None
        if markup_type == MarkupType.FIXED:
            result = price + markup
        else:
            result = price * (1 + markup / HUNDRED)
        return result.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

    def apply_markup(
        self,
        variants: Iterable[Variant],
        markup,
        markup_type: MarkupType = MarkupType.PERCENTAGE,
    ) -> List[Variant]:
        """Mark up price and compare-at price of every variant.

        A markup of 0 returns the original prices (quantized to 2 places).
        """
        markup = Decimal(str(markup or 0))
        markup_type = MarkupType(markup_type)
        return [
            replace(
                variant,
                price=self._mark_up(variant.price, markup, markup_type),
                compare_at_price=self._mark_up(variant.compare_at_price, markup, markup_type),
            )
            for variant in variants
        ]

    @staticmethod
    def apply_naming(product: NormalizedProduct, options: ImportOptions) -> NormalizedProduct:
        parts = [options.title_prefix.strip(), product.title, options.title_suffix.strip()]
        title = " ".join(part for part in parts if part)
        vendor = options.replace_vendor.strip() or product.vendor
        return replace(product, title=title, vendor=vendor)

    def transform(self, product: NormalizedProduct, options: ImportOptions) -> NormalizedProduct:
        """Apply naming and markup rules once and return the new product."""
        named = self.apply_naming(product, options)
        variants = self.apply_markup(named.variants, options.price_markup, options.price_markup_type)
        return replace(named, variants=tuple(variants))
