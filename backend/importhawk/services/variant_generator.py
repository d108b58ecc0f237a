"""Expansion of option axes into concrete variants."""

from decimal import Decimal
from itertools import islice, product
from typing import List, Sequence

from importhawk.scrapers.base import Variant
from importhawk.scrapers.utils.normalizer import PriceNormalizer

# Shopify's per-product variant ceiling
MAX_VARIANTS = 100


class VariantGenerator:
    """Builds the Cartesian product of option values."""

    max_variants = MAX_VARIANTS

    def generate(
        self,
        option_values: Sequence[Sequence[str]],
        base_price: Decimal,
        sku_prefix: str = "VAR",
    ) -> List[Variant]:
        """Generate one variant per combination of option values.

        Axes are combined in order, so ``[["S", "M"], ["Red"]]`` yields
        "S / Red" then "M / Red". Only the first three axes become option
        selectors. Combinations beyond ``max_variants`` are never built.

        Args:
            option_values: ordered value lists, one per option axis
            base_price: price shared by every generated variant
            sku_prefix: synthetic SKUs are ``{sku_prefix}-001`` onwards

        Returns:
            List of Variant, empty when there are no non-empty axes
        """
        axes = [list(values) for values in option_values if values]
        if not axes:
            return []

        price = PriceNormalizer.parse_price(base_price)
        variants = []
        for index, combination in enumerate(islice(product(*axes), self.max_variants), start=1):
            selectors = list(combination[:3]) + [None] * (3 - min(len(combination), 3))
            variants.append(
                Variant(
                    title=" / ".join(combination),
                    price=price,
                    sku=f"{sku_prefix}-{index:03d}",
                    option1=selectors[0],
                    option2=selectors[1],
                    option3=selectors[2],
                )
            )
        return variants
