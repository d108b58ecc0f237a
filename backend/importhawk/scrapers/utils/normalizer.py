"""Data normalization utilities for price parsing and image URL cleanup."""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import urljoin, urlparse

import structlog

logger = structlog.get_logger()

ZERO = Decimal("0.00")
TWO_PLACES = Decimal("0.01")

# First run of digits, optionally with thousand separators and decimals
_PRICE_PATTERN = re.compile(r"\d[\d.,]*")

# Tokens in an image URL that mark decorative or placeholder assets.
# Matched on token boundaries so "silicone-case.jpg" is not an "icon".
_DECORATIVE_TOKENS = re.compile(
    r"(?:^|[/_\-.])(?:icons?|sprites?|placeholders?|logos?|grey-pixel|transparent-pixel|spacer|blank)(?:[/_\-.]|$)",
    re.IGNORECASE,
)

class PriceNormalizer:
    """Price parsing utilities.

    Prices are never converted between currencies; the numeric value found
    on the source page is passed through as-is.
    """

    @staticmethod
    def clean_price_string(raw: str) -> Optional[Decimal]:
        """Parse a price token and extract its numeric value.

        Handles various formats:
        - "$1,234.56" -> 1234.56
        - "1.234,56 €" -> 1234.56
        - "19,99" -> 19.99
        - "1,234" -> 1234

        Args:
            raw: Raw price string

        Returns:
            Decimal price value, or None if parsing fails
        """
        if not raw:
            return None

        cleaned = re.sub(r"[^\d.,]", "", str(raw))
        if not cleaned or not any(ch.isdigit() for ch in cleaned):
            return None

        last_comma = cleaned.rfind(",")
        last_dot = cleaned.rfind(".")

        if last_comma > last_dot:
            # Comma is the last separator: decimal comma when followed by 1-2 digits
            decimals = cleaned[last_comma + 1:]
            if 0 < len(decimals) <= 2:
                cleaned = cleaned[:last_comma].replace(".", "").replace(",", "") + "." + decimals
            else:
                cleaned = cleaned.replace(",", "").replace(".", "")
        else:
            cleaned = cleaned.replace(",", "")
            if cleaned.count(".") > 1:
                head, _, tail = cleaned.rpartition(".")
                cleaned = head.replace(".", "") + "." + tail

        try:
            return Decimal(cleaned.strip("."))
        except InvalidOperation:
            return None

    @staticmethod
    def extract_price_from_text(text: str) -> Optional[Decimal]:
        """Extract the first positive price-like number from text."""
        if not text:
            return None

        for match in _PRICE_PATTERN.findall(str(text)):
            price = PriceNormalizer.clean_price_string(match)
            if price is not None and price > 0:
                return price

        return None

    @staticmethod
    def parse_price(value) -> Decimal:
        """Parse any price representation into a 2-scale Decimal.

        Missing or non-numeric input resolves to 0.00 rather than failing,
        so a product without a discoverable price is still importable.
        """
        if value is None or isinstance(value, bool):
            return ZERO
        if isinstance(value, Decimal):
            price = value
        elif isinstance(value, (int, float)):
            try:
                price = Decimal(str(value))
            except InvalidOperation:
                return ZERO
        else:
            price = PriceNormalizer.extract_price_from_text(str(value))
            if price is None:
                return ZERO

        if not price.is_finite() or price < 0:
            return ZERO
        return price.quantize(TWO_PLACES)


def normalize_image_url(src: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    """Resolve an image reference to an absolute https/http URL.

    Args:
        src: Raw src attribute (may be protocol-relative or site-relative)
        base_url: Page URL used to resolve relative references

    Returns:
        Absolute URL, or None for empty / inline data references
    """
    if not src:
        return None
    src = str(src).strip()
    if not src or src.startswith("data:"):
        return None
    if src.startswith("//"):
        return f"https:{src}"
    if src.startswith(("http://", "https://")):
        return src
    if base_url:
        return urljoin(base_url, src)
    return None


def is_decorative_image(url: str) -> bool:
    """Heuristic filter for icons, sprites, placeholders, logos and svg."""
    if not url:
        return True
    lowered = url.lower()
    if lowered.startswith("data:"):
        return True
    path = urlparse(lowered).path
    if path.endswith(".svg") or ".svg?" in lowered:
        return True
    return bool(_DECORATIVE_TOKENS.search(path))
