"""Inter-request pacing for imports against third-party sites."""

import asyncio
from dataclasses import dataclass

from importhawk.config import settings


@dataclass(frozen=True)
class PacingPolicy:
    """Delays, in seconds, inserted between outbound requests.

    Attributes:
        per_item_delay: between items of a bulk or collection job
        per_platform_delay: between page fetches while enumerating a collection
        variant_delay: between per-variant calls to the destination catalog
    """

    per_item_delay: float = 0.5
    per_platform_delay: float = 0.5
    variant_delay: float = 2.0

    @classmethod
    def from_settings(cls) -> "PacingPolicy":
        return cls(
            per_item_delay=settings.PACING_ITEM_DELAY,
            per_platform_delay=settings.PACING_PLATFORM_DELAY,
            variant_delay=settings.PACING_VARIANT_DELAY,
        )

    @classmethod
    def none(cls) -> "PacingPolicy":
        """No delays at all. Used by tests and local previews."""
        return cls(per_item_delay=0.0, per_platform_delay=0.0, variant_delay=0.0)

    async def item_pause(self) -> None:
        if self.per_item_delay > 0:
            await asyncio.sleep(self.per_item_delay)

    async def platform_pause(self) -> None:
        if self.per_platform_delay > 0:
            await asyncio.sleep(self.per_platform_delay)

    async def variant_pause(self) -> None:
        if self.variant_delay > 0:
            await asyncio.sleep(self.variant_delay)
