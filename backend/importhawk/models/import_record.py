"""Import audit trail."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from importhawk.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

TERMINAL_STATUSES = frozenset(["success", "failed", "partial"])
PRODUCT_TITLE_MAX_LENGTH = 500


class ImportRecord(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One attempt to import one product into a destination shop.

    Created when the import starts and finalized exactly once. Never
    mutated after finalization.
    """

    __tablename__ = "import_records"

    shop: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    source_platform: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="unknown",
        comment="'shopify', 'aliexpress', 'amazon', 'generic' or 'unknown'"
    )
    import_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="single",
        comment="'single', 'collection' or 'bulk'"
    )

    # Destination product
    product_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    product_title: Mapped[Optional[str]] = mapped_column(String(PRODUCT_TITLE_MAX_LENGTH), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="Status: 'pending', 'processing', 'success', 'failed', 'partial'"
    )
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Stats
    images_imported: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    variants_imported: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_products: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_products: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_products: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    options: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    job_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_finalized(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<ImportRecord(id={self.id}, shop='{self.shop}', status='{self.status}', source_url='{self.source_url[:60]}')>"
