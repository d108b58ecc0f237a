"""Durable import job queue entries."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from importhawk.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ImportJob(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A queued multi-product import.

    Workers claim queued jobs, run them to completion and write the
    aggregate result here for progress polling. Per-item outcomes live in
    ImportRecord; this row is not the source of truth for them.
    """

    __tablename__ = "import_jobs"

    kind: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="Kind: 'bulk-import' or 'collection-import'"
    )
    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="{'urls': [...]} or {'url': ..., 'limit': N}"
    )
    options: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # Destination credentials reference (the shop domain)
    shop: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="queued",
        index=True,
        comment="State: 'queued', 'running', 'completed', 'failed'"
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    result: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Delivery bookkeeping
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    worker_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # Refreshed by the owning worker on every progress report; staleness is measured from here
    heartbeat_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ImportJob(id={self.id}, kind='{self.kind}', state='{self.state}', progress={self.progress})>"
