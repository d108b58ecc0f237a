"""SQLAlchemy models for ImportHawk.

All models are imported here so metadata.create_all can discover them.
"""

from importhawk.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from importhawk.models.import_job import ImportJob
from importhawk.models.import_record import ImportRecord

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "ImportJob",
    "ImportRecord",
]
