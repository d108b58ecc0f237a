"""Pydantic schemas for request/response validation."""

from importhawk.schemas.common import ApiResponse, HealthCheckResponse, PaginationMeta
from importhawk.schemas.imports import ImportOptions, MarkupType, ProductStatus

__all__ = [
    "ApiResponse",
    "HealthCheckResponse",
    "PaginationMeta",
    "ImportOptions",
    "MarkupType",
    "ProductStatus",
]
