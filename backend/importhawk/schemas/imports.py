"""Pydantic schemas for import requests, options and outcomes.

Request bodies use camelCase (``priceMarkup``, ``downloadImages``) to match
the merchant admin UI; snake_case field names are accepted as well.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ProductStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"


class MarkupType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImportOptions(CamelModel):
    """Merchant-supplied settings for one import. Immutable once built."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    status: ProductStatus = ProductStatus.DRAFT
    price_markup: float = 0
    price_markup_type: MarkupType = MarkupType.PERCENTAGE
    download_images: bool = True
    collection_id: Optional[str] = None
    inventory_quantity: int = Field(100, ge=0)
    title_prefix: str = ""
    title_suffix: str = ""
    replace_vendor: str = ""
    publish_to_sales_channels: bool = False


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class SourceURLRequest(CamelModel):
    url: str = Field(..., min_length=8, examples=["https://example.myshopify.com/products/linen-shirt"])

    @field_validator("url")
    @classmethod
    def check_http_url(cls, v: str) -> str:
        v = v.strip()
        if not v.lower().startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v


class PreviewRequest(SourceURLRequest):
    pass


class SingleImportRequest(SourceURLRequest):
    options: ImportOptions = Field(default_factory=ImportOptions)


class CollectionImportRequest(SourceURLRequest):
    limit: int = Field(50, ge=1, le=250)
    options: ImportOptions = Field(default_factory=ImportOptions)


class BulkImportRequest(CamelModel):
    urls: List[str] = Field(..., min_length=1, max_length=1000)
    options: ImportOptions = Field(default_factory=ImportOptions)

    @field_validator("urls")
    @classmethod
    def strip_blank_urls(cls, v: List[str]) -> List[str]:
        urls = [u.strip() for u in v if u and u.strip()]
        if not urls:
            raise ValueError("at least one URL is required")
        return urls


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ImportOutcomeResponse(CamelModel):
    """Result of one product import."""

    record_id: Optional[uuid.UUID] = None
    status: str
    source_url: str
    source_platform: str
    product_id: Optional[str] = None
    title: Optional[str] = None
    error: Optional[str] = None
    variants_imported: int = 0
    images_imported: int = 0
    skipped: bool = False


class VariantPreview(CamelModel):
    title: str
    price: str
    compare_at_price: Optional[str] = None
    sku: str = ""
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None


class ProductPreviewResponse(CamelModel):
    title: str
    description: str
    vendor: str
    product_type: str
    tags: List[str]
    images: List[Dict[str, Any]]
    options: List[Dict[str, Any]]
    variants: List[VariantPreview]
    source_url: str
    source_platform: str


class JobSubmittedResponse(CamelModel):
    job_id: uuid.UUID
    kind: str
    state: str
    total: Optional[int] = None


class JobStatusResponse(CamelModel):
    id: uuid.UUID
    kind: str
    state: str
    progress: int
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class ImportRecordResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: uuid.UUID
    shop: str
    source_url: str
    source_platform: str
    import_type: str
    product_id: Optional[str] = None
    product_title: Optional[str] = None
    status: str
    error: Optional[str] = None
    images_imported: int = 0
    variants_imported: int = 0
    total_products: int = 0
    successful_products: int = 0
    failed_products: int = 0
    job_id: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
