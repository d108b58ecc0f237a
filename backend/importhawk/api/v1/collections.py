"""Destination shop collections, for picking an import's ``collectionId``."""

from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from importhawk.core.exceptions import RemoteCreateError
from importhawk.dependencies import get_catalog_client, require_configured_shop
from importhawk.schemas.collections import CollectionResponse
from importhawk.schemas.common import ApiResponse
from importhawk.services.catalog_client import CatalogClient

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("", response_model=ApiResponse[List[CollectionResponse]])
async def list_collections(
    shop: str = Depends(require_configured_shop),
    catalog: CatalogClient = Depends(get_catalog_client),
):
    """List the shop's first 100 collections."""
    try:
        collections = await catalog.list_collections()
    except RemoteCreateError as e:
        logger.warning("collections_fetch_failed", shop=shop, error=str(e))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return ApiResponse(data=[CollectionResponse(**c) for c in collections])
