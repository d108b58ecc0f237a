"""API v1 router -- aggregates all v1 endpoint routers."""

from fastapi import APIRouter

from importhawk.api.v1 import collections, health, imports

api_v1_router = APIRouter()

api_v1_router.include_router(health.router, tags=["health"])
api_v1_router.include_router(imports.router, prefix="/imports", tags=["imports"])
api_v1_router.include_router(collections.router, prefix="/collections", tags=["collections"])
