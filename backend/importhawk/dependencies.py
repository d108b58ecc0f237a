"""FastAPI dependency injection providers."""

from typing import AsyncGenerator

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from importhawk.config import settings
from importhawk.core.exceptions import ShopNotConfiguredError
from importhawk.db.session import async_session_factory
from importhawk.jobs.queue import JobQueue
from importhawk.scrapers.factory import AdapterFactory, get_adapter_factory
from importhawk.services.catalog_client import CatalogClient, build_catalog_client
from importhawk.services.image_pipeline import ImagePipeline, LocalObjectStore


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for request-scoped usage.

    The session is committed on success or rolled back on error.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that commits in several short transactions."""
    return async_session_factory


def get_shop(x_shop_domain: str = Header(..., alias="X-Shop-Domain")) -> str:
    """The destination shop, identified by the ``X-Shop-Domain`` header."""
    shop = x_shop_domain.strip().lower()
    if not shop:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Shop-Domain header is required")
    return shop


def require_configured_shop(shop: str = Depends(get_shop)) -> str:
    """Like get_shop, but 401 unless an Admin API token is configured for it."""
    if not settings.get_admin_token(shop):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(ShopNotConfiguredError(shop)),
        )
    return shop


async def get_catalog_client(shop: str = Depends(require_configured_shop)) -> AsyncGenerator[CatalogClient, None]:
    client = build_catalog_client(shop)
    try:
        yield client
    finally:
        await client.close()


def get_job_queue(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> JobQueue:
    return JobQueue(session_factory)


def get_adapters() -> AdapterFactory:
    return get_adapter_factory()


def get_image_pipeline() -> ImagePipeline:
    return ImagePipeline(LocalObjectStore())
