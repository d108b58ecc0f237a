"""ImportHawk Backend -- FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from importhawk.api.v1.router import api_v1_router
from importhawk.config import settings
from importhawk.db.session import async_session_factory, engine
from importhawk.jobs.worker import JobWorker
from importhawk.models import Base
from importhawk.scrapers.factory import get_adapter_factory

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.DEBUG else logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global worker instance
worker: Optional[JobWorker] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    global worker

    # Startup
    logger.info("Starting ImportHawk API server...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables verified/created")
    except Exception as e:
        logger.error(f"Database init failed: {e}", exc_info=True)

    factory = get_adapter_factory()
    logger.info(f"Adapters registered: {[p.value for p in factory.get_registered_platforms()]}")

    # In-process queue worker (disabled under test)
    if settings.ENVIRONMENT != "test":
        worker = JobWorker(async_session_factory, adapter_factory=factory)
        worker.start()
    else:
        logger.info("Job worker disabled (test environment)")

    yield

    # Shutdown
    logger.info("Shutting down ImportHawk API server...")
    if worker:
        worker.stop()

    # Closes adapter HTTP clients and browsers
    try:
        await factory.close()
    except Exception as e:
        logger.warning(f"Error closing adapters: {e}")


app = FastAPI(
    title="ImportHawk API",
    description="Import products from external storefronts into a Shopify shop",
    version="0.1.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL, "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router, prefix="/api/v1")

# Re-hosted product images
app.mount("/media", StaticFiles(directory=settings.IMAGE_STORE_DIR, check_dir=False), name="media")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "ImportHawk API",
        "version": "0.1.0",
        "docs": "/docs" if settings.DEBUG else None,
        "health": "/api/v1/health",
    }
