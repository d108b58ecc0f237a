"""Image re-hosting.

Downloads source images and stores them under a content-addressed key so
the destination catalog keeps working images even after the source page
disappears. Any failure keeps the original source URL.
"""

import asyncio
import hashlib
from abc import ABC, abstractmethod
from dataclasses import replace
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional, Tuple
from urllib.parse import urlparse

import httpx
import structlog

from importhawk.config import settings
from importhawk.core.exceptions import ImagePipelineError
from importhawk.scrapers.base import ImageRef
from importhawk.scrapers.utils.user_agents import browser_headers

logger = structlog.get_logger(__name__)

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/avif": ".avif",
}

KNOWN_EXTENSIONS = frozenset([".jpg", ".jpeg", ".png", ".webp", ".gif", ".avif"])


class ObjectStore(ABC):
    """Binary storage with public URLs."""

    @abstractmethod
    async def exists(self, key: str) -> bool: ...

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` and return its public URL."""

    @abstractmethod
    def url_for(self, key: str) -> str: ...


class LocalObjectStore(ObjectStore):
    """Stores objects as files under a directory served at ``public_base_url``."""

    def __init__(self, root: Optional[str] = None, public_base_url: Optional[str] = None):
        self.root = Path(root or settings.IMAGE_STORE_DIR)
        self.public_base_url = (public_base_url or settings.IMAGE_PUBLIC_BASE_URL).rstrip("/")

    def _path(self, key: str) -> Path:
        return self.root / PurePosixPath(key)

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path(key).is_file)

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path(key)

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)
        return self.url_for(key)

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"


def _url_extension(src: str) -> Optional[str]:
    extension = PurePosixPath(urlparse(src).path).suffix.lower()
    if extension not in KNOWN_EXTENSIONS:
        return None
    return ".jpg" if extension == ".jpeg" else extension


def object_key(src: str, content_type: Optional[str] = None) -> str:
    """``images/{sha256(src)}{ext}``; the same source URL always maps to the same key.

    The extension comes from the URL path, else from the downloaded
    ``content_type``, else ``.jpg``.
    """
    digest = hashlib.sha256(src.encode("utf-8")).hexdigest()
    extension = _url_extension(src) or CONTENT_TYPE_EXTENSIONS.get(
        (content_type or "").split(";")[0].strip(), ".jpg"
    )
    return f"images/{digest}{extension}"


class ImagePipeline:
    """Re-hosts product images into an ObjectStore."""

    def __init__(self, store: ObjectStore, http_client: Optional[httpx.AsyncClient] = None):
        self.store = store
        self._http_client = http_client
        self.logger = logger.bind(service="image_pipeline")

    async def _download(self, src: str) -> Tuple[bytes, str]:
        try:
            if self._http_client is not None:
                response = await self._http_client.get(src, timeout=settings.IMAGE_DOWNLOAD_TIMEOUT)
            else:
                async with httpx.AsyncClient(
                    timeout=settings.IMAGE_DOWNLOAD_TIMEOUT,
                    follow_redirects=True,
                    headers=browser_headers(),
                ) as client:
                    response = await client.get(src)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ImagePipelineError(src, str(e)) from e

        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("image/"):
            raise ImagePipelineError(src, f"not an image (content-type '{content_type}')")
        if not response.content:
            raise ImagePipelineError(src, "empty body")
        return response.content, content_type

    async def rehost(self, image: ImageRef) -> ImageRef:
        """Return a copy of ``image`` pointing at the stored object.

        Never raises; on failure the original reference is returned.
        """
        try:
            # Without a URL extension the key depends on the downloaded content type
            key = object_key(image.src) if _url_extension(image.src) else None
            if key and await self.store.exists(key):
                self.logger.debug("image_already_stored", src=image.src, key=key)
                return replace(image, src=self.store.url_for(key))

            data, content_type = await self._download(image.src)
            key = key or object_key(image.src, content_type)
            url = await self.store.put(key, data, content_type)
            self.logger.info("image_rehosted", src=image.src, key=key, size=len(data))
            return replace(image, src=url)
        except ImagePipelineError as e:
            self.logger.warning("image_rehost_failed", src=image.src, error=str(e))
        except Exception as e:
            self.logger.warning("image_store_failed", src=image.src, error=str(e))
        return image

    async def rehost_all(self, images: Iterable[ImageRef]) -> Tuple[ImageRef, ...]:
        """Re-host every image; output has the same length and order as input."""
        return tuple([await self.rehost(image) for image in images])
