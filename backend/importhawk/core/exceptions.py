"""Custom exception classes for the application."""

from enum import Enum
from typing import List, Optional


class ImportHawkException(Exception):
    """Base exception for all ImportHawk errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(ImportHawkException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} with identifier '{identifier}' not found")


class InvalidSourceURLError(ImportHawkException):
    """Raised when a source URL is not an absolute http(s) URL."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Invalid source URL: '{url}' is not an absolute http(s) URL")


class ScrapeErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    PARSE_FAILURE = "parse_failure"
    TIMEOUT = "timeout"
    BLOCKED = "blocked"


class ScrapeError(ImportHawkException):
    """Raised when a single product page cannot be scraped.

    Fatal to one import item only.
    """

    def __init__(self, platform: str, kind: ScrapeErrorKind, message: str):
        self.platform = platform
        self.kind = kind
        super().__init__(f"Scraper error for {platform} ({kind.value}): {message}")


class CollectionScrapeError(ImportHawkException):
    """Raised when a collection page cannot be enumerated.

    Fatal to an entire collection-import job.
    """

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"Collection scrape failed for {url}: {message}")


class RemoteErrorKind(str, Enum):
    VALIDATION = "validation"
    RATE_LIMITED = "rate_limited"
    UNKNOWN = "unknown"


class RemoteCreateError(ImportHawkException):
    """Raised when the destination catalog rejects or fails an operation."""

    def __init__(
        self,
        operation: str,
        kind: RemoteErrorKind,
        message: str,
        user_errors: Optional[List[dict]] = None,
    ):
        self.operation = operation
        self.kind = kind
        self.user_errors = user_errors or []
        super().__init__(message)


class ImagePipelineError(ImportHawkException):
    """Raised when an image cannot be re-hosted. Never fatal to an import."""

    def __init__(self, src: str, message: str):
        self.src = src
        super().__init__(f"Image re-hosting failed for {src}: {message}")


class RecordAlreadyFinalizedError(ImportHawkException):
    """Raised when an import record is finalized a second time."""

    def __init__(self, record_id: str):
        super().__init__(f"Import record '{record_id}' is already finalized")


class ShopNotConfiguredError(ImportHawkException):
    """Raised when no Admin API token is configured for a shop."""

    def __init__(self, shop: str):
        self.shop = shop
        super().__init__(f"No Admin API access token configured for shop '{shop}'")
