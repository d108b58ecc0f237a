"""Retry utilities with exponential backoff for outbound requests."""

import logging

import httpx
import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from importhawk.config import settings
from importhawk.core.exceptions import RemoteCreateError, RemoteErrorKind

logger = structlog.get_logger(__name__)


# Transport-level failures only. Status errors are mapped by the caller,
# a 404 will not get better by asking again.
http_retry = retry(
    stop=stop_after_attempt(settings.HTTP_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=1, max=15),
    retry=retry_if_exception_type(
        (
            httpx.ConnectError,
            httpx.TimeoutException,
            httpx.RemoteProtocolError,
        )
    ),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


# Playwright navigation
playwright_retry = retry(
    stop=stop_after_attempt(settings.HTTP_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=2, max=30),
    retry=retry_if_exception_type((PlaywrightError, PlaywrightTimeoutError)),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


def _is_throttled(exc: BaseException) -> bool:
    return isinstance(exc, RemoteCreateError) and exc.kind == RemoteErrorKind.RATE_LIMITED


# Destination catalog calls: back off harder when throttled
catalog_retry = retry(
    stop=stop_after_attempt(settings.CATALOG_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=2, min=2, max=60),
    retry=retry_if_exception(_is_throttled),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
