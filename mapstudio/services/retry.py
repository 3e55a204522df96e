"""
MapStudio — Retry
==================
Classifies provider failures as transient (network-class, worth another
attempt) or permanent (auth, quota, schema, parsing: retrying cannot help)
and retries the transient ones with exponential backoff.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from google.api_core import exceptions as google_exceptions
import groq

from mapstudio.core.config import settings
from mapstudio.core.errors import (
    PermanentServiceError,
    TransientServiceError,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_sleep = asyncio.sleep

TRANSIENT_MARKERS = (
    "unavailable",
    "network",
    "timeout",
    "aborted",
    "socket",
    "wsarecv",
    "econnreset",
)

_TRANSIENT_TYPES = (
    TransientServiceError,
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
    groq.APIConnectionError,  # includes APITimeoutError
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
)

_PERMANENT_TYPES = (PermanentServiceError, ValidationError)


def is_transient_error(exc: BaseException) -> bool:
    """True when ``exc`` looks like a network outage rather than a bad request."""
    if isinstance(exc, _PERMANENT_TYPES):
        return False
    if isinstance(exc, _TRANSIENT_TYPES):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    retries: Optional[int] = None,
    base_delay_ms: Optional[int] = None,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    Await ``fn()`` up to ``retries + 1`` times.

    A transient failure on attempt ``n`` (0-based) waits
    ``base_delay_ms * 2**n`` milliseconds before the next attempt; a
    permanent failure, or a transient one on the last attempt, is re-raised
    unchanged.
    """
    retries = settings.MAX_RETRIES if retries is None else retries
    base_delay_ms = settings.RETRY_BASE_DELAY_MS if base_delay_ms is None else base_delay_ms
    sleep = sleep or _sleep

    for attempt in range(retries + 1):
        try:
            return await fn()
        except Exception as e:
            if attempt < retries and is_transient_error(e):
                delay = base_delay_ms * (2 ** attempt) / 1000
                logger.warning(
                    f"[RETRY] Attempt {attempt + 1}/{retries + 1} failed ({str(e)[:200]}). "
                    f"Retrying in {delay:.1f}s..."
                )
                await sleep(delay)
                continue
            logger.warning(f"[RETRY] Attempt {attempt + 1}/{retries + 1} failed for good: {str(e)[:200]}")
            raise

    # unreachable: the loop either returns or raises
    raise RuntimeError("with_retry exhausted without a result")
