"""
Failure classification and bounded retry for catalog calls.

Every exception coming out of spotipy/requests is mapped onto the
CatalogError taxonomy. Only reads are retried here, and only on
TransientError; rate limits and writes are left to the caller.
"""

import asyncio
import logging
import random
from typing import Callable, Optional, Tuple, Type

import requests
from spotipy.exceptions import SpotifyException

from .errors import CatalogError, RateLimited, TerminalRequestError, TransientError

logger = logging.getLogger(__name__)

# Exceptions that indicate transient network issues worth retrying
TRANSIENT_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    ConnectionError,
    TimeoutError,
    OSError,  # Catches various socket errors
)

TRANSIENT_PATTERNS = (
    "connection reset",
    "connection aborted",
    "connection refused",
    "timed out",
    "timeout",
    "temporary failure",
    "name resolution",
    "broken pipe",
)


def _retry_after(headers) -> Optional[float]:
    if not headers:
        return None
    value = headers.get("Retry-After") or headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def classify_error(exc: BaseException) -> CatalogError:
    """Map a raw client exception onto the CatalogError taxonomy."""
    if isinstance(exc, CatalogError):
        return exc

    if isinstance(exc, SpotifyException):
        status = exc.http_status
        if status == 429:
            return RateLimited(_retry_after(getattr(exc, "headers", None)))
        if status is not None and 400 <= status < 500:
            return TerminalRequestError(status, f"API error: {status} {exc.msg}".rstrip())
        return TransientError(f"API error: {status} {exc.msg}".rstrip())

    if isinstance(exc, TRANSIENT_EXCEPTIONS):
        return TransientError(f"Network error: {exc}")

    # Wrapped exceptions (e.g. from urllib3) only show up in the message
    error_str = str(exc).lower()
    if any(pattern in error_str for pattern in TRANSIENT_PATTERNS):
        return TransientError(f"Network error: {exc}")

    return TerminalRequestError(0, f"Unexpected error: {exc}")


async def _call_in_thread(func: Callable, *args, **kwargs):
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except CatalogError:
        raise
    except Exception as e:
        raise classify_error(e) from e


async def call_catalog(func: Callable, *args, limiter=None, **kwargs):
    """
    Run a blocking spotipy call in a worker thread, once.

    ``limiter`` (e.g. a RateLimiter) is held for the duration of the call
    only. Raw failures are re-raised as CatalogError subclasses.
    """
    if limiter is None:
        return await _call_in_thread(func, *args, **kwargs)
    async with limiter:
        return await _call_in_thread(func, *args, **kwargs)


async def retry_async_call(
    func: Callable,
    *args,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    limiter=None,
    **kwargs,
):
    """
    Like call_catalog, but retries TransientError with jittered exponential backoff.

    RateLimited and TerminalRequestError propagate on the first occurrence.
    The limiter is acquired per attempt, never across a backoff sleep.
    """
    last_exception: Optional[CatalogError] = None

    for attempt in range(1, max(1, max_attempts) + 1):
        try:
            return await call_catalog(func, *args, limiter=limiter, **kwargs)
        except TransientError as e:
            last_exception = e
            if attempt >= max_attempts:
                break

            delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
            delay = delay * (0.5 + random.random())

            func_name = getattr(func, "__name__", str(func))
            logger.warning(
                f"Retry {attempt}/{max_attempts} for {func_name} after {delay:.1f}s due to: {e}"
            )
            await asyncio.sleep(delay)

    raise last_exception
