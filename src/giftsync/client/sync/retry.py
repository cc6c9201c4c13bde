"""Error classification and retry helpers.

This module provides:
- classify_error: Map an exception from a sync pass to an ErrorKind
- max_attempts_for: Retry budget of the periodic job per ErrorKind
- retry_with_backoff: Simple exponential backoff retry for single calls
"""

from __future__ import annotations

import logging
import ssl
import time
from collections.abc import Callable, Iterator
from typing import Any

import httpx

from giftsync.client.api import (
    APIError,
    AuthenticationError,
    AuthInitError,
    NetworkError,
    RateLimitError,
)
from giftsync.client.sync.types import ErrorKind, FileIOError

logger = logging.getLogger(__name__)

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_BACKOFF = 1.0  # seconds
DEFAULT_MAX_BACKOFF = 60.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0

# Attempts the periodic job makes before giving up, per error kind
RETRY_BUDGETS: dict[ErrorKind, int] = {
    ErrorKind.NO_INTERNET: 3,
    ErrorKind.DNS_FAILURE: 3,
    ErrorKind.TIMEOUT: 3,
    ErrorKind.SERVER_ERROR: 5,
    ErrorKind.RATE_LIMITED: 5,
    ErrorKind.SSL_ERROR: 1,
    ErrorKind.AUTH_ERROR: 1,
}
DEFAULT_RETRY_BUDGET = 4

_DNS_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated with hostname",
    "unable to resolve host",
)


def _causes(error: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _classify_network(error: BaseException) -> ErrorKind:
    for cause in _causes(error):
        if isinstance(cause, NetworkError) and cause.is_timeout:
            return ErrorKind.TIMEOUT
        if isinstance(cause, httpx.TimeoutException | TimeoutError):
            return ErrorKind.TIMEOUT
        if isinstance(cause, ssl.SSLError):
            return ErrorKind.SSL_ERROR
    message = " ".join(str(c).lower() for c in _causes(error))
    if "certificate" in message or "ssl" in message:
        return ErrorKind.SSL_ERROR
    if any(marker in message for marker in _DNS_MARKERS):
        return ErrorKind.DNS_FAILURE
    return ErrorKind.NO_INTERNET


def classify_error(error: BaseException) -> ErrorKind:
    """Classify a failure for retry decisions.

    Args:
        error: Exception raised during a sync pass.

    Returns:
        The matching ErrorKind (UNKNOWN if nothing more specific applies).
    """
    for cause in _causes(error):
        if isinstance(cause, NetworkError | httpx.TransportError):
            return _classify_network(cause)

    if isinstance(error, AuthInitError | AuthenticationError):
        return ErrorKind.AUTH_ERROR
    if isinstance(error, RateLimitError):
        return ErrorKind.RATE_LIMITED
    if isinstance(error, APIError) and error.status_code is not None and error.status_code >= 500:
        return ErrorKind.SERVER_ERROR
    if any(isinstance(c, FileIOError) for c in _causes(error)):
        return ErrorKind.FILE_IO
    if isinstance(error, OSError):
        return ErrorKind.FILE_IO
    return ErrorKind.UNKNOWN


def max_attempts_for(kind: ErrorKind) -> int:
    """Get how many attempts the periodic job makes for an error kind."""
    return RETRY_BUDGETS.get(kind, DEFAULT_RETRY_BUDGET)


def retry_with_backoff(
    func: Callable[[], Any],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    retryable_exceptions: tuple[type[Exception], ...] = (NetworkError, RateLimitError),
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Execute a function with exponential backoff retry.

    Args:
        func: Function to execute.
        max_retries: Maximum number of retry attempts.
        initial_backoff: Initial backoff time in seconds.
        max_backoff: Maximum backoff time in seconds.
        backoff_multiplier: Multiplier for each retry.
        retryable_exceptions: Tuple of exception types to retry on.
        sleep: Sleep function (injectable for tests).

    Returns:
        Result of the function.

    Raises:
        The last exception if all retries fail.
    """
    backoff = initial_backoff

    for attempt in range(max_retries + 1):
        try:
            return func()
        except retryable_exceptions as e:
            if attempt == max_retries:
                logger.error("All %d retries failed: %s", max_retries, e)
                raise

            logger.warning(
                "Attempt %d/%d failed: %s. Retrying in %.1fs...",
                attempt + 1,
                max_retries + 1,
                e,
                backoff,
            )
            sleep(backoff)
            backoff = min(backoff * backoff_multiplier, max_backoff)

    raise RuntimeError("Unexpected retry loop exit")
