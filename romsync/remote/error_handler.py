"""Unified error handling for remote listing and file requests."""

from typing import Optional, Tuple, Callable, Awaitable, Union
from enum import Enum
import asyncio
import inspect
import logging

import httpx

logger = logging.getLogger(__name__)

MAX_BACKOFF_DELAY = 30.0


class ErrorCategory(Enum):
    """Categorize errors for selective retry logic."""
    RETRYABLE = "retryable"          # 429, 5xx, network - should retry
    NOT_FOUND = "not_found"          # 404 - don't retry
    NON_RETRYABLE = "non_retryable"  # other 4xx - don't retry


class RemoteError(Exception):
    """Base exception for remote request errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RetryableRemoteError(RemoteError):
    """Retryable error (server errors, rate limits, transient failures)."""
    pass


class SkippableRemoteError(RemoteError):
    """Non-fatal error, skip item and continue."""
    pass


HTTP_STATUS_MESSAGES = {
    400: "Bad request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not found",
    408: "Request timeout",
    416: "Range not satisfiable",
    429: "Too many requests",
    500: "Internal server error",
    502: "Bad gateway",
    503: "Service unavailable",
    504: "Gateway timeout",
}


def get_error_message(status_code: int) -> str:
    """
    Get user-friendly error message for HTTP status code.

    Args:
        status_code: HTTP status code

    Returns:
        Error message string
    """
    message = HTTP_STATUS_MESSAGES.get(status_code)
    if message:
        return f"HTTP {status_code} {message}"
    return f"HTTP {status_code}"


def handle_http_status(status_code: int, context: str = "") -> None:
    """
    Raise the exception matching a non-2xx HTTP status.

    Args:
        status_code: HTTP status code
        context: Additional context for error message

    Raises:
        RetryableRemoteError: For 5xx, 408 and 429
        SkippableRemoteError: For 404 and every other 4xx
        RemoteError: For any other non-2xx status
    """
    if 200 <= status_code < 300:
        return

    msg = get_error_message(status_code)
    if context:
        msg = f"{msg} ({context})"

    if status_code >= 500 or status_code in (408, 429):
        raise RetryableRemoteError(msg, status_code)
    if 400 <= status_code < 500:
        raise SkippableRemoteError(msg, status_code)
    raise RemoteError(msg, status_code)


def categorize_error(exception: Exception) -> Tuple[Exception, ErrorCategory]:
    """
    Categorize an error for selective retry logic.

    Args:
        exception: Exception to categorize

    Returns:
        Tuple of (exception, ErrorCategory)
    """
    if isinstance(exception, SkippableRemoteError):
        if exception.status_code == 404:
            return (exception, ErrorCategory.NOT_FOUND)
        return (exception, ErrorCategory.NON_RETRYABLE)

    if is_retryable_error(exception):
        return (exception, ErrorCategory.RETRYABLE)

    return (exception, ErrorCategory.NON_RETRYABLE)


def is_retryable_error(error: Exception) -> bool:
    """
    Check if an error should be retried.

    Transport-level failures (connection resets, timeouts, protocol errors)
    and RetryableRemoteError are retryable.

    Args:
        error: Exception to check

    Returns:
        True if error is retryable
    """
    if isinstance(error, RetryableRemoteError):
        return True
    if isinstance(error, (httpx.TransportError, ConnectionError, asyncio.TimeoutError)):
        return True
    return False


async def retry_with_backoff(
    func: Union[Callable, Callable[[], Awaitable]],
    max_attempts: int = 3,
    initial_delay: float = 2.0,
    backoff_factor: float = 2.0,
    max_delay: float = MAX_BACKOFF_DELAY,
    context: str = ""
):
    """
    Retry a function with exponential backoff using selective retry logic.

    Args:
        func: Function to retry (sync or async)
        max_attempts: Maximum number of attempts
        initial_delay: Initial delay in seconds
        backoff_factor: Multiplier for each retry
        max_delay: Upper bound for a single delay
        context: Context string for log messages

    Returns:
        Function result if successful

    Raises:
        Last exception if all retries fail, or immediately if the error is
        not RETRYABLE
    """
    delay = initial_delay
    last_exception = None

    for attempt in range(1, max_attempts + 1):
        try:
            result = func()
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as e:
            exception, category = categorize_error(e)
            last_exception = exception

            if category != ErrorCategory.RETRYABLE:
                raise

            if attempt < max_attempts:
                logger.warning(
                    f"{context}: {exception} - retrying in {delay:.1f}s "
                    f"(attempt {attempt}/{max_attempts})"
                )
                await asyncio.sleep(delay)
                delay = min(delay * backoff_factor, max_delay)
            else:
                logger.warning(f"{context}: failed after {max_attempts} attempts")

    if last_exception:
        raise last_exception
    raise RemoteError(f"Failed after {max_attempts} attempts")
