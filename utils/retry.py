"""
Retry utility with exponential backoff for remote store calls.
Retries classified-transient failures (rate limiting, 5xx, dropped
connections) and fails immediately on everything else.
"""

import time
import logging
from typing import Callable, TypeVar, Type, Tuple
from functools import wraps

from services.error_classifier import describe

logger = logging.getLogger("projectsync.retry")

T = TypeVar('T')


class RetryExhausted(Exception):
    """Raised when all retry attempts have been exhausted."""

    def __init__(self, message: str, last_error: Exception = None):
        super().__init__(message)
        self.last_error = last_error


def exponential_backoff_retry(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 32.0,
    exponential_base: float = 2.0,
    retriable_exceptions: Tuple[Type[Exception], ...] = (ConnectionError, TimeoutError),
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        initial_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 32.0)
        exponential_base: Base for exponential calculation (default: 2.0)
        retriable_exceptions: Exception types always retried (network errors)
        sleep: Sleep function, replaceable in tests

    Raises:
        RetryExhausted: When all retry attempts are exhausted
        Original exception: For permanent errors

    Example:
        @exponential_backoff_retry(max_retries=3, initial_delay=1.0)
        def list_children():
            return service.files().list(...).execute()
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            delay = initial_delay
            func_name = getattr(func, '__name__', '<function>')

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except retriable_exceptions as e:
                    reason = type(e).__name__
                    last_exception = e

                except Exception as e:
                    classified = describe(e)
                    if not classified.retryable:
                        # Permanent error - fail immediately
                        logger.warning(
                            f"Permanent {classified.kind.value} error in {func_name}. Not retrying: {e}"
                        )
                        raise
                    reason = f"{classified.kind.value} ({classified.http_status})"
                    last_exception = e

                if attempt < max_retries:
                    logger.warning(
                        f"Transient error {reason} in {func_name} "
                        f"(attempt {attempt + 1}/{max_retries + 1}). Retrying in {delay}s..."
                    )
                    sleep(delay)
                    delay = min(delay * exponential_base, max_delay)
                    continue

                logger.error(
                    f"Max retries exhausted for {func_name} after {max_retries + 1} attempts. "
                    f"Last error: {last_exception}"
                )
                raise RetryExhausted(
                    f"Failed after {max_retries + 1} attempts. Last error: {last_exception}",
                    last_error=last_exception,
                ) from last_exception

        return wrapper
    return decorator
