"""Retry utilities for cloud and token calls.

Transient failures (timeouts, dropped connections, 429 and 5xx responses)
are retried with exponential backoff and jitter. Everything else propagates
on the first attempt.
"""

import inspect
import logging
from collections.abc import Callable
from functools import wraps

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from rockcast.utils.errors import CloudAuthError, CloudError

logger = logging.getLogger(__name__)


class RetryableError(CloudError):
    """Base class for errors that should trigger retries."""

    pass


class RateLimitError(RetryableError):
    """Rate limit exceeded (HTTP 429)."""

    pass


class ServerError(RetryableError):
    """Server-side error (5xx)."""

    pass


class TransportError(RetryableError):
    """Timeout or connection failure before a response arrived."""

    pass


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        max_wait_seconds: float = 30,
        min_wait_seconds: float = 1,
        jitter: bool = True,
        max_jitter_seconds: float = 1,
    ):
        """Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts (including initial)
            max_wait_seconds: Maximum wait time between retries
            min_wait_seconds: Minimum wait time between retries
            jitter: Whether to add jitter to wait times
            max_jitter_seconds: Upper bound of the random jitter added to each wait
        """
        self.max_attempts = max_attempts
        self.max_wait_seconds = max_wait_seconds
        self.min_wait_seconds = min_wait_seconds
        self.jitter = jitter
        self.max_jitter_seconds = max_jitter_seconds


DEFAULT_RETRY_CONFIG = RetryConfig()

# Minimal delays for tests
TEST_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    max_wait_seconds=0.05,
    min_wait_seconds=0.01,
    jitter=False,
)


def build_wait(config: RetryConfig) -> wait_exponential_jitter:
    """Exponential backoff from ``min_wait_seconds``, capped at ``max_wait_seconds``."""
    return wait_exponential_jitter(
        initial=config.min_wait_seconds,
        max=config.max_wait_seconds,
        jitter=config.max_jitter_seconds if config.jitter else 0,
    )


def log_retry_attempt(retry_state: RetryCallState) -> None:
    """Log a failed attempt before tenacity sleeps."""
    if retry_state.outcome and retry_state.outcome.failed:
        exception = retry_state.outcome.exception()
        logger.warning(
            f"Retry attempt {retry_state.attempt_number} failed: "
            f"{type(exception).__name__}: {exception}"
        )


def with_retry(
    config: RetryConfig | None = None,
    retry_on: tuple[type[Exception], ...] | None = None,
) -> Callable:
    """Decorator adding exponential backoff to sync or async callables.

    Usage:
        @with_retry()
        async def fetch_token():
            ...

        @with_retry(config=RetryConfig(max_attempts=5), retry_on=(TransportError,))
        def ping():
            ...

    Args:
        config: Retry configuration (uses DEFAULT_RETRY_CONFIG if None)
        retry_on: Exception types to retry on (all RetryableError subclasses if None)

    Returns:
        Decorated function with retry logic
    """
    config = config or DEFAULT_RETRY_CONFIG
    retry_on = retry_on or (RetryableError,)

    def decorator(func: Callable) -> Callable:
        retrying = retry(
            stop=stop_after_attempt(config.max_attempts),
            wait=build_wait(config),
            retry=retry_if_exception_type(retry_on),
            before_sleep=log_retry_attempt,
            reraise=True,
        )(func)

        def log_failure(e: Exception) -> None:
            logger.error(
                f"Function {func.__name__} failed after {config.max_attempts} attempts: "
                f"{type(e).__name__}: {e}"
            )

        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await retrying(*args, **kwargs)
                except retry_on as e:
                    log_failure(e)
                    raise

            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return retrying(*args, **kwargs)
            except retry_on as e:
                log_failure(e)
                raise

        return wrapper

    return decorator


def classify_http_error(status_code: int, error_message: str = "") -> CloudError:
    """Classify an HTTP error status into a retryable or terminal error.

    Args:
        status_code: HTTP status code
        error_message: Error body or reason phrase

    Returns:
        Appropriate exception instance
    """
    if status_code == 429:
        return RateLimitError(f"Rate limit exceeded: {error_message}")

    if 500 <= status_code < 600:
        return ServerError(f"Server error (HTTP {status_code}): {error_message}")

    if status_code == 408:
        return TransportError(f"Request timeout: {error_message}")

    if status_code in (401, 403):
        return CloudAuthError(f"Authentication failed (HTTP {status_code}): {error_message}")

    return CloudError(f"HTTP error {status_code}: {error_message}")
