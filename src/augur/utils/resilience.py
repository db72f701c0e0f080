"""Retry and timeout helpers shared by every remote call.

There is one retry policy per concern (embedding, backend actions) and every
remote call is bounded by ``with_timeout``. A timeout surfaces as
``TimeoutError`` so callers fold it into the same error path as any other
transport failure.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
import structlog

log = structlog.get_logger()

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    httpx.TransportError,
    ConnectionError,
    TimeoutError,
)


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 10.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: tuple[type[Exception], ...] = TRANSIENT_ERRORS,
    ) -> None:
        """Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts (including first try)
            base_delay: Initial delay between retries in seconds
            max_delay: Maximum delay between retries
            exponential_base: Base for exponential backoff
            jitter: Add random jitter to delays
            retryable_exceptions: Tuple of exception types to retry on
        """
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions


EMBEDDING_RETRY = RetryConfig(max_attempts=3, base_delay=0.5, max_delay=5.0)

ACTION_RETRY = RetryConfig(max_attempts=2, base_delay=0.3, max_delay=2.0)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay for a given attempt with exponential backoff.

    Args:
        attempt: Current attempt number (0-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = config.base_delay * (config.exponential_base**attempt)
    delay = min(delay, config.max_delay)

    if config.jitter:
        # Up to 25% jitter (non-cryptographic, just for retry backoff)
        jitter_range = delay * 0.25
        delay += random.uniform(-jitter_range, jitter_range)  # noqa: S311

    return max(0.0, delay)


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    operation_name: str,
) -> T:
    """Await ``func()`` until it succeeds or the retry budget is spent.

    Only ``config.retryable_exceptions`` are retried; anything else propagates
    immediately. The last transient error is re-raised once attempts run out.
    """
    for attempt in range(config.max_attempts):
        try:
            return await func()
        except config.retryable_exceptions as e:
            if attempt >= config.max_attempts - 1:
                # log.error (not exception) to avoid traceback spam
                log.error(  # noqa: TRY400
                    "All retry attempts exhausted",
                    operation=operation_name,
                    attempts=config.max_attempts,
                    error=str(e) or type(e).__name__,
                )
                raise

            delay = calculate_delay(attempt, config)
            log.warning(
                "Retrying after transient failure",
                operation=operation_name,
                attempt=attempt + 1,
                max_attempts=config.max_attempts,
                delay=f"{delay:.2f}s",
                error=str(e) or type(e).__name__,
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Retry logic error")


async def with_timeout[R](
    coro: Awaitable[R],
    timeout_seconds: float,
    operation_name: str = "operation",
) -> R:
    """Execute a coroutine with a timeout.

    Raises:
        TimeoutError: If operation times out
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout_seconds)
    except TimeoutError as e:
        log.error(  # noqa: TRY400
            "Operation timed out",
            operation=operation_name,
            timeout=f"{timeout_seconds}s",
        )
        raise TimeoutError(f"{operation_name} timed out after {timeout_seconds}s") from e
