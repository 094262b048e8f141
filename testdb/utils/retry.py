"""Retry helpers for flaky engine I/O."""

import asyncio
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    operation: str = "operation",
) -> T:
    """Await ``func()`` until it succeeds or attempts run out.

    Args:
        func: Zero-argument coroutine factory
        max_attempts: Maximum number of attempts (values below 1 mean one attempt)
        delay: Initial delay between attempts in seconds
        backoff: Multiplier for delay after each attempt
        operation: Name used in log events

    Returns:
        Result of the first successful attempt

    Raises:
        Exception: The last error once attempts are exhausted
    """
    attempts = max(1, max_attempts)
    current_delay = delay

    for attempt in range(1, attempts + 1):
        try:
            return await func()
        except Exception as e:
            if attempt == attempts:
                if attempts > 1:
                    logger.error("Retries exhausted", operation=operation, attempts=attempts, error=str(e))
                raise

            logger.warning(
                "Attempt failed, retrying",
                operation=operation,
                attempt=attempt,
                retry_in=current_delay,
                error=str(e),
            )
            if current_delay > 0:
                await asyncio.sleep(current_delay)
            current_delay *= backoff

    raise RuntimeError("unreachable")  # pragma: no cover


def async_retry_on_failure(max_attempts: int = 3, delay: float = 1.0, backoff: float = 2.0) -> Callable[..., Any]:
    """Decorator for retrying async database operations on failure.

    Args:
        max_attempts: Maximum number of retry attempts
        delay: Initial delay between retries in seconds
        backoff: Multiplier for delay after each retry

    Returns:
        Decorated async function with retry logic
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await retry_async(
                lambda: func(*args, **kwargs),
                max_attempts=max_attempts,
                delay=delay,
                backoff=backoff,
                operation=func.__qualname__,
            )

        return wrapper

    return decorator
