"""Retry utilities for transient collaborator failures.

Provides a decorator that retries async operations with bounded exponential
backoff. The issue-tracker provider uses it to absorb rate limiting and
gateway errors before a failure ever reaches the workflow engine.

Key Exports:
    async_retry: Decorator adding retry logic to async functions.

Example:
    >>> from issue_ops.utils.retry import async_retry
    >>>
    >>> @async_retry(max_attempts=4, base_delay=1.0, max_delay=4.0)
    ... async def fetch_issue(number: int) -> Issue:
    ...     return await tracker.get_issue(number)

Backoff Formula:
    delay = min(base_delay * backoff_factor ** (attempt - 1), max_delay)
    With the defaults (1.0, 2.0, 4.0): 1s, 2s, 4s, 4s, ...
"""

import asyncio
import functools
from collections.abc import Callable
from typing import Any

import structlog

log = structlog.get_logger(__name__)


def async_retry(
    max_attempts: int = 4,
    backoff_factor: float = 2.0,
    base_delay: float = 1.0,
    max_delay: float = 4.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    retry_if: Callable[[Exception], bool] | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator for async functions with exponential backoff retry logic.

    Args:
        max_attempts: Maximum number of calls, including the first one.
            The default of 4 means one attempt plus three retries.
        backoff_factor: Multiplier applied to the delay after each attempt.
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound for any single delay.
        exceptions: Exception types that are candidates for retry. Others
            propagate immediately.
        retry_if: Optional predicate further narrowing which caught
            exceptions are retried (e.g. only HTTP 429/5xx).

    Returns:
        A decorator wrapping async functions with retry logic.

    Raises:
        The last caught exception once attempts are exhausted, or at once
        when the exception is not retryable.

    Example:
        >>> @async_retry(
        ...     exceptions=(GithubException,),
        ...     retry_if=lambda e: e.status in (429, 502, 503),
        ... )
        ... async def create_comment():
        ...     return await post()
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if retry_if is not None and not retry_if(e):
                        raise

                    if attempt == max_attempts:
                        log.error(
                            "retry_exhausted",
                            function=func.__name__,
                            attempts=attempt,
                            error=str(e),
                        )
                        raise

                    delay = min(base_delay * backoff_factor ** (attempt - 1), max_delay)
                    log.warning(
                        "retry_attempt",
                        function=func.__name__,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

            raise RuntimeError("Retry logic error")

        return wrapper

    return decorator
