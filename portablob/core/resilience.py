"""
Resilience Utilities

Timeout handling and retry with exponential backoff for object store calls.

Author: Ayodele Oladeji
Date: 2025
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..exceptions import OperationTimeoutError, is_transient_error

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration.

    A policy with max_attempts=1 disables retries.
    """

    max_attempts: int = 3
    initial_backoff: float = 0.5  # seconds
    max_backoff: float = 10.0  # seconds
    backoff_multiplier: float = 2.0  # exponential backoff

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given (1-based) failed attempt."""
        return min(self.initial_backoff * (self.backoff_multiplier ** (attempt - 1)), self.max_backoff)


NO_RETRY = RetryPolicy(max_attempts=1)


async def with_timeout(
    operation: str,
    awaitable: Awaitable[T],
    timeout_seconds: Optional[float],
) -> T:
    """
    Await with an optional timeout.

    Raises:
        OperationTimeoutError: If the timeout elapses
    """
    if timeout_seconds is None:
        return await awaitable

    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.error(f"Operation timeout: {operation} ({timeout_seconds}s)")
        raise OperationTimeoutError(operation, timeout_seconds)


async def call_with_retry(
    operation: str,
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy = NO_RETRY,
    retry_on: Optional[Callable[[BaseException], bool]] = None,
) -> T:
    """
    Call an async function, retrying transient failures with backoff.

    Only use for idempotent operations.

    Args:
        operation: Operation name for logging
        func: Zero-argument coroutine function
        policy: Retry policy
        retry_on: Custom function to determine if an error is retryable

    Returns:
        Result of the first successful call
    """
    attempt = 1
    while True:
        try:
            result = await func()
        except Exception as e:
            should_retry = retry_on(e) if retry_on else is_transient_error(e)

            if not should_retry or attempt >= policy.max_attempts:
                if should_retry:
                    logger.error(
                        f"Operation failed after {attempt} attempt(s): {operation}: {e}"
                    )
                raise

            delay = policy.delay_for(attempt)
            logger.warning(
                f"Operation failed, retrying in {delay:.2f}s "
                f"(attempt {attempt}/{policy.max_attempts}): {operation}: {e}"
            )
            await asyncio.sleep(delay)
            attempt += 1
            continue

        if attempt > 1:
            logger.info(f"Operation succeeded after {attempt} attempts: {operation}")
        return result


def policy_from_config(config: Any) -> RetryPolicy:
    """Build a RetryPolicy from a RetryConfig model."""
    return RetryPolicy(
        max_attempts=config.max_attempts,
        initial_backoff=config.initial_backoff,
        max_backoff=config.max_backoff,
        backoff_multiplier=config.backoff_multiplier,
    )
