"""
Retry-with-backoff executor shared by every network-calling collaborator.

Provides:
- RetryConfig: attempt count, backoff bounds and a total time budget
- retry_with_backoff: runs an idempotent coroutine until it succeeds,
  fails terminally, or runs out of attempts or time
- RetryConfig.calculate_backoff is also the delay source for the polling
  loop after a failed cycle

Cancellation is asyncio's: a CancelledError raised inside an attempt or
while sleeping between attempts propagates straight out, and any partial
result of the interrupted attempt is dropped.
"""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from feed_curator.observability.metrics import get_metrics
from feed_curator.retry.errors import (
    MaxRetriesExceededError,
    RetryTimeoutError,
    attached_result,
    retry_after_hint,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration.

    Delay before retry n (0-indexed) is
    min(max_backoff, initial_backoff * backoff_factor^n), plus optional jitter.
    A max_total_timeout of 0 disables the overall time budget.
    """

    max_retries: int = 3
    initial_backoff: float = 1.0
    max_backoff: float = 30.0
    backoff_factor: float = 2.0
    max_total_timeout: float = 120.0
    jitter_factor: float = 0.0

    def calculate_backoff(self, attempt: int) -> float:
        """
        Calculate the computed delay before the retry following ``attempt``.

        Args:
            attempt: Retry number (0-indexed)

        Returns:
            Delay in seconds
        """
        delay = min(
            self.initial_backoff * (self.backoff_factor**attempt),
            self.max_backoff,
        )
        if self.jitter_factor > 0:
            delay += delay * self.jitter_factor * random.random()
        return delay


DEFAULT_RETRY_CONFIG = RetryConfig()


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    should_retry: Callable[[BaseException], bool] = lambda exc: True,
    *,
    operation_name: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """
    Execute ``operation`` with exponential backoff.

    Strategy:
      1. Run the operation; return its value on success.
      2. On failure, if ``should_retry`` rejects the error, re-raise it as is.
      3. Otherwise wait (a rate-limit hint on the failure wins over the
         computed backoff) and try again, up to ``config.max_retries`` retries.
      4. Give up with RetryTimeoutError once the total time budget is spent,
         or as soon as the next wait would not fit in what is left of it.

    Args:
        operation: Idempotent zero-argument coroutine function
        config: Retry tuning
        should_retry: Classifier; True means the error is transient
        operation_name: Label used in logs and the retry metric
        sleep: Awaitable sleep (injectable for tests)
        clock: Monotonic clock in seconds (injectable for tests)

    Returns:
        The operation's result

    Raises:
        MaxRetriesExceededError: Retryable failures used up every attempt
        RetryTimeoutError: The total time budget was exceeded
        asyncio.CancelledError: The caller was cancelled
        Exception: The first non-retryable failure, unchanged
    """
    last_error: BaseException | None = None
    last_result = None
    start = clock()
    attempts = 0

    budget = config.max_total_timeout

    def timed_out(detail: str) -> RetryTimeoutError:
        message = f"exceeded maximum total timeout of {budget}s{detail}"
        if last_error is not None:
            message = f"{message}: last error: {last_error}"
        return RetryTimeoutError(
            message,
            last_error=last_error,
            last_result=last_result,
            attempts=attempts,
        )

    for attempt in range(config.max_retries + 1):
        if budget > 0 and clock() - start > budget:
            raise timed_out("") from last_error

        attempts += 1
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            last_error = exc
            last_result = attached_result(exc)

            if not should_retry(exc):
                logger.debug(
                    f"{operation_name} failed with non-retryable "
                    f"{type(exc).__name__}: {exc}"
                )
                raise

        if attempt == config.max_retries:
            break

        wait = config.calculate_backoff(attempt)
        hint = retry_after_hint(last_error)
        if hint is not None:
            wait = hint

        # A wait that outlasts the budget would only end in a timeout
        if budget > 0:
            remaining = budget - (clock() - start)
            if wait >= remaining:
                logger.warning(
                    f"{operation_name} backoff of {wait:.2f}s exceeds remaining "
                    f"budget of {max(remaining, 0):.2f}s, giving up"
                )
                raise timed_out(
                    f" (next wait {wait:.2f}s, {max(remaining, 0):.2f}s left)"
                ) from last_error

        logger.warning(
            f"{operation_name} failed ({type(last_error).__name__}: {last_error}), "
            f"attempt {attempt + 1}/{config.max_retries + 1}, "
            f"backing off {wait:.2f}s"
        )
        get_metrics().record_retry(operation_name)
        await sleep(wait)

    raise MaxRetriesExceededError(
        f"max retries exceeded: {last_error}",
        last_error=last_error,
        last_result=last_result,
        attempts=attempts,
    ) from last_error
